"""Operator confirmation for destructive format requests."""

from __future__ import annotations

import sys
from typing import Callable, Optional, TextIO

from drivetool.domain import FormatRequest


CONFIRM_WORD = "yes"


def always(answer: bool) -> Callable[[FormatRequest], bool]:
    """Fixed answer for batch and scripted callers (e.g. --yes)."""

    def confirm(request: FormatRequest) -> bool:
        return answer

    return confirm


def terminal_prompt(
    stdin: Optional[TextIO] = None, stdout: Optional[TextIO] = None
) -> Callable[[FormatRequest], bool]:
    """Ask on the terminal; only an explicit "yes" grants the format.

    A non-interactive stdin or end of input counts as declined.
    """

    def confirm(request: FormatRequest) -> bool:
        input_stream = stdin or sys.stdin
        output_stream = stdout or sys.stdout
        if not input_stream.isatty() and stdin is None:
            output_stream.write(
                "Refusing to format without confirmation on a non-interactive "
                "terminal (use --yes)\n"
            )
            return False
        signature = request.signature.describe() if request.signature else "data"
        output_stream.write(
            f"{request.device} contains an existing {signature}.\n"
            f"Formatting as {request.filesystem} destroys everything on it.\n"
            f"Type '{CONFIRM_WORD}' to continue: "
        )
        output_stream.flush()
        answer = input_stream.readline()
        return answer.strip().lower() == CONFIRM_WORD

    return confirm
