"""Command execution utilities."""

from __future__ import annotations

import subprocess
from typing import Sequence

from drivetool.logging import LoggerFactory

from .exceptions import PrimitiveError


log = LoggerFactory.for_commands()
output_log = log.bind(tags=["command", "command-output"])


def with_sudo(command: Sequence[str], use_sudo: bool) -> list[str]:
    if use_sudo and command and command[0] != "sudo":
        return ["sudo", *command]
    return list(command)


def run_command(command, check=True, log_output=True, log_command=True):
    """Run a command, logging the command line and its output.

    Raises:
        subprocess.CalledProcessError: If check is True and the command fails
    """
    if log_command:
        log.debug(f"Running command: {' '.join(command)}")
    try:
        result = subprocess.run(command, check=check, text=True, capture_output=True)
    except subprocess.CalledProcessError as error:
        log.debug(f"Command failed: {' '.join(command)}")
        if error.stdout:
            output_log.trace(f"stdout: {error.stdout.strip()}")
        if error.stderr:
            output_log.debug(f"stderr: {error.stderr.strip()}")
        raise
    if result.stdout and (log_output or result.returncode != 0):
        output_log.trace(f"stdout: {result.stdout.strip()}")
    if result.stderr and (log_output or result.returncode != 0):
        output_log.trace(f"stderr: {result.stderr.strip()}")
    if log_command:
        log.debug(f"Command completed with return code {result.returncode}")
    return result


def run_checked_command(command, log_output=True):
    """Run a command and raise PrimitiveError if it fails.

    A missing executable is reported the same way as a failed one.
    """
    try:
        result = run_command(command, check=False, log_output=log_output)
    except OSError as error:
        raise PrimitiveError(command, 127, str(error)) from error
    if result.returncode != 0:
        stderr = (result.stderr or "").strip()
        stdout = (result.stdout or "").strip()
        message = stderr or stdout or "Command failed"
        raise PrimitiveError(command, result.returncode, message)
    return result.stdout


__all__ = [
    "run_command",
    "run_checked_command",
    "with_sudo",
]
