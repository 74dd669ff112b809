from __future__ import annotations

import os
import sys
import time
import uuid
from contextlib import contextmanager
from pathlib import Path
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from loguru import Logger

from loguru import logger

DEFAULT_LOG_DIR = Path(
    os.environ.get(
        "DRIVETOOL_LOG_DIR",
        Path.home() / ".local" / "state" / "drivetool" / "logs",
    )
)


def _should_log_command_output(record) -> bool:
    """Filter raw command stdout/stderr echoes - only show in TRACE mode."""
    tags = record["extra"].get("tags", [])

    if "command-output" in tags:
        return record["level"].no <= logger.level("TRACE").no or (
            record["level"].no >= logger.level("WARNING").no
        )

    return True


def setup_logging(
    *,
    debug: bool = False,
    trace: bool = False,
    log_dir: Path | None = None,
    file_logging: bool = True,
) -> Logger:
    """
    Setup console and file logging.

    Logging Tiers:
    - ERROR: Failed mount, transfer, unmount or format
    - SUCCESS/INFO: Workflow steps and outcomes
    - DEBUG: Every command line that is executed
    - TRACE: Raw command output

    Log Files:
    - operations.log: INFO+ events (7 day retention)
    - debug.log: DEBUG+ events when --debug is enabled (3 day retention)
    - structured.jsonl: Structured JSON logs for analysis (7 day retention)

    Args:
        debug: Enable DEBUG level logging
        trace: Enable TRACE level logging (very verbose)
        log_dir: Custom log directory (defaults to ~/.local/state/drivetool/logs)
        file_logging: Set to False to log to stderr only
    """
    logger.remove()
    logger.configure(extra={"job_id": "-", "tags": [], "source": "drivetool"})

    if trace:
        console_level = "TRACE"
    elif debug:
        console_level = "DEBUG"
    else:
        console_level = "INFO"

    # Console (stderr) - operator facing
    logger.add(
        sys.stderr,
        level=console_level,
        backtrace=False,
        diagnose=False,
        filter=_should_log_command_output,
        colorize=True,
        format=(
            "<green>{time:HH:mm:ss}</green> | "
            "<level>{level: <8}</level> | "
            "<cyan>{extra[source]: <10}</cyan> | "
            "{message}"
        ),
    )

    if not file_logging:
        return logger

    log_dir = log_dir or DEFAULT_LOG_DIR
    try:
        log_dir.mkdir(parents=True, exist_ok=True)
    except OSError as error:
        logger.warning("File logging disabled, cannot create {}: {}", log_dir, error)
        return logger

    logger.add(
        log_dir / "operations.log",
        level="INFO",
        rotation="5 MB",
        retention="7 days",
        compression="zip",
        backtrace=False,
        diagnose=False,
        format=(
            "{time:YYYY-MM-DD HH:mm:ss.SSS} | "
            "{level: <8} | "
            "{extra[source]: <10} | "
            "{extra[job_id]: <15} | "
            "{message}"
        ),
    )

    if debug or trace:
        logger.add(
            log_dir / "debug.log",
            level="TRACE" if trace else "DEBUG",
            rotation="10 MB",
            retention="3 days",
            compression="zip",
            backtrace=True,
            diagnose=True,
            format=(
                "{time:YYYY-MM-DD HH:mm:ss.SSS} | "
                "{level: <8} | "
                "{extra[source]: <10} | "
                "{extra[job_id]: <15} | "
                "{extra[tags]} | "
                "{message}"
            ),
        )

    logger.add(
        log_dir / "structured.jsonl",
        level="INFO",
        rotation="10 MB",
        retention="7 days",
        compression="zip",
        serialize=True,
        format="{message}",
    )

    return logger


def new_job_id(operation: str) -> str:
    return f"{operation}-{uuid.uuid4().hex[:8]}"


@contextmanager
def operation_context(
    operation: str,
    *,
    job_id: str | None = None,
    expected: tuple[type[BaseException], ...] = (),
    **details,
):
    """
    Context manager for tracking a workflow with automatic timing.

    Logs operation start, completion and failure with duration tracking.

    Args:
        operation: Operation name (e.g., "copy", "mirror", "format")
        job_id: Job identifier, generated when omitted
        expected: Exception types that end the operation normally (logged
            as a warning instead of a failure)
        **details: Operation-specific details to log

    Yields:
        Logger bound with job_id and operation context

    Example:
        with operation_context("copy", source="/data", device="/dev/sdb") as log:
            log.debug("Mounting device")
    """
    job_id = job_id or new_job_id(operation)

    with logger.contextualize(job_id=job_id, operation=operation, **details):
        start_time = time.time()
        log = logger.bind(source=operation, job_id=job_id, tags=[operation])

        log.info(f"{operation.capitalize()} started", **details)

        try:
            yield log
            duration = time.time() - start_time
            log.success(
                f"{operation.capitalize()} completed", duration_seconds=round(duration, 2)
            )
        except expected as e:
            duration = time.time() - start_time
            log.warning(
                f"{operation.capitalize()} stopped",
                reason=str(e),
                duration_seconds=round(duration, 2),
            )
            raise
        except Exception as e:
            duration = time.time() - start_time
            log.error(
                f"{operation.capitalize()} failed",
                error=str(e),
                error_type=type(e).__name__,
                duration_seconds=round(duration, 2),
            )
            raise


class LoggerFactory:
    """
    Factory for creating domain-specific loggers with automatic context.

    Each factory method returns a logger pre-configured with appropriate
    source and tags for the component.
    """

    @staticmethod
    def for_mount() -> Logger:
        """Logger for mount and unmount handling."""
        return logger.bind(source="mount", tags=["mount", "storage"])

    @staticmethod
    def for_transfer(job_id: str | None = None) -> Logger:
        """Logger for copy, mirror and verification."""
        if job_id is None:
            job_id = new_job_id("transfer")
        return logger.bind(job_id=job_id, source="transfer", tags=["transfer", "storage"])

    @staticmethod
    def for_format() -> Logger:
        """Logger for signature probing and formatting."""
        return logger.bind(source="format", tags=["format", "storage"])

    @staticmethod
    def for_commands() -> Logger:
        """Logger for external command execution."""
        return logger.bind(source="command", tags=["command"])

    @staticmethod
    def for_system() -> Logger:
        """Logger for system operations (startup, config, capability checks)."""
        return logger.bind(source="system", tags=["system"])
