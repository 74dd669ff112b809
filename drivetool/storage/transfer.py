"""Copy or mirror a source onto a mounted device, then verify it.

Strategies:
    copy:   `cp` (recursive for directories). An existing destination is
            overwritten in place; there is no atomic rename, so a crash
            mid-copy can leave a partial destination behind.
    mirror: `rsync --delete` with owner, group and permission metadata
            dropped, since exFAT-class media cannot represent them.

Verification:
    The destination filesystem is flushed first; some removable media report
    the copy as finished before the data is durable, and comparing against
    buffered state could report a false match. Then both sides are measured
    with `du` and compared with `diff -qr`. Only "no differences" is a match.
    A mismatch is reported, never rolled back.
"""

from __future__ import annotations

from pathlib import Path
from typing import Optional

from drivetool.domain import (
    TransferJob,
    TransferStrategy,
    VerificationOutcome,
    VerifiedTransfer,
)
from drivetool.logging import LoggerFactory

from .exceptions import CopyFailedError, PrimitiveError, VerificationFailedError
from .primitives import SystemPrimitives


class TransferEngine:
    def __init__(self, primitives: SystemPrimitives):
        self.primitives = primitives

    def transfer(self, job: TransferJob) -> VerifiedTransfer:
        """Run `job` and verify the result.

        Raises:
            CopyFailedError: Source missing, destination not mounted, copy
                program failed, or the destination could not be flushed.
                Verification is not run.
            VerificationFailedError: Destination differs from the source
        """
        log = LoggerFactory.for_transfer(job.job_id)
        source = Path(job.source)
        destination = job.destination_path

        if not source.exists():
            raise CopyFailedError(f"source {source} does not exist", str(source))
        if not job.source_name:
            raise CopyFailedError(
                f"source {source} has no name to copy it under", str(source)
            )
        if job.destination.device is None:
            raise CopyFailedError(
                f"nothing is mounted on {job.destination.path}",
                str(source),
                str(destination),
            )

        try:
            if job.strategy is TransferStrategy.MIRROR_SYNC:
                log.info(f"Mirroring {source} to {destination}")
                self.primitives.mirror_sync(source, destination)
            else:
                recursive = source.is_dir()
                kind = "directory" if recursive else "file"
                log.info(f"Copying {kind} {source} to {destination}")
                self.primitives.copy(source, destination, recursive=recursive)
        except PrimitiveError as error:
            log.error(f"Copy of {source} failed: {error}")
            raise CopyFailedError(str(error), str(source), str(destination)) from error
        log.info(f"{source} has been copied")

        log.info("Waiting for pending writes to finish")
        try:
            self.primitives.sync(job.destination.path)
        except PrimitiveError as error:
            raise CopyFailedError(
                f"flush of {job.destination.path} failed: {error}",
                str(source),
                str(destination),
            ) from error

        outcome, source_bytes, destination_bytes, reason = self.verify(source, destination)
        job = job.with_outcome(outcome)
        if job.verification is not VerificationOutcome.MATCH:
            log.error(f"Verification failed: {reason}")
            raise VerificationFailedError(str(source), str(destination), reason)

        log.success("Verification successful: no differences found")
        return VerifiedTransfer(
            source=source,
            destination=destination,
            strategy=job.strategy,
            source_bytes=source_bytes,
            destination_bytes=destination_bytes,
        )

    def verify(
        self, source: Path, destination: Path
    ) -> tuple[VerificationOutcome, int, int, Optional[str]]:
        """Compare `destination` against `source`.

        Returns:
            (outcome, source bytes, destination bytes, mismatch reason).
            Sizes are -1 when they could not be measured.
        """
        log = LoggerFactory.for_transfer()
        try:
            source_bytes = self.primitives.byte_size(source)
            destination_bytes = self.primitives.byte_size(destination)
        except PrimitiveError as error:
            return VerificationOutcome.MISMATCH, -1, -1, f"cannot measure size: {error}"
        log.info(f"Size: {source_bytes} bytes {source}")
        log.info(f"Size: {destination_bytes} bytes {destination}")
        if source_bytes != destination_bytes:
            # Directory entries are sized differently on each filesystem, the
            # content comparison below is what decides
            log.debug("Sizes differ, relying on content comparison")

        try:
            identical = self.primitives.compare_trees(source, destination)
        except PrimitiveError as error:
            return (
                VerificationOutcome.MISMATCH,
                source_bytes,
                destination_bytes,
                f"cannot compare: {error}",
            )
        if not identical:
            return (
                VerificationOutcome.MISMATCH,
                source_bytes,
                destination_bytes,
                "differences found",
            )
        return VerificationOutcome.MATCH, source_bytes, destination_bytes, None
