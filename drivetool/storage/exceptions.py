"""Custom exceptions for drivetool operations.

Every failure is fatal to the current invocation; nothing is retried.

Exception Hierarchy:
    DrivetoolError (base)
        ├── MissingCapabilitiesError
        ├── PrimitiveError
        └── StorageError
            ├── MountError
            │   └── UnmountError
            ├── TransferError
            │   ├── CopyFailedError
            │   └── VerificationFailedError
            └── FormatError
                ├── FormatUnmountFailedError
                ├── FormatDeclinedError
                └── FormatFailedError

Usage:
    from drivetool.storage.exceptions import VerificationFailedError

    if outcome is VerificationOutcome.MISMATCH:
        raise VerificationFailedError(source, destination)
"""

from typing import Iterable, Optional


class DrivetoolError(Exception):
    """Base exception for all drivetool errors."""


class MissingCapabilitiesError(DrivetoolError):
    """One or more required external programs are not available."""

    def __init__(self, names: Iterable[str]):
        self.names = sorted(set(names))
        super().__init__(
            f"Required command(s) not installed: {', '.join(self.names)}"
        )


class PrimitiveError(DrivetoolError):
    """An external program exited unsuccessfully."""

    def __init__(self, command: list[str], returncode: int, message: str = ""):
        self.command = list(command)
        self.returncode = returncode
        self.message = message
        detail = message or "no error output"
        super().__init__(
            f"Command failed ({' '.join(self.command)}, rc={returncode}): {detail}"
        )


class StorageError(DrivetoolError):
    """Base exception for device and transfer operations."""


class MountError(StorageError):
    """Device could not be made available at the mount point."""

    action = "mount"

    def __init__(self, device: str, cause: str):
        self.device = str(device)
        self.cause = cause
        super().__init__(f"Failed to {self.action} {self.device}: {cause}")


class UnmountError(MountError):
    """Device could not be unmounted (e.g., device busy)."""

    action = "unmount"


class TransferError(StorageError):
    """Base exception for copy and mirror transfers."""


class CopyFailedError(TransferError):
    """The copy or mirror program failed; verification was not run."""

    def __init__(
        self,
        cause: str,
        source: Optional[str] = None,
        destination: Optional[str] = None,
    ):
        self.cause = cause
        self.source = source
        self.destination = destination
        super().__init__(f"Copy failed: {cause}")


class VerificationFailedError(TransferError):
    """Destination does not match the source after the transfer.

    The destination is left as it is.
    """

    def __init__(self, source: str, destination: str, reason: str = ""):
        self.source = str(source)
        self.destination = str(destination)
        self.reason = reason
        msg = f"Verification failed: {self.destination} differs from {self.source}"
        if reason:
            msg += f" ({reason})"
        super().__init__(msg)


class FormatError(StorageError):
    """Base exception for format operations."""


class FormatUnmountFailedError(FormatError):
    """Device is still mounted, so it was not formatted."""

    def __init__(self, device: str, cause: str):
        self.device = str(device)
        self.cause = cause
        super().__init__(f"Refusing to format {self.device}, unmount failed: {cause}")


class FormatDeclinedError(FormatError):
    """Operator declined to overwrite an existing signature."""

    def __init__(self, device: str, signature: object = None, request: object = None):
        self.device = str(device)
        self.signature = signature
        self.request = request
        super().__init__(f"Format of {self.device} declined by operator")


class FormatFailedError(FormatError):
    """The mkfs program failed."""

    def __init__(self, device: str, cause: str):
        self.device = str(device)
        self.cause = cause
        super().__init__(f"Format of {self.device} failed: {cause}")
