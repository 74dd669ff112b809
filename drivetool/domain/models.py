"""Domain model for device transfer and format workflows.

Type-safe value objects passed between the mount manager, transfer engine
and format guard instead of bare strings and dicts.
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field, replace
from enum import Enum
from pathlib import Path


# ==============================================================================
# Device Domain
# ==============================================================================


class MountState(Enum):
    """Whether a device is currently bound to a mount point."""

    UNMOUNTED = "unmounted"
    MOUNTED = "mounted"


@dataclass(frozen=True)
class Device:
    """A block device node, e.g. /dev/sdb or /dev/sdb1."""

    path: str

    @property
    def name(self) -> str:
        """Node name without the /dev/ prefix (e.g., "sdb1")."""
        return Path(self.path).name

    @property
    def resolved_path(self) -> str:
        """Real device node, following /dev/disk/by-* symlinks."""
        return os.path.realpath(self.path)

    def same_node(self, other: Device | str) -> bool:
        other_path = other.path if isinstance(other, Device) else other
        return self.resolved_path == os.path.realpath(other_path)

    def __str__(self) -> str:
        return self.path


@dataclass(frozen=True)
class MountPoint:
    """The well-known directory and whichever device is bound to it."""

    path: Path
    device: Device | None = None

    @property
    def state(self) -> MountState:
        return MountState.MOUNTED if self.device else MountState.UNMOUNTED

    def bound_to(self, device: Device) -> MountPoint:
        return replace(self, device=device)

    def __str__(self) -> str:
        return str(self.path)


@dataclass(frozen=True)
class Signature:
    """Existing on-disk filesystem or partition table identification."""

    filesystem_type: str | None = None
    partition_table_type: str | None = None
    label: str | None = None

    def describe(self) -> str:
        """Human-readable summary, e.g. "exfat filesystem (label BACKUP)"."""
        parts = []
        if self.filesystem_type:
            text = f"{self.filesystem_type} filesystem"
            if self.label:
                text += f" (label {self.label})"
            parts.append(text)
        if self.partition_table_type:
            parts.append(f"{self.partition_table_type} partition table")
        return ", ".join(parts) or "unknown signature"

    @classmethod
    def from_blkid_export(cls, output: str) -> Signature | None:
        """Parse `blkid -o export` KEY=value lines.

        Returns:
            Signature, or None when neither TYPE nor PTTYPE is present
        """
        values: dict[str, str] = {}
        for line in output.splitlines():
            key, sep, value = line.strip().partition("=")
            if sep:
                values[key] = value
        filesystem_type = values.get("TYPE") or None
        partition_table_type = values.get("PTTYPE") or None
        if not filesystem_type and not partition_table_type:
            return None
        return cls(
            filesystem_type=filesystem_type,
            partition_table_type=partition_table_type,
            label=values.get("LABEL") or None,
        )


# ==============================================================================
# Transfer Domain
# ==============================================================================


class TransferStrategy(Enum):
    """How the source is moved onto the device."""

    VERBATIM_COPY = "copy"  # cp, overwrite in place
    MIRROR_SYNC = "mirror"  # rsync --delete, no owner/permission metadata


class VerificationOutcome(Enum):
    NOT_YET_RUN = "not-yet-run"
    MATCH = "match"
    MISMATCH = "mismatch"


@dataclass(frozen=True)
class TransferJob:
    """A single transfer of `source` onto a mounted device."""

    source: Path
    destination: MountPoint
    strategy: TransferStrategy
    job_id: str
    verification: VerificationOutcome = VerificationOutcome.NOT_YET_RUN

    @property
    def source_name(self) -> str:
        """Basename of the normalized absolute source ("" for /).

        "." and ".." are resolved against the working directory first so
        they never name the mount point root or a path outside it.
        """
        return Path(os.path.abspath(self.source)).name

    @property
    def destination_path(self) -> Path:
        """Where the source lands on the device: <mount point>/<basename>."""
        return self.destination.path / self.source_name

    def with_outcome(self, outcome: VerificationOutcome) -> TransferJob:
        return replace(self, verification=outcome)


@dataclass(frozen=True)
class VerifiedTransfer:
    """Result of a transfer whose verification reported a match."""

    source: Path
    destination: Path
    strategy: TransferStrategy
    source_bytes: int
    destination_bytes: int
    outcome: VerificationOutcome = VerificationOutcome.MATCH


# ==============================================================================
# Format Domain
# ==============================================================================


class ConfirmationDecision(Enum):
    NOT_REQUIRED = "not-required"  # no signature found, nothing to lose
    GRANTED = "granted"
    DECLINED = "declined"


@dataclass(frozen=True)
class FormatRequest:
    """A reformat of `device`, gated on the operator's decision."""

    device: Device
    filesystem: str
    label: str | None = None
    signature: Signature | None = None
    decision: ConfirmationDecision | None = field(default=None)

    @property
    def may_proceed(self) -> bool:
        return self.decision in (
            ConfirmationDecision.NOT_REQUIRED,
            ConfirmationDecision.GRANTED,
        )

    def decided(self, decision: ConfirmationDecision) -> FormatRequest:
        return replace(self, decision=decision)
