"""Domain models for device transfer and format workflows."""

from __future__ import annotations

from .models import (
    ConfirmationDecision,
    Device,
    FormatRequest,
    MountPoint,
    MountState,
    Signature,
    TransferJob,
    TransferStrategy,
    VerificationOutcome,
    VerifiedTransfer,
)


__all__ = [
    "ConfirmationDecision",
    "Device",
    "FormatRequest",
    "MountPoint",
    "MountState",
    "Signature",
    "TransferJob",
    "TransferStrategy",
    "VerificationOutcome",
    "VerifiedTransfer",
]
