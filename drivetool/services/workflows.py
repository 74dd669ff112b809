"""Transfer and format workflows built from the storage components.

transfer_to_device:  mount -> copy/mirror + verify -> flush + unmount
format_device:       unmount -> probe -> confirm -> mkfs

Each call performs exactly one lifecycle and nothing is retried. The
capability gate is the caller's first step (see drivetool.main).
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Optional, Union

from drivetool.config import settings
from drivetool.domain import (
    Device,
    FormatRequest,
    TransferJob,
    TransferStrategy,
    VerifiedTransfer,
)
from drivetool.logging import new_job_id, operation_context
from drivetool.storage.exceptions import FormatDeclinedError, TransferError, UnmountError
from drivetool.storage.format import ConfirmCallback, FormatGuard
from drivetool.storage.mount import MountManager
from drivetool.storage.primitives import SystemPrimitives
from drivetool.storage.transfer import TransferEngine


@dataclass(frozen=True)
class WorkflowOptions:
    mount_point: Path = Path(settings.DEFAULT_MOUNT_POINT)
    identity_policy: str = settings.IDENTITY_POLICY_STRICT
    remove_mount_point: bool = False
    filesystem: str = settings.DEFAULT_FILESYSTEM
    label: Optional[str] = None

    @classmethod
    def from_settings(cls, **overrides) -> WorkflowOptions:
        values = {
            "mount_point": settings.get_mount_point(),
            "identity_policy": settings.get_identity_policy(),
            "remove_mount_point": settings.get_bool("remove_mount_point"),
            "filesystem": settings.get_filesystem(),
        }
        values.update({key: value for key, value in overrides.items() if value is not None})
        return cls(**values)

    def mount_manager(self, primitives: SystemPrimitives) -> MountManager:
        return MountManager(
            primitives,
            self.mount_point,
            identity_policy=self.identity_policy,
            remove_mount_point=self.remove_mount_point,
        )


def transfer_to_device(
    source: Union[Path, str],
    device: Union[Device, str],
    strategy: TransferStrategy,
    primitives: SystemPrimitives,
    options: Optional[WorkflowOptions] = None,
) -> VerifiedTransfer:
    """Mount `device`, transfer `source` onto it, verify, unmount.

    If the transfer fails the device is still flushed and unmounted before
    the transfer error is re-raised.

    Raises:
        MountError: Device could not be mounted
        CopyFailedError: Copy program failed
        VerificationFailedError: Destination differs from the source
        UnmountError: Transfer succeeded but the device could not be unmounted
    """
    options = options or WorkflowOptions.from_settings()
    device = device if isinstance(device, Device) else Device(str(device))
    source = Path(os.path.abspath(source))
    job_id = new_job_id(strategy.value)

    with operation_context(
        strategy.value, job_id=job_id, source=str(source), device=device.path
    ) as log:
        manager = options.mount_manager(primitives)
        mount_point = manager.ensure_mounted(device)
        job = TransferJob(
            source=source,
            destination=mount_point,
            strategy=strategy,
            job_id=job_id,
        )

        try:
            result = TransferEngine(primitives).transfer(job)
        except TransferError:
            log.info(f"Unmounting {mount_point}")
            try:
                manager.safe_unmount(mount_point.device)
            except UnmountError as unmount_error:
                log.error(f"Device left mounted after failed transfer: {unmount_error}")
            raise

        log.info(f"Unmounting {mount_point}")
        manager.safe_unmount(mount_point.device)
        return result


def format_device(
    device: Union[Device, str],
    confirm: ConfirmCallback,
    primitives: SystemPrimitives,
    options: Optional[WorkflowOptions] = None,
) -> FormatRequest:
    """Unmount, probe and reformat `device`.

    Raises:
        FormatUnmountFailedError, FormatDeclinedError, FormatFailedError
    """
    options = options or WorkflowOptions.from_settings()
    device = device if isinstance(device, Device) else Device(str(device))

    with operation_context(
        "format",
        expected=(FormatDeclinedError,),
        device=device.path,
        filesystem=options.filesystem,
    ):
        guard = FormatGuard(
            primitives,
            options.mount_manager(primitives),
            filesystem=options.filesystem,
            label=options.label,
        )
        return guard.format(device, confirm)
