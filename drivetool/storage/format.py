"""Destructive reformat of a device behind an unmount and signature gate.

Order of operations:
    1. Unmount the device and every partition on it (flush first). A device
       that is still mounted is never formatted.
    2. Probe for an existing filesystem or partition table signature. When
       one is found the operator must confirm; a blank device needs no
       confirmation since there is nothing to lose.
    3. Run mkfs for the target filesystem (exFAT unless configured
       otherwise).

The operation is irreversible and has no dry-run mode.

Example:
    >>> guard = FormatGuard(primitives, mount_manager)
    >>> guard.format(Device("/dev/sdb"), confirm=lambda request: True)
"""

from __future__ import annotations

from typing import Callable, Optional, Union

from drivetool.domain import ConfirmationDecision, Device, FormatRequest, Signature
from drivetool.logging import LoggerFactory

from .exceptions import (
    FormatDeclinedError,
    FormatFailedError,
    FormatUnmountFailedError,
    PrimitiveError,
    UnmountError,
)
from .mount import MountManager
from .primitives import SUPPORTED_FILESYSTEMS, SystemPrimitives


log = LoggerFactory.for_format()

ConfirmCallback = Callable[[FormatRequest], bool]


class FormatGuard:
    def __init__(
        self,
        primitives: SystemPrimitives,
        mount_manager: MountManager,
        filesystem: str = "exfat",
        label: Optional[str] = None,
    ):
        filesystem = filesystem.lower()
        if filesystem not in SUPPORTED_FILESYSTEMS:
            raise ValueError(f"Unsupported filesystem type: {filesystem}")
        self.primitives = primitives
        self.mount_manager = mount_manager
        self.filesystem = filesystem
        self.label = label

    def probe_signature(self, device: Union[Device, str]) -> Optional[Signature]:
        """Read the existing signature without modifying the device.

        Raises:
            PrimitiveError: If the probe itself fails
        """
        device = device if isinstance(device, Device) else Device(str(device))
        signature = self.primitives.probe_signature(device.path)
        if signature is None:
            log.debug(f"No signature found on {device}")
        else:
            log.debug(f"Found {signature.describe()} on {device}")
        return signature

    def format(self, device: Union[Device, str], confirm: ConfirmCallback) -> FormatRequest:
        """Reformat `device`, asking `confirm` first if it holds data.

        Returns:
            The decided FormatRequest

        Raises:
            FormatUnmountFailedError: Device could not be unmounted
            FormatDeclinedError: Operator declined; nothing was modified
            FormatFailedError: Probe or mkfs failed
        """
        device = device if isinstance(device, Device) else Device(str(device))
        request = FormatRequest(device=device, filesystem=self.filesystem, label=self.label)

        log.info(f"Checking if device {device} is mounted")
        try:
            self.mount_manager.safe_unmount(device, include_partitions=True)
        except UnmountError as error:
            raise FormatUnmountFailedError(device.path, error.cause) from error

        try:
            signature = self.probe_signature(device)
        except PrimitiveError as error:
            raise FormatFailedError(device.path, f"signature probe failed: {error}") from error

        if signature is None:
            request = request.decided(ConfirmationDecision.NOT_REQUIRED)
        else:
            request = FormatRequest(
                device=device,
                filesystem=self.filesystem,
                label=self.label,
                signature=signature,
            )
            log.warning(f"{device} contains an existing {signature.describe()}")
            granted = confirm(request)
            request = request.decided(
                ConfirmationDecision.GRANTED if granted else ConfirmationDecision.DECLINED
            )

        if not request.may_proceed:
            log.warning(f"Format of {device} declined, device left unchanged")
            raise FormatDeclinedError(device.path, signature, request)

        log.info(f"Formatting {device} as {self.filesystem}")
        try:
            self.primitives.format_filesystem(device.path, self.filesystem, self.label)
        except PrimitiveError as error:
            log.error(f"Formatting failed: {error}")
            raise FormatFailedError(device.path, str(error)) from error
        log.success(f"Drive {device} formatted successfully")
        return request
