"""Mount lifecycle for the well-known transfer mount point.

`MountManager` owns the single mount point directory used for transfers.
It binds a device there idempotently and tears it down with an explicit
flush before the unmount, so the unmount never queues writeback that
could be lost when the drive is pulled.

Already-bound mount point:
    When something is already mounted at the mount point, no second bind is
    attempted. The identity policy decides what happens next:

    strict      the bound device must be the requested device (after
                resolving /dev/disk/by-* symlinks), otherwise MountError
    permissive  any existing binding is accepted with a warning

Concurrency:
    No locking is done. Two invocations racing on the same mount point is
    undefined; callers needing that must hold an external advisory lock.
"""

from __future__ import annotations

from pathlib import Path
from typing import Union

from drivetool.config.settings import (
    IDENTITY_POLICIES,
    IDENTITY_POLICY_PERMISSIVE,
    IDENTITY_POLICY_STRICT,
)
from drivetool.domain import Device, MountPoint
from drivetool.logging import LoggerFactory

from .exceptions import MountError, PrimitiveError, UnmountError
from .primitives import SystemPrimitives


log = LoggerFactory.for_mount()

DeviceLike = Union[Device, str]


def _as_device(device: DeviceLike) -> Device:
    return device if isinstance(device, Device) else Device(str(device))


class MountManager:
    def __init__(
        self,
        primitives: SystemPrimitives,
        mount_point: Path,
        identity_policy: str = IDENTITY_POLICY_STRICT,
        remove_mount_point: bool = False,
    ):
        if identity_policy not in IDENTITY_POLICIES:
            raise ValueError(f"Unknown mount identity policy: {identity_policy}")
        self.primitives = primitives
        self.mount_point = Path(mount_point)
        self.identity_policy = identity_policy
        self.remove_mount_point = remove_mount_point

    def _entries(self) -> list[tuple[str, str]]:
        return self.primitives.mount_table()

    def bound_device(self) -> Device | None:
        """Return the device currently mounted at the mount point, if any."""
        bound = None
        for source, target in self._entries():
            if target == str(self.mount_point):
                # Later entries stack on top of earlier ones
                bound = Device(source)
        return bound

    def partitions_of(self, device: DeviceLike) -> list[Device]:
        device = _as_device(device)
        return [Device(path) for path in self.primitives.list_partitions(device.path)]

    def mountpoints_of(self, *devices: DeviceLike) -> list[str]:
        """Return every mount target whose source is one of `devices`."""
        nodes = [_as_device(device) for device in devices]
        return [
            target
            for source, target in self._entries()
            if source.startswith("/") and any(node.same_node(source) for node in nodes)
        ]

    def ensure_mounted(self, device: DeviceLike) -> MountPoint:
        """Make `device` available at the mount point.

        Returns:
            MountPoint handle naming the device actually bound there

        Raises:
            MountError: If the mount fails, or (strict policy) a different
                device already occupies the mount point
        """
        device = _as_device(device)
        try:
            bound = self.bound_device()
        except PrimitiveError as error:
            raise MountError(device.path, f"cannot read mount table: {error}") from error

        if bound is not None:
            if bound.same_node(device):
                log.info(f"{device} is already mounted on {self.mount_point}")
                return MountPoint(self.mount_point, bound)
            if self.identity_policy == IDENTITY_POLICY_PERMISSIVE:
                log.warning(
                    f"{self.mount_point} is already bound to {bound}, not {device}; "
                    "continuing (permissive identity policy)"
                )
                return MountPoint(self.mount_point, bound)
            raise MountError(
                device.path,
                f"{self.mount_point} is already bound to {bound}",
            )

        log.info(f"Mounting {device} on {self.mount_point}")
        try:
            self.primitives.make_directory(self.mount_point)
            self.primitives.mount(device.path, self.mount_point)
        except PrimitiveError as error:
            log.error(f"Failed to mount {device}: {error}")
            raise MountError(device.path, str(error)) from error
        return MountPoint(self.mount_point, device)

    def safe_unmount(self, device: DeviceLike, include_partitions: bool = False) -> None:
        """Flush and unmount `device` from everywhere it is mounted.

        No-op when the device is not mounted. With `include_partitions` the
        partitions of a whole-disk node (e.g. an automounted /dev/sdb1) are
        unmounted as well.

        Raises:
            UnmountError: If the flush or the unmount fails; the caller must
                not proceed as if the device were unmounted
        """
        device = _as_device(device)
        nodes = [device]
        if include_partitions:
            try:
                nodes.extend(self.partitions_of(device))
            except PrimitiveError as error:
                raise UnmountError(device.path, f"cannot list partitions: {error}") from error
        try:
            targets = self.mountpoints_of(*nodes)
        except PrimitiveError as error:
            raise UnmountError(device.path, f"cannot read mount table: {error}") from error

        if not targets:
            log.debug(f"{device} is not mounted, nothing to unmount")
            return

        log.info(f"{device} is mounted on {', '.join(targets)}, unmounting")
        try:
            self.primitives.sync()
        except PrimitiveError as error:
            raise UnmountError(device.path, f"flush failed: {error}") from error

        for target in reversed(targets):
            try:
                self.primitives.unmount(target)
            except PrimitiveError as error:
                log.error(f"Failed to unmount {device} from {target}: {error}")
                raise UnmountError(device.path, str(error)) from error
        log.info(f"{device} unmounted successfully")

        if self.remove_mount_point and str(self.mount_point) in targets:
            try:
                self.primitives.remove_directory(self.mount_point)
            except PrimitiveError as error:
                log.warning(f"Could not remove {self.mount_point}: {error}")
