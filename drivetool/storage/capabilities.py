"""Capability checks for the external programs each command needs.

Every mutating command runs `verify()` before its first mount, copy or
format. A missing program aborts the whole invocation up front.
"""

from __future__ import annotations

import shutil
from enum import Enum
from typing import Callable, Iterable, Optional

from drivetool.logging import LoggerFactory

from .exceptions import MissingCapabilitiesError


log = LoggerFactory.for_system()


class Capability(Enum):
    MOUNT = "mount"
    UNMOUNT = "unmount"
    MKDIR = "mkdir"
    SYNC = "sync"
    COPY = "copy"
    MIRROR = "mirror"
    DIFF = "diff"
    SIZE = "size"
    PROBE = "probe"
    FORMAT = "format"
    INVENTORY = "inventory"
    ELEVATE = "elevate"


EXECUTABLES: dict[Capability, str] = {
    Capability.MOUNT: "mount",
    Capability.UNMOUNT: "umount",
    Capability.MKDIR: "mkdir",
    Capability.SYNC: "sync",
    Capability.COPY: "cp",
    Capability.MIRROR: "rsync",
    Capability.DIFF: "diff",
    Capability.SIZE: "du",
    Capability.PROBE: "blkid",
    Capability.INVENTORY: "lsblk",
    Capability.ELEVATE: "sudo",
}

_TRANSFER_BASE = {
    Capability.MKDIR,
    Capability.MOUNT,
    Capability.UNMOUNT,
    Capability.SYNC,
    Capability.SIZE,
    Capability.DIFF,
}

COMMAND_CAPABILITIES: dict[str, frozenset[Capability]] = {
    "copy": frozenset(_TRANSFER_BASE | {Capability.COPY}),
    "mirror": frozenset(_TRANSFER_BASE | {Capability.MIRROR}),
    "format": frozenset(
        {
            Capability.UNMOUNT,
            Capability.SYNC,
            Capability.PROBE,
            Capability.FORMAT,
            Capability.INVENTORY,
        }
    ),
    "list": frozenset({Capability.INVENTORY}),
}


def executable_for(capability: Capability, filesystem: str = "exfat") -> str:
    if capability is Capability.FORMAT:
        return f"mkfs.{filesystem.lower()}"
    return EXECUTABLES[capability]


def required_capabilities(
    command: str, use_sudo: bool = False
) -> frozenset[Capability]:
    """Return the capabilities a CLI command needs.

    Raises:
        KeyError: If the command is unknown
    """
    required = set(COMMAND_CAPABILITIES[command])
    if use_sudo and command != "list":
        required.add(Capability.ELEVATE)
    return frozenset(required)


def verify(
    required: Iterable[Capability],
    filesystem: str = "exfat",
    which: Optional[Callable[[str], Optional[str]]] = None,
) -> None:
    """Check that every required program is on PATH.

    Args:
        required: Capabilities the operation needs
        filesystem: Filesystem type, selects the mkfs program for FORMAT
        which: Lookup function, defaults to shutil.which

    Raises:
        MissingCapabilitiesError: Listing every missing program
    """
    which = which or shutil.which
    missing = []
    for capability in sorted(set(required), key=lambda item: item.value):
        executable = executable_for(capability, filesystem)
        if which(executable) is None:
            missing.append(executable)
        else:
            log.trace(f"Found {executable} for {capability.value}")
    if missing:
        log.error(f"Missing required command(s): {', '.join(sorted(missing))}")
        raise MissingCapabilitiesError(missing)
