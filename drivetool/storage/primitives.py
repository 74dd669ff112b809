"""External system primitives used by the transfer and format workflows.

The workflows never call subprocess directly. They talk to a
`SystemPrimitives` object so the ordering and safety logic can run against
a fake in tests and against `ShellPrimitives` in production.

Primitive -> program:
    mount               mount DEVICE PATH
    unmount             umount TARGET
    sync                sync [-f PATH]
    copy                cp [-r -T] SRC DST
    mirror_sync         rsync -r -t --delete --no-owner --no-group --no-perms
    byte_size           du -s -b PATH
    compare_trees       diff -q -r A B
    probe_signature     blkid -p -o export DEVICE
    format_filesystem   mkfs.<fs> DEVICE
    list_block_devices  lsblk -J -o NAME,MODEL,SERIAL,VENDOR,TRAN
    list_partitions     lsblk -J -o NAME DEVICE

Every failure is raised as PrimitiveError; callers translate it into the
workflow-level exception.
"""

from __future__ import annotations

import json
import re
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Optional

from drivetool.config.settings import SUPPORTED_FILESYSTEMS
from drivetool.domain import Signature

from .commands import run_checked_command, run_command, with_sudo
from .exceptions import PrimitiveError


PROC_MOUNTS = Path("/proc/mounts")
INVENTORY_COLUMNS = "NAME,MODEL,SERIAL,VENDOR,TRAN"
# blkid exits with 2 when the device carries no recognizable signature
BLKID_NOTHING_FOUND = 2

_OCTAL_ESCAPE = re.compile(r"\\([0-7]{3})")


def _unescape_mount_field(value: str) -> str:
    # /proc/mounts encodes space, tab, newline and backslash as \ooo
    return _OCTAL_ESCAPE.sub(lambda match: chr(int(match.group(1), 8)), value)


def parse_mount_table(text: str) -> list[tuple[str, str]]:
    """Parse /proc/mounts content into (source, mountpoint) pairs."""
    entries = []
    for line in text.splitlines():
        parts = line.split()
        if len(parts) < 2:
            continue
        entries.append((_unescape_mount_field(parts[0]), _unescape_mount_field(parts[1])))
    return entries


def build_format_command(
    device: str, filesystem: str, label: Optional[str] = None
) -> list[str]:
    """Build the mkfs command line for a filesystem type.

    Raises:
        ValueError: If the filesystem type is not supported
    """
    filesystem = filesystem.lower()

    if filesystem == "exfat":
        command = ["mkfs.exfat"]
        if label:
            command.extend(["-n", label])
    elif filesystem == "vfat":
        # -I: allow formatting a whole-disk node without a partition table
        command = ["mkfs.vfat", "-I", "-F", "32"]
        if label:
            command.extend(["-n", label])
    elif filesystem == "ext4":
        command = ["mkfs.ext4", "-F"]
        if label:
            command.extend(["-L", label])
    elif filesystem == "ntfs":
        command = ["mkfs.ntfs", "-f"]
        if label:
            command.extend(["-L", label])
    else:
        raise ValueError(f"Unsupported filesystem type: {filesystem}")

    command.append(device)
    return command


class SystemPrimitives(ABC):
    """Abstract interface to the external programs the workflows need."""

    @abstractmethod
    def mount_table(self) -> list[tuple[str, str]]:
        """Return the active (source, mountpoint) pairs."""

    @abstractmethod
    def make_directory(self, path: Path) -> None:
        """Create `path` and its parents if missing."""

    @abstractmethod
    def remove_directory(self, path: Path) -> None:
        """Remove an empty directory."""

    @abstractmethod
    def mount(self, device: str, path: Path) -> None:
        """Bind `device` to `path`."""

    @abstractmethod
    def unmount(self, target: str) -> None:
        """Unmount a device node or mount point path."""

    @abstractmethod
    def sync(self, path: Optional[Path] = None) -> None:
        """Flush pending writes, only for the filesystem holding `path` if given."""

    @abstractmethod
    def copy(self, source: Path, destination: Path, recursive: bool) -> None:
        """Copy `source` to `destination`, overwriting what is there."""

    @abstractmethod
    def mirror_sync(self, source: Path, destination: Path) -> None:
        """Make `destination` mirror `source`, without owner/permission metadata."""

    @abstractmethod
    def byte_size(self, path: Path) -> int:
        """Return the apparent size of `path` in bytes."""

    @abstractmethod
    def compare_trees(self, first: Path, second: Path) -> bool:
        """Return True when both trees have identical content."""

    @abstractmethod
    def probe_signature(self, device: str) -> Optional[Signature]:
        """Return the existing signature on `device`, or None if blank."""

    @abstractmethod
    def format_filesystem(
        self, device: str, filesystem: str, label: Optional[str] = None
    ) -> None:
        """Create a fresh, empty filesystem on `device`."""

    @abstractmethod
    def list_block_devices(self) -> list[dict]:
        """Return attached block devices for display."""

    @abstractmethod
    def list_partitions(self, device: str) -> list[str]:
        """Return the partition nodes of `device`, e.g. /dev/sdb1."""


class ShellPrimitives(SystemPrimitives):
    """Primitives implemented with standard Linux command line tools."""

    def __init__(self, use_sudo: bool = False, mounts_path: Path = PROC_MOUNTS):
        self.use_sudo = use_sudo
        self.mounts_path = mounts_path

    def _run(self, command: list[str], privileged: bool = True) -> str:
        return run_checked_command(with_sudo(command, self.use_sudo and privileged))

    def mount_table(self) -> list[tuple[str, str]]:
        try:
            text = self.mounts_path.read_text(encoding="utf-8")
        except OSError as error:
            raise PrimitiveError(["cat", str(self.mounts_path)], 1, str(error)) from error
        return parse_mount_table(text)

    def make_directory(self, path: Path) -> None:
        self._run(["mkdir", "-p", str(path)])

    def remove_directory(self, path: Path) -> None:
        self._run(["rmdir", str(path)])

    def mount(self, device: str, path: Path) -> None:
        self._run(["mount", device, str(path)])

    def unmount(self, target: str) -> None:
        self._run(["umount", target])

    def sync(self, path: Optional[Path] = None) -> None:
        command = ["sync"]
        if path is not None:
            command.extend(["-f", str(path)])
        self._run(command, privileged=False)

    def copy(self, source: Path, destination: Path, recursive: bool) -> None:
        if recursive:
            # -T: overwrite `destination` itself instead of nesting inside it
            command = ["cp", "-r", "-T", str(source), str(destination)]
        else:
            command = ["cp", str(source), str(destination)]
        self._run(command)

    def mirror_sync(self, source: Path, destination: Path) -> None:
        command = [
            "rsync",
            "-r",
            "-t",
            "--delete",
            "--no-owner",
            "--no-group",
            "--no-perms",
        ]
        if source.is_dir():
            command.extend([f"{source}/", f"{destination}/"])
        else:
            command.extend([str(source), str(destination)])
        self._run(command)

    def byte_size(self, path: Path) -> int:
        output = self._run(["du", "-s", "-b", str(path)])
        fields = output.split()
        try:
            return int(fields[0])
        except (IndexError, ValueError) as error:
            raise PrimitiveError(
                ["du", "-s", "-b", str(path)], 0, f"Unexpected du output: {output!r}"
            ) from error

    def compare_trees(self, first: Path, second: Path) -> bool:
        command = with_sudo(["diff", "-q", "-r", str(first), str(second)], self.use_sudo)
        try:
            result = run_command(command, check=False)
        except OSError as error:
            raise PrimitiveError(command, 127, str(error)) from error
        if result.returncode == 0:
            return True
        if result.returncode == 1:
            return False
        raise PrimitiveError(command, result.returncode, (result.stderr or "").strip())

    def probe_signature(self, device: str) -> Optional[Signature]:
        command = with_sudo(["blkid", "-p", "-o", "export", device], self.use_sudo)
        try:
            result = run_command(command, check=False)
        except OSError as error:
            raise PrimitiveError(command, 127, str(error)) from error
        if result.returncode == BLKID_NOTHING_FOUND:
            return None
        if result.returncode != 0:
            raise PrimitiveError(command, result.returncode, (result.stderr or "").strip())
        return Signature.from_blkid_export(result.stdout or "")

    def format_filesystem(
        self, device: str, filesystem: str, label: Optional[str] = None
    ) -> None:
        self._run(build_format_command(device, filesystem, label))

    def _lsblk(self, command: list[str]) -> list[dict]:
        output = self._run(command, privileged=False)
        try:
            data = json.loads(output)
        except json.JSONDecodeError as error:
            raise PrimitiveError(command, 0, f"Invalid lsblk JSON: {error}") from error
        return data.get("blockdevices", [])

    def list_block_devices(self) -> list[dict]:
        return self._lsblk(["lsblk", "-J", "-o", INVENTORY_COLUMNS])

    def list_partitions(self, device: str) -> list[str]:
        partitions = []
        pending = list(self._lsblk(["lsblk", "-J", "-o", "NAME", device]))
        while pending:
            for child in pending.pop().get("children", []) or []:
                partitions.append(f"/dev/{child['name']}")
                pending.append(child)
        return partitions
