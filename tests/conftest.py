"""
Pytest configuration and shared fixtures for drivetool tests.

Workflow tests run against FakePrimitives: an in-memory mount table plus
real files under tmp_path, so copy/mirror/compare behave like the real
programs without any block device.
"""

import filecmp
import re
import shutil
import sys
from pathlib import Path
from typing import Dict, List, Optional

import pytest

from drivetool.config import settings
from drivetool.domain import Signature
from drivetool.logging import logger
from drivetool.storage.exceptions import PrimitiveError
from drivetool.storage.primitives import SystemPrimitives


MUTATING_CALLS = {
    "make_directory",
    "remove_directory",
    "mount",
    "unmount",
    "copy",
    "mirror_sync",
    "format_filesystem",
}


def trees_identical(first: Path, second: Path) -> bool:
    """Recursive content comparison, the fake's `diff -qr`."""
    if first.is_file() or second.is_file():
        return first.is_file() and second.is_file() and filecmp.cmp(first, second, shallow=False)
    if not first.is_dir() or not second.is_dir():
        return False
    names = sorted(path.name for path in first.iterdir())
    if names != sorted(path.name for path in second.iterdir()):
        return False
    return all(trees_identical(first / name, second / name) for name in names)


def tree_size(path: Path) -> int:
    if path.is_file():
        return path.stat().st_size
    return sum(item.stat().st_size for item in path.rglob("*") if item.is_file())


class FakePrimitives(SystemPrimitives):
    """Records every call; `failures` maps a method name to the error it raises."""

    def __init__(self):
        self.calls: List[tuple] = []
        self.mounts: List[tuple] = []
        self.signatures: Dict[str, Signature] = {}
        self.failures: Dict[str, Exception] = {}
        self.inventory: List[dict] = []
        self.partitions: Dict[str, List[str]] = {}

    def _record(self, name, *args):
        self.calls.append((name, *args))
        if name in self.failures:
            raise self.failures[name]

    def fail(self, name: str, message: str = "simulated failure", returncode: int = 1):
        self.failures[name] = PrimitiveError([name], returncode, message)

    def call_names(self) -> List[str]:
        return [call[0] for call in self.calls]

    def mutating_calls(self) -> List[tuple]:
        return [call for call in self.calls if call[0] in MUTATING_CALLS]

    def mount_table(self):
        self._record("mount_table")
        return list(self.mounts)

    def make_directory(self, path):
        self._record("make_directory", path)
        Path(path).mkdir(parents=True, exist_ok=True)

    def remove_directory(self, path):
        self._record("remove_directory", path)
        Path(path).rmdir()

    def mount(self, device, path):
        self._record("mount", device, path)
        self.mounts.append((device, str(path)))

    def unmount(self, target):
        self._record("unmount", target)
        for entry in reversed(self.mounts):
            if target in entry:
                self.mounts.remove(entry)
                return
        raise PrimitiveError(["umount", target], 32, f"{target}: not mounted")

    def sync(self, path=None):
        self._record("sync", path)

    def copy(self, source, destination, recursive):
        self._record("copy", source, destination, recursive)
        if recursive:
            shutil.copytree(source, destination, dirs_exist_ok=True)
        else:
            shutil.copyfile(source, destination)

    def mirror_sync(self, source, destination):
        self._record("mirror_sync", source, destination)
        if Path(source).is_dir():
            if Path(destination).exists():
                shutil.rmtree(destination)
            shutil.copytree(source, destination)
        else:
            shutil.copyfile(source, destination)

    def byte_size(self, path):
        self._record("byte_size", path)
        if not Path(path).exists():
            raise PrimitiveError(["du", str(path)], 1, "No such file or directory")
        return tree_size(Path(path))

    def compare_trees(self, first, second):
        self._record("compare_trees", first, second)
        return trees_identical(Path(first), Path(second))

    def probe_signature(self, device) -> Optional[Signature]:
        self._record("probe_signature", device)
        return self.signatures.get(device)

    def format_filesystem(self, device, filesystem, label=None):
        self._record("format_filesystem", device, filesystem, label)
        self.signatures[device] = Signature(filesystem_type=filesystem, label=label)

    def list_block_devices(self):
        self._record("list_block_devices")
        return list(self.inventory)

    def list_partitions(self, device):
        """Explicit `partitions` entry, else mounted sdX1 / nvme0n1p1 style nodes."""
        self._record("list_partitions", device)
        if device in self.partitions:
            return list(self.partitions[device])
        pattern = re.compile(re.escape(device) + r"p?\d+$")
        return sorted({source for source, _ in self.mounts if pattern.match(source)})


# ==============================================================================
# Fixtures
# ==============================================================================


@pytest.fixture(autouse=True)
def default_settings(tmp_path, monkeypatch):
    """Isolate tests from the user's settings file."""
    monkeypatch.setattr(settings, "SETTINGS_PATH", tmp_path / "settings" / "settings.json")
    settings.settings_store.values = dict(settings.DEFAULT_SETTINGS)
    yield
    settings.settings_store.values = dict(settings.DEFAULT_SETTINGS)


@pytest.fixture(autouse=True)
def reset_logging():
    """Restore a plain stderr sink after tests that reconfigure loguru."""
    yield
    logger.remove()
    logger.configure(extra={"job_id": "-", "tags": [], "source": "drivetool"})
    logger.add(sys.stderr, level="DEBUG")


@pytest.fixture
def fake_primitives() -> FakePrimitives:
    return FakePrimitives()


@pytest.fixture
def mount_point(tmp_path) -> Path:
    """Mount point path; created by the mount manager, not the fixture."""
    return tmp_path / "media" / "flashdrive"


@pytest.fixture
def source_tree(tmp_path) -> Path:
    """A 10-file source directory with a nested subdirectory."""
    root = tmp_path / "source" / "photos"
    (root / "2024").mkdir(parents=True)
    for index in range(6):
        (root / f"img_{index}.jpg").write_bytes(bytes([index]) * (100 + index))
    for index in range(4):
        (root / "2024" / f"note_{index}.txt").write_text(f"note {index}\n" * (index + 1))
    return root


@pytest.fixture
def source_file(tmp_path) -> Path:
    path = tmp_path / "source" / "report.pdf"
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_bytes(b"%PDF-1.7 report body")
    return path
