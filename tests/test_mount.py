"""Tests for storage/mount.py - mount point lifecycle.

This test suite covers:
- Mounting onto a fresh mount point (directory creation + bind)
- Idempotent ensure_mounted (no second bind)
- Strict and permissive handling of a mount point bound to another device
- Flush-before-unmount ordering
- Idempotent safe_unmount
- Mount and unmount failures
"""

import pytest

from drivetool.domain import Device, MountState
from drivetool.storage.exceptions import MountError, PrimitiveError, UnmountError
from drivetool.storage.mount import MountManager


class TestEnsureMounted:
    """Tests for MountManager.ensure_mounted()."""

    def test_mounts_fresh_device(self, fake_primitives, mount_point):
        """Test mount point is created and device bound to it."""
        manager = MountManager(fake_primitives, mount_point)

        result = manager.ensure_mounted("/dev/sdz")

        assert result.path == mount_point
        assert result.device == Device("/dev/sdz")
        assert result.state is MountState.MOUNTED
        assert mount_point.is_dir()
        assert fake_primitives.mutating_calls() == [
            ("make_directory", mount_point),
            ("mount", "/dev/sdz", mount_point),
        ]

    def test_second_call_does_not_rebind(self, fake_primitives, mount_point):
        """Test ensure_mounted twice binds only once and does not fail."""
        manager = MountManager(fake_primitives, mount_point)

        first = manager.ensure_mounted("/dev/sdz")
        second = manager.ensure_mounted("/dev/sdz")

        assert first == second
        assert fake_primitives.call_names().count("mount") == 1

    def test_strict_policy_rejects_other_device(self, fake_primitives, mount_point):
        """Test strict policy refuses a mount point bound to a different device."""
        fake_primitives.mounts.append(("/dev/sdy", str(mount_point)))
        manager = MountManager(fake_primitives, mount_point, identity_policy="strict")

        with pytest.raises(MountError, match="already bound to /dev/sdy") as excinfo:
            manager.ensure_mounted("/dev/sdz")

        assert excinfo.value.device == "/dev/sdz"
        assert fake_primitives.mutating_calls() == []

    def test_permissive_policy_accepts_other_device(self, fake_primitives, mount_point):
        """Test permissive policy keeps the existing binding."""
        fake_primitives.mounts.append(("/dev/sdy", str(mount_point)))
        manager = MountManager(fake_primitives, mount_point, identity_policy="permissive")

        result = manager.ensure_mounted("/dev/sdz")

        assert result.device == Device("/dev/sdy")
        assert fake_primitives.mutating_calls() == []

    def test_symlinked_device_matches_bound_node(self, fake_primitives, tmp_path, mount_point):
        """Test a by-id style symlink is recognised as the bound device."""
        node = tmp_path / "dev" / "sdz"
        node.parent.mkdir()
        node.write_text("")
        link = tmp_path / "dev" / "usb-Generic_Flash-0:0"
        link.symlink_to(node)
        fake_primitives.mounts.append((str(node), str(mount_point)))
        manager = MountManager(fake_primitives, mount_point)

        result = manager.ensure_mounted(str(link))

        assert result.device == Device(str(node))
        assert fake_primitives.mutating_calls() == []

    def test_mount_failure_raises_mount_error(self, fake_primitives, mount_point):
        """Test a failing mount program raises MountError."""
        fake_primitives.fail("mount", "wrong fs type, bad superblock")
        manager = MountManager(fake_primitives, mount_point)

        with pytest.raises(MountError, match="bad superblock"):
            manager.ensure_mounted("/dev/sdz")

        assert manager.bound_device() is None

    def test_unknown_identity_policy(self, fake_primitives, mount_point):
        with pytest.raises(ValueError):
            MountManager(fake_primitives, mount_point, identity_policy="sometimes")


class TestSafeUnmount:
    """Tests for MountManager.safe_unmount()."""

    def test_not_mounted_is_noop(self, fake_primitives, mount_point):
        """Test unmounting an unmounted device does nothing."""
        manager = MountManager(fake_primitives, mount_point)

        manager.safe_unmount("/dev/sdz")

        assert fake_primitives.mutating_calls() == []
        assert "sync" not in fake_primitives.call_names()

    def test_flush_precedes_unmount(self, fake_primitives, mount_point):
        """Test sync is issued before umount."""
        manager = MountManager(fake_primitives, mount_point)
        manager.ensure_mounted("/dev/sdz")
        fake_primitives.calls.clear()

        manager.safe_unmount("/dev/sdz")

        names = fake_primitives.call_names()
        assert names.index("sync") < names.index("unmount")
        assert manager.mountpoints_of("/dev/sdz") == []

    def test_unmount_is_idempotent(self, fake_primitives, mount_point):
        """Test a second safe_unmount succeeds with no side effect."""
        manager = MountManager(fake_primitives, mount_point)
        manager.ensure_mounted("/dev/sdz")
        manager.safe_unmount("/dev/sdz")
        calls_after_first = list(fake_primitives.calls)

        manager.safe_unmount("/dev/sdz")

        new_calls = fake_primitives.calls[len(calls_after_first):]
        assert [call[0] for call in new_calls] == ["mount_table"]

    def test_unmounts_every_mountpoint_of_device(self, fake_primitives, mount_point):
        """Test a device mounted twice is unmounted from both places."""
        fake_primitives.mounts.append(("/dev/sdz", "/media/user/USB"))
        fake_primitives.mounts.append(("/dev/sdz", str(mount_point)))
        manager = MountManager(fake_primitives, mount_point)

        manager.safe_unmount("/dev/sdz")

        assert fake_primitives.mounts == []
        assert fake_primitives.call_names().count("unmount") == 2

    def test_busy_device_raises_unmount_error(self, fake_primitives, mount_point):
        """Test a failing umount raises UnmountError and leaves it mounted."""
        manager = MountManager(fake_primitives, mount_point)
        manager.ensure_mounted("/dev/sdz")
        fake_primitives.fail("unmount", "target is busy", returncode=32)

        with pytest.raises(UnmountError, match="target is busy") as excinfo:
            manager.safe_unmount("/dev/sdz")

        assert excinfo.value.device == "/dev/sdz"
        assert manager.mountpoints_of("/dev/sdz") == [str(mount_point)]

    def test_failed_flush_skips_unmount(self, fake_primitives, mount_point):
        """Test unmount is never issued when the flush fails."""
        manager = MountManager(fake_primitives, mount_point)
        manager.ensure_mounted("/dev/sdz")
        fake_primitives.fail("sync", "I/O error")

        with pytest.raises(UnmountError, match="flush failed"):
            manager.safe_unmount("/dev/sdz")

        assert "unmount" not in fake_primitives.call_names()

    def test_mount_point_retained_by_default(self, fake_primitives, mount_point):
        manager = MountManager(fake_primitives, mount_point)
        manager.ensure_mounted("/dev/sdz")

        manager.safe_unmount("/dev/sdz")

        assert mount_point.is_dir()

    def test_mount_point_removed_when_configured(self, fake_primitives, mount_point):
        manager = MountManager(fake_primitives, mount_point, remove_mount_point=True)
        manager.ensure_mounted("/dev/sdz")

        manager.safe_unmount("/dev/sdz")

        assert not mount_point.exists()

    def test_unreadable_mount_table(self, fake_primitives, mount_point):
        fake_primitives.failures["mount_table"] = PrimitiveError(["cat"], 1, "denied")
        manager = MountManager(fake_primitives, mount_point)

        with pytest.raises(UnmountError, match="cannot read mount table"):
            manager.safe_unmount("/dev/sdz")


class TestPartitionUnmount:
    def test_partitions_ignored_by_default(self, fake_primitives, mount_point):
        fake_primitives.mounts.append(("/dev/sdz1", "/media/user/USB"))
        manager = MountManager(fake_primitives, mount_point)

        manager.safe_unmount("/dev/sdz")

        assert "unmount" not in fake_primitives.call_names()

    def test_include_partitions(self, fake_primitives, mount_point):
        """Test the whole disk and its partitions are all unmounted."""
        fake_primitives.mounts.append(("/dev/sdz", str(mount_point)))
        fake_primitives.mounts.append(("/dev/sdz1", "/media/user/USB"))
        fake_primitives.mounts.append(("/dev/sdz10", "/media/user/USB10"))
        manager = MountManager(fake_primitives, mount_point)

        manager.safe_unmount("/dev/sdz", include_partitions=True)

        assert fake_primitives.mounts == []
        assert fake_primitives.call_names().count("sync") == 1

    def test_mountpoints_of_several_nodes(self, fake_primitives, mount_point):
        fake_primitives.mounts.append(("/dev/sdz1", "/media/user/A"))
        fake_primitives.mounts.append(("/dev/sdz2", "/media/user/B"))
        fake_primitives.mounts.append(("tmpfs", "/run"))
        manager = MountManager(fake_primitives, mount_point)

        assert manager.mountpoints_of("/dev/sdz1", "/dev/sdz2") == [
            "/media/user/A",
            "/media/user/B",
        ]
