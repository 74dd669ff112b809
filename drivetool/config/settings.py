"""Settings storage for drivetool configuration."""

from __future__ import annotations

import json
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any


SETTINGS_PATH = Path(
    os.environ.get(
        "DRIVETOOL_SETTINGS_PATH",
        Path.home() / ".config" / "drivetool" / "settings.json",
    )
)

# Default values - use these constants instead of hardcoding values elsewhere
DEFAULT_MOUNT_POINT = "/media/flashdrive"
DEFAULT_FILESYSTEM = "exfat"
IDENTITY_POLICY_STRICT = "strict"
IDENTITY_POLICY_PERMISSIVE = "permissive"
IDENTITY_POLICIES = (IDENTITY_POLICY_STRICT, IDENTITY_POLICY_PERMISSIVE)
SUPPORTED_FILESYSTEMS = ("exfat", "vfat", "ext4", "ntfs")

DEFAULT_SETTINGS: dict[str, Any] = {
    "mount_point": DEFAULT_MOUNT_POINT,
    "mount_identity_policy": IDENTITY_POLICY_STRICT,
    "remove_mount_point": False,
    "filesystem": DEFAULT_FILESYSTEM,
    # None means "use sudo when not running as root"
    "use_sudo": None,
}


@dataclass
class SettingsStore:
    values: dict[str, Any] = field(default_factory=dict)


settings_store = SettingsStore()


def load_settings() -> None:
    settings_store.values = dict(DEFAULT_SETTINGS)
    if not SETTINGS_PATH.exists():
        return
    try:
        data = json.loads(SETTINGS_PATH.read_text(encoding="utf-8"))
    except (OSError, json.JSONDecodeError):
        return
    if isinstance(data, dict):
        settings_store.values.update(data)


def get_setting(key: str, default: Any | None = None) -> Any:
    return settings_store.values.get(key, default)


def get_bool(key: str, default: bool = False) -> bool:
    return bool(get_setting(key, default))


def get_mount_point() -> Path:
    return Path(get_setting("mount_point") or DEFAULT_MOUNT_POINT)


def get_identity_policy() -> str:
    policy = str(get_setting("mount_identity_policy") or IDENTITY_POLICY_STRICT).lower()
    if policy not in IDENTITY_POLICIES:
        return IDENTITY_POLICY_STRICT
    return policy


def get_filesystem() -> str:
    filesystem = str(get_setting("filesystem") or DEFAULT_FILESYSTEM).lower()
    if filesystem not in SUPPORTED_FILESYSTEMS:
        return DEFAULT_FILESYSTEM
    return filesystem


def resolve_use_sudo() -> bool:
    """Return whether privileged commands should be prefixed with sudo."""
    value = get_setting("use_sudo")
    if value is None:
        return os.geteuid() != 0
    return bool(value)


load_settings()
