"""Configuration loader for fs-backup."""

from __future__ import annotations

import copy
import logging
import os
from dataclasses import dataclass, field
from pathlib import Path

import yaml

log = logging.getLogger(__name__)

# Virtual filesystems and scratch areas never worth backing up.
DEFAULT_EXCLUDES: list[str] = [
    "/dev/*",
    "/proc/*",
    "/sys/*",
    "/tmp/*",
    "/run/*",
    "/mnt/*",
    "/media/*",
    "/lost+found",
]

DEFAULTS: dict = {
    "source": "/",
    "storage": ".",
    "engine": "rsync",
    "excludes": DEFAULT_EXCLUDES,
    "extra_excludes": [],
    "rsync": {
        "binary": "rsync",
        "sudo": False,
        "numeric_ids": True,
        "extra_args": [],
    },
    "log_level": "warning",
    "log_file": None,
}


def config_path() -> Path:
    """Return the path to config.yaml: FSBACKUP_CONFIG env var > XDG default."""
    env_path = os.environ.get("FSBACKUP_CONFIG")
    if env_path:
        return Path(env_path).expanduser()
    xdg = os.environ.get("XDG_CONFIG_HOME") or "~/.config"
    return Path(xdg).expanduser() / "fs-backup" / "config.yaml"


def load_config(path: Path | None = None) -> dict:
    """Load config.yaml and merge with defaults.

    Args:
        path: Explicit path to config.yaml. If None, uses default location.

    Returns:
        Merged configuration dict.
    """
    if path is None:
        path = config_path()

    user_config: dict = {}
    if path.exists():
        try:
            raw = path.read_text(encoding="utf-8")
            user_config = yaml.safe_load(raw) or {}
        except (OSError, yaml.YAMLError):
            log.warning("Failed to read config at %s, using defaults", path, exc_info=True)
        if not isinstance(user_config, dict):
            log.warning("Config at %s is not a mapping, using defaults", path)
            user_config = {}

    return _deep_merge(DEFAULTS, user_config)


def _deep_merge(base: dict, override: dict) -> dict:
    """Recursively merge override into base, returning a new dict."""
    result = copy.deepcopy(base)
    for key, value in override.items():
        if key in result and isinstance(result[key], dict) and isinstance(value, dict):
            result[key] = _deep_merge(result[key], value)
        else:
            result[key] = value
    return result


@dataclass(frozen=True)
class RsyncOptions:
    binary: str = "rsync"
    sudo: bool = False
    numeric_ids: bool = True
    extra_args: tuple[str, ...] = ()


@dataclass(frozen=True)
class Settings:
    """Run configuration, built once per invocation and passed explicitly.

    ``source`` and ``storage`` are absolute. ``excludes`` holds the static
    exclusion set; :meth:`copy_excludes` adds the storage-root exclusion.
    """

    source: Path
    storage: Path
    engine: str = "rsync"
    excludes: tuple[str, ...] = tuple(DEFAULT_EXCLUDES)
    force: bool = False
    rsync: RsyncOptions = field(default_factory=RsyncOptions)

    def storage_exclude(self) -> str | None:
        """Exclusion pattern keeping the storage root out of its own backups.

        Patterns are anchored at the transfer root, so the storage root only
        needs excluding when it lives inside the source tree.
        """
        try:
            rel = self.storage.relative_to(self.source)
        except ValueError:
            return None
        if rel == Path("."):
            return None
        return f"/{rel.as_posix()}/*"

    def copy_excludes(self) -> list[str]:
        """Exclusion set applied to every copy-engine invocation."""
        patterns = list(self.excludes)
        storage_pattern = self.storage_exclude()
        if storage_pattern and storage_pattern not in patterns:
            patterns.append(storage_pattern)
        return patterns


def build_settings(
    config: dict,
    *,
    source: Path | str | None = None,
    storage: Path | str | None = None,
    engine: str | None = None,
    force: bool = False,
) -> Settings:
    """Turn a merged config dict plus command-line overrides into Settings."""
    source_path = Path(source if source is not None else config.get("source", "/"))
    storage_path = Path(storage if storage is not None else config.get("storage", "."))

    excludes = list(config.get("excludes") or [])
    for pattern in config.get("extra_excludes") or []:
        if pattern not in excludes:
            excludes.append(pattern)

    rsync_cfg = config.get("rsync", {}) or {}

    return Settings(
        source=source_path.expanduser().resolve(),
        storage=storage_path.expanduser().resolve(),
        engine=engine or config.get("engine", "rsync"),
        excludes=tuple(excludes),
        force=force,
        rsync=RsyncOptions(
            binary=rsync_cfg.get("binary", "rsync"),
            sudo=bool(rsync_cfg.get("sudo", False)),
            numeric_ids=bool(rsync_cfg.get("numeric_ids", True)),
            extra_args=tuple(rsync_cfg.get("extra_args") or ()),
        ),
    )
