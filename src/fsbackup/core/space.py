"""Disk space measurement for the full-backup space gate."""

from __future__ import annotations

import logging
import shutil
from dataclasses import dataclass
from pathlib import Path

log = logging.getLogger(__name__)

_IEC_UNITS = ("B", "KiB", "MiB", "GiB", "TiB", "PiB")


@dataclass
class SpaceReport:
    """Required vs available bytes for a full backup."""

    required: int  # used space of the source filesystem
    available: int  # free space at the destination

    @property
    def sufficient(self) -> bool:
        return self.required <= self.available


def format_bytes(size: int) -> str:
    """Format a byte count with IEC units, e.g. ``1.50 GiB``."""
    if abs(size) < 1024:
        return f"{size} B"
    value = size / 1024
    for unit in _IEC_UNITS[1:-1]:
        if abs(value) < 1024:
            return f"{value:.2f} {unit}"
        value /= 1024
    return f"{value:.2f} {_IEC_UNITS[-1]}"


def measure(source: Path, destination: Path) -> SpaceReport:
    """Measure used space on the source filesystem and free space at destination."""
    used = shutil.disk_usage(source).used
    free = shutil.disk_usage(destination).free
    log.debug("Space: source %s uses %d bytes, destination %s has %d free", source, used, destination, free)
    return SpaceReport(required=used, available=free)
