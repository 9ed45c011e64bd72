"""Snapshot catalog: enumerate and classify backup directories by name.

Directory names are the only source of snapshot kind and creation time:

    <YYYY-MM-DD>-backup-full            full snapshot, dated midnight
    <YYYY-MM-DD>-backup-inc-<HHMMSS>    incremental snapshot

Anything else under the storage root is ignored.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from datetime import date, datetime
from pathlib import Path

from fsbackup.core.models import Snapshot, SnapshotKind

log = logging.getLogger(__name__)

_FULL_RE = re.compile(r"^(?P<date>\d{4}-\d{2}-\d{2})-backup-full$")
_INC_RE = re.compile(r"^(?P<date>\d{4}-\d{2}-\d{2})-backup-inc-(?P<time>\d{6})$")


@dataclass(frozen=True)
class ParsedName:
    """Structured result of parsing a snapshot directory name."""

    kind: SnapshotKind
    created_at: datetime


def full_name(day: date) -> str:
    """Directory name of the full snapshot for ``day``."""
    return f"{day:%Y-%m-%d}-backup-full"


def incremental_name(moment: datetime) -> str:
    """Directory name of an incremental snapshot taken at ``moment``."""
    return f"{moment:%Y-%m-%d}-backup-inc-{moment:%H%M%S}"


def parse_name(name: str) -> ParsedName | None:
    """Parse a directory name. Returns None for anything that is not a snapshot."""
    m = _FULL_RE.match(name)
    if m:
        try:
            created = datetime.strptime(m.group("date"), "%Y-%m-%d")
        except ValueError:
            return None
        return ParsedName(SnapshotKind.FULL, created)

    m = _INC_RE.match(name)
    if m:
        try:
            created = datetime.strptime(f"{m.group('date')} {m.group('time')}", "%Y-%m-%d %H%M%S")
        except ValueError:
            return None
        return ParsedName(SnapshotKind.INCREMENTAL, created)

    return None


def parse_snapshot(path: Path) -> Snapshot | None:
    """Build a Snapshot from a directory, or None if its name does not match."""
    parsed = parse_name(path.name)
    if parsed is None or not path.is_dir():
        return None
    return Snapshot(kind=parsed.kind, created_at=parsed.created_at, path=path)


def list_snapshots(root: Path) -> list[Snapshot]:
    """All snapshots under ``root``, ordered by name."""
    if not root.is_dir():
        return []

    snapshots = []
    for entry in sorted(root.iterdir()):
        snap = parse_snapshot(entry)
        if snap is None:
            log.debug("Ignoring non-snapshot entry: %s", entry.name)
            continue
        snapshots.append(snap)
    return snapshots


def list_fulls(root: Path) -> list[Snapshot]:
    """Full snapshots under ``root``, oldest first."""
    return [s for s in list_snapshots(root) if s.kind is SnapshotKind.FULL]


def list_incrementals(root: Path) -> list[Snapshot]:
    """Incremental snapshots under ``root``, oldest first."""
    incs = [s for s in list_snapshots(root) if s.kind is SnapshotKind.INCREMENTAL]
    return sorted(incs, key=lambda s: s.created_at)


def latest_full(root: Path) -> Snapshot | None:
    """The full snapshot with the greatest name, or None if there is none.

    Names start with an ISO date, so the greatest name is the newest full.
    """
    fulls = list_fulls(root)
    if not fulls:
        return None
    return max(fulls, key=lambda s: s.name)
