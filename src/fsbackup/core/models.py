"""Core data models for fs-backup."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime, time
from enum import Enum
from pathlib import Path

# --- Metadata file names stored at a snapshot root ---

RECOVERY_SCRIPT_NAME = "recovery.sh"
LEDGER_NAME = "skip-files.txt"

SNAPSHOT_METADATA = (RECOVERY_SCRIPT_NAME, LEDGER_NAME)


# --- Enums ---


class SnapshotKind(str, Enum):
    FULL = "full"
    INCREMENTAL = "incremental"


class OperationKind(str, Enum):
    FULL = "full"
    SYNC = "sync"
    INCREMENTAL = "incremental"
    RECOVER = "recover"


# --- Helpers ---


def end_of_day(day: date) -> datetime:
    """Last representable instant of ``day``."""
    return datetime.combine(day, time.max)


# --- Snapshot Models ---


@dataclass(frozen=True)
class Snapshot:
    """A backup directory under the storage root.

    ``created_at`` comes from the directory name, never from filesystem
    metadata. Fulls carry midnight of their date; incrementals carry the
    exact time of day encoded in the name.
    """

    kind: SnapshotKind
    created_at: datetime
    path: Path

    @property
    def name(self) -> str:
        return self.path.name

    @property
    def day(self) -> date:
        return self.created_at.date()

    @property
    def is_full(self) -> bool:
        return self.kind is SnapshotKind.FULL

    @property
    def ledger_path(self) -> Path:
        return self.path / LEDGER_NAME

    @property
    def recovery_script_path(self) -> Path:
        return self.path / RECOVERY_SCRIPT_NAME


@dataclass
class BackupChain:
    """Base full snapshot plus the incrementals to replay on top of it."""

    base: Snapshot
    incrementals: list[Snapshot] = field(default_factory=list)
    target_date: date | None = None

    @property
    def snapshots(self) -> list[Snapshot]:
        """All snapshots in replay order."""
        return [self.base, *self.incrementals]
