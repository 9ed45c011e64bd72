"""Deletion ledger: paths an incremental snapshot must remove on replay.

An incremental copies changed and new files only, so deletions made in the
source since the base full would be lost. The ledger records them, one
root-relative path per line (``/home/user/deleted.txt``), inside the
incremental as ``skip-files.txt``. It is always computed against the base
full, never against the previous incremental.
"""

from __future__ import annotations

import logging
import os
from pathlib import Path, PurePosixPath

from fsbackup.core.errors import CopyEngineError
from fsbackup.core.fileutil import atomic_write, join_under, remove_path
from fsbackup.core.models import SNAPSHOT_METADATA
from fsbackup.providers.copy.base import CopyEngine, CopyMode

log = logging.getLogger(__name__)


def _is_snapshot_metadata(entry: str) -> bool:
    return entry.lstrip("/") in SNAPSHOT_METADATA


def compute_deletions(
    engine: CopyEngine,
    source: Path,
    reference: Path,
    excludes: list[str],
) -> list[str]:
    """Paths present in ``reference`` but absent from ``source``.

    Runs the engine in dry-run deletion mode, then drops the reference's own
    snapshot metadata and entries that still exist in the source with a
    different type (the incremental carries their replacement).

    Raises:
        CopyEngineError: The dry run failed.
    """
    result = engine.run(source, reference, CopyMode.DRY_RUN_DELETIONS, excludes)
    if not result.success:
        raise CopyEngineError(f"Computing deletions against {reference}", result)

    seen: set[str] = set()
    entries: list[str] = []
    for entry in result.deletions:
        if entry in seen or _is_snapshot_metadata(entry):
            continue
        if os.path.lexists(join_under(source, entry)):
            continue
        seen.add(entry)
        entries.append(entry)

    log.info("Deletion ledger: %d path(s) removed since %s", len(entries), reference.name)
    return entries


def write_ledger(path: Path, entries: list[str]) -> None:
    """Persist ledger entries, one per line."""
    content = "".join(f"{entry}\n" for entry in entries)
    atomic_write(path, content)
    log.debug("Wrote %d ledger entries to %s", len(entries), path)


def read_ledger(path: Path) -> list[str]:
    """Read ledger entries. A missing ledger means no deletions."""
    if not path.exists():
        return []
    lines = path.read_text(encoding="utf-8").splitlines()
    return [line for line in lines if line.strip()]


def apply_deletions(ledger_path: Path, target: Path) -> list[Path]:
    """Remove every ledger entry that exists under ``target``.

    Idempotent: entries already absent are skipped. Entries that would
    escape ``target`` are ignored.

    Returns:
        The paths actually removed.
    """
    removed: list[Path] = []
    for entry in read_ledger(ledger_path):
        parts = PurePosixPath(entry).parts
        if ".." in parts or entry.strip("/") == "":
            log.warning("Ignoring unsafe ledger entry %r in %s", entry, ledger_path)
            continue
        path = join_under(target, entry)
        if remove_path(path):
            log.debug("Deleted %s", path)
            removed.append(path)

    if removed:
        log.info("Applied %s: removed %d path(s) from %s", ledger_path, len(removed), target)
    return removed
