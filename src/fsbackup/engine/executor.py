"""Operation executor: the mutating phase of full, sync, incremental and recover.

Every step is a blocking copy-engine call; the first unsuccessful result
aborts the operation with CopyEngineError. Nothing is rolled back, so a
partially written snapshot directory stays in place for inspection.
"""

from __future__ import annotations

import contextlib
import logging
import os
import time
from collections.abc import Callable, Iterator
from dataclasses import dataclass, field
from pathlib import Path

from fsbackup.core.catalog import parse_snapshot
from fsbackup.core.config import Settings
from fsbackup.core.errors import CopyEngineError, FileOperationError, PreconditionError
from fsbackup.core.fileutil import join_under, remove_path
from fsbackup.core.ledger import apply_deletions, compute_deletions, write_ledger
from fsbackup.core.models import SNAPSHOT_METADATA, OperationKind, Snapshot
from fsbackup.engine.planner import OperationPlan
from fsbackup.engine.recovery import write_recovery_script
from fsbackup.providers.copy.base import CopyEngine, CopyMode, CopyResult

log = logging.getLogger(__name__)


@dataclass
class ExecutionResult:
    """What an executed operation produced."""

    kind: OperationKind
    target: Path
    snapshot: Snapshot | None = None
    files_copied: int = 0
    deleted: list[str] = field(default_factory=list)
    duration_seconds: float = 0.0


class Executor:
    """Run confirmed OperationPlans against a copy engine."""

    def __init__(
        self,
        settings: Settings,
        engine: CopyEngine,
        progress: Callable[[str], None] | None = None,
    ) -> None:
        self.settings = settings
        self.engine = engine
        self._progress = progress or log.info

    def execute(self, plan: OperationPlan) -> ExecutionResult:
        start = time.monotonic()
        handlers = {
            OperationKind.FULL: self._run_full,
            OperationKind.SYNC: self._run_sync,
            OperationKind.INCREMENTAL: self._run_incremental,
            OperationKind.RECOVER: self._run_recover,
        }
        result = handlers[plan.kind](plan)
        result.duration_seconds = time.monotonic() - start
        log.info("%s finished in %.1fs", plan.kind.value, result.duration_seconds)
        return result

    # --- helpers ---

    @property
    def _excludes(self) -> list[str]:
        return self.settings.copy_excludes()

    @property
    def _restore_excludes(self) -> list[str]:
        return [f"/{name}" for name in SNAPSHOT_METADATA] + self._excludes

    def _copy(
        self,
        step: str,
        source: Path,
        dest: Path,
        mode: CopyMode,
        excludes: list[str],
        reference: Path | None = None,
    ) -> CopyResult:
        result = self.engine.run(source, dest, mode, excludes, reference)
        if not result.success:
            log.error("%s failed (exit %d): %s", step, result.returncode, "; ".join(result.errors))
            raise CopyEngineError(step, result)
        return result

    @contextlib.contextmanager
    def _step(self, description: str) -> Iterator[None]:
        """Turn an OSError raised inside the block into FileOperationError."""
        try:
            yield
        except OSError as e:
            log.error("%s failed: %s", description, e)
            raise FileOperationError(description, e) from e

    @staticmethod
    def _snapshot_at(path: Path) -> Snapshot:
        snapshot = parse_snapshot(path)
        if snapshot is None:
            raise PreconditionError(f"Not a snapshot directory: {path}")
        return snapshot

    # --- operations ---

    def _run_full(self, plan: OperationPlan) -> ExecutionResult:
        self._progress(f"Creating full backup in {plan.target}...")
        with self._step(f"Creating {plan.target}"):
            plan.target.mkdir()
        copied = self._copy(
            f"Full backup into {plan.target}",
            plan.source, plan.target, CopyMode.COPY, self._excludes,
        )

        snapshot = self._snapshot_at(plan.target)
        with self._step(f"Writing the recovery script of {plan.target}"):
            write_recovery_script(snapshot, self._excludes)
        self._progress(f"Full backup successfully created in {plan.target}")
        return ExecutionResult(
            kind=plan.kind, target=plan.target, snapshot=snapshot, files_copied=copied.files_copied,
        )

    def _run_sync(self, plan: OperationPlan) -> ExecutionResult:
        full = plan.target
        self._progress(f"Syncing with {full}...")

        # Delete pass: only entries that no longer exist in the source
        doomed = compute_deletions(self.engine, plan.source, full, self._excludes)
        for entry in doomed:
            path = join_under(full, entry)
            with self._step(f"Deleting {path}"):
                removed = remove_path(path)
            if removed:
                log.debug("Deleted from backup: %s", entry)
        if doomed:
            self._progress(f"Removed {len(doomed)} path(s) deleted from the source")

        copied = self._copy(
            f"Synchronizing {full}",
            plan.source, full, CopyMode.COPY_DELETE, self._excludes,
        )
        with self._step(f"Writing the recovery script of {full}"):
            write_recovery_script(self._snapshot_at(full), self._excludes)
        self._progress(f"Synchronization with {full} is complete.")

        if plan.rename_to is not None:
            if plan.rename_to.exists():
                raise PreconditionError(f"Cannot rename {full}: {plan.rename_to} already exists")
            with self._step(f"Renaming {full} to {plan.rename_to.name}"):
                os.rename(full, plan.rename_to)
            log.info("Renamed %s -> %s", full.name, plan.rename_to.name)
            self._progress(f"Backup has been renamed to: {plan.rename_to}")
            full = plan.rename_to

        return ExecutionResult(
            kind=plan.kind,
            target=full,
            snapshot=self._snapshot_at(full),
            files_copied=copied.files_copied,
            deleted=doomed,
        )

    def _run_incremental(self, plan: OperationPlan) -> ExecutionResult:
        base = plan.base
        if base is None:
            raise PreconditionError("Incremental backup plan has no base full backup")

        self._progress(f"Creating incremental backup in {plan.target}...")
        with self._step(f"Creating {plan.target}"):
            plan.target.mkdir()
        copied = self._copy(
            f"Incremental backup into {plan.target}",
            plan.source, plan.target, CopyMode.LINK_REFERENCE, self._excludes,
            reference=base.path,
        )

        self._progress(f"Generating list of deleted files ({plan.target.name}/skip-files.txt)...")
        snapshot = self._snapshot_at(plan.target)
        entries = compute_deletions(self.engine, plan.source, base.path, self._excludes)
        with self._step(f"Writing {snapshot.ledger_path}"):
            write_ledger(snapshot.ledger_path, entries)

        with self._step(f"Writing the recovery script of {plan.target}"):
            write_recovery_script(snapshot, self._excludes, base=base)
        self._progress(f"Incremental backup created in {plan.target}")
        return ExecutionResult(
            kind=plan.kind,
            target=plan.target,
            snapshot=snapshot,
            files_copied=copied.files_copied,
            deleted=entries,
        )

    def _run_recover(self, plan: OperationPlan) -> ExecutionResult:
        chain = plan.chain
        if chain is None:
            raise PreconditionError("Recovery plan has no backup chain")

        dest = plan.target
        total = 1 + len(chain.incrementals)
        self._progress(f"Step 1/{total}: Restoring from base full backup {chain.base.path}...")
        copied = self._copy(
            f"Restoring base full backup {chain.base.name}",
            chain.base.path, dest, CopyMode.COPY_DELETE, self._restore_excludes,
        )
        files_copied = copied.files_copied

        deleted: list[str] = []
        for step, inc in enumerate(chain.incrementals, start=2):
            self._progress(f"Step {step}/{total}: Applying increment {inc.path}...")
            copied = self._copy(
                f"Applying increment {inc.name}",
                inc.path, dest, CopyMode.COPY, self._restore_excludes,
            )
            files_copied += copied.files_copied
            with self._step(f"Applying deletions of {inc.name}"):
                removed = apply_deletions(inc.ledger_path, dest)
            deleted += ["/" + p.relative_to(dest).as_posix() for p in removed]

        self._progress(f"Recovery to {dest} for date {chain.target_date} is complete.")
        return ExecutionResult(
            kind=plan.kind,
            target=dest,
            files_copied=files_copied,
            deleted=deleted,
        )
