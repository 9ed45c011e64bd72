"""Operation planner: pre-flight checks and an auditable plan for each operation.

Planning never mutates the source or the storage root. Everything that can
fail without touching backup state (missing engine, bad paths, no full to
build on, insufficient space) fails here, before the confirmation gate.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import date, datetime
from pathlib import Path

from fsbackup.core.catalog import full_name, incremental_name, latest_full, list_incrementals
from fsbackup.core.chain import resolve
from fsbackup.core.config import Settings
from fsbackup.core.errors import (
    ChainNotFoundError,
    ConfigurationError,
    InsufficientSpaceError,
    PreconditionError,
)
from fsbackup.core.fileutil import is_writable_dir
from fsbackup.core.models import BackupChain, OperationKind, Snapshot
from fsbackup.core.space import SpaceReport, format_bytes, measure
from fsbackup.providers.copy.base import CopyEngine

log = logging.getLogger(__name__)


@dataclass
class OperationPlan:
    """What an operation will do, shown to the operator before it runs."""

    kind: OperationKind
    source: Path
    storage: Path
    target: Path  # snapshot to create/update, or the recovery destination
    created_at: datetime
    base: Snapshot | None = None
    chain: BackupChain | None = None
    space: SpaceReport | None = None
    rename_to: Path | None = None  # sync only
    warnings: list[str] = field(default_factory=list)

    def summary(self) -> str:
        """Human-readable plan text."""
        lines: list[str] = []
        if self.kind is OperationKind.FULL:
            lines += [
                "Mode: Full Backup",
                f"Source: {self.source}",
                f"Destination: {self.target}",
            ]
            if self.space is not None:
                lines += [
                    f"Required space (estimate): {format_bytes(self.space.required)}",
                    f"Available on destination disk: {format_bytes(self.space.available)}",
                ]
        elif self.kind is OperationKind.SYNC:
            lines += [
                "Mode: Synchronization",
                f"Source: {self.source}",
                f"Syncing with: {self.target}",
            ]
            if self.rename_to is not None:
                lines.append(f"The backup will be renamed to: {self.rename_to}")
        elif self.kind is OperationKind.INCREMENTAL:
            lines += [
                "Mode: Incremental Backup",
                "Method: Hard-links against the base full backup",
                f"Source: {self.source}",
                f"Base backup: {self.base.path if self.base else '-'}",
                f"Changes will be saved to: {self.target}",
            ]
        else:
            chain = self.chain
            lines += [
                "Mode: System Recovery",
                f"Target date: {chain.target_date:%Y-%m-%d}" if chain and chain.target_date else "Target date: -",
                f"Base backup: {chain.base.path if chain else '-'}",
            ]
            if chain and chain.incrementals:
                lines.append("Increments to apply:")
                lines += [f"  {inc.path}" for inc in chain.incrementals]
            else:
                lines.append("No incremental backups found; only the full backup will be restored.")
            lines.append(f"Destination: {self.target}")

        if self.warnings:
            lines.append("")
            lines += [f"!!! {w}" for w in self.warnings]
        return "\n".join(lines)


class Planner:
    """Build OperationPlans from the catalog and the run settings."""

    def __init__(
        self,
        settings: Settings,
        engine: CopyEngine,
        now: Callable[[], datetime] = datetime.now,
    ) -> None:
        self.settings = settings
        self.engine = engine
        self._now = now

    def preflight(self, kind: OperationKind) -> None:
        """Configuration checks shared by every operation.

        Raises:
            ConfigurationError: A dependency or path is missing or unusable.
        """
        s = self.settings
        if not self.engine.is_available():
            raise ConfigurationError(
                f"Copy engine '{self.engine.name}' is not available. Please install it."
            )
        if not s.source.is_dir():
            raise ConfigurationError(f"Source directory '{s.source}' not found.")
        if s.storage == s.source:
            raise ConfigurationError(f"Storage directory '{s.storage}' must not be the source itself.")
        if kind is OperationKind.RECOVER:
            if not s.storage.is_dir():
                raise ConfigurationError(f"Storage directory '{s.storage}' does not exist.")
        elif not is_writable_dir(s.storage):
            raise ConfigurationError(
                f"Destination directory '{s.storage}' does not exist or is not writable."
            )

    def plan(self, kind: OperationKind, target_date: date | None = None) -> OperationPlan:
        """Run pre-flight checks and build the plan for ``kind``."""
        self.preflight(kind)
        if kind is OperationKind.FULL:
            return self.plan_full()
        if kind is OperationKind.SYNC:
            return self.plan_sync()
        if kind is OperationKind.INCREMENTAL:
            return self.plan_incremental()
        if target_date is None:
            raise ConfigurationError("Recovery requires a target date in YYYY-MM-DD format.")
        return self.plan_recover(target_date)

    def plan_full(self) -> OperationPlan:
        now = self._now()
        target = self.settings.storage / full_name(now.date())
        if target.exists():
            raise PreconditionError(
                f"A full backup for {now:%Y-%m-%d} already exists: {target}. Use sync to update it."
            )

        report = measure(self.settings.source, self.settings.storage)
        log.info(
            "Space check: required %d bytes, available %d bytes", report.required, report.available,
        )
        if not report.sufficient:
            raise InsufficientSpaceError(report.required, report.available, str(self.settings.storage))

        return OperationPlan(
            kind=OperationKind.FULL,
            source=self.settings.source,
            storage=self.settings.storage,
            target=target,
            created_at=now,
            space=report,
        )

    def plan_sync(self) -> OperationPlan:
        now = self._now()
        base = self._require_latest_full("nothing to sync with")

        today_path = self.settings.storage / full_name(now.date())
        rename_to = None
        if base.path != today_path and not today_path.exists():
            rename_to = today_path

        warnings = ["Files deleted from the source will also be deleted from the backup."]
        # The synced full is dated midnight today, so today's incrementals sort after it
        todays = [inc for inc in list_incrementals(self.settings.storage) if inc.day == now.date()]
        if todays:
            warnings.append(
                f"{len(todays)} incremental backup(s) from {now:%Y-%m-%d} will be replayed on top of "
                "the synced full backup when recovering to that date, reverting later changes."
            )

        return OperationPlan(
            kind=OperationKind.SYNC,
            source=self.settings.source,
            storage=self.settings.storage,
            target=base.path,
            created_at=now,
            base=base,
            rename_to=rename_to,
            warnings=warnings,
        )

    def plan_incremental(self) -> OperationPlan:
        now = self._now().replace(microsecond=0)
        base = self._require_latest_full("nothing to create an increment from")
        if now < base.created_at:
            raise PreconditionError(
                f"Base full backup {base.name} is dated after the current time {now:%Y-%m-%d %H:%M:%S}."
            )

        target = self.settings.storage / incremental_name(now)
        if target.exists():
            raise PreconditionError(f"Incremental backup directory already exists: {target}")

        return OperationPlan(
            kind=OperationKind.INCREMENTAL,
            source=self.settings.source,
            storage=self.settings.storage,
            target=target,
            created_at=now,
            base=base,
        )

    def plan_recover(self, target_date: date) -> OperationPlan:
        try:
            chain = resolve(self.settings.storage, target_date)
        except ChainNotFoundError as e:
            raise ChainNotFoundError(
                f"No suitable full backup found in {self.settings.storage} "
                f"for recovery on {target_date:%Y-%m-%d}.",
                target_date,
            ) from e

        return OperationPlan(
            kind=OperationKind.RECOVER,
            source=self.settings.source,
            storage=self.settings.storage,
            target=self.settings.source,
            created_at=self._now(),
            base=chain.base,
            chain=chain,
            warnings=[f"THIS OPERATION WILL OVERWRITE DATA IN: {self.settings.source}"],
        )

    def _require_latest_full(self, context: str) -> Snapshot:
        base = latest_full(self.settings.storage)
        if base is None:
            raise ChainNotFoundError(f"No full backup found in {self.settings.storage}: {context}.")
        return base
