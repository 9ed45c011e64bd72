"""Tests for fsbackup.engine.planner — pre-flight checks and operation plans."""

from datetime import date, datetime
from pathlib import Path
from unittest.mock import MagicMock, patch

import pytest

from fsbackup.core.config import Settings
from fsbackup.core.errors import (
    ChainNotFoundError,
    ConfigurationError,
    InsufficientSpaceError,
    PreconditionError,
)
from fsbackup.core.models import OperationKind
from fsbackup.core.space import SpaceReport
from fsbackup.engine.planner import Planner
from fsbackup.providers.copy.local import LocalCopyEngine

PLENTY = SpaceReport(required=1024, available=10 * 1024**3)


@pytest.fixture()
def settings(tmp_path: Path) -> Settings:
    source = tmp_path / "src"
    storage = tmp_path / "storage"
    source.mkdir()
    storage.mkdir()
    (source / "file.txt").write_text("data", encoding="utf-8")
    return Settings(source=source, storage=storage, engine="local", excludes=())


def _planner(settings: Settings, now: datetime) -> Planner:
    return Planner(settings, LocalCopyEngine(), now=lambda: now)


def _make(storage: Path, *names: str) -> None:
    for name in names:
        (storage / name).mkdir()


class TestPreflight:
    def test_engine_unavailable(self, settings):
        engine = MagicMock()
        engine.name = "rsync"
        engine.is_available.return_value = False
        with pytest.raises(ConfigurationError, match="'rsync' is not available"):
            Planner(settings, engine).preflight(OperationKind.FULL)

    def test_missing_source(self, settings, tmp_path):
        s = Settings(source=tmp_path / "nope", storage=settings.storage, engine="local", excludes=())
        with pytest.raises(ConfigurationError, match="Source directory"):
            Planner(s, LocalCopyEngine()).preflight(OperationKind.FULL)

    def test_storage_is_source(self, settings):
        s = Settings(source=settings.source, storage=settings.source, engine="local", excludes=())
        with pytest.raises(ConfigurationError, match="must not be the source"):
            Planner(s, LocalCopyEngine()).preflight(OperationKind.INCREMENTAL)

    def test_missing_storage(self, settings, tmp_path):
        s = Settings(source=settings.source, storage=tmp_path / "nope", engine="local", excludes=())
        with pytest.raises(ConfigurationError, match="does not exist or is not writable"):
            Planner(s, LocalCopyEngine()).preflight(OperationKind.SYNC)

    def test_recover_missing_storage(self, settings, tmp_path):
        s = Settings(source=settings.source, storage=tmp_path / "nope", engine="local", excludes=())
        with pytest.raises(ConfigurationError, match="does not exist"):
            Planner(s, LocalCopyEngine()).preflight(OperationKind.RECOVER)

    def test_passes(self, settings):
        Planner(settings, LocalCopyEngine()).preflight(OperationKind.FULL)


class TestPlanFull:
    @patch("fsbackup.engine.planner.measure", return_value=PLENTY)
    def test_plan(self, mock_measure, settings):
        plan = _planner(settings, datetime(2024, 1, 1, 9, 30)).plan(OperationKind.FULL)

        assert plan.kind is OperationKind.FULL
        assert plan.target == settings.storage / "2024-01-01-backup-full"
        assert plan.space is PLENTY
        assert not plan.target.exists()
        mock_measure.assert_called_once_with(settings.source, settings.storage)

    @patch("fsbackup.engine.planner.measure", return_value=SpaceReport(required=2048, available=1024))
    def test_insufficient_space(self, mock_measure, settings):
        with pytest.raises(InsufficientSpaceError, match="Not enough free space") as exc:
            _planner(settings, datetime(2024, 1, 1, 9, 30)).plan(OperationKind.FULL)
        assert exc.value.required == 2048
        assert exc.value.available == 1024
        assert list(settings.storage.iterdir()) == []

    @patch("fsbackup.engine.planner.measure", return_value=PLENTY)
    def test_existing_full_for_today(self, mock_measure, settings):
        _make(settings.storage, "2024-01-01-backup-full")
        with pytest.raises(PreconditionError, match="Use sync"):
            _planner(settings, datetime(2024, 1, 1, 18, 0)).plan(OperationKind.FULL)
        mock_measure.assert_not_called()

    @patch("fsbackup.engine.planner.measure", return_value=PLENTY)
    def test_summary(self, mock_measure, settings):
        plan = _planner(settings, datetime(2024, 1, 1, 9, 30)).plan(OperationKind.FULL)
        text = plan.summary()
        assert "Mode: Full Backup" in text
        assert "Required space (estimate): 1.00 KiB" in text
        assert "2024-01-01-backup-full" in text


class TestPlanSync:
    def test_no_full(self, settings):
        with pytest.raises(ChainNotFoundError, match="nothing to sync with"):
            _planner(settings, datetime(2024, 1, 3)).plan(OperationKind.SYNC)

    def test_latest_full_renamed_to_today(self, settings):
        _make(settings.storage, "2024-01-01-backup-full", "2023-12-01-backup-full")
        plan = _planner(settings, datetime(2024, 1, 3, 12, 0)).plan(OperationKind.SYNC)

        assert plan.target == settings.storage / "2024-01-01-backup-full"
        assert plan.rename_to == settings.storage / "2024-01-03-backup-full"
        assert "renamed to" in plan.summary()
        assert plan.warnings

    def test_no_rename_same_day(self, settings):
        _make(settings.storage, "2024-01-03-backup-full")
        plan = _planner(settings, datetime(2024, 1, 3, 12, 0)).plan(OperationKind.SYNC)
        assert plan.rename_to is None

    def test_warns_about_todays_incrementals(self, settings):
        _make(settings.storage, "2024-01-01-backup-full", "2024-01-03-backup-inc-080000")
        plan = _planner(settings, datetime(2024, 1, 3, 12, 0)).plan(OperationKind.SYNC)

        assert len(plan.warnings) == 2
        assert "1 incremental backup(s) from 2024-01-03 will be replayed" in plan.summary()

    def test_no_warning_for_older_incrementals(self, settings):
        _make(settings.storage, "2024-01-01-backup-full", "2024-01-02-backup-inc-080000")
        plan = _planner(settings, datetime(2024, 1, 3, 12, 0)).plan(OperationKind.SYNC)
        assert len(plan.warnings) == 1


class TestPlanIncremental:
    def test_plan(self, settings):
        _make(settings.storage, "2024-01-01-backup-full")
        plan = _planner(settings, datetime(2024, 1, 2, 10, 15, 30, 123456)).plan(OperationKind.INCREMENTAL)

        assert plan.target == settings.storage / "2024-01-02-backup-inc-101530"
        assert plan.created_at == datetime(2024, 1, 2, 10, 15, 30)
        assert plan.base is not None
        assert plan.base.name == "2024-01-01-backup-full"
        assert "Hard-links" in plan.summary()

    def test_no_full(self, settings):
        with pytest.raises(ChainNotFoundError, match="nothing to create an increment from"):
            _planner(settings, datetime(2024, 1, 2)).plan(OperationKind.INCREMENTAL)

    def test_base_after_now(self, settings):
        _make(settings.storage, "2024-01-05-backup-full")
        with pytest.raises(PreconditionError, match="dated after"):
            _planner(settings, datetime(2024, 1, 4, 23, 0)).plan(OperationKind.INCREMENTAL)

    def test_name_collision(self, settings):
        _make(settings.storage, "2024-01-01-backup-full", "2024-01-02-backup-inc-101530")
        with pytest.raises(PreconditionError, match="already exists"):
            _planner(settings, datetime(2024, 1, 2, 10, 15, 30)).plan(OperationKind.INCREMENTAL)


class TestPlanRecover:
    def test_plan(self, settings):
        _make(
            settings.storage,
            "2024-01-01-backup-full",
            "2024-01-02-backup-inc-100000",
            "2024-01-04-backup-inc-100000",
        )
        plan = _planner(settings, datetime(2024, 2, 1)).plan(OperationKind.RECOVER, date(2024, 1, 3))

        assert plan.target == settings.source
        assert plan.chain is not None
        assert plan.chain.base.name == "2024-01-01-backup-full"
        assert [s.name for s in plan.chain.incrementals] == ["2024-01-02-backup-inc-100000"]
        text = plan.summary()
        assert "Increments to apply:" in text
        assert "OVERWRITE DATA" in text

    def test_no_chain(self, settings):
        _make(settings.storage, "2024-01-05-backup-full")
        with pytest.raises(ChainNotFoundError, match="for recovery on 2024-01-03") as exc:
            _planner(settings, datetime(2024, 2, 1)).plan(OperationKind.RECOVER, date(2024, 1, 3))
        assert exc.value.target_date == date(2024, 1, 3)

    def test_requires_date(self, settings):
        with pytest.raises(ConfigurationError, match="target date"):
            _planner(settings, datetime(2024, 2, 1)).plan(OperationKind.RECOVER)

    def test_full_only_summary(self, settings):
        _make(settings.storage, "2024-01-01-backup-full")
        plan = _planner(settings, datetime(2024, 2, 1)).plan(OperationKind.RECOVER, date(2024, 1, 1))
        assert "only the full backup will be restored" in plan.summary()
