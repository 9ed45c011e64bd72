"""CopyEngine Protocol and types."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Protocol, runtime_checkable


class CopyMode(str, Enum):
    COPY = "copy"
    COPY_DELETE = "copy-delete"  # also remove dest entries absent from source
    DRY_RUN_DELETIONS = "dry-run-deletions"  # report would-be deletions only
    LINK_REFERENCE = "link-reference"  # hard-link unchanged files from a reference tree


@dataclass
class CopyResult:
    """Outcome of one copy engine invocation."""

    success: bool
    mode: CopyMode
    returncode: int = 0
    partial: bool = False  # some entries transferred, others failed or vanished
    deletions: list[str] = field(default_factory=list)  # root-relative, leading "/"
    files_copied: int = 0
    errors: list[str] = field(default_factory=list)
    duration_seconds: float = 0.0


@dataclass
class EngineInfo:
    """Metadata about a copy engine."""

    display_name: str
    preserves_acls: bool
    preserves_xattrs: bool
    preserves_hard_links: bool


@runtime_checkable
class CopyEngine(Protocol):
    """Contract for the recursive, metadata-preserving copy capability.

    ``run`` copies the *contents* of ``source`` into ``dest``. Exclusion
    patterns are globs; a leading ``/`` anchors them at ``source``.
    Failures are reported through the returned CopyResult, never raised.
    """

    @property
    def name(self) -> str:
        """Unique engine ID: 'rsync', 'local'."""
        ...

    @property
    def info(self) -> EngineInfo:
        """Engine metadata."""
        ...

    def is_available(self) -> bool:
        """Check whether the engine can run on this host."""
        ...

    def run(
        self,
        source: Path,
        dest: Path,
        mode: CopyMode,
        excludes: list[str] | None = None,
        reference: Path | None = None,
    ) -> CopyResult:
        """Run one transfer. ``reference`` is required for LINK_REFERENCE."""
        ...
