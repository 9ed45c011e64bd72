"""Copy engines: the metadata-preserving recursive copy capability."""

from __future__ import annotations

from fsbackup.core.config import Settings
from fsbackup.providers.copy.base import CopyEngine, CopyMode, CopyResult, EngineInfo

__all__ = [
    "CopyEngine",
    "CopyMode",
    "CopyResult",
    "EngineInfo",
    "get_copy_engine",
    "list_copy_engines",
]

_ENGINES = ("local", "rsync")


def get_copy_engine(name: str, settings: Settings | None = None) -> CopyEngine:
    """Get a copy engine instance by name.

    Raises:
        ValueError: Unknown engine name.
    """
    if name == "rsync":
        from fsbackup.providers.copy.rsync import RsyncEngine

        return RsyncEngine(settings.rsync if settings else None)
    if name == "local":
        from fsbackup.providers.copy.local import LocalCopyEngine

        return LocalCopyEngine()
    available = ", ".join(_ENGINES)
    raise ValueError(f"Unknown copy engine '{name}'. Available: {available}")


def list_copy_engines() -> list[str]:
    """Return all available copy engine names."""
    return list(_ENGINES)
