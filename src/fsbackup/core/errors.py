"""Error taxonomy for backup operations."""

from __future__ import annotations

from datetime import date
from typing import TYPE_CHECKING

from fsbackup.core.space import format_bytes

if TYPE_CHECKING:
    from fsbackup.providers.copy.base import CopyResult


class BackupError(Exception):
    """Base error for all backup operations."""


class ConfigurationError(BackupError):
    """Pre-flight failure: missing copy engine, bad path or bad argument."""


class PreconditionError(BackupError):
    """The backup storage is not in a state that allows the operation."""


class InsufficientSpaceError(BackupError):
    """Destination has less free space than the source uses."""

    def __init__(self, required: int, available: int, destination: str) -> None:
        self.required = required
        self.available = available
        self.destination = destination
        super().__init__(
            f"Not enough free space on {destination}: "
            f"required {format_bytes(required)}, available {format_bytes(available)}"
        )


class ChainNotFoundError(BackupError):
    """No full snapshot satisfies the request."""

    def __init__(self, message: str, target_date: date | None = None) -> None:
        self.target_date = target_date
        super().__init__(message)


class OperationCancelled(BackupError):
    """The operator declined the plan at the confirmation gate."""


class CopyEngineError(BackupError):
    """A copy engine invocation did not complete successfully."""

    def __init__(self, step: str, result: CopyResult) -> None:
        self.step = step
        self.result = result
        detail = result.errors[0] if result.errors else f"exit code {result.returncode}"
        kind = "partially failed" if result.partial else "failed"
        super().__init__(f"{step} {kind}: {detail}")


class FileOperationError(BackupError):
    """A filesystem step of an operation failed (mkdir, delete, rename, write)."""

    def __init__(self, step: str, error: OSError) -> None:
        self.step = step
        self.error = error
        super().__init__(f"{step} failed: {error}")
