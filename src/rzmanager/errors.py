"""Error types for change tracking, staging, and commits.

The taxonomy mirrors how each failure is surfaced:

- ValidationError: rejected synchronously, nothing partially applied.
- TransactionError: an apply failed; captured into the commit's error log.
- NotFoundError: an unknown entity/commit/change id. Lookups by id return it
  inside an OperationResult instead of raising, so batch operations over
  stale ids keep going.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from difflib import get_close_matches
from typing import Any, Generic, TypeVar

T = TypeVar("T")


class RZManagerError(Exception):
    """Base class for all rzmanager errors."""


class ValidationError(RZManagerError):
    """Raised when input or a requested operation is invalid."""


class InvalidFieldValueError(ValidationError):
    """Raised when a node value is not a supported field value type."""

    def __init__(self, value: Any, path: str = "", reason: str = "") -> None:
        self.value = value
        self.path = path
        where = f" at '{path}'" if path else ""
        detail = reason or "expected str, int, float, bool, None, or list"
        super().__init__(f"Unsupported field value{where}: {type(value).__name__} ({detail})")


@dataclass
class CommitLifecycleError(ValidationError):
    """Raised when an operation is invalid for a commit's current status.

    Attributes:
        commit_id: The commit the operation targeted.
        operation: The rejected operation (e.g. "discard", "revert").
        status: The commit's status at the time of the request.
    """

    commit_id: str
    operation: str
    status: str
    reason: str = ""

    def __post_init__(self) -> None:
        msg = f"Cannot {self.operation} commit '{self.commit_id}' in status {self.status}"
        if self.reason:
            msg += f": {self.reason}"
        super().__init__(msg)


class TransactionError(RZManagerError):
    """Raised by a connectivity collaborator when a transaction fails."""


@dataclass
class NotFoundError(RZManagerError):
    """Raised (or returned) when an id does not resolve.

    Attributes:
        kind: What was looked up ("entity", "commit", "change", "snapshot").
        item_id: The id that was referenced but doesn't exist.
        available: Known ids, used to suggest likely typos.
    """

    kind: str
    item_id: str
    available: list[str] = field(default_factory=list)

    def __post_init__(self) -> None:
        msg = f"{self.kind.capitalize()} '{self.item_id}' not found"
        suggestions = self.suggestions()
        if suggestions:
            msg += f" (did you mean: {', '.join(suggestions)}?)"
        super().__init__(msg)

    def suggestions(self) -> list[str]:
        """Return up to three known ids close to the missing one."""
        return get_close_matches(self.item_id, self.available, n=3, cutoff=0.6)


@dataclass
class OperationResult(Generic[T]):
    """Outcome of an operation that reports failure instead of raising.

    Attributes:
        ok: True if the operation succeeded.
        value: The operation's return value on success.
        error: The error describing the failure, if any.
    """

    ok: bool
    value: T | None = None
    error: RZManagerError | None = None

    @classmethod
    def success(cls, value: T | None = None) -> OperationResult[T]:
        return cls(ok=True, value=value)

    @classmethod
    def failure(cls, error: RZManagerError) -> OperationResult[T]:
        return cls(ok=False, error=error)

    @property
    def message(self) -> str:
        """Human-readable error message, or empty string on success."""
        return str(self.error) if self.error is not None else ""
