"""Staging storage backend protocol and in-memory implementation.

The StagingStore protocol defines the raw record operations the Staging
Area and Commit Engine delegate to. Implementations handle storage only;
lifecycle rules and validation live in the engine.

InMemoryStagingStore keeps records in dicts and is what tests use.
SqliteStagingStore persists the same records to a SQLite file.
"""

from __future__ import annotations

import copy
from contextlib import contextmanager
from typing import TYPE_CHECKING, Protocol, runtime_checkable

if TYPE_CHECKING:
    from collections.abc import Iterator

    from rzmanager.staging.models import Commit, StagedChange


@runtime_checkable
class StagingStore(Protocol):
    """Storage backend protocol for staged changes and commits.

    Records are immutable; ``put_*`` stores or replaces a whole record.
    Listing methods return records in insertion order.
    """

    # -- Staged changes --------------------------------------------------------

    def get_change(self, change_id: str) -> StagedChange | None:
        """Get a staged change by ID, or None if not found."""
        ...

    def put_change(self, change: StagedChange) -> None:
        """Store a staged change (create or replace)."""
        ...

    def delete_change(self, change_id: str) -> bool:
        """Delete a staged change. Return True if it existed."""
        ...

    def all_changes(self) -> list[StagedChange]:
        """Return all staged changes."""
        ...

    # -- Commits ---------------------------------------------------------------

    def get_commit(self, commit_id: str) -> Commit | None:
        """Get a commit by ID, or None if not found."""
        ...

    def put_commit(self, commit: Commit) -> None:
        """Store a commit (create or replace)."""
        ...

    def delete_commit(self, commit_id: str) -> bool:
        """Delete a commit. Return True if it existed."""
        ...

    def all_commits(self) -> list[Commit]:
        """Return all commits."""
        ...

    # -- Savepoints ------------------------------------------------------------

    def savepoint(self, name: str) -> None:
        """Create a named savepoint of the current state."""
        ...

    def rollback_to(self, name: str) -> None:
        """Rollback to a named savepoint."""
        ...

    def release(self, name: str) -> None:
        """Release (discard) a named savepoint."""
        ...


class InMemoryStagingStore:
    """In-memory dict-based staging store."""

    def __init__(self) -> None:
        self._changes: dict[str, StagedChange] = {}
        self._commits: dict[str, Commit] = {}
        self._savepoints: dict[str, tuple[dict[str, StagedChange], dict[str, Commit]]] = {}

    # -- Staged changes --------------------------------------------------------

    def get_change(self, change_id: str) -> StagedChange | None:
        return self._changes.get(change_id)

    def put_change(self, change: StagedChange) -> None:
        self._changes[change.id] = change

    def delete_change(self, change_id: str) -> bool:
        return self._changes.pop(change_id, None) is not None

    def all_changes(self) -> list[StagedChange]:
        return list(self._changes.values())

    # -- Commits ---------------------------------------------------------------

    def get_commit(self, commit_id: str) -> Commit | None:
        return self._commits.get(commit_id)

    def put_commit(self, commit: Commit) -> None:
        self._commits[commit.id] = commit

    def delete_commit(self, commit_id: str) -> bool:
        return self._commits.pop(commit_id, None) is not None

    def all_commits(self) -> list[Commit]:
        return list(self._commits.values())

    # -- Savepoints (copy-based) -----------------------------------------------

    def savepoint(self, name: str) -> None:
        """Save a named snapshot of current state."""
        # Records are frozen, so shallow dict copies are enough.
        self._savepoints[name] = (copy.copy(self._changes), copy.copy(self._commits))

    def rollback_to(self, name: str) -> None:
        """Restore state from a named snapshot."""
        if name not in self._savepoints:
            raise ValueError(f"No savepoint named '{name}'")
        changes, commits = self._savepoints[name]
        self._changes = copy.copy(changes)
        self._commits = copy.copy(commits)

    def release(self, name: str) -> None:
        """Discard a named snapshot."""
        self._savepoints.pop(name, None)


@contextmanager
def atomic(store: StagingStore, name: str) -> Iterator[None]:
    """Run a block of store writes all-or-nothing.

    Rolls back to a savepoint taken on entry if the block raises.
    """
    store.savepoint(name)
    try:
        yield
    except BaseException:
        store.rollback_to(name)
        store.release(name)
        raise
    store.release(name)
