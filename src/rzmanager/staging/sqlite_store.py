"""SQLite-backed staging store.

SqliteStagingStore implements the StagingStore protocol using stdlib
sqlite3. Records are stored as JSON documents (pydantic dumps) alongside a
few indexed columns. Insertion order is preserved through the rowid, which
an upsert keeps stable.
"""

from __future__ import annotations

import re
import sqlite3
from pathlib import Path

from rzmanager.staging.models import Commit, StagedChange

_SCHEMA = """\
CREATE TABLE IF NOT EXISTS staged_changes (
    rowid        INTEGER PRIMARY KEY AUTOINCREMENT,
    id           TEXT NOT NULL UNIQUE,
    workspace_id TEXT NOT NULL,
    data         JSON NOT NULL
);
CREATE INDEX IF NOT EXISTS idx_changes_workspace ON staged_changes(workspace_id);

CREATE TABLE IF NOT EXISTS commits (
    rowid        INTEGER PRIMARY KEY AUTOINCREMENT,
    id           TEXT NOT NULL UNIQUE,
    workspace_id TEXT NOT NULL,
    status       TEXT NOT NULL,
    data         JSON NOT NULL
);
CREATE INDEX IF NOT EXISTS idx_commits_workspace ON commits(workspace_id);
"""


class SqliteStagingStore:
    """SQLite-backed staging store with savepoint support."""

    _SAVEPOINT_RE = re.compile(r"^[A-Za-z0-9_]+$")

    def __init__(
        self,
        db_path: str | Path = ":memory:",
        *,
        _conn: sqlite3.Connection | None = None,
    ) -> None:
        """Open or create a staging database.

        Args:
            db_path: Path to ``.db`` file, or ``":memory:"`` for in-memory.
            _conn: Pre-existing connection (for testing). If provided,
                   *db_path* is ignored.
        """
        if _conn is not None:
            self._conn = _conn
            self._db_path: str = ":memory:"
        else:
            self._db_path = str(db_path) if isinstance(db_path, Path) else db_path
            if self._db_path != ":memory:":
                Path(self._db_path).parent.mkdir(parents=True, exist_ok=True)
            self._conn = sqlite3.connect(
                self._db_path,
                isolation_level=None,  # autocommit; savepoints manage transactions
            )
        self._conn.row_factory = sqlite3.Row
        self._conn.execute("PRAGMA journal_mode=WAL")
        self._conn.execute("PRAGMA synchronous=NORMAL")
        self._conn.executescript(_SCHEMA)

    @property
    def db_path(self) -> str:
        return self._db_path

    def close(self) -> None:
        """Close the database connection."""
        self._conn.close()

    # -- Staged changes --------------------------------------------------------

    def get_change(self, change_id: str) -> StagedChange | None:
        row = self._conn.execute(
            "SELECT data FROM staged_changes WHERE id = ?", (change_id,)
        ).fetchone()
        if row is None:
            return None
        return StagedChange.model_validate_json(row["data"])

    def put_change(self, change: StagedChange) -> None:
        self._conn.execute(
            "INSERT INTO staged_changes (id, workspace_id, data) VALUES (?, ?, ?) "
            "ON CONFLICT(id) DO UPDATE SET workspace_id = excluded.workspace_id, "
            "data = excluded.data",
            (change.id, change.workspace_id, change.model_dump_json()),
        )

    def delete_change(self, change_id: str) -> bool:
        cursor = self._conn.execute("DELETE FROM staged_changes WHERE id = ?", (change_id,))
        return cursor.rowcount > 0

    def all_changes(self) -> list[StagedChange]:
        rows = self._conn.execute("SELECT data FROM staged_changes ORDER BY rowid").fetchall()
        return [StagedChange.model_validate_json(row["data"]) for row in rows]

    # -- Commits ---------------------------------------------------------------

    def get_commit(self, commit_id: str) -> Commit | None:
        row = self._conn.execute("SELECT data FROM commits WHERE id = ?", (commit_id,)).fetchone()
        if row is None:
            return None
        return Commit.model_validate_json(row["data"])

    def put_commit(self, commit: Commit) -> None:
        self._conn.execute(
            "INSERT INTO commits (id, workspace_id, status, data) VALUES (?, ?, ?, ?) "
            "ON CONFLICT(id) DO UPDATE SET status = excluded.status, data = excluded.data",
            (commit.id, commit.workspace_id, str(commit.status), commit.model_dump_json()),
        )

    def delete_commit(self, commit_id: str) -> bool:
        cursor = self._conn.execute("DELETE FROM commits WHERE id = ?", (commit_id,))
        return cursor.rowcount > 0

    def all_commits(self) -> list[Commit]:
        rows = self._conn.execute("SELECT data FROM commits ORDER BY rowid").fetchall()
        return [Commit.model_validate_json(row["data"]) for row in rows]

    # -- Savepoints ------------------------------------------------------------

    def _validate_savepoint_name(self, name: str) -> None:
        """Validate savepoint name to prevent SQL injection."""
        if not self._SAVEPOINT_RE.match(name):
            msg = f"Invalid savepoint name {name!r}: must be alphanumeric/underscores only"
            raise ValueError(msg)

    def savepoint(self, name: str) -> None:
        """Create a SQLite savepoint."""
        self._validate_savepoint_name(name)
        self._conn.execute(f"SAVEPOINT sp_{name}")

    def rollback_to(self, name: str) -> None:
        """Rollback to a named savepoint.

        The savepoint remains active after rollback (SQLite behavior).
        """
        self._validate_savepoint_name(name)
        self._conn.execute(f"ROLLBACK TO sp_{name}")

    def release(self, name: str) -> None:
        """Release (commit) a named savepoint."""
        self._validate_savepoint_name(name)
        self._conn.execute(f"RELEASE SAVEPOINT sp_{name}")
