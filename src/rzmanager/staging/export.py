"""Commit export artifacts (SQL script and JSON document).

Both formats describe a single commit. The SQL script is the transaction the
commit executes; the JSON document is the commit record plus its changes,
suitable for review tools or archiving.
"""

from __future__ import annotations

import json
from typing import TYPE_CHECKING

from rzmanager.errors import NotFoundError
from rzmanager.staging.sql import commit_to_sql

if TYPE_CHECKING:
    from collections.abc import Callable
    from pathlib import Path

    from rzmanager.staging.commits import CommitEngine
    from rzmanager.staging.models import Commit, StagedChange


def _load(engine: CommitEngine, commit_id: str) -> tuple[Commit, list[StagedChange]]:
    result = engine.get_commit(commit_id)
    if result.value is None:
        raise result.error or NotFoundError("commit", commit_id)
    return result.value, engine.changes_for_commit(commit_id)


def export_commit_sql(engine: CommitEngine, commit_id: str) -> str:
    """Render a commit as its transaction script.

    Raises:
        NotFoundError: If the commit does not exist.
    """
    commit, changes = _load(engine, commit_id)
    return commit_to_sql(commit, changes)


def export_commit_json(engine: CommitEngine, commit_id: str) -> str:
    """Serialize a commit and its changes as indented JSON.

    Raises:
        NotFoundError: If the commit does not exist.
    """
    commit, changes = _load(engine, commit_id)
    data = {
        "commit": commit.model_dump(mode="json"),
        "changes": [c.model_dump(mode="json") for c in changes],
    }
    return json.dumps(data, indent=2, ensure_ascii=False)


_EXPORTERS: dict[str, tuple[Callable[[CommitEngine, str], str], str]] = {
    "sql": (export_commit_sql, ".sql"),
    "json": (export_commit_json, ".json"),
}


def export_formats() -> list[str]:
    return sorted(_EXPORTERS)


def export_commit(engine: CommitEngine, commit_id: str, format_name: str) -> str:
    """Export a commit in the named format.

    Raises:
        ValueError: If the format is not supported.
        NotFoundError: If the commit does not exist.
    """
    entry = _EXPORTERS.get(format_name)
    if entry is None:
        supported = ", ".join(export_formats())
        msg = f"Unknown export format '{format_name}'. Supported: {supported}"
        raise ValueError(msg)
    return entry[0](engine, commit_id)


def write_commit_export(
    engine: CommitEngine, commit_id: str, format_name: str, output_dir: Path
) -> Path:
    """Write a commit export to ``commit-<short id>.<ext>`` in *output_dir*.

    Returns:
        Path to the written file.
    """
    text = export_commit(engine, commit_id, format_name)
    commit = engine.store.get_commit(commit_id)
    short_id = commit.short_id if commit is not None else commit_id[:8]
    output_dir.mkdir(parents=True, exist_ok=True)
    output_file = output_dir / f"commit-{short_id}{_EXPORTERS[format_name][1]}"
    output_file.write_text(text + "\n", encoding="utf-8")
    return output_file
