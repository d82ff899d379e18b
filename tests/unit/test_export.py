"""Tests for commit export artifacts."""

from __future__ import annotations

import json
from typing import TYPE_CHECKING

import pytest

from rzmanager.errors import NotFoundError
from rzmanager.staging.export import (
    export_commit,
    export_commit_json,
    export_commit_sql,
    export_formats,
    write_commit_export,
)
from rzmanager.staging.models import Commit, OperationType
from rzmanager.tracking.models import EntityType

if TYPE_CHECKING:
    from pathlib import Path

    from rzmanager.staging.area import StagingArea
    from rzmanager.staging.commits import CommitEngine
    from rzmanager.staging.models import WorkspaceContext


@pytest.fixture
def commit(engine: CommitEngine, area: StagingArea, workspace: WorkspaceContext) -> Commit:
    change = area.stage_change(
        workspace,
        EntityType.NPC,
        1001,
        "Guard",
        OperationType.UPDATE,
        previous_snapshot={"hp": 100, "group": "town"},
        new_snapshot={"hp": 150, "group": "town"},
    )
    return engine.create_commit("ws-1", "dev", "Buff guard", "alice", [change.id])


class TestExportSql:
    """Test SQL export."""

    def test_script(self, engine: CommitEngine, commit: Commit) -> None:
        """The export is the commit's transaction script."""
        script = export_commit_sql(engine, commit.id)

        assert "-- Commit: Buff guard" in script
        assert "UPDATE dbo.NPCResource\nSET\n  [hp] = 150\nWHERE id = 1001;" in script
        assert script.rstrip().endswith("COMMIT TRANSACTION;")

    def test_unknown_commit(self, engine: CommitEngine) -> None:
        """Unknown commits raise NotFoundError."""
        with pytest.raises(NotFoundError):
            export_commit_sql(engine, "missing")


class TestExportJson:
    """Test JSON export."""

    def test_document(self, engine: CommitEngine, commit: Commit) -> None:
        """The document holds the commit and its changes."""
        data = json.loads(export_commit_json(engine, commit.id))

        assert data["commit"]["id"] == commit.id
        assert data["commit"]["status"] == "Pending"
        assert data["commit"]["change_ids"] == list(commit.change_ids)
        (change,) = data["changes"]
        assert change["operation_type"] == "Update"
        assert change["new_snapshot"] == {"hp": 150, "group": "town"}
        assert change["generated_sql"].startswith("UPDATE")

    def test_indented(self, engine: CommitEngine, commit: Commit) -> None:
        """The JSON is indented for review."""
        assert '\n  "commit": {' in export_commit_json(engine, commit.id)

    def test_round_trips_into_models(self, engine: CommitEngine, commit: Commit) -> None:
        """The exported commit validates back into the model."""
        data = json.loads(export_commit_json(engine, commit.id))
        assert Commit.model_validate(data["commit"]) == commit


class TestExportDispatch:
    """Test format dispatch and file output."""

    def test_formats(self) -> None:
        """Both formats are registered."""
        assert export_formats() == ["json", "sql"]

    def test_unknown_format(self, engine: CommitEngine, commit: Commit) -> None:
        """Unsupported formats are rejected with the supported list."""
        with pytest.raises(ValueError, match="Supported: json, sql"):
            export_commit(engine, commit.id, "yaml")

    def test_write_file(self, engine: CommitEngine, commit: Commit, tmp_path: Path) -> None:
        """Exports are written as commit-<short id>.<ext>."""
        path = write_commit_export(engine, commit.id, "sql", tmp_path / "out")

        assert path.name == f"commit-{commit.short_id}.sql"
        assert path.read_text(encoding="utf-8") == export_commit_sql(engine, commit.id) + "\n"
