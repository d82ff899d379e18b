"""Pytest configuration and shared fixtures."""

from __future__ import annotations

from pathlib import Path

import pytest

from rzmanager.staging import (
    CommitEngine,
    InMemoryStagingStore,
    SimulatedConnection,
    StagingArea,
    WorkspaceContext,
)
from rzmanager.tracking import EdgeRecord, EntityGraph, EntityTracker, NodeRecord


@pytest.fixture(autouse=True)
def clear_rz_env(monkeypatch: pytest.MonkeyPatch) -> None:
    """Keep RZ_* overrides from the developer's shell out of test runs."""
    for name in ("RZ_AUTHOR", "RZ_APPLY_TIMEOUT", "RZ_DB_PATH", "RZ_PROJECT"):
        monkeypatch.delenv(name, raising=False)


@pytest.fixture
def project_root() -> Path:
    """Return the project root directory."""
    return Path(__file__).parent.parent


@pytest.fixture
def workspace() -> WorkspaceContext:
    return WorkspaceContext(workspace_id="ws-1", profile_id="dev")


@pytest.fixture
def store() -> InMemoryStagingStore:
    return InMemoryStagingStore()


@pytest.fixture
def tracker() -> EntityTracker:
    return EntityTracker()


@pytest.fixture
def area(store: InMemoryStagingStore, tracker: EntityTracker) -> StagingArea:
    return StagingArea(store, tracker)


@pytest.fixture
def connection() -> SimulatedConnection:
    return SimulatedConnection()


@pytest.fixture
def engine(area: StagingArea, connection: SimulatedConnection) -> CommitEngine:
    return CommitEngine(area, connection)


@pytest.fixture
def npc_graph() -> EntityGraph:
    """A two-node NPC graph: stats linked to a drop table."""
    return EntityGraph(
        nodes=[
            NodeRecord(
                id="stats",
                values={"name": "Guard", "hp": 100, "level": 5},
                label="Stats",
                category="core",
            ),
            NodeRecord(
                id="drops",
                values={"item_ids": [1, 2, 3], "rate": 0.25},
                label="Drops",
                category="loot",
            ),
        ],
        edges=[
            EdgeRecord(
                id="e1",
                source="stats",
                target="drops",
                source_handle="out",
                target_handle="in",
            )
        ],
    )
