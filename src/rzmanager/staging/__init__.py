"""Staging package - durable staged changes, commits, and their SQL.

The Staging Area materializes tracked edits into StagedChange records, the
Commit Engine bundles them into commits and drives the commit lifecycle,
and the SQL projection renders changes and commits as T-SQL.
"""

from rzmanager.staging.area import StagingArea, graph_to_row, group_by_entity_type
from rzmanager.staging.commits import ApplyResult, CommitEngine
from rzmanager.staging.connectivity import (
    SimulatedConnection,
    TransactionExecutor,
    TransactionOutcome,
)
from rzmanager.staging.export import (
    export_commit,
    export_commit_json,
    export_commit_sql,
    export_formats,
    write_commit_export,
)
from rzmanager.staging.models import (
    Commit,
    CommitStatus,
    OperationType,
    StagedChange,
    WorkspaceContext,
)
from rzmanager.staging.sql import change_to_sql, commit_to_sql, generate_sql
from rzmanager.staging.sqlite_store import SqliteStagingStore
from rzmanager.staging.store import InMemoryStagingStore, StagingStore, atomic

__all__ = [
    "ApplyResult",
    "Commit",
    "CommitEngine",
    "CommitStatus",
    "InMemoryStagingStore",
    "OperationType",
    "SimulatedConnection",
    "SqliteStagingStore",
    "StagedChange",
    "StagingArea",
    "StagingStore",
    "TransactionExecutor",
    "TransactionOutcome",
    "WorkspaceContext",
    "atomic",
    "change_to_sql",
    "commit_to_sql",
    "export_commit",
    "export_commit_json",
    "export_commit_sql",
    "export_formats",
    "generate_sql",
    "graph_to_row",
    "group_by_entity_type",
    "write_commit_export",
]
