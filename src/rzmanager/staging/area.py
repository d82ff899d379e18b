"""Staging Area: turns tracked edits into committable StagedChange records.

Staging is two-phase. Marking an entity (``stage_entity``) only sets a
transient flag on the tracker. Materializing (``stage_change`` or
``materialize_staged``) creates the immutable StagedChange, with its SQL
generated right then so the preview and the executed statement are the same
text.

A change is a draft while no live (Pending or Applied) commit references
it. Draft status is derived from the commit log, never stored on the record.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from rzmanager.errors import NotFoundError, OperationResult, ValidationError
from rzmanager.observability.logging import get_logger
from rzmanager.staging.models import CommitStatus, OperationType, StagedChange
from rzmanager.staging.sql import generate_sql
from rzmanager.staging.store import atomic
from rzmanager.tracking.tracker import EntityTracker
from rzmanager.tracking.values import normalize_values

if TYPE_CHECKING:
    from collections.abc import Iterable, Mapping

    from rzmanager.staging.models import WorkspaceContext
    from rzmanager.staging.store import StagingStore
    from rzmanager.tracking.models import EntityGraph, EntityType

log = get_logger(__name__)

_LIVE_STATUSES = (CommitStatus.PENDING, CommitStatus.APPLIED)


def graph_to_row(graph: EntityGraph) -> dict[str, Any]:
    """Flatten an entity graph into one row.

    The row is the union of all node values in node order; on a key
    collision the earlier node wins.
    """
    row: dict[str, Any] = {}
    for node in graph.nodes:
        for key, value in node.values.items():
            row.setdefault(key, value)
    return row


def group_by_entity_type(
    changes: Iterable[StagedChange],
) -> dict[EntityType, list[StagedChange]]:
    """Group changes by entity type, keeping first-seen type order."""
    groups: dict[EntityType, list[StagedChange]] = {}
    for change in changes:
        groups.setdefault(change.entity_type, []).append(change)
    return groups


class StagingArea:
    """Materializes and manages draft changes for a workspace.

    Args:
        store: Backend holding changes and commits.
        tracker: Entity tracker owning the staging flags.
        tables: Optional entity type -> table overrides for SQL generation.
    """

    def __init__(
        self,
        store: StagingStore,
        tracker: EntityTracker | None = None,
        tables: Mapping[EntityType, str] | None = None,
    ) -> None:
        self.store = store
        self.tracker = tracker or EntityTracker()
        self.tables = dict(tables) if tables else None

    # -- Staging flag ----------------------------------------------------------

    def stage_entity(self, entity_id: str) -> OperationResult[None]:
        """Mark an entity for staging. Persists nothing."""
        return self.tracker.stage_entity(entity_id)

    def unstage_entity(self, entity_id: str) -> OperationResult[None]:
        """Clear an entity's staging mark."""
        return self.tracker.unstage_entity(entity_id)

    # -- Materialization -------------------------------------------------------

    def stage_change(
        self,
        workspace: WorkspaceContext,
        entity_type: EntityType,
        entity_id: str | int,
        entity_name: str,
        operation_type: OperationType,
        previous_snapshot: Mapping[str, Any] | None = None,
        new_snapshot: Mapping[str, Any] | None = None,
    ) -> StagedChange:
        """Create a draft StagedChange with its SQL generated eagerly.

        Raises:
            ValidationError: If the snapshots required by the operation are
                missing (Create needs new, Delete needs previous, Update
                needs both), or a required snapshot has no columns.
        """
        if operation_type is OperationType.CREATE and new_snapshot is None:
            raise ValidationError("Create requires a new snapshot")
        if operation_type is OperationType.DELETE and previous_snapshot is None:
            raise ValidationError("Delete requires a previous snapshot")
        if operation_type is OperationType.UPDATE and (
            previous_snapshot is None or new_snapshot is None
        ):
            raise ValidationError("Update requires previous and new snapshots")
        # An empty row would project to no SQL and could not be inverted.
        required = {
            OperationType.CREATE: (new_snapshot,),
            OperationType.UPDATE: (previous_snapshot, new_snapshot),
            OperationType.DELETE: (previous_snapshot,),
        }[operation_type]
        if not all(required):
            raise ValidationError(
                f"{operation_type} of {entity_type} '{entity_id}' has an empty row snapshot"
            )

        previous = normalize_values(previous_snapshot) if previous_snapshot is not None else None
        new = normalize_values(new_snapshot) if new_snapshot is not None else None
        sql = generate_sql(
            entity_type, operation_type, str(entity_id), previous, new, tables=self.tables
        )
        change = StagedChange(
            workspace_id=workspace.workspace_id,
            profile_id=workspace.profile_id,
            entity_type=entity_type,
            entity_id=entity_id,
            entity_name=entity_name,
            operation_type=operation_type,
            previous_snapshot=previous,
            new_snapshot=new,
            generated_sql=sql,
        )
        self.store.put_change(change)
        log.info(
            "change_staged",
            change_id=change.id,
            entity_type=str(entity_type),
            entity_id=change.entity_id,
            operation=str(operation_type),
        )
        return change

    def materialize_staged(self, workspace: WorkspaceContext) -> list[StagedChange]:
        """Materialize every marked entity that has changes.

        Each entity is staged with ``stage_graphs`` against its baseline.
        Materialized entities are unmarked; marked entities without changes
        stay marked.

        Raises:
            ValidationError: If a marked entity has no entity type or would
                stage an empty row. Nothing is materialized in that case.
        """
        pending: list[tuple[str, EntityType, EntityGraph, EntityGraph]] = []
        for entity_id in self.tracker.staged_entity_ids():
            if not self.tracker.is_entity_modified(entity_id):
                log.debug("staged_entity_unchanged", entity_id=entity_id)
                continue
            entity_type = self.tracker.entity_type(entity_id)
            if entity_type is None:
                raise ValidationError(f"Entity '{entity_id}' has no entity type")
            snapshot = self.tracker.snapshots.get(entity_id)
            current = self.tracker.current_graph(entity_id)
            if snapshot is None or current is None:
                continue
            pending.append((entity_id, entity_type, snapshot.graph, current))

        staged: list[StagedChange] = []
        with atomic(self.store, "materialize_staged"):
            for entity_id, entity_type, baseline, current in pending:
                name = self.tracker.entity_name(entity_id) or entity_id
                staged.append(
                    self.stage_graphs(workspace, entity_type, entity_id, name, baseline, current)
                )
        for entity_id, *_ in pending:
            self.tracker.unstage_entity(entity_id)
        return staged

    def stage_graphs(
        self,
        workspace: WorkspaceContext,
        entity_type: EntityType,
        entity_id: str | int,
        entity_name: str,
        baseline: EntityGraph,
        current: EntityGraph,
    ) -> StagedChange:
        """Stage the row-level change between two graphs of one entity.

        Create is used when the baseline has no nodes, Delete when the
        current graph has no nodes, Update otherwise. Each graph is
        flattened with ``graph_to_row``.

        Raises:
            ValidationError: If both graphs are empty.
        """
        if not baseline.nodes and not current.nodes:
            raise ValidationError(f"Entity '{entity_id}' has no nodes to stage")
        if not baseline.nodes:
            operation = OperationType.CREATE
        elif not current.nodes:
            operation = OperationType.DELETE
        else:
            operation = OperationType.UPDATE
        return self.stage_change(
            workspace,
            entity_type,
            entity_id,
            entity_name,
            operation,
            graph_to_row(baseline) if baseline.nodes else None,
            graph_to_row(current) if current.nodes else None,
        )

    # -- Queries ---------------------------------------------------------------

    def owned_change_ids(self) -> set[str]:
        """Ids of changes referenced by a Pending or Applied commit."""
        owned: set[str] = set()
        for commit in self.store.all_commits():
            if commit.status in _LIVE_STATUSES:
                owned.update(commit.change_ids)
        return owned

    def is_draft(self, change_id: str) -> bool:
        if self.store.get_change(change_id) is None:
            return False
        return change_id not in self.owned_change_ids()

    def get_staged_change(self, change_id: str) -> OperationResult[StagedChange]:
        change = self.store.get_change(change_id)
        if change is None:
            return OperationResult.failure(self._not_found(change_id))
        return OperationResult.success(change)

    def get_draft_changes(self, workspace_id: str) -> list[StagedChange]:
        """All not-yet-committed changes of a workspace, in staging order."""
        owned = self.owned_change_ids()
        return [
            c
            for c in self.store.all_changes()
            if c.workspace_id == workspace_id and c.id not in owned
        ]

    def get_draft_changes_by_type(
        self, workspace_id: str
    ) -> dict[EntityType, list[StagedChange]]:
        return group_by_entity_type(self.get_draft_changes(workspace_id))

    # -- Deletion --------------------------------------------------------------

    def delete_staged_change(self, change_id: str) -> OperationResult[None]:
        """Delete a draft change outright.

        This cannot be undone; the entity's own revert-to-snapshot is the
        only way back. Changes owned by a commit are rejected.
        """
        if self.store.get_change(change_id) is None:
            return OperationResult.failure(self._not_found(change_id))
        if change_id in self.owned_change_ids():
            return OperationResult.failure(
                ValidationError(f"Change '{change_id}' belongs to a commit and is not a draft")
            )
        self.store.delete_change(change_id)
        log.info("change_deleted", change_id=change_id)
        return OperationResult.success()

    def _not_found(self, change_id: str) -> NotFoundError:
        return NotFoundError("change", change_id, [c.id for c in self.store.all_changes()])
