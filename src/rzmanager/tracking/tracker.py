"""Per-entity change tracking for open editor entities.

The tracker holds the live graph of every open entity next to its baseline
snapshot and answers "what changed" for the local-changes view. It also owns
the transient "staged" flag: marking an entity for staging persists nothing;
the Staging Area materializes flagged entities into StagedChange records.
"""

from __future__ import annotations

from dataclasses import dataclass

from rzmanager.errors import NotFoundError, OperationResult
from rzmanager.observability.logging import get_logger
from rzmanager.tracking.diff import ChangesSummary, ChangeType, EdgeChange, FieldChange
from rzmanager.tracking.diff import compute_changes as diff_graphs
from rzmanager.tracking.models import EntityGraph, EntityType
from rzmanager.tracking.snapshots import Snapshot, SnapshotStore, as_edges, as_nodes
from rzmanager.tracking.snapshots import revert_field as revert_snapshot_field
from rzmanager.tracking.values import copy_value

log = get_logger(__name__)


@dataclass(frozen=True)
class EntityDiff:
    """Entity-level view of the changes since the baseline.

    Added and removed nodes are expanded into one field diff per value, so
    the view of a new node lists every field it introduces.
    """

    entity_id: str
    entity_name: str
    field_diffs: tuple[FieldChange, ...] = ()
    connection_diffs: tuple[EdgeChange, ...] = ()
    is_new: bool = False

    @property
    def has_changes(self) -> bool:
        return bool(self.field_diffs or self.connection_diffs)


@dataclass(frozen=True)
class TrackedEntity:
    """An open entity with its modification and staging state."""

    entity_id: str
    entity_name: str
    entity_type: EntityType | None
    diff: EntityDiff | None
    is_staged: bool
    is_new: bool

    @property
    def is_modified(self) -> bool:
        return self.diff is not None and self.diff.has_changes


@dataclass
class _OpenEntity:
    entity_id: str
    entity_name: str
    entity_type: EntityType | None
    graph: EntityGraph


def _detach(graph: EntityGraph) -> EntityGraph:
    return EntityGraph(nodes=as_nodes(graph.nodes), edges=as_edges(graph.edges))


def entity_diff_from_changes(
    entity_id: str,
    entity_name: str,
    snapshot: Snapshot,
    current: EntityGraph,
    changes: ChangesSummary,
) -> EntityDiff:
    """Expand a ChangesSummary into the entity-level EntityDiff shape."""
    field_diffs: list[FieldChange] = []
    for nc in changes.node_changes:
        added = nc.change_type is ChangeType.ADDED
        node = current.node(nc.node_id) if added else snapshot.node(nc.node_id)
        if node is None:
            continue
        for key, value in node.values.items():
            field_diffs.append(
                FieldChange(
                    node_id=node.id,
                    field_name=key,
                    change_type=nc.change_type,
                    old_value=None if added else copy_value(value),
                    new_value=copy_value(value) if added else None,
                    node_label=node.label,
                    node_category=node.category,
                )
            )
    field_diffs.extend(changes.field_changes)
    return EntityDiff(
        entity_id=entity_id,
        entity_name=entity_name,
        field_diffs=tuple(field_diffs),
        connection_diffs=changes.edge_changes,
        is_new=not snapshot.nodes,
    )


class EntityTracker:
    """Tracks live graphs of open entities against their baselines.

    Construct one per editor session and pass it by reference.
    """

    def __init__(self, snapshots: SnapshotStore | None = None) -> None:
        self.snapshots = snapshots or SnapshotStore()
        self._open: dict[str, _OpenEntity] = {}
        self._staged: dict[str, None] = {}

    # -- Lifecycle -------------------------------------------------------------

    def open_entity(
        self,
        entity_id: str,
        entity_name: str,
        graph: EntityGraph,
        entity_type: EntityType | None = None,
    ) -> Snapshot:
        """Start tracking an entity.

        A baseline is captured only on first observation; reopening an
        entity keeps its existing baseline. A brand-new entity should be
        opened with an empty graph so that everything it gains is an addition.

        Returns:
            The entity's baseline snapshot.
        """
        snapshot = self.snapshots.get(entity_id)
        if snapshot is None:
            snapshot = self.snapshots.save(entity_id, entity_name, graph)
        self._open[entity_id] = _OpenEntity(entity_id, entity_name, entity_type, _detach(graph))
        log.debug("entity_opened", entity_id=entity_id, entity_type=entity_type)
        return snapshot

    def update_current_state(self, entity_id: str, graph: EntityGraph) -> OperationResult[None]:
        """Record the editor's latest graph for an open entity."""
        entity = self._open.get(entity_id)
        if entity is None:
            return OperationResult.failure(self._not_found(entity_id))
        entity.graph = _detach(graph)
        return OperationResult.success()

    def close_entity(self, entity_id: str) -> bool:
        """Stop tracking an entity. Its baseline is kept for reopening."""
        self._staged.pop(entity_id, None)
        return self._open.pop(entity_id, None) is not None

    def accept_baseline(self, entity_id: str) -> OperationResult[Snapshot]:
        """Replace the entity's baseline with its current state.

        This is the only way to clear modification status.
        """
        entity = self._open.get(entity_id)
        if entity is None:
            return OperationResult.failure(self._not_found(entity_id))
        snapshot = self.snapshots.save(entity_id, entity.entity_name, entity.graph)
        log.info("baseline_accepted", entity_id=entity_id)
        return OperationResult.success(snapshot)

    # -- Queries ---------------------------------------------------------------

    def is_open(self, entity_id: str) -> bool:
        return entity_id in self._open

    def current_graph(self, entity_id: str) -> EntityGraph | None:
        entity = self._open.get(entity_id)
        return _detach(entity.graph) if entity is not None else None

    def entity_type(self, entity_id: str) -> EntityType | None:
        entity = self._open.get(entity_id)
        return entity.entity_type if entity is not None else None

    def entity_name(self, entity_id: str) -> str | None:
        entity = self._open.get(entity_id)
        return entity.entity_name if entity is not None else None

    def compute_changes(self, entity_id: str) -> OperationResult[ChangesSummary]:
        """Diff an open entity's live graph against its baseline."""
        entity = self._open.get(entity_id)
        snapshot = self.snapshots.get(entity_id)
        if entity is None or snapshot is None:
            return OperationResult.failure(self._not_found(entity_id))
        changes = diff_graphs(snapshot, entity.graph.nodes, entity.graph.edges)
        return OperationResult.success(changes)

    def compute_diff(self, entity_id: str) -> OperationResult[EntityDiff]:
        """Entity-level diff for an open entity."""
        entity = self._open.get(entity_id)
        snapshot = self.snapshots.get(entity_id)
        if entity is None or snapshot is None:
            return OperationResult.failure(self._not_found(entity_id))
        changes = diff_graphs(snapshot, entity.graph.nodes, entity.graph.edges)
        return OperationResult.success(
            entity_diff_from_changes(entity_id, entity.entity_name, snapshot, entity.graph, changes)
        )

    def is_entity_modified(self, entity_id: str) -> bool:
        result = self.compute_diff(entity_id)
        return result.ok and result.value is not None and result.value.has_changes

    def tracked_entities(self) -> list[TrackedEntity]:
        """All open entities with their diff and staging state."""
        result: list[TrackedEntity] = []
        for entity_id, entity in self._open.items():
            diff = self.compute_diff(entity_id).value
            result.append(
                TrackedEntity(
                    entity_id=entity_id,
                    entity_name=entity.entity_name,
                    entity_type=entity.entity_type,
                    diff=diff,
                    is_staged=entity_id in self._staged,
                    is_new=diff.is_new if diff is not None else True,
                )
            )
        return result

    def modified_count(self) -> int:
        return sum(1 for entity_id in self._open if self.is_entity_modified(entity_id))

    # -- Staging flag ----------------------------------------------------------

    def stage_entity(self, entity_id: str) -> OperationResult[None]:
        """Mark an open entity for staging. The diff is not touched."""
        if entity_id not in self._open:
            return OperationResult.failure(self._not_found(entity_id))
        self._staged.setdefault(entity_id)
        return OperationResult.success()

    def unstage_entity(self, entity_id: str) -> OperationResult[None]:
        """Clear the staging mark. Unmarked entities are a no-op."""
        if entity_id not in self._open:
            return OperationResult.failure(self._not_found(entity_id))
        self._staged.pop(entity_id, None)
        return OperationResult.success()

    def is_entity_staged(self, entity_id: str) -> bool:
        return entity_id in self._staged

    def staged_entity_ids(self) -> list[str]:
        return list(self._staged)

    def staged_count(self) -> int:
        return len(self._staged)

    # -- Revert ----------------------------------------------------------------

    def revert_to_snapshot(self, entity_id: str) -> OperationResult[EntityGraph]:
        """Discard live edits: restore the baseline and clear the staging mark.

        Returns:
            The restored graph for the editor to load.
        """
        entity = self._open.get(entity_id)
        if entity is None:
            return OperationResult.failure(self._not_found(entity_id))
        result = self.snapshots.revert_to_snapshot(entity_id)
        if not result.ok or result.value is None:
            return result
        entity.graph = result.value
        self._staged.pop(entity_id, None)
        log.info("entity_reverted", entity_id=entity_id)
        return OperationResult.success(_detach(result.value))

    def revert_field(
        self, entity_id: str, node_id: str, field_name: str
    ) -> OperationResult[EntityGraph]:
        """Restore one field of one node to its baseline value."""
        entity = self._open.get(entity_id)
        snapshot = self.snapshots.get(entity_id)
        if entity is None or snapshot is None:
            return OperationResult.failure(self._not_found(entity_id))
        nodes = revert_snapshot_field(snapshot, entity.graph.nodes, node_id, field_name)
        entity.graph = EntityGraph(nodes=nodes, edges=entity.graph.edges)
        return OperationResult.success(_detach(entity.graph))

    def _not_found(self, entity_id: str) -> NotFoundError:
        return NotFoundError("entity", entity_id, list(self._open))
