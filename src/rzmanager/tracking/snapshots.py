"""Baseline snapshots for entity graphs.

A snapshot is the last-accepted value of an entity graph and the reference
point for every diff. Snapshots are immutable deep copies: they are created
on first observation of an entity and replaced wholesale when the user
accepts the current state. There is no partial baseline update.

The revert helpers read the snapshot and return new live values; they never
modify the snapshot or their inputs.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import TYPE_CHECKING, Any, Protocol, runtime_checkable

from rzmanager.errors import NotFoundError, OperationResult
from rzmanager.observability.logging import get_logger
from rzmanager.tracking.models import EdgeRecord, EntityGraph, NodeRecord

if TYPE_CHECKING:
    from collections.abc import Iterable

log = get_logger(__name__)


@dataclass(frozen=True)
class Snapshot:
    """Immutable baseline of one entity graph.

    Attributes:
        graph: Deep copy of the graph at the time the snapshot was taken.
        taken_at: When the snapshot was taken (UTC).
        entity_id: Entity the snapshot belongs to, if stored.
        entity_name: Display name of the entity, if stored.
    """

    graph: EntityGraph
    taken_at: datetime = field(default_factory=lambda: datetime.now(UTC))
    entity_id: str = ""
    entity_name: str = ""

    @property
    def nodes(self) -> list[NodeRecord]:
        return self.graph.nodes

    @property
    def edges(self) -> list[EdgeRecord]:
        return self.graph.edges

    def node(self, node_id: str) -> NodeRecord | None:
        return self.graph.node(node_id)


def as_nodes(nodes: Iterable[NodeRecord | dict[str, Any]]) -> list[NodeRecord]:
    """Coerce editor nodes into detached NodeRecord copies."""
    return [
        n.model_copy(deep=True) if isinstance(n, NodeRecord) else NodeRecord.model_validate(n)
        for n in nodes
    ]


def as_edges(edges: Iterable[EdgeRecord | dict[str, Any]]) -> list[EdgeRecord]:
    """Coerce editor edges into detached EdgeRecord copies."""
    return [
        e.model_copy(deep=True) if isinstance(e, EdgeRecord) else EdgeRecord.model_validate(e)
        for e in edges
    ]


def create_snapshot(
    nodes: Iterable[NodeRecord | dict[str, Any]],
    edges: Iterable[EdgeRecord | dict[str, Any]],
    *,
    entity_id: str = "",
    entity_name: str = "",
) -> Snapshot:
    """Capture a baseline from the live graph.

    The input is deep-copied, so later edits to the live graph cannot
    alias into the snapshot.

    Args:
        nodes: Current nodes (records or editor dicts).
        edges: Current edges (records or editor dicts).
        entity_id: Owning entity, recorded on the snapshot.
        entity_name: Display name, recorded on the snapshot.

    Returns:
        A new immutable Snapshot.
    """
    graph = EntityGraph(nodes=as_nodes(nodes), edges=as_edges(edges))
    return Snapshot(graph=graph, entity_id=entity_id, entity_name=entity_name)


def revert_field(
    snapshot: Snapshot,
    nodes: Iterable[NodeRecord],
    node_id: str,
    field_name: str,
) -> list[NodeRecord]:
    """Restore one field of one node to its baseline value.

    If the field did not exist in the baseline it is removed from the live
    node. Nodes other than *node_id* and other fields are left untouched.
    If the node is not in the baseline the input is returned unchanged.

    Returns:
        New list of nodes.
    """
    nodes = list(nodes)
    baseline = snapshot.node(node_id)
    if baseline is None:
        return nodes

    result: list[NodeRecord] = []
    for node in nodes:
        if node.id != node_id:
            result.append(node)
            continue
        values = dict(node.values)
        if field_name in baseline.values:
            values[field_name] = baseline.values[field_name]
        else:
            values.pop(field_name, None)
        result.append(node.with_values(values))
    return result


def revert_all(
    snapshot: Snapshot,
    nodes: Iterable[NodeRecord],
    edges: Iterable[EdgeRecord] | None = None,  # noqa: ARG001
) -> EntityGraph:
    """Restore the whole graph to its baseline.

    Display metadata absent from the baseline (label, category, position)
    is carried over from the live node with the same id.

    Args:
        snapshot: Baseline to restore.
        nodes: Live nodes, consulted only for display metadata.
        edges: Live edges. Accepted so callers can pass the whole live
            graph; they are never consulted, the baseline's edges always win.

    Returns:
        A new EntityGraph equal to the baseline.
    """
    current = {node.id: node for node in nodes}
    restored: list[NodeRecord] = []
    for base in snapshot.nodes:
        node = base.model_copy(deep=True)
        live = current.get(base.id)
        if live is not None:
            updates = {
                attr: getattr(live, attr)
                for attr in ("label", "category", "position")
                if getattr(node, attr) is None and getattr(live, attr) is not None
            }
            if updates:
                node = node.model_copy(update=updates)
        restored.append(node)
    return EntityGraph(nodes=restored, edges=as_edges(snapshot.edges))


# ---------------------------------------------------------------------------
# Store
# ---------------------------------------------------------------------------


@runtime_checkable
class SnapshotBackend(Protocol):
    """Storage backend protocol for snapshots."""

    def get(self, entity_id: str) -> Snapshot | None:
        """Get the snapshot for an entity, or None."""
        ...

    def put(self, entity_id: str, snapshot: Snapshot) -> None:
        """Store (replace) the snapshot for an entity."""
        ...

    def delete(self, entity_id: str) -> bool:
        """Delete a snapshot. Return True if one existed."""
        ...

    def entity_ids(self) -> list[str]:
        """Return ids of all entities with a snapshot."""
        ...


class DictSnapshotBackend:
    """In-memory snapshot backend."""

    def __init__(self) -> None:
        self._snapshots: dict[str, Snapshot] = {}

    def get(self, entity_id: str) -> Snapshot | None:
        return self._snapshots.get(entity_id)

    def put(self, entity_id: str, snapshot: Snapshot) -> None:
        self._snapshots[entity_id] = snapshot

    def delete(self, entity_id: str) -> bool:
        return self._snapshots.pop(entity_id, None) is not None

    def entity_ids(self) -> list[str]:
        return list(self._snapshots)


class SnapshotStore:
    """Per-entity baselines over an injected backend.

    Construct one per process (or per test) and pass it by reference.
    """

    def __init__(self, backend: SnapshotBackend | None = None) -> None:
        self._backend: SnapshotBackend = backend or DictSnapshotBackend()

    def save(self, entity_id: str, entity_name: str, graph: EntityGraph) -> Snapshot:
        """Capture *graph* as the new baseline for an entity, replacing any previous one."""
        snapshot = create_snapshot(
            graph.nodes, graph.edges, entity_id=entity_id, entity_name=entity_name
        )
        self._backend.put(entity_id, snapshot)
        log.debug(
            "snapshot_saved",
            entity_id=entity_id,
            nodes=len(snapshot.nodes),
            edges=len(snapshot.edges),
        )
        return snapshot

    def get(self, entity_id: str) -> Snapshot | None:
        return self._backend.get(entity_id)

    def has(self, entity_id: str) -> bool:
        return self._backend.get(entity_id) is not None

    def delete(self, entity_id: str) -> bool:
        return self._backend.delete(entity_id)

    def entity_ids(self) -> list[str]:
        return self._backend.entity_ids()

    def revert_to_snapshot(self, entity_id: str) -> OperationResult[EntityGraph]:
        """Return a fresh copy of the baseline graph for an entity.

        Returns:
            Success carrying the restored graph, or a failure carrying a
            NotFoundError if the entity has no snapshot.
        """
        snapshot = self._backend.get(entity_id)
        if snapshot is None:
            return OperationResult.failure(
                NotFoundError("snapshot", entity_id, self._backend.entity_ids())
            )
        restored = EntityGraph(nodes=as_nodes(snapshot.nodes), edges=as_edges(snapshot.edges))
        return OperationResult.success(restored)
