"""Structural diff between a baseline snapshot and the live entity graph.

Diffing is always baseline-vs-current: recomputing after further edits
compares against the same unchanged snapshot, never against the previous
diff. Field values are compared with deep structural equality.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import StrEnum
from typing import TYPE_CHECKING, Any

from rzmanager.observability.logging import get_logger
from rzmanager.tracking.models import EdgeRecord, NodeRecord
from rzmanager.tracking.values import FieldValue, copy_value, values_equal

if TYPE_CHECKING:
    from collections.abc import Iterable

    from rzmanager.tracking.snapshots import Snapshot

log = get_logger(__name__)


class ChangeType(StrEnum):
    """How an element differs from the baseline."""

    ADDED = "added"
    MODIFIED = "modified"
    REMOVED = "removed"


@dataclass(frozen=True)
class FieldChange:
    """A single field that differs on a node present in both graphs.

    ``old_value`` is meaningful only when the field existed in the baseline
    and ``new_value`` only when it exists now; use ``has_old_value`` and
    ``has_new_value`` rather than testing for None, since None is a valid
    field value.
    """

    node_id: str
    field_name: str
    change_type: ChangeType
    old_value: FieldValue = None
    new_value: FieldValue = None
    node_label: str | None = None
    node_category: str | None = None

    @property
    def has_old_value(self) -> bool:
        return self.change_type is not ChangeType.ADDED

    @property
    def has_new_value(self) -> bool:
        return self.change_type is not ChangeType.REMOVED


@dataclass(frozen=True)
class NodeChange:
    """A node present in only one of the two graphs."""

    node_id: str
    change_type: ChangeType
    node_type: str = ""
    node_label: str | None = None
    node_category: str | None = None


@dataclass(frozen=True)
class EdgeChange:
    """A connection present in only one of the two graphs.

    Edges are never modified: a changed connection is a removed/added pair.
    """

    edge_id: str
    source: str
    target: str
    change_type: ChangeType
    source_handle: str | None = None
    target_handle: str | None = None


@dataclass(frozen=True)
class ChangesSummary:
    """All differences between a baseline and the live graph."""

    field_changes: tuple[FieldChange, ...] = ()
    node_changes: tuple[NodeChange, ...] = ()
    edge_changes: tuple[EdgeChange, ...] = ()

    @property
    def total_changes(self) -> int:
        return len(self.field_changes) + len(self.node_changes) + len(self.edge_changes)

    @property
    def has_changes(self) -> bool:
        return self.total_changes > 0


def _coerce_nodes(nodes: Iterable[NodeRecord | dict[str, Any]]) -> list[NodeRecord]:
    return [n if isinstance(n, NodeRecord) else NodeRecord.model_validate(n) for n in nodes]


def _coerce_edges(edges: Iterable[EdgeRecord | dict[str, Any]]) -> list[EdgeRecord]:
    return [e if isinstance(e, EdgeRecord) else EdgeRecord.model_validate(e) for e in edges]


def diff_node_values(base: NodeRecord, current: NodeRecord) -> list[FieldChange]:
    """Compare the values of one node key-by-key.

    Keys are visited baseline-first, then keys only present in *current*.
    Identical nodes produce an empty list.
    """
    changes: list[FieldChange] = []
    keys = list(base.values) + [k for k in current.values if k not in base.values]
    for key in keys:
        in_base = key in base.values
        in_current = key in current.values
        if in_base and not in_current:
            change_type = ChangeType.REMOVED
        elif in_current and not in_base:
            change_type = ChangeType.ADDED
        elif not values_equal(base.values[key], current.values[key]):
            change_type = ChangeType.MODIFIED
        else:
            continue
        changes.append(
            FieldChange(
                node_id=current.id,
                field_name=key,
                change_type=change_type,
                old_value=copy_value(base.values[key]) if in_base else None,
                new_value=copy_value(current.values[key]) if in_current else None,
                node_label=current.label or base.label,
                node_category=current.category or base.category,
            )
        )
    return changes


def compute_changes(
    snapshot: Snapshot,
    current_nodes: Iterable[NodeRecord | dict[str, Any]],
    current_edges: Iterable[EdgeRecord | dict[str, Any]],
) -> ChangesSummary:
    """Compute every node, field, and edge difference from the baseline.

    Output order is deterministic: added nodes (current order), removed
    nodes (baseline order), field changes (current node order), added
    edges, removed edges.

    Args:
        snapshot: The entity's baseline.
        current_nodes: Live nodes.
        current_edges: Live edges.

    Returns:
        The changes summary. Calling again with unchanged inputs yields an
        equal summary.
    """
    nodes = _coerce_nodes(current_nodes)
    edges = _coerce_edges(current_edges)

    base_nodes = {n.id: n for n in snapshot.nodes}
    live_nodes = {n.id: n for n in nodes}

    node_changes: list[NodeChange] = []
    for node in nodes:
        if node.id not in base_nodes:
            node_changes.append(
                NodeChange(
                    node_id=node.id,
                    change_type=ChangeType.ADDED,
                    node_type=node.type,
                    node_label=node.label,
                    node_category=node.category,
                )
            )
    for base in snapshot.nodes:
        if base.id not in live_nodes:
            node_changes.append(
                NodeChange(
                    node_id=base.id,
                    change_type=ChangeType.REMOVED,
                    node_type=base.type,
                    node_label=base.label,
                    node_category=base.category,
                )
            )

    field_changes: list[FieldChange] = []
    for node in nodes:
        base_node = base_nodes.get(node.id)
        if base_node is not None:
            field_changes.extend(diff_node_values(base_node, node))

    base_edges: dict[tuple[str, str | None, str, str | None], EdgeRecord] = {}
    for edge in snapshot.edges:
        base_edges.setdefault(edge.connection_key, edge)
    live_edges: dict[tuple[str, str | None, str, str | None], EdgeRecord] = {}
    for edge in edges:
        live_edges.setdefault(edge.connection_key, edge)

    edge_changes = [
        _edge_change(edge, ChangeType.ADDED)
        for key, edge in live_edges.items()
        if key not in base_edges
    ]
    edge_changes.extend(
        _edge_change(edge, ChangeType.REMOVED)
        for key, edge in base_edges.items()
        if key not in live_edges
    )

    summary = ChangesSummary(
        field_changes=tuple(field_changes),
        node_changes=tuple(node_changes),
        edge_changes=tuple(edge_changes),
    )
    log.debug(
        "changes_computed",
        entity_id=snapshot.entity_id or None,
        fields=len(field_changes),
        nodes=len(node_changes),
        edges=len(edge_changes),
    )
    return summary


def _edge_change(edge: EdgeRecord, change_type: ChangeType) -> EdgeChange:
    return EdgeChange(
        edge_id=edge.id,
        source=edge.source,
        target=edge.target,
        change_type=change_type,
        source_handle=edge.source_handle,
        target_handle=edge.target_handle,
    )
