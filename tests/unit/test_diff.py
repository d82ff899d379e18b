"""Tests for the structural diff engine."""

from __future__ import annotations

from rzmanager.tracking.diff import (
    ChangeType,
    compute_changes,
    diff_node_values,
)
from rzmanager.tracking.models import EdgeRecord, EntityGraph, NodeRecord
from rzmanager.tracking.snapshots import create_snapshot, revert_all


def _with(graph: EntityGraph, node_id: str, **values: object) -> list[NodeRecord]:
    return [
        n.with_values({**n.values, **values}) if n.id == node_id else n for n in graph.nodes
    ]


class TestFieldChanges:
    """Test field-level differences on nodes present in both graphs."""

    def test_modified_hp(self) -> None:
        """hp 100 -> 150 yields exactly one modified field change."""
        snapshot = create_snapshot([NodeRecord(id="n1", values={"hp": 100})], [])

        changes = compute_changes(snapshot, [NodeRecord(id="n1", values={"hp": 150})], [])

        assert len(changes.field_changes) == 1
        fc = changes.field_changes[0]
        assert fc.node_id == "n1"
        assert fc.field_name == "hp"
        assert fc.change_type is ChangeType.MODIFIED
        assert fc.old_value == 100
        assert fc.new_value == 150
        assert changes.node_changes == ()
        assert changes.edge_changes == ()

    def test_added_and_removed_fields(self) -> None:
        """Keys only in one side are added or removed fields."""
        base = NodeRecord(id="n", values={"a": 1, "b": 2})
        current = NodeRecord(id="n", values={"a": 1, "c": 3})

        changes = diff_node_values(base, current)

        assert [(c.field_name, c.change_type) for c in changes] == [
            ("b", ChangeType.REMOVED),
            ("c", ChangeType.ADDED),
        ]
        removed, added = changes
        assert removed.has_old_value
        assert not removed.has_new_value
        assert added.has_new_value
        assert not added.has_old_value

    def test_none_is_a_value(self) -> None:
        """Setting a field to None is a modification, not a removal."""
        base = NodeRecord(id="n", values={"a": 1})
        current = NodeRecord(id="n", values={"a": None})

        (change,) = diff_node_values(base, current)

        assert change.change_type is ChangeType.MODIFIED
        assert change.has_new_value
        assert change.new_value is None

    def test_numeric_equivalence_is_not_a_change(self) -> None:
        """100 and 100.0 compare equal; True and 1 do not."""
        base = NodeRecord(id="n", values={"hp": 100, "flag": 1})
        current = NodeRecord(id="n", values={"hp": 100.0, "flag": True})

        changes = diff_node_values(base, current)

        assert [c.field_name for c in changes] == ["flag"]

    def test_list_change_detected(self) -> None:
        """Lists are compared deeply."""
        base = NodeRecord(id="n", values={"ids": [1, 2]})
        current = NodeRecord(id="n", values={"ids": [1, 2, 3]})

        (change,) = diff_node_values(base, current)

        assert change.old_value == [1, 2]
        assert change.new_value == [1, 2, 3]

    def test_metadata_only_change_ignored(self) -> None:
        """Label, category and position are not part of the diff."""
        snapshot = create_snapshot([NodeRecord(id="n", values={"a": 1}, label="A")], [])
        current = [NodeRecord(id="n", values={"a": 1}, label="B", position=(5.0, 5.0))]

        assert not compute_changes(snapshot, current, []).has_changes

    def test_field_change_carries_node_metadata(self, npc_graph: EntityGraph) -> None:
        """Field changes cache the node's label and category."""
        snapshot = create_snapshot(npc_graph.nodes, npc_graph.edges)

        changes = compute_changes(snapshot, _with(npc_graph, "stats", hp=1), npc_graph.edges)

        (fc,) = changes.field_changes
        assert fc.node_label == "Stats"
        assert fc.node_category == "core"


class TestNodeChanges:
    """Test whole-node additions and removals."""

    def test_removed_node(self) -> None:
        """A node missing from the current graph is one removal and no field changes."""
        snapshot = create_snapshot(
            [NodeRecord(id="n1", values={"hp": 1}), NodeRecord(id="n2", values={"x": 1})], []
        )

        changes = compute_changes(snapshot, [NodeRecord(id="n1", values={"hp": 1})], [])

        assert len(changes.node_changes) == 1
        nc = changes.node_changes[0]
        assert nc.node_id == "n2"
        assert nc.change_type is ChangeType.REMOVED
        assert not [fc for fc in changes.field_changes if fc.node_id == "n2"]

    def test_added_node(self) -> None:
        """A node only in the current graph is one addition."""
        snapshot = create_snapshot([], [])

        changes = compute_changes(snapshot, [{"id": "n1", "values": {"hp": 1}}], [])

        (nc,) = changes.node_changes
        assert nc.node_id == "n1"
        assert nc.change_type is ChangeType.ADDED
        assert changes.field_changes == ()

    def test_added_before_removed(self) -> None:
        """Added nodes are listed before removed nodes."""
        snapshot = create_snapshot([NodeRecord(id="old")], [])

        changes = compute_changes(snapshot, [NodeRecord(id="new")], [])

        assert [(c.node_id, c.change_type) for c in changes.node_changes] == [
            ("new", ChangeType.ADDED),
            ("old", ChangeType.REMOVED),
        ]


class TestEdgeChanges:
    """Test connection differences."""

    def test_new_connection(self, npc_graph: EntityGraph) -> None:
        """A new connection is an added edge."""
        snapshot = create_snapshot(npc_graph.nodes, npc_graph.edges)
        edges = [*npc_graph.edges, EdgeRecord(id="e2", source="drops", target="stats")]

        changes = compute_changes(snapshot, npc_graph.nodes, edges)

        (ec,) = changes.edge_changes
        assert ec.edge_id == "e2"
        assert ec.change_type is ChangeType.ADDED

    def test_rewired_connection_is_remove_and_add(self, npc_graph: EntityGraph) -> None:
        """Changing a handle removes the old edge and adds a new one."""
        snapshot = create_snapshot(npc_graph.nodes, npc_graph.edges)
        edges = [EdgeRecord(id="e1", source="stats", target="drops", source_handle="alt")]

        changes = compute_changes(snapshot, npc_graph.nodes, edges)

        assert [c.change_type for c in changes.edge_changes] == [
            ChangeType.ADDED,
            ChangeType.REMOVED,
        ]

    def test_edge_id_change_alone_is_not_a_change(self, npc_graph: EntityGraph) -> None:
        """Edges are identified by their endpoints, not their id."""
        snapshot = create_snapshot(npc_graph.nodes, npc_graph.edges)
        edges = [e.model_copy(update={"id": "regenerated"}) for e in npc_graph.edges]

        assert not compute_changes(snapshot, npc_graph.nodes, edges).has_changes


class TestDiffProperties:
    """Test idempotence and the revert round-trip."""

    def test_idempotent(self, npc_graph: EntityGraph) -> None:
        """Computing twice on unchanged inputs gives equal summaries."""
        snapshot = create_snapshot(npc_graph.nodes, npc_graph.edges)
        nodes = _with(npc_graph, "stats", hp=1, mana=3)

        first = compute_changes(snapshot, nodes, [])
        second = compute_changes(snapshot, nodes, [])

        assert first == second
        assert first.total_changes == 3

    def test_always_against_baseline(self, npc_graph: EntityGraph) -> None:
        """Successive edits are not cumulative; only the final state matters."""
        snapshot = create_snapshot(npc_graph.nodes, npc_graph.edges)
        compute_changes(snapshot, _with(npc_graph, "stats", hp=1), npc_graph.edges)

        changes = compute_changes(snapshot, _with(npc_graph, "stats", hp=100), npc_graph.edges)

        assert not changes.has_changes

    def test_revert_all_round_trip(self, npc_graph: EntityGraph) -> None:
        """Reverting everything leaves no changes."""
        snapshot = create_snapshot(npc_graph.nodes, npc_graph.edges)
        nodes = [*_with(npc_graph, "stats", hp=1), NodeRecord(id="extra", values={"x": 1})]

        restored = revert_all(snapshot, nodes)

        assert not compute_changes(snapshot, restored.nodes, restored.edges).has_changes
