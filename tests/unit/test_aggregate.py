"""Tests for per-node change grouping."""

from __future__ import annotations

from rzmanager.tracking.aggregate import (
    UNKNOWN_CATEGORY,
    get_modified_fields_for_node,
    get_modified_node_ids,
    group_changes,
)
from rzmanager.tracking.diff import (
    ChangesSummary,
    ChangeType,
    FieldChange,
    NodeChange,
    compute_changes,
)
from rzmanager.tracking.models import EntityGraph, NodeRecord
from rzmanager.tracking.snapshots import create_snapshot


def _summary() -> ChangesSummary:
    return ChangesSummary(
        field_changes=(
            FieldChange("stats", "hp", ChangeType.MODIFIED, 1, 2, "Stats", "core"),
            FieldChange("stats", "mana", ChangeType.ADDED, None, 5, "Stats", "core"),
            FieldChange("bare", "x", ChangeType.REMOVED, 1, None),
        ),
        node_changes=(NodeChange("loot", ChangeType.ADDED, node_label="Loot"),),
    )


class TestGroupChanges:
    """Test group_changes."""

    def test_one_group_per_node(self) -> None:
        """Groups are ordered by first touch, node changes first."""
        groups = group_changes(_summary())
        assert [g.node_id for g in groups] == ["loot", "stats", "bare"]

    def test_field_changes_grouped(self) -> None:
        """Field changes of a node stay together in diff order."""
        stats = group_changes(_summary())[1]
        assert [fc.field_name for fc in stats.field_changes] == ["hp", "mana"]
        assert stats.node_change_type is None

    def test_node_change_type_recorded(self) -> None:
        """A whole-node change is carried on the group."""
        loot = group_changes(_summary())[0]
        assert loot.node_change_type is ChangeType.ADDED
        assert loot.field_changes == ()

    def test_label_fallbacks(self) -> None:
        """Labels resolve from node metadata, field metadata, then the id."""
        loot, stats, bare = group_changes(_summary())
        assert loot.node_label == "Loot"
        assert stats.node_label == "Stats"
        assert bare.node_label == "bare"

    def test_category_fallbacks(self) -> None:
        """A missing category is reported as unknown."""
        loot, stats, bare = group_changes(_summary())
        assert stats.node_category == "core"
        assert loot.node_category == UNKNOWN_CATEGORY
        assert bare.node_category == UNKNOWN_CATEGORY

    def test_empty_summary(self) -> None:
        """No changes means no groups."""
        assert group_changes(ChangesSummary()) == []

    def test_from_real_diff(self, npc_graph: EntityGraph) -> None:
        """Grouping works on compute_changes output."""
        snapshot = create_snapshot(npc_graph.nodes, npc_graph.edges)
        nodes = [
            *[
                n.with_values({**n.values, "hp": 7}) if n.id == "stats" else n
                for n in npc_graph.nodes
            ],
            NodeRecord(id="quest", label="Quest Hook"),
        ]

        groups = group_changes(compute_changes(snapshot, nodes, npc_graph.edges))

        assert {g.node_id: g.node_label for g in groups} == {
            "quest": "Quest Hook",
            "stats": "Stats",
        }


def test_get_modified_node_ids() -> None:
    """Every node touched by a node or field change is reported."""
    assert get_modified_node_ids(_summary()) == {"loot", "stats", "bare"}


def test_get_modified_fields_for_node() -> None:
    """Only fields of the requested node are returned."""
    assert get_modified_fields_for_node(_summary(), "stats") == {"hp", "mana"}
    assert get_modified_fields_for_node(_summary(), "loot") == set()
