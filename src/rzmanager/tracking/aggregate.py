"""Per-node grouping of a ChangesSummary for the change-summary view.

All functions here are pure projections of a ChangesSummary.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from rzmanager.tracking.diff import ChangesSummary, ChangeType, FieldChange

UNKNOWN_CATEGORY = "unknown"


@dataclass(frozen=True)
class NodeChangeGroup:
    """Every change touching one node.

    Attributes:
        node_id: The touched node.
        node_label: Display label, never blank.
        node_category: Display category, never blank.
        node_change_type: Set when the whole node was added or removed.
        field_changes: Field-level changes on the node, in diff order.
    """

    node_id: str
    node_label: str
    node_category: str
    node_change_type: ChangeType | None
    field_changes: tuple[FieldChange, ...]


def group_changes(changes: ChangesSummary) -> list[NodeChangeGroup]:
    """Merge node and field changes into one group per touched node.

    Groups are ordered by first touch (node changes first, then field
    changes). Labels resolve from node-change metadata, then the first field
    change's cached metadata, then the raw node id.
    """
    fields_by_node: dict[str, list[FieldChange]] = {}
    for fc in changes.field_changes:
        fields_by_node.setdefault(fc.node_id, []).append(fc)

    node_ids: dict[str, None] = {}
    for nc in changes.node_changes:
        node_ids.setdefault(nc.node_id)
    for fc in changes.field_changes:
        node_ids.setdefault(fc.node_id)

    node_changes = {nc.node_id: nc for nc in changes.node_changes}

    groups: list[NodeChangeGroup] = []
    for node_id in node_ids:
        node_change = node_changes.get(node_id)
        field_changes = fields_by_node.get(node_id, [])
        first = field_changes[0] if field_changes else None

        label = (
            (node_change.node_label if node_change else None)
            or (first.node_label if first else None)
            or node_id
        )
        category = (
            (node_change.node_category if node_change else None)
            or (first.node_category if first else None)
            or UNKNOWN_CATEGORY
        )
        groups.append(
            NodeChangeGroup(
                node_id=node_id,
                node_label=label,
                node_category=category,
                node_change_type=node_change.change_type if node_change else None,
                field_changes=tuple(field_changes),
            )
        )
    return groups


def get_modified_node_ids(changes: ChangesSummary) -> set[str]:
    """Ids of all nodes touched by a node or field change."""
    ids = {nc.node_id for nc in changes.node_changes}
    ids.update(fc.node_id for fc in changes.field_changes)
    return ids


def get_modified_fields_for_node(changes: ChangesSummary, node_id: str) -> set[str]:
    """Names of the fields changed on one node."""
    return {fc.field_name for fc in changes.field_changes if fc.node_id == node_id}
