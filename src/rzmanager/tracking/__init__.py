"""Tracking package - local change tracking for entity graphs.

Baseline snapshots, the structural diff engine, per-node aggregation for
the change-summary view, and the per-entity tracker. Nothing here touches
a database or produces SQL.
"""

from rzmanager.tracking.aggregate import (
    NodeChangeGroup,
    get_modified_fields_for_node,
    get_modified_node_ids,
    group_changes,
)
from rzmanager.tracking.diff import (
    ChangesSummary,
    ChangeType,
    EdgeChange,
    FieldChange,
    NodeChange,
    compute_changes,
)
from rzmanager.tracking.models import EdgeRecord, EntityGraph, EntityType, NodeRecord
from rzmanager.tracking.snapshots import (
    DictSnapshotBackend,
    Snapshot,
    SnapshotBackend,
    SnapshotStore,
    create_snapshot,
    revert_all,
    revert_field,
)
from rzmanager.tracking.tracker import EntityDiff, EntityTracker, TrackedEntity
from rzmanager.tracking.values import FieldValue, normalize_value, values_equal

__all__ = [
    "ChangeType",
    "ChangesSummary",
    "DictSnapshotBackend",
    "EdgeChange",
    "EdgeRecord",
    "EntityDiff",
    "EntityGraph",
    "EntityTracker",
    "EntityType",
    "FieldChange",
    "FieldValue",
    "NodeChange",
    "NodeChangeGroup",
    "NodeRecord",
    "Snapshot",
    "SnapshotBackend",
    "SnapshotStore",
    "TrackedEntity",
    "compute_changes",
    "create_snapshot",
    "get_modified_fields_for_node",
    "get_modified_node_ids",
    "group_changes",
    "normalize_value",
    "revert_all",
    "revert_field",
    "values_equal",
]
