"""SQL projection of staged changes and commits.

Everything here is a pure function of its inputs: the same change always
projects to byte-identical SQL. Staged changes store their SQL at staging
time, so preview SQL and executed SQL come from the same call.
"""

from __future__ import annotations

import json
import math
from collections.abc import Mapping
from typing import TYPE_CHECKING, Any

from rzmanager.errors import InvalidFieldValueError
from rzmanager.staging.models import OperationType
from rzmanager.tracking.models import EntityType
from rzmanager.tracking.values import values_equal

if TYPE_CHECKING:
    from collections.abc import Sequence

    from rzmanager.staging.models import Commit, StagedChange

KEY_COLUMN = "id"

DEFAULT_TABLES: dict[EntityType, str] = {
    EntityType.NPC: "dbo.NPCResource",
    EntityType.ITEM: "dbo.ItemResource",
    EntityType.MONSTER: "dbo.MonsterResource",
    EntityType.QUEST: "dbo.QuestResource",
    EntityType.SKILL: "dbo.SkillResource",
    EntityType.STATE: "dbo.StateResource",
}

_RULE = "-- " + "=" * 44


def sql_literal(value: Any) -> str:
    """Render a field value as a T-SQL literal.

    Raises:
        InvalidFieldValueError: For NaN or infinite floats.
    """
    if value is None:
        return "NULL"
    if isinstance(value, bool):
        return "1" if value else "0"
    if isinstance(value, int):
        return str(value)
    if isinstance(value, float):
        if not math.isfinite(value):
            raise InvalidFieldValueError(value, reason="NaN and infinity have no SQL literal")
        return repr(value)
    if isinstance(value, (list, tuple)):
        value = json.dumps(list(value), separators=(",", ":"))
    text = str(value).replace("'", "''")
    return f"N'{text}'"


def sql_identifier(name: str) -> str:
    """Bracket-quote a column name (``group`` is reserved in T-SQL)."""
    return "[" + name.replace("]", "]]") + "]"


def sql_key(entity_id: str) -> str:
    """Literal for the key column; all-digit ids are numeric."""
    return entity_id if entity_id.isdigit() else sql_literal(entity_id)


def table_for_entity(
    entity_type: EntityType, tables: Mapping[EntityType, str] | None = None
) -> str:
    """Resolve the table an entity type is stored in."""
    if tables and entity_type in tables:
        return tables[entity_type]
    return DEFAULT_TABLES[entity_type]


def changed_columns(
    previous: Mapping[str, Any], new: Mapping[str, Any]
) -> list[tuple[str, Any]]:
    """Columns whose value differs between two row snapshots.

    Columns of *new* come first in their order; columns dropped from *new*
    are set to NULL.
    """
    changed = [
        (col, val)
        for col, val in new.items()
        if col not in previous or not values_equal(previous[col], val)
    ]
    changed.extend((col, None) for col in previous if col not in new)
    return changed


def generate_sql(
    entity_type: EntityType,
    operation: OperationType,
    entity_id: str,
    previous_snapshot: Mapping[str, Any] | None,
    new_snapshot: Mapping[str, Any] | None,
    *,
    tables: Mapping[EntityType, str] | None = None,
) -> str:
    """Project one row operation to SQL.

    Create inserts every column of the new snapshot, Update sets only the
    changed columns, Delete removes the row by key.
    """
    table = table_for_entity(entity_type, tables)
    entity_id = str(entity_id)

    if operation is OperationType.CREATE and new_snapshot:
        cols = ", ".join(sql_identifier(c) for c in new_snapshot)
        vals = ", ".join(sql_literal(v) for v in new_snapshot.values())
        return f"INSERT INTO {table} ({cols})\nVALUES ({vals});"

    if (
        operation is OperationType.UPDATE
        and new_snapshot is not None
        and previous_snapshot is not None
    ):
        changed = changed_columns(previous_snapshot, new_snapshot)
        if not changed:
            return f"-- No changes detected for {table} id={entity_id}"
        sets = ",\n".join(f"  {sql_identifier(c)} = {sql_literal(v)}" for c, v in changed)
        return f"UPDATE {table}\nSET\n{sets}\nWHERE {KEY_COLUMN} = {sql_key(entity_id)};"

    if operation is OperationType.DELETE:
        return f"DELETE FROM {table}\nWHERE {KEY_COLUMN} = {sql_key(entity_id)};"

    return f"-- Unknown operation for {table} id={entity_id}"


def change_to_sql(change: StagedChange) -> str:
    """SQL of a staged change, exactly as generated at staging time."""
    return change.generated_sql


def _comment(text: str) -> str:
    return " ".join(text.split())


def commit_to_sql(commit: Commit, changes: Sequence[StagedChange]) -> str:
    """Render a commit as one transaction script.

    Args:
        commit: The commit being rendered.
        changes: The commit's changes in ``change_ids`` order.

    Returns:
        The script, wrapped in BEGIN/COMMIT TRANSACTION.
    """
    lines = [
        _RULE,
        f"-- Commit: {_comment(commit.message)}",
        f"-- Author: {_comment(commit.author)}",
        f"-- Date: {commit.timestamp.isoformat()}",
        f"-- Changes: {len(changes)}",
        _RULE,
        "",
        "BEGIN TRANSACTION;",
        "",
    ]
    for change in changes:
        lines.append(
            f"-- {change.operation_type} {change.entity_type}: "
            f"{_comment(change.entity_name)} (id={change.entity_id})"
        )
        lines.append(change_to_sql(change))
        lines.append("")
    lines.append("COMMIT TRANSACTION;")
    return "\n".join(lines)
