"""Entity graph values: the node/edge form of one content entity.

The visual editor produces and consumes these values. Each node carries a
``values`` mapping of field values; edges connect node handles. Display
metadata (label, category, position) travels with the node but is never
part of a diff.
"""

from __future__ import annotations

from enum import StrEnum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from rzmanager.errors import ValidationError
from rzmanager.tracking.values import normalize_values


class NodeRecord(BaseModel):
    """One node of an entity graph."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    id: str = Field(min_length=1)
    type: str = "schema-node"
    values: dict[str, Any] = Field(default_factory=dict)
    label: str | None = None
    category: str | None = None
    position: tuple[float, float] | None = None

    @field_validator("values", mode="before")
    @classmethod
    def _normalize(cls, v: Any) -> dict[str, Any]:
        if v is None:
            return {}
        return normalize_values(v)

    def with_values(self, values: dict[str, Any]) -> NodeRecord:
        """Return a copy of this node with its values replaced."""
        return self.model_copy(update={"values": normalize_values(values)}, deep=True)


class EdgeRecord(BaseModel):
    """A connection between two node handles."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    id: str = Field(min_length=1)
    source: str
    target: str
    source_handle: str | None = Field(default=None, alias="sourceHandle")
    target_handle: str | None = Field(default=None, alias="targetHandle")

    @property
    def connection_key(self) -> tuple[str, str | None, str, str | None]:
        """Identity of the connection, independent of the edge id."""
        return (self.source, self.source_handle, self.target, self.target_handle)


class EntityGraph(BaseModel):
    """Ordered nodes and edges of one entity."""

    model_config = ConfigDict(frozen=True)

    nodes: list[NodeRecord] = Field(default_factory=list)
    edges: list[EdgeRecord] = Field(default_factory=list)

    @model_validator(mode="after")
    def _unique_node_ids(self) -> EntityGraph:
        seen: set[str] = set()
        for node in self.nodes:
            if node.id in seen:
                raise ValidationError(f"Duplicate node id '{node.id}'")
            seen.add(node.id)
        return self

    @classmethod
    def empty(cls) -> EntityGraph:
        return cls()

    def node(self, node_id: str) -> NodeRecord | None:
        """Return the node with the given id, or None."""
        for node in self.nodes:
            if node.id == node_id:
                return node
        return None

    def node_ids(self) -> list[str]:
        return [node.id for node in self.nodes]

    def is_empty(self) -> bool:
        return not self.nodes and not self.edges


class EntityType(StrEnum):
    """Kinds of game content an entity graph can describe."""

    NPC = "NPC"
    ITEM = "Item"
    MONSTER = "Monster"
    QUEST = "Quest"
    SKILL = "Skill"
    STATE = "State"
