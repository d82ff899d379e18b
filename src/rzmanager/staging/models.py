"""Durable staging records: staged changes and commits.

Both records are frozen pydantic models. A status transition stores a new
copy of the commit; nothing is mutated in place. A StagedChange's row
snapshots are flat column -> field value mappings.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass
from datetime import UTC, datetime
from enum import StrEnum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator

from rzmanager.tracking.models import EntityType
from rzmanager.tracking.values import normalize_values


def new_id() -> str:
    return str(uuid.uuid4())


def utc_now() -> datetime:
    return datetime.now(UTC)


class OperationType(StrEnum):
    """Row-level operation a staged change performs."""

    CREATE = "Create"
    UPDATE = "Update"
    DELETE = "Delete"

    def inverse(self) -> OperationType:
        """Operation that undoes this one."""
        if self is OperationType.CREATE:
            return OperationType.DELETE
        if self is OperationType.DELETE:
            return OperationType.CREATE
        return OperationType.UPDATE


class CommitStatus(StrEnum):
    """Commit lifecycle states.

    Pending -> Applied | Failed, or the commit is discarded (deleted).
    Applied and Failed never return to Pending.
    """

    PENDING = "Pending"
    APPLIED = "Applied"
    FAILED = "Failed"

    @property
    def is_terminal(self) -> bool:
        return self is not CommitStatus.PENDING


@dataclass(frozen=True)
class WorkspaceContext:
    """Workspace and server profile the staging operations act on."""

    workspace_id: str
    profile_id: str


class StagedChange(BaseModel):
    """An immutable, committable change to one entity row."""

    model_config = ConfigDict(frozen=True)

    id: str = Field(default_factory=new_id)
    workspace_id: str = Field(min_length=1)
    profile_id: str = ""
    entity_type: EntityType
    entity_id: str
    entity_name: str = ""
    operation_type: OperationType
    previous_snapshot: dict[str, Any] | None = None
    new_snapshot: dict[str, Any] | None = None
    generated_sql: str
    created_at: datetime = Field(default_factory=utc_now)

    @field_validator("entity_id", mode="before")
    @classmethod
    def _entity_id_as_text(cls, v: Any) -> str:
        return str(v)

    @field_validator("previous_snapshot", "new_snapshot", mode="before")
    @classmethod
    def _normalize_snapshot(cls, v: Any) -> dict[str, Any] | None:
        return None if v is None else normalize_values(v)


class Commit(BaseModel):
    """An ordered bundle of staged changes with a lifecycle status.

    ``change_ids`` are fixed at creation. ``reverts_commit_id`` links a
    revert commit to the commit it inverts; ``reverted_by_commit_id`` is set
    on an Applied commit once a revert has been created for it.
    """

    model_config = ConfigDict(frozen=True)

    id: str = Field(default_factory=new_id)
    workspace_id: str = Field(min_length=1)
    profile_id: str = ""
    message: str = Field(min_length=1)
    author: str = ""
    timestamp: datetime = Field(default_factory=utc_now)
    change_ids: tuple[str, ...] = Field(min_length=1)
    status: CommitStatus = CommitStatus.PENDING
    applied_at: datetime | None = None
    error_log: str | None = None
    reverts_commit_id: str | None = None
    reverted_by_commit_id: str | None = None

    @property
    def short_id(self) -> str:
        return self.id[:8]

    @property
    def is_reverted(self) -> bool:
        return self.reverted_by_commit_id is not None
