"""Commit Engine: bundles draft changes into commits and owns their lifecycle.

Lifecycle::

    Pending -> Applied     apply succeeded
    Pending -> Failed      apply failed, timed out, or raised
    Pending -> (deleted)   discard; the changes become drafts again
    Applied -> Applied     revert appends a new Pending commit

History is append-only. A revert never rewrites the commit it inverts; it
stages inverse changes and commits them like any other edit. Discarding a
revert commit, or a failed apply of one, clears the link on the original so
it can be reverted again.

Applying is the one suspending operation. The engine owns the apply task,
so a caller that is cancelled mid-apply cannot leave a commit stuck in
Pending, and concurrent callers for one commit share a single execution.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from typing import TYPE_CHECKING

from rzmanager.errors import (
    CommitLifecycleError,
    NotFoundError,
    OperationResult,
    RZManagerError,
    TransactionError,
    ValidationError,
)
from rzmanager.observability.logging import bound_context, get_logger
from rzmanager.staging.models import Commit, CommitStatus, WorkspaceContext, utc_now
from rzmanager.staging.store import atomic

if TYPE_CHECKING:
    from collections.abc import Sequence

    from rzmanager.staging.area import StagingArea
    from rzmanager.staging.connectivity import TransactionExecutor
    from rzmanager.staging.models import StagedChange

log = get_logger(__name__)


@dataclass(frozen=True)
class ApplyResult:
    """Outcome of applying a commit.

    Attributes:
        commit_id: The commit the apply targeted.
        status: Final status, or None if the commit does not exist.
        error: TransactionError for a Failed commit, NotFoundError for an
            unknown id, None on success.
        commit: The stored commit record after the apply.
    """

    commit_id: str
    status: CommitStatus | None
    error: RZManagerError | None = None
    commit: Commit | None = None

    @property
    def success(self) -> bool:
        return self.status is CommitStatus.APPLIED

    @property
    def message(self) -> str:
        return str(self.error) if self.error is not None else ""

    @classmethod
    def from_commit(cls, commit: Commit) -> ApplyResult:
        error = None
        if commit.status is CommitStatus.FAILED:
            error = TransactionError(commit.error_log or "Commit failed")
        return cls(commit_id=commit.id, status=commit.status, error=error, commit=commit)


class CommitEngine:
    """Creates, applies, discards and reverts commits.

    Args:
        area: Staging Area whose store holds the changes and commits.
        executor: Runs each commit's statements as one transaction.
        apply_timeout: Seconds an apply may take before the commit is
            marked Failed. None disables the deadline.
    """

    def __init__(
        self,
        area: StagingArea,
        executor: TransactionExecutor,
        apply_timeout: float | None = None,
    ) -> None:
        self.area = area
        self.store = area.store
        self.executor = executor
        self.apply_timeout = apply_timeout
        self._inflight: dict[str, asyncio.Task[ApplyResult]] = {}

    # -- Creation --------------------------------------------------------------

    def create_commit(
        self,
        workspace_id: str,
        profile_id: str,
        message: str,
        author: str,
        change_ids: Sequence[str],
    ) -> Commit:
        """Bundle draft changes into a new Pending commit.

        Raises:
            ValidationError: Blank message, no changes, duplicate ids, or a
                change that is not a draft of *workspace_id*.
            NotFoundError: A change id does not exist.
        """
        if not message or not message.strip():
            raise ValidationError("Commit message must not be empty")
        ids = list(change_ids)
        if not ids:
            raise ValidationError("A commit needs at least one change")
        duplicates = sorted({i for i in ids if ids.count(i) > 1})
        if duplicates:
            raise ValidationError(f"Duplicate change ids: {', '.join(duplicates)}")

        owned = self.area.owned_change_ids()
        for change_id in ids:
            change = self.store.get_change(change_id)
            if change is None:
                raise NotFoundError("change", change_id, [c.id for c in self.store.all_changes()])
            if change.workspace_id != workspace_id:
                raise ValidationError(
                    f"Change '{change_id}' belongs to workspace '{change.workspace_id}', "
                    f"not '{workspace_id}'"
                )
            if change_id in owned:
                raise ValidationError(f"Change '{change_id}' is already part of a commit")

        commit = Commit(
            workspace_id=workspace_id,
            profile_id=profile_id,
            message=message.strip(),
            author=author,
            change_ids=tuple(ids),
        )
        with atomic(self.store, "create_commit"):
            self.store.put_commit(commit)
        log.info("commit_created", commit_id=commit.id, changes=len(ids))
        return commit

    # -- Apply -----------------------------------------------------------------

    async def apply_commit(self, commit_id: str) -> ApplyResult:
        """Execute a Pending commit's statements in one transaction.

        A commit that is already Applied or Failed is returned as-is without
        re-executing anything. Concurrent calls for the same commit await
        the same engine-owned task; cancelling a caller does not cancel it.
        """
        commit = self.store.get_commit(commit_id)
        if commit is None:
            return ApplyResult(commit_id=commit_id, status=None, error=self._not_found(commit_id))
        if commit.status.is_terminal:
            log.debug("commit_apply_noop", commit_id=commit_id, status=str(commit.status))
            return ApplyResult.from_commit(commit)

        task = self._inflight.get(commit_id)
        if task is None:
            task = asyncio.create_task(self._run_apply(commit))
            self._inflight[commit_id] = task
            task.add_done_callback(lambda t: self._forget(commit_id, t))
        return await asyncio.shield(task)

    def _forget(self, commit_id: str, task: asyncio.Task[ApplyResult]) -> None:
        if self._inflight.get(commit_id) is task:
            del self._inflight[commit_id]

    def is_applying(self, commit_id: str) -> bool:
        return commit_id in self._inflight

    async def _run_apply(self, commit: Commit) -> ApplyResult:
        with bound_context(commit_id=commit.id, workspace_id=commit.workspace_id):
            return await self._execute(commit)

    async def _execute(self, commit: Commit) -> ApplyResult:
        log.info("commit_apply_started", changes=len(commit.change_ids))
        error: str | None = None
        try:
            statements = [c.generated_sql for c in self.changes_for_commit(commit.id)]
            pending = self.executor.execute_transaction(statements)
            if self.apply_timeout is not None:
                outcome = await asyncio.wait_for(pending, timeout=self.apply_timeout)
            else:
                outcome = await pending
            if not outcome.success:
                error = outcome.error or "Transaction failed"
        except TimeoutError:
            error = f"Apply timed out after {self.apply_timeout:g}s"
        except (TransactionError, NotFoundError) as e:
            error = str(e)
        except Exception as e:
            error = f"{type(e).__name__}: {e}"
            log.error("commit_apply_error", error=error, exc_info=True)

        if error is None:
            updated = commit.model_copy(
                update={"status": CommitStatus.APPLIED, "applied_at": utc_now(), "error_log": None}
            )
            log.info("commit_applied")
        else:
            updated = commit.model_copy(
                update={"status": CommitStatus.FAILED, "error_log": error}
            )
            log.warning("commit_failed", error=error)
        with atomic(self.store, "apply_commit"):
            self.store.put_commit(updated)
            if updated.status is CommitStatus.FAILED:
                self._unlink_revert(updated)
        return ApplyResult.from_commit(updated)

    # -- Discard ---------------------------------------------------------------

    def discard_commit(self, commit_id: str) -> OperationResult[None]:
        """Delete a Pending commit. Its changes become drafts again.

        Raises:
            CommitLifecycleError: If the commit is not Pending or is being
                applied.
        """
        commit = self.store.get_commit(commit_id)
        if commit is None:
            return OperationResult.failure(self._not_found(commit_id))
        if commit.status is not CommitStatus.PENDING:
            raise CommitLifecycleError(commit_id, "discard", str(commit.status))
        if commit_id in self._inflight:
            raise CommitLifecycleError(
                commit_id, "discard", str(commit.status), reason="apply in progress"
            )
        with atomic(self.store, "discard_commit"):
            self.store.delete_commit(commit_id)
            self._unlink_revert(commit)
        log.info("commit_discarded", commit_id=commit_id, changes=len(commit.change_ids))
        return OperationResult.success()

    # -- Revert ----------------------------------------------------------------

    def create_revert_commit(self, commit_id: str, author: str) -> OperationResult[Commit]:
        """Append a Pending commit that inverts an Applied one.

        Each change is inverted (Create and Delete swap, Update swaps its
        snapshots) and staged in reverse order. The original commit stays
        Applied and records the revert in ``reverted_by_commit_id``.

        Raises:
            CommitLifecycleError: If the commit is not Applied or already
                has a Pending or Applied revert.
        """
        original = self.store.get_commit(commit_id)
        if original is None:
            return OperationResult.failure(self._not_found(commit_id))
        if original.status is not CommitStatus.APPLIED:
            raise CommitLifecycleError(commit_id, "revert", str(original.status))
        if self._live_revert(original) is not None:
            raise CommitLifecycleError(
                commit_id,
                "revert",
                str(original.status),
                reason=f"already reverted by {original.reverted_by_commit_id}",
            )

        changes = self.changes_for_commit(commit_id)
        workspace = WorkspaceContext(original.workspace_id, original.profile_id)
        with atomic(self.store, "revert_commit"):
            inverse_ids = [
                self.area.stage_change(
                    workspace,
                    change.entity_type,
                    change.entity_id,
                    change.entity_name,
                    change.operation_type.inverse(),
                    previous_snapshot=change.new_snapshot,
                    new_snapshot=change.previous_snapshot,
                ).id
                for change in reversed(changes)
            ]
            revert = Commit(
                workspace_id=original.workspace_id,
                profile_id=original.profile_id,
                message=f"Revert {original.short_id}: {original.message}",
                author=author,
                change_ids=tuple(inverse_ids),
                reverts_commit_id=original.id,
            )
            self.store.put_commit(revert)
            self.store.put_commit(
                original.model_copy(update={"reverted_by_commit_id": revert.id})
            )
        log.info("revert_commit_created", commit_id=revert.id, reverts=original.id)
        return OperationResult.success(revert)

    # -- Queries ---------------------------------------------------------------

    def get_commit(self, commit_id: str) -> OperationResult[Commit]:
        commit = self.store.get_commit(commit_id)
        if commit is None:
            return OperationResult.failure(self._not_found(commit_id))
        return OperationResult.success(commit)

    def workspace_commits(self, workspace_id: str) -> list[Commit]:
        """Commits of a workspace, newest first."""
        return [c for c in reversed(self.store.all_commits()) if c.workspace_id == workspace_id]

    def changes_for_commit(self, commit_id: str) -> list[StagedChange]:
        """A commit's changes in ``change_ids`` order.

        Raises:
            NotFoundError: If the commit or one of its changes is missing.
        """
        commit = self.store.get_commit(commit_id)
        if commit is None:
            raise self._not_found(commit_id)
        changes: list[StagedChange] = []
        for change_id in commit.change_ids:
            change = self.store.get_change(change_id)
            if change is None:
                raise NotFoundError("change", change_id)
            changes.append(change)
        return changes

    def _live_revert(self, commit: Commit) -> Commit | None:
        """The Pending or Applied commit that reverts *commit*, if any."""
        if commit.reverted_by_commit_id is None:
            return None
        revert = self.store.get_commit(commit.reverted_by_commit_id)
        if revert is None or revert.status is CommitStatus.FAILED:
            return None
        return revert

    def _unlink_revert(self, revert: Commit) -> None:
        """Clear the original's link to a revert that was discarded or failed."""
        if revert.reverts_commit_id is None:
            return
        original = self.store.get_commit(revert.reverts_commit_id)
        if original is not None and original.reverted_by_commit_id == revert.id:
            self.store.put_commit(original.model_copy(update={"reverted_by_commit_id": None}))
            log.info("revert_unlinked", commit_id=original.id, revert_id=revert.id)

    def _not_found(self, commit_id: str) -> NotFoundError:
        return NotFoundError("commit", commit_id, [c.id for c in self.store.all_commits()])
