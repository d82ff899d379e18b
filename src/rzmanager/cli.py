"""RZManager CLI - typer application entry point."""

from __future__ import annotations

import asyncio
import atexit
import json
from collections.abc import Iterator
from contextlib import contextmanager
from pathlib import Path
from typing import Annotated, Any

import typer
from dotenv import load_dotenv
from rich.console import Console
from rich.markup import escape
from rich.syntax import Syntax
from rich.table import Table

from rzmanager.config import ConfigError, EngineConfig, load_config
from rzmanager.errors import OperationResult, RZManagerError
from rzmanager.observability import close_file_logging, configure_logging
from rzmanager.staging.area import StagingArea
from rzmanager.staging.commits import CommitEngine
from rzmanager.staging.connectivity import SimulatedConnection
from rzmanager.staging.export import export_commit, export_formats, write_commit_export
from rzmanager.staging.models import CommitStatus, OperationType, StagedChange, WorkspaceContext
from rzmanager.staging.sqlite_store import SqliteStagingStore
from rzmanager.staging.store import atomic
from rzmanager.tracking.models import EntityGraph, EntityType

# Load environment variables from .env file
load_dotenv()

app = typer.Typer(
    name="rz",
    help="RZManager: stage, commit, apply and revert game-content changes.",
    no_args_is_help=True,
)
console = Console()

# Global state for logging flags (set by callback, used by commands)
_verbose: int = 0
_log_enabled: bool = False
_project_path: Path = Path()

STATUS_DISPLAY = {
    CommitStatus.PENDING: "[yellow]○[/yellow] Pending",
    CommitStatus.APPLIED: "[green]✓[/green] Applied",
    CommitStatus.FAILED: "[red]✗[/red] Failed",
}


@app.callback()
def main(
    verbose: Annotated[
        int,
        typer.Option(
            "-v",
            "--verbose",
            count=True,
            help="Increase verbosity: -v for INFO, -vv for DEBUG.",
        ),
    ] = 0,
    log_to_file: Annotated[
        bool,
        typer.Option("--log", help="Enable file logging to {project}/logs/debug.jsonl."),
    ] = False,
    project: Annotated[
        Path,
        typer.Option(
            "--project",
            "-p",
            help="Project directory holding rzmanager.yaml (default: current directory).",
            envvar="RZ_PROJECT",
        ),
    ] = Path(),
) -> None:
    """RZManager: stage, commit, apply and revert game-content changes."""
    global _verbose, _log_enabled, _project_path
    _verbose = verbose
    _log_enabled = log_to_file
    _project_path = project

    configure_logging(verbosity=verbose)
    if log_to_file:
        configure_logging(verbosity=verbose, log_to_file=True, project_path=project)
        atexit.register(close_file_logging)


def _load_config() -> EngineConfig:
    try:
        return load_config(_project_path)
    except ConfigError as e:
        console.print(f"[red]Error:[/red] {escape(str(e))}")
        raise typer.Exit(1) from None


@contextmanager
def _engine() -> Iterator[tuple[EngineConfig, CommitEngine]]:
    """Open the commit engine over the project's staging database."""
    config = _load_config()
    store = SqliteStagingStore(config.db_path)
    try:
        area = StagingArea(store, tables=config.tables or None)
        executor = SimulatedConnection(
            latency_seconds=config.simulated_latency_seconds,
            failure_rate=config.simulated_failure_rate,
        )
        yield config, CommitEngine(area, executor, apply_timeout=config.apply_timeout_seconds)
    finally:
        store.close()


def _fail(message: str) -> typer.Exit:
    console.print(f"[red]Error:[/red] {escape(message)}")
    return typer.Exit(1)


def _unwrap(result: OperationResult[Any]) -> Any:
    if not result.ok:
        raise _fail(result.message)
    return result.value


def _resolve_id(prefix: str, ids: list[str]) -> str:
    """Expand a unique id prefix (e.g. a short commit id) to the full id."""
    if prefix in ids:
        return prefix
    matches = [i for i in ids if i.startswith(prefix)]
    return matches[0] if len(matches) == 1 else prefix


def _change_from_entry(
    area: StagingArea, workspace: WorkspaceContext, entry: dict[str, Any]
) -> StagedChange:
    entity_type = EntityType(entry["entity_type"])
    entity_id = entry["entity_id"]
    entity_name = str(entry.get("entity_name", entity_id))
    if "baseline" in entry or "current" in entry:
        baseline = EntityGraph.model_validate(entry.get("baseline") or {})
        current = EntityGraph.model_validate(entry.get("current") or {})
        return area.stage_graphs(workspace, entity_type, entity_id, entity_name, baseline, current)
    return area.stage_change(
        workspace,
        entity_type,
        entity_id,
        entity_name,
        OperationType(entry["operation"]),
        previous_snapshot=entry.get("previous"),
        new_snapshot=entry.get("new"),
    )


@app.command()
def version() -> None:
    """Show version information."""
    from rzmanager import __version__

    console.print(f"RZManager v{__version__}")


@app.command()
def stage(
    path: Annotated[
        Path,
        typer.Argument(help="JSON file with one change or a list of changes."),
    ],
) -> None:
    """Stage changes described in a JSON file.

    Each change names ``entity_type``, ``entity_id`` and ``entity_name`` and
    either ``operation`` with ``previous``/``new`` rows, or ``baseline`` and
    ``current`` entity graphs to diff.
    """
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except (OSError, json.JSONDecodeError) as e:
        raise _fail(f"Cannot read {path}: {e}") from None
    entries = data if isinstance(data, list) else [data]

    with _engine() as (config, engine):
        workspace = WorkspaceContext(config.workspace_id, config.profile_id)
        staged: list[StagedChange] = []
        try:
            with atomic(engine.store, "stage"):
                for entry in entries:
                    staged.append(_change_from_entry(engine.area, workspace, entry))
        except (RZManagerError, KeyError, ValueError) as e:
            raise _fail(f"Invalid change: {e}") from None

    for change in staged:
        console.print(
            f"[green]Staged[/green] {change.operation_type} {change.entity_type} "
            f"{escape(change.entity_name)} [dim]{change.id}[/dim]"
        )
        console.print(Syntax(change.generated_sql, "sql"))


@app.command()
def drafts() -> None:
    """List draft changes of the workspace."""
    with _engine() as (config, engine):
        grouped = engine.area.get_draft_changes_by_type(config.workspace_id)

    if not grouped:
        console.print("[dim]No draft changes.[/dim]")
        return

    table = Table(title=f"Draft Changes: {config.workspace_id}")
    table.add_column("ID", style="cyan")
    table.add_column("Type")
    table.add_column("Entity")
    table.add_column("Operation", style="bold")
    table.add_column("Staged", style="dim")
    for entity_type, changes in grouped.items():
        for change in changes:
            table.add_row(
                change.id,
                str(entity_type),
                f"{escape(change.entity_name)} ({change.entity_id})",
                str(change.operation_type),
                change.created_at.strftime("%Y-%m-%d %H:%M"),
            )
    console.print(table)


@app.command("discard-change")
def discard_change(
    change_id: Annotated[str, typer.Argument(help="Draft change id (or unique prefix).")],
) -> None:
    """Delete a draft change. This cannot be undone."""
    with _engine() as (_config, engine):
        change_id = _resolve_id(change_id, [c.id for c in engine.store.all_changes()])
        _unwrap(engine.area.delete_staged_change(change_id))
    console.print(f"[green]Deleted[/green] change {change_id}")


@app.command()
def commit(
    message: Annotated[str, typer.Option("--message", "-m", help="Commit message.")],
    change_ids: Annotated[
        list[str] | None,
        typer.Argument(help="Draft change ids (or unique prefixes)."),
    ] = None,
    all_drafts: Annotated[
        bool,
        typer.Option("--all", "-a", help="Commit every draft change of the workspace."),
    ] = False,
    author: Annotated[
        str | None,
        typer.Option("--author", help="Commit author (default: config author)."),
    ] = None,
) -> None:
    """Bundle draft changes into a new Pending commit."""
    with _engine() as (config, engine):
        if all_drafts:
            ids = [c.id for c in engine.area.get_draft_changes(config.workspace_id)]
        else:
            known = [c.id for c in engine.store.all_changes()]
            ids = [_resolve_id(i, known) for i in change_ids or []]
        try:
            created = engine.create_commit(
                config.workspace_id,
                config.profile_id,
                message,
                author or config.author,
                ids,
            )
        except RZManagerError as e:
            raise _fail(str(e)) from None

    console.print(
        f"[green]Created[/green] commit {created.id} with {len(created.change_ids)} change(s)"
    )


def _resolve_commit(engine: CommitEngine, commit_id: str) -> str:
    return _resolve_id(commit_id, [c.id for c in engine.store.all_commits()])


@app.command()
def apply(
    commit_id: Annotated[str, typer.Argument(help="Commit id (or unique prefix).")],
) -> None:
    """Apply a Pending commit through the connection."""
    with _engine() as (_config, engine):
        commit_id = _resolve_commit(engine, commit_id)
        result = asyncio.run(engine.apply_commit(commit_id))

    if result.status is None:
        raise _fail(result.message)
    console.print(f"Commit {commit_id}: {STATUS_DISPLAY[result.status]}")
    if not result.success:
        console.print(f"[red]{escape(result.message)}[/red]")
        raise typer.Exit(1)


@app.command()
def discard(
    commit_id: Annotated[str, typer.Argument(help="Pending commit id (or unique prefix).")],
) -> None:
    """Discard a Pending commit. Its changes become drafts again."""
    with _engine() as (_config, engine):
        commit_id = _resolve_commit(engine, commit_id)
        try:
            _unwrap(engine.discard_commit(commit_id))
        except RZManagerError as e:
            raise _fail(str(e)) from None
    console.print(f"[green]Discarded[/green] commit {commit_id}")


@app.command()
def revert(
    commit_id: Annotated[str, typer.Argument(help="Applied commit id (or unique prefix).")],
    author: Annotated[
        str | None,
        typer.Option("--author", help="Revert author (default: config author)."),
    ] = None,
) -> None:
    """Create a Pending commit that inverts an Applied one."""
    with _engine() as (config, engine):
        commit_id = _resolve_commit(engine, commit_id)
        try:
            reverted = _unwrap(engine.create_revert_commit(commit_id, author or config.author))
        except RZManagerError as e:
            raise _fail(str(e)) from None
    console.print(f"[green]Created[/green] revert commit {reverted.id}")
    console.print(f"  {escape(reverted.message)}")


@app.command("log")
def show_log() -> None:
    """Show the workspace commit history, newest first."""
    with _engine() as (config, engine):
        commits = engine.workspace_commits(config.workspace_id)

    if not commits:
        console.print("[dim]No commits.[/dim]")
        return

    table = Table(title=f"Commit Log: {config.workspace_id}")
    table.add_column("ID", style="cyan")
    table.add_column("Status")
    table.add_column("Message")
    table.add_column("Author", style="dim")
    table.add_column("Date", style="dim")
    table.add_column("Changes", justify="right")
    for c in commits:
        message = escape(c.message)
        if c.reverted_by_commit_id:
            message += f" [dim](reverted by {c.reverted_by_commit_id[:8]})[/dim]"
        table.add_row(
            c.short_id,
            STATUS_DISPLAY[c.status],
            message,
            escape(c.author),
            c.timestamp.strftime("%Y-%m-%d %H:%M"),
            str(len(c.change_ids)),
        )
    console.print(table)


@app.command()
def export(
    commit_id: Annotated[str, typer.Argument(help="Commit id (or unique prefix).")],
    format_name: Annotated[
        str,
        typer.Option("--format", "-f", help=f"Export format: {', '.join(export_formats())}."),
    ] = "sql",
    output_dir: Annotated[
        Path | None,
        typer.Option("--output", "-o", help="Write to a file in this directory."),
    ] = None,
) -> None:
    """Export a commit as a SQL script or JSON document."""
    with _engine() as (_config, engine):
        commit_id = _resolve_commit(engine, commit_id)
        try:
            if output_dir is not None:
                path = write_commit_export(engine, commit_id, format_name, output_dir)
            else:
                text = export_commit(engine, commit_id, format_name)
        except (RZManagerError, ValueError) as e:
            raise _fail(str(e)) from None

    if output_dir is not None:
        console.print(f"[green]Exported[/green] {path}")
    else:
        # Plain echo: SQL brackets are not rich markup.
        typer.echo(text)
