"""Command line interface for toonshelf.

Commands:
    - `toonshelf show SCOPE`: list a scope's persisted items
    - `toonshelf locate SCOPE ITEM_ID`: previous/next/first ids
    - `toonshelf apply SCOPE PLAN`: apply a YAML edit plan and reconcile
    - `toonshelf delete SCOPE ITEM_ID`: cascading delete

Example:
    $ toonshelf show Comics/c1/Episodes/ep-1/Images
    $ toonshelf apply Comics/c1/Episodes/ep-1/Images edits.yaml --dry-run
    $ toonshelf --config prod.yaml delete Comics c1
"""

import logging
from collections.abc import Awaitable, Callable
from pathlib import Path
from typing import Any, TypeVar

import typer
from rich.table import Table

from toonshelf import __version__
from toonshelf.cli_utils import (
    EXIT_CONFIG_ERROR,
    EXIT_ERROR,
    console,
    load_cli_config,
    setup_logging,
)
from toonshelf.collection.models import OrderedCollection, Scope
from toonshelf.collection.navigator import first_id, locate
from toonshelf.collection.working import WorkingCollection
from toonshelf.core.async_utils import run_async_with_timeout
from toonshelf.core.config import Config
from toonshelf.core.exceptions import ConfigError, ToonshelfError
from toonshelf.plan import apply_plan, load_plan
from toonshelf.stores import create_stores
from toonshelf.sync.cascade import CascadeDeleter
from toonshelf.sync.diff import ChangeSet, diff
from toonshelf.sync.reconciler import Reconciler

logger = logging.getLogger(__name__)

T = TypeVar("T")

app = typer.Typer(
    name="toonshelf",
    help="Reconcile ordered comic collections against blob and document stores",
    no_args_is_help=True,
)


def _version_callback(value: bool) -> None:
    if value:
        console.print(f"toonshelf {__version__}")
        raise typer.Exit()


@app.callback()
def main(
    ctx: typer.Context,
    config: Path = typer.Option(
        None,
        "--config",
        "-c",
        help="Path to config file (default: ./toonshelf.yaml if present)",
    ),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable debug logging"),
    version: bool = typer.Option(
        False, "--version", callback=_version_callback, is_eager=True, help="Show version and exit"
    ),
) -> None:
    """Load configuration and logging for every command."""
    try:
        loaded = load_cli_config(config)
    except ConfigError as e:
        console.print(f"[red][ERR][/red] {e}")
        raise typer.Exit(code=EXIT_CONFIG_ERROR) from None
    setup_logging(loaded.logging.level, verbose=verbose)
    ctx.obj = loaded


def _parse_scope(path: str) -> Scope:
    try:
        return Scope.parse(path)
    except ValueError as e:
        console.print(f"[red]Error:[/red] {e}")
        raise typer.Exit(code=EXIT_ERROR) from None


def _run(config: Config, action: Callable[[Reconciler], Awaitable[T]]) -> T:
    """Build stores and a reconciler, run an async action, always close stores."""
    blobs, metadata = create_stores(config.storage)

    async def _main() -> T:
        try:
            return await action(Reconciler(blobs, metadata, config=config.reconcile))
        finally:
            await blobs.aclose()
            await metadata.aclose()

    try:
        return run_async_with_timeout(_main())
    except ToonshelfError as e:
        logger.debug("Command failed", exc_info=True)
        console.print(f"[red]Error:[/red] {e}")
        raise typer.Exit(code=EXIT_ERROR) from None


def _collection_table(collection: OrderedCollection) -> Table:
    table = Table(title=str(collection.scope))
    table.add_column("#", justify="right")
    table.add_column("id")
    table.add_column("order", justify="right")
    table.add_column("created")
    table.add_column("content")
    table.add_column("attributes")
    for position, item in enumerate(collection.items):
        table.add_row(
            str(position),
            item.key,
            str(item.order) if item.order >= 0 else "-",
            item.created_at.isoformat(timespec="seconds") if item.created_at else "",
            item.content_ref or "",
            ", ".join(f"{k}={v}" for k, v in item.attributes.items()),
        )
    return table


def _change_set_table(change_set: ChangeSet) -> Table:
    table = Table(title=change_set.summary())
    table.add_column("operation")
    table.add_column("item")
    table.add_column("order", justify="right")
    rows: list[tuple[str, Any]] = [
        ("delete", change_set.to_delete),
        ("replace", change_set.to_replace),
        ("create", change_set.to_create),
        ("reorder", change_set.to_reorder),
    ]
    for label, planned in rows:
        for p in planned:
            table.add_row(label, p.key, str(p.order) if p.order >= 0 else "")
    return table


@app.command(name="show")
def show_command(
    ctx: typer.Context,
    scope: str = typer.Argument(..., help="Collection path, e.g. Comics/c1/Episodes"),
) -> None:
    """Show the persisted items of a scope in canonical order."""
    target = _parse_scope(scope)
    collection = _run(ctx.obj, lambda r: r.load(target))
    if not collection.items:
        console.print(f"[yellow]{target} is empty[/yellow]")
        return
    console.print(_collection_table(collection))


@app.command(name="locate")
def locate_command(
    ctx: typer.Context,
    scope: str = typer.Argument(..., help="Collection path, e.g. Comics/c1/Episodes"),
    item_id: str = typer.Argument(..., help="Current item id"),
) -> None:
    """Show the items before and after ITEM_ID, and the first item."""
    target = _parse_scope(scope)
    collection = _run(ctx.obj, lambda r: r.load(target))
    if item_id not in collection:
        console.print(f"[red]Error:[/red] No item {item_id!r} in {target}")
        raise typer.Exit(code=EXIT_ERROR)
    neighbors = locate(collection, item_id)
    console.print(f"previous: {neighbors.previous_id or '-'}")
    console.print(f"next:     {neighbors.next_id or '-'}")
    console.print(f"first:    {first_id(collection) or '-'}")


@app.command(name="apply")
def apply_command(
    ctx: typer.Context,
    scope: str = typer.Argument(..., help="Collection path, e.g. Comics/c1/Episodes/e1/Images"),
    plan_file: Path = typer.Argument(..., help="YAML edit plan"),
    dry_run: bool = typer.Option(False, "--dry-run", "-n", help="Print the change-set without writing"),
) -> None:
    """Apply an edit plan to a scope and reconcile the result."""
    target = _parse_scope(scope)
    try:
        plan = load_plan(plan_file)
    except ToonshelfError as e:
        console.print(f"[red]Error:[/red] {e}")
        raise typer.Exit(code=EXIT_ERROR) from None

    async def _apply(reconciler: Reconciler) -> None:
        baseline = await reconciler.load(target)
        working = WorkingCollection.from_baseline(baseline)
        apply_plan(plan, working)
        snapshot = working.snapshot()
        change_set = diff(baseline, snapshot)
        console.print(_change_set_table(change_set))
        if dry_run or change_set.is_empty:
            return
        result = await reconciler.commit(baseline, snapshot)
        console.print(f"[green]{result.summary()}[/green]")
        for ref in result.stale_refs:
            console.print(f"[yellow]stale blob:[/yellow] {ref}")
        console.print(_collection_table(result.baseline))

    _run(ctx.obj, _apply)


@app.command(name="delete")
def delete_command(
    ctx: typer.Context,
    scope: str = typer.Argument(..., help="Collection path of the item, e.g. Comics"),
    item_id: str = typer.Argument(..., help="Item to delete with all of its children"),
    yes: bool = typer.Option(False, "--yes", "-y", help="Do not ask for confirmation"),
) -> None:
    """Delete an item and everything beneath it."""
    target = _parse_scope(scope)
    if not yes and not typer.confirm(f"Delete {target}/{item_id} and all of its children?"):
        raise typer.Exit(code=EXIT_ERROR)

    report = _run(ctx.obj, lambda r: CascadeDeleter(r).delete_item(target, item_id))
    console.print(f"[green]{report.summary()}[/green]")
    for path, count in report.deleted.items():
        console.print(f"  {path}: {count}")
    for ref in report.stale_refs:
        console.print(f"[yellow]stale blob:[/yellow] {ref}")


if __name__ == "__main__":
    app()
