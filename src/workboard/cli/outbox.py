"""Notification outbox CLI commands.

This module provides CLI commands for running the outbox worker outside
the web process and for inspecting the outbox backlog.
"""

from __future__ import annotations

import asyncio
from typing import TYPE_CHECKING, Annotated

import typer
from rich.console import Console
from rich.table import Table

from workboard.database.queries.outbox import get_outbox_stats
from workboard.notifications.fanout import NotificationFanout
from workboard.notifications.outbox import OutboxWorker
from workboard.notifications.transport import PushGateway

if TYPE_CHECKING:
    from workboard.main import AppContext

app = typer.Typer(help="Notification outbox commands")
console = Console()


def _build_worker(batch_size: int | None = None) -> tuple[AppContext, OutboxWorker, PushGateway]:
    from workboard.main import get_app_context

    ctx = get_app_context()
    push = PushGateway(ctx.config.push)
    # No socket emitter outside the web process; that channel counts as done
    fanout = NotificationFanout(
        ctx.session_factory,
        push=push,
        max_attempts=ctx.config.outbox.max_attempts,
    )
    worker = OutboxWorker(
        fanout,
        ctx.session_factory,
        batch_size=batch_size or ctx.config.outbox.batch_size,
        poll_interval_seconds=ctx.config.outbox.poll_interval_seconds,
    )
    return ctx, worker, push


@app.command()
def run() -> None:
    """Run the outbox worker until interrupted."""
    ctx, worker, push = _build_worker()

    async def _run() -> None:
        try:
            await worker.run()
        finally:
            await push.close()
            await ctx.engine.dispose()

    console.print("[bold cyan]Outbox worker running[/bold cyan] [dim](Ctrl+C to stop)[/dim]")
    try:
        asyncio.run(_run())
    except KeyboardInterrupt:
        console.print("[yellow]Outbox worker stopped[/yellow]")


@app.command()
def process(
    batch_size: Annotated[
        int,
        typer.Option("--batch-size", "-b", help="Events to deliver in this pass"),
    ] = 50,
) -> None:
    """Deliver one batch of due events and exit."""
    ctx, worker, push = _build_worker(batch_size)

    async def _process() -> dict[str, int]:
        try:
            return await worker.process_queue()
        finally:
            await push.close()
            await ctx.engine.dispose()

    try:
        counts = asyncio.run(_process())
    except Exception as e:
        console.print(f"[red]Error processing outbox:[/red] {e}")
        raise typer.Exit(code=1)

    _print_counts("Outbox Pass", counts)


@app.command()
def stats() -> None:
    """Show outbox event counts by status."""
    from workboard.main import get_app_context

    ctx = get_app_context()

    async def _stats() -> dict[str, int]:
        try:
            async with ctx.session_factory() as session:
                return await get_outbox_stats(session)
        finally:
            await ctx.engine.dispose()

    try:
        counts = asyncio.run(_stats())
    except Exception as e:
        console.print(f"[red]Error reading outbox:[/red] {e}")
        raise typer.Exit(code=1)

    _print_counts("Notification Outbox", counts)


def _print_counts(title: str, counts: dict[str, int]) -> None:
    table = Table(title=title)
    table.add_column("Status", style="cyan")
    table.add_column("Events", justify="right", style="bold")
    for status, count in counts.items():
        table.add_row(status, str(count))
    console.print(table)
