"""Database CLI commands."""

from __future__ import annotations

import asyncio

import typer
from rich.console import Console

from workboard.database.models import Base

app = typer.Typer(help="Database commands")
console = Console()


@app.command()
def init() -> None:
    """Create all tables directly from the models.

    Intended for development databases; use ``alembic upgrade head`` for
    managed environments.
    """
    from workboard.main import get_app_context

    ctx = get_app_context()

    async def _init() -> None:
        async with ctx.engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)
        await ctx.engine.dispose()

    try:
        asyncio.run(_init())
    except Exception as e:
        console.print(f"[red]Error creating tables:[/red] {e}")
        raise typer.Exit(code=1)

    console.print(f"[green]Created {len(Base.metadata.tables)} tables[/green]")
