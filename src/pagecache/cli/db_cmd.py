"""CLI command for creating the cache index tables.

Usage:
    pagecache init-db
"""

from __future__ import annotations

import typer

from pagecache.cli._runtime import run
from pagecache.persistence.db import init_db
from pagecache.runtime import Services

app = typer.Typer(help="Create the cache index tables")


@app.callback(invoke_without_command=True)
def init() -> None:
    """Create the cache index tables if they do not exist."""

    async def _init(services: Services) -> None:
        await init_db(services.engine)

    run(_init)
    typer.echo("Cache index tables created.")
