"""CLI command for garbage collecting the cache index.

Usage:
    pagecache gc
"""

from __future__ import annotations

import typer

from pagecache.cli._runtime import run
from pagecache.runtime import Services

app = typer.Typer(help="Delete cache index rows no cached page uses")


@app.callback(invoke_without_command=True)
def gc() -> None:
    """Delete orphaned element queries and element associations."""

    async def _gc(services: Services) -> dict[str, int]:
        return await services.invalidation.run_garbage_collection()

    counts = run(_gc)
    typer.echo(
        f"Removed {counts['element_queries']} element queries "
        f"and {counts['element_caches']} element associations."
    )
