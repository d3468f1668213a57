"""CLI command for clearing the page cache.

Usage:
    pagecache clear
    pagecache clear --flush
"""

from __future__ import annotations

import typer

from pagecache.cli._runtime import run
from pagecache.runtime import Services

app = typer.Typer(help="Clear the page cache")


@app.callback(invoke_without_command=True)
def clear(
    flush: bool = typer.Option(
        False,
        "--flush",
        "-f",
        help="Also delete the cache index and garbage collect",
    ),
) -> None:
    """Delete every cached page."""

    async def _clear(services: Services) -> None:
        await services.invalidation.clear_cache(flush=flush)

    run(_clear)
    typer.echo("Cache flushed." if flush else "Cache cleared.")
