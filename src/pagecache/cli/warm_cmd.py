"""CLI command for warming the page cache.

Usage:
    pagecache warm
"""

from __future__ import annotations

import typer

from pagecache.cli._runtime import run
from pagecache.runtime import Services

app = typer.Typer(help="Warm the page cache")


@app.callback(invoke_without_command=True)
def warm() -> None:
    """Request every cached page and every element URL."""

    async def _warm(services: Services) -> int:
        urls = await services.invalidation.get_all_cached_urls()
        if urls:
            await services.invalidation.warm_cache(urls)
        return len(urls)

    count = run(_warm, drain_jobs=True)
    typer.echo(f"Submitted {count} URLs for warming.")
