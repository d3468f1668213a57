"""CLI command reporting cached pages per site.

Usage:
    pagecache utility
"""

from __future__ import annotations

import typer
from rich.console import Console
from rich.table import Table

from pagecache.cli._runtime import run
from pagecache.runtime import Services
from pagecache.storage.base import SiteCacheInfo

app = typer.Typer(help="Show where each site's pages are cached")


@app.callback(invoke_without_command=True)
def utility() -> None:
    """Print the cache folder and cached page count of each site."""

    async def _utility(services: Services) -> list[SiteCacheInfo]:
        return await services.storage.utility_info()

    infos = run(_utility)

    table = Table(title="Cached pages")
    table.add_column("Site")
    table.add_column("Folder")
    table.add_column("Pages", justify="right")
    for info in infos:
        table.add_row(info.name, info.path, str(info.count))

    Console().print(table)
