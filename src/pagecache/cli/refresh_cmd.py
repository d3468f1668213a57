"""CLI command for refreshing pages whose elements went live or expired.

Meant to run from cron, e.g. every few minutes:
    pagecache refresh-expired
"""

from __future__ import annotations

import typer

from pagecache.cli._runtime import run
from pagecache.runtime import Services

app = typer.Typer(help="Refresh pages of elements whose post or expiry date passed")


@app.callback(invoke_without_command=True)
def refresh_expired() -> None:
    """Invalidate pages of elements whose post or expiry date has passed."""

    async def _refresh(services: Services) -> int:
        return await services.invalidation.refresh_expired_cache()

    count = run(_refresh, drain_jobs=True)
    typer.echo(f"Refreshed cache for {count} expired elements.")
