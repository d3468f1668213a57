"""CLI commands for pagecache.

Provides command-line interface using Typer:
- pagecache clear: Delete every cached page
- pagecache refresh-expired: Refresh pages of elements that went live or expired
- pagecache warm: Request every cached page
- pagecache gc: Garbage collect the cache index
- pagecache utility: Show cached pages per site
- pagecache init-db: Create the cache index tables
- pagecache worker: Process refresh and warm jobs

Usage:
    pagecache --help
    pagecache clear --flush
    pagecache refresh-expired
"""

import typer

from pagecache.cli.clear_cmd import app as clear_app
from pagecache.cli.db_cmd import app as db_app
from pagecache.cli.gc_cmd import app as gc_app
from pagecache.cli.refresh_cmd import app as refresh_app
from pagecache.cli.utility_cmd import app as utility_app
from pagecache.cli.warm_cmd import app as warm_app
from pagecache.cli.worker_cmd import app as worker_app

app = typer.Typer(
    name="pagecache",
    help="pagecache: full-page HTTP cache with dependency-aware invalidation",
    no_args_is_help=True,
)

app.add_typer(clear_app, name="clear")
app.add_typer(refresh_app, name="refresh-expired")
app.add_typer(warm_app, name="warm")
app.add_typer(gc_app, name="gc")
app.add_typer(utility_app, name="utility")
app.add_typer(db_app, name="init-db")
app.add_typer(worker_app, name="worker")


@app.callback()
def callback() -> None:
    """pagecache: full-page HTTP cache with dependency-aware invalidation."""


def main() -> None:
    """Entry point for the CLI."""
    app()


if __name__ == "__main__":
    main()
