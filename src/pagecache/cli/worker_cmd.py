"""CLI command for running a refresh and warm job worker.

Usage:
    pagecache worker
    pagecache worker --once
"""

from __future__ import annotations

import typer

from pagecache.cli._runtime import run
from pagecache.jobs.worker import WorkerConfig
from pagecache.runtime import Services, build_worker

app = typer.Typer(help="Process refresh and warm jobs")


@app.callback(invoke_without_command=True)
def worker(
    name: str = typer.Option("default", "--name", "-n", help="Worker name for logs"),
    batch_size: int = typer.Option(1, "--batch-size", "-b", help="Jobs claimed at once"),
    once: bool = typer.Option(
        False,
        "--once",
        help="Process pending jobs and exit instead of running until stopped",
    ),
) -> None:
    """Run a worker for the configured job queue."""

    async def _work(services: Services) -> None:
        job_worker = build_worker(services, WorkerConfig(name=name, batch_size=batch_size))
        if once:
            count = await job_worker.run_once()
            typer.echo(f"Processed {count} jobs.")
        else:
            await job_worker.run()

    run(_work)
