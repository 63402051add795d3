"""Server command for running the schedule runner."""

import asyncio
import logging
import os
from pathlib import Path
from typing import Annotated

import typer
from rich.markup import escape

from cronkeeper.cli.console import console, error
from cronkeeper.config.models import CronkeeperConfig

logger = logging.getLogger(__name__)


def register(app: typer.Typer) -> None:
    """Register the serve command."""

    @app.command()
    def serve(
        config: Annotated[
            Path | None,
            typer.Option(
                "--config",
                "-c",
                help="Path to configuration file",
            ),
        ] = None,
        log_level: Annotated[
            str | None,
            typer.Option(
                "--log-level",
                "-l",
                help="DEBUG, INFO, WARNING or ERROR (default: from config)",
            ),
        ] = None,
    ) -> None:
        """Run every configured channel's schedule until interrupted."""
        from cronkeeper.config import load_config

        try:
            cronkeeper_config = load_config(config)
        except (FileNotFoundError, ValueError) as e:
            error(str(e))
            raise typer.Exit(1) from None

        if not cronkeeper_config.channels:
            error("No channels configured. Add a [[channels]] entry to the config.")
            raise typer.Exit(1)

        try:
            asyncio.run(_run_server(cronkeeper_config, log_level))
        except KeyboardInterrupt:
            # Use print here since logging may not be configured yet
            print("\nServer stopped")


async def console_task_runner(
    task: str, channel_id: str, thread_id: str | None
) -> None:
    """Execution adapter that posts due tasks to the terminal."""
    target = f"{channel_id}/{thread_id}" if thread_id else channel_id
    console.print(f"[bold cyan]▶ {escape(target)}[/bold cyan] ", end="")
    console.print(task, markup=False)


async def _run_server(
    config: CronkeeperConfig, log_level: str | None = None
) -> None:
    """Run the runner until SIGINT/SIGTERM."""
    import signal as signal_module

    from cronkeeper.logging import configure_logging
    from cronkeeper.scheduling.runner import ScheduleRunner

    level = log_level or os.environ.get("CRONKEEPER_LOG_LEVEL") or config.logging.level
    configure_logging(
        level=level.upper(),
        use_rich=True,
        log_to_file=config.logging.log_to_file,
    )

    scheduler = config.scheduler
    runner = ScheduleRunner(
        console_task_runner,
        debounce_seconds=scheduler.debounce_seconds,
        lock_timeout=scheduler.lock_timeout,
        misfire_grace_seconds=scheduler.misfire_grace_seconds,
    )

    shutdown_event = asyncio.Event()
    loop = asyncio.get_running_loop()
    for sig in (signal_module.SIGTERM, signal_module.SIGINT):
        loop.add_signal_handler(sig, shutdown_event.set)

    try:
        await runner.start(config.channel_mappings())
        for channel_id in runner.channels:
            jobs = runner.scheduled_jobs(channel_id)
            logger.info(
                "channel_ready",
                extra={
                    "schedule.channel_id": channel_id,
                    "schedule.job_count": len(jobs),
                },
            )
        await shutdown_event.wait()
        logger.info("shutdown_requested")
    finally:
        await runner.stop()
        for sig in (signal_module.SIGTERM, signal_module.SIGINT):
            loop.remove_signal_handler(sig)
