"""Schedule management commands."""

from pathlib import Path
from typing import Annotated

import click
import typer
from rich.markup import escape

from cronkeeper.cli.console import console, create_table, dim, error, success, warning
from cronkeeper.tools.base import ToolResult

ACTIONS = ("list", "add-recurring", "add-once", "remove", "examples")


def register(app: typer.Typer) -> None:
    """Register the schedule command."""

    @app.command()
    def schedule(
        action: Annotated[
            str | None,
            typer.Argument(help="Action: " + ", ".join(ACTIONS)),
        ] = None,
        channel: Annotated[
            str | None,
            typer.Option("--channel", "-C", help="Channel id from the config file"),
        ] = None,
        name: Annotated[
            str | None,
            typer.Option("--name", "-n", help="Recurring job name"),
        ] = None,
        cron: Annotated[
            str | None,
            typer.Option("--cron", help="Cron expression, e.g. '0 9 * * 1'"),
        ] = None,
        at: Annotated[
            str | None,
            typer.Option("--at", help="When to run once, e.g. 'in 2 hours'"),
        ] = None,
        task: Annotated[
            str | None,
            typer.Option("--task", help="What the agent should do"),
        ] = None,
        timezone: Annotated[
            str | None,
            typer.Option(
                "--timezone",
                "-t",
                help="IANA timezone (default: scheduler.default_timezone)",
            ),
        ] = None,
        thread: Annotated[
            str | None,
            typer.Option("--thread", help="Reply in this thread (add-once)"),
        ] = None,
        job: Annotated[
            str | None,
            typer.Option(
                "--id",
                "-i",
                help="One-time job id or recurring job name (remove)",
            ),
        ] = None,
        filter_: Annotated[
            str,
            typer.Option("--filter", "-f", help="onetime, recurring or all (list)"),
        ] = "all",
        config_path: Annotated[
            Path | None,
            typer.Option("--config", "-c", help="Path to configuration file"),
        ] = None,
    ) -> None:
        """Manage a channel's scheduled tasks.

        Each channel's tasks live in its schedule.yaml; a running
        `cronkeeper serve` picks up every change automatically.

        Examples:
            cronkeeper schedule list -C general
            cronkeeper schedule add-recurring -C general -n standup \\
                --cron "0 9 * * 1-5" -t America/New_York --task "Post standup"
            cronkeeper schedule add-once -C general --at "in 2 hours" \\
                --task "Remind me to stretch"
            cronkeeper schedule remove -C general --id standup
        """
        if action is None:
            ctx = click.get_current_context()
            click.echo(ctx.get_help())
            raise typer.Exit(0)

        if action not in ACTIONS:
            error(f"Unknown action: {action}")
            console.print("Valid actions: " + ", ".join(ACTIONS))
            raise typer.Exit(1)

        if action == "examples":
            _schedule_examples()
            return

        tools, default_timezone = _load_tools(config_path, channel)
        assert channel is not None

        if action == "list":
            result = tools.list(channel, filter_)  # type: ignore[arg-type]
            if not result.is_error:
                _print_list(result)
                return

        elif action == "add-recurring":
            _require(name=name, cron=cron, task=task)
            assert name and cron and task
            result = tools.add_recurring(
                channel, name, cron, timezone or default_timezone, task
            )

        elif action == "add-once":
            _require(at=at, task=task)
            assert at and task
            result = tools.add_one_time(
                channel,
                at,
                timezone or default_timezone,
                task,
                reply_in_thread=thread is not None,
                thread_id=thread,
            )

        else:
            _require(id=job)
            assert job
            result = tools.remove(channel, job)

        _print_result(result)


def _require(**options: str | None) -> None:
    missing = [f"--{key}" for key, value in options.items() if not value]
    if missing:
        error(f"Missing required option(s): {', '.join(missing)}")
        raise typer.Exit(1)


def _load_tools(config_path: Path | None, channel: str | None):
    """Resolve the channel's schedule store from config."""
    from cronkeeper.config import ConfigError, load_config
    from cronkeeper.scheduling.store import ScheduleStore
    from cronkeeper.tools.scheduling import ScheduleTools

    if not channel:
        error("--channel is required")
        raise typer.Exit(1)

    try:
        config = load_config(config_path)
        channel_config = config.get_channel(channel)
    except (FileNotFoundError, ValueError, ConfigError) as e:
        error(str(e))
        raise typer.Exit(1) from None

    store = ScheduleStore(
        channel_config.to_mapping().config_path,
        lock_timeout=config.scheduler.lock_timeout,
    )

    def store_for_channel(channel_id: str) -> ScheduleStore:
        return store

    return ScheduleTools(store_for_channel), config.scheduler.default_timezone


def _print_result(result: ToolResult) -> None:
    if result.is_error:
        error(result.content)
        if examples := result.metadata.get("examples"):
            dim("Examples: " + "; ".join(examples))
        raise typer.Exit(1)
    success(result.content)
    if job := result.metadata.get("job"):
        dim(f"id: {job['id']}" if "id" in job else f"name: {job['name']}")


def _print_list(result: ToolResult) -> None:
    if result.metadata["count"] == 0:
        warning(result.content)
        return

    table = create_table(
        "Scheduled Tasks",
        [
            ("Type", ""),
            ("ID / Name", "cyan"),
            ("Schedule", ""),
            ("Task", {"overflow": "fold"}),
            ("Next", "green"),
        ],
    )
    for job in result.metadata.get("one_time_jobs", []):
        table.add_row(
            "one-time",
            job["id"],
            job["local_time"],
            escape(_preview(job["task"])),
            job["time_until"]
            if job["time_until"] == "overdue"
            else f"in {job['time_until']}",
        )
    for job in result.metadata.get("recurring_jobs", []):
        table.add_row(
            "recurring",
            escape(job["name"]),
            f"{job['cronExpression']} ({job['timezone']})",
            escape(_preview(job["task"])),
            job["next_run"] or "?",
        )
    console.print(table)
    dim(f"Total: {result.metadata['count']} task(s)")


def _preview(text: str, limit: int = 40) -> str:
    return text[:limit] + "..." if len(text) > limit else text


def _schedule_examples() -> None:
    from cronkeeper.scheduling.natural_time import list_example_expressions
    from cronkeeper.tools.scheduling import CRON_EXAMPLES, TIMEZONE_EXAMPLES

    console.print("[bold]One-time (--at):[/bold]")
    for expression in list_example_expressions():
        console.print(f"  {expression}", markup=False)
    console.print("\n[bold]Recurring (--cron):[/bold]")
    for expression in CRON_EXAMPLES:
        console.print(f"  {expression}", markup=False)
    console.print("\n[bold]Timezones (--timezone):[/bold]")
    console.print("  " + ", ".join(TIMEZONE_EXAMPLES), markup=False)
