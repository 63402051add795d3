"""Configuration management commands."""

from pathlib import Path
from typing import Annotated

import click
import typer

from cronkeeper.cli.console import console, dim, error, success


def register(app: typer.Typer) -> None:
    """Register the config command."""

    @app.command()
    def config(
        action: Annotated[
            str | None,
            typer.Argument(help="Action: show, validate"),
        ] = None,
        path: Annotated[
            Path | None,
            typer.Option(
                "--path",
                "-p",
                help="Path to config file (default: $CRONKEEPER_HOME/config.toml)",
            ),
        ] = None,
    ) -> None:
        """Manage configuration."""
        if action is None:
            ctx = click.get_current_context()
            click.echo(ctx.get_help())
            raise typer.Exit(0)

        from rich.syntax import Syntax
        from rich.table import Table

        from cronkeeper.config import load_config
        from cronkeeper.config.paths import get_config_path

        expanded_path = path.expanduser() if path else get_config_path()

        if action == "show":
            if not expanded_path.exists():
                error(f"Config file not found: {expanded_path}")
                raise typer.Exit(1)

            content = expanded_path.read_text()
            syntax = Syntax(content, "toml", theme="monokai", line_numbers=True)
            console.print(f"[bold]Config file: {expanded_path}[/bold]\n")
            console.print(syntax)

        elif action == "validate":
            try:
                config_obj = load_config(expanded_path)
            except FileNotFoundError as e:
                error(str(e))
                raise typer.Exit(1) from None
            except ValueError as e:
                error("Configuration validation failed:")
                console.print(str(e), markup=False)
                raise typer.Exit(1) from None

            table = Table(title="Configuration Summary")
            table.add_column("Setting", style="cyan")
            table.add_column("Value", style="green")

            scheduler = config_obj.scheduler
            table.add_row("Default timezone", scheduler.default_timezone)
            table.add_row("Debounce", f"{scheduler.debounce_seconds}s")
            table.add_row("Lock timeout", f"{scheduler.lock_timeout}s")
            table.add_row("Misfire grace", f"{scheduler.misfire_grace_seconds}s")
            table.add_row("Log level", config_obj.logging.level)
            for channel in config_obj.channels:
                table.add_row(
                    f"Channel '{channel.id}'",
                    str(channel.to_mapping().config_path),
                )

            success("Configuration is valid!")
            if not config_obj.channels:
                dim("No channels configured")
            console.print()
            console.print(table)

        else:
            error(f"Unknown action: {action}")
            console.print("Valid actions: show, validate")
            raise typer.Exit(1)
