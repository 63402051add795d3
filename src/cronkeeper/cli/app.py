"""Main CLI application."""

import typer

from cronkeeper.cli.commands import config, schedule, serve

app = typer.Typer(
    name="cronkeeper",
    help="cronkeeper - file-driven per-channel task scheduler",
    no_args_is_help=True,
)

serve.register(app)
schedule.register(app)
config.register(app)


if __name__ == "__main__":
    app()
