"""CLI command modules."""

from cronkeeper.cli.commands import config, schedule, serve

__all__ = [
    "config",
    "schedule",
    "serve",
]
