"""CLI command handlers."""

from facepath.cli.commands.info import run_info
from facepath.cli.commands.process import run_process

__all__ = [
    "run_info",
    "run_process",
]
