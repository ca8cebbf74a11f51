# cli/main.py
"""Main CLI entry point for O-Lang."""

import click

from olang import __version__
from olang.config import get_settings
from olang.logging import configure_logging


@click.group()
@click.version_option(version=__version__)
@click.option('--log-level', default=None, help='Log level (defaults to OLANG_LOG_LEVEL)')
@click.option('--log-json', is_flag=True, help='Emit logs as JSON lines')
def cli(log_level: str, log_json: bool):
    """O-Lang CLI - run and check plain-English workflows."""
    settings = get_settings()
    configure_logging(log_level or settings.log_level, log_json or settings.log_json)


def register_commands():
    """Register all CLI commands."""
    from cli.commands.run import check, run
    cli.add_command(run)
    cli.add_command(check)


register_commands()


if __name__ == '__main__':
    cli()
