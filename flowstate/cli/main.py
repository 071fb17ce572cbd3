"""Main CLI entry point for FlowState."""

import logging
from pathlib import Path

import click

from ..utils.config_manager import default_data_dir
from .commands.assets import assets
from .commands.capture import capture
from .commands.captures import captures
from .commands.config import config
from .commands.context import context
from .commands.restore import restore, restore_asset

LOG_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'


@click.group()
@click.option('--verbose', '-v', is_flag=True, help='Log progress details')
@click.option('--debug', is_flag=True, help='Log everything, including probe failures')
@click.option('--data-dir', type=click.Path(file_okay=False, path_type=Path), default=None,
              help='Data directory (default: $FLOWSTATE_HOME or ~/.flowstate)')
@click.pass_context
def cli(ctx, verbose, debug, data_dir):
    """FlowState - Capture and restore your working environment"""
    level = logging.DEBUG if debug else logging.INFO if verbose else logging.WARNING
    logging.basicConfig(level=level, format=LOG_FORMAT)
    ctx.ensure_object(dict)
    ctx.obj['data_dir'] = data_dir or default_data_dir()


# Register commands
cli.add_command(capture)
cli.add_command(captures)
cli.add_command(assets)
cli.add_command(restore)
cli.add_command(restore_asset)
cli.add_command(context)
cli.add_command(config)


if __name__ == '__main__':
    cli()
