"""Configuration management commands for FlowState."""

import click
import yaml

from ...utils.config_manager import ConfigManager
from ..helpers import get_data_dir, load_settings


@click.group()
def config():
    """Manage engine settings"""
    pass


@config.command()
@click.pass_context
def show(ctx):
    """Display current settings"""
    settings = load_settings(ctx)
    click.echo("FlowState Settings:")
    click.echo(yaml.safe_dump(settings.model_dump(), default_flow_style=False, sort_keys=True).rstrip())


@config.command('set')
@click.argument('key')
@click.argument('value')
@click.pass_context
def set_value(ctx, key, value):
    """Set a setting, e.g. 'flowstate config set smart_capture true'"""
    config_manager = ConfigManager(get_data_dir(ctx))
    try:
        settings = config_manager.update(key, value)
    except KeyError:
        click.echo(f"Error: Unknown setting '{key}'", err=True)
        ctx.exit(1)
    except ValueError as e:
        click.echo(f"Error: {e}", err=True)
        ctx.exit(1)

    click.echo(f"Set {key} = {getattr(settings, key)}")
