"""List assets command."""

import click

from ...services.exceptions import AssetNotFoundError
from ..helpers import format_asset_table, get_store


@click.command()
@click.argument('capture_id')
@click.pass_context
def assets(ctx, capture_id):
    """List the assets of CAPTURE_ID"""
    store = get_store(ctx)
    try:
        items = store.get_assets(capture_id)
    except (AssetNotFoundError, ValueError) as e:
        click.echo(f"Error: {e}", err=True)
        ctx.exit(1)

    if not items:
        click.echo("Capture has no assets.")
        return
    click.echo(format_asset_table(items))
