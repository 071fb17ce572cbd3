"""Show the Claude Code context document for a terminal asset."""

import click

from ...core.context_document import generate_context_document
from ...core.orchestrator import session_from_asset
from ...models.capture import AssetType
from ...services.exceptions import FlowStateError
from ..helpers import get_store


@click.command()
@click.argument('asset_id')
@click.pass_context
def context(ctx, asset_id):
    """Print the context document for terminal ASSET_ID"""
    try:
        asset = get_store(ctx).get_asset(asset_id)
        if asset.asset_type != AssetType.TERMINAL:
            raise FlowStateError(f"Asset {asset_id} is a {asset.asset_type.value} asset, not a terminal")
        session = session_from_asset(asset)
    except (FlowStateError, ValueError) as e:
        click.echo(f"Error: {e}", err=True)
        ctx.exit(1)

    if not session.has_claude:
        click.echo(f"Terminal '{asset.title}' was not running Claude Code.", err=True)
        ctx.exit(1)

    click.echo(generate_context_document(session.claude_context, session.terminal_output))
