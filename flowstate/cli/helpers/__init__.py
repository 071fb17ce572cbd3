"""CLI Helper Functions for FlowState.

Shared lookups for the data directory, the capture store and settings,
plus the table formatting used by the listing commands.
"""

import sys
from pathlib import Path
from typing import Any, List

import click
from tabulate import tabulate

from flowstate.models.capture import Asset, AssetType
from flowstate.models.config import Settings
from flowstate.utils.asset_store import JsonAssetStore
from flowstate.utils.config_manager import ConfigManager, default_data_dir


def get_data_dir(ctx: click.Context) -> Path:
    """Data directory chosen by the top-level --data-dir option."""
    obj = ctx.find_root().obj or {}
    return obj.get('data_dir') or default_data_dir()


def get_store(ctx: click.Context) -> JsonAssetStore:
    return JsonAssetStore(get_data_dir(ctx))


def load_settings(ctx: click.Context) -> Settings:
    """Load settings, exiting with an error if the file is invalid."""
    try:
        return ConfigManager(get_data_dir(ctx)).load_settings()
    except ValueError as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(1)


def truncate(text: str, max_length: int = 50) -> str:
    if len(text) > max_length:
        return text[:max_length - 3] + "..."
    return text


def asset_status(asset: Asset) -> str:
    """Short restorability label for an asset."""
    metadata = asset.metadata
    if metadata.get('corrupted'):
        return click.style("CORRUPTED", fg='red')
    if asset.asset_type == AssetType.TERMINAL:
        if not metadata.get('shellType'):
            return click.style("NO SHELL TYPE", fg='yellow')
        claude = metadata.get('claudeCodeContext') or {}
        if claude.get('isClaudeCodeRunning'):
            return click.style("CLAUDE", fg='cyan')
    if asset.asset_type == AssetType.BROWSER and metadata.get('debuggingEnabled') is False:
        return click.style("NOTICE", fg='yellow')
    return click.style("OK", fg='green')


def format_asset_table(assets: List[Asset], max_title_length: int = 50) -> str:
    """Format assets as a table with consistent styling."""
    headers = ["ID", "TYPE", "TITLE", "PATH", "STATUS"]
    rows = [
        [
            asset.id,
            asset.asset_type.value,
            truncate(asset.title, max_title_length),
            truncate(asset.path or "", 60),
            asset_status(asset),
        ]
        for asset in assets
    ]
    return tabulate(rows, headers=headers, tablefmt="simple")


def print_table(headers: List[str], rows: List[List[Any]],
                tablefmt: str = "simple") -> None:
    """Print a table with project-wide defaults.

    Args:
        headers: Table headers
        rows: Table rows
        tablefmt: Table format (default: "simple")
    """
    table_str = tabulate(rows, headers=headers, tablefmt=tablefmt)
    click.echo(table_str)
