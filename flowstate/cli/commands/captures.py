"""List captures command."""

import click
from rich.console import Console
from rich.table import Table

from ...services.exceptions import AssetNotFoundError
from ..helpers import get_store


@click.command()
@click.pass_context
def captures(ctx):
    """List saved captures"""
    console = Console()
    try:
        store = get_store(ctx)
        saved = store.list_captures()
    except ValueError as e:
        console.print(f"[red]Error loading captures: {e}[/red]")
        ctx.exit(1)

    if not saved:
        console.print("[yellow]No captures saved.[/yellow]")
        console.print("Use 'flowstate capture NAME' to create one.")
        return

    table = Table(title="Captures")
    table.add_column("ID", style="cyan", no_wrap=True)
    table.add_column("Name", style="green")
    table.add_column("Created", style="white")
    table.add_column("Assets", justify="right")

    for item in saved:
        try:
            count = str(len(store.get_assets(item.id)))
        except (AssetNotFoundError, ValueError):
            count = "?"
        table.add_row(item.id, item.name, item.created_at[:16].replace("T", " "), count)

    console.print(table)
