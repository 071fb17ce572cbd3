"""Restore commands for FlowState."""

import asyncio
import signal
import sys
from typing import Optional

import click
import questionary
from rich.console import Console

from ...core.orchestrator import WorkspaceRestorer
from ...services.exceptions import FlowStateError, MissingMetadataError, RestorationCancelled
from ..helpers import get_store, load_settings


def choose_capture(store) -> Optional[str]:
    """Ask which capture to restore; None if the user backed out."""
    saved = store.list_captures()
    if not saved:
        return None
    choices = [
        questionary.Choice(title=f"{item.name} ({item.created_at[:16].replace('T', ' ')})", value=item.id)
        for item in saved
    ]
    return questionary.select("Select a capture to restore:", choices=choices).ask()


def run_with_interrupt(restorer: WorkspaceRestorer, coro):
    """Run ``coro`` with Ctrl-C mapped to cancelling the active restoration."""
    def handle_interrupt(signum, frame):
        restorer.cancel()

    previous = signal.signal(signal.SIGINT, handle_interrupt)
    try:
        return asyncio.run(coro)
    finally:
        signal.signal(signal.SIGINT, previous)


@click.command()
@click.argument('capture_id', required=False)
@click.pass_context
def restore(ctx, capture_id):
    """Restore a capture (choose interactively when CAPTURE_ID is omitted)"""
    console = Console()
    store = get_store(ctx)

    if not capture_id:
        if not sys.stdin.isatty():
            click.echo("Error: CAPTURE_ID is required when not running interactively", err=True)
            ctx.exit(1)
        capture_id = choose_capture(store)
        if not capture_id:
            console.print("[yellow]No capture selected[/yellow]")
            return

    restorer = WorkspaceRestorer(
        store,
        progress=lambda message: console.print(f"[cyan]{message}[/cyan]"),
        settings=load_settings(ctx),
    )
    try:
        report = run_with_interrupt(restorer, restorer.restore(capture_id))
    except RestorationCancelled:
        console.print("[yellow]Restoration cancelled by user[/yellow]")
        ctx.exit(1)
    except (FlowStateError, ValueError) as e:
        click.echo(f"Error: {e}", err=True)
        ctx.exit(1)

    if report.failures:
        console.print(f"[yellow]{len(report.failures)} asset(s) could not be restored:[/yellow]")
        for failure in report.failures:
            console.print(f"  - {failure.title}: {failure.error}")
        ctx.exit(1)
    console.print(f"[green]Restored {report.restored} of {report.total} asset(s)[/green]")


@click.command('restore-asset')
@click.argument('asset_id')
@click.pass_context
def restore_asset(ctx, asset_id):
    """Restore a single asset"""
    restorer = WorkspaceRestorer(get_store(ctx), settings=load_settings(ctx))
    try:
        asset = run_with_interrupt(restorer, restorer.restore_asset(asset_id))
    except MissingMetadataError as e:
        click.echo(f"Cannot restore asset: {e}", err=True)
        ctx.exit(1)
    except (FlowStateError, ValueError) as e:
        click.echo(f"Error: {e}", err=True)
        ctx.exit(1)

    click.echo(f"Restored {asset.asset_type.value} asset: {asset.title}")
