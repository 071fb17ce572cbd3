"""Capture command for FlowState."""

import asyncio

import click

from ...core.capture_engine import CaptureEngine
from ..helpers import get_store, load_settings, print_table, truncate


@click.command()
@click.argument('name')
@click.option('--smart/--no-smart', default=None,
              help='Drop idle terminals (defaults to the smart_capture setting)')
@click.option('--dry-run', is_flag=True, help='Show what would be captured without saving')
@click.pass_context
def capture(ctx, name, smart, dry_run):
    """Capture open terminal sessions as NAME"""
    settings = load_settings(ctx)
    if smart is not None:
        settings = settings.model_copy(update={'smart_capture': smart})

    engine = CaptureEngine(settings=settings)
    records = asyncio.run(engine.capture_records())

    if dry_run:
        rows = []
        for record in records:
            metadata = record['metadata']
            claude = metadata.get('claudeCodeContext') or {}
            rows.append([
                truncate(record['title'], 40),
                metadata.get('shellType') or "",
                truncate(record['path'] or "", 60),
                "yes" if claude.get('isClaudeCodeRunning') else "",
            ])
        print_table(["TITLE", "SHELL", "DIRECTORY", "CLAUDE"], rows)
        click.echo(f"\n{len(records)} terminal session(s) would be captured")
        return

    if not records:
        click.echo("No terminal sessions found to capture.", err=True)
        ctx.exit(1)

    store = get_store(ctx)
    saved = store.create_capture(name, records)
    click.echo(f"Captured {len(records)} terminal session(s) as '{name}' ({saved.id})")
