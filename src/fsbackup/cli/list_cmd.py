"""CLI command for inspecting the backup storage: fs-backup list."""

from __future__ import annotations

from datetime import datetime
from pathlib import Path

import click

from fsbackup.cli.ops_cmd import get_config
from fsbackup.core.catalog import latest_full, list_snapshots
from fsbackup.core.chain import resolve
from fsbackup.core.errors import ChainNotFoundError


@click.command("list")
@click.option(
    "--storage",
    "--dest",
    "storage",
    type=click.Path(path_type=Path),
    default=None,
    help="Backup storage directory (default from config, else current directory).",
)
@click.option(
    "--date",
    "target_date",
    type=click.DateTime(formats=["%Y-%m-%d"]),
    default=None,
    help="Show the chain a recovery to this date (YYYY-MM-DD) would replay.",
)
@click.pass_context
def list_cmd(ctx: click.Context, storage: Path | None, target_date: datetime | None) -> None:
    """List snapshots in the backup storage, newest first."""
    config = get_config(ctx)
    root = Path(storage if storage is not None else config.get("storage", ".")).expanduser().resolve()

    if target_date is not None:
        try:
            chain = resolve(root, target_date.date())
        except ChainNotFoundError as e:
            raise click.ClickException(str(e)) from e
        click.echo(f"Recovery chain for {target_date:%Y-%m-%d}:")
        click.echo(f"  base  {chain.base.name}")
        for inc in chain.incrementals:
            click.echo(f"  inc   {inc.name}")
        return

    snapshots = list_snapshots(root)
    if not snapshots:
        click.echo(f"No snapshots found in {root}.")
        return

    latest = latest_full(root)
    click.echo(f"{'Name':<32} {'Kind':<12} {'Created'}")
    click.echo("-" * 64)
    for snap in sorted(snapshots, key=lambda s: s.created_at, reverse=True):
        marker = "  (latest full)" if latest is not None and snap.path == latest.path else ""
        click.echo(f"{snap.name:<32} {snap.kind.value:<12} {snap.created_at:%Y-%m-%d %H:%M:%S}{marker}")
