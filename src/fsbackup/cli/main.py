"""CLI entry point for fs-backup."""

from __future__ import annotations

import logging
from pathlib import Path

import click

from fsbackup import __version__
from fsbackup.cli.list_cmd import list_cmd
from fsbackup.cli.ops_cmd import full_cmd, inc_cmd, recover_cmd, sync_cmd
from fsbackup.core.config import load_config

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"


def setup_logging(config: dict, verbose: bool = False) -> None:
    """Configure root logging once per process from config (and --verbose)."""
    level_name = "debug" if verbose else str(config.get("log_level", "warning"))
    handlers: list[logging.Handler] = [logging.StreamHandler()]

    log_file = config.get("log_file")
    if log_file:
        log_path = Path(log_file).expanduser()
        log_path.parent.mkdir(parents=True, exist_ok=True)
        handlers.append(logging.FileHandler(str(log_path), encoding="utf-8"))

    logging.basicConfig(
        level=getattr(logging, level_name.upper(), logging.WARNING),
        format=LOG_FORMAT,
        handlers=handlers,
    )


@click.group()
@click.version_option(version=__version__, prog_name="fs-backup")
@click.option(
    "--config",
    "config_file",
    type=click.Path(path_type=Path),
    default=None,
    help="Path to config.yaml (default: $FSBACKUP_CONFIG or ~/.config/fs-backup/config.yaml).",
)
@click.option("--verbose", "-v", is_flag=True, help="Enable debug logging.")
@click.pass_context
def cli(ctx: click.Context, config_file: Path | None, verbose: bool) -> None:
    """fs-backup: full, incremental and point-in-time filesystem backups."""
    config = load_config(config_file)
    setup_logging(config, verbose)
    ctx.ensure_object(dict)
    ctx.obj["config"] = config


cli.add_command(full_cmd)
cli.add_command(sync_cmd)
cli.add_command(inc_cmd)
cli.add_command(recover_cmd)
cli.add_command(list_cmd)


if __name__ == "__main__":
    cli()
