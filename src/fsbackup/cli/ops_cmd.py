"""CLI commands for the four backup operations: full, sync, inc, recover."""

from __future__ import annotations

from collections.abc import Callable
from datetime import date, datetime
from pathlib import Path

import click

from fsbackup.core.config import Settings, build_settings, load_config
from fsbackup.core.errors import BackupError, OperationCancelled
from fsbackup.core.models import OperationKind
from fsbackup.engine.executor import Executor
from fsbackup.engine.planner import OperationPlan, Planner
from fsbackup.providers.copy import get_copy_engine, list_copy_engines


# Accepted affirmative answers; anything else, including an empty line, cancels
CONFIRM_ANSWERS = ("y", "yes", "j", "ja")


def get_config(ctx: click.Context) -> dict:
    """Config loaded by the top-level group, or the default config file."""
    obj = ctx.find_object(dict)
    if obj and "config" in obj:
        return obj["config"]
    return load_config()


def operation_options(func: Callable) -> Callable:
    """Options shared by every operation command."""
    func = click.option(
        "--force", "-y", is_flag=True, help="Run without asking for confirmation.",
    )(func)
    func = click.option(
        "--engine",
        type=click.Choice(list_copy_engines()),
        default=None,
        help="Copy engine (default from config: rsync).",
    )(func)
    func = click.option(
        "--storage",
        "--dest",
        "storage",
        type=click.Path(path_type=Path),
        default=None,
        help="Backup storage directory (default: current directory).",
    )(func)
    func = click.option(
        "--source",
        type=click.Path(path_type=Path),
        default=None,
        help="Backup source, and recovery destination (default: /).",
    )(func)
    return func


def confirm_plan(plan: OperationPlan, force: bool) -> None:
    """Show the plan and ask the operator to confirm it.

    Raises:
        OperationCancelled: The operator declined.
    """
    click.echo("--- OPERATION PLAN ---")
    click.echo(plan.summary())
    click.echo("----------------------")

    if force:
        click.echo("Used --force or -y flag, proceeding without confirmation.")
        return
    answer = click.prompt(
        "Do you agree to execute this plan? [y/N]", default="", show_default=False,
    )
    if answer.strip().lower() not in CONFIRM_ANSWERS:
        raise OperationCancelled("Operation canceled by the user.")
    click.echo("Plan confirmed. Starting execution...")


def run_operation(
    ctx: click.Context,
    kind: OperationKind,
    source: Path | None,
    storage: Path | None,
    engine: str | None,
    force: bool,
    target_date: date | None = None,
) -> None:
    """Plan, confirm and execute one operation; map failures to exit codes."""
    settings: Settings = build_settings(
        get_config(ctx), source=source, storage=storage, engine=engine, force=force,
    )
    try:
        copy_engine = get_copy_engine(settings.engine, settings)
    except ValueError as e:
        raise click.ClickException(str(e)) from e

    planner = Planner(settings, copy_engine)
    executor = Executor(settings, copy_engine, progress=click.echo)

    try:
        plan = planner.plan(kind, target_date)
        confirm_plan(plan, settings.force)
        executor.execute(plan)
    except OperationCancelled as e:
        click.echo(str(e))
        raise SystemExit(1) from e
    except BackupError as e:
        raise click.ClickException(str(e)) from e
    except OSError as e:
        raise click.ClickException(f"{kind.value} failed: {e}") from e

    click.echo("Operation completed successfully.")


@click.command("full")
@operation_options
@click.pass_context
def full_cmd(
    ctx: click.Context, source: Path | None, storage: Path | None, engine: str | None, force: bool,
) -> None:
    """Create a new full backup."""
    run_operation(ctx, OperationKind.FULL, source, storage, engine, force)


@click.command("sync")
@operation_options
@click.pass_context
def sync_cmd(
    ctx: click.Context, source: Path | None, storage: Path | None, engine: str | None, force: bool,
) -> None:
    """Synchronize the latest full backup with the source (update it)."""
    run_operation(ctx, OperationKind.SYNC, source, storage, engine, force)


@click.command("inc")
@operation_options
@click.pass_context
def inc_cmd(
    ctx: click.Context, source: Path | None, storage: Path | None, engine: str | None, force: bool,
) -> None:
    """Create an incremental backup relative to the latest full one."""
    run_operation(ctx, OperationKind.INCREMENTAL, source, storage, engine, force)


@click.command("recover")
@click.argument("target_date", metavar="DATE", type=click.DateTime(formats=["%Y-%m-%d"]))
@operation_options
@click.pass_context
def recover_cmd(
    ctx: click.Context,
    target_date: datetime,
    source: Path | None,
    storage: Path | None,
    engine: str | None,
    force: bool,
) -> None:
    """Restore the source to its state on DATE (YYYY-MM-DD)."""
    run_operation(
        ctx, OperationKind.RECOVER, source, storage, engine, force, target_date=target_date.date(),
    )
