# Overview: Flask CLI command groups for allocation maintenance and database bootstrap.

# backend/resale/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to resale (PowerShell: $env:FLASK_APP="resale").
# - Use: python -m flask <group> <command> [options]
#
# Allocation maintenance:
# - python -m flask allocations recalculate --session-id 12
#   Recompute allocated_cost for every item in one session.
# - python -m flask allocations recalculate --all
#   Recompute every session (one transaction per session).
# - python -m flask allocations backfill
#   Recompute only the sessions that still have items with no allocated_cost.
# - python -m flask allocations show --session-id 12
#   Print the apportioned shares and per-item costs without writing.
#
# System:
# - python -m flask system init-db
#   Create all tables (use `flask db upgrade` for migrated deployments).
# - python -m flask system reset-db --yes
#   DEV/TEST only: drop and recreate all tables (deletes all data).

import click
from flask.cli import with_appcontext

from .extensions import db
from .services import allocation_service
from .services.allocation_service import AllocationNotFoundError
from .services.money import InvalidAmount


@click.group('allocations')
def allocations_group():
    """Cost allocation maintenance commands."""


def _report_failures(failures: dict) -> None:
    for session_id, error in failures.items():
        click.echo(f"Session {session_id} FAILED: {error}", err=True)
    if failures:
        raise click.ClickException(f"{len(failures)} session(s) failed to recalculate")


@allocations_group.command('recalculate')
@click.option('--session-id', type=int, help='Purchase session to recompute')
@click.option('--all', 'all_sessions', is_flag=True, help='Recompute every session')
@with_appcontext
def recalculate_cli(session_id, all_sessions):
    if session_id is None and not all_sessions:
        raise click.UsageError("Pass --session-id or --all")

    failures = {}
    if all_sessions:
        outcome = allocation_service.recalculate_all_sessions()
        results, failures = outcome.allocations, outcome.failures
    else:
        try:
            results = [allocation_service.recalculate_session_allocations(session_id)]
        except (AllocationNotFoundError, InvalidAmount) as exc:
            raise click.ClickException(str(exc))

    for result in results:
        click.echo(
            f"Session {result.session_id}: {len(result.item_costs)} items, "
            f"common cost {result.common_cost}, drift {result.apportionment_drift}"
        )
    click.echo(f"Recalculated {len(results)} session(s).")
    _report_failures(failures)


@allocations_group.command('backfill')
@with_appcontext
def backfill_cli():
    outcome = allocation_service.backfill_missing_allocations()

    if not outcome.allocations and not outcome.failures:
        click.echo("No items are missing an allocated cost.")
        return
    total_items = sum(len(r.item_costs) for r in outcome.allocations)
    click.echo(f"Backfilled {len(outcome.allocations)} session(s), {total_items} item(s) recomputed.")
    _report_failures(outcome.failures)


@allocations_group.command('show')
@click.option('--session-id', type=int, required=True, help='Purchase session to inspect')
@with_appcontext
def show_cli(session_id):
    try:
        result = allocation_service.preview_session_allocation(session_id)
    except (AllocationNotFoundError, InvalidAmount) as exc:
        raise click.ClickException(str(exc))

    click.echo(f"Session {session_id}: common cost {result.common_cost}, subtotal {result.total_subtotal}")
    for sp_id, share in result.shares.items():
        click.echo(f"  store purchase {sp_id}: share {share}")
    for item_id, cost in result.item_costs.items():
        click.echo(f"  item {item_id}: {cost}")
    click.echo(f"Drift: {result.apportionment_drift}")


@click.group('system')
def system_group():
    """Database bootstrap commands."""


@system_group.command('init-db')
@with_appcontext
def init_db():
    db.create_all()
    click.echo("Database tables created.")


@system_group.command('reset-db')
@click.option('--yes', is_flag=True, help='Skip confirmation')
@with_appcontext
def reset_db(yes):
    if not yes:
        click.confirm("This will DELETE ALL DATA. Continue?", abort=True)
    db.drop_all()
    db.create_all()
    click.echo("Database reset.")


def register_commands(app):
    app.cli.add_command(allocations_group)
    app.cli.add_command(system_group)
