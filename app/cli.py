"""
Custom Flask CLI commands.

These commands are registered with the app via ``register_commands()``
in the application factory. Run them with ``flask <command_name>``;
the scheduled ones are meant for cron.

Usage::

    flask db-check               # Verify database connectivity and schema
    flask expire-bookings        # Cancel bookings past their acceptance deadline
    flask process-notifications  # Deliver queued email/SMS notifications
    flask run-payouts            # Create this period's automated payout batch
"""

import click
from flask.cli import with_appcontext
from sqlalchemy import inspect
from sqlalchemy.exc import SQLAlchemyError

from app.extensions import db

# Tables the application cannot run without.
_REQUIRED_TABLES = (
    "app_user",
    "role",
    "permission",
    "provider_profile",
    "service",
    "booking",
    "notification",
    "payout",
    "audit_log",
)


@click.command("db-check")
@with_appcontext
def db_check_command():
    """
    Verify database connectivity and confirm the schema exists.

    Runs a trivial query, lists the application tables it finds and
    counts the seeded roles and permissions. Useful for confirming the
    .env file is correct and ``flask db upgrade`` has been run.
    """
    click.echo("=" * 60)
    click.echo("  Longa — Database Connectivity Check")
    click.echo("=" * 60)

    # Show the connection string with the password masked.
    db_uri = db.engine.url.render_as_string(hide_password=True)
    click.echo(f"\n  Connection string: {db_uri}\n")

    # -- Step 1: Basic connectivity ----------------------------------------
    click.echo("[1/3] Testing connection...")
    try:
        row = db.session.execute(db.text("SELECT 1")).fetchone()
    except SQLAlchemyError as exc:
        click.secho(f"      ✗ Connection failed: {exc}", fg="red")
        click.echo("\n  Troubleshooting tips:")
        click.echo("    - Is PostgreSQL running and reachable?")
        click.echo("    - Does your .env DATABASE_URL match your server config?")
        click.echo("    - Does the database exist (createdb longa_dev)?")
        raise SystemExit(1)
    if not row or row[0] != 1:
        click.secho("      ✗ Unexpected result from test query.", fg="red")
        raise SystemExit(1)
    click.secho("      ✓ Connected successfully.", fg="green")

    # -- Step 2: Tables ----------------------------------------------------
    click.echo("[2/3] Checking tables...")
    existing = set(inspect(db.engine).get_table_names())
    missing = [name for name in _REQUIRED_TABLES if name not in existing]
    click.echo(f"      Found {len(existing)} tables.")
    if missing:
        click.secho(f"      ✗ Missing tables: {', '.join(missing)}", fg="red")
        click.echo("        Have you run 'flask db upgrade'?")
        raise SystemExit(1)
    click.secho("      ✓ All required tables present.", fg="green")

    # -- Step 3: Seed data -------------------------------------------------
    click.echo("[3/3] Checking seed data...")
    from app.models.user import Permission, Role  # pylint: disable=import-outside-toplevel

    role_count = Role.query.count()
    permission_count = Permission.query.count()
    click.echo(f"      Seed data: {role_count} roles, {permission_count} permissions")
    if role_count >= 3 and permission_count > 0:
        click.secho("      ✓ Seed data looks good.", fg="green")
    else:
        click.secho("      ⚠ Seed data may be incomplete. Run 'flask seed-roles'.", fg="yellow")

    click.echo("\n" + "=" * 60)
    click.secho("  All checks passed. Database is ready.", fg="green", bold=True)
    click.echo("=" * 60)


@click.command("expire-bookings")
@with_appcontext
def expire_bookings_command():
    """Cancel pending bookings nobody accepted before their deadline."""
    from app.services import booking_service  # pylint: disable=import-outside-toplevel

    count = booking_service.expire_unaccepted_bookings()
    click.echo(f"Expired {count} booking(s).")


@click.command("process-notifications")
@click.option("--limit", type=int, default=None, help="Maximum notifications to send.")
@with_appcontext
def process_notifications_command(limit: int | None):
    """Deliver queued email and SMS notifications."""
    from app.services import notification_service  # pylint: disable=import-outside-toplevel

    report = notification_service.process_pending_notifications(limit)
    click.echo(
        f"Processed: {report.processed}  "
        f"Delivered: {report.delivered}  "
        f"Failed: {report.failed}"
    )
    for error in report.errors:
        click.secho(f"  {error}", fg="red")


@click.command("run-payouts")
@with_appcontext
def run_payouts_command():
    """Create the automated payout batch for all providers with unpaid work."""
    from app.services import payout_service  # pylint: disable=import-outside-toplevel

    result = payout_service.trigger_automated_payouts()
    if result.batch is None:
        click.echo("Nothing to pay out.")
    else:
        click.echo(
            f"Batch {result.batch.batch_name}: {result.batch.total_payouts} payout(s), "
            f"total {result.batch.total_amount} ({result.batch.status})"
        )
    if result.skipped_providers:
        click.echo(
            f"Skipped {len(result.skipped_providers)} provider(s) below their minimum."
        )


def register_commands(app):
    """Register all custom CLI commands with the Flask application."""
    app.cli.add_command(db_check_command)
    app.cli.add_command(expire_bookings_command)
    app.cli.add_command(process_notifications_command)
    app.cli.add_command(run_payouts_command)
