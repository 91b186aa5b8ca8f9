"""
Flask CLI commands for database setup and data repair.
"""

from datetime import date

import click

from app.extensions import db
from app.utils.exam_periods import seed_default_periods
from app.utils.settings import get_thresholds


@click.command('init-db')
def init_db_command():
    """Create all database tables that do not exist yet."""
    db.create_all()
    click.echo("✓ Database tables created.")


@click.command('init-periods')
@click.option('--year', type=int, default=None, help='Academic year to seed (defaults to the current year)')
def init_periods_command(year):
    """Seed the default exam periods for a year, skipping keys that already exist."""
    year = year or date.today().year
    try:
        created = seed_default_periods(year)
        db.session.commit()
    except Exception as e:
        db.session.rollback()
        click.echo(f"✗ Error seeding periods: {str(e)}", err=True)
        raise click.Abort()

    if not created:
        click.echo(f"✓ All default periods for {year} already exist.")
        return
    click.echo(f"✓ Created {len(created)} exam period(s) for {year}:")
    for key in created:
        click.echo(f"  - {key}")


@click.command('fix-redemptions')
@click.option('--dry-run', is_flag=True, help='Preview changes without modifying the database')
def fix_redemptions_command(dry_run):
    """
    Move redemption deductions that were stored against a specific period
    to the global scope, so they reduce the student's total balance.
    """
    from student_requests import find_misscoped_redemptions, fix_redemption_scopes

    adjustments = find_misscoped_redemptions()
    if not adjustments:
        click.echo("✓ No redemption adjustments to fix.")
        return

    for adjustment in adjustments:
        click.echo(
            f"  - #{adjustment.id} {adjustment.student_id}: {adjustment.amount} "
            f"({adjustment.period_key} -> __GLOBAL__)"
        )

    if dry_run:
        click.echo(f"🔍 DRY RUN: {len(adjustments)} adjustment(s) would be updated.")
        return

    try:
        fixed = fix_redemption_scopes()
    except Exception as e:
        db.session.rollback()
        click.echo(f"✗ Error during commit: {str(e)}", err=True)
        raise click.Abort()
    click.echo(f"✓ Updated {len(fixed)} redemption adjustment(s) to the global scope.")


@click.command('fix-missing-overrides')
@click.option('--dry-run', is_flag=True, help='Preview changes without modifying the database')
def fix_missing_overrides_command(dry_run):
    """Create the qualified override for approved override requests that lack one."""
    from student_requests import find_missing_overrides, fix_missing_overrides

    missing = find_missing_overrides()
    if not missing:
        click.echo("✓ No missing overrides found.")
        return

    for student_request in missing:
        click.echo(
            f"  - request #{student_request.id} {student_request.student_id} "
            f"day {student_request.day_number} ({student_request.override_date.isoformat()})"
        )

    if dry_run:
        click.echo(f"🔍 DRY RUN: {len(missing)} override(s) would be created.")
        return

    try:
        fixed = fix_missing_overrides()
    except Exception as e:
        db.session.rollback()
        click.echo(f"✗ Error during commit: {str(e)}", err=True)
        raise click.Abort()
    click.echo(f"✓ Created {len(fixed)} missing override(s).")


@click.command('recompute-records')
@click.option('--period', 'period_key', default=None, help='Only recompute records for this period key')
def recompute_records_command(period_key):
    """Re-qualify stored day logs with the configured thresholds and refresh totals."""
    from records import recompute_records

    thresholds = get_thresholds()
    try:
        updated = recompute_records(thresholds, period_key=period_key)
    except Exception as e:
        db.session.rollback()
        click.echo(f"✗ Error recomputing records: {str(e)}", err=True)
        raise click.Abort()
    click.echo(
        f"✓ Recomputed {updated} record(s) "
        f"(min {thresholds.min_minutes} mins, {thresholds.min_topics} topics)."
    )


def init_app(app):
    """Register CLI commands with Flask app."""
    app.cli.add_command(init_db_command)
    app.cli.add_command(init_periods_command)
    app.cli.add_command(fix_redemptions_command)
    app.cli.add_command(fix_missing_overrides_command)
    app.cli.add_command(recompute_records_command)
