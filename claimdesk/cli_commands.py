"""
Flask CLI commands for ledger maintenance.

Commands:
- flask init-db: Create the database tables
- flask ledger-summary: Print an assessment's ledger and approved totals
"""

import click
from flask import current_app
from claimdesk.database import create_all, get_session
from claimdesk.exceptions import NotFoundError
from claimdesk.services import ledger_service
from claimdesk.services.totals_service import build_ledger_view
from claimdesk.utils.formatters import money_za, percent, datetime_za


def init_cli_commands(app):
    """Register CLI commands with Flask app."""

    @app.cli.command('init-db')
    def init_db_command():
        """Create all tables that do not exist yet."""
        try:
            create_all()
            click.echo(click.style('Database tables created.', fg='green'))
        except Exception as e:
            click.echo(click.style(f'Error creating tables: {e}', fg='red'))
            raise SystemExit(1)

    @app.cli.command('ledger-summary')
    @click.option('--assessment-id', required=True, type=int, help='Assessment ID')
    def ledger_summary(assessment_id):
        """Print the additionals ledger of an assessment in audit order."""
        db_session = get_session()
        symbol = current_app.config.get('CURRENCY_SYMBOL', 'R')

        try:
            assessment = ledger_service.get_assessment(db_session, assessment_id)
        except NotFoundError as e:
            click.echo(click.style(e.message, fg='red'))
            raise SystemExit(1)

        items = ledger_service.list_line_items(db_session, assessment_id)
        view = build_ledger_view(items, assessment.vat_percentage)

        click.echo(click.style(f'Assessment {assessment.assessment_number}', bold=True))
        click.echo(f'  Created: {datetime_za(assessment.created_at)}')
        for row in view['line_items']:
            badges = []
            if row['is_reversed']:
                badges.append('reversed')
            if row['is_removed']:
                badges.append('removed')
            badge = f" [{', '.join(badges)}]" if badges else ''
            click.echo(
                f"  #{row['id']:<5} {row['action']:<9} {row['status']:<9} "
                f"{money_za(row['amount'], symbol):>16}  {row['description']}{badge}"
            )

        totals = view['totals']
        click.echo('')
        click.echo(f"  Estimate subtotal:    {money_za(totals['estimate_subtotal'], symbol)}")
        click.echo(f"  Additionals subtotal: {money_za(totals['additionals_subtotal'], symbol)}")
        click.echo(f"  VAT ({percent(totals['vat_percentage'])}):       {money_za(totals['vat_amount_approved'], symbol)}")
        click.echo(click.style(f"  Total approved:       {money_za(totals['total_approved'], symbol)}", bold=True))
