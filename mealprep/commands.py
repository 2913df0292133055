import click
from datetime import datetime
from flask.cli import with_appcontext
from . import db
from .models import HouseholdInvitation


@click.command('init-db')
@with_appcontext
def init_db_command():
    """Creates all database tables that do not exist yet."""
    db.create_all()
    click.echo("Database tables are up-to-date.")


@click.command('expire-invitations')
@with_appcontext
def expire_invitations_command():
    """Marks every pending invitation past its expiry date as expired."""
    try:
        expired = (HouseholdInvitation.query
                   .filter(HouseholdInvitation.status == 'pending',
                           HouseholdInvitation.expires_at < datetime.utcnow())
                   .all())
        for invitation in expired:
            invitation.status = 'expired'
        db.session.commit()
    except Exception as e:
        db.session.rollback()
        click.echo(f"An error occurred: {e}")
        return

    if expired:
        click.echo(f"Expired {len(expired)} pending invitations.")
    else:
        click.echo("No pending invitations have expired.")
