"""
Tests for the flask CLI commands.
"""

from datetime import datetime, timedelta

from mealprep import db
from mealprep.models import HouseholdInvitation
from conftest import make_household


def test_init_db(app):
    result = app.test_cli_runner().invoke(args=['init-db'])
    assert result.exit_code == 0
    assert 'Database tables are up-to-date.' in result.output


def test_expire_invitations(app):
    with app.app_context():
        household = make_household()
        now = datetime.utcnow()
        db.session.add_all([
            HouseholdInvitation(household_id=household.id, email='old@example.com', status='pending',
                                expires_at=now - timedelta(days=1)),
            HouseholdInvitation(household_id=household.id, email='new@example.com', status='pending',
                                expires_at=now + timedelta(days=6)),
            HouseholdInvitation(household_id=household.id, email='done@example.com', status='accepted',
                                expires_at=now - timedelta(days=3)),
        ])
        db.session.commit()

    runner = app.test_cli_runner()
    result = runner.invoke(args=['expire-invitations'])
    assert 'Expired 1 pending invitations.' in result.output

    with app.app_context():
        statuses = {i.email: i.status for i in HouseholdInvitation.query.all()}
    assert statuses == {'old@example.com': 'expired', 'new@example.com': 'pending', 'done@example.com': 'accepted'}

    result = runner.invoke(args=['expire-invitations'])
    assert 'No pending invitations have expired.' in result.output
