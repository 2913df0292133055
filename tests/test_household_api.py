"""
Tests for profile, household settings, invitations and the activity feed.
"""

from datetime import datetime, timedelta

from mealprep import db
from mealprep.models import Household, HouseholdInvitation, User


def invite(client, email):
    response = client.post('/api/household/invitations', json={'email': email})
    assert response.status_code == 201, response.get_json()
    return response.get_json()['invitation']


class TestProfile:

    def test_get_profile(self, auth_client):
        body = auth_client.get('/api/profile').get_json()
        assert body['email'] == 'cook@example.com'
        assert body['profile']['display_name'] == 'Cook'
        assert body['household']['name'] == "Cook's Household"
        assert [m['role'] for m in body['members']] == ['owner']

    def test_update_profile(self, auth_client):
        body = auth_client.patch('/api/profile', json={'display_name': '  Chef ', 'avatar_url': 'http://x/a.png'}).get_json()
        assert body['profile']['display_name'] == 'Chef'
        assert body['profile']['avatar_url'] == 'http://x/a.png'

    def test_rename_household(self, auth_client):
        response = auth_client.patch('/api/household', json={'name': 'The Kitchen'})
        assert response.get_json()['household']['name'] == 'The Kitchen'
        assert auth_client.patch('/api/household', json={'name': '  '}).status_code == 400


class TestInvitations:

    def test_create_and_list(self, auth_client):
        response = auth_client.post('/api/household/invitations', json={'email': ' Friend@Example.com '})
        assert response.status_code == 201
        body = response.get_json()
        assert body['invitation']['email'] == 'friend@example.com'
        assert body['invitation']['status'] == 'pending'
        assert body['emailSent'] is False

        listed = auth_client.get('/api/household/invitations').get_json()['invitations']
        assert [i['email'] for i in listed] == ['friend@example.com']

    def test_duplicate_pending_invitation(self, auth_client):
        invite(auth_client, 'friend@example.com')
        response = auth_client.post('/api/household/invitations', json={'email': 'friend@example.com'})
        assert response.status_code == 400
        assert response.get_json() == {'error': 'Invitation already sent to this email'}

    def test_cannot_invite_existing_member(self, auth_client):
        response = auth_client.post('/api/household/invitations', json={'email': 'cook@example.com'})
        assert response.status_code == 400
        assert response.get_json() == {'error': 'This email is already a member of your household'}

    def test_cancel_invitation(self, auth_client):
        invitation = invite(auth_client, 'friend@example.com')
        assert auth_client.delete(f"/api/household/invitations/{invitation['id']}").get_json() == {'success': True}
        assert auth_client.get('/api/household/invitations').get_json()['invitations'] == []

    def test_public_details(self, auth_client, client):
        invitation = invite(auth_client, 'friend@example.com')
        body = client.get(f"/api/invitations/{invitation['id']}").get_json()
        assert body['invitation']['householdName'] == "Cook's Household"
        assert body['invitation']['inviterName'] == 'Cook'
        assert body['invitation']['status'] == 'pending'
        assert body['isLoggedIn'] is False
        assert body['currentUserEmail'] is None

    def test_stale_invitation_is_marked_expired(self, app, auth_client, make_client):
        invitation = invite(auth_client, 'friend@example.com')
        with app.app_context():
            stored = db.session.get(HouseholdInvitation, invitation['id'])
            stored.expires_at = datetime.utcnow() - timedelta(days=1)
            db.session.commit()

        friend = make_client('friend@example.com')
        assert friend.get(f"/api/invitations/{invitation['id']}").get_json()['invitation']['status'] == 'expired'
        response = friend.post(f"/api/invitations/{invitation['id']}", json={'action': 'accept'})
        assert response.status_code == 400

    def test_accept_moves_user_and_drops_empty_household(self, app, auth_client, make_client):
        invitation = invite(auth_client, 'friend@example.com')
        friend = make_client('friend@example.com', display_name='Friend')
        old_household_id = friend.account['household']['id']

        response = friend.post(f"/api/invitations/{invitation['id']}", json={'action': 'accept'})
        assert response.get_json() == {'success': True, 'action': 'accepted'}

        profile = friend.get('/api/profile').get_json()
        assert profile['household']['id'] == auth_client.account['household']['id']
        assert profile['profile']['role'] == 'member'
        assert [m['display_name'] for m in profile['members']] == ['Cook', 'Friend']
        with app.app_context():
            assert db.session.get(Household, old_household_id) is None

    def test_members_share_recipes(self, auth_client, make_client):
        auth_client.post('/api/recipes', json={'title': 'Shared Stew'})
        invitation = invite(auth_client, 'friend@example.com')
        friend = make_client('friend@example.com')
        friend.post(f"/api/household/invitations/{invitation['id']}", json={'action': 'accept'})

        titles = [r['title'] for r in friend.get('/api/recipes').get_json()['recipes']]
        assert titles == ['Shared Stew']

    def test_decline(self, auth_client, make_client):
        invitation = invite(auth_client, 'friend@example.com')
        friend = make_client('friend@example.com')
        response = friend.post(f"/api/invitations/{invitation['id']}", json={'action': 'decline'})
        assert response.get_json() == {'success': True, 'action': 'declined'}

        again = friend.post(f"/api/invitations/{invitation['id']}", json={'action': 'accept'})
        assert again.status_code == 400
        assert again.get_json() == {'error': 'Invitation has already been processed'}

    def test_only_the_invitee_can_respond(self, auth_client, make_client):
        invitation = invite(auth_client, 'friend@example.com')
        stranger = make_client('stranger@example.com')
        response = stranger.post(f"/api/invitations/{invitation['id']}", json={'action': 'accept'})
        assert response.status_code == 403

    def test_invalid_action(self, auth_client, make_client):
        invitation = invite(auth_client, 'friend@example.com')
        friend = make_client('friend@example.com')
        assert friend.post(f"/api/invitations/{invitation['id']}", json={'action': 'maybe'}).status_code == 400

    def test_full_household_rejects_accept(self, app, auth_client, make_client):
        app.config['MAX_HOUSEHOLD_MEMBERS'] = 1
        invitation = invite(auth_client, 'friend@example.com')
        friend = make_client('friend@example.com')
        response = friend.post(f"/api/invitations/{invitation['id']}", json={'action': 'accept'})
        assert response.status_code == 400
        assert response.get_json() == {'error': 'This household is full'}

    def test_members_cannot_manage_household(self, auth_client, make_client):
        invitation = invite(auth_client, 'friend@example.com')
        friend = make_client('friend@example.com')
        friend.post(f"/api/invitations/{invitation['id']}", json={'action': 'accept'})

        assert friend.patch('/api/household', json={'name': 'Mine now'}).status_code == 403
        assert friend.post('/api/household/invitations', json={'email': 'x@example.com'}).status_code == 403


class TestLeave:

    def test_member_leaves_to_new_household(self, app, auth_client, make_client):
        invitation = invite(auth_client, 'friend@example.com')
        friend = make_client('friend@example.com')
        friend.post(f"/api/invitations/{invitation['id']}", json={'action': 'accept'})

        body = friend.post('/api/household/leave').get_json()
        assert body['success'] is True
        assert body['household']['name'] == 'My Kitchen'
        assert friend.get('/api/profile').get_json()['profile']['role'] == 'owner'

        members = auth_client.get('/api/profile').get_json()['members']
        assert len(members) == 1

    def test_owner_with_members_cannot_leave(self, auth_client, make_client):
        invitation = invite(auth_client, 'friend@example.com')
        friend = make_client('friend@example.com')
        friend.post(f"/api/invitations/{invitation['id']}", json={'action': 'accept'})
        assert auth_client.post('/api/household/leave').status_code == 400

    def test_sole_owner_leaving_drops_old_household(self, app, auth_client):
        old_id = auth_client.account['household']['id']
        auth_client.post('/api/household/leave')
        with app.app_context():
            assert db.session.get(Household, old_id) is None
            assert User.query.filter_by(email='cook@example.com').one().household.name == 'My Kitchen'


class TestActivity:

    def test_activity_feed(self, auth_client):
        auth_client.post('/api/recipes', json={'title': 'Chili'})
        auth_client.post('/api/shopping-lists', json={'name': 'Beans'})
        auth_client.post('/api/inventory', json={'name': 'Rice', 'location': 'pantry'})
        auth_client.post('/api/meal-plans', json={'date': '2025-01-06', 'mealType': 'dinner', 'customMealName': 'Tacos'})

        activities = auth_client.get('/api/household/activity').get_json()['activities']
        types = {a['type'] for a in activities}
        assert types == {'recipe_created', 'shopping_added', 'inventory_added', 'meal_added'}
        assert any(a['title'] == 'Added Tacos to dinner' for a in activities)
