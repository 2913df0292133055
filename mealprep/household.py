from datetime import datetime, timedelta
from flask import Blueprint, jsonify, request, current_app
from flask_login import current_user, login_required

from . import db
from .decorators import household_required, owner_required
from .models import (Household, HouseholdInvitation, User, MealEntry, MealPlan, Recipe,
                     ShoppingList, ShoppingListItem, InventoryItem)
from .utils import send_invitation_email

household = Blueprint('household', __name__)

INVITATION_LIFETIME = timedelta(days=7)
ACTIVITY_LIMIT = 20


# --- Profile ---
@household.route('/profile', methods=['GET'])
@login_required
def get_profile():
    current_household = current_user.household
    return jsonify({
        'profile': current_user.to_dict(),
        'household': current_household.to_dict() if current_household else None,
        'members': [m.member_dict() for m in current_household.members] if current_household else [],
        'email': current_user.email,
    })


@household.route('/profile', methods=['PATCH'])
@login_required
def update_profile():
    data = request.get_json(silent=True) or {}
    if 'display_name' in data:
        current_user.display_name = (data['display_name'] or '').strip() or None
    if 'avatar_url' in data:
        current_user.avatar_url = data['avatar_url'] or None
    db.session.commit()
    return jsonify({'profile': current_user.to_dict()})


# --- Household settings ---
@household.route('/household', methods=['PATCH'])
@login_required
@owner_required
def update_household():
    data = request.get_json(silent=True) or {}
    if 'name' in data:
        name = (data['name'] or '').strip()
        if not name:
            return jsonify({'error': 'Household name is required'}), 400
        current_user.household.name = name
    db.session.commit()
    return jsonify({'household': current_user.household.to_dict()})


@household.route('/household/invitations', methods=['GET'])
@login_required
@household_required
def list_invitations():
    invitations = (HouseholdInvitation.query
                   .filter_by(household_id=current_user.household_id, status='pending')
                   .order_by(HouseholdInvitation.created_at.desc())
                   .all())
    return jsonify({'invitations': [i.to_dict() for i in invitations]})


@household.route('/household/invitations', methods=['POST'])
@login_required
@owner_required
def create_invitation():
    data = request.get_json(silent=True) or {}
    email = (data.get('email') or '').strip().lower()
    if not email:
        return jsonify({'error': 'Email is required'}), 400

    if HouseholdInvitation.query.filter_by(household_id=current_user.household_id, email=email,
                                           status='pending').first():
        return jsonify({'error': 'Invitation already sent to this email'}), 400
    if User.query.filter_by(household_id=current_user.household_id, email=email).first():
        return jsonify({'error': 'This email is already a member of your household'}), 400

    invitation = HouseholdInvitation(
        household_id=current_user.household_id,
        email=email,
        invited_by=current_user.id,
        status='pending',
        expires_at=datetime.utcnow() + INVITATION_LIFETIME
    )
    db.session.add(invitation)
    db.session.commit()

    email_sent = send_invitation_email(invitation, current_user.email)
    current_app.logger.info(f"Household {current_user.household_id} invited {email} (email sent: {email_sent})")
    return jsonify({'invitation': invitation.to_dict(), 'emailSent': email_sent}), 201


@household.route('/household/invitations/<int:invitation_id>', methods=['DELETE'])
@login_required
@owner_required
def cancel_invitation(invitation_id):
    invitation = HouseholdInvitation.query.filter_by(
        id=invitation_id, household_id=current_user.household_id).first_or_404(description='Invitation not found')
    db.session.delete(invitation)
    db.session.commit()
    return jsonify({'success': True})


# --- Invitation responses ---
def _expire_if_stale(invitation):
    if invitation.status == 'pending' and invitation.is_expired:
        invitation.status = 'expired'
        db.session.commit()


@household.route('/invitations/<int:invitation_id>', methods=['GET'])
def invitation_details(invitation_id):
    invitation = db.get_or_404(HouseholdInvitation, invitation_id, description='Invitation not found')
    _expire_if_stale(invitation)

    owner = (User.query.filter_by(household_id=invitation.household_id, role='owner')
             .order_by(User.id).first())
    return jsonify({
        'invitation': {
            'id': invitation.id,
            'email': invitation.email,
            'status': invitation.status,
            'expiresAt': invitation.expires_at.isoformat(),
            'householdName': invitation.household.name if invitation.household else 'A household',
            'inviterName': (owner.display_name if owner else None) or 'Someone',
        },
        'currentUserEmail': current_user.email if current_user.is_authenticated else None,
        'isLoggedIn': current_user.is_authenticated,
    })


def _delete_if_empty(household_obj):
    if household_obj and User.query.filter_by(household_id=household_obj.id).count() == 0:
        db.session.delete(household_obj)


@household.route('/invitations/<int:invitation_id>', methods=['POST'])
@household.route('/household/invitations/<int:invitation_id>', methods=['POST'])
@login_required
def respond_to_invitation(invitation_id):
    data = request.get_json(silent=True) or {}
    action = data.get('action')
    if action not in ('accept', 'decline'):
        return jsonify({'error': "Invalid action. Use 'accept' or 'decline'"}), 400

    invitation = db.get_or_404(HouseholdInvitation, invitation_id, description='Invitation not found')
    if invitation.email != current_user.email.lower():
        return jsonify({'error': 'This invitation is not for you'}), 403
    if invitation.status != 'pending':
        return jsonify({'error': 'Invitation has already been processed'}), 400
    if invitation.is_expired:
        _expire_if_stale(invitation)
        return jsonify({'error': 'Invitation has expired'}), 400

    if action == 'decline':
        invitation.status = 'declined'
        db.session.commit()
        return jsonify({'success': True, 'action': 'declined'})

    if current_user.household_id == invitation.household_id:
        return jsonify({'error': 'You are already a member of this household'}), 400

    old_household = current_user.household
    if old_household and current_user.is_owner and len(old_household.members) > 1:
        return jsonify({'error': 'You own a household with other members. Leave your current household first.'}), 400

    member_count = User.query.filter_by(household_id=invitation.household_id).count()
    if member_count >= current_app.config['MAX_HOUSEHOLD_MEMBERS']:
        return jsonify({'error': 'This household is full'}), 400

    try:
        # Assign through the relationship so the old household's member list drops this user
        current_user.household = invitation.household
        current_user.role = 'member'
        invitation.status = 'accepted'
        db.session.flush()
        _delete_if_empty(old_household)
        db.session.commit()
    except Exception as e:
        db.session.rollback()
        current_app.logger.error(f"User {current_user.id} failed to join household {invitation.household_id}: {e}", exc_info=True)
        return jsonify({'error': 'Failed to join household'}), 500

    current_app.logger.info(f"User {current_user.id} joined household {invitation.household_id}")
    return jsonify({'success': True, 'action': 'accepted'})


@household.route('/household/leave', methods=['POST'])
@login_required
@household_required
def leave_household():
    old_household = current_user.household
    if current_user.is_owner and len(old_household.members) > 1:
        return jsonify({'error': 'As the owner, you must transfer ownership or remove all members before leaving'}), 400

    try:
        new_household = Household(name='My Kitchen')
        db.session.add(new_household)
        db.session.flush()

        current_user.household = new_household
        current_user.role = 'owner'
        db.session.flush()
        _delete_if_empty(old_household)
        db.session.commit()
    except Exception as e:
        db.session.rollback()
        current_app.logger.error(f"User {current_user.id} failed to leave household: {e}", exc_info=True)
        return jsonify({'error': 'Failed to leave household'}), 500

    return jsonify({'success': True, 'household': new_household.to_dict()})


# --- Activity feed ---
def _activity(id_, type_, title, timestamp, subtitle=None):
    return {'id': id_, 'type': type_, 'title': title, 'subtitle': subtitle,
            'timestamp': timestamp.isoformat() if timestamp else None}


@household.route('/household/activity', methods=['GET'])
@login_required
@household_required
def household_activity():
    household_id = current_user.household_id
    activities = []

    meal_entries = (MealEntry.query.join(MealPlan)
                    .filter(MealPlan.household_id == household_id)
                    .order_by(MealEntry.created_at.desc()).limit(10).all())
    for e in meal_entries:
        meal_name = (e.recipe.title if e.recipe else None) or e.custom_meal_name or 'a meal'
        activities.append(_activity(f'meal-{e.id}', 'meal_added', f'Added {meal_name} to {e.meal_type}',
                                    e.created_at, subtitle=e.date.isoformat()))

    source_labels = {'url_import': 'Imported from URL', 'ocr': 'Scanned from photo'}
    recipes = (Recipe.query.filter_by(household_id=household_id)
               .order_by(Recipe.created_at.desc()).limit(10).all())
    for r in recipes:
        activities.append(_activity(f'recipe-{r.id}', 'recipe_created', f'Created recipe "{r.title}"',
                                    r.created_at, subtitle=source_labels.get(r.source_type)))

    shopping_items = (ShoppingListItem.query.join(ShoppingList)
                      .filter(ShoppingList.household_id == household_id)
                      .order_by(ShoppingListItem.created_at.desc()).limit(10).all())
    for s in shopping_items:
        if s.is_checked and s.checked_at:
            activities.append(_activity(f'shop-check-{s.id}', 'shopping_checked', f'Checked off "{s.name}"',
                                        s.checked_at))
        activities.append(_activity(f'shop-{s.id}', 'shopping_added', f'Added "{s.name}" to shopping list',
                                    s.created_at))

    inventory_items = (InventoryItem.query.filter_by(household_id=household_id)
                       .order_by(InventoryItem.created_at.desc()).limit(10).all())
    for i in inventory_items:
        activities.append(_activity(f'inv-{i.id}', 'inventory_added', f'Added {i.name} to {i.location}',
                                    i.created_at, subtitle='Via AI scan' if i.source == 'ai_scan' else None))

    activities.sort(key=lambda a: a['timestamp'] or '', reverse=True)
    return jsonify({'activities': activities[:ACTIVITY_LIMIT]})
