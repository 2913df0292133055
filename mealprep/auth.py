from flask import Blueprint, jsonify, request, current_app
from flask_login import login_user, logout_user, login_required, current_user
from itsdangerous import BadSignature, SignatureExpired
from . import db, bcrypt, s
from .models import User, Household
from .utils import send_reset_email

auth = Blueprint('auth', __name__)

MIN_PASSWORD_LENGTH = 6


def _credentials():
    data = request.get_json(silent=True) or {}
    email = (data.get('email') or '').strip().lower()
    password = data.get('password') or ''
    return data, email, password


@auth.route('/signup', methods=['POST'])
def signup():
    data, email, password = _credentials()
    if not email or not password:
        return jsonify({'error': 'Email and password are required.'}), 400
    if len(password) < MIN_PASSWORD_LENGTH:
        return jsonify({'error': f'Password must be at least {MIN_PASSWORD_LENGTH} characters.'}), 400
    if User.query.filter_by(email=email).first():
        return jsonify({'error': 'Email address already in use.'}), 409

    display_name = (data.get('displayName') or '').strip() or email.split('@')[0]
    try:
        new_household = Household(name=f"{display_name}'s Household")
        db.session.add(new_household)
        db.session.flush()

        hashed_password = bcrypt.generate_password_hash(password).decode('utf-8')
        user = User(
            email=email,
            password=hashed_password,
            display_name=display_name,
            role='owner',
            household_id=new_household.id
        )
        db.session.add(user)
        db.session.commit()
    except Exception as e:
        db.session.rollback()
        current_app.logger.error(f"Signup failed for {email}: {e}", exc_info=True)
        return jsonify({'error': 'Could not create account.'}), 500

    login_user(user, remember=True)
    current_app.logger.info(f"New account {user.id} created with household {new_household.id}")
    return jsonify({'user': user.to_dict(), 'household': new_household.to_dict()}), 201


@auth.route('/login', methods=['POST'])
def login():
    _, email, password = _credentials()
    user = User.query.filter_by(email=email).first()
    if user and bcrypt.check_password_hash(user.password, password):
        login_user(user, remember=True)
        return jsonify({'user': user.to_dict()})
    return jsonify({'error': 'Invalid email or password.'}), 401


@auth.route('/logout', methods=['POST'])
@login_required
def logout():
    logout_user()
    return jsonify({'success': True})


@auth.route('/me')
@login_required
def me():
    return jsonify({'user': current_user.to_dict()})


@auth.route('/forgot-password', methods=['POST'])
def forgot_password():
    _, email, _ = _credentials()
    if not email:
        return jsonify({'error': 'Email is required.'}), 400

    user = User.query.filter_by(email=email).first()
    if user and not send_reset_email(email):
        current_app.logger.warning(f"Password reset email could not be sent to user {user.id}")
    # Same response either way to prevent user enumeration
    return jsonify({'message': 'If that account exists, a password reset link has been sent.'})


@auth.route('/reset-password/<token>', methods=['POST'])
def reset_password(token):
    try:
        email = s.loads(token, salt='password-reset-salt', max_age=1800)
    except (SignatureExpired, BadSignature):
        return jsonify({'error': 'The password reset link is invalid or has expired.'}), 400

    user = User.query.filter_by(email=email).first()
    if not user:
        return jsonify({'error': 'User not found.'}), 404

    data = request.get_json(silent=True) or {}
    password = data.get('password') or ''
    if len(password) < MIN_PASSWORD_LENGTH:
        return jsonify({'error': f'Password must be at least {MIN_PASSWORD_LENGTH} characters.'}), 400
    if password != data.get('confirmPassword', password):
        return jsonify({'error': 'Passwords do not match.'}), 400

    user.password = bcrypt.generate_password_hash(password).decode('utf-8')
    db.session.commit()
    return jsonify({'message': 'Your password has been updated. Please log in.'})
