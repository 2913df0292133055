from functools import wraps
from flask import jsonify
from flask_login import current_user


def household_required(f):
    """
    A decorator to verify that the logged-in user belongs to a household.
    Every household-scoped query relies on current_user.household_id being set.
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        if not current_user.household_id:
            return jsonify({'error': 'No household found'}), 404
        return f(*args, **kwargs)
    return decorated_function


def owner_required(f):
    """
    A decorator restricting household management actions to the household owner.
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        if not current_user.household_id:
            return jsonify({'error': 'No household found'}), 404
        if not current_user.is_owner:
            return jsonify({'error': 'Only the household owner can do this'}), 403
        return f(*args, **kwargs)
    return decorated_function
