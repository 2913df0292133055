from datetime import datetime
from flask import Blueprint, jsonify, request, current_app
from flask_login import current_user, login_required

from . import db
from .aggregator import generate_shopping_list, get_active_list, sort_items
from .decorators import household_required
from .models import ShoppingList, ShoppingListItem
from .utils import normalize_name, optional_quantity, parse_iso_date

shopping = Blueprint('shopping', __name__)


def _list_payload(shopping_list):
    return shopping_list.to_dict(items=sort_items(shopping_list.items))


def _get_item_or_404(item_id):
    return (ShoppingListItem.query.join(ShoppingList)
            .filter(ShoppingListItem.id == item_id, ShoppingList.household_id == current_user.household_id)
            .first_or_404(description='Item not found'))


@shopping.route('', methods=['GET'])
@login_required
@household_required
def get_shopping_list():
    shopping_list = get_active_list(current_user.household_id)
    db.session.commit()
    return jsonify({'shoppingList': _list_payload(shopping_list)})


@shopping.route('', methods=['POST'])
@login_required
@household_required
def add_item():
    data = request.get_json(silent=True) or {}
    name = (data.get('name') or '').strip()
    if not name:
        return jsonify({'error': 'Name is required'}), 400
    quantity = optional_quantity(data.get('quantity'))

    try:
        shopping_list = get_active_list(current_user.household_id)
        key = normalize_name(name)
        existing = next((i for i in shopping_list.items if normalize_name(i.name) == key), None)

        if existing:
            existing.quantity = (existing.quantity or 0) + (quantity or 1)
            db.session.commit()
            return jsonify({'item': existing.to_dict()})

        item = ShoppingListItem(
            shopping_list_id=shopping_list.id,
            name=name,
            quantity=quantity or None,
            unit=data.get('unit') or None,
            category=data.get('category') or 'Other',
            notes=data.get('notes') or None,
            source_recipe_ids=[],
            planned_quantities={},
            is_manual=True,
            is_checked=False
        )
        db.session.add(item)
        db.session.commit()
    except Exception as e:
        db.session.rollback()
        current_app.logger.error(f"Error adding shopping item for household {current_user.household_id}: {e}", exc_info=True)
        return jsonify({'error': 'Failed to create item'}), 500

    return jsonify({'item': item.to_dict()}), 201


@shopping.route('/generate', methods=['POST'])
@login_required
@household_required
def generate():
    data = request.get_json(silent=True) or {}
    week_start = parse_iso_date(data.get('weekStart'))
    if data.get('weekStart') and not week_start:
        return jsonify({'error': 'weekStart must be a YYYY-MM-DD date'}), 400

    deduct_inventory = data.get('deductInventory', False)
    if not isinstance(deduct_inventory, bool):
        return jsonify({'error': 'deductInventory must be true or false'}), 400

    shopping_list, items_added = generate_shopping_list(
        current_user.household_id,
        week_start,
        deduct_inventory=deduct_inventory
    )
    return jsonify({'shoppingList': _list_payload(shopping_list), 'itemsAdded': items_added})


@shopping.route('/items/<int:item_id>', methods=['PATCH'])
@login_required
@household_required
def update_item(item_id):
    item = _get_item_or_404(item_id)
    data = request.get_json(silent=True) or {}

    if isinstance(data.get('is_checked'), bool):
        item.is_checked = data['is_checked']
        item.checked_at = datetime.utcnow() if item.is_checked else None
        item.checked_by = current_user.id if item.is_checked else None
    if 'quantity' in data:
        item.quantity = optional_quantity(data['quantity'])
    if 'unit' in data:
        item.unit = data['unit'] or None
    if 'category' in data:
        item.category = data['category'] or 'Other'
    if 'notes' in data:
        item.notes = data['notes']
    if 'name' in data:
        if not (data['name'] or '').strip():
            return jsonify({'error': 'Name is required'}), 400
        item.name = data['name'].strip()

    db.session.commit()
    return jsonify({'item': item.to_dict()})


@shopping.route('/items/<int:item_id>', methods=['DELETE'])
@login_required
@household_required
def delete_item(item_id):
    item = _get_item_or_404(item_id)
    db.session.delete(item)
    db.session.commit()
    return jsonify({'success': True})


@shopping.route('/clear-checked', methods=['POST'])
@login_required
@household_required
def clear_checked():
    shopping_list = get_active_list(current_user.household_id, create=False)
    if not shopping_list:
        return jsonify({'error': 'No active shopping list'}), 404

    items_removed = (ShoppingListItem.query
                     .filter_by(shopping_list_id=shopping_list.id, is_checked=True)
                     .delete(synchronize_session=False))
    db.session.commit()
    return jsonify({'success': True, 'itemsRemoved': items_removed})
