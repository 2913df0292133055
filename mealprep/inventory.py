import base64
import binascii
import re
from datetime import datetime
from flask import Blueprint, jsonify, request, current_app
from flask_login import current_user, login_required

from . import db, ai, INVENTORY_LOCATIONS
from .decorators import household_required
from .models import InventoryItem, FridgeScan, Recipe
from .prompts import recipe_suggestion_prompt
from .utils import normalize_name, optional_quantity, parse_iso_date

inventory = Blueprint('inventory', __name__)

MIN_SCAN_CONFIDENCE = 0.5
_DATA_URL = re.compile(r'^data:([^;]+);base64,', re.IGNORECASE)


def _find_same_item(name, location):
    key = normalize_name(name)
    candidates = InventoryItem.query.filter_by(household_id=current_user.household_id, location=location).all()
    return next((i for i in candidates if normalize_name(i.name) == key), None)


def _get_item_or_404(item_id):
    return InventoryItem.query.filter_by(id=item_id, household_id=current_user.household_id).first_or_404(
        description='Item not found')


@inventory.route('/inventory', methods=['GET'])
@login_required
@household_required
def list_inventory():
    location = request.args.get('location')
    query = InventoryItem.query.filter_by(household_id=current_user.household_id)
    if location:
        query = query.filter_by(location=location)
    items = query.order_by(InventoryItem.name.asc()).all()

    grouped = {loc: [i.to_dict() for i in items if i.location == loc] for loc in INVENTORY_LOCATIONS}
    return jsonify({'items': [i.to_dict() for i in items], 'grouped': grouped})


@inventory.route('/inventory', methods=['POST'])
@login_required
@household_required
def add_inventory_item():
    data = request.get_json(silent=True) or {}
    name = (data.get('name') or '').strip()
    location = data.get('location')
    if not name:
        return jsonify({'error': 'Name is required'}), 400
    if location not in INVENTORY_LOCATIONS:
        return jsonify({'error': 'Valid location is required'}), 400
    quantity = optional_quantity(data.get('quantity'))

    existing = _find_same_item(name, location)
    if existing:
        existing.quantity = (existing.quantity or 0) + (quantity or 1)
        db.session.commit()
        return jsonify({'item': existing.to_dict()})

    item = InventoryItem(
        household_id=current_user.household_id,
        name=name,
        quantity=quantity or None,
        unit=data.get('unit') or None,
        location=location,
        expiry_date=parse_iso_date(data.get('expiry_date')),
        source='manual'
    )
    db.session.add(item)
    db.session.commit()
    return jsonify({'item': item.to_dict()}), 201


@inventory.route('/inventory/<int:item_id>', methods=['PATCH'])
@login_required
@household_required
def update_inventory_item(item_id):
    item = _get_item_or_404(item_id)
    data = request.get_json(silent=True) or {}

    if 'name' in data:
        if not (data['name'] or '').strip():
            return jsonify({'error': 'Name is required'}), 400
        item.name = data['name'].strip()
    if 'quantity' in data:
        quantity = optional_quantity(data['quantity'])
        item.quantity = max(quantity, 0.0) if quantity is not None else None
    if 'unit' in data:
        item.unit = data['unit'] or None
    if 'location' in data:
        if data['location'] not in INVENTORY_LOCATIONS:
            return jsonify({'error': 'Valid location is required'}), 400
        item.location = data['location']
    if 'expiry_date' in data:
        item.expiry_date = parse_iso_date(data['expiry_date'])

    db.session.commit()
    return jsonify({'item': item.to_dict()})


@inventory.route('/inventory/<int:item_id>', methods=['DELETE'])
@login_required
@household_required
def delete_inventory_item(item_id):
    item = _get_item_or_404(item_id)
    db.session.delete(item)
    db.session.commit()
    return jsonify({'success': True})


def _decode_image(image):
    """Accepts raw base64 or a data URL; returns (bytes, media type)."""
    media_type = 'image/jpeg'
    match = _DATA_URL.match(image)
    if match:
        media_type = match.group(1)
    payload = image.split(',', 1)[1] if ',' in image else image
    return base64.b64decode(payload, validate=True), media_type


def _confidence(value):
    try:
        return float(value)
    except (TypeError, ValueError):
        return 0.0


@inventory.route('/inventory/scan', methods=['POST'])
@login_required
@household_required
def scan_inventory():
    data = request.get_json(silent=True) or {}
    image = data.get('image')
    location = data.get('location') or 'fridge'
    add_to_inventory = data.get('addToInventory', False)

    if not image or not isinstance(image, str):
        return jsonify({'error': 'Image is required'}), 400
    if not isinstance(add_to_inventory, bool):
        return jsonify({'error': 'addToInventory must be true or false'}), 400
    if location not in INVENTORY_LOCATIONS:
        return jsonify({'error': 'Valid location is required'}), 400
    try:
        image_bytes, media_type = _decode_image(image)
    except (binascii.Error, ValueError):
        return jsonify({'error': 'Image must be base64 encoded'}), 400

    try:
        scan_result = ai.scan_inventory_image(image_bytes, media_type)
    except Exception as e:
        current_app.logger.error(f"Inventory scan failed for household {current_user.household_id}: {e}", exc_info=True)
        return jsonify({'error': 'Failed to scan image'}), 500

    detected = scan_result['items']
    added_items = []
    try:
        if add_to_inventory:
            for scanned in detected:
                name = (scanned.get('name') or '').strip() if isinstance(scanned, dict) else ''
                confidence = _confidence(scanned.get('confidence')) if name else 0.0
                if not name or confidence < MIN_SCAN_CONFIDENCE:
                    continue
                quantity = optional_quantity(scanned.get('quantity'))

                existing = _find_same_item(name, location)
                if existing:
                    existing.quantity = (existing.quantity or 0) + (quantity or 1)
                    continue

                new_item = InventoryItem(
                    household_id=current_user.household_id,
                    name=name,
                    quantity=quantity or None,
                    unit=scanned.get('unit') or None,
                    location=location,
                    source='ai_scan',
                    confidence_score=confidence
                )
                db.session.add(new_item)
                db.session.flush()
                added_items.append(new_item)

        db.session.add(FridgeScan(
            household_id=current_user.household_id,
            scanned_by=current_user.id,
            scan_type=location,
            raw_ai_response=scan_result,
            items_detected=len(detected),
            status='completed',
            processed_at=datetime.utcnow()
        ))
        db.session.commit()
    except Exception as e:
        db.session.rollback()
        current_app.logger.error(f"Saving scan results failed for household {current_user.household_id}: {e}", exc_info=True)
        return jsonify({'error': 'Failed to scan image'}), 500

    current_app.logger.info(
        f"Inventory scan for household {current_user.household_id}: {len(detected)} detected, {len(added_items)} added")
    return jsonify({
        'scanResult': scan_result,
        'addedItems': [i.to_dict() for i in added_items],
        'itemsDetected': len(detected),
    })


@inventory.route('/suggestions', methods=['GET'])
@login_required
@household_required
def get_suggestions():
    inventory_items = InventoryItem.query.filter_by(household_id=current_user.household_id).all()
    if not inventory_items:
        return jsonify({'error': 'No inventory items found. Add some items first!'}), 400

    user_recipes = (Recipe.query.filter_by(household_id=current_user.household_id)
                    .order_by(Recipe.created_at.desc())
                    .limit(20)
                    .all())

    try:
        suggestions = ai.suggest_recipes(recipe_suggestion_prompt(inventory_items, user_recipes))
    except Exception as e:
        current_app.logger.error(f"Recipe suggestions failed for household {current_user.household_id}: {e}", exc_info=True)
        return jsonify({'error': 'Failed to parse suggestions'}), 500

    return jsonify(suggestions)
