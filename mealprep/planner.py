from flask import Blueprint, jsonify, request, current_app
from flask_login import current_user, login_required

from . import db, MEAL_TYPES
from .decorators import household_required
from .errors import BadRequest, NotFound
from .models import MealPlan, MealEntry, Recipe
from .utils import start_of_week, parse_iso_date

planner = Blueprint('planner', __name__)


def get_or_create_plan(household_id, week_start):
    """Returns the household's plan for the week holding ``week_start``, adding one if needed."""
    week_start = start_of_week(week_start)
    meal_plan = MealPlan.query.filter_by(household_id=household_id, week_start=week_start).first()
    if not meal_plan:
        meal_plan = MealPlan(household_id=household_id, week_start=week_start)
        db.session.add(meal_plan)
        db.session.flush()
    return meal_plan


def _validated_multiplier(value):
    if value is None:
        return 1
    try:
        multiplier = float(value)
    except (TypeError, ValueError):
        raise BadRequest('servingsMultiplier must be a number')
    if multiplier <= 0:
        raise BadRequest('servingsMultiplier must be greater than zero')
    return multiplier


def _validated_recipe_id(recipe_id):
    if recipe_id in (None, ''):
        return None
    recipe = Recipe.query.filter_by(id=recipe_id, household_id=current_user.household_id).first()
    if not recipe:
        raise NotFound('Recipe not found')
    return recipe.id


def _get_entry_or_404():
    entry_id = request.args.get('entryId', type=int)
    if not entry_id:
        raise BadRequest('Entry ID required')
    entry = (MealEntry.query.join(MealPlan)
             .filter(MealEntry.id == entry_id, MealPlan.household_id == current_user.household_id)
             .first())
    if not entry:
        raise NotFound('Meal entry not found')
    return entry


@planner.route('', methods=['GET'])
@login_required
@household_required
def get_meal_plan():
    week_param = request.args.get('weekStart')
    week_start = parse_iso_date(week_param)
    if week_param and not week_start:
        return jsonify({'error': 'weekStart must be a YYYY-MM-DD date'}), 400

    meal_plan = get_or_create_plan(current_user.household_id, week_start)
    db.session.commit()

    return jsonify({
        'mealPlan': meal_plan.to_dict(),
        'entries': [entry.to_dict() for entry in meal_plan.entries],
    })


@planner.route('', methods=['POST'])
@login_required
@household_required
def create_entry():
    data = request.get_json(silent=True) or {}

    entry_date = parse_iso_date(data.get('date'))
    if not entry_date:
        return jsonify({'error': 'A valid date is required'}), 400
    meal_type = data.get('mealType')
    if meal_type not in MEAL_TYPES:
        return jsonify({'error': f"mealType must be one of: {', '.join(MEAL_TYPES)}"}), 400

    recipe_id = _validated_recipe_id(data.get('recipeId'))
    custom_meal_name = (data.get('customMealName') or '').strip() or None
    if not recipe_id and not custom_meal_name:
        return jsonify({'error': 'Either recipeId or customMealName is required'}), 400
    multiplier = _validated_multiplier(data.get('servingsMultiplier'))

    try:
        meal_plan = get_or_create_plan(current_user.household_id, entry_date)
        entry = MealEntry(
            meal_plan_id=meal_plan.id,
            date=entry_date,
            meal_type=meal_type,
            recipe_id=recipe_id,
            custom_meal_name=custom_meal_name,
            servings_multiplier=multiplier
        )
        db.session.add(entry)
        db.session.commit()
    except Exception as e:
        db.session.rollback()
        current_app.logger.error(f"Error creating meal entry for household {current_user.household_id}: {e}", exc_info=True)
        return jsonify({'error': 'Failed to create meal entry'}), 500

    return jsonify({'entry': entry.to_dict()}), 201


@planner.route('/entries', methods=['PATCH'])
@login_required
@household_required
def update_entry():
    entry = _get_entry_or_404()
    data = request.get_json(silent=True) or {}

    if 'date' in data:
        new_date = parse_iso_date(data['date'])
        if not new_date:
            return jsonify({'error': 'A valid date is required'}), 400
        entry.date = new_date
        # Moving across weeks re-homes the entry in that week's plan
        entry.meal_plan_id = get_or_create_plan(current_user.household_id, new_date).id
    if 'mealType' in data:
        if data['mealType'] not in MEAL_TYPES:
            return jsonify({'error': f"mealType must be one of: {', '.join(MEAL_TYPES)}"}), 400
        entry.meal_type = data['mealType']
    if 'recipeId' in data:
        entry.recipe_id = _validated_recipe_id(data['recipeId'])
    if 'customMealName' in data:
        entry.custom_meal_name = (data['customMealName'] or '').strip() or None
    if 'servingsMultiplier' in data:
        entry.servings_multiplier = _validated_multiplier(data['servingsMultiplier'])
    if 'isCompleted' in data:
        entry.is_completed = bool(data['isCompleted'])

    if not entry.recipe_id and not entry.custom_meal_name:
        db.session.rollback()
        return jsonify({'error': 'Either recipeId or customMealName is required'}), 400

    db.session.commit()
    return jsonify({'entry': entry.to_dict()})


@planner.route('/entries', methods=['DELETE'])
@login_required
@household_required
def delete_entry():
    entry = _get_entry_or_404()
    db.session.delete(entry)
    db.session.commit()
    return jsonify({'success': True})
