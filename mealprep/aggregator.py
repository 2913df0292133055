"""Turns a week's meal plan into shopping-list items.

Recipe ingredients from every recipe-bearing entry are merged by normalized
name, scaled by the entry's servings multiplier, optionally netted against
household inventory, and upserted into the household's single active list.
"""
from sqlalchemy.exc import SQLAlchemyError
from flask import current_app

from . import db
from .errors import NotFound, PreconditionFailed, DependencyFailure
from .models import MealPlan, MealEntry, ShoppingList, ShoppingListItem, InventoryItem
from .utils import normalize_name, start_of_week, convert_quantity


def _multiplier(entry):
    value = entry.servings_multiplier
    if value is None or value <= 0:
        return 1
    return value


def _display_name(recipe_ingredient):
    if recipe_ingredient.ingredient and (recipe_ingredient.ingredient.name or '').strip():
        return recipe_ingredient.ingredient.name.strip()
    if (recipe_ingredient.original_text or '').strip():
        return recipe_ingredient.original_text.strip()
    return 'Unknown'


def aggregate_ingredients(entries):
    """Merges the ingredients of every recipe-bearing entry.

    Returns a dict keyed by normalized name, in first-seen order. Quantities
    are only summed when the units are identical; a different unit keeps the
    first quantity and unit seen for that name.
    """
    aggregated = {}
    for entry in entries:
        recipe = entry.recipe
        if recipe is None:
            continue
        multiplier = _multiplier(entry)

        for recipe_ingredient in recipe.ingredients:
            name = _display_name(recipe_ingredient)
            key = normalize_name(name)
            contribution = (recipe_ingredient.quantity or 0) * multiplier
            unit = recipe_ingredient.unit or None

            existing = aggregated.get(key)
            if existing is None:
                category = recipe_ingredient.ingredient.category if recipe_ingredient.ingredient else None
                aggregated[key] = {
                    'name': name,
                    'quantity': contribution,
                    'unit': unit,
                    'category': category or 'Other',
                    'source_recipe_ids': [recipe.id],
                }
                continue

            if existing['unit'] == unit:
                existing['quantity'] += contribution
            if recipe.id not in existing['source_recipe_ids']:
                existing['source_recipe_ids'].append(recipe.id)
    return aggregated


def sort_items(items):
    """Unchecked first, then category, then name (both case-insensitive)."""
    return sorted(items, key=lambda item: (bool(item.is_checked),
                                           (item.category or 'Other').lower(),
                                           (item.name or '').lower()))


def get_active_list(household_id, create=True, meal_plan=None):
    """Returns the household's active shopping list, creating it when asked to.

    A new list is added to the session but not committed.
    """
    shopping_list = (ShoppingList.query
                     .filter_by(household_id=household_id, status='active')
                     .order_by(ShoppingList.created_at.desc(), ShoppingList.id.desc())
                     .first())
    if shopping_list or not create:
        return shopping_list

    name = f"Week of {meal_plan.week_start.strftime('%b')} {meal_plan.week_start.day}" if meal_plan else 'Shopping List'
    shopping_list = ShoppingList(
        household_id=household_id,
        meal_plan_id=meal_plan.id if meal_plan else None,
        name=name,
        status='active'
    )
    db.session.add(shopping_list)
    db.session.flush()
    return shopping_list


def _deduct_inventory(household_id, aggregated):
    """Consumes on-hand inventory against each aggregated need, in place.

    Returns the set of keys whose need was fully covered by inventory.
    """
    inventory_by_name = {}
    inventory = (InventoryItem.query
                 .filter_by(household_id=household_id)
                 .order_by(InventoryItem.id)
                 .all())
    for inv_item in inventory:
        inventory_by_name.setdefault(normalize_name(inv_item.name), []).append(inv_item)

    covered = set()
    for key, item in aggregated.items():
        need = item['quantity']
        if not need or need <= 0:
            continue

        for inv_item in inventory_by_name.get(key, []):
            if need <= 0:
                break
            if not inv_item.quantity or inv_item.quantity <= 0:
                continue

            available = convert_quantity(inv_item.quantity, inv_item.unit, item['unit'], substance=key)
            if available is None:
                continue
            taken = min(need, available)
            taken_in_inventory_units = convert_quantity(taken, item['unit'], inv_item.unit, substance=key)
            if taken_in_inventory_units is None:
                continue

            need -= taken
            inv_item.quantity = max(0.0, inv_item.quantity - taken_in_inventory_units)

        if need <= 1e-9:
            need = 0
            covered.add(key)
        item['quantity'] = need
    return covered


def _upsert_item(shopping_list, existing, plan_key, item, omit_if_new=False):
    """Writes one aggregated item onto the list. Returns False when nothing was written."""
    contribution = item['quantity']

    if existing is None:
        if omit_if_new:
            return False
        db.session.add(ShoppingListItem(
            shopping_list_id=shopping_list.id,
            name=item['name'],
            quantity=contribution or None,
            unit=item['unit'],
            category=item['category'],
            source_recipe_ids=list(item['source_recipe_ids']),
            planned_quantities={plan_key: contribution},
            is_manual=False,
            is_checked=False,
        ))
        return True

    key = normalize_name(item['name'])
    # Contributions are kept in the list item's own unit
    if not existing.unit:
        existing.unit = item['unit']
    elif existing.unit != item['unit']:
        contribution = convert_quantity(contribution, item['unit'], existing.unit, substance=key)
        if contribution is None:
            contribution = 0

    planned = dict(existing.planned_quantities or {})
    previous = planned.get(plan_key, 0) or 0
    new_quantity = max(0.0, (existing.quantity or 0) - previous + contribution)
    planned[plan_key] = contribution

    # JSON columns are reassigned so the change is tracked
    existing.quantity = new_quantity or None
    existing.planned_quantities = planned
    existing.source_recipe_ids = list(dict.fromkeys(list(existing.source_recipe_ids or []) + item['source_recipe_ids']))
    return True


def _drop_stale_contributions(existing_items, aggregated, plan_key):
    """Takes back what an earlier run of this plan added for names no longer planned.

    Generated items left with no planned contribution at all are removed.
    """
    for key, existing in existing_items.items():
        if key in aggregated:
            continue
        planned = dict(existing.planned_quantities or {})
        if plan_key not in planned:
            continue
        previous = planned.pop(plan_key) or 0

        if not existing.is_manual and not planned:
            db.session.delete(existing)
            continue
        existing.quantity = max(0.0, (existing.quantity or 0) - previous) or None
        existing.planned_quantities = planned


def generate_shopping_list(household_id, week_start=None, deduct_inventory=False):
    """Aggregates the week's plan into the active list.

    Returns ``(shopping_list, items_added)``. Every write happens in one
    transaction: on any storage failure nothing is kept.
    """
    week_start = start_of_week(week_start)
    meal_plan = MealPlan.query.filter_by(household_id=household_id, week_start=week_start).first()
    if not meal_plan:
        raise NotFound('No meal plan found for this week')

    entries = (MealEntry.query
               .filter(MealEntry.meal_plan_id == meal_plan.id, MealEntry.recipe_id.isnot(None))
               .order_by(MealEntry.date, MealEntry.id)
               .all())
    if not entries:
        raise PreconditionFailed('No recipes in meal plan')

    plan_key = str(meal_plan.id)
    try:
        aggregated = aggregate_ingredients(entries)
        covered = _deduct_inventory(household_id, aggregated) if deduct_inventory else set()

        shopping_list = get_active_list(household_id, meal_plan=meal_plan)
        existing_items = {normalize_name(i.name): i for i in shopping_list.items}

        items_added = 0
        for key, item in aggregated.items():
            if _upsert_item(shopping_list, existing_items.get(key), plan_key, item, omit_if_new=key in covered):
                items_added += 1
        _drop_stale_contributions(existing_items, aggregated, plan_key)

        db.session.commit()
    except SQLAlchemyError as e:
        db.session.rollback()
        current_app.logger.error(f"Shopping list generation failed for household {household_id}: {e}", exc_info=True)
        raise DependencyFailure('Failed to generate shopping list')

    current_app.logger.info(
        f"Generated shopping list {shopping_list.id} for household {household_id}, "
        f"week {week_start.isoformat()}: {items_added} items"
    )
    return shopping_list, items_added
