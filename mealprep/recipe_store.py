from . import db
from .errors import BadRequest
from .models import Ingredient, RecipeIngredient, RecipeStep
from .utils import normalize_name, optional_quantity

# Request keys (camelCase, as sent by the client and by AI extraction) -> Recipe columns
RECIPE_FIELDS = {
    'title': 'title',
    'description': 'description',
    'prepTime': 'prep_time_minutes',
    'cookTime': 'cook_time_minutes',
    'servings': 'servings',
    'cuisine': 'cuisine',
    'mealType': 'meal_types',
    'tags': 'tags',
    'imageUrl': 'image_url',
}


def _optional_int(value):
    if value is None or value == '':
        return None
    try:
        return int(float(value))
    except (TypeError, ValueError):
        return None


def apply_recipe_fields(recipe, data):
    """Copies the recipe columns present in ``data`` onto ``recipe``."""
    for key, column in RECIPE_FIELDS.items():
        if key not in data:
            continue
        value = data[key]
        if column in ('prep_time_minutes', 'cook_time_minutes'):
            value = _optional_int(value)
        elif column == 'servings':
            value = _optional_int(value) or 2
        elif column in ('meal_types', 'tags'):
            value = list(value or [])
        setattr(recipe, column, value)

    if not (recipe.title or '').strip():
        raise BadRequest('Recipe title is required.')


def find_or_create_ingredient(name, category=None, cache=None):
    """Looks up the canonical ingredient for ``name`` by normalized name, creating it when missing."""
    key = normalize_name(name)
    if cache is not None and key in cache:
        return cache[key]

    ingredient = Ingredient.query.filter_by(normalized_name=key).first()
    if not ingredient:
        ingredient = Ingredient(name=name.strip(), normalized_name=key, category=category)
        db.session.add(ingredient)
        db.session.flush()

    if cache is not None:
        cache[key] = ingredient
    return ingredient


def replace_ingredients(recipe, ingredients_data):
    """Replaces the recipe's ingredient rows. Rows without a name are skipped.

    Runs inside the caller's transaction; nothing is committed here.
    """
    recipe.ingredients.clear()
    db.session.flush()

    ingredient_cache = {}
    for index, ing in enumerate(ingredients_data or []):
        name = (ing.get('name') or '').strip()
        if not name:
            continue
        ingredient = find_or_create_ingredient(name, ing.get('category'), ingredient_cache)
        recipe.ingredients.append(RecipeIngredient(
            ingredient=ingredient,
            quantity=optional_quantity(ing.get('quantity')),
            unit=ing.get('unit') or None,
            preparation=ing.get('preparation'),
            notes=ing.get('notes'),
            is_optional=bool(ing.get('isOptional', False)),
            display_order=index,
            original_text=ing.get('originalText'),
        ))


def replace_steps(recipe, steps_data):
    recipe.steps.clear()
    db.session.flush()

    step_number = 0
    for step in steps_data or []:
        instruction = step.get('instruction') if isinstance(step, dict) else step
        if not instruction:
            continue
        step_number += 1
        recipe.steps.append(RecipeStep(
            step_number=step_number,
            instruction=instruction,
            duration_minutes=_optional_int(step.get('duration')) if isinstance(step, dict) else None,
            image_url=step.get('imageUrl') if isinstance(step, dict) else None,
        ))
