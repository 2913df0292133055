"""
Pytest configuration and shared fixtures.

Each test gets a fresh application bound to its own SQLite file. Requests go
through the Flask test client; direct database work happens inside
``app.app_context()`` so request and test sessions never share state.
"""

import pytest
from datetime import date

from mealprep import create_app, db as _db
from mealprep.models import Household, Recipe, MealPlan, MealEntry, InventoryItem
from mealprep.recipe_store import find_or_create_ingredient
from mealprep.models import RecipeIngredient

# A Monday, so plans created for it need no normalisation
WEEK = date(2025, 1, 6)


@pytest.fixture
def app(tmp_path):
    app = create_app({
        'TESTING': True,
        'SECRET_KEY': 'test-secret',
        'SQLALCHEMY_DATABASE_URI': f"sqlite:///{tmp_path / 'test.db'}",
        'UPLOAD_FOLDER': str(tmp_path / 'uploads'),
        'GOOGLE_API_KEY': None,
        'UNSPLASH_ACCESS_KEY': None,
    })
    with app.app_context():
        _db.create_all()
    yield app
    with app.app_context():
        _db.session.remove()
        _db.drop_all()


@pytest.fixture
def app_ctx(app):
    """Pushes an application context for tests that talk to the models directly."""
    with app.app_context():
        yield app


@pytest.fixture
def client(app):
    return app.test_client()


def signup(client, email, password='password123', display_name=None):
    response = client.post('/auth/signup', json={
        'email': email, 'password': password, 'displayName': display_name,
    })
    assert response.status_code == 201, response.get_json()
    return response.get_json()


@pytest.fixture
def auth_client(app):
    """
    A test client logged in as a fresh household owner.

    The signup payload is available as ``auth_client.account``.
    """
    client = app.test_client()
    client.account = signup(client, 'cook@example.com', display_name='Cook')
    return client


@pytest.fixture
def household_id(auth_client):
    return auth_client.account['household']['id']


@pytest.fixture
def make_client(app):
    """Factory for extra logged-in users, for multi-household tests."""
    def _make(email, display_name=None):
        client = app.test_client()
        client.account = signup(client, email, display_name=display_name)
        return client
    return _make


# --- model builders (call inside an app context) ---

def make_household(name='Test Household'):
    household = Household(name=name)
    _db.session.add(household)
    _db.session.flush()
    return household


def make_recipe(household_id, title, ingredients, servings=2):
    """``ingredients`` is a list of (name, quantity, unit[, category]) tuples."""
    recipe = Recipe(household_id=household_id, title=title, servings=servings, meal_types=['dinner'], tags=[])
    _db.session.add(recipe)
    _db.session.flush()
    for index, row in enumerate(ingredients):
        name, quantity, unit = row[:3]
        category = row[3] if len(row) > 3 else None
        recipe.ingredients.append(RecipeIngredient(
            ingredient=find_or_create_ingredient(name, category),
            quantity=quantity,
            unit=unit,
            display_order=index,
            original_text=f"{quantity or ''} {unit or ''} {name}".strip(),
        ))
    _db.session.flush()
    return recipe


def make_plan(household_id, week_start=WEEK):
    meal_plan = MealPlan(household_id=household_id, week_start=week_start)
    _db.session.add(meal_plan)
    _db.session.flush()
    return meal_plan


def add_entry(meal_plan, recipe=None, multiplier=1, custom_meal_name=None, day=None, meal_type='dinner'):
    entry = MealEntry(
        meal_plan_id=meal_plan.id,
        date=day or meal_plan.week_start,
        meal_type=meal_type,
        recipe_id=recipe.id if recipe else None,
        custom_meal_name=custom_meal_name,
        servings_multiplier=multiplier,
    )
    _db.session.add(entry)
    _db.session.flush()
    return entry


def add_inventory(household_id, name, quantity, unit=None, location='fridge'):
    item = InventoryItem(household_id=household_id, name=name, quantity=quantity, unit=unit, location=location)
    _db.session.add(item)
    _db.session.flush()
    return item
