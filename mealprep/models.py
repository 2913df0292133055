from . import db
from flask_login import UserMixin
from datetime import datetime
from sqlalchemy import UniqueConstraint


def _iso(value):
    return value.isoformat() if value else None


class Household(db.Model):
    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(100), nullable=False)
    created_at = db.Column(db.DateTime, default=datetime.utcnow)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)
    recipes = db.relationship('Recipe', backref='household', lazy=True, cascade="all, delete-orphan")
    meal_plans = db.relationship('MealPlan', backref='household', lazy=True, cascade="all, delete-orphan")
    shopping_lists = db.relationship('ShoppingList', backref='household', lazy=True, cascade="all, delete-orphan")
    inventory_items = db.relationship('InventoryItem', backref='household', lazy=True, cascade="all, delete-orphan")
    invitations = db.relationship('HouseholdInvitation', backref='household', lazy=True, cascade="all, delete-orphan")
    recipe_imports = db.relationship('RecipeImport', backref='household', lazy=True, cascade="all, delete-orphan")
    fridge_scans = db.relationship('FridgeScan', backref='household', lazy=True, cascade="all, delete-orphan")

    def to_dict(self):
        return {'id': self.id, 'name': self.name, 'created_at': _iso(self.created_at), 'updated_at': _iso(self.updated_at)}


class HouseholdInvitation(db.Model):
    id = db.Column(db.Integer, primary_key=True)
    household_id = db.Column(db.Integer, db.ForeignKey('household.id'), nullable=False)
    email = db.Column(db.String(150), nullable=False)
    invited_by = db.Column(db.Integer, db.ForeignKey('user.id'), nullable=True)
    status = db.Column(db.String(20), nullable=False, default='pending')
    expires_at = db.Column(db.DateTime, nullable=False)
    created_at = db.Column(db.DateTime, default=datetime.utcnow)

    @property
    def is_expired(self):
        return self.expires_at < datetime.utcnow()

    def to_dict(self):
        return {
            'id': self.id, 'household_id': self.household_id, 'email': self.email,
            'invited_by': self.invited_by, 'status': self.status,
            'expires_at': _iso(self.expires_at), 'created_at': _iso(self.created_at),
        }


class User(db.Model, UserMixin):
    id = db.Column(db.Integer, primary_key=True)
    email = db.Column(db.String(150), unique=True, nullable=False)
    password = db.Column(db.String(150), nullable=False)
    display_name = db.Column(db.String(100), nullable=True)
    avatar_url = db.Column(db.String(500), nullable=True)
    role = db.Column(db.String(20), nullable=False, default='owner')
    household_id = db.Column(db.Integer, db.ForeignKey('household.id'))
    household = db.relationship('Household', backref=db.backref('members', order_by='User.id'))
    created_at = db.Column(db.DateTime, default=datetime.utcnow)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    @property
    def is_owner(self):
        return self.role == 'owner'

    def to_dict(self):
        return {
            'id': self.id, 'email': self.email, 'display_name': self.display_name,
            'avatar_url': self.avatar_url, 'role': self.role, 'household_id': self.household_id,
        }

    def member_dict(self):
        return {'id': self.id, 'display_name': self.display_name, 'avatar_url': self.avatar_url, 'role': self.role}


class Ingredient(db.Model):
    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(100), nullable=False)
    normalized_name = db.Column(db.String(100), nullable=False, unique=True)
    category = db.Column(db.String(50), nullable=True)
    recipe_links = db.relationship('RecipeIngredient', backref='ingredient', lazy=True)

    def to_dict(self):
        return {'id': self.id, 'name': self.name, 'normalized_name': self.normalized_name, 'category': self.category}


class Recipe(db.Model):
    id = db.Column(db.Integer, primary_key=True)
    household_id = db.Column(db.Integer, db.ForeignKey('household.id'), nullable=False)
    created_by = db.Column(db.Integer, db.ForeignKey('user.id'), nullable=True)
    title = db.Column(db.String(200), nullable=False)
    description = db.Column(db.Text, nullable=True)
    prep_time_minutes = db.Column(db.Integer, nullable=True)
    cook_time_minutes = db.Column(db.Integer, nullable=True)
    servings = db.Column(db.Integer, nullable=False, default=2)
    cuisine = db.Column(db.String(100), nullable=True)
    meal_types = db.Column(db.JSON, nullable=False, default=list)
    tags = db.Column(db.JSON, nullable=False, default=list)
    source_type = db.Column(db.String(20), nullable=False, default='manual')
    source_url = db.Column(db.String(1000), nullable=True)
    image_url = db.Column(db.String(1000), nullable=True)
    is_favorite = db.Column(db.Boolean, default=False, nullable=False)
    times_cooked = db.Column(db.Integer, default=0, nullable=False)
    last_cooked_at = db.Column(db.DateTime, nullable=True)
    created_at = db.Column(db.DateTime, default=datetime.utcnow)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)
    ingredients = db.relationship('RecipeIngredient', backref='recipe', lazy=True, cascade="all, delete-orphan",
                                  order_by='RecipeIngredient.display_order')
    steps = db.relationship('RecipeStep', backref='recipe', lazy=True, cascade="all, delete-orphan",
                            order_by='RecipeStep.step_number')

    def to_dict(self, relations=True):
        data = {
            'id': self.id, 'household_id': self.household_id, 'created_by': self.created_by,
            'title': self.title, 'description': self.description,
            'prep_time_minutes': self.prep_time_minutes, 'cook_time_minutes': self.cook_time_minutes,
            'servings': self.servings, 'cuisine': self.cuisine,
            'meal_type': list(self.meal_types or []), 'tags': list(self.tags or []),
            'source_type': self.source_type, 'source_url': self.source_url, 'image_url': self.image_url,
            'is_favorite': self.is_favorite, 'times_cooked': self.times_cooked,
            'last_cooked_at': _iso(self.last_cooked_at),
            'created_at': _iso(self.created_at), 'updated_at': _iso(self.updated_at),
        }
        if relations:
            data['recipe_ingredients'] = [ri.to_dict() for ri in self.ingredients]
            data['recipe_steps'] = [step.to_dict() for step in self.steps]
        return data


class RecipeIngredient(db.Model):
    id = db.Column(db.Integer, primary_key=True)
    recipe_id = db.Column(db.Integer, db.ForeignKey('recipe.id'), nullable=False)
    ingredient_id = db.Column(db.Integer, db.ForeignKey('ingredient.id'), nullable=True)
    quantity = db.Column(db.Float, nullable=True)
    unit = db.Column(db.String(50), nullable=True)
    preparation = db.Column(db.String(200), nullable=True)
    notes = db.Column(db.String(500), nullable=True)
    is_optional = db.Column(db.Boolean, default=False, nullable=False)
    display_order = db.Column(db.Integer, default=0, nullable=False)
    original_text = db.Column(db.String(500), nullable=True)

    def to_dict(self):
        return {
            'id': self.id, 'recipe_id': self.recipe_id, 'ingredient_id': self.ingredient_id,
            'quantity': self.quantity, 'unit': self.unit, 'preparation': self.preparation,
            'notes': self.notes, 'is_optional': self.is_optional, 'display_order': self.display_order,
            'original_text': self.original_text,
            'ingredient': self.ingredient.to_dict() if self.ingredient else None,
        }


class RecipeStep(db.Model):
    id = db.Column(db.Integer, primary_key=True)
    recipe_id = db.Column(db.Integer, db.ForeignKey('recipe.id'), nullable=False)
    step_number = db.Column(db.Integer, nullable=False)
    instruction = db.Column(db.Text, nullable=False)
    duration_minutes = db.Column(db.Integer, nullable=True)
    image_url = db.Column(db.String(1000), nullable=True)

    def to_dict(self):
        return {
            'id': self.id, 'recipe_id': self.recipe_id, 'step_number': self.step_number,
            'instruction': self.instruction, 'duration_minutes': self.duration_minutes,
            'image_url': self.image_url,
        }


class MealPlan(db.Model):
    id = db.Column(db.Integer, primary_key=True)
    household_id = db.Column(db.Integer, db.ForeignKey('household.id'), nullable=False)
    week_start = db.Column(db.Date, nullable=False)
    created_at = db.Column(db.DateTime, default=datetime.utcnow)
    entries = db.relationship('MealEntry', backref='meal_plan', lazy=True, cascade="all, delete-orphan",
                              order_by='MealEntry.date')

    __table_args__ = (UniqueConstraint('household_id', 'week_start', name='_household_week_uc'),)

    def to_dict(self):
        return {'id': self.id, 'household_id': self.household_id,
                'week_start': _iso(self.week_start), 'created_at': _iso(self.created_at)}


class MealEntry(db.Model):
    id = db.Column(db.Integer, primary_key=True)
    meal_plan_id = db.Column(db.Integer, db.ForeignKey('meal_plan.id'), nullable=False)
    date = db.Column(db.Date, nullable=False)
    meal_type = db.Column(db.String(20), nullable=False, default='dinner')
    recipe_id = db.Column(db.Integer, db.ForeignKey('recipe.id'), nullable=True)
    recipe = db.relationship('Recipe')
    custom_meal_name = db.Column(db.String(150), nullable=True)
    servings_multiplier = db.Column(db.Float, nullable=False, default=1)
    is_completed = db.Column(db.Boolean, default=False, nullable=False)
    created_at = db.Column(db.DateTime, default=datetime.utcnow)

    def to_dict(self):
        recipe = None
        if self.recipe:
            recipe = {
                'id': self.recipe.id, 'title': self.recipe.title, 'image_url': self.recipe.image_url,
                'prep_time_minutes': self.recipe.prep_time_minutes,
                'cook_time_minutes': self.recipe.cook_time_minutes, 'servings': self.recipe.servings,
            }
        return {
            'id': self.id, 'meal_plan_id': self.meal_plan_id, 'date': _iso(self.date),
            'meal_type': self.meal_type, 'recipe_id': self.recipe_id,
            'custom_meal_name': self.custom_meal_name, 'servings_multiplier': self.servings_multiplier,
            'is_completed': self.is_completed, 'created_at': _iso(self.created_at), 'recipe': recipe,
        }


class ShoppingList(db.Model):
    id = db.Column(db.Integer, primary_key=True)
    household_id = db.Column(db.Integer, db.ForeignKey('household.id'), nullable=False)
    meal_plan_id = db.Column(db.Integer, db.ForeignKey('meal_plan.id'), nullable=True)
    meal_plan = db.relationship('MealPlan')
    name = db.Column(db.String(150), nullable=False, default='Shopping List')
    status = db.Column(db.String(20), nullable=False, default='active')
    created_at = db.Column(db.DateTime, default=datetime.utcnow)
    items = db.relationship('ShoppingListItem', backref='shopping_list', lazy=True, cascade="all, delete-orphan")

    def to_dict(self, items=None):
        return {
            'id': self.id, 'household_id': self.household_id, 'meal_plan_id': self.meal_plan_id,
            'name': self.name, 'status': self.status, 'created_at': _iso(self.created_at),
            'items': [item.to_dict() for item in (self.items if items is None else items)],
        }


class ShoppingListItem(db.Model):
    id = db.Column(db.Integer, primary_key=True)
    shopping_list_id = db.Column(db.Integer, db.ForeignKey('shopping_list.id'), nullable=False)
    name = db.Column(db.String(150), nullable=False)
    quantity = db.Column(db.Float, nullable=True)
    unit = db.Column(db.String(50), nullable=True)
    category = db.Column(db.String(100), nullable=False, default='Other')
    notes = db.Column(db.String(500), nullable=True)
    source_recipe_ids = db.Column(db.JSON, nullable=False, default=list)
    planned_quantities = db.Column(db.JSON, nullable=False, default=dict)
    is_checked = db.Column(db.Boolean, default=False, nullable=False)
    is_manual = db.Column(db.Boolean, default=False, nullable=False)
    checked_at = db.Column(db.DateTime, nullable=True)
    checked_by = db.Column(db.Integer, db.ForeignKey('user.id'), nullable=True)
    created_at = db.Column(db.DateTime, default=datetime.utcnow)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    def to_dict(self):
        return {
            'id': self.id, 'shopping_list_id': self.shopping_list_id, 'name': self.name,
            'quantity': self.quantity, 'unit': self.unit, 'category': self.category, 'notes': self.notes,
            'source_recipe_ids': list(self.source_recipe_ids or []),
            'is_checked': self.is_checked, 'is_manual': self.is_manual,
            'checked_at': _iso(self.checked_at), 'checked_by': self.checked_by,
            'created_at': _iso(self.created_at), 'updated_at': _iso(self.updated_at),
        }


class InventoryItem(db.Model):
    id = db.Column(db.Integer, primary_key=True)
    household_id = db.Column(db.Integer, db.ForeignKey('household.id'), nullable=False)
    name = db.Column(db.String(150), nullable=False)
    quantity = db.Column(db.Float, nullable=True)
    unit = db.Column(db.String(50), nullable=True)
    location = db.Column(db.String(20), nullable=False, default='fridge')
    expiry_date = db.Column(db.Date, nullable=True)
    source = db.Column(db.String(20), nullable=False, default='manual')
    confidence_score = db.Column(db.Float, nullable=True)
    created_at = db.Column(db.DateTime, default=datetime.utcnow)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    def to_dict(self):
        return {
            'id': self.id, 'household_id': self.household_id, 'name': self.name,
            'quantity': self.quantity, 'unit': self.unit, 'location': self.location,
            'expiry_date': _iso(self.expiry_date), 'source': self.source,
            'confidence_score': self.confidence_score,
            'created_at': _iso(self.created_at), 'updated_at': _iso(self.updated_at),
        }


class RecipeImport(db.Model):
    id = db.Column(db.Integer, primary_key=True)
    household_id = db.Column(db.Integer, db.ForeignKey('household.id'), nullable=False)
    imported_by = db.Column(db.Integer, db.ForeignKey('user.id'), nullable=True)
    import_type = db.Column(db.String(20), nullable=False)
    source_url = db.Column(db.String(1000), nullable=True)
    image_url = db.Column(db.String(1000), nullable=True)
    raw_ai_response = db.Column(db.JSON, nullable=True)
    status = db.Column(db.String(20), nullable=False, default='completed')
    confidence_score = db.Column(db.Float, nullable=True)
    created_at = db.Column(db.DateTime, default=datetime.utcnow)


class FridgeScan(db.Model):
    id = db.Column(db.Integer, primary_key=True)
    household_id = db.Column(db.Integer, db.ForeignKey('household.id'), nullable=False)
    scanned_by = db.Column(db.Integer, db.ForeignKey('user.id'), nullable=True)
    scan_type = db.Column(db.String(20), nullable=False, default='fridge')
    raw_ai_response = db.Column(db.JSON, nullable=True)
    items_detected = db.Column(db.Integer, nullable=False, default=0)
    status = db.Column(db.String(20), nullable=False, default='completed')
    processed_at = db.Column(db.DateTime, default=datetime.utcnow)
