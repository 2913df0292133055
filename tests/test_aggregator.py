"""
Tests for shopping-list generation from a week's meal plan.
"""

import pytest
from datetime import date, timedelta
from types import SimpleNamespace
from sqlalchemy.exc import SQLAlchemyError

from mealprep import db, aggregator
from mealprep.aggregator import aggregate_ingredients, generate_shopping_list, sort_items, get_active_list
from mealprep.errors import NotFound, PreconditionFailed, DependencyFailure
from mealprep.models import ShoppingList, ShoppingListItem, InventoryItem

from conftest import WEEK, make_household, make_recipe, make_plan, add_entry, add_inventory


def _ingredient(name=None, original_text=None, quantity=None, unit=None, category=None):
    canonical = SimpleNamespace(name=name, category=category) if name is not None else None
    return SimpleNamespace(ingredient=canonical, original_text=original_text, quantity=quantity, unit=unit)


def _entry(recipe_id, ingredients, multiplier=1):
    return SimpleNamespace(recipe=SimpleNamespace(id=recipe_id, ingredients=ingredients),
                           servings_multiplier=multiplier)


def _items(shopping_list_id):
    return {i.name.lower(): i for i in ShoppingListItem.query.filter_by(shopping_list_id=shopping_list_id).all()}


class TestAggregateIngredients:
    """Pure merge rules, no database involved."""

    def test_same_unit_quantities_are_summed_with_multiplier(self):
        entries = [
            _entry(1, [_ingredient('Pasta', quantity=200, unit='g')], multiplier=1),
            _entry(2, [_ingredient('Pasta', quantity=100, unit='g')], multiplier=2),
        ]
        result = aggregate_ingredients(entries)
        assert list(result) == ['pasta']
        assert result['pasta']['quantity'] == 400
        assert result['pasta']['unit'] == 'g'
        assert result['pasta']['source_recipe_ids'] == [1, 2]

    def test_different_unit_keeps_first_seen_quantity(self):
        entries = [
            _entry(1, [_ingredient('Milk', quantity=1, unit='cup')]),
            _entry(2, [_ingredient('Milk', quantity=200, unit='ml')]),
        ]
        milk = aggregate_ingredients(entries)['milk']
        assert milk['quantity'] == 1
        assert milk['unit'] == 'cup'
        assert milk['source_recipe_ids'] == [1, 2]

    def test_unit_match_is_case_sensitive(self):
        entries = [
            _entry(1, [_ingredient('Flour', quantity=2, unit='Cup')]),
            _entry(2, [_ingredient('Flour', quantity=1, unit='cup')]),
        ]
        assert aggregate_ingredients(entries)['flour']['quantity'] == 2

    def test_names_merge_across_case_and_whitespace(self):
        entries = [
            _entry(1, [_ingredient(original_text='Egg', quantity=1)]),
            _entry(2, [_ingredient(original_text='egg ', quantity=2)]),
            _entry(3, [_ingredient(original_text=' EGG', quantity=3)]),
        ]
        result = aggregate_ingredients(entries)
        assert list(result) == ['egg']
        assert result['egg']['name'] == 'Egg'
        assert result['egg']['quantity'] == 6
        assert result['egg']['source_recipe_ids'] == [1, 2, 3]

    def test_display_name_falls_back_to_original_text_then_unknown(self):
        entries = [_entry(1, [
            _ingredient(original_text='2 ripe bananas', quantity=2),
            _ingredient(quantity=1),
        ])]
        result = aggregate_ingredients(entries)
        assert result['2 ripe bananas']['name'] == '2 ripe bananas'
        assert result['unknown']['name'] == 'Unknown'

    def test_category_defaults_to_other(self):
        entries = [_entry(1, [_ingredient('Basil', quantity=1), _ingredient('Tomato', quantity=2, category='Produce')])]
        result = aggregate_ingredients(entries)
        assert result['basil']['category'] == 'Other'
        assert result['tomato']['category'] == 'Produce'

    def test_same_recipe_twice_lists_its_id_once(self):
        ingredients = [_ingredient('Rice', quantity=1, unit='cup')]
        result = aggregate_ingredients([_entry(7, ingredients), _entry(7, ingredients)])
        assert result['rice']['quantity'] == 2
        assert result['rice']['source_recipe_ids'] == [7]

    @pytest.mark.parametrize('multiplier', [None, 0, -2])
    def test_invalid_multiplier_is_clamped_to_one(self, multiplier):
        result = aggregate_ingredients([_entry(1, [_ingredient('Onion', quantity=2)], multiplier=multiplier)])
        assert result['onion']['quantity'] == 2

    def test_missing_quantity_contributes_zero(self):
        entries = [
            _entry(1, [_ingredient('Salt', unit='pinch')]),
            _entry(2, [_ingredient('Salt', quantity=1, unit='pinch')]),
        ]
        assert aggregate_ingredients(entries)['salt']['quantity'] == 1


class TestSortItems:

    def test_unchecked_first_then_category_then_name(self):
        items = [
            SimpleNamespace(name='apples', category='Produce', is_checked=True),
            SimpleNamespace(name='Milk', category='dairy', is_checked=False),
            SimpleNamespace(name='bananas', category='Produce', is_checked=False),
            SimpleNamespace(name='Avocado', category='produce', is_checked=False),
            SimpleNamespace(name='Butter', category='Dairy', is_checked=False),
        ]
        assert [i.name for i in sort_items(items)] == ['Butter', 'Milk', 'Avocado', 'bananas', 'apples']


class TestGenerateShoppingList:

    def test_pasta_scenario(self, app_ctx):
        household = make_household()
        recipe_a = make_recipe(household.id, 'Recipe A', [('pasta', 200, 'g')], servings=2)
        recipe_b = make_recipe(household.id, 'Recipe B', [('pasta', 100, 'g')], servings=4)
        plan = make_plan(household.id)
        add_entry(plan, recipe_a, multiplier=1)
        add_entry(plan, recipe_b, multiplier=2, day=WEEK + timedelta(days=1))
        db.session.commit()

        shopping_list, items_added = generate_shopping_list(household.id, WEEK)

        assert items_added == 1
        pasta = _items(shopping_list.id)['pasta']
        assert pasta.quantity == 400
        assert pasta.unit == 'g'
        assert sorted(pasta.source_recipe_ids) == sorted([recipe_a.id, recipe_b.id])
        assert pasta.is_manual is False
        assert pasta.is_checked is False

    def test_week_start_is_normalised_to_monday(self, app_ctx):
        household = make_household()
        recipe = make_recipe(household.id, 'Soup', [('carrot', 3, None)])
        add_entry(make_plan(household.id), recipe)
        db.session.commit()

        shopping_list, items_added = generate_shopping_list(household.id, WEEK + timedelta(days=4))
        assert items_added == 1
        assert shopping_list.name == 'Week of Jan 6'

    def test_custom_meals_only_is_a_precondition_failure(self, app_ctx):
        household = make_household()
        plan = make_plan(household.id)
        add_entry(plan, custom_meal_name='Takeout')
        add_entry(plan, custom_meal_name='Leftovers', day=WEEK + timedelta(days=2))
        db.session.commit()

        with pytest.raises(PreconditionFailed):
            generate_shopping_list(household.id, WEEK)
        assert ShoppingList.query.filter_by(household_id=household.id).count() == 0

    def test_custom_meals_only_leaves_existing_list_untouched(self, app_ctx):
        household = make_household()
        add_entry(make_plan(household.id), custom_meal_name='Takeout')
        shopping_list = get_active_list(household.id)
        db.session.add(ShoppingListItem(shopping_list_id=shopping_list.id, name='Bread', quantity=1, is_manual=True))
        db.session.commit()

        with pytest.raises(PreconditionFailed):
            generate_shopping_list(household.id, WEEK)
        items = ShoppingListItem.query.filter_by(shopping_list_id=shopping_list.id).all()
        assert [(i.name, i.quantity) for i in items] == [('Bread', 1)]

    def test_missing_plan_is_not_found(self, app_ctx):
        household = make_household()
        db.session.commit()
        with pytest.raises(NotFound):
            generate_shopping_list(household.id, WEEK)

    def test_plans_are_scoped_by_household(self, app_ctx):
        ours, theirs = make_household('Ours'), make_household('Theirs')
        recipe = make_recipe(theirs.id, 'Their Stew', [('beef', 1, 'lb')])
        add_entry(make_plan(theirs.id), recipe)
        db.session.commit()

        with pytest.raises(NotFound):
            generate_shopping_list(ours.id, WEEK)

    def test_custom_entries_are_skipped_alongside_recipes(self, app_ctx):
        household = make_household()
        recipe = make_recipe(household.id, 'Omelette', [('egg', 3, None)])
        plan = make_plan(household.id)
        add_entry(plan, recipe, meal_type='breakfast')
        add_entry(plan, custom_meal_name='Pizza night')
        db.session.commit()

        shopping_list, items_added = generate_shopping_list(household.id, WEEK)
        assert items_added == 1
        assert list(_items(shopping_list.id)) == ['egg']

    def test_regenerating_is_idempotent(self, app_ctx):
        household = make_household()
        recipe = make_recipe(household.id, 'Pancakes', [('flour', 2, 'cup'), ('egg', 2, None)])
        add_entry(make_plan(household.id), recipe)
        db.session.commit()

        first_list, _ = generate_shopping_list(household.id, WEEK)
        first = {name: item.quantity for name, item in _items(first_list.id).items()}
        second_list, items_added = generate_shopping_list(household.id, WEEK)
        second = {name: item.quantity for name, item in _items(second_list.id).items()}

        assert second_list.id == first_list.id
        assert items_added == 2
        assert first == second == {'flour': 2, 'egg': 2}

    def test_regenerating_after_plan_change_replaces_contribution(self, app_ctx):
        household = make_household()
        recipe = make_recipe(household.id, 'Pancakes', [('flour', 2, 'cup')])
        plan = make_plan(household.id)
        entry = add_entry(plan, recipe)
        db.session.commit()

        shopping_list, _ = generate_shopping_list(household.id, WEEK)
        entry.servings_multiplier = 3
        db.session.commit()
        generate_shopping_list(household.id, WEEK)

        assert _items(shopping_list.id)['flour'].quantity == 6

    def test_generation_adds_to_manual_item_once(self, app_ctx):
        household = make_household()
        recipe = make_recipe(household.id, 'Carbonara', [('Pasta', 400, 'g')])
        add_entry(make_plan(household.id), recipe)
        shopping_list = get_active_list(household.id)
        db.session.add(ShoppingListItem(shopping_list_id=shopping_list.id, name='pasta ', quantity=100,
                                        unit='g', is_manual=True))
        db.session.commit()

        generate_shopping_list(household.id, WEEK)
        generate_shopping_list(household.id, WEEK)

        items = ShoppingListItem.query.filter_by(shopping_list_id=shopping_list.id).all()
        assert len(items) == 1
        assert items[0].quantity == 500
        assert items[0].source_recipe_ids == [recipe.id]

    def test_reuses_the_single_active_list(self, app_ctx):
        household = make_household()
        recipe = make_recipe(household.id, 'Salad', [('lettuce', 1, 'head')])
        add_entry(make_plan(household.id), recipe)
        existing = get_active_list(household.id)
        db.session.commit()

        shopping_list, _ = generate_shopping_list(household.id, WEEK)
        assert shopping_list.id == existing.id
        assert ShoppingList.query.filter_by(household_id=household.id, status='active').count() == 1

    def test_inventory_is_deducted_without_going_negative(self, app_ctx):
        household = make_household()
        recipe = make_recipe(household.id, 'Porridge', [('milk', 1, 'l'), ('oats', 100, 'g')])
        add_entry(make_plan(household.id), recipe)
        milk = add_inventory(household.id, 'Milk', 0.4, 'l')
        oats = add_inventory(household.id, 'oats', 500, 'g', location='pantry')
        db.session.commit()

        shopping_list, items_added = generate_shopping_list(household.id, WEEK, deduct_inventory=True)

        items = _items(shopping_list.id)
        assert items['milk'].quantity == pytest.approx(0.6)
        assert 'oats' not in items
        assert items_added == 1
        assert db.session.get(InventoryItem, milk.id).quantity == pytest.approx(0)
        assert db.session.get(InventoryItem, oats.id).quantity == pytest.approx(400)

    def test_inventory_deduction_converts_compatible_units(self, app_ctx):
        household = make_household()
        recipe = make_recipe(household.id, 'Custard', [('milk', 500, 'ml')])
        add_entry(make_plan(household.id), recipe)
        milk = add_inventory(household.id, 'milk', 0.25, 'l')
        db.session.commit()

        shopping_list, _ = generate_shopping_list(household.id, WEEK, deduct_inventory=True)

        assert _items(shopping_list.id)['milk'].quantity == pytest.approx(250)
        assert db.session.get(InventoryItem, milk.id).quantity == pytest.approx(0)

    def test_inventory_with_incompatible_unit_is_skipped(self, app_ctx):
        household = make_household()
        recipe = make_recipe(household.id, 'Garlic Bread', [('garlic', 4, 'clove')])
        add_entry(make_plan(household.id), recipe)
        garlic = add_inventory(household.id, 'garlic', 2, 'head', location='pantry')
        db.session.commit()

        shopping_list, _ = generate_shopping_list(household.id, WEEK, deduct_inventory=True)

        assert _items(shopping_list.id)['garlic'].quantity == 4
        assert db.session.get(InventoryItem, garlic.id).quantity == 2

    def test_inventory_untouched_without_deduct_flag(self, app_ctx):
        household = make_household()
        recipe = make_recipe(household.id, 'Porridge', [('milk', 1, 'l')])
        add_entry(make_plan(household.id), recipe)
        milk = add_inventory(household.id, 'milk', 0.4, 'l')
        db.session.commit()

        shopping_list, _ = generate_shopping_list(household.id, WEEK)

        assert _items(shopping_list.id)['milk'].quantity == 1
        assert db.session.get(InventoryItem, milk.id).quantity == pytest.approx(0.4)

    def test_storage_failure_rolls_back_every_write(self, app_ctx, monkeypatch):
        household = make_household()
        recipe = make_recipe(household.id, 'Porridge', [('milk', 1, 'l'), ('oats', 100, 'g'), ('honey', 1, 'tbsp')])
        add_entry(make_plan(household.id), recipe)
        milk = add_inventory(household.id, 'milk', 0.4, 'l')
        db.session.commit()

        real_upsert = aggregator._upsert_item
        calls = []

        def failing_upsert(*args, **kwargs):
            calls.append(1)
            if len(calls) == 2:
                raise SQLAlchemyError('disk full')
            return real_upsert(*args, **kwargs)

        monkeypatch.setattr(aggregator, '_upsert_item', failing_upsert)

        with pytest.raises(DependencyFailure):
            generate_shopping_list(household.id, WEEK, deduct_inventory=True)

        assert ShoppingList.query.filter_by(household_id=household.id).count() == 0
        assert ShoppingListItem.query.count() == 0
        assert db.session.get(InventoryItem, milk.id).quantity == pytest.approx(0.4)

    def test_malformed_unit_is_left_out_of_deduction(self, app_ctx):
        household = make_household()
        recipe = make_recipe(household.id, 'Sauce', [('tomato', 1, 'can (14 oz')])
        add_entry(make_plan(household.id), recipe)
        tomatoes = add_inventory(household.id, 'tomato', 2, 'can', location='pantry')
        db.session.commit()

        shopping_list, items_added = generate_shopping_list(household.id, WEEK, deduct_inventory=True)

        assert items_added == 1
        assert _items(shopping_list.id)['tomato'].quantity == 1
        assert db.session.get(InventoryItem, tomatoes.id).quantity == 2


class TestExistingListItems:

    def _manual_item(self, household_id, name, quantity, unit):
        shopping_list = get_active_list(household_id)
        db.session.add(ShoppingListItem(shopping_list_id=shopping_list.id, name=name, quantity=quantity,
                                        unit=unit, is_manual=True))
        return shopping_list

    def test_contribution_is_converted_to_the_item_unit(self, app_ctx):
        household = make_household()
        recipe = make_recipe(household.id, 'Custard', [('milk', 200, 'ml')])
        add_entry(make_plan(household.id), recipe)
        shopping_list = self._manual_item(household.id, 'Milk', 1, 'gallon')
        db.session.commit()

        generate_shopping_list(household.id, WEEK)
        generate_shopping_list(household.id, WEEK)

        milk = _items(shopping_list.id)['milk']
        assert milk.unit == 'gallon'
        assert milk.quantity == pytest.approx(1 + 200 / 3785.411784)

    def test_unconvertible_unit_keeps_the_existing_quantity(self, app_ctx):
        household = make_household()
        recipe = make_recipe(household.id, 'Garlic Bread', [('garlic', 4, 'clove')])
        add_entry(make_plan(household.id), recipe)
        shopping_list = self._manual_item(household.id, 'garlic', 1, 'head')
        db.session.commit()

        generate_shopping_list(household.id, WEEK)

        garlic = _items(shopping_list.id)['garlic']
        assert (garlic.quantity, garlic.unit) == (1, 'head')
        assert garlic.source_recipe_ids == [recipe.id]

    def test_unitless_item_takes_the_planned_unit(self, app_ctx):
        household = make_household()
        recipe = make_recipe(household.id, 'Toast', [('bread', 2, 'slice')])
        add_entry(make_plan(household.id), recipe)
        shopping_list = self._manual_item(household.id, 'Bread', None, None)
        db.session.commit()

        generate_shopping_list(household.id, WEEK)

        bread = _items(shopping_list.id)['bread']
        assert (bread.quantity, bread.unit) == (2, 'slice')

    def test_unplanned_ingredients_are_taken_back_on_regeneration(self, app_ctx):
        household = make_household()
        pancakes = make_recipe(household.id, 'Pancakes', [('flour', 2, 'cup'), ('egg', 2, None)])
        toast = make_recipe(household.id, 'Toast', [('bread', 2, 'slice')])
        plan = make_plan(household.id)
        add_entry(plan, pancakes)
        toast_entry = add_entry(plan, toast, meal_type='breakfast')
        shopping_list = self._manual_item(household.id, 'egg', 3, None)
        db.session.commit()

        generate_shopping_list(household.id, WEEK)
        assert _items(shopping_list.id)['egg'].quantity == 5

        db.session.delete(toast_entry)
        pancakes.ingredients = [ri for ri in pancakes.ingredients if ri.ingredient.name != 'egg']
        db.session.commit()
        generate_shopping_list(household.id, WEEK)

        items = _items(shopping_list.id)
        assert set(items) == {'flour', 'egg'}
        assert items['egg'].quantity == 3
        assert items['flour'].quantity == 2
