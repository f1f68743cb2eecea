"""Tests for candidate filter/ordering builders and candidate budgets."""
import pytest

from smartmeal.data_layer.models import MealPlanPreferences
from smartmeal.ingestion import recipe_query
from smartmeal.ingestion.recipe_query import (
    MAX_RECIPE_COUNT,
    RecipeFilter,
    RecipeOrdering,
    build_meal_plan_filter,
    get_recommended_recipe_count,
    matches_meal_type,
    unsafe_recipe_ids,
)

from tests.conftest import EGG, MILK, PEANUT, WHEAT


class TestRecipeFilter:
    """Tests for RecipeFilter.matches()."""

    def test_excludes_recipes_with_any_excluded_allergen(self, make_recipe):
        recipe_filter = RecipeFilter(excluded_allergen_ids=frozenset({PEANUT, MILK}))
        assert not recipe_filter.matches(make_recipe(1, allergen_tags=frozenset({PEANUT})))
        assert not recipe_filter.matches(make_recipe(2, allergen_tags=frozenset({EGG, MILK})))
        assert recipe_filter.matches(make_recipe(3, allergen_tags=frozenset({EGG})))

    def test_free_claims_do_not_override_tags(self, make_recipe):
        """Test that a contradictory 'free of' claim never makes a recipe safe."""
        recipe = make_recipe(
            1,
            allergen_tags=frozenset({PEANUT}),
            allergen_free_claims=frozenset({PEANUT}),
        )
        assert not RecipeFilter(excluded_allergen_ids=frozenset({PEANUT})).matches(recipe)

    def test_max_cooking_time_applies_to_cook_time(self, make_recipe):
        recipe_filter = RecipeFilter(max_cooking_time=20)
        assert recipe_filter.matches(make_recipe(1, prep_time=30, cook_time=20))
        assert not recipe_filter.matches(make_recipe(2, prep_time=0, cook_time=21))

    def test_unknown_cook_time_passes_time_filter(self, make_recipe):
        assert RecipeFilter(max_cooking_time=5).matches(make_recipe(1, cook_time=None))

    def test_cuisine_allow_list_is_case_insensitive(self, make_recipe):
        recipe_filter = RecipeFilter(cuisine_types=frozenset({"italian"}))
        assert recipe_filter.matches(make_recipe(1, cuisine_type="Italian"))
        assert not recipe_filter.matches(make_recipe(2, cuisine_type="Thai"))
        assert not recipe_filter.matches(make_recipe(3, cuisine_type=None))

    def test_empty_filter_matches_everything(self, fixture_recipes):
        assert RecipeFilter().apply(fixture_recipes) == fixture_recipes


class TestBuildMealPlanFilter:
    """Tests for build_meal_plan_filter()."""

    def test_normalizes_cuisines_and_allergens(self):
        prefs = MealPlanPreferences(cuisine_types=[" Italian ", "THAI", ""], max_cooking_time=30)
        recipe_filter = build_meal_plan_filter(prefs, ["1", 4])
        assert recipe_filter.cuisine_types == frozenset({"italian", "thai"})
        assert recipe_filter.excluded_allergen_ids == frozenset({PEANUT, WHEAT})
        assert recipe_filter.max_cooking_time == 30


class TestMatchesMealType:
    """Tests for matches_meal_type()."""

    def test_tagged_recipe_matches(self, make_recipe):
        assert matches_meal_type(make_recipe(1, meal_types=frozenset({"Lunch"})), "lunch")

    def test_name_mention_matches(self, make_recipe):
        recipe = make_recipe(1, name="Breakfast Burrito", meal_types=frozenset())
        assert matches_meal_type(recipe, "Breakfast")

    def test_description_mention_matches(self, make_recipe):
        recipe = make_recipe(1, description="A quick snack", meal_types=frozenset())
        assert matches_meal_type(recipe, "Snack")

    def test_untagged_recipe_does_not_match(self, make_recipe):
        assert not matches_meal_type(make_recipe(1, meal_types=frozenset({"Dinner"})), "Breakfast")

    def test_no_meal_type_matches_everything(self, make_recipe):
        assert matches_meal_type(make_recipe(1), None)


class TestRecipeOrdering:
    """Tests for meal-type specific ordering."""

    def _ordered_ids(self, recipes, meal_type):
        return [r.recipe_id for r in RecipeOrdering(meal_type).apply(recipes)]

    def test_breakfast_orders_by_prep_time_then_rating(self, fixture_recipes):
        ids = self._ordered_ids(fixture_recipes, "Breakfast")
        assert ids[:6] == [1, 2, 3, 4, 20, 5]

    def test_dinner_orders_by_rating_then_cook_time(self, fixture_recipes):
        ids = self._ordered_ids(fixture_recipes, "Dinner")
        assert ids[:9] == [13, 15, 8, 11, 12, 16, 14, 10, 21]

    def test_lunch_orders_by_total_time(self, fixture_recipes):
        ids = self._ordered_ids(fixture_recipes, "Lunch")
        assert ids[:5] == [9, 8, 6, 7, 10]

    def test_matching_meal_type_comes_first(self, fixture_recipes):
        ordering = RecipeOrdering("Snack")
        ordered = ordering.apply(fixture_recipes)
        assert {r.recipe_id for r in ordered[:3]} == {17, 18, 19}

    def test_unknown_meal_type_orders_by_rating(self, make_recipe):
        recipes = [
            make_recipe(1, name="B", rating=4.0),
            make_recipe(2, name="A", rating=4.0),
            make_recipe(3, name="C", rating=4.5),
        ]
        assert self._ordered_ids(recipes, "Brunch") == [3, 2, 1]

    def test_ordering_is_deterministic(self, fixture_recipes):
        forward = self._ordered_ids(fixture_recipes, "Dinner")
        backward = self._ordered_ids(list(reversed(fixture_recipes)), "Dinner")
        assert forward == backward


class TestRecommendedRecipeCount:
    """Tests for get_recommended_recipe_count()."""

    def test_base_counts(self):
        prefs = MealPlanPreferences()
        assert get_recommended_recipe_count("Breakfast", prefs) == 20
        assert get_recommended_recipe_count("Lunch", prefs) == 30
        assert get_recommended_recipe_count("Dinner", prefs) == 40
        assert get_recommended_recipe_count("Snack", prefs) == 15

    def test_unknown_meal_type_uses_default(self):
        assert get_recommended_recipe_count("Brunch", MealPlanPreferences()) == 25

    def test_many_cuisines_and_quick_meals_increase_budget(self):
        prefs = MealPlanPreferences(cuisine_types=["a", "b", "c"], max_cooking_time=20)
        assert get_recommended_recipe_count("Lunch", prefs) == 50

    def test_two_cuisines_and_thirty_minutes_do_not(self):
        prefs = MealPlanPreferences(cuisine_types=["a", "b"], max_cooking_time=30)
        assert get_recommended_recipe_count("Lunch", prefs) == 30

    def test_budget_is_capped(self, monkeypatch):
        monkeypatch.setitem(recipe_query.BASE_RECIPE_COUNTS, "Dinner", 95)
        prefs = MealPlanPreferences(cuisine_types=["a", "b", "c"], max_cooking_time=10)
        assert get_recommended_recipe_count("Dinner", prefs) == MAX_RECIPE_COUNT


@pytest.mark.parametrize("excluded,expected", [
    (set(), []),
    ({PEANUT}, [1]),
    ({PEANUT, MILK}, [1, 2]),
])
def test_unsafe_recipe_ids(make_recipe, excluded, expected):
    recipes = [
        make_recipe(1, allergen_tags=frozenset({PEANUT})),
        make_recipe(2, allergen_tags=frozenset({MILK})),
        make_recipe(3),
    ]
    assert unsafe_recipe_ids(recipes, excluded) == expected
