"""Tests for data layer components."""
import pytest
import json
import yaml
from datetime import date
from pathlib import Path
from tempfile import NamedTemporaryFile

from smartmeal.data_layer.exceptions import ErrorCode, RetrievalError, ValidationError
from smartmeal.data_layer.models import MealPlan, MealType, NutritionFacts, RecipeCandidate, date_range
from smartmeal.data_layer.recipe_db import RecipeDB, recipe_from_row, recipe_to_row
from smartmeal.data_layer.user_profile import UserProfileLoader


class TestRecipeDB:
    """Tests for RecipeDB."""

    def test_load_fixture_recipes(self, recipes_path):
        """Test loading the fixture recipe file."""
        db = RecipeDB(recipes_path)
        recipes = db.get_all_recipes()
        assert len(recipes) == 21
        assert recipes[0].name == "Peanut Butter Oatmeal"
        assert recipes[0].allergen_tags == frozenset({1})

    def test_get_recipe_by_id(self, recipes_path):
        db = RecipeDB(recipes_path)
        assert db.get_recipe_by_id(13).name == "Shrimp Pad Thai"
        assert db.get_recipe_by_id(999) is None

    def test_get_all_returns_copy(self, recipes_path):
        db = RecipeDB(recipes_path)
        db.get_all_recipes().clear()
        assert len(db.get_all_recipes()) == 21

    def test_load_minimal_recipe(self):
        """Test loading a recipe with only id and name."""
        with NamedTemporaryFile(mode="w", suffix=".json", delete=False) as f:
            json.dump({"recipes": [{"id": "7", "name": "Toast"}]}, f)
            temp_path = f.name

        try:
            recipe = RecipeDB(temp_path).get_all_recipes()[0]
            assert recipe.recipe_id == 7
            assert recipe.meal_types == frozenset()
            assert recipe.allergen_tags == frozenset()
            assert recipe.rating is None
            assert recipe.total_time is None
            assert not recipe.nutrition.is_known
        finally:
            Path(temp_path).unlink()


class TestRowConversion:
    """Tests for recipe_from_row() / recipe_to_row()."""

    def test_meal_types_are_canonical(self):
        recipe = recipe_from_row({"id": 1, "name": "x", "meal_types": ["dinner", "LUNCH", "Brunch"]})
        assert recipe.meal_types == frozenset({"Dinner", "Lunch", "Brunch"})

    def test_row_is_json_safe(self, fixture_recipes):
        rows = [recipe_to_row(r) for r in fixture_recipes]
        assert json.loads(json.dumps(rows)) == rows
        assert [recipe_from_row(row) for row in rows] == fixture_recipes

    def test_missing_name_raises(self):
        with pytest.raises(KeyError):
            recipe_from_row({"id": 1})


class TestModels:
    """Tests for model helpers."""

    @pytest.mark.parametrize("value,expected", [
        ("dinner", "Dinner"),
        (" BREAKFAST ", "Breakfast"),
        ("Snack", "Snack"),
        ("Brunch", None),
        ("", None),
        (None, None),
    ])
    def test_meal_type_normalize(self, value, expected):
        assert MealType.normalize(value) == expected

    def test_meal_type_sort_key(self):
        assert sorted(["Snack", "Dinner", "Breakfast"], key=MealType.sort_key) == ["Breakfast", "Dinner", "Snack"]
        assert MealType.sort_key("Brunch") == 4

    def test_total_time(self):
        assert RecipeCandidate(1, "a", prep_time=5, cook_time=None).total_time == 5
        assert RecipeCandidate(1, "a", prep_time=5, cook_time=10).total_time == 15

    def test_nutrition_known(self):
        assert NutritionFacts(calories=100).is_known
        assert not NutritionFacts(protein_g=10).is_known

    def test_date_range_inclusive(self):
        days = date_range(date(2024, 2, 28), date(2024, 3, 1))
        assert days == [date(2024, 2, 28), date(2024, 2, 29), date(2024, 3, 1)]

    def test_meal_plan_dates(self):
        plan = MealPlan(1, 1, "p", date(2024, 1, 1), date(2024, 1, 1))
        assert plan.dates() == [date(2024, 1, 1)]


class TestExceptions:
    """Tests for structured errors."""

    def test_to_dict(self):
        error = ValidationError("name", "Meal plan name is required")
        assert error.to_dict() == {
            "error_code": "VALIDATION_FAILURE",
            "message": "Meal plan name is required",
            "context": {"field": "name"},
        }
        assert str(error) == "[VALIDATION_FAILURE] Meal plan name is required"

    def test_retrieval_error_for_slot(self):
        error = RetrievalError("timed out", timed_out=True).for_slot(date(2024, 1, 1), "Lunch")
        assert error.code is ErrorCode.RETRIEVAL_FAILURE
        assert error.context == {"timed_out": True, "meal_type": "Lunch", "date": "2024-01-01"}


class TestUserProfileLoader:
    """Tests for UserProfileLoader."""

    def test_load_profile(self):
        """Test loading a full planning profile."""
        profile_data = {
            "user": {"id": 42, "daily_calories": 2400, "allergen_ids": [1, 5]},
            "preferences": {
                "cuisine_types": ["Italian", "Thai"],
                "max_cooking_time": 30,
                "budget_range": "low",
                "dietary_goals": ["high_protein"],
                "complexity": "simple",
                "variety_mode": False,
                "include_leftovers": False,
                "meal_types": ["Breakfast", "Dinner"],
            },
        }
        with NamedTemporaryFile(mode="w", suffix=".yaml", delete=False) as f:
            yaml.dump(profile_data, f)
            temp_path = f.name

        try:
            profile = UserProfileLoader(temp_path).load()
            assert profile.user_id == 42
            assert profile.allergen_ids == [1, 5]
            prefs = profile.preferences
            assert prefs.cuisine_types == ["Italian", "Thai"]
            assert prefs.max_cooking_time == 30
            assert prefs.dietary_goals == ["high_protein"]
            assert prefs.variety_mode is False
            assert prefs.include_leftovers is False
            assert prefs.preferred_meal_types == ["Breakfast", "Dinner"]
            assert prefs.daily_calories == 2400
        finally:
            Path(temp_path).unlink()

    def test_load_minimal_profile(self):
        with NamedTemporaryFile(mode="w", suffix=".yaml", delete=False) as f:
            yaml.dump({"user": {"id": 3}}, f)
            temp_path = f.name

        try:
            profile = UserProfileLoader(temp_path).load()
            assert profile.allergen_ids == []
            assert profile.preferences.max_cooking_time is None
            assert profile.preferences.variety_mode is True
            assert profile.preferences.daily_calories == 2000
        finally:
            Path(temp_path).unlink()

    def test_missing_user_section(self):
        with NamedTemporaryFile(mode="w", suffix=".yaml", delete=False) as f:
            yaml.dump({"preferences": {}}, f)
            temp_path = f.name

        try:
            with pytest.raises(KeyError):
                UserProfileLoader(temp_path).load()
        finally:
            Path(temp_path).unlink()

    def test_example_profile_loads(self):
        path = Path(__file__).parent.parent / "config" / "user_profile.yaml.example"
        profile = UserProfileLoader(str(path)).load()
        assert profile.user_id == 1
        assert profile.allergen_ids == [1]
