"""Tests for cache key construction."""
from smartmeal.caching.cache_keys import CacheKeyBuilder, normalize_segment, params_hash


class TestNormalizeSegment:
    """Tests for normalize_segment()."""

    def test_lowercases_and_replaces_separators(self):
        assert normalize_segment("Meal Plan:7") == "meal_plan_7"
        assert normalize_segment("a/b.c-d") == "a_b_c_d"

    def test_none_becomes_null(self):
        assert normalize_segment(None) == "null"


class TestParamsHash:
    """Tests for params_hash()."""

    def test_key_order_does_not_matter(self):
        assert params_hash({"a": 1, "b": 2}) == params_hash({"b": 2, "a": 1})

    def test_sets_are_order_insensitive(self):
        assert params_hash({"ids": {3, 1, 2}}) == params_hash({"ids": {2, 3, 1}})

    def test_strings_are_case_insensitive(self):
        assert params_hash({"cuisine": "Italian"}) == params_hash({"cuisine": " italian "})

    def test_different_params_differ(self):
        assert params_hash({"max_cooking_time": 30}) != params_hash({"max_cooking_time": 45})

    def test_hash_length(self):
        assert len(params_hash({"a": 1})) == 16
        assert len(params_hash({"a": 1}, length=32)) == 32


class TestCacheKeyBuilder:
    """Tests for CacheKeyBuilder."""

    def test_prefix_is_normalized(self):
        assert CacheKeyBuilder("SmartMeal").build("x") == "smartmeal:x"

    def test_none_segments_are_skipped(self):
        assert CacheKeyBuilder().build("a", None, "b") == "smartmeal:a:b"

    def test_meal_plan_key(self):
        assert CacheKeyBuilder().meal_plan(7) == "smartmeal:mealplan:7"

    def test_templates_key(self):
        assert CacheKeyBuilder().meal_plan_templates() == "smartmeal:mealplan:templates"

    def test_user_meal_plans_pattern(self):
        assert CacheKeyBuilder().user_meal_plans_pattern(42) == "smartmeal:user:42:mealplans:*"

    def test_filtered_recipes_key_includes_hash(self):
        keys = CacheKeyBuilder()
        params = {"cuisine_types": ["italian"], "max_cooking_time": 30}
        key = keys.filtered_recipes("Dinner", params)
        assert key == f"smartmeal:recipes:filtered:dinner:{params_hash(params)}"

    def test_identical_requests_collide(self):
        keys = CacheKeyBuilder()
        first = keys.recommendations(1, "Lunch", {"a": 1, "b": [1, 2]})
        second = keys.recommendations(1, "lunch", {"b": [1, 2], "a": 1})
        assert first == second

    def test_recommendations_key_is_under_user(self):
        key = CacheKeyBuilder().recommendations(5, "Dinner", {})
        assert key.startswith("smartmeal:user:5:recommendations:dinner:")
