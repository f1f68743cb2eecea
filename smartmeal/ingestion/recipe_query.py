"""Filter and ordering builders for candidate queries.

These are plain values built by pure functions. A ``RecipeStore`` may
translate them into SQL or apply them in memory via ``matches`` and
``sort_key``; either way the semantics are defined here.
"""
from dataclasses import dataclass
from typing import FrozenSet, Iterable, List, Optional, Sequence, Set, Tuple

from smartmeal.data_layer.models import MealPlanPreferences, MealType, RecipeCandidate

MAX_RECIPE_COUNT = 100

# Sort sentinel for unknown prep/cook times
UNKNOWN_TIME = 999

BASE_RECIPE_COUNTS = {
    MealType.BREAKFAST: 20,
    MealType.LUNCH: 30,
    MealType.DINNER: 40,
    MealType.SNACK: 15,
}
DEFAULT_RECIPE_COUNT = 25


@dataclass(frozen=True)
class RecipeFilter:
    """Hard constraints every candidate must satisfy."""

    excluded_allergen_ids: FrozenSet[int] = frozenset()
    max_cooking_time: Optional[int] = None
    cuisine_types: FrozenSet[str] = frozenset()  # lowercased allow-list

    def is_allergen_safe(self, recipe: RecipeCandidate) -> bool:
        return self.excluded_allergen_ids.isdisjoint(recipe.allergen_tags)

    def matches(self, recipe: RecipeCandidate) -> bool:
        if not self.is_allergen_safe(recipe):
            return False
        if (
            self.max_cooking_time is not None
            and recipe.cook_time is not None
            and recipe.cook_time > self.max_cooking_time
        ):
            return False
        if self.cuisine_types:
            cuisine = (recipe.cuisine_type or "").strip().lower()
            if cuisine not in self.cuisine_types:
                return False
        return True

    def apply(self, recipes: Iterable[RecipeCandidate]) -> List[RecipeCandidate]:
        return [r for r in recipes if self.matches(r)]


def matches_meal_type(recipe: RecipeCandidate, meal_type: Optional[str]) -> bool:
    """True if the recipe is tagged for, or textually mentions, *meal_type*."""
    if not meal_type:
        return True
    canonical = MealType.normalize(meal_type) or meal_type
    if canonical in recipe.meal_types:
        return True
    needle = meal_type.strip().lower()
    return needle in recipe.name.lower() or needle in recipe.description.lower()


@dataclass(frozen=True)
class RecipeOrdering:
    """Meal-type specific ordering.

    Recipes matching the meal type come first; within each group:
      breakfast/snack: prep time asc, rating desc, name
      lunch:           prep + cook asc, rating desc, name
      dinner:          rating desc, cook time asc, name
      other:           rating desc, name
    """

    meal_type: Optional[str] = None

    def sort_key(self, recipe: RecipeCandidate) -> Tuple:
        group = 0 if matches_meal_type(recipe, self.meal_type) else 1
        rating = -(recipe.rating or 0.0)
        canonical = MealType.normalize(self.meal_type)

        if canonical in (MealType.BREAKFAST, MealType.SNACK):
            prep = recipe.prep_time if recipe.prep_time is not None else UNKNOWN_TIME
            key: Tuple = (prep, rating, recipe.name)
        elif canonical == MealType.LUNCH:
            total = (recipe.prep_time or 0) + (recipe.cook_time or 0)
            key = (total, rating, recipe.name)
        elif canonical == MealType.DINNER:
            cook = recipe.cook_time if recipe.cook_time is not None else UNKNOWN_TIME
            key = (rating, cook, recipe.name)
        else:
            key = (rating, recipe.name)
        return (group,) + key + (recipe.recipe_id,)

    def apply(self, recipes: Iterable[RecipeCandidate]) -> List[RecipeCandidate]:
        return sorted(recipes, key=self.sort_key)


def build_meal_plan_filter(
    preferences: MealPlanPreferences,
    excluded_allergen_ids: Iterable[int]
) -> RecipeFilter:
    """Filter for meal-plan candidates from preferences and user allergies."""
    return RecipeFilter(
        excluded_allergen_ids=frozenset(int(a) for a in excluded_allergen_ids),
        max_cooking_time=preferences.max_cooking_time,
        cuisine_types=frozenset(c.strip().lower() for c in preferences.cuisine_types if c.strip()),
    )


def build_meal_plan_order(meal_type: str) -> RecipeOrdering:
    return RecipeOrdering(meal_type=meal_type)


def get_recommended_recipe_count(meal_type: str, preferences: MealPlanPreferences) -> int:
    """Number of candidates to fetch for one slot, capped at 100.

    Args:
        meal_type: Meal type name
        preferences: Planning preferences

    Returns:
        Candidate budget
    """
    count = BASE_RECIPE_COUNTS.get(MealType.normalize(meal_type), DEFAULT_RECIPE_COUNT)

    # More cuisines need more variety; quick-meal constraints thin the pool
    if len(preferences.cuisine_types) > 2:
        count += 10
    if preferences.max_cooking_time is not None and preferences.max_cooking_time < 30:
        count += 10

    return min(count, MAX_RECIPE_COUNT)


def unsafe_recipe_ids(
    recipes: Sequence[RecipeCandidate],
    excluded_allergen_ids: Set[int]
) -> List[int]:
    """Ids of recipes containing any excluded allergen."""
    excluded = frozenset(excluded_allergen_ids)
    return [r.recipe_id for r in recipes if not excluded.isdisjoint(r.allergen_tags)]
