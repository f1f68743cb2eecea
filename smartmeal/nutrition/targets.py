"""Per-meal nutritional targets.

Calories are a share of the daily goal. Macro targets (grams) are fixed per
meal type and are not scaled with the daily calorie goal.
"""
from typing import Dict, Tuple

from smartmeal.data_layer.models import MealType, NutritionalTarget

DEFAULT_DAILY_CALORIES = 2000

# meal type -> (calorie share, protein g, carbs g, fat g)
MEAL_TARGETS: Dict[str, Tuple[float, float, float, float]] = {
    MealType.BREAKFAST: (0.25, 15.0, 30.0, 12.0),
    MealType.LUNCH: (0.35, 25.0, 45.0, 18.0),
    MealType.DINNER: (0.40, 30.0, 50.0, 20.0),
    MealType.SNACK: (0.10, 8.0, 15.0, 6.0),
}
FALLBACK_TARGET: Tuple[float, float, float, float] = (0.30, 20.0, 35.0, 15.0)


def resolve(meal_type: str, daily_calories: int = DEFAULT_DAILY_CALORIES) -> NutritionalTarget:
    """Nutritional target for one slot of *meal_type*.

    Args:
        meal_type: Meal type name (case-insensitive); unknown types use the
            30% fallback
        daily_calories: Daily calorie goal

    Returns:
        NutritionalTarget with calories truncated to int
    """
    canonical = MealType.normalize(meal_type)
    share, protein, carbs, fat = MEAL_TARGETS.get(canonical, FALLBACK_TARGET)
    return NutritionalTarget(
        target_calories=int(round(daily_calories * share, 6)),
        target_protein=protein,
        target_carbs=carbs,
        target_fat=fat,
    )
