"""Meal plan composition and the service operations built on it."""

from smartmeal.planning.meal_planner import (
    CancellationToken,
    CompositionPolicy,
    CompositionResult,
    PlanComposer,
    SkippedSlot,
    is_rush_hour,
    normalize_meal_types,
)
from smartmeal.planning.service import (
    BulkFillRequest,
    BulkFillResult,
    GenerateMealPlanRequest,
    GenerateSmartMealsRequest,
    MealPlanTemplate,
    MealPlanView,
    PlanResult,
    SmartMealPlanService,
    build_service,
)

__all__ = [
    # Composition
    "CancellationToken",
    "CompositionPolicy",
    "CompositionResult",
    "PlanComposer",
    "SkippedSlot",
    "is_rush_hour",
    "normalize_meal_types",
    # Service
    "BulkFillRequest",
    "BulkFillResult",
    "GenerateMealPlanRequest",
    "GenerateSmartMealsRequest",
    "MealPlanTemplate",
    "MealPlanView",
    "PlanResult",
    "SmartMealPlanService",
    "build_service",
]
