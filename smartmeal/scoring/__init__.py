"""Recipe scoring: weights, selection context and explainable scores."""

from smartmeal.scoring.recipe_scorer import (
    RecipeScore,
    RecipeScorer,
    ScoringWeights,
    SelectionContext,
    rank_candidates,
    time_budget,
)
from smartmeal.scoring.preferences import (
    days_since_used,
    derive_cuisine_preferences,
    recipe_completion_rates,
)

__all__ = [
    "RecipeScore",
    "RecipeScorer",
    "ScoringWeights",
    "SelectionContext",
    "rank_candidates",
    "time_budget",
    "days_since_used",
    "derive_cuisine_preferences",
    "recipe_completion_rates",
]
