"""Recipe scoring for meal-slot selection."""

import logging
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from datetime import date, time
from typing import Dict, List, Optional, Sequence, Tuple

from smartmeal.config import ScoringSettings
from smartmeal.data_layer.models import (
    MealPlanPreferences,
    MealType,
    NutritionalTarget,
    RecipeCandidate,
    UserCuisinePreference,
)
from smartmeal.scoring.preferences import cuisine_key

logger = logging.getLogger(__name__)

NEUTRAL_SCORE = 0.5

# Share of the variety score lost when every recent slot used the same cuisine
CUISINE_PENALTY = 0.5

# (max days since last use, variety ceiling); older use leaves variety intact
HISTORY_RECENCY = ((1, 0.0), (3, 0.1), (7, 0.3), (14, 0.7))

TIME_FLOOR = 0.1

COMPLEXITY_FACTORS = {"simple": 0.75, "moderate": 1.0, "elaborate": 1.5}

# Relative weight of each nutrient in the deviation average
NUTRIENT_WEIGHTS = {"calories": 0.4, "protein": 0.2, "carbs": 0.2, "fat": 0.2}

# goal -> (nutrient, direction); direction +1 means exceeding target is fine,
# -1 means staying under target is fine
DIETARY_GOALS = {
    "high_protein": ("protein", 1),
    "low_carb": ("carbs", -1),
    "low_fat": ("fat", -1),
    "low_calorie": ("calories", -1),
}
GOAL_WEIGHT_FACTOR = 2.0


@dataclass
class ScoringWeights:
    """Configurable weights for the scoring criteria."""
    quality_weight: float = 0.30
    variety_weight: float = 0.25
    time_weight: float = 0.20
    nutrition_weight: float = 0.15
    preference_weight: float = 0.10

    def __post_init__(self):
        """Validate weights sum to 1.0 and are non-negative."""
        weights = [self.quality_weight, self.variety_weight, self.time_weight,
                   self.nutrition_weight, self.preference_weight]
        if any(w < 0 for w in weights):
            raise ValueError("All scoring weights must be non-negative")

        total = sum(weights)
        if abs(total - 1.0) > 0.001:
            raise ValueError(f"Scoring weights must sum to 1.0, got {total}")

    @classmethod
    def from_settings(cls, settings: ScoringSettings) -> "ScoringWeights":
        return cls(
            quality_weight=settings.quality_weight,
            variety_weight=settings.variety_weight,
            time_weight=settings.time_weight,
            nutrition_weight=settings.nutrition_weight,
            preference_weight=settings.preference_weight,
        )


@dataclass(frozen=True)
class SelectionContext:
    """Everything known about one meal slot when its candidates are scored.

    Rebuilt for every slot; the recent window is a snapshot of the
    composition run at the time the slot is reached.
    """
    user_id: int
    meal_type: str
    date: date
    current_time: time
    target_calories: int
    is_weekend: bool
    is_rush_hour: bool
    preferences: MealPlanPreferences
    nutritional_target: Optional[NutritionalTarget] = None
    recent_recipe_ids: Tuple[int, ...] = ()
    recent_cuisines: Tuple[str, ...] = ()
    cuisine_preferences: Tuple[UserCuisinePreference, ...] = ()
    recipe_completion_rates: Dict[int, float] = field(default_factory=dict, hash=False)
    history_days_since: Dict[int, int] = field(default_factory=dict, hash=False)


@dataclass(frozen=True)
class RecipeScore:
    """Explainable score of one candidate for one slot."""
    recipe_id: int
    total_score: float
    quality_score: float
    variety_score: float
    time_score: float
    nutritional_score: float
    user_preference_score: float
    score_breakdown: str


def time_budget(context: SelectionContext) -> int:
    """Comfortable total preparation time (minutes) for the slot."""
    meal_type = MealType.normalize(context.meal_type)
    if meal_type == MealType.BREAKFAST:
        if context.is_rush_hour:
            budget = 10
        elif context.is_weekend:
            budget = 45
        else:
            budget = 20
    elif meal_type == MealType.LUNCH:
        budget = 20 if context.is_rush_hour else 45
    elif meal_type == MealType.DINNER:
        if context.is_weekend:
            budget = 120
        elif context.is_rush_hour:
            budget = 30
        else:
            budget = 60
    elif meal_type == MealType.SNACK:
        budget = 10
    else:
        budget = 30

    factor = COMPLEXITY_FACTORS.get((context.preferences.complexity or "").lower(), 1.0)
    return max(1, int(round(budget * factor)))


class RecipeScorer:
    """Scores recipe candidates against a slot's selection context."""

    def __init__(self,
                 weights: Optional[ScoringWeights] = None,
                 min_rating_count: int = 3,
                 workers: int = 1):
        """Initialize recipe scorer.

        Args:
            weights: Optional custom scoring weights
            min_rating_count: Ratings needed before the average is trusted
            workers: Thread count for score_all; 1 scores inline
        """
        self.weights = weights or ScoringWeights()
        self.min_rating_count = min_rating_count
        self.workers = max(1, workers)

    @classmethod
    def from_settings(cls, settings: ScoringSettings) -> "RecipeScorer":
        return cls(
            weights=ScoringWeights.from_settings(settings),
            min_rating_count=settings.min_rating_count,
            workers=settings.workers,
        )

    def score(self, candidate: RecipeCandidate, context: SelectionContext) -> RecipeScore:
        """Score a candidate for a slot.

        Args:
            candidate: Allergen-safe recipe candidate
            context: Slot selection context

        Returns:
            RecipeScore with every sub-score in [0, 1]
        """
        quality = self._score_quality(candidate)
        variety = self._score_variety(candidate, context)
        time_score = self._score_time(candidate, context)
        nutritional = self._score_nutrition(candidate, context)
        preference = self._score_preference(candidate, context)

        w = self.weights
        total = (
            quality * w.quality_weight +
            variety * w.variety_weight +
            time_score * w.time_weight +
            nutritional * w.nutrition_weight +
            preference * w.preference_weight
        )

        breakdown = (
            f"Quality:{quality:.2f}({w.quality_weight}), "
            f"Variety:{variety:.2f}({w.variety_weight}), "
            f"Time:{time_score:.2f}({w.time_weight}), "
            f"Nutrition:{nutritional:.2f}({w.nutrition_weight}), "
            f"Preference:{preference:.2f}({w.preference_weight}) "
            f"= {total:.3f}"
        )

        return RecipeScore(
            recipe_id=candidate.recipe_id,
            total_score=total,
            quality_score=quality,
            variety_score=variety,
            time_score=time_score,
            nutritional_score=nutritional,
            user_preference_score=preference,
            score_breakdown=breakdown,
        )

    def score_all(self,
                  candidates: Sequence[RecipeCandidate],
                  context: SelectionContext) -> List[RecipeScore]:
        """Score every candidate; the result is aligned with *candidates*."""
        if self.workers == 1 or len(candidates) < 2:
            return [self.score(c, context) for c in candidates]
        with ThreadPoolExecutor(max_workers=self.workers) as pool:
            return list(pool.map(lambda c: self.score(c, context), candidates))

    def _score_quality(self, candidate: RecipeCandidate) -> float:
        if candidate.rating is None or candidate.rating_count < self.min_rating_count:
            return NEUTRAL_SCORE
        return min(max(candidate.rating / 5.0, 0.0), 1.0)

    def _score_variety(self, candidate: RecipeCandidate, context: SelectionContext) -> float:
        if candidate.recipe_id in context.recent_recipe_ids:
            return 0.0

        score = 1.0
        if context.recent_cuisines and candidate.cuisine_type:
            cuisine = candidate.cuisine_type.lower()
            occurrences = sum(1 for c in context.recent_cuisines if c and c.lower() == cuisine)
            score -= CUISINE_PENALTY * occurrences / len(context.recent_cuisines)

        days = context.history_days_since.get(candidate.recipe_id)
        if days is not None:
            for max_days, ceiling in HISTORY_RECENCY:
                if days < max_days:
                    score = min(score, ceiling)
                    break

        return max(score, 0.0)

    def _score_time(self, candidate: RecipeCandidate, context: SelectionContext) -> float:
        total = candidate.total_time
        if total is None:
            return NEUTRAL_SCORE
        budget = time_budget(context)
        if total <= budget:
            return 1.0
        return max(budget / total, TIME_FLOOR)

    def _score_nutrition(self, candidate: RecipeCandidate, context: SelectionContext) -> float:
        nutrition = candidate.nutrition
        target = context.nutritional_target
        if not nutrition.is_known or target is None:
            return NEUTRAL_SCORE

        actual = {
            "calories": nutrition.calories,
            "protein": nutrition.protein_g,
            "carbs": nutrition.carbs_g,
            "fat": nutrition.fat_g,
        }
        targets = {
            "calories": target.target_calories,
            "protein": target.target_protein,
            "carbs": target.target_carbs,
            "fat": target.target_fat,
        }

        weights = dict(NUTRIENT_WEIGHTS)
        directions = {}
        for goal in context.preferences.dietary_goals:
            rule = DIETARY_GOALS.get(goal.strip().lower())
            if rule:
                nutrient, direction = rule
                weights[nutrient] *= GOAL_WEIGHT_FACTOR
                directions[nutrient] = direction

        weighted = 0.0
        weight_sum = 0.0
        for nutrient, weight in weights.items():
            value, goal_value = actual[nutrient], targets[nutrient]
            if value is None or not goal_value:
                continue
            diff = value - goal_value
            if diff * directions.get(nutrient, 0) > 0:
                diff = 0.0
            weighted += weight * min(abs(diff) / goal_value, 1.0)
            weight_sum += weight

        if weight_sum == 0:
            return NEUTRAL_SCORE
        return max(0.0, 1.0 - weighted / weight_sum)

    def _score_preference(self, candidate: RecipeCandidate, context: SelectionContext) -> float:
        if not candidate.cuisine_type or not context.cuisine_preferences:
            return NEUTRAL_SCORE

        cuisine = cuisine_key(candidate.cuisine_type)
        match = next(
            (p for p in context.cuisine_preferences if cuisine_key(p.cuisine_type) == cuisine),
            None
        )
        if match is None:
            return NEUTRAL_SCORE

        max_ratio = max(p.preference_ratio for p in context.cuisine_preferences)
        ratio = match.preference_ratio / max_ratio if max_ratio > 0 else 0.0
        completion = context.recipe_completion_rates.get(candidate.recipe_id, match.completion_rate)
        return min(max(0.6 * ratio + 0.4 * completion, 0.0), 1.0)


def rank_key(score: RecipeScore, candidate: RecipeCandidate) -> Tuple:
    """Sort key: best total first, then quality, then name, then id."""
    return (-score.total_score, -score.quality_score, candidate.name, candidate.recipe_id)


def rank_candidates(candidates: Sequence[RecipeCandidate],
                    scores: Sequence[RecipeScore]) -> List[Tuple[RecipeCandidate, RecipeScore]]:
    """Pair candidates with their scores, best first."""
    pairs = list(zip(candidates, scores))
    pairs.sort(key=lambda pair: rank_key(pair[1], pair[0]))
    return pairs
