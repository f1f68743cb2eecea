"""Data models for the meal-recommendation engine."""
from dataclasses import dataclass, field
from datetime import date
from enum import Enum
from typing import Dict, FrozenSet, List, Optional, Tuple


class MealType:
    """Canonical meal type names and their planning order."""

    BREAKFAST = "Breakfast"
    LUNCH = "Lunch"
    DINNER = "Dinner"
    SNACK = "Snack"

    ORDER = (BREAKFAST, LUNCH, DINNER, SNACK)
    DEFAULTS = (BREAKFAST, LUNCH, DINNER)

    @classmethod
    def normalize(cls, value: Optional[str]) -> Optional[str]:
        """Return the canonical spelling of *value*, or None if unknown.

        Args:
            value: Meal type in any case ("dinner", "DINNER", " Dinner ")

        Returns:
            Canonical meal type name or None
        """
        if not value:
            return None
        lowered = value.strip().lower()
        for meal_type in cls.ORDER:
            if meal_type.lower() == lowered:
                return meal_type
        return None

    @classmethod
    def sort_key(cls, meal_type: str) -> int:
        """Position of *meal_type* in the canonical planning order."""
        try:
            return cls.ORDER.index(meal_type)
        except ValueError:
            return len(cls.ORDER)


@dataclass(frozen=True)
class NutritionFacts:
    """Per-serving nutrition facts of a recipe."""

    calories: Optional[float] = None
    protein_g: Optional[float] = None
    carbs_g: Optional[float] = None
    fat_g: Optional[float] = None

    @property
    def is_known(self) -> bool:
        return self.calories is not None


@dataclass(frozen=True)
class RecipeCandidate:
    """Read-only projection of a recipe as seen by the engine."""

    recipe_id: int
    name: str
    description: str = ""
    cuisine_type: Optional[str] = None
    meal_types: FrozenSet[str] = frozenset()
    prep_time: Optional[int] = None  # minutes
    cook_time: Optional[int] = None  # minutes
    rating: Optional[float] = None  # 0-5 average
    rating_count: int = 0
    allergen_tags: FrozenSet[int] = frozenset()  # allergen ids contained
    allergen_free_claims: FrozenSet[int] = frozenset()  # allergen ids claimed absent
    nutrition: NutritionFacts = field(default_factory=NutritionFacts)

    @property
    def total_time(self) -> Optional[int]:
        """Prep + cook minutes, or None when neither is known."""
        if self.prep_time is None and self.cook_time is None:
            return None
        return (self.prep_time or 0) + (self.cook_time or 0)


@dataclass(frozen=True)
class NutritionalTarget:
    """Calorie and macro targets for a single meal slot."""

    target_calories: int
    target_protein: float
    target_carbs: float
    target_fat: float


@dataclass(frozen=True)
class UserCuisinePreference:
    """Aggregate of a user's meal-plan history for one cuisine."""

    cuisine_type: str
    usage_count: int
    preference_ratio: float  # share of all history entries
    completion_rate: float  # completed / planned for this cuisine


@dataclass(frozen=True)
class HistoryEntry:
    """One past meal-plan entry as returned by the history store."""

    recipe_id: int
    cuisine_type: Optional[str]
    was_completed: bool
    meal_date: Optional[date] = None


@dataclass
class MealPlanPreferences:
    """User-supplied planning configuration."""

    cuisine_types: List[str] = field(default_factory=list)
    max_cooking_time: Optional[int] = None  # minutes
    budget_range: Optional[str] = None  # "low", "medium", "high"
    dietary_goals: List[str] = field(default_factory=list)  # "high_protein", "low_carb", ...
    complexity: Optional[str] = None  # "simple", "moderate", "elaborate"
    variety_mode: bool = True
    include_leftovers: bool = True
    preferred_meal_types: List[str] = field(default_factory=list)
    daily_calories: int = 2000

    def cache_params(self) -> Dict[str, object]:
        """Normalized parameters that affect candidate retrieval."""
        return {
            "cuisine_types": sorted(c.strip().lower() for c in self.cuisine_types),
            "max_cooking_time": self.max_cooking_time,
            "budget_range": (self.budget_range or "").lower() or None,
            "dietary_goals": sorted(g.strip().lower() for g in self.dietary_goals),
        }


@dataclass(frozen=True)
class Assignment:
    """A recipe placed into a (date, meal type) slot."""

    date: date
    meal_type: str
    recipe_id: int
    servings: float = 1
    is_completed: bool = False

    @property
    def slot(self) -> Tuple[date, str]:
        return (self.date, self.meal_type)


class SlotStatus(Enum):
    """Occupancy of a meal plan slot."""

    EMPTY = "empty"
    OCCUPIED = "occupied"
    FAVORITE = "favorite"


@dataclass
class MealPlan:
    """Header of a persisted meal plan."""

    id: int
    user_id: int
    name: str
    start_date: date
    end_date: date
    plan_type: str = "Personal"
    family_id: Optional[int] = None
    notes: str = ""

    def dates(self) -> List[date]:
        """All dates covered by the plan, ascending."""
        return date_range(self.start_date, self.end_date)


@dataclass(frozen=True)
class MealPlanEntry:
    """A persisted assignment, as read back from the writer."""

    meal_plan_id: int
    assignment: Assignment
    is_favorite: bool = False
    notes: str = ""


def date_range(start: date, end: date) -> List[date]:
    """Inclusive list of dates from *start* to *end*."""
    days = (end - start).days
    return [date.fromordinal(start.toordinal() + offset) for offset in range(days + 1)]


SlotKey = Tuple[date, str]
