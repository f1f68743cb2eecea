"""Ports the engine requires from the persistence layer.

The engine depends ONLY on these interfaces. Concrete implementations may be
backed by a relational database, a document store, or local JSON files
without changing downstream logic.
"""

from abc import ABC, abstractmethod
from datetime import date
from typing import TYPE_CHECKING, Dict, Iterable, List, Optional, Set

from smartmeal.data_layer.models import (
    Assignment,
    HistoryEntry,
    MealPlan,
    MealPlanEntry,
    MealPlanPreferences,
    RecipeCandidate,
    SlotStatus,
)

if TYPE_CHECKING:
    from smartmeal.ingestion.recipe_query import RecipeFilter, RecipeOrdering


class RecipeStore(ABC):
    """Read access to recipes with their allergen and nutrition data."""

    @abstractmethod
    def query(
        self,
        recipe_filter: "RecipeFilter",
        ordering: "RecipeOrdering",
        limit: int,
        include_details: bool = True
    ) -> List[RecipeCandidate]:
        """Return at most *limit* recipes matching *recipe_filter*, ordered.

        Implementations translate the filter and ordering objects into
        their own query language. Any failure must raise; an empty list means
        "no matches".
        """
        ...

    @abstractmethod
    def get_by_ids(self, recipe_ids: Iterable[int]) -> Dict[int, RecipeCandidate]:
        """Look up recipes by id. Unknown ids are omitted."""
        ...


class UserHistoryStore(ABC):
    """Read access to a user's past meal-plan entries."""

    @abstractmethod
    def get_recent_meal_plan_entries(self, user_id: int, lookback_days: int) -> List[HistoryEntry]:
        ...


class AllergenStore(ABC):
    """Read access to a user's active allergies."""

    @abstractmethod
    def get_active_allergen_ids(self, user_id: int) -> Set[int]:
        ...


class MealPlanWriter(ABC):
    """Write port for meal plans and their entries."""

    @abstractmethod
    def create_plan(
        self,
        user_id: int,
        name: str,
        start_date: date,
        end_date: date,
        plan_type: str,
        family_id: Optional[int] = None,
        notes: str = ""
    ) -> MealPlan:
        ...

    @abstractmethod
    def get_plan(self, meal_plan_id: int) -> Optional[MealPlan]:
        ...

    @abstractmethod
    def get_entries(self, meal_plan_id: int) -> List[MealPlanEntry]:
        ...

    @abstractmethod
    def exists(self, meal_plan_id: int, slot_date: date, meal_type: str) -> SlotStatus:
        """Occupancy of a slot: EMPTY, OCCUPIED, or FAVORITE."""
        ...

    @abstractmethod
    def upsert_assignment(self, meal_plan_id: int, assignment: Assignment) -> None:
        """Create the slot's entry or overwrite its recipe."""
        ...

    def upsert_assignments(self, meal_plan_id: int, assignments: Iterable[Assignment]) -> None:
        """Write a batch of assignments as one unit.

        The default writes one by one; transactional stores should override
        this to commit or roll back the whole batch.
        """
        for assignment in assignments:
            self.upsert_assignment(meal_plan_id, assignment)

    @abstractmethod
    def add_entries(self, meal_plan_id: int, assignments: Iterable[Assignment]) -> None:
        """Append entries without replacing existing ones (bulk fill)."""
        ...


class CandidateSource(ABC):
    """External supplier of recipes, e.g. an AI recipe generator.

    Returned candidates are untrusted: the retriever re-applies the safety
    filter to every one of them before they can be scored.
    """

    @abstractmethod
    def fetch(
        self,
        meal_type: str,
        preferences: MealPlanPreferences,
        excluded_allergen_ids: Set[int],
        limit: int
    ) -> List[RecipeCandidate]:
        ...
