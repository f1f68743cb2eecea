"""In-process implementations of the store ports.

Used by the CLI, the default HTTP app and the tests. Recipes come from a
``RecipeDB`` (JSON file) or a plain list; history, allergies and meal plans
live in memory.
"""

import itertools
import threading
from datetime import date, timedelta
from typing import Callable, Dict, Iterable, List, Optional, Set

from smartmeal.data_layer.models import (
    HistoryEntry,
    MealPlan,
    MealPlanEntry,
    RecipeCandidate,
    SlotStatus,
)
from smartmeal.data_layer.recipe_db import RecipeDB
from smartmeal.providers.stores import (
    AllergenStore,
    MealPlanWriter,
    RecipeStore,
    UserHistoryStore,
)


class LocalRecipeStore(RecipeStore):
    """Recipe store that evaluates filter and ordering objects in memory."""

    def __init__(self, recipes: Iterable[RecipeCandidate]):
        self._recipes: List[RecipeCandidate] = list(recipes)

    @classmethod
    def from_json(cls, json_path: str) -> "LocalRecipeStore":
        return cls(RecipeDB(json_path).get_all_recipes())

    def query(self, recipe_filter, ordering, limit, include_details=True):
        matched = recipe_filter.apply(self._recipes)
        return ordering.apply(matched)[:limit]

    def get_by_ids(self, recipe_ids):
        wanted = set(recipe_ids)
        return {r.recipe_id: r for r in self._recipes if r.recipe_id in wanted}

    def add(self, recipe: RecipeCandidate) -> None:
        self._recipes.append(recipe)


class InMemoryHistoryStore(UserHistoryStore):
    """History store keyed by user id."""

    def __init__(self, today: Callable[[], date] = date.today):
        self._today = today
        self._entries: Dict[int, List[HistoryEntry]] = {}

    def add(self, user_id: int, entry: HistoryEntry) -> None:
        self._entries.setdefault(user_id, []).append(entry)

    def get_recent_meal_plan_entries(self, user_id: int, lookback_days: int) -> List[HistoryEntry]:
        cutoff = self._today() - timedelta(days=lookback_days)
        return [
            e for e in self._entries.get(user_id, [])
            if e.meal_date is None or e.meal_date >= cutoff
        ]


class InMemoryAllergenStore(AllergenStore):
    """Allergen store keyed by user id."""

    def __init__(self, allergies: Optional[Dict[int, Iterable[int]]] = None):
        self._allergies: Dict[int, Set[int]] = {
            user_id: set(ids) for user_id, ids in (allergies or {}).items()
        }

    def set_allergies(self, user_id: int, allergen_ids: Iterable[int]) -> None:
        self._allergies[user_id] = set(allergen_ids)

    def get_active_allergen_ids(self, user_id: int) -> Set[int]:
        return set(self._allergies.get(user_id, set()))


class InMemoryMealPlanWriter(MealPlanWriter):
    """Meal plan storage with per-slot entries and favorites."""

    def __init__(self):
        self._lock = threading.RLock()
        self._ids = itertools.count(1)
        self._plans: Dict[int, MealPlan] = {}
        self._entries: Dict[int, List[MealPlanEntry]] = {}

    def create_plan(self, user_id, name, start_date, end_date, plan_type, family_id=None, notes=""):
        with self._lock:
            plan = MealPlan(
                id=next(self._ids),
                user_id=user_id,
                name=name,
                start_date=start_date,
                end_date=end_date,
                plan_type=plan_type,
                family_id=family_id,
                notes=notes,
            )
            self._plans[plan.id] = plan
            self._entries[plan.id] = []
            return plan

    def get_plan(self, meal_plan_id):
        with self._lock:
            return self._plans.get(meal_plan_id)

    def get_entries(self, meal_plan_id):
        with self._lock:
            return list(self._entries.get(meal_plan_id, []))

    def exists(self, meal_plan_id, slot_date, meal_type):
        with self._lock:
            status = SlotStatus.EMPTY
            for entry in self._entries.get(meal_plan_id, []):
                if entry.assignment.slot == (slot_date, meal_type):
                    if entry.is_favorite:
                        return SlotStatus.FAVORITE
                    status = SlotStatus.OCCUPIED
            return status

    def upsert_assignment(self, meal_plan_id, assignment):
        self.upsert_assignments(meal_plan_id, [assignment])

    def upsert_assignments(self, meal_plan_id, assignments):
        with self._lock:
            entries = self._entries.setdefault(meal_plan_id, [])
            for assignment in assignments:
                for index, entry in enumerate(entries):
                    if entry.assignment.slot == assignment.slot:
                        entries[index] = MealPlanEntry(meal_plan_id, assignment, is_favorite=False)
                        break
                else:
                    entries.append(MealPlanEntry(meal_plan_id, assignment))

    def add_entries(self, meal_plan_id, assignments):
        with self._lock:
            entries = self._entries.setdefault(meal_plan_id, [])
            entries.extend(MealPlanEntry(meal_plan_id, a) for a in assignments)

    def mark_favorite(self, meal_plan_id: int, slot_date: date, meal_type: str) -> None:
        with self._lock:
            entries = self._entries.get(meal_plan_id, [])
            for index, entry in enumerate(entries):
                if entry.assignment.slot == (slot_date, meal_type):
                    entries[index] = MealPlanEntry(
                        meal_plan_id, entry.assignment, is_favorite=True, notes=entry.notes
                    )
