"""User preference aggregates derived from meal-plan history.

Recomputed for every planning request; history is live data so none of
these values are cached.
"""
from collections import Counter, defaultdict
from datetime import date
from typing import Dict, Iterable, List

from smartmeal.data_layer.models import HistoryEntry, UserCuisinePreference

# Recipes need this many history entries before their completion rate counts
MIN_RECIPE_TRIES = 2


def derive_cuisine_preferences(history: Iterable[HistoryEntry]) -> List[UserCuisinePreference]:
    """Aggregate history entries by cuisine.

    Cuisines are grouped case-insensitively; each preference carries the
    first spelling seen in history.

    Args:
        history: Recent meal-plan entries for one user

    Returns:
        Preferences ordered by usage count (desc), then cuisine name
    """
    entries = [e for e in history if e.cuisine_type and e.cuisine_type.strip()]
    if not entries:
        return []

    names: Dict[str, str] = {}
    for entry in entries:
        names.setdefault(cuisine_key(entry.cuisine_type), entry.cuisine_type.strip())
    usage = Counter(cuisine_key(e.cuisine_type) for e in entries)
    completed = Counter(cuisine_key(e.cuisine_type) for e in entries if e.was_completed)
    total = len(entries)

    preferences = [
        UserCuisinePreference(
            cuisine_type=names[key],
            usage_count=count,
            preference_ratio=count / total,
            completion_rate=completed[key] / count,
        )
        for key, count in usage.items()
    ]
    preferences.sort(key=lambda p: (-p.usage_count, p.cuisine_type))
    return preferences


def cuisine_key(cuisine_type: str) -> str:
    return cuisine_type.strip().lower()


def recipe_completion_rates(history: Iterable[HistoryEntry]) -> Dict[int, float]:
    """Completion rate per recipe, for recipes planned at least twice."""
    planned: Dict[int, int] = defaultdict(int)
    done: Dict[int, int] = defaultdict(int)
    for entry in history:
        planned[entry.recipe_id] += 1
        if entry.was_completed:
            done[entry.recipe_id] += 1
    return {
        recipe_id: done[recipe_id] / count
        for recipe_id, count in planned.items()
        if count >= MIN_RECIPE_TRIES
    }


def days_since_used(history: Iterable[HistoryEntry], today: date) -> Dict[int, int]:
    """Days since each recipe was last planned, relative to *today*.

    Entries without a meal date are ignored. Future-dated entries count as 0.
    """
    days: Dict[int, int] = {}
    for entry in history:
        if entry.meal_date is None:
            continue
        delta = max((today - entry.meal_date).days, 0)
        if entry.recipe_id not in days or delta < days[entry.recipe_id]:
            days[entry.recipe_id] = delta
    return days
