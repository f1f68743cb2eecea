"""Store ports and their in-process implementations.

The engine talks to persistence only through the abstract stores, so a
relational backend can replace the in-memory ones without touching
retrieval, scoring or composition.
"""

from smartmeal.providers.stores import (
    AllergenStore,
    CandidateSource,
    MealPlanWriter,
    RecipeStore,
    UserHistoryStore,
)
from smartmeal.providers.local_provider import (
    InMemoryAllergenStore,
    InMemoryHistoryStore,
    InMemoryMealPlanWriter,
    LocalRecipeStore,
)

__all__ = [
    "AllergenStore",
    "CandidateSource",
    "MealPlanWriter",
    "RecipeStore",
    "UserHistoryStore",
    "InMemoryAllergenStore",
    "InMemoryHistoryStore",
    "InMemoryMealPlanWriter",
    "LocalRecipeStore",
]
