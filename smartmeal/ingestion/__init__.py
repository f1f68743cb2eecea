"""Candidate retrieval: query builders, store access and external sources."""

from smartmeal.ingestion.recipe_query import (
    RecipeFilter,
    RecipeOrdering,
    build_meal_plan_filter,
    build_meal_plan_order,
    get_recommended_recipe_count,
    matches_meal_type,
    MAX_RECIPE_COUNT,
)

from smartmeal.ingestion.candidate_retriever import CandidateRetriever

from smartmeal.ingestion.recipe_generator import HttpRecipeGenerator

__all__ = [
    # Query builders
    "RecipeFilter",
    "RecipeOrdering",
    "build_meal_plan_filter",
    "build_meal_plan_order",
    "get_recommended_recipe_count",
    "matches_meal_type",
    "MAX_RECIPE_COUNT",
    # Retrieval
    "CandidateRetriever",
    # External generation
    "HttpRecipeGenerator",
]
