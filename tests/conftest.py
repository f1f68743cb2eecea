"""Shared fixtures for engine tests."""
from datetime import date
from pathlib import Path

import pytest

from smartmeal.config import RetrievalSettings
from smartmeal.data_layer.models import NutritionFacts, RecipeCandidate
from smartmeal.data_layer.recipe_db import RecipeDB
from smartmeal.ingestion.candidate_retriever import CandidateRetriever
from smartmeal.providers.local_provider import InMemoryMealPlanWriter, LocalRecipeStore
from smartmeal.planning.meal_planner import PlanComposer
from smartmeal.scoring.recipe_scorer import RecipeScorer

FIXTURES_DIR = Path(__file__).parent / "fixtures"
RECIPES_PATH = FIXTURES_DIR / "test_recipes.json"

# Allergen ids used by the fixture recipes
PEANUT, MILK, EGG, WHEAT, SHELLFISH = 1, 2, 3, 4, 5

# 2024-01-01 is a Monday
MONDAY = date(2024, 1, 1)
SATURDAY = date(2024, 1, 6)


@pytest.fixture
def recipes_path():
    return str(RECIPES_PATH)


@pytest.fixture
def fixture_recipes():
    return RecipeDB(str(RECIPES_PATH)).get_all_recipes()


@pytest.fixture
def recipe_store(fixture_recipes):
    return LocalRecipeStore(fixture_recipes)


@pytest.fixture
def make_recipe():
    """Factory for ad-hoc recipes with sensible defaults."""
    def _make(recipe_id, name=None, **overrides):
        values = dict(
            recipe_id=recipe_id,
            name=name or f"Recipe {recipe_id}",
            cuisine_type="American",
            meal_types=frozenset({"Dinner"}),
            prep_time=10,
            cook_time=10,
            rating=4.0,
            rating_count=10,
            nutrition=NutritionFacts(calories=800, protein_g=30, carbs_g=50, fat_g=20),
        )
        values.update(overrides)
        return RecipeCandidate(**values)
    return _make


@pytest.fixture
def no_timeout():
    return RetrievalSettings(timeout_seconds=0)


@pytest.fixture
def writer():
    return InMemoryMealPlanWriter()


@pytest.fixture
def composer(recipe_store, writer, no_timeout):
    retriever = CandidateRetriever(recipe_store, settings=no_timeout)
    return PlanComposer(retriever, RecipeScorer(), writer=writer)
