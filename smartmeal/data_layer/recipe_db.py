"""Recipe database for loading recipes from JSON, plus row converters."""
import json
from pathlib import Path
from typing import Any, Dict, List, Optional

from smartmeal.data_layer.models import MealType, NutritionFacts, RecipeCandidate


def _optional_int(value: Any) -> Optional[int]:
    return None if value is None else int(value)


def _optional_float(value: Any) -> Optional[float]:
    return None if value is None else float(value)


def recipe_from_row(row: Dict[str, Any]) -> RecipeCandidate:
    """Convert a store row (dict) into a RecipeCandidate.

    Args:
        row: Dictionary with recipe fields as stored in JSON or returned by
            the recipe store

    Returns:
        RecipeCandidate

    Raises:
        KeyError: If "id" or "name" is missing
    """
    nutrition_data = row.get("nutrition") or {}
    meal_types = set()
    for raw in row.get("meal_types", []):
        meal_types.add(MealType.normalize(raw) or str(raw))

    return RecipeCandidate(
        recipe_id=int(row["id"]),
        name=row["name"],
        description=row.get("description") or "",
        cuisine_type=row.get("cuisine_type"),
        meal_types=frozenset(meal_types),
        prep_time=_optional_int(row.get("prep_time_minutes")),
        cook_time=_optional_int(row.get("cook_time_minutes")),
        rating=_optional_float(row.get("rating_average")),
        rating_count=int(row.get("rating_count") or 0),
        allergen_tags=frozenset(int(a) for a in row.get("allergens", [])),
        allergen_free_claims=frozenset(int(a) for a in row.get("allergen_free_claims", [])),
        nutrition=NutritionFacts(
            calories=_optional_float(nutrition_data.get("calories")),
            protein_g=_optional_float(nutrition_data.get("protein_g")),
            carbs_g=_optional_float(nutrition_data.get("carbs_g")),
            fat_g=_optional_float(nutrition_data.get("fat_g")),
        ),
    )


def recipe_to_row(recipe: RecipeCandidate) -> Dict[str, Any]:
    """Convert a RecipeCandidate back to its row form (JSON-safe).

    Sets are emitted sorted so that serialized rows are stable.
    """
    return {
        "id": recipe.recipe_id,
        "name": recipe.name,
        "description": recipe.description,
        "cuisine_type": recipe.cuisine_type,
        "meal_types": sorted(recipe.meal_types),
        "prep_time_minutes": recipe.prep_time,
        "cook_time_minutes": recipe.cook_time,
        "rating_average": recipe.rating,
        "rating_count": recipe.rating_count,
        "allergens": sorted(recipe.allergen_tags),
        "allergen_free_claims": sorted(recipe.allergen_free_claims),
        "nutrition": {
            "calories": recipe.nutrition.calories,
            "protein_g": recipe.nutrition.protein_g,
            "carbs_g": recipe.nutrition.carbs_g,
            "fat_g": recipe.nutrition.fat_g,
        },
    }


class RecipeDB:
    """Database for managing recipes loaded from JSON."""

    def __init__(self, json_path: str):
        """Initialize recipe database from JSON file.

        Args:
            json_path: Path to JSON file containing {"recipes": [...]}
        """
        self.json_path = Path(json_path)
        self._recipes: List[RecipeCandidate] = []
        self._load_recipes()

    def _load_recipes(self):
        with open(self.json_path, "r") as f:
            data = json.load(f)

        for row in data.get("recipes", []):
            self._recipes.append(recipe_from_row(row))

    def get_all_recipes(self) -> List[RecipeCandidate]:
        """Get all recipes in the database.

        Returns:
            List of all RecipeCandidate objects
        """
        return self._recipes.copy()

    def get_recipe_by_id(self, recipe_id: int) -> Optional[RecipeCandidate]:
        """Get a recipe by its ID.

        Args:
            recipe_id: Unique recipe identifier

        Returns:
            RecipeCandidate if found, None otherwise
        """
        for recipe in self._recipes:
            if recipe.recipe_id == recipe_id:
                return recipe
        return None
