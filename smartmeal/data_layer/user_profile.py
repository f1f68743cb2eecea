"""User profile loader for planning preferences stored in YAML."""
import yaml
from dataclasses import dataclass, field
from pathlib import Path
from typing import List

from smartmeal.data_layer.models import MealPlanPreferences


@dataclass
class PlanningProfile:
    """A user's standing planning configuration."""

    user_id: int
    allergen_ids: List[int] = field(default_factory=list)
    preferences: MealPlanPreferences = field(default_factory=MealPlanPreferences)


class UserProfileLoader:
    """Loader for user planning profile configuration from YAML."""

    def __init__(self, yaml_path: str):
        """Initialize user profile loader from YAML file.

        Args:
            yaml_path: Path to YAML file containing user profile
        """
        self.yaml_path = Path(yaml_path)

    def load(self) -> PlanningProfile:
        """Load user profile from YAML file.

        Returns:
            PlanningProfile object

        Raises:
            FileNotFoundError: If YAML file doesn't exist
            KeyError: If required fields are missing
        """
        with open(self.yaml_path, "r") as f:
            data = yaml.safe_load(f) or {}

        user = data["user"]
        preferences = data.get("preferences", {}) or {}

        max_cooking_time = preferences.get("max_cooking_time")

        return PlanningProfile(
            user_id=int(user["id"]),
            allergen_ids=[int(a) for a in user.get("allergen_ids", [])],
            preferences=MealPlanPreferences(
                cuisine_types=[str(c) for c in preferences.get("cuisine_types", [])],
                max_cooking_time=int(max_cooking_time) if max_cooking_time is not None else None,
                budget_range=preferences.get("budget_range"),
                dietary_goals=[str(g) for g in preferences.get("dietary_goals", [])],
                complexity=preferences.get("complexity"),
                variety_mode=bool(preferences.get("variety_mode", True)),
                include_leftovers=bool(preferences.get("include_leftovers", True)),
                preferred_meal_types=[str(m) for m in preferences.get("meal_types", [])],
                daily_calories=int(user.get("daily_calories", 2000)),
            ),
        )
