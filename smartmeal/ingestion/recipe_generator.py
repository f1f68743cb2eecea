"""HTTP client for an external recipe generation service.

Generated recipes enter the candidate pool through the ``CandidateSource``
contract only. The service is asked for recipes matching a meal type and
preferences and must answer with rows in the recipe-store shape::

    {"recipes": [{"id": 9001, "name": "...", "allergens": [..], ...}, ...]}

A row without an explicit "allergens" list is rejected: a recipe whose
allergen content is unknown can never be shown to an allergic user.
"""

import logging
import os
from typing import Any, Dict, List, Set

import requests

from smartmeal.data_layer.exceptions import RecipeGenerationError
from smartmeal.data_layer.models import MealPlanPreferences, RecipeCandidate
from smartmeal.data_layer.recipe_db import recipe_from_row
from smartmeal.providers.stores import CandidateSource

logger = logging.getLogger(__name__)


class HttpRecipeGenerator(CandidateSource):
    """Candidate source backed by a recipe generation HTTP endpoint.

    Usage:
        generator = HttpRecipeGenerator("http://generator:8080")
        # or
        generator = HttpRecipeGenerator.from_env()  # SMARTMEAL_GENERATOR_URL
    """

    GENERATE_PATH = "/recipes/generate"

    def __init__(self, base_url: str, timeout: float = 20.0, session: requests.Session = None):
        """Initialize generator client.

        Args:
            base_url: Service root URL
            timeout: Request timeout in seconds
            session: Optional requests session (connection reuse, testing)

        Raises:
            ValueError: If base_url is empty
        """
        if not base_url or not base_url.strip():
            raise ValueError("Recipe generator base URL is required")
        self.base_url = base_url.strip().rstrip("/")
        self.timeout = timeout
        self.session = session or requests.Session()

    @classmethod
    def from_env(cls, env_var: str = "SMARTMEAL_GENERATOR_URL", timeout: float = 20.0) -> "HttpRecipeGenerator":
        """Create client from environment variable.

        Raises:
            ValueError: If environment variable not set
        """
        base_url = os.environ.get(env_var)
        if not base_url:
            raise ValueError(f"Environment variable {env_var} not set")
        return cls(base_url=base_url, timeout=timeout)

    def fetch(
        self,
        meal_type: str,
        preferences: MealPlanPreferences,
        excluded_allergen_ids: Set[int],
        limit: int
    ) -> List[RecipeCandidate]:
        """Request up to *limit* generated recipes.

        Raises:
            RecipeGenerationError: On transport errors, non-2xx responses or
                an unparseable body
        """
        payload = {
            "meal_type": meal_type,
            "count": limit,
            "exclude_allergen_ids": sorted(excluded_allergen_ids),
            "cuisine_types": list(preferences.cuisine_types),
            "max_cooking_time": preferences.max_cooking_time,
            "dietary_goals": list(preferences.dietary_goals),
        }
        try:
            response = self.session.post(
                f"{self.base_url}{self.GENERATE_PATH}",
                json=payload,
                timeout=self.timeout,
            )
        except requests.exceptions.Timeout as exc:
            raise RecipeGenerationError(f"Recipe generator timed out after {self.timeout}s") from exc
        except requests.exceptions.RequestException as exc:
            raise RecipeGenerationError(f"Recipe generator request failed: {exc}") from exc

        if response.status_code != 200:
            raise RecipeGenerationError(
                f"Recipe generator returned HTTP {response.status_code}",
                status_code=response.status_code,
            )

        try:
            body = response.json()
        except ValueError as exc:
            raise RecipeGenerationError("Recipe generator returned invalid JSON") from exc

        return self._parse_recipes(body)

    def _parse_recipes(self, body: Dict[str, Any]) -> List[RecipeCandidate]:
        recipes = []
        for row in body.get("recipes", []) if isinstance(body, dict) else []:
            if not isinstance(row, dict) or "allergens" not in row:
                logger.warning("Skipping generated recipe without allergen data: %r", row)
                continue
            try:
                recipes.append(recipe_from_row(row))
            except (KeyError, TypeError, ValueError) as exc:
                logger.warning("Skipping malformed generated recipe: %s", exc)
        return recipes
