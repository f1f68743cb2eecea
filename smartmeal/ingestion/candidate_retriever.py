"""Candidate retrieval: safety filter, meal-type ordering, bounded fetch.

The allergen filter is a hard gate. Every candidate returned by
``CandidateRetriever.get_candidates`` is allergen-free for the exclusion set
it was asked with, whether it came from the store, the cache, or an external
generator.
"""

import logging
import threading
from concurrent.futures import Future
from concurrent.futures import TimeoutError as FutureTimeoutError
from typing import Iterable, List, Optional, Set

from smartmeal.caching.cache_keys import CacheKeyBuilder
from smartmeal.caching.cache_service import TwoTierCache
from smartmeal.config import CacheSettings, RetrievalSettings
from smartmeal.data_layer.exceptions import MealEngineError, RetrievalError
from smartmeal.data_layer.models import MealPlanPreferences, RecipeCandidate
from smartmeal.data_layer.recipe_db import recipe_from_row, recipe_to_row
from smartmeal.ingestion.recipe_query import (
    RecipeFilter,
    build_meal_plan_filter,
    build_meal_plan_order,
    get_recommended_recipe_count,
    unsafe_recipe_ids,
)
from smartmeal.providers.stores import CandidateSource, RecipeStore

logger = logging.getLogger(__name__)


class CandidateRetriever:
    """Fetches filtered, ordered recipe candidates for one meal slot."""

    def __init__(
        self,
        recipe_store: RecipeStore,
        cache: Optional[TwoTierCache] = None,
        settings: Optional[RetrievalSettings] = None,
        cache_settings: Optional[CacheSettings] = None,
        fallback_source: Optional[CandidateSource] = None,
    ):
        """Initialize retriever.

        Args:
            recipe_store: Backing recipe store
            cache: Optional two-tier cache for filtered results
            settings: Timeout and worker settings
            cache_settings: TTLs and key prefix
            fallback_source: Optional external recipe source, consulted when
                the store has no match for a slot
        """
        self.recipe_store = recipe_store
        self.cache = cache
        self.settings = settings or RetrievalSettings()
        self.cache_settings = cache_settings or (cache.settings if cache else CacheSettings())
        self.keys = CacheKeyBuilder(self.cache_settings.key_prefix)
        self.fallback_source = fallback_source

    def get_candidates(
        self,
        user_id: int,
        meal_type: str,
        preferences: MealPlanPreferences,
        excluded_allergen_ids: Iterable[int],
        limit: Optional[int] = None
    ) -> List[RecipeCandidate]:
        """Return allergen-safe candidates for a slot, best-first.

        Args:
            user_id: Requesting user (logging only; results are user-agnostic)
            meal_type: Slot meal type
            preferences: Planning preferences
            excluded_allergen_ids: Allergen ids the recipe must not contain
            limit: Candidate budget; defaults to get_recommended_recipe_count

        Returns:
            Ordered candidates; empty only if nothing matches

        Raises:
            RetrievalError: If the store fails or times out
        """
        excluded = {int(a) for a in excluded_allergen_ids}
        if limit is None:
            limit = get_recommended_recipe_count(meal_type, preferences)
        recipe_filter = build_meal_plan_filter(preferences, excluded)

        if self.cache is not None:
            params = dict(preferences.cache_params())
            params["allergens"] = sorted(excluded)
            params["limit"] = limit
            key = self.keys.filtered_recipes(meal_type, params)
            rows = self.cache.get_or_compute(
                key,
                lambda: [recipe_to_row(r) for r in self._query_store(recipe_filter, meal_type, limit)],
                ttl=self.cache_settings.default_ttl,
                empty_ttl=self.cache_settings.empty_result_ttl,
            )
            candidates = [recipe_from_row(row) for row in rows]
        else:
            candidates = self._query_store(recipe_filter, meal_type, limit)

        candidates = self._enforce_safety(candidates, excluded, source="store")

        if not candidates and self.fallback_source is not None:
            candidates = self._fetch_generated(meal_type, preferences, recipe_filter, limit)

        logger.debug(
            "Retrieved %d %s candidates for user %s", len(candidates), meal_type, user_id
        )
        return candidates

    def _query_store(self, recipe_filter: RecipeFilter, meal_type: str, limit: int) -> List[RecipeCandidate]:
        ordering = build_meal_plan_order(meal_type)
        if not self.settings.timeout_seconds:
            return self._call_store(recipe_filter, ordering, limit, meal_type)

        # Timeout covers the store call alone; each call runs on its own daemon thread
        future: Future = Future()

        def run() -> None:
            if not future.set_running_or_notify_cancel():
                return
            try:
                future.set_result(self._call_store(recipe_filter, ordering, limit, meal_type))
            except BaseException as exc:
                future.set_exception(exc)

        threading.Thread(target=run, name="recipe-store", daemon=True).start()
        try:
            return future.result(timeout=self.settings.timeout_seconds)
        except FutureTimeoutError as exc:
            raise RetrievalError(
                f"Recipe store timed out after {self.settings.timeout_seconds}s",
                meal_type=meal_type,
                timed_out=True,
            ) from exc

    def _call_store(self, recipe_filter, ordering, limit, meal_type) -> List[RecipeCandidate]:
        try:
            return list(self.recipe_store.query(recipe_filter, ordering, limit, include_details=True))
        except MealEngineError:
            raise
        except Exception as exc:
            raise RetrievalError(
                f"Recipe store query failed: {exc}", meal_type=meal_type
            ) from exc

    def _enforce_safety(
        self,
        candidates: List[RecipeCandidate],
        excluded: Set[int],
        source: str
    ) -> List[RecipeCandidate]:
        if not excluded:
            return candidates
        unsafe = set(unsafe_recipe_ids(candidates, excluded))
        if unsafe:
            logger.error(
                "Dropped %d allergen-containing recipes returned by %s: %s",
                len(unsafe), source, sorted(unsafe)
            )
            candidates = [c for c in candidates if c.recipe_id not in unsafe]
        return candidates

    def _fetch_generated(
        self,
        meal_type: str,
        preferences: MealPlanPreferences,
        recipe_filter: RecipeFilter,
        limit: int
    ) -> List[RecipeCandidate]:
        try:
            generated = self.fallback_source.fetch(
                meal_type, preferences, set(recipe_filter.excluded_allergen_ids), limit
            )
        except MealEngineError as exc:
            logger.warning("External recipe source failed for %s: %s", meal_type, exc)
            return []

        safe = recipe_filter.apply(generated)
        if len(safe) < len(generated):
            logger.info(
                "Rejected %d generated %s recipes failing the candidate filter",
                len(generated) - len(safe), meal_type
            )
        ordering = build_meal_plan_order(meal_type)
        return ordering.apply(safe)[:limit]
