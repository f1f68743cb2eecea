"""Smart meal plan service: the operations offered to callers.

Wraps the plan composer with request validation, ownership checks, uncached
allergy lookups and cache invalidation after writes.

Usage:
    service = build_service(load_settings(), "data/recipes/recipes.json")
    result = service.generate_smart_meal_plan(request, user_id=1)
"""

import logging
import random
from dataclasses import asdict, dataclass, field
from datetime import date
from typing import Any, Callable, Dict, List, Optional, Set

from smartmeal.caching.cache_keys import CacheKeyBuilder
from smartmeal.caching.cache_service import TwoTierCache
from smartmeal.config import EngineSettings
from smartmeal.data_layer.exceptions import (
    MealEngineError,
    MealPlanAccessError,
    MealPlanNotFoundError,
    RetrievalError,
    ValidationError,
)
from smartmeal.data_layer.models import (
    Assignment,
    MealPlan,
    MealPlanEntry,
    MealPlanPreferences,
    MealType,
    date_range,
)
from smartmeal.ingestion.candidate_retriever import CandidateRetriever
from smartmeal.ingestion.recipe_generator import HttpRecipeGenerator
from smartmeal.planning.meal_planner import (
    CancellationToken,
    CompositionPolicy,
    CompositionResult,
    PlanComposer,
    normalize_meal_types,
)
from smartmeal.providers.local_provider import (
    InMemoryAllergenStore,
    InMemoryHistoryStore,
    InMemoryMealPlanWriter,
    LocalRecipeStore,
)
from smartmeal.providers.stores import AllergenStore, MealPlanWriter, RecipeStore, UserHistoryStore
from smartmeal.scoring.recipe_scorer import RecipeScorer

logger = logging.getLogger(__name__)

PLAN_TYPE_PERSONAL = "Personal"
PLAN_TYPE_FAMILY = "Family"

FILL_ROTATE = "rotate"
FILL_RANDOM = "random"
FILL_SAME = "same"
FILL_PATTERNS = (FILL_ROTATE, FILL_RANDOM, FILL_SAME)

ALL_MEAL_TYPES = "all"


@dataclass
class MealPlanTemplate:
    """A predefined starting point offered to users creating a plan."""
    id: int
    name: str
    description: str
    category: str
    duration_days: int


MEAL_PLAN_TEMPLATES = (
    MealPlanTemplate(1, "Busy Professional Week", "Quick 15-minute meals for busy weekdays", "Quick & Easy", 7),
    MealPlanTemplate(2, "Mediterranean Week", "Healthy Mediterranean-style meals", "Healthy", 7),
    MealPlanTemplate(3, "Family Friendly Month", "Kid-approved meals for the whole family", "Family", 30),
)


@dataclass
class GenerateMealPlanRequest:
    """Create a new plan and fill it."""
    name: str
    start_date: date
    end_date: date
    plan_type: str = PLAN_TYPE_PERSONAL
    family_id: Optional[int] = None
    notes: str = ""
    preferences: MealPlanPreferences = field(default_factory=MealPlanPreferences)
    meal_types: List[str] = field(default_factory=list)


@dataclass
class GenerateSmartMealsRequest:
    """Fill or replace meals inside an existing plan."""
    target_dates: List[date] = field(default_factory=list)
    meal_types: List[str] = field(default_factory=list)
    preferences: MealPlanPreferences = field(default_factory=MealPlanPreferences)
    replace_existing: bool = False
    preserve_favorites: bool = True


@dataclass
class BulkFillRequest:
    """Fill one meal type across dates from a fixed list of recipes."""
    meal_plan_id: int
    meal_type: str
    fill_pattern: str
    recipe_ids: List[int]
    target_dates: List[date] = field(default_factory=list)


@dataclass
class PlanResult:
    meal_plan: MealPlan
    composition: CompositionResult

    @property
    def status(self) -> str:
        return self.composition.status


@dataclass
class BulkFillResult:
    meal_plan_id: int
    assignments: List[Assignment]

    @property
    def filled(self) -> int:
        return len(self.assignments)


@dataclass
class MealPlanView:
    meal_plan: MealPlan
    entries: List[MealPlanEntry]


def entry_to_row(entry: MealPlanEntry) -> Dict[str, Any]:
    """Convert a plan entry to a JSON-compatible row."""
    a = entry.assignment
    return {
        "meal_plan_id": entry.meal_plan_id,
        "meal_date": a.date.isoformat(),
        "meal_type": a.meal_type,
        "recipe_id": a.recipe_id,
        "servings": a.servings,
        "is_completed": a.is_completed,
        "is_favorite": entry.is_favorite,
        "notes": entry.notes,
    }


def entry_from_row(row: Dict[str, Any]) -> MealPlanEntry:
    """Inverse of entry_to_row."""
    return MealPlanEntry(
        meal_plan_id=int(row["meal_plan_id"]),
        assignment=Assignment(
            date=date.fromisoformat(row["meal_date"]),
            meal_type=row["meal_type"],
            recipe_id=int(row["recipe_id"]),
            servings=row.get("servings", 1),
            is_completed=bool(row.get("is_completed", False)),
        ),
        is_favorite=bool(row.get("is_favorite", False)),
        notes=row.get("notes", ""),
    )


class SmartMealPlanService:
    """Meal plan generation, recommendation and bulk-fill operations."""

    def __init__(self,
                 composer: PlanComposer,
                 writer: MealPlanWriter,
                 recipe_store: RecipeStore,
                 allergen_store: AllergenStore,
                 cache: Optional[TwoTierCache] = None,
                 settings: Optional[EngineSettings] = None,
                 rng: Optional[random.Random] = None,
                 today: Callable[[], date] = date.today):
        """Initialize service.

        Args:
            composer: Plan composer
            writer: Meal plan writer
            recipe_store: Recipe store (bulk-fill recipe lookups)
            allergen_store: Source of user allergies
            cache: Optional two-tier cache
            settings: Engine settings
            rng: Random source for the "random" fill pattern
            today: Clock used for recommendation context
        """
        self.composer = composer
        self.writer = writer
        self.recipe_store = recipe_store
        self.allergen_store = allergen_store
        self.cache = cache
        self.settings = settings or EngineSettings()
        self.keys = CacheKeyBuilder(self.settings.cache.key_prefix)
        self.rng = rng or random.Random()
        self.today = today

    def generate_smart_meal_plan(self,
                                 request: GenerateMealPlanRequest,
                                 user_id: int,
                                 cancel_token: Optional[CancellationToken] = None) -> PlanResult:
        """Compose a new plan over a date range, then create and fill it.

        Composition runs before the plan is created, so a failed or
        cancelled run leaves nothing behind.

        Raises:
            ValidationError: For a malformed request
            RetrievalError: If candidates or allergies could not be fetched
            CompositionCancelledError: If cancelled
        """
        self._validate_plan_request(request)
        meal_types = normalize_meal_types(request.meal_types or request.preferences.preferred_meal_types)
        dates = date_range(request.start_date, request.end_date)

        composition = self.composer.compose_plan(
            user_id,
            dates,
            meal_types,
            request.preferences,
            excluded_allergen_ids=self._get_user_allergies(user_id),
            cancel_token=cancel_token,
        )

        plan = self.writer.create_plan(
            user_id=user_id,
            name=request.name.strip(),
            start_date=request.start_date,
            end_date=request.end_date,
            plan_type=request.plan_type,
            family_id=request.family_id,
            notes=request.notes,
        )
        if composition.assignments:
            self.writer.add_entries(plan.id, composition.assignments)
        self._invalidate_meal_plan(plan.id, user_id)

        logger.info("Generated meal plan %s for user %s: %d meals (%s)",
                    plan.id, user_id, len(composition.assignments), composition.status)
        return PlanResult(meal_plan=plan, composition=composition)

    def generate_smart_meals(self,
                             meal_plan_id: int,
                             request: GenerateSmartMealsRequest,
                             user_id: int,
                             cancel_token: Optional[CancellationToken] = None) -> PlanResult:
        """Fill or replace meals in an existing plan.

        Raises:
            MealPlanNotFoundError: If the plan does not exist
            MealPlanAccessError: If the plan belongs to another user
            ValidationError: If a target date lies outside the plan
        """
        plan = self._get_owned_plan(meal_plan_id, user_id)
        dates = self._resolve_target_dates(plan, request.target_dates)
        meal_types = normalize_meal_types(request.meal_types or request.preferences.preferred_meal_types)

        composition = self.composer.compose_plan(
            user_id,
            dates,
            meal_types,
            request.preferences,
            policy=CompositionPolicy(
                replace_existing=request.replace_existing,
                preserve_favorites=request.preserve_favorites,
            ),
            meal_plan_id=plan.id,
            excluded_allergen_ids=self._get_user_allergies(user_id),
            cancel_token=cancel_token,
        )
        self._invalidate_meal_plan(plan.id, user_id)
        return PlanResult(meal_plan=plan, composition=composition)

    def get_recommended_recipes(self,
                                preferences: MealPlanPreferences,
                                user_id: int,
                                meal_type: str) -> List[int]:
        """Ranked recipe ids for one meal type; nothing is persisted.

        Raises:
            ValidationError: For an unknown meal type
            RetrievalError: If candidates or allergies could not be fetched
        """
        canonical = normalize_meal_types([meal_type])[0]
        allergies = self._get_user_allergies(user_id)

        def compute() -> List[int]:
            ranked = self.composer.rank_slot(user_id, self.today(), canonical, preferences, allergies)
            return [candidate.recipe_id for candidate, _ in ranked]

        if self.cache is None:
            return compute()

        params = dict(preferences.cache_params())
        params["allergens"] = sorted(allergies)
        params["complexity"] = preferences.complexity
        params["daily_calories"] = preferences.daily_calories
        key = self.keys.recommendations(user_id, canonical, params)
        return list(self.cache.get_or_compute(
            key, compute, ttl=self.settings.cache.recommendations_ttl,
        ))

    def get_meal_plan(self, meal_plan_id: int, user_id: int) -> MealPlanView:
        """Plan header and entries; entries are cached until the next write.

        Raises:
            MealPlanNotFoundError: If the plan does not exist
            MealPlanAccessError: If the plan belongs to another user
        """
        plan = self._get_owned_plan(meal_plan_id, user_id)

        def load() -> List[Dict[str, Any]]:
            return [entry_to_row(e) for e in self.writer.get_entries(plan.id)]

        if self.cache is None:
            rows = load()
        else:
            rows = self.cache.get_or_compute(self.keys.meal_plan(plan.id), load)
        entries = sorted(
            (entry_from_row(row) for row in rows),
            key=lambda e: (e.assignment.date, MealType.sort_key(e.assignment.meal_type)),
        )
        return MealPlanView(meal_plan=plan, entries=entries)

    def get_available_templates(self) -> List[MealPlanTemplate]:
        """Predefined plan templates, cached for templates_ttl."""
        def load() -> List[Dict[str, Any]]:
            return [asdict(t) for t in MEAL_PLAN_TEMPLATES]

        if self.cache is None:
            rows = load()
        else:
            rows = self.cache.get_or_compute(
                self.keys.meal_plan_templates(), load, ttl=self.settings.cache.templates_ttl,
            )
        return [MealPlanTemplate(**row) for row in rows]

    def bulk_fill_meals(self, request: BulkFillRequest, user_id: int) -> BulkFillResult:
        """Add entries for a meal type across dates using a fill pattern.

        Patterns: "rotate" cycles through the recipes by date, "random"
        draws from them, "same" uses the first recipe everywhere. Meal
        type "all" fills Breakfast, Lunch and Dinner.

        Raises:
            MealPlanNotFoundError: If the plan does not exist
            MealPlanAccessError: If the plan belongs to another user
            ValidationError: For an unknown pattern or meal type, no
                recipes, unknown recipes, or recipes with the user's allergens
        """
        plan = self._get_owned_plan(request.meal_plan_id, user_id)

        pattern = (request.fill_pattern or "").strip().lower()
        if pattern not in FILL_PATTERNS:
            raise ValidationError(
                "fill_pattern",
                f"Unknown fill pattern '{request.fill_pattern}', expected one of {', '.join(FILL_PATTERNS)}"
            )
        if not request.recipe_ids:
            raise ValidationError("recipe_ids", "At least one recipe id is required")

        if (request.meal_type or "").strip().lower() == ALL_MEAL_TYPES:
            meal_types = list(MealType.DEFAULTS)
        else:
            meal_types = normalize_meal_types([request.meal_type])

        self._check_bulk_recipes(request.recipe_ids, user_id)
        dates = self._resolve_target_dates(plan, request.target_dates)

        assignments = []
        for slot_date in dates:
            for offset, meal_type in enumerate(meal_types):
                recipe_id = self._select_by_pattern(request.recipe_ids, pattern, slot_date, offset)
                assignments.append(Assignment(date=slot_date, meal_type=meal_type, recipe_id=recipe_id))

        self.writer.add_entries(plan.id, assignments)
        self._invalidate_meal_plan(plan.id, user_id)
        logger.info("Bulk filled %d meals for meal plan %s", len(assignments), plan.id)
        return BulkFillResult(meal_plan_id=plan.id, assignments=assignments)

    def _select_by_pattern(self, recipe_ids: List[int], pattern: str, slot_date: date, offset: int) -> int:
        if pattern == FILL_SAME:
            return recipe_ids[0]
        if pattern == FILL_RANDOM:
            return self.rng.choice(recipe_ids)
        return recipe_ids[(slot_date.toordinal() - 1 + offset) % len(recipe_ids)]

    def _check_bulk_recipes(self, recipe_ids: List[int], user_id: int) -> None:
        try:
            found = self.recipe_store.get_by_ids(recipe_ids)
        except MealEngineError:
            raise
        except Exception as exc:
            raise RetrievalError(f"Recipe lookup failed: {exc}") from exc

        missing = sorted(set(recipe_ids) - set(found))
        if missing:
            raise ValidationError("recipe_ids", f"Unknown recipe ids: {missing}")

        allergies = self._get_user_allergies(user_id)
        unsafe = sorted(rid for rid, recipe in found.items() if not recipe.allergen_tags.isdisjoint(allergies))
        if unsafe:
            raise ValidationError("recipe_ids", f"Recipes contain the user's allergens: {unsafe}")

    def _validate_plan_request(self, request: GenerateMealPlanRequest) -> None:
        if not request.name or not request.name.strip():
            raise ValidationError("name", "Meal plan name is required")
        if request.end_date < request.start_date:
            raise ValidationError("end_date", "End date must not be before start date")
        days = (request.end_date - request.start_date).days + 1
        if days > self.settings.planning.max_plan_days:
            raise ValidationError(
                "end_date",
                f"Meal plan spans {days} days, at most {self.settings.planning.max_plan_days} allowed"
            )

        plan_type = (request.plan_type or "").strip().lower()
        if plan_type == PLAN_TYPE_PERSONAL.lower():
            if request.family_id is not None:
                raise ValidationError("family_id", "Personal meal plans cannot have a family id")
            request.plan_type = PLAN_TYPE_PERSONAL
        elif plan_type == PLAN_TYPE_FAMILY.lower():
            if request.family_id is None:
                raise ValidationError("family_id", "Family meal plans require a family id")
            request.plan_type = PLAN_TYPE_FAMILY
        else:
            raise ValidationError("plan_type", f"Unknown plan type '{request.plan_type}'")

    def _resolve_target_dates(self, plan: MealPlan, target_dates: List[date]) -> List[date]:
        if not target_dates:
            return plan.dates()
        outside = sorted(d for d in set(target_dates) if not plan.start_date <= d <= plan.end_date)
        if outside:
            raise ValidationError(
                "target_dates",
                f"Dates outside meal plan {plan.id}: {', '.join(d.isoformat() for d in outside)}"
            )
        return sorted(set(target_dates))

    def _get_owned_plan(self, meal_plan_id: int, user_id: int) -> MealPlan:
        plan = self.writer.get_plan(meal_plan_id)
        if plan is None:
            raise MealPlanNotFoundError(meal_plan_id)
        if plan.user_id != user_id:
            raise MealPlanAccessError(meal_plan_id, user_id)
        return plan

    def _get_user_allergies(self, user_id: int) -> Set[int]:
        # Not cached: allergy changes apply from the next request on
        try:
            return {int(a) for a in self.allergen_store.get_active_allergen_ids(user_id)}
        except MealEngineError:
            raise
        except Exception as exc:
            raise RetrievalError(f"Allergen lookup failed for user {user_id}: {exc}") from exc

    def _invalidate_meal_plan(self, meal_plan_id: int, user_id: int) -> None:
        if self.cache is None:
            return
        self.cache.invalidate(self.keys.meal_plan(meal_plan_id))
        self.cache.invalidate_by_pattern(self.keys.user_meal_plans_pattern(user_id))
        self.cache.invalidate_by_pattern(self.keys.pattern("user", user_id, "recommendations"))


def build_service(settings: Optional[EngineSettings] = None,
                  recipes_path: Optional[str] = None,
                  recipe_store: Optional[RecipeStore] = None,
                  allergen_store: Optional[AllergenStore] = None,
                  history_store: Optional[UserHistoryStore] = None,
                  writer: Optional[MealPlanWriter] = None) -> SmartMealPlanService:
    """Wire a service from settings, using in-process stores where none are given.

    Args:
        settings: Engine settings; defaults apply when omitted
        recipes_path: Recipe JSON file for the local recipe store
        recipe_store: Recipe store; overrides recipes_path
        allergen_store: Allergy source
        history_store: History source
        writer: Meal plan writer
    """
    settings = settings or EngineSettings()
    if recipe_store is None:
        recipe_store = LocalRecipeStore.from_json(recipes_path) if recipes_path else LocalRecipeStore([])
    allergen_store = allergen_store or InMemoryAllergenStore()
    history_store = history_store or InMemoryHistoryStore()
    writer = writer or InMemoryMealPlanWriter()

    cache = TwoTierCache.from_settings(settings.cache)
    fallback = None
    if settings.retrieval.generator_url:
        fallback = HttpRecipeGenerator(
            settings.retrieval.generator_url,
            timeout=settings.retrieval.generator_timeout_seconds,
        )

    retriever = CandidateRetriever(
        recipe_store,
        cache=cache,
        settings=settings.retrieval,
        cache_settings=settings.cache,
        fallback_source=fallback,
    )
    composer = PlanComposer(
        retriever,
        RecipeScorer.from_settings(settings.scoring),
        writer=writer,
        history_store=history_store,
        allergen_store=allergen_store,
        settings=settings.planning,
    )
    return SmartMealPlanService(
        composer,
        writer,
        recipe_store,
        allergen_store,
        cache=cache,
        settings=settings,
    )
