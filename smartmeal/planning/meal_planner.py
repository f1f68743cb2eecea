"""Plan composition: fill (date, meal type) slots with scored recipes."""

import logging
import threading
from collections import deque
from dataclasses import dataclass, field
from datetime import date, datetime, time
from typing import Deque, Dict, Iterable, List, Optional, Sequence, Set, Tuple

from smartmeal.config import PlanningSettings
from smartmeal.data_layer.exceptions import (
    CompositionCancelledError,
    MealEngineError,
    NoSafeCandidatesError,
    RetrievalError,
    ValidationError,
)
from smartmeal.data_layer.models import (
    Assignment,
    HistoryEntry,
    MealPlanPreferences,
    MealType,
    RecipeCandidate,
    SlotKey,
    SlotStatus,
)
from smartmeal.ingestion.candidate_retriever import CandidateRetriever
from smartmeal.nutrition.targets import resolve
from smartmeal.providers.stores import AllergenStore, MealPlanWriter, UserHistoryStore
from smartmeal.scoring.preferences import (
    days_since_used,
    derive_cuisine_preferences,
    recipe_completion_rates,
)
from smartmeal.scoring.recipe_scorer import (
    RecipeScore,
    RecipeScorer,
    SelectionContext,
    rank_candidates,
)

logger = logging.getLogger(__name__)

# Weekday windows (start inclusive, end exclusive) when cooking time is short
RUSH_HOURS = ((time(7, 0), time(9, 0)), (time(12, 0), time(13, 0)), (time(17, 0), time(19, 0)))

DEFAULT_MEAL_TIME = time(12, 0)

STATUS_COMPLETE = "complete"
STATUS_PARTIAL = "partial"
STATUS_EMPTY = "empty"


class CancellationToken:
    """Cooperative cancellation flag shared with a composition run."""

    def __init__(self):
        self._event = threading.Event()

    def cancel(self) -> None:
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()


@dataclass(frozen=True)
class CompositionPolicy:
    """How existing plan entries are treated."""
    replace_existing: bool = False
    preserve_favorites: bool = True


@dataclass(frozen=True)
class SkippedSlot:
    """A slot left unassigned and why."""
    date: date
    meal_type: str
    reason: str


@dataclass
class CompositionResult:
    """Outcome of one composition run.

    Attributes:
        assignments: New assignments in slot order
        skipped: Slots with no safe candidate
        kept: Occupied slots left untouched
        preserved: Favorite slots left untouched
        scores: Winning score per assigned slot
        recipes: Assigned recipes by id
    """
    assignments: List[Assignment] = field(default_factory=list)
    skipped: List[SkippedSlot] = field(default_factory=list)
    kept: List[SlotKey] = field(default_factory=list)
    preserved: List[SlotKey] = field(default_factory=list)
    scores: Dict[SlotKey, RecipeScore] = field(default_factory=dict)
    recipes: Dict[int, RecipeCandidate] = field(default_factory=dict)

    @property
    def status(self) -> str:
        """"complete", "partial" (some slots skipped) or "empty" (all skipped)."""
        if not self.skipped:
            return STATUS_COMPLETE
        if self.assignments:
            return STATUS_PARTIAL
        return STATUS_EMPTY

    def by_slot(self) -> Dict[SlotKey, Assignment]:
        return {a.slot: a for a in self.assignments}


def parse_meal_time(value: str) -> time:
    """Parse "HH:MM"."""
    return datetime.strptime(value.strip(), "%H:%M").time()


def is_rush_hour(slot_date: date, meal_time: time) -> bool:
    """True on weekdays inside one of the rush-hour windows."""
    if slot_date.weekday() >= 5:
        return False
    return any(start <= meal_time < end for start, end in RUSH_HOURS)


def normalize_meal_types(meal_types: Optional[Iterable[str]]) -> List[str]:
    """Canonical, de-duplicated meal types in planning order.

    Raises:
        ValidationError: If a meal type is not recognised
    """
    requested = list(meal_types or [])
    if not requested:
        return list(MealType.DEFAULTS)

    canonical: Set[str] = set()
    for meal_type in requested:
        normalized = MealType.normalize(meal_type)
        if normalized is None:
            raise ValidationError("meal_types", f"Unknown meal type '{meal_type}'")
        canonical.add(normalized)
    return sorted(canonical, key=MealType.sort_key)


def servings_for(meal_type: str, preferences: MealPlanPreferences) -> int:
    """Dinner is cooked for two when leftovers are wanted."""
    if meal_type == MealType.DINNER and preferences.include_leftovers:
        return 2
    return 1


def least_recently_used(candidates: Sequence[RecipeCandidate],
                        recent_ids: Sequence[int]) -> List[RecipeCandidate]:
    """Candidates whose last use in *recent_ids* (oldest first) is earliest."""
    last_used = {recipe_id: index for index, recipe_id in enumerate(recent_ids)}
    oldest = min(last_used.get(c.recipe_id, -1) for c in candidates)
    return [c for c in candidates if last_used.get(c.recipe_id, -1) == oldest]


class PlanComposer:
    """Composes meal plans slot by slot.

    Slots are visited in a fixed order (dates ascending, then Breakfast,
    Lunch, Dinner, Snack). Each slot sees the recipes chosen for the
    previous slots of the same run through a bounded recent window, so the
    loop is inherently sequential. Assignments are buffered and written in
    one batch after the last slot; a cancelled or failed run writes nothing.
    """

    def __init__(self,
                 retriever: CandidateRetriever,
                 scorer: RecipeScorer,
                 writer: Optional[MealPlanWriter] = None,
                 history_store: Optional[UserHistoryStore] = None,
                 allergen_store: Optional[AllergenStore] = None,
                 settings: Optional[PlanningSettings] = None):
        """Initialize plan composer.

        Args:
            retriever: Candidate retriever (allergen gate)
            scorer: Recipe scorer
            writer: Meal plan writer; required to respect or update an
                existing plan
            history_store: Optional history source for variety and
                preference scoring
            allergen_store: Allergy source used when the caller does not
                supply allergen ids
            settings: Planning settings (variety window, meal times)
        """
        self.retriever = retriever
        self.scorer = scorer
        self.writer = writer
        self.history_store = history_store
        self.allergen_store = allergen_store
        self.settings = settings or PlanningSettings()

    def compose_plan(self,
                     user_id: int,
                     dates: Sequence[date],
                     meal_types: Optional[Iterable[str]],
                     preferences: MealPlanPreferences,
                     policy: Optional[CompositionPolicy] = None,
                     meal_plan_id: Optional[int] = None,
                     excluded_allergen_ids: Optional[Iterable[int]] = None,
                     cancel_token: Optional[CancellationToken] = None,
                     write: bool = True) -> CompositionResult:
        """Choose a recipe for every requested slot.

        Args:
            user_id: Planning user
            dates: Dates to plan
            meal_types: Meal types per date; defaults to Breakfast, Lunch, Dinner
            preferences: Planning preferences
            policy: Replacement policy for existing entries
            meal_plan_id: Existing plan to check and update; None composes
                without looking at or writing to any plan
            excluded_allergen_ids: User allergies; fetched from the allergen
                store when omitted
            cancel_token: Checked before each slot
            write: Write the batch to meal_plan_id when done

        Returns:
            CompositionResult

        Raises:
            ValidationError: For an empty date range or unknown meal type
            RetrievalError: If candidates could not be fetched for a slot
            CompositionCancelledError: If cancelled; nothing is written
        """
        policy = policy or CompositionPolicy()
        slot_dates = sorted(set(dates))
        if not slot_dates:
            raise ValidationError("dates", "At least one date is required")
        ordered_meal_types = normalize_meal_types(meal_types)

        if excluded_allergen_ids is None:
            excluded = self._load_allergies(user_id)
        else:
            excluded = {int(a) for a in excluded_allergen_ids}

        history = self._load_history(user_id)
        cuisine_preferences = tuple(derive_cuisine_preferences(history))
        completion_rates = recipe_completion_rates(history)

        slots = [(d, m) for d in slot_dates for m in ordered_meal_types]
        window = max(self.settings.variety_window, 1)
        recent_ids: Deque[int] = deque(maxlen=window)
        recent_cuisines: Deque[str] = deque(maxlen=window)
        result = CompositionResult()

        for index, (slot_date, meal_type) in enumerate(slots):
            if cancel_token is not None and cancel_token.cancelled:
                logger.info("Composition for user %s cancelled at slot %d/%d",
                            user_id, index, len(slots))
                raise CompositionCancelledError(index, len(slots))

            if meal_plan_id is not None and self.writer is not None:
                status = self.writer.exists(meal_plan_id, slot_date, meal_type)
                if status is SlotStatus.FAVORITE and policy.preserve_favorites:
                    result.preserved.append((slot_date, meal_type))
                    continue
                if status is not SlotStatus.EMPTY and not policy.replace_existing:
                    result.kept.append((slot_date, meal_type))
                    continue

            context = self._build_context(
                user_id, slot_date, meal_type, preferences,
                recent_ids, recent_cuisines, cuisine_preferences,
                completion_rates, days_since_used(history, slot_date)
            )

            try:
                chosen, score = self._select(context, excluded)
            except RetrievalError as exc:
                raise exc.for_slot(slot_date, meal_type) from exc
            except NoSafeCandidatesError as exc:
                logger.warning("Skipping slot: %s", exc.message)
                result.skipped.append(SkippedSlot(slot_date, meal_type, exc.message))
                continue

            assignment = Assignment(
                date=slot_date,
                meal_type=meal_type,
                recipe_id=chosen.recipe_id,
                servings=servings_for(meal_type, preferences),
            )
            result.assignments.append(assignment)
            result.scores[assignment.slot] = score
            result.recipes[chosen.recipe_id] = chosen
            recent_ids.append(chosen.recipe_id)
            recent_cuisines.append(chosen.cuisine_type or "")
            logger.debug("%s %s -> %s (%s)", slot_date, meal_type, chosen.name, score.score_breakdown)

        if write and meal_plan_id is not None and self.writer is not None and result.assignments:
            self.writer.upsert_assignments(meal_plan_id, result.assignments)

        logger.info(
            "Composed %d assignments for user %s (%d skipped, %d kept, %d favorites): %s",
            len(result.assignments), user_id, len(result.skipped),
            len(result.kept), len(result.preserved), result.status
        )
        return result

    def rank_slot(self,
                  user_id: int,
                  slot_date: date,
                  meal_type: str,
                  preferences: MealPlanPreferences,
                  excluded_allergen_ids: Iterable[int]) -> List[Tuple[RecipeCandidate, RecipeScore]]:
        """Rank every candidate for a single slot with an empty recent window.

        Raises:
            ValidationError: For an unknown meal type
            RetrievalError: If candidates could not be fetched
        """
        canonical = normalize_meal_types([meal_type])[0]
        history = self._load_history(user_id)
        context = self._build_context(
            user_id, slot_date, canonical, preferences, (), (),
            tuple(derive_cuisine_preferences(history)),
            recipe_completion_rates(history),
            days_since_used(history, slot_date)
        )
        candidates = self.retriever.get_candidates(
            user_id, canonical, preferences, excluded_allergen_ids
        )
        scores = self.scorer.score_all(candidates, context)
        return rank_candidates(candidates, scores)

    def _select(self, context: SelectionContext, excluded: Set[int]):
        candidates = self.retriever.get_candidates(
            context.user_id, context.meal_type, context.preferences, excluded
        )
        if not candidates:
            raise NoSafeCandidatesError(context.date, context.meal_type)

        recent = context.recent_recipe_ids
        if recent:
            fresh = [c for c in candidates if c.recipe_id not in recent]
            if fresh:
                candidates = fresh
            elif context.preferences.variety_mode:
                candidates = least_recently_used(candidates, recent)

        scores = self.scorer.score_all(candidates, context)
        return rank_candidates(candidates, scores)[0]

    def _build_context(self, user_id, slot_date, meal_type, preferences,
                       recent_ids, recent_cuisines, cuisine_preferences,
                       completion_rates, history_days_since) -> SelectionContext:
        target = resolve(meal_type, preferences.daily_calories)
        meal_time = self._meal_time(meal_type)
        return SelectionContext(
            user_id=user_id,
            meal_type=meal_type,
            date=slot_date,
            current_time=meal_time,
            target_calories=target.target_calories,
            is_weekend=slot_date.weekday() >= 5,
            is_rush_hour=is_rush_hour(slot_date, meal_time),
            preferences=preferences,
            nutritional_target=target,
            recent_recipe_ids=tuple(recent_ids),
            recent_cuisines=tuple(recent_cuisines),
            cuisine_preferences=cuisine_preferences,
            recipe_completion_rates=completion_rates,
            history_days_since=history_days_since,
        )

    def _meal_time(self, meal_type: str) -> time:
        value = self.settings.meal_times.get(meal_type)
        return parse_meal_time(value) if value else DEFAULT_MEAL_TIME

    def _load_allergies(self, user_id: int) -> Set[int]:
        if self.allergen_store is None:
            return set()
        try:
            return set(self.allergen_store.get_active_allergen_ids(user_id))
        except MealEngineError:
            raise
        except Exception as exc:
            # A failed allergy lookup is fatal
            raise RetrievalError(f"Allergen lookup failed for user {user_id}: {exc}") from exc

    def _load_history(self, user_id: int) -> List[HistoryEntry]:
        if self.history_store is None:
            return []
        try:
            return list(self.history_store.get_recent_meal_plan_entries(
                user_id, self.settings.history_lookback_days
            ))
        except MealEngineError:
            raise
        except Exception as exc:
            raise RetrievalError(f"History lookup failed for user {user_id}: {exc}") from exc
