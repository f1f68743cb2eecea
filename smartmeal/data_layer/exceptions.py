"""Structured error types for the recommendation engine.

Fatal errors (RetrievalError, ValidationError, access errors) abort a
composition run. NoSafeCandidatesError is per-slot and is collected into the
result's skipped list. CacheError never leaves the cache layer.
"""

from datetime import date
from enum import Enum
from typing import Any, Dict, Optional


class ErrorCode(Enum):
    """Machine-readable error codes, stable for API responses."""

    RETRIEVAL_FAILURE = "RETRIEVAL_FAILURE"
    NO_SAFE_CANDIDATES = "NO_SAFE_CANDIDATES"
    CACHE_FAILURE = "CACHE_FAILURE"
    VALIDATION_FAILURE = "VALIDATION_FAILURE"
    MEAL_PLAN_NOT_FOUND = "MEAL_PLAN_NOT_FOUND"
    MEAL_PLAN_ACCESS_DENIED = "MEAL_PLAN_ACCESS_DENIED"
    COMPOSITION_CANCELLED = "COMPOSITION_CANCELLED"
    GENERATION_FAILURE = "GENERATION_FAILURE"


class MealEngineError(Exception):
    """Base exception for all engine errors.

    Attributes:
        code: ErrorCode identifying the error type
        message: Human-readable error description
        context: Dictionary of relevant error context (slot, user, ...)
    """

    def __init__(
        self,
        code: ErrorCode,
        message: str,
        context: Optional[Dict[str, Any]] = None
    ):
        self.code = code
        self.message = message
        self.context = context or {}
        super().__init__(f"[{code.value}] {message}")

    def __str__(self) -> str:
        return f"[{self.code.value}] {self.message}"

    def __repr__(self) -> str:
        return (
            f"{self.__class__.__name__}("
            f"code={self.code!r}, "
            f"message={self.message!r}, "
            f"context={self.context!r})"
        )

    def to_dict(self) -> Dict[str, Any]:
        """Convert error to dictionary for API responses."""
        return {
            "error_code": self.code.value,
            "message": self.message,
            "context": self.context
        }


class RetrievalError(MealEngineError):
    """Raised when the recipe store is unreachable, fails, or times out.

    Never replaced by an empty candidate list: callers must be able to tell
    "no matches" apart from "could not ask".
    """

    def __init__(
        self,
        message: str,
        meal_type: Optional[str] = None,
        slot_date: Optional[date] = None,
        timed_out: bool = False
    ):
        context: Dict[str, Any] = {"timed_out": timed_out}
        if meal_type:
            context["meal_type"] = meal_type
        if slot_date:
            context["date"] = slot_date.isoformat()
        super().__init__(ErrorCode.RETRIEVAL_FAILURE, message, context)
        self.meal_type = meal_type
        self.slot_date = slot_date
        self.timed_out = timed_out

    def for_slot(self, slot_date: date, meal_type: str) -> "RetrievalError":
        """Copy of this error annotated with the slot that failed."""
        return RetrievalError(
            self.message,
            meal_type=meal_type,
            slot_date=slot_date,
            timed_out=self.timed_out
        )


class NoSafeCandidatesError(MealEngineError):
    """Raised when filtering leaves no candidate for a slot (non-fatal)."""

    def __init__(self, slot_date: date, meal_type: str):
        super().__init__(
            ErrorCode.NO_SAFE_CANDIDATES,
            f"No safe recipe candidates for {meal_type} on {slot_date.isoformat()}",
            {"date": slot_date.isoformat(), "meal_type": meal_type}
        )
        self.slot_date = slot_date
        self.meal_type = meal_type


class CacheError(MealEngineError):
    """Raised by cache backends; always recovered inside the cache layer."""

    def __init__(self, operation: str, key: str, reason: str):
        super().__init__(
            ErrorCode.CACHE_FAILURE,
            f"Cache {operation} failed for '{key}': {reason}",
            {"operation": operation, "key": key}
        )
        self.operation = operation
        self.key = key


class ValidationError(MealEngineError):
    """Raised for malformed requests, before any retrieval or scoring."""

    def __init__(self, field_name: str, message: str):
        super().__init__(
            ErrorCode.VALIDATION_FAILURE,
            message,
            {"field": field_name}
        )
        self.field_name = field_name


class MealPlanNotFoundError(MealEngineError):
    """Raised when a meal plan id does not exist."""

    def __init__(self, meal_plan_id: int):
        super().__init__(
            ErrorCode.MEAL_PLAN_NOT_FOUND,
            f"Meal plan {meal_plan_id} not found",
            {"meal_plan_id": meal_plan_id}
        )
        self.meal_plan_id = meal_plan_id


class MealPlanAccessError(MealEngineError):
    """Raised when a user touches a meal plan they do not own."""

    def __init__(self, meal_plan_id: int, user_id: int):
        super().__init__(
            ErrorCode.MEAL_PLAN_ACCESS_DENIED,
            f"User {user_id} cannot modify meal plan {meal_plan_id}",
            {"meal_plan_id": meal_plan_id, "user_id": user_id}
        )
        self.meal_plan_id = meal_plan_id
        self.user_id = user_id


class CompositionCancelledError(MealEngineError):
    """Raised when a composition run is cancelled; nothing has been written."""

    def __init__(self, completed_slots: int, total_slots: int):
        super().__init__(
            ErrorCode.COMPOSITION_CANCELLED,
            f"Plan composition cancelled after {completed_slots} of {total_slots} slots",
            {"completed_slots": completed_slots, "total_slots": total_slots}
        )
        self.completed_slots = completed_slots
        self.total_slots = total_slots


class RecipeGenerationError(MealEngineError):
    """Raised by external recipe generators on transport or payload errors."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        context: Dict[str, Any] = {}
        if status_code is not None:
            context["status_code"] = status_code
        super().__init__(ErrorCode.GENERATION_FAILURE, message, context)
        self.status_code = status_code
