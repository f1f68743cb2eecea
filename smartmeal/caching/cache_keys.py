"""Cache key construction.

Keys look like ``smartmeal:user:42:allergies``. Segments are lowercased and
separator characters are replaced so that a segment can never introduce an
extra level. Parameterised queries append ``params_hash(...)`` so that two
logically identical requests map to the same key regardless of argument order.
"""
import hashlib
import json
from typing import Any, Mapping

_REPLACED = (" ", "-", ":", "/", "\\", ".")


def normalize_segment(segment: Any) -> str:
    """Lowercase *segment* and replace separator characters with "_"."""
    if segment is None:
        return "null"
    text = str(segment).strip().lower()
    for char in _REPLACED:
        text = text.replace(char, "_")
    return text


def _canonical(value: Any) -> Any:
    if isinstance(value, Mapping):
        return {str(k): _canonical(v) for k, v in sorted(value.items(), key=lambda kv: str(kv[0]))}
    if isinstance(value, (set, frozenset)):
        return sorted((_canonical(v) for v in value), key=lambda v: json.dumps(v, sort_keys=True))
    if isinstance(value, (list, tuple)):
        return [_canonical(v) for v in value]
    if isinstance(value, str):
        return value.strip().lower()
    return value


def params_hash(params: Mapping[str, Any], length: int = 16) -> str:
    """Deterministic hash of normalized search parameters.

    Keys are sorted, strings lowercased and sets sorted. Lists keep their
    order, so callers should sort order-insensitive lists first.
    """
    payload = json.dumps(_canonical(params), sort_keys=True, separators=(",", ":"), default=str)
    return hashlib.sha256(payload.encode("utf-8")).hexdigest()[:length]


class CacheKeyBuilder:
    """Builds cache keys under a fixed application prefix."""

    def __init__(self, prefix: str = "smartmeal"):
        self.prefix = normalize_segment(prefix) or "smartmeal"

    def build(self, *segments: Any) -> str:
        parts = [normalize_segment(s) for s in segments if s is not None]
        return ":".join([self.prefix] + [p for p in parts if p])

    def entity(self, entity_type: str, entity_id: Any, *segments: Any) -> str:
        """Key for one entity, e.g. ``entity("MealPlan", 7)``."""
        return self.build(entity_type, entity_id, *segments)

    def user(self, user_id: Any, *segments: Any) -> str:
        return self.build("user", user_id, *segments)

    def pattern(self, *segments: Any) -> str:
        """Wildcard pattern matching every key below *segments*."""
        return self.build(*segments) + ":*"

    # Keys used by the engine

    def filtered_recipes(self, meal_type: str, params: Mapping[str, Any]) -> str:
        return self.build("recipes", "filtered", meal_type, params_hash(params))

    def recommendations(self, user_id: Any, meal_type: str, params: Mapping[str, Any]) -> str:
        return self.user(user_id, "recommendations", meal_type, params_hash(params))

    def meal_plan(self, meal_plan_id: Any) -> str:
        return self.entity("mealplan", meal_plan_id)

    def user_meal_plans_pattern(self, user_id: Any) -> str:
        return self.pattern("user", user_id, "mealplans")

    def meal_plan_templates(self) -> str:
        return self.build("mealplan", "templates")
