"""Formatters for composed meal plans (JSON and Markdown)."""

import json
from itertools import groupby
from typing import Any, Dict, Optional

from smartmeal.data_layer.models import Assignment, MealPlan, RecipeCandidate
from smartmeal.planning.meal_planner import CompositionResult


def format_time_string(recipe: RecipeCandidate) -> str:
    """Format preparation time (e.g., "10 min prep + 20 min cook").

    Args:
        recipe: Recipe candidate

    Returns:
        Readable time string, "time unknown" when neither time is set
    """
    parts = []
    if recipe.prep_time is not None:
        parts.append(f"{recipe.prep_time} min prep")
    if recipe.cook_time is not None:
        parts.append(f"{recipe.cook_time} min cook")
    return " + ".join(parts) if parts else "time unknown"


def format_assignment_json(assignment: Assignment, result: CompositionResult) -> Dict[str, Any]:
    recipe = result.recipes.get(assignment.recipe_id)
    score = result.scores.get(assignment.slot)
    data: Dict[str, Any] = {
        "date": assignment.date.isoformat(),
        "meal_type": assignment.meal_type,
        "recipe_id": assignment.recipe_id,
        "servings": assignment.servings,
    }
    if recipe is not None:
        data["recipe"] = {
            "name": recipe.name,
            "cuisine_type": recipe.cuisine_type,
            "prep_time_minutes": recipe.prep_time,
            "cook_time_minutes": recipe.cook_time,
            "rating": recipe.rating,
            "calories": recipe.nutrition.calories,
        }
    if score is not None:
        data["score"] = {
            "total": round(score.total_score, 4),
            "quality": round(score.quality_score, 4),
            "variety": round(score.variety_score, 4),
            "time": round(score.time_score, 4),
            "nutrition": round(score.nutritional_score, 4),
            "preference": round(score.user_preference_score, 4),
            "breakdown": score.score_breakdown,
        }
    return data


def format_plan_json(result: CompositionResult, meal_plan: Optional[MealPlan] = None) -> Dict[str, Any]:
    """Format a CompositionResult as JSON (for API usage).

    Args:
        result: CompositionResult from plan composition
        meal_plan: Optional plan header the result belongs to

    Returns:
        Dictionary ready for JSON serialization
    """
    data: Dict[str, Any] = {
        "status": result.status,
        "assignments": [format_assignment_json(a, result) for a in result.assignments],
        "skipped": [
            {"date": s.date.isoformat(), "meal_type": s.meal_type, "reason": s.reason}
            for s in result.skipped
        ],
        "kept": [{"date": d.isoformat(), "meal_type": m} for d, m in result.kept],
        "preserved_favorites": [{"date": d.isoformat(), "meal_type": m} for d, m in result.preserved],
    }
    if meal_plan is not None:
        data["meal_plan"] = {
            "id": meal_plan.id,
            "name": meal_plan.name,
            "start_date": meal_plan.start_date.isoformat(),
            "end_date": meal_plan.end_date.isoformat(),
            "plan_type": meal_plan.plan_type,
        }
    return data


def format_plan_json_string(result: CompositionResult,
                            meal_plan: Optional[MealPlan] = None,
                            indent: int = 2) -> str:
    return json.dumps(format_plan_json(result, meal_plan), indent=indent)


def format_plan_markdown(result: CompositionResult, meal_plan: Optional[MealPlan] = None) -> str:
    """Format a CompositionResult as Markdown, one section per day.

    Args:
        result: CompositionResult from plan composition
        meal_plan: Optional plan header used for the title

    Returns:
        Formatted Markdown string
    """
    lines = []
    title = meal_plan.name if meal_plan is not None else "Meal Plan"
    lines.append(f"# {title}\n")

    if result.status == "complete":
        lines.append("✅ **All requested slots planned**\n")
    elif result.status == "partial":
        lines.append("⚠️ **Some slots could not be planned**\n")
    else:
        lines.append("❌ **No slot could be planned**\n")

    for slot_date, group in groupby(result.assignments, key=lambda a: a.date):
        lines.append(f"## {slot_date.strftime('%A')} {slot_date.isoformat()}")
        for assignment in group:
            recipe = result.recipes.get(assignment.recipe_id)
            name = recipe.name if recipe is not None else f"Recipe {assignment.recipe_id}"
            lines.append(f"### {assignment.meal_type}: {name}")
            if recipe is not None:
                if recipe.cuisine_type:
                    lines.append(f"**Cuisine:** {recipe.cuisine_type}")
                lines.append(f"**Time:** {format_time_string(recipe)}")
                if recipe.nutrition.calories is not None:
                    lines.append(f"**Calories:** {recipe.nutrition.calories:.0f} kcal")
            if assignment.servings != 1:
                lines.append(f"**Servings:** {assignment.servings:g}")
            score = result.scores.get(assignment.slot)
            if score is not None:
                lines.append(f"**Score:** {score.score_breakdown}")
            lines.append("")

    if result.skipped:
        lines.append("## Skipped Slots\n")
        for skipped in result.skipped:
            lines.append(f"- {skipped.date.isoformat()} {skipped.meal_type}: {skipped.reason}")
        lines.append("")

    return "\n".join(lines)
