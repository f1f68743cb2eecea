#!/usr/bin/env python3
"""Command-line interface for the smart meal planner."""

import argparse
import sys
from datetime import date, timedelta
from pathlib import Path
from typing import List, Optional

from smartmeal.config import load_settings
from smartmeal.data_layer.exceptions import MealEngineError, RetrievalError
from smartmeal.data_layer.user_profile import UserProfileLoader
from smartmeal.logging_utils import configure_logging
from smartmeal.output.formatters import format_plan_json_string, format_plan_markdown
from smartmeal.planning.service import GenerateMealPlanRequest, build_service
from smartmeal.providers.local_provider import InMemoryAllergenStore, LocalRecipeStore


def parse_meal_types(value: Optional[str]) -> List[str]:
    """Split a comma-separated meal type list ("breakfast,dinner")."""
    if not value:
        return []
    return [part.strip() for part in value.split(",") if part.strip()]


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="smartmeal",
        description="Generate an allergy-safe meal plan over a date range",
    )
    parser.add_argument("--profile", default="config/user_profile.yaml",
                        help="planning profile YAML (allergies and preferences)")
    parser.add_argument("--recipes", default="data/recipes/recipes.json",
                        help="recipe catalogue JSON")
    parser.add_argument("--config", help="engine settings YAML; falls back to $SMARTMEAL_CONFIG")
    parser.add_argument("--start", type=date.fromisoformat, help="first plan date, YYYY-MM-DD (today if omitted)")
    parser.add_argument("--days", type=int, default=7, help="number of days to plan")
    parser.add_argument("--meal-types", help="comma-separated meal types, e.g. breakfast,dinner")
    parser.add_argument("--name", default="Smart Meal Plan", help="meal plan name")
    parser.add_argument("--output", choices=("markdown", "json", "both"), default="markdown")
    parser.add_argument("--output-file",
                        help="save to this path instead of stdout; with 'both' the suffix becomes .md/.json")
    return parser


def emit(text: str, output_file: Optional[str], suffix: Optional[str]) -> None:
    """Write rendered output to a file (suffix replaced if given) or stdout."""
    if not output_file:
        print(text)
        return
    target = Path(output_file)
    if suffix:
        target = target.with_suffix(suffix)
    target.write_text(text)
    print(f"Wrote {target}", file=sys.stderr)


def main(argv: Optional[List[str]] = None) -> int:
    """Plan meals for a profile and print or save the result."""
    args = build_parser().parse_args(argv)

    profile_path = Path(args.profile)
    if not profile_path.exists():
        print(f"Error: User profile file not found: {profile_path}", file=sys.stderr)
        print("Start from config/user_profile.yaml.example", file=sys.stderr)
        return 1

    recipes_path = Path(args.recipes)
    if not recipes_path.exists():
        print(f"Error: Recipes file not found: {recipes_path}", file=sys.stderr)
        return 1

    if args.days < 1:
        print("Error: --days must be at least 1", file=sys.stderr)
        return 1

    try:
        settings = load_settings(args.config)
        configure_logging(settings.log_level)

        profile = UserProfileLoader(str(profile_path)).load()
        recipe_store = LocalRecipeStore.from_json(str(recipes_path))
        service = build_service(
            settings,
            recipe_store=recipe_store,
            allergen_store=InMemoryAllergenStore({profile.user_id: profile.allergen_ids}),
        )

        start = args.start or date.today()
        request = GenerateMealPlanRequest(
            name=args.name,
            start_date=start,
            end_date=start + timedelta(days=args.days - 1),
            preferences=profile.preferences,
            meal_types=parse_meal_types(args.meal_types),
        )
        print(f"Planning {args.days} day(s) for user {profile.user_id}...", file=sys.stderr)
        result = service.generate_smart_meal_plan(request, user_id=profile.user_id)
    except RetrievalError as exc:
        print(f"Error: {exc}", file=sys.stderr)
        return 3
    except (MealEngineError, OSError, KeyError, ValueError) as exc:
        print(f"Error: {exc}", file=sys.stderr)
        return 1

    composition, plan = result.composition, result.meal_plan
    both = args.output == "both"

    if args.output != "json":
        emit(format_plan_markdown(composition, plan), args.output_file, ".md" if both else None)
    if args.output != "markdown":
        if both and not args.output_file:
            print("\n" + "=" * 80 + "\n")
        emit(format_plan_json_string(composition, plan, indent=2), args.output_file, ".json" if both else None)

    if composition.status != "complete":
        print(f"Meal plan {composition.status}: {len(composition.skipped)} slot(s) skipped", file=sys.stderr)
        for skipped in composition.skipped:
            print(f"  {skipped.date.isoformat()} {skipped.meal_type}: {skipped.reason}", file=sys.stderr)
    return 0


if __name__ == "__main__":
    sys.exit(main())
