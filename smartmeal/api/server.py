"""FastAPI server for the smart meal planning service."""

import os
from dataclasses import asdict
from datetime import date
from pathlib import Path
from typing import Any, Dict, List, Optional

import uvicorn
from fastapi import FastAPI, Header, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from smartmeal.config import load_settings
from smartmeal.data_layer.exceptions import (
    CompositionCancelledError,
    MealEngineError,
    MealPlanAccessError,
    MealPlanNotFoundError,
    RecipeGenerationError,
    RetrievalError,
    ValidationError,
)
from smartmeal.data_layer.models import MealPlanPreferences
from smartmeal.logging_utils import configure_logging
from smartmeal.output.formatters import format_plan_json
from smartmeal.planning.service import (
    BulkFillRequest,
    GenerateMealPlanRequest,
    GenerateSmartMealsRequest,
    SmartMealPlanService,
    build_service,
    entry_to_row,
)

RECIPES_ENV_VAR = "SMARTMEAL_RECIPES"
DEFAULT_RECIPES_PATH = "data/recipes/recipes.json"

ERROR_STATUS = (
    (ValidationError, 400),
    (MealPlanAccessError, 403),
    (MealPlanNotFoundError, 404),
    (CompositionCancelledError, 409),
    (RetrievalError, 503),
    (RecipeGenerationError, 503),
)


class PreferencesModel(BaseModel):
    cuisine_types: List[str] = Field(default_factory=list)
    max_cooking_time: Optional[int] = Field(default=None, gt=0)
    budget_range: Optional[str] = None
    dietary_goals: List[str] = Field(default_factory=list)
    complexity: Optional[str] = None
    variety_mode: bool = True
    include_leftovers: bool = True
    preferred_meal_types: List[str] = Field(default_factory=list)
    daily_calories: int = Field(default=2000, gt=0)

    def to_preferences(self) -> MealPlanPreferences:
        return MealPlanPreferences(
            cuisine_types=list(self.cuisine_types),
            max_cooking_time=self.max_cooking_time,
            budget_range=self.budget_range,
            dietary_goals=list(self.dietary_goals),
            complexity=self.complexity,
            variety_mode=self.variety_mode,
            include_leftovers=self.include_leftovers,
            preferred_meal_types=list(self.preferred_meal_types),
            daily_calories=self.daily_calories,
        )


class GenerateMealPlanBody(BaseModel):
    name: str
    start_date: date
    end_date: date
    plan_type: str = "Personal"
    family_id: Optional[int] = None
    notes: str = ""
    meal_types: List[str] = Field(default_factory=list)
    preferences: PreferencesModel = Field(default_factory=PreferencesModel)


class GenerateSmartMealsBody(BaseModel):
    target_dates: List[date] = Field(default_factory=list)
    meal_types: List[str] = Field(default_factory=list)
    replace_existing: bool = False
    preserve_favorites: bool = True
    preferences: PreferencesModel = Field(default_factory=PreferencesModel)


class RecommendationBody(BaseModel):
    meal_type: str
    preferences: PreferencesModel = Field(default_factory=PreferencesModel)


class BulkFillBody(BaseModel):
    meal_plan_id: int
    meal_type: str
    fill_pattern: str = "rotate"
    recipe_ids: List[int]
    target_dates: List[date] = Field(default_factory=list)


def error_status(exc: MealEngineError) -> int:
    for error_type, status in ERROR_STATUS:
        if isinstance(exc, error_type):
            return status
    return 500


def _default_service() -> SmartMealPlanService:
    settings = load_settings()
    recipes_path = os.environ.get(RECIPES_ENV_VAR, DEFAULT_RECIPES_PATH)
    return build_service(settings, recipes_path if Path(recipes_path).exists() else None)


def create_app(service: Optional[SmartMealPlanService] = None) -> FastAPI:
    """Build the API around *service* (a default local service when omitted)."""
    service = service or _default_service()
    app = FastAPI(title="Smart Meal Planner API")

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],  # Local development
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.exception_handler(MealEngineError)
    async def handle_engine_error(request: Request, exc: MealEngineError) -> JSONResponse:
        return JSONResponse(status_code=error_status(exc), content=exc.to_dict())

    @app.post("/api/meal-plans/smart")
    def generate_smart_meal_plan(body: GenerateMealPlanBody, x_user_id: int = Header(...)) -> Dict[str, Any]:
        result = service.generate_smart_meal_plan(
            GenerateMealPlanRequest(
                name=body.name,
                start_date=body.start_date,
                end_date=body.end_date,
                plan_type=body.plan_type,
                family_id=body.family_id,
                notes=body.notes,
                preferences=body.preferences.to_preferences(),
                meal_types=list(body.meal_types),
            ),
            user_id=x_user_id,
        )
        return format_plan_json(result.composition, result.meal_plan)

    @app.post("/api/meal-plans/{meal_plan_id}/smart-meals")
    def generate_smart_meals(meal_plan_id: int,
                             body: GenerateSmartMealsBody,
                             x_user_id: int = Header(...)) -> Dict[str, Any]:
        result = service.generate_smart_meals(
            meal_plan_id,
            GenerateSmartMealsRequest(
                target_dates=list(body.target_dates),
                meal_types=list(body.meal_types),
                preferences=body.preferences.to_preferences(),
                replace_existing=body.replace_existing,
                preserve_favorites=body.preserve_favorites,
            ),
            user_id=x_user_id,
        )
        return format_plan_json(result.composition, result.meal_plan)

    @app.get("/api/meal-plans/templates")
    def get_templates() -> Dict[str, Any]:
        return {"templates": [asdict(t) for t in service.get_available_templates()]}

    @app.get("/api/meal-plans/{meal_plan_id}")
    def get_meal_plan(meal_plan_id: int, x_user_id: int = Header(...)) -> Dict[str, Any]:
        view = service.get_meal_plan(meal_plan_id, x_user_id)
        plan = view.meal_plan
        return {
            "id": plan.id,
            "name": plan.name,
            "start_date": plan.start_date.isoformat(),
            "end_date": plan.end_date.isoformat(),
            "plan_type": plan.plan_type,
            "entries": [entry_to_row(e) for e in view.entries],
        }

    @app.post("/api/recommendations")
    def get_recommended_recipes(body: RecommendationBody, x_user_id: int = Header(...)) -> Dict[str, Any]:
        recipe_ids = service.get_recommended_recipes(
            body.preferences.to_preferences(), x_user_id, body.meal_type
        )
        return {"meal_type": body.meal_type, "recipe_ids": recipe_ids}

    @app.post("/api/meal-plans/bulk-fill")
    def bulk_fill_meals(body: BulkFillBody, x_user_id: int = Header(...)) -> Dict[str, Any]:
        result = service.bulk_fill_meals(
            BulkFillRequest(
                meal_plan_id=body.meal_plan_id,
                meal_type=body.meal_type,
                fill_pattern=body.fill_pattern,
                recipe_ids=list(body.recipe_ids),
                target_dates=list(body.target_dates),
            ),
            user_id=x_user_id,
        )
        return {"success": True, "meal_plan_id": result.meal_plan_id, "filled": result.filled}

    return app


if __name__ == "__main__":
    configure_logging(load_settings().log_level)
    uvicorn.run("smartmeal.api.server:create_app", factory=True, host="0.0.0.0", port=8000)
