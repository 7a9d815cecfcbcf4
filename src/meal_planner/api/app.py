"""FastAPI application factory."""

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from uuid import UUID

from fastapi import FastAPI, HTTPException, Request, status
from fastapi.responses import JSONResponse

from meal_planner.api.models import (
    CacheClearRequest,
    IngredientBatch,
    IngredientBatchResult,
    NutritionQuery,
    NutritionResult,
    QuotaStatus,
)
from meal_planner.app_logging import configure_logging
from meal_planner.containers import AppContainer
from meal_planner.domain.errors import MealPlannerError
from meal_planner.domain.meals import Meal, MealPlan, MealPlanRequest


def create_app(container: AppContainer) -> FastAPI:
    """Create a FastAPI app configured with dependencies."""
    configure_logging(container.settings.log_level)
    logger = logging.getLogger(__name__)

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        state_container: AppContainer = app.state.container
        await state_container.start_background_tasks()
        try:
            await state_container.verify_providers()
        except Exception:
            logger.exception("Failed to verify nutrition providers")
        yield
        await state_container.close_resources()

    app = FastAPI(lifespan=lifespan)
    app.state.container = container

    @app.exception_handler(MealPlannerError)
    async def meal_planner_error_handler(
        request: Request, exc: MealPlannerError
    ) -> JSONResponse:
        if exc.status_code >= 500:
            logger.error("%s %s failed: %s", request.method, request.url.path, exc)
        return JSONResponse(
            status_code=exc.status_code,
            content={"status": "error", "message": str(exc)},
        )

    @app.get("/health")
    async def health(request: Request) -> dict[str, str]:
        """Simple health check endpoint."""
        state_container: AppContainer = request.app.state.container
        return {"status": "ok", "cache": state_container.volatile_cache.name}

    @app.post("/meal-plans", status_code=status.HTTP_201_CREATED)
    async def create_meal_plan(payload: MealPlanRequest, request: Request) -> MealPlan:
        """Generate, enrich and store a meal plan."""
        state_container: AppContainer = request.app.state.container
        return await state_container.meal_plan_service.generate(payload)

    @app.get("/meal-plans/active")
    async def active_meal_plan(user_id: UUID, request: Request) -> MealPlan:
        """Return the newest active plan for a user."""
        state_container: AppContainer = request.app.state.container
        plan = await state_container.meal_plan_service.get_active(user_id)
        if plan is None:
            raise HTTPException(
                status_code=status.HTTP_404_NOT_FOUND, detail="No active meal plan"
            )
        return plan

    @app.post("/nutrition")
    async def resolve_nutrition(
        payload: NutritionQuery, request: Request
    ) -> NutritionResult:
        """Resolve nutrition for a single food or meal."""
        state_container: AppContainer = request.app.state.container
        resolution = await state_container.resolver.resolve(
            Meal(
                name=payload.food_description,
                ingredients=payload.ingredients,
                estimated_calories=payload.estimated_calories,
            )
        )
        return NutritionResult(
            food_description=payload.food_description,
            source=resolution.tier,
            nutrition=resolution.record.to_dict(),
        )

    @app.post("/nutrition/batch")
    async def resolve_ingredient_batch(
        payload: IngredientBatch, request: Request
    ) -> IngredientBatchResult:
        """Resolve nutrition for several ingredients."""
        state_container: AppContainer = request.app.state.container
        records = await state_container.resolver.resolve_ingredients(
            payload.ingredients
        )
        return IngredientBatchResult(
            results={
                name: record.to_dict() if record else None
                for name, record in records.items()
            },
            missing=[name for name, record in records.items() if record is None],
        )

    @app.delete("/nutrition/cache")
    async def clear_nutrition_cache(
        request: Request, payload: CacheClearRequest | None = None
    ) -> dict[str, str]:
        """Clear one cached description, or the whole nutrition cache."""
        state_container: AppContainer = request.app.state.container
        description = payload.food_description if payload else None
        await state_container.nutrition_cache.clear(description)
        return {"status": "ok"}

    @app.get("/nutrition/quota")
    async def nutrition_quota(request: Request) -> QuotaStatus:
        """Report remaining provider capacity."""
        state_container: AppContainer = request.app.state.container
        return QuotaStatus(
            nutritionix_available_keys=state_container.key_rotator.available_count(),
            nutritionix_requests_today=state_container.key_rotator.total_requests(),
            fatsecret_remaining_calls=state_container.rate_limiter.get_remaining_calls(),
        )

    return app
