"""Meal plan generation and persistence."""

import asyncio
import logging
from dataclasses import dataclass
from datetime import UTC, date, datetime, timedelta
from typing import Protocol
from uuid import UUID

import pydantic

from meal_planner.domain.errors import MealPlanGenerationError, ProviderError
from meal_planner.domain.meals import (
    DayPlan,
    GeneratedPlan,
    Meal,
    MealPlan,
    MealPlanRequest,
    ResolvedMeal,
)
from meal_planner.services.aggregator import aggregate
from meal_planner.services.llm import LLMJsonRequester
from meal_planner.services.resolver import NutritionResolver

_logger = logging.getLogger(__name__)

MEAL_TYPES = ("breakfast", "lunch", "dinner", "snack")

SYSTEM_PROMPT = (
    "You are a nutritionist who writes practical meal plans. Respond only with "
    "JSON matching the schema. Every meal needs a name, a comma separated "
    "ingredient list with quantities, a one sentence description and an "
    "estimated calorie count."
)

_MEAL_SCHEMA: dict[str, object] = {
    "type": "object",
    "properties": {
        "name": {"type": "string"},
        "ingredients": {"type": "string"},
        "description": {"type": "string"},
        "estimated_calories": {"type": "number"},
    },
    "required": ["name", "ingredients", "estimated_calories"],
}

PLAN_SCHEMA: dict[str, object] = {
    "type": "object",
    "properties": {
        "days": {
            "type": "array",
            "items": {
                "type": "object",
                "properties": {
                    "day": {"type": "string"},
                    "meals": {
                        "type": "object",
                        "properties": {name: _MEAL_SCHEMA for name in MEAL_TYPES},
                        "required": list(MEAL_TYPES),
                    },
                },
                "required": ["day", "meals"],
            },
        }
    },
    "required": ["days"],
}


class MealPlanRepository(Protocol):
    """Persistence interface for meal plans."""

    def create_plan(self, plan: MealPlan) -> MealPlan:
        """Store a plan and return it with its id."""

    def get_active_plan(self, user_id: UUID) -> MealPlan | None:
        """Return the newest active plan for a user."""


def build_prompt(request: MealPlanRequest) -> str:
    """Describe the user profile and plan constraints."""
    allergies = ", ".join(request.allergies) or "none"
    avoid = ", ".join(request.avoid) or "nothing"
    return (
        f"Create a {request.days}-day meal plan with breakfast, lunch, dinner "
        "and snack for each day.\n"
        f"Profile: {request.age} year old {request.gender}, "
        f"{request.height:g} cm, {request.weight:g} kg, "
        f"activity level {request.activity}, goal {request.goal}.\n"
        f"Daily calories: {request.daily_calories}. "
        f"Macro split (protein-carbs-fat %): {request.macro_split}.\n"
        f"Cuisine preference: {request.cuisine_preference}.\n"
        f"Allergies: {allergies}. Avoid: {avoid}."
    )


@dataclass
class MealPlanService:
    """Generate plans with the LLM, enrich them with nutrition and store them."""

    requester: LLMJsonRequester
    resolver: NutritionResolver
    repository: MealPlanRepository

    async def generate(
        self, request: MealPlanRequest, start_date: date | None = None
    ) -> MealPlan:
        generated = await self._generate_plan(request)
        days = [
            await self._enrich_day(day.day, day.meals)
            for day in generated.days[: request.days]
        ]
        start = start_date or datetime.now(tz=UTC).date()
        plan = MealPlan(
            user_id=request.user_id,
            days=days,
            start_date=start,
            end_date=start + timedelta(days=request.days),
        )
        stored = await asyncio.to_thread(self.repository.create_plan, plan)
        _logger.info(
            "Stored meal plan %s for user %s with %s days",
            stored.id,
            request.user_id,
            len(days),
        )
        return stored

    async def get_active(self, user_id: UUID) -> MealPlan | None:
        return await asyncio.to_thread(self.repository.get_active_plan, user_id)

    async def _generate_plan(self, request: MealPlanRequest) -> GeneratedPlan:
        try:
            data = await self.requester.request(
                system_prompt=SYSTEM_PROMPT,
                prompt=build_prompt(request),
                schema=PLAN_SCHEMA,
                schema_name="meal_plan",
            )
            return GeneratedPlan.model_validate(data)
        except ProviderError as exc:
            raise MealPlanGenerationError(
                f"Failed to generate meal plan: {exc}"
            ) from exc
        except pydantic.ValidationError as exc:
            _logger.warning("Meal plan response failed validation: %s", exc)
            raise MealPlanGenerationError(
                "Meal plan response did not match the expected format"
            ) from exc

    async def _enrich_day(self, day: str, meals: dict[str, Meal]) -> DayPlan:
        batch = await self.resolver.resolve_many(meals)
        if batch.missing:
            _logger.warning("No nutrition for %s on %s", batch.missing, day)
        resolved = {
            meal_type: ResolvedMeal(
                meal=meal,
                nutrition=(
                    batch.results[meal_type].to_dict()
                    if meal_type in batch.results
                    else None
                ),
                nutrition_source=batch.tiers.get(meal_type),
            )
            for meal_type, meal in meals.items()
        }
        totals = aggregate(resolved)
        return DayPlan(day=day, meals=resolved, totals=totals.to_dict())
