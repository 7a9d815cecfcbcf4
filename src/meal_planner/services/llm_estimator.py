"""Language-model nutrition estimates for meals no provider could resolve."""

import logging
from dataclasses import dataclass

from meal_planner.domain.errors import ValidationError
from meal_planner.domain.meals import Meal
from meal_planner.domain.nutrition import NutritionRecord, NutritionSource, ProviderPayload
from meal_planner.services import normalizer
from meal_planner.services.llm import LLMJsonRequester

_logger = logging.getLogger(__name__)

# Energy from macros may deviate this much from the stated calories.
MACRO_CALORIE_TOLERANCE = 0.2

SYSTEM_PROMPT = (
    "You are a nutrition analyst. Estimate nutrition for the whole meal "
    "described by the user. Respond only with JSON matching the schema. "
    "Use grams for macros, mcg for vitamin A, mg for everything else."
)

NUTRITION_SCHEMA: dict[str, object] = {
    "type": "object",
    "properties": {
        "mealName": {"type": "string"},
        "nutrition": {
            "type": "object",
            "properties": {
                "calories": {"type": "number"},
                "macros": {
                    "type": "object",
                    "properties": {
                        "protein_g": {"type": "number"},
                        "carbs_g": {"type": "number"},
                        "fats_g": {"type": "number"},
                        "fiber_g": {"type": "number"},
                        "sugars_g": {"type": "number"},
                    },
                    "required": ["protein_g", "carbs_g", "fats_g"],
                },
                "vitamins": {
                    "type": "object",
                    "additionalProperties": {"type": "number"},
                },
                "minerals": {
                    "type": "object",
                    "additionalProperties": {"type": "number"},
                },
            },
            "required": ["calories", "macros"],
        },
    },
    "required": ["nutrition"],
}


def build_prompt(meal: Meal) -> str:
    """Describe the meal for the model."""
    lines = [f"Meal: {meal.name}"]
    if meal.ingredients:
        lines.append(f"Ingredients: {meal.ingredients}")
    if meal.description:
        lines.append(f"Description: {meal.description}")
    if meal.estimated_calories:
        lines.append(f"Approximate calories: {meal.estimated_calories:g}")
    return "\n".join(lines)


def macros_match_calories(
    record: NutritionRecord, tolerance: float = MACRO_CALORIE_TOLERANCE
) -> bool:
    """Check that 4/4/9 kcal per gram of protein/carbs/fat roughly yields the calories."""
    if record.calories <= 0:
        return False
    macro_energy = (
        record.macros.protein_g * 4 + record.macros.carbs_g * 4 + record.macros.fats_g * 9
    )
    return abs(macro_energy - record.calories) <= record.calories * tolerance


@dataclass
class LLMNutritionEstimator:
    """Ask the model for a meal's nutrition and keep only consistent answers."""

    requester: LLMJsonRequester

    async def estimate(self, meal: Meal) -> NutritionRecord:
        data = await self.requester.request(
            system_prompt=SYSTEM_PROMPT,
            prompt=build_prompt(meal),
            schema=NUTRITION_SCHEMA,
            schema_name="meal_nutrition",
        )
        record = normalizer.normalize(
            ProviderPayload(
                source=NutritionSource.LLM, payload={**data, "mealName": meal.name}
            )
        )
        if not macros_match_calories(record):
            _logger.warning(
                "LLM estimate for %s rejected: macros inconsistent with %s kcal",
                meal.name,
                record.calories,
            )
            raise ValidationError("LLM macros are inconsistent with calories")
        return record
