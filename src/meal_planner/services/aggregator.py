"""Daily nutrition totals."""

import logging

from meal_planner.domain.meals import ResolvedMeal
from meal_planner.domain.nutrition import (
    MACRO_FIELDS,
    DailyTotals,
    Macros,
    NutritionRecord,
)
from meal_planner.services import normalizer

_logger = logging.getLogger(__name__)

# Meal estimates further than this from resolved calories are replaced.
CALORIE_RECONCILE_THRESHOLD = 50.0


def aggregate(meals: dict[str, ResolvedMeal]) -> DailyTotals:
    """Sum nutrition of every meal with valid data; others are skipped."""
    calories = 0.0
    macros = dict.fromkeys(MACRO_FIELDS, 0.0)
    vitamins: dict[str, float] = {}
    minerals: dict[str, float] = {}
    for meal_type, resolved in meals.items():
        record = resolved.record()
        if not normalizer.is_valid_nutrition_data(record):
            _logger.info("Skipping %s without valid nutrition in daily totals", meal_type)
            continue
        estimated = resolved.meal.estimated_calories
        if (
            estimated is not None
            and abs(estimated - record.calories) > CALORIE_RECONCILE_THRESHOLD
        ):
            resolved.meal.estimated_calories = record.calories
        calories += record.calories
        for name in MACRO_FIELDS:
            macros[name] += getattr(record.macros, name)
        for key, value in record.vitamins.items():
            vitamins[key] = vitamins.get(key, 0.0) + value
        for key, value in record.minerals.items():
            minerals[key] = minerals.get(key, 0.0) + value
    rounded = normalizer.round_record(
        NutritionRecord(
            food_name="Daily Totals",
            calories=calories,
            macros=Macros(**macros),
            vitamins=vitamins,
            minerals=minerals,
        )
    )
    return DailyTotals(
        calories=rounded.calories,
        macros=rounded.macros,
        vitamins=rounded.vitamins,
        minerals=rounded.minerals,
    )
