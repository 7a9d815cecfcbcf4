"""Calorie-ratio nutrition estimate used when every other source fails."""

import logging

from meal_planner.domain.meals import Meal
from meal_planner.domain.nutrition import Macros, NutritionRecord
from meal_planner.services import normalizer

_logger = logging.getLogger(__name__)

# Assumed energy for a meal that arrives without an estimate.
DEFAULT_MEAL_CALORIES = 500.0

PROTEIN_CALORIE_SHARE = 0.2
CARB_CALORIE_SHARE = 0.5
FAT_CALORIE_SHARE = 0.3

FIBER_PER_CALORIE = 0.014
SUGARS_PER_CALORIE = 0.05
VITAMIN_RATIOS = {"vitamin_A_mcg": 0.3, "vitamin_C_mg": 0.03}
MINERAL_RATIOS = {
    "calcium_mg": 0.4,
    "iron_mg": 0.006,
    "potassium_mg": 1.2,
    "sodium_mg": 0.8,
}


def estimate_from_calories(meal: Meal) -> NutritionRecord:
    """Derive a full record from the meal's estimated calories."""
    calories = meal.estimated_calories or 0.0
    if calories <= 0:
        _logger.warning(
            "Meal %s has no calorie estimate, assuming %s kcal",
            meal.name,
            DEFAULT_MEAL_CALORIES,
        )
        calories = DEFAULT_MEAL_CALORIES
    return normalizer.round_record(
        NutritionRecord(
            food_name=meal.name,
            calories=calories,
            macros=Macros(
                protein_g=calories * PROTEIN_CALORIE_SHARE / 4,
                carbs_g=calories * CARB_CALORIE_SHARE / 4,
                fats_g=calories * FAT_CALORIE_SHARE / 9,
                fiber_g=calories * FIBER_PER_CALORIE,
                sugars_g=calories * SUGARS_PER_CALORIE,
            ),
            vitamins={key: calories * ratio for key, ratio in VITAMIN_RATIOS.items()},
            minerals={key: calories * ratio for key, ratio in MINERAL_RATIOS.items()},
        )
    )
