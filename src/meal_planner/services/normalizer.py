"""Normalization of provider nutrition payloads into one canonical record.

Three payload shapes are understood:

* Nutritionix ``natural/nutrients`` responses (a ``foods`` array),
* FatSecret ``food.get`` responses (a ``food`` object with nested servings),
* language model estimates (a ``nutrition`` object).

Call sites wrap payloads in :class:`ProviderPayload` so the shape is known up
front; :func:`detect_source` is only used when the origin is truly unknown.
"""

import json
import logging
import math

from meal_planner.domain.errors import NormalizationError, ValidationError
from meal_planner.domain.nutrition import (
    DEFAULT_MINERALS,
    DEFAULT_VITAMINS,
    MACRO_FIELDS,
    Macros,
    NutritionRecord,
    NutritionSource,
    ProviderPayload,
)

_logger = logging.getLogger(__name__)

# Nutritionix ``full_nutrients`` attribute ids.
_NUTRITIONIX_ATTR_IDS = {
    "calories": 208,
    "protein": 203,
    "carbs": 205,
    "fat": 204,
    "fiber": 291,
    "sugars": 269,
    "vitamin_a": 320,
    "vitamin_c": 401,
    "calcium": 301,
    "iron": 303,
    "potassium": 306,
    "sodium": 307,
}


def standardize(
    raw: ProviderPayload | dict[str, object] | str,
    source: NutritionSource | None = None,
) -> NutritionRecord:
    """Convert a raw provider payload into a canonical nutrition record."""
    if isinstance(raw, ProviderPayload):
        source = raw.source
        payload: object = raw.payload
    else:
        payload = raw
    if isinstance(payload, str):
        try:
            payload = json.loads(payload)
        except json.JSONDecodeError as exc:
            raise NormalizationError("Invalid nutrition data format") from exc
    if not isinstance(payload, dict) or not payload:
        raise NormalizationError("No data provided for standardization")

    resolved = source or detect_source(payload)
    if resolved == NutritionSource.NUTRITIONIX:
        return _standardize_nutritionix(payload)
    if resolved == NutritionSource.FATSECRET:
        return _standardize_fatsecret(payload)
    if resolved == NutritionSource.LLM:
        return _standardize_llm(payload)
    if resolved in {NutritionSource.COMBINED, NutritionSource.HEURISTIC}:
        return _standardize_canonical(payload)
    raise NormalizationError(f"Unsupported nutrition source: {resolved}")


def detect_source(payload: dict[str, object]) -> NutritionSource:
    """Guess the provider of an untagged payload from its signature fields."""
    if isinstance(payload.get("foods"), list):
        return NutritionSource.NUTRITIONIX
    if isinstance(payload.get("food"), dict):
        return NutritionSource.FATSECRET
    if isinstance(payload.get("nutrition"), dict):
        return NutritionSource.LLM
    if isinstance(payload.get("macros"), dict) and "calories" in payload:
        return NutritionSource.COMBINED
    raise NormalizationError("Unrecognized nutrition data format")


def validate(record: NutritionRecord) -> None:
    """Raise ValidationError unless the record carries usable nutrition."""
    if not _is_number(record.calories):
        raise ValidationError("Invalid calories value")
    if not isinstance(record.macros, Macros):
        raise ValidationError("Invalid macros data")
    for name in MACRO_FIELDS:
        if not _is_number(getattr(record.macros, name)):
            raise ValidationError(f"Invalid {name} value")
    for group in (record.vitamins, record.minerals):
        for name, value in group.items():
            if not _is_number(value):
                raise ValidationError(f"Invalid {name} value")
    for name, value in _leaves(record):
        if value < 0:
            raise ValidationError(f"Negative {name} value: {value}")
    if record.calories <= 0 and not any(
        value > 0 for value in record.macros.as_dict().values()
    ):
        raise ValidationError("No valid nutrition values found")


def round_record(record: NutritionRecord) -> NutritionRecord:
    """Return a copy of the record with every number rounded to 2 decimals."""
    return NutritionRecord(
        food_name=record.food_name,
        calories=_round(record.calories),
        macros=Macros(
            **{name: _round(getattr(record.macros, name)) for name in MACRO_FIELDS}
        ),
        vitamins={name: _round(value) for name, value in record.vitamins.items()},
        minerals={name: _round(value) for name, value in record.minerals.items()},
    )


def is_valid_nutrition_data(record: NutritionRecord | None) -> bool:
    """Return True when nothing is negative and calories and a macro are positive."""
    if record is None or not isinstance(record.macros, Macros):
        return False
    if not _is_number(record.calories) or record.calories <= 0:
        return False
    if any(not _is_number(value) or value < 0 for _name, value in _leaves(record)):
        return False
    return any(value > 0 for value in record.macros.as_dict().values())


def normalize(
    raw: ProviderPayload | dict[str, object] | str,
    source: NutritionSource | None = None,
) -> NutritionRecord:
    """Standardize, validate and round a payload in one step."""
    record = standardize(raw, source)
    validate(record)
    return round_record(record)


def _standardize_nutritionix(payload: dict[str, object]) -> NutritionRecord:
    foods = payload.get("foods")
    food = foods[0] if isinstance(foods, list) and foods else None
    if not isinstance(food, dict):
        raise NormalizationError("No food data found in Nutritionix response")
    full = _full_nutrients(food)

    def pick(primary: str, alias: str, attr: str) -> float:
        return _first_number(food.get(primary), food.get(alias), full.get(attr))

    return NutritionRecord(
        food_name=str(food.get("food_name") or food.get("mealName") or "Unknown"),
        calories=pick("nf_calories", "calories", "calories"),
        macros=Macros(
            protein_g=pick("nf_protein", "protein", "protein"),
            carbs_g=pick("nf_total_carbohydrate", "carbohydrates", "carbs"),
            fats_g=pick("nf_total_fat", "fat", "fat"),
            fiber_g=pick("nf_dietary_fiber", "fiber", "fiber"),
            sugars_g=pick("nf_sugars", "sugar", "sugars"),
        ),
        vitamins={
            "vitamin_A_mcg": pick("nf_vitamin_a_dv", "vitamin_a", "vitamin_a"),
            "vitamin_C_mg": pick("nf_vitamin_c_dv", "vitamin_c", "vitamin_c"),
        },
        minerals={
            "calcium_mg": pick("nf_calcium_dv", "calcium", "calcium"),
            "iron_mg": pick("nf_iron_dv", "iron", "iron"),
            "potassium_mg": pick("nf_potassium", "potassium", "potassium"),
            "sodium_mg": pick("nf_sodium", "sodium", "sodium"),
        },
    )


def _full_nutrients(food: dict[str, object]) -> dict[str, float]:
    """Map Nutritionix full_nutrients entries onto readable names."""
    by_id: dict[object, object] = {}
    for entry in food.get("full_nutrients") or []:
        if isinstance(entry, dict):
            by_id[entry.get("attr_id")] = entry.get("value")
    values: dict[str, float] = {}
    for name, attr_id in _NUTRITIONIX_ATTR_IDS.items():
        value = _to_number(by_id.get(attr_id))
        if value is not None:
            values[name] = value
    return values


def _standardize_fatsecret(payload: dict[str, object]) -> NutritionRecord:
    food = payload.get("food")
    if not isinstance(food, dict):
        results = (payload.get("foods_search") or {}).get("results") or {}
        candidates = results.get("food") if isinstance(results, dict) else None
        food = candidates[0] if isinstance(candidates, list) and candidates else None
    if not isinstance(food, dict):
        raise NormalizationError("No food data found in FatSecret response")
    servings = (food.get("servings") or {}).get("serving")
    serving = servings[0] if isinstance(servings, list) and servings else servings
    if not isinstance(serving, dict):
        raise NormalizationError("No serving data found in FatSecret response")

    def pick(name: str) -> float:
        return _first_number(serving.get(name))

    return NutritionRecord(
        food_name=str(food.get("food_name") or "Unknown"),
        calories=pick("calories"),
        macros=Macros(
            protein_g=pick("protein"),
            carbs_g=pick("carbohydrate"),
            fats_g=pick("fat"),
            fiber_g=pick("fiber"),
            sugars_g=pick("sugar"),
        ),
        vitamins={
            "vitamin_A_mcg": pick("vitamin_a"),
            "vitamin_C_mg": pick("vitamin_c"),
        },
        minerals={
            "calcium_mg": pick("calcium"),
            "iron_mg": pick("iron"),
            "potassium_mg": pick("potassium"),
            "sodium_mg": pick("sodium"),
        },
    )


def _standardize_llm(payload: dict[str, object]) -> NutritionRecord:
    nutrition = payload.get("nutrition")
    if not isinstance(nutrition, dict):
        raise NormalizationError("No nutrition object found in LLM response")
    macros = nutrition.get("macros") or {}
    calories = _first_number(
        nutrition.get("calories"), nutrition.get("total_calories")
    )
    return NutritionRecord(
        food_name=str(payload.get("mealName") or payload.get("food_name") or "Unknown"),
        calories=calories,
        macros=Macros(
            **{name: _first_number(macros.get(name)) for name in MACRO_FIELDS}
        ),
        vitamins=_open_group(nutrition.get("vitamins"), DEFAULT_VITAMINS),
        minerals=_open_group(nutrition.get("minerals"), DEFAULT_MINERALS),
    )


def _standardize_canonical(payload: dict[str, object]) -> NutritionRecord:
    macros = payload.get("macros")
    if not isinstance(macros, dict):
        raise NormalizationError("No macros found in nutrition record")
    return NutritionRecord(
        food_name=str(payload.get("food_name") or "Unknown"),
        calories=_first_number(payload.get("calories")),
        macros=Macros(
            **{name: _first_number(macros.get(name)) for name in MACRO_FIELDS}
        ),
        vitamins=_open_group(payload.get("vitamins"), DEFAULT_VITAMINS),
        minerals=_open_group(payload.get("minerals"), DEFAULT_MINERALS),
    )


def _open_group(raw: object, required: tuple[str, ...]) -> dict[str, float]:
    """Keep every numeric key of a vitamin/mineral group, defaulting required ones."""
    group = {name: 0.0 for name in required}
    if isinstance(raw, dict):
        for name, value in raw.items():
            number = _to_number(value)
            if number is not None:
                group[str(name)] = number
    return group


def _first_number(*candidates: object) -> float:
    for candidate in candidates:
        number = _to_number(candidate)
        if number is not None and number != 0:
            return number
    return 0.0


def _to_number(value: object) -> float | None:
    if isinstance(value, bool):
        return None
    if isinstance(value, int | float):
        return float(value)
    if isinstance(value, str):
        try:
            return float(value.strip())
        except ValueError:
            _logger.debug("Ignoring non-numeric nutrition value: %r", value)
            return None
    return None


def _is_number(value: object) -> bool:
    return (
        isinstance(value, int | float)
        and not isinstance(value, bool)
        and math.isfinite(value)
    )


def _round(value: float) -> float:
    if value is None:
        return 0.0
    return round(float(value), 2)


def _leaves(record: NutritionRecord) -> list[tuple[str, object]]:
    """Every numeric leaf of a record as (name, value) pairs."""
    return [
        ("calories", record.calories),
        *record.macros.as_dict().items(),
        *record.vitamins.items(),
        *record.minerals.items(),
    ]
