"""Nutrition providers exposing a uniform meal lookup."""

import logging
import re
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Protocol

from tenacity import (
    AsyncRetrying,
    before_sleep_log,
    retry_if_exception,
    stop_after_attempt,
    wait_fixed,
)

from meal_planner.adapters.fatsecret_client import FatSecretClient
from meal_planner.adapters.nutritionix_client import NutritionixClient
from meal_planner.domain.errors import (
    KeysExhaustedError,
    NormalizationError,
    ProviderError,
    RateLimitError,
    ValidationError,
)
from meal_planner.domain.meals import Meal
from meal_planner.domain.nutrition import (
    MACRO_FIELDS,
    Macros,
    NutritionRecord,
    NutritionSource,
    ProviderPayload,
)
from meal_planner.services import normalizer

_logger = logging.getLogger(__name__)

# Portion multipliers relative to one cup / one piece.
QUANTITY_MULTIPLIERS = {
    "cup": 1.0,
    "tbsp": 0.0625,
    "tsp": 0.0208,
    "oz": 0.125,
    "g": 0.0042,
    "ml": 0.0042,
    "piece": 1.0,
    "medium": 1.0,
    "large": 1.5,
    "small": 0.75,
}

_INGREDIENT_PATTERN = re.compile(
    r"^(\d+(?:\.\d+)?)\s*(cup|tbsp|tsp|oz|g|ml|piece|medium|large|small)?\s+(.+)$",
    re.IGNORECASE,
)


class NutritionProvider(Protocol):
    """Uniform nutrition lookup for a named meal."""

    name: str

    async def get_meal_nutrition(self, meal: Meal) -> NutritionRecord:
        """Return normalized nutrition for a meal or raise a provider error."""


@dataclass
class NutritionixProvider(NutritionProvider):
    """Primary provider: natural-language lookup of a whole meal."""

    client: NutritionixClient
    name: str = "nutritionix"
    retry_attempts: int = 1
    retry_delay_seconds: float = 0.3

    async def get_nutrition(self, food_name: str) -> NutritionRecord:
        """Look up a single food or meal by name."""
        payload = await _call_with_retry(
            lambda: self.client.natural_nutrients(food_name),
            action=f"nutritionix:{food_name}",
            attempts=self.retry_attempts,
            delay=self.retry_delay_seconds,
        )
        foods = payload.get("foods")
        if not isinstance(foods, list) or not foods:
            raise ProviderError(
                f"Nutritionix returned no foods for {food_name!r}", provider=self.name
            )
        return normalizer.normalize(
            ProviderPayload(source=NutritionSource.NUTRITIONIX, payload=payload)
        )

    async def get_meal_nutrition(self, meal: Meal) -> NutritionRecord:
        """Look up the meal by its name."""
        return await self.get_nutrition(meal.name)


@dataclass
class FatSecretProvider(NutritionProvider):
    """Secondary provider: sums per-ingredient lookups, else the whole meal."""

    client: FatSecretClient
    name: str = "fatsecret"
    retry_attempts: int = 1
    retry_delay_seconds: float = 0.3

    async def get_nutrition(self, food_name: str) -> NutritionRecord:
        """Search for a food and return the nutrition of its first serving."""
        search = await _call_with_retry(
            lambda: self.client.search_foods(food_name, max_results=1),
            action=f"fatsecret:search:{food_name}",
            attempts=self.retry_attempts,
            delay=self.retry_delay_seconds,
        )
        foods = ((search.get("foods_search") or {}).get("results") or {}).get("food")
        first = foods[0] if isinstance(foods, list) and foods else foods
        if not isinstance(first, dict) or not first.get("food_id"):
            raise ProviderError(
                f"FatSecret found nothing for {food_name!r}", provider=self.name
            )
        details = await _call_with_retry(
            lambda: self.client.get_food(str(first["food_id"])),
            action=f"fatsecret:food:{first['food_id']}",
            attempts=self.retry_attempts,
            delay=self.retry_delay_seconds,
        )
        return normalizer.normalize(
            ProviderPayload(source=NutritionSource.FATSECRET, payload=details)
        )

    async def get_meal_nutrition(self, meal: Meal) -> NutritionRecord:
        """Combine ingredient nutrition, falling back to a whole-meal lookup."""
        ingredients = meal.ingredient_list()
        if ingredients:
            results, missing = await self.get_batch_nutrition(ingredients)
            if missing:
                _logger.info(
                    "FatSecret missing %s of %s ingredients for %s",
                    len(missing),
                    len(ingredients),
                    meal.name,
                )
            if results:
                combined = combine_nutrition(list(results.values()), meal.name)
                normalizer.validate(combined)
                return combined
        return await self.get_nutrition(meal.name)

    async def get_batch_nutrition(
        self, ingredients: list[str]
    ) -> tuple[dict[str, NutritionRecord], list[str]]:
        """Fetch and portion-adjust each ingredient independently."""
        results: dict[str, NutritionRecord] = {}
        missing: list[str] = []
        for ingredient in ingredients:
            quantity, unit, name = parse_ingredient(ingredient)
            try:
                record = await self.get_nutrition(name)
            except (RateLimitError, KeysExhaustedError):
                raise
            except (ProviderError, NormalizationError, ValidationError) as exc:
                _logger.warning("FatSecret lookup failed for %s: %s", ingredient, exc)
                missing.append(ingredient)
                continue
            results[ingredient] = adjust_for_quantity(record, quantity, unit)
        return results, missing


def parse_ingredient(ingredient: str) -> tuple[float, str, str]:
    """Split "2 tbsp peanut butter" into quantity, unit and name."""
    match = _INGREDIENT_PATTERN.match(ingredient.strip())
    if not match:
        return 1.0, "", ingredient.strip()
    return float(match.group(1)), (match.group(2) or "").lower(), match.group(3).strip()


def quantity_multiplier(quantity: float, unit: str) -> float:
    """Scale factor for a quantity of the given unit."""
    return quantity * QUANTITY_MULTIPLIERS.get(unit.lower(), 1.0)


def adjust_for_quantity(
    record: NutritionRecord, quantity: float, unit: str
) -> NutritionRecord:
    """Scale every nutrition value by the quantity multiplier."""
    factor = quantity_multiplier(quantity, unit)
    return normalizer.round_record(
        NutritionRecord(
            food_name=record.food_name,
            calories=record.calories * factor,
            macros=Macros(
                **{
                    name: getattr(record.macros, name) * factor
                    for name in MACRO_FIELDS
                }
            ),
            vitamins={key: value * factor for key, value in record.vitamins.items()},
            minerals={key: value * factor for key, value in record.minerals.items()},
        )
    )


def combine_nutrition(
    records: list[NutritionRecord], food_name: str = "Combined Meal"
) -> NutritionRecord:
    """Sum several records into one, rounded."""
    calories = 0.0
    macros = dict.fromkeys(MACRO_FIELDS, 0.0)
    vitamins: dict[str, float] = {}
    minerals: dict[str, float] = {}
    for record in records:
        calories += record.calories
        for name in MACRO_FIELDS:
            macros[name] += getattr(record.macros, name)
        for key, value in record.vitamins.items():
            vitamins[key] = vitamins.get(key, 0.0) + value
        for key, value in record.minerals.items():
            minerals[key] = minerals.get(key, 0.0) + value
    return normalizer.round_record(
        NutritionRecord(
            food_name=food_name,
            calories=calories,
            macros=Macros(**macros),
            vitamins=vitamins,
            minerals=minerals,
        )
    )


def _is_transient(exc: BaseException) -> bool:
    if isinstance(exc, KeysExhaustedError | RateLimitError):
        return False
    if not isinstance(exc, ProviderError):
        return False
    return exc.upstream_status is None or exc.upstream_status >= 500


async def _call_with_retry(
    func: Callable[[], Awaitable[dict[str, object]]],
    *,
    action: str,
    attempts: int,
    delay: float,
) -> dict[str, object]:
    """Retry transient provider failures (network errors and 5xx) briefly."""
    async for attempt in AsyncRetrying(
        stop=stop_after_attempt(attempts + 1),
        wait=wait_fixed(delay),
        retry=retry_if_exception(_is_transient),
        before_sleep=before_sleep_log(_logger, logging.WARNING),
        reraise=True,
    ):
        with attempt:
            return await func()
    raise ProviderError(
        f"No attempt made for {action}", provider=action.split(":", 1)[0]
    )
