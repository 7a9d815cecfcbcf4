"""Tiered nutrition resolution: cache, providers, LLM, then a calorie heuristic."""

import asyncio
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from functools import partial

from meal_planner.domain.errors import CacheWriteError, MealPlannerError
from meal_planner.domain.meals import Meal
from meal_planner.domain.nutrition import NutritionRecord, NutritionSource
from meal_planner.services import normalizer
from meal_planner.services.heuristic import estimate_from_calories
from meal_planner.services.llm_estimator import LLMNutritionEstimator
from meal_planner.services.nutrition_cache import NutritionCache
from meal_planner.services.providers import NutritionProvider

_logger = logging.getLogger(__name__)

CACHE_TIER = "cache"
LLM_TIER = "llm"
HEURISTIC_TIER = "heuristic"


@dataclass(frozen=True)
class TierResult:
    """Outcome of a single tier: a record or the reason it failed."""

    record: NutritionRecord | None = None
    failure: str | None = None

    @property
    def ok(self) -> bool:
        return self.record is not None

    @classmethod
    def success(cls, record: NutritionRecord) -> "TierResult":
        return cls(record=record)

    @classmethod
    def failed(cls, reason: str) -> "TierResult":
        return cls(failure=reason)


@dataclass(frozen=True)
class Tier:
    name: str
    resolve: Callable[[Meal], Awaitable[TierResult]]


@dataclass(frozen=True)
class Resolution:
    """Resolved record and the tier that produced it."""

    record: NutritionRecord
    tier: str


@dataclass(frozen=True)
class BatchResolution:
    results: dict[str, NutritionRecord]
    missing: list[str]
    tiers: dict[str, str] = field(default_factory=dict)


@dataclass
class NutritionResolver:
    """Resolve meal nutrition by walking an ordered list of tiers.

    The first tier returning a valid record wins. Failures are logged and the
    next tier is tried; the final heuristic tier always produces a record, so
    ``resolve`` never fails for lack of nutrition data.
    """

    cache: NutritionCache
    providers: list[NutritionProvider]
    estimator: LLMNutritionEstimator | None = None
    max_concurrency: int = 4
    tier_timeout_seconds: float = 60

    @property
    def tiers(self) -> list[Tier]:
        tiers = [Tier(CACHE_TIER, self._from_cache)]
        tiers.extend(
            Tier(provider.name, partial(self._from_provider, provider))
            for provider in self.providers
        )
        if self.estimator is not None:
            tiers.append(Tier(LLM_TIER, self._from_llm))
        tiers.append(Tier(HEURISTIC_TIER, self._from_heuristic))
        return tiers

    async def resolve(self, meal: Meal) -> Resolution:
        """Return nutrition for a meal from the first tier that succeeds."""
        resolution = await self._run_tiers(meal, self.tiers)
        if resolution is None:
            return Resolution(estimate_from_calories(meal), HEURISTIC_TIER)
        return resolution

    async def resolve_many(self, meals: dict[str, Meal]) -> BatchResolution:
        """Resolve several meals concurrently, keyed by meal type."""
        semaphore = asyncio.Semaphore(self.max_concurrency)

        async def run(meal: Meal) -> Resolution:
            async with semaphore:
                return await self.resolve(meal)

        meal_types = list(meals)
        resolutions = await asyncio.gather(*(run(meals[key]) for key in meal_types))
        results: dict[str, NutritionRecord] = {}
        tiers: dict[str, str] = {}
        missing: list[str] = []
        for meal_type, resolution in zip(meal_types, resolutions, strict=True):
            if normalizer.is_valid_nutrition_data(resolution.record):
                results[meal_type] = resolution.record
                tiers[meal_type] = resolution.tier
            else:
                missing.append(meal_type)
        return BatchResolution(results=results, missing=missing, tiers=tiers)

    async def resolve_ingredients(
        self, ingredients: list[str]
    ) -> dict[str, NutritionRecord | None]:
        """Look up bare ingredient names; no heuristic since they carry no calories."""
        if not ingredients:
            return {}
        lookup = await self.cache.get_batch(ingredients)
        results: dict[str, NutritionRecord | None] = dict(lookup.cached)
        tiers = [
            tier
            for tier in self.tiers
            if tier.name not in (CACHE_TIER, HEURISTIC_TIER)
        ]
        semaphore = asyncio.Semaphore(self.max_concurrency)

        async def run(name: str) -> Resolution | None:
            async with semaphore:
                return await self._run_tiers(Meal(name=name), tiers)

        resolutions = await asyncio.gather(*(run(name) for name in lookup.missing))
        for name, resolution in zip(lookup.missing, resolutions, strict=True):
            results[name] = resolution.record if resolution else None
        return {name: results.get(name) for name in ingredients}

    async def _run_tiers(self, meal: Meal, tiers: list[Tier]) -> Resolution | None:
        for tier in tiers:
            try:
                result = await asyncio.wait_for(
                    tier.resolve(meal), timeout=self.tier_timeout_seconds
                )
            except TimeoutError:
                _logger.warning("Tier %s timed out for %s", tier.name, meal.name)
                continue
            except MealPlannerError as exc:
                _logger.warning("Tier %s failed for %s: %s", tier.name, meal.name, exc)
                continue
            except Exception:
                _logger.exception("Tier %s crashed for %s", tier.name, meal.name)
                continue
            if result.ok:
                _logger.info("Resolved %s via %s", meal.name, tier.name)
                return Resolution(record=result.record, tier=tier.name)
            _logger.info(
                "Tier %s gave no result for %s: %s", tier.name, meal.name, result.failure
            )
        return None

    async def _from_cache(self, meal: Meal) -> TierResult:
        record = await self.cache.get(meal.name)
        if record is None:
            return TierResult.failed("cache miss")
        if not normalizer.is_valid_nutrition_data(record):
            return TierResult.failed("cached nutrition is invalid")
        return TierResult.success(record)

    async def _from_provider(self, provider: NutritionProvider, meal: Meal) -> TierResult:
        record = await provider.get_meal_nutrition(meal)
        return await self._accept(meal, record, _source_for(provider.name))

    async def _from_llm(self, meal: Meal) -> TierResult:
        record = await self.estimator.estimate(meal)
        return await self._accept(meal, record, NutritionSource.LLM)

    async def _from_heuristic(self, meal: Meal) -> TierResult:
        _logger.warning("Falling back to calorie heuristic for %s", meal.name)
        record = estimate_from_calories(meal)
        accepted = await self._accept(meal, record, NutritionSource.HEURISTIC)
        # Last tier: keep the estimate even when it could not be cached.
        return accepted if accepted.ok else TierResult.success(record)

    async def _accept(
        self, meal: Meal, record: NutritionRecord, source: NutritionSource
    ) -> TierResult:
        record = normalizer.round_record(record)
        if not normalizer.is_valid_nutrition_data(record):
            return TierResult.failed("no valid nutrition values")
        try:
            await self.cache.set(meal.name, record, source)
        except CacheWriteError as exc:
            return TierResult.failed(f"cache write rejected: {exc}")
        except Exception:
            _logger.exception("Failed to cache nutrition for %s", meal.name)
        return TierResult.success(record)


def _source_for(name: str) -> NutritionSource:
    try:
        return NutritionSource(name)
    except ValueError:
        return NutritionSource.COMBINED
