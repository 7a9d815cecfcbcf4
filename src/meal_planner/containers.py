"""Dependency container wiring for the application."""

import asyncio
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass

from supabase import create_client

from meal_planner.adapters.fatsecret_client import HttpxFatSecretClient
from meal_planner.adapters.nutritionix_client import HttpxNutritionixClient
from meal_planner.adapters.openai_llm_client import OpenAILLMClient
from meal_planner.adapters.redis_cache import select_volatile_cache
from meal_planner.adapters.supabase_meal_plan_repository import (
    SupabaseMealPlanRepository,
)
from meal_planner.adapters.supabase_nutrition_repository import (
    SupabaseNutritionRepository,
)
from meal_planner.config import Settings, parse_credential_pairs
from meal_planner.services.cache import VolatileCache
from meal_planner.services.key_rotator import KeyRotator
from meal_planner.services.llm import LLMJsonRequester
from meal_planner.services.llm_estimator import LLMNutritionEstimator
from meal_planner.services.meal_plans import MealPlanService
from meal_planner.services.nutrition_cache import NutritionCache
from meal_planner.services.providers import FatSecretProvider, NutritionixProvider
from meal_planner.services.rate_limiter import RateLimiter
from meal_planner.services.resolver import NutritionResolver

_logger = logging.getLogger(__name__)


@dataclass
class AppContainer:
    """Holds application-wide dependencies."""

    settings: Settings
    volatile_cache: VolatileCache
    nutrition_cache: NutritionCache
    key_rotator: KeyRotator
    rate_limiter: RateLimiter
    resolver: NutritionResolver
    meal_plan_service: MealPlanService
    start_background_tasks: Callable[[], Awaitable[None]]
    verify_providers: Callable[[], Awaitable[dict[str, bool]]]
    close_resources: Callable[[], Awaitable[None]]


def build_container(settings: Settings | None = None) -> AppContainer:
    """Create the default dependency container."""
    resolved_settings = settings or Settings()
    supabase_client = create_client(
        resolved_settings.supabase_url, resolved_settings.supabase_service_key
    )
    volatile_cache = select_volatile_cache(
        resolved_settings.redis_url, max_size=resolved_settings.cache_max_size
    )
    nutrition_cache = NutritionCache(
        volatile=volatile_cache,
        store=SupabaseNutritionRepository(supabase_client),
        prefix=resolved_settings.cache_prefix,
        ttl_seconds=resolved_settings.cache_ttl_seconds,
        retention_days=resolved_settings.cache_retention_days,
        min_hit_count=resolved_settings.cache_min_hit_count,
        sweep_interval_seconds=resolved_settings.cache_sweep_interval_seconds,
    )
    key_rotator = KeyRotator.from_pairs(
        parse_credential_pairs(resolved_settings),
        daily_limit=resolved_settings.nutritionix_daily_limit,
        reset_interval_seconds=resolved_settings.key_reset_interval_seconds,
    )
    nutritionix_client = HttpxNutritionixClient.create(
        base_url=resolved_settings.nutritionix_base_url,
        rotator=key_rotator,
        timeout_seconds=resolved_settings.provider_timeout_seconds,
    )
    rate_limiter = RateLimiter(
        max_calls=resolved_settings.fatsecret_max_calls,
        time_window_seconds=resolved_settings.fatsecret_time_window_seconds,
    )
    fatsecret_client = HttpxFatSecretClient.create(
        client_id=resolved_settings.fatsecret_client_id,
        client_secret=resolved_settings.fatsecret_client_secret,
        base_url=resolved_settings.fatsecret_base_url,
        token_url=resolved_settings.fatsecret_token_url,
        rate_limiter=rate_limiter,
        timeout_seconds=resolved_settings.provider_timeout_seconds,
    )
    llm_client = OpenAILLMClient.create(
        resolved_settings.openai_api_key, base_url=resolved_settings.openai_base_url
    )
    requester = LLMJsonRequester(client=llm_client, model=resolved_settings.openai_model)
    resolver = NutritionResolver(
        cache=nutrition_cache,
        providers=[
            NutritionixProvider(nutritionix_client),
            FatSecretProvider(fatsecret_client),
        ],
        estimator=LLMNutritionEstimator(requester),
        max_concurrency=resolved_settings.resolver_max_concurrency,
    )
    meal_plan_service = MealPlanService(
        requester=requester,
        resolver=resolver,
        repository=SupabaseMealPlanRepository(supabase_client),
    )
    background_tasks: list[asyncio.Task] = []

    async def start_background_tasks() -> None:
        background_tasks.append(asyncio.create_task(nutrition_cache.run_sweeper()))
        background_tasks.append(asyncio.create_task(key_rotator.run_reset_loop()))

    async def verify_providers() -> dict[str, bool]:
        status = {
            "nutritionix": await nutritionix_client.verify_connection(),
            "fatsecret": await fatsecret_client.verify_connection(),
        }
        for name, available in status.items():
            if available:
                _logger.info("Provider %s is reachable", name)
            else:
                _logger.warning("Provider %s is unavailable", name)
        return status

    async def close_resources() -> None:
        for task in background_tasks:
            task.cancel()
        await asyncio.gather(*background_tasks, return_exceptions=True)
        background_tasks.clear()
        await nutrition_cache.drain()
        await nutritionix_client.close()
        await fatsecret_client.close()
        await llm_client.close()
        await volatile_cache.close()

    return AppContainer(
        settings=resolved_settings,
        volatile_cache=volatile_cache,
        nutrition_cache=nutrition_cache,
        key_rotator=key_rotator,
        rate_limiter=rate_limiter,
        resolver=resolver,
        meal_plan_service=meal_plan_service,
        start_background_tasks=start_background_tasks,
        verify_providers=verify_providers,
        close_resources=close_resources,
    )
