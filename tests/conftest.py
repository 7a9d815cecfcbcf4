"""Shared test fixtures."""

import json
from dataclasses import dataclass, field
from datetime import datetime
from uuid import UUID, uuid4

import pytest

from meal_planner.adapters.fatsecret_client import FatSecretClient
from meal_planner.adapters.nutritionix_client import NutritionixClient
from meal_planner.config import Settings
from meal_planner.containers import AppContainer
from meal_planner.domain.errors import MealPlannerError, ProviderError
from meal_planner.domain.meals import Meal, MealPlan
from meal_planner.domain.nutrition import CacheEntry, NutritionRecord
from meal_planner.services.cache import InMemoryCache
from meal_planner.services.key_rotator import KeyRotator
from meal_planner.services.llm import LLMClient, LLMJsonRequester
from meal_planner.services.llm_estimator import LLMNutritionEstimator
from meal_planner.services.meal_plans import MealPlanRepository, MealPlanService
from meal_planner.services.nutrition_cache import NutritionCache, NutritionStore
from meal_planner.services.providers import (
    FatSecretProvider,
    NutritionixProvider,
    NutritionProvider,
)
from meal_planner.services.rate_limiter import RateLimiter
from meal_planner.services.resolver import NutritionResolver


def nutritionix_payload(
    name: str, calories: float, protein: float, carbs: float, fat: float
) -> dict[str, object]:
    return {
        "foods": [
            {
                "food_name": name,
                "nf_calories": calories,
                "nf_protein": protein,
                "nf_total_carbohydrate": carbs,
                "nf_total_fat": fat,
                "nf_dietary_fiber": 2,
                "nf_sugars": 5,
                "nf_sodium": 120,
                "nf_potassium": 200,
            }
        ]
    }


def fatsecret_serving(
    calories: float, protein: float, carbs: float, fat: float
) -> dict[str, object]:
    return {
        "calories": str(calories),
        "protein": str(protein),
        "carbohydrate": str(carbs),
        "fat": str(fat),
        "fiber": "1",
        "sugar": "2",
        "calcium": "10",
        "iron": "0.5",
    }


def llm_nutrition_json(
    calories: float, protein: float, carbs: float, fat: float
) -> str:
    return json.dumps(
        {
            "nutrition": {
                "calories": calories,
                "macros": {
                    "protein_g": protein,
                    "carbs_g": carbs,
                    "fats_g": fat,
                    "fiber_g": 3,
                    "sugars_g": 6,
                },
                "vitamins": {"vitamin_A_mcg": 90, "vitamin_C_mg": 12},
                "minerals": {"calcium_mg": 150, "iron_mg": 2},
            }
        }
    )


def make_record(
    name: str = "Test Meal",
    calories: float = 400,
    protein: float = 20,
    carbs: float = 50,
    fat: float = 10,
) -> NutritionRecord:
    return NutritionRecord.from_dict(
        {
            "food_name": name,
            "calories": calories,
            "macros": {"protein_g": protein, "carbs_g": carbs, "fats_g": fat},
            "vitamins": {"vitamin_A_mcg": 0, "vitamin_C_mg": 0},
            "minerals": {"calcium_mg": 0, "iron_mg": 0},
        }
    )


@dataclass
class InMemoryNutritionStore(NutritionStore):
    """In-memory durable nutrition store for tests."""

    entries: dict[str, CacheEntry] = field(default_factory=dict)
    hits: list[str] = field(default_factory=list)
    stale_calls: list[tuple[datetime, int]] = field(default_factory=list)
    fail_writes: bool = False

    def get_entry(self, key: str) -> CacheEntry | None:
        return self.entries.get(key)

    def upsert_entry(self, entry: CacheEntry) -> None:
        if self.fail_writes:
            raise ConnectionError("store unavailable")
        self.entries[entry.key] = entry

    def increment_hit_count(self, key: str, touched_at: datetime) -> None:
        self.hits.append(key)
        entry = self.entries.get(key)
        if entry is not None:
            entry.hit_count += 1
            entry.last_updated = touched_at

    def delete_stale(self, older_than: datetime, min_hit_count: int) -> int:
        self.stale_calls.append((older_than, min_hit_count))
        stale = [
            key
            for key, entry in self.entries.items()
            if entry.last_updated < older_than and entry.hit_count < min_hit_count
        ]
        for key in stale:
            del self.entries[key]
        return len(stale)

    def delete_entry(self, key: str) -> None:
        self.entries.pop(key, None)

    def delete_all(self) -> int:
        count = len(self.entries)
        self.entries.clear()
        return count


@dataclass
class FakeNutritionixClient(NutritionixClient):
    """Fake Nutritionix client answering from a dict of payloads."""

    payloads: dict[str, dict[str, object]] = field(default_factory=dict)
    error: MealPlannerError | None = None
    queries: list[str] = field(default_factory=list)

    async def natural_nutrients(self, query: str) -> dict[str, object]:
        self.queries.append(query)
        if self.error is not None:
            raise self.error
        payload = self.payloads.get(query.lower())
        if payload is None:
            raise ProviderError(
                "We couldn't match any of your foods",
                provider="nutritionix",
                status_code=404,
            )
        return payload

    async def search_instant(self, query: str) -> dict[str, object]:
        return {"common": [{"food_name": query}]}


@dataclass
class FakeFatSecretClient(FatSecretClient):
    """Fake FatSecret client with servings keyed by food name."""

    servings: dict[str, dict[str, object]] = field(default_factory=dict)
    error: MealPlannerError | None = None
    searches: list[str] = field(default_factory=list)

    async def search_foods(self, query: str, max_results: int = 1) -> dict[str, object]:
        self.searches.append(query)
        if self.error is not None:
            raise self.error
        if query.lower() not in self.servings:
            raise ProviderError(
                "No FatSecret results", provider="fatsecret", status_code=404
            )
        return {
            "foods_search": {
                "results": {"food": [{"food_id": query.lower(), "food_name": query}]}
            }
        }

    async def get_food(self, food_id: str) -> dict[str, object]:
        return {
            "food": {
                "food_id": food_id,
                "food_name": food_id,
                "servings": {"serving": [self.servings[food_id]]},
            }
        }


@dataclass
class FakeLLMClient(LLMClient):
    """Fake LLM client replaying scripted responses in order."""

    responses: list[str | Exception] = field(default_factory=list)
    prompts: list[str] = field(default_factory=list)

    async def complete(  # noqa: PLR0913
        self,
        *,
        model: str,
        system_prompt: str,
        prompt: str,
        schema: dict[str, object],
        schema_name: str,
    ) -> str:
        self.prompts.append(prompt)
        if not self.responses:
            raise ProviderError("No scripted LLM response", provider="llm")
        response = self.responses.pop(0)
        if isinstance(response, Exception):
            raise response
        return response


@dataclass
class FakeProvider(NutritionProvider):
    """Provider returning a fixed record or raising a fixed error."""

    name: str
    record: NutritionRecord | None = None
    error: Exception | None = None
    calls: list[str] = field(default_factory=list)

    async def get_meal_nutrition(self, meal: Meal) -> NutritionRecord:
        self.calls.append(meal.name)
        if self.error is not None:
            raise self.error
        if self.record is None:
            raise ProviderError("not found", provider=self.name, status_code=404)
        return self.record


@dataclass
class InMemoryMealPlanRepository(MealPlanRepository):
    """In-memory meal plan repository for tests."""

    plans: list[MealPlan] = field(default_factory=list)

    def create_plan(self, plan: MealPlan) -> MealPlan:
        stored = plan.model_copy(update={"id": uuid4(), "created_at": datetime.now()})
        self.plans.append(stored)
        return stored

    def get_active_plan(self, user_id: UUID) -> MealPlan | None:
        active = [
            plan
            for plan in self.plans
            if plan.user_id == user_id and plan.status == "active"
        ]
        return active[-1] if active else None


def make_requester(client: LLMClient, attempts: int = 3) -> LLMJsonRequester:
    return LLMJsonRequester(
        client=client, model="gpt-4o-mini", attempts=attempts, backoff_seconds=0
    )


@pytest.fixture
def settings() -> Settings:
    return Settings(
        supabase_url="https://example.supabase.co",
        supabase_service_key="service-key",
        openai_api_key="openai-key",
        nutritionix_app_id_1="app-1",
        nutritionix_app_key_1="key-1",
        fatsecret_client_id="fs-id",
        fatsecret_client_secret="fs-secret",
    )


@pytest.fixture
def nutrition_store() -> InMemoryNutritionStore:
    return InMemoryNutritionStore()


@pytest.fixture
def nutrition_cache(nutrition_store: InMemoryNutritionStore) -> NutritionCache:
    return NutritionCache(volatile=InMemoryCache(), store=nutrition_store)


@pytest.fixture
def llm_client() -> FakeLLMClient:
    return FakeLLMClient()


@pytest.fixture
def nutritionix_client() -> FakeNutritionixClient:
    return FakeNutritionixClient(
        payloads={"oatmeal": nutritionix_payload("oatmeal", 150, 5, 27, 3)}
    )


@pytest.fixture
def meal_plan_repository() -> InMemoryMealPlanRepository:
    return InMemoryMealPlanRepository()


@pytest.fixture
def container(  # noqa: PLR0913
    settings: Settings,
    nutrition_cache: NutritionCache,
    nutritionix_client: FakeNutritionixClient,
    llm_client: FakeLLMClient,
    meal_plan_repository: InMemoryMealPlanRepository,
) -> AppContainer:
    key_rotator = KeyRotator.from_pairs([("app-1", "key-1")])
    rate_limiter = RateLimiter(max_calls=100, time_window_seconds=60)
    requester = make_requester(llm_client)
    resolver = NutritionResolver(
        cache=nutrition_cache,
        providers=[
            NutritionixProvider(nutritionix_client, retry_attempts=0),
            FatSecretProvider(FakeFatSecretClient(), retry_attempts=0),
        ],
        estimator=LLMNutritionEstimator(requester),
    )
    meal_plan_service = MealPlanService(
        requester=requester, resolver=resolver, repository=meal_plan_repository
    )

    async def start_background_tasks() -> None:
        return None

    async def verify_providers() -> dict[str, bool]:
        return {"nutritionix": True, "fatsecret": True}

    async def close_resources() -> None:
        await nutrition_cache.drain()

    return AppContainer(
        settings=settings,
        volatile_cache=nutrition_cache.volatile,
        nutrition_cache=nutrition_cache,
        key_rotator=key_rotator,
        rate_limiter=rate_limiter,
        resolver=resolver,
        meal_plan_service=meal_plan_service,
        start_background_tasks=start_background_tasks,
        verify_providers=verify_providers,
        close_resources=close_resources,
    )
