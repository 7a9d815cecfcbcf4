"""Request and response models for the HTTP API."""

from pydantic import BaseModel, Field


class NutritionQuery(BaseModel):
    """Single food or meal lookup."""

    food_description: str = Field(min_length=1)
    ingredients: str = ""
    estimated_calories: float | None = Field(default=None, ge=0)


class NutritionResult(BaseModel):
    """Resolved nutrition and the tier that produced it."""

    food_description: str
    source: str
    nutrition: dict[str, object]


class IngredientBatch(BaseModel):
    """Batch ingredient lookup."""

    ingredients: list[str] = Field(min_length=1)


class IngredientBatchResult(BaseModel):
    results: dict[str, dict[str, object] | None]
    missing: list[str]


class CacheClearRequest(BaseModel):
    food_description: str | None = None


class QuotaStatus(BaseModel):
    """Remaining provider capacity."""

    nutritionix_available_keys: int
    nutritionix_requests_today: int
    fatsecret_remaining_calls: int
