"""Meal and meal plan models."""

from datetime import date, datetime
from uuid import UUID

from pydantic import BaseModel, Field

from meal_planner.domain.nutrition import NutritionRecord


class Meal(BaseModel):
    """Single meal as produced by the language model or a client."""

    name: str
    ingredients: str = ""
    description: str = ""
    estimated_calories: float | None = Field(default=None, ge=0)

    def ingredient_list(self) -> list[str]:
        """Split the comma separated ingredient string."""
        return [part.strip() for part in self.ingredients.split(",") if part.strip()]


class ResolvedMeal(BaseModel):
    """Meal enriched with resolved nutrition."""

    meal: Meal
    nutrition: dict[str, object] | None = None
    nutrition_source: str | None = None

    def record(self) -> NutritionRecord | None:
        """Return the attached nutrition as a domain record."""
        if self.nutrition is None:
            return None
        return NutritionRecord.from_dict(self.nutrition)


class DayPlan(BaseModel):
    """Meals and totals for one plan day."""

    day: str
    meals: dict[str, ResolvedMeal]
    totals: dict[str, object] = Field(default_factory=dict)


class GeneratedDay(BaseModel):
    """Day returned by the language model before enrichment."""

    day: str
    meals: dict[str, Meal]


class GeneratedPlan(BaseModel):
    """Structured meal plan returned by the language model."""

    days: list[GeneratedDay] = Field(min_length=1)


class MealPlanRequest(BaseModel):
    """User profile used to generate a meal plan."""

    user_id: UUID
    name: str = ""
    age: int = Field(gt=0, lt=130)
    gender: str
    height: float = Field(gt=0)
    weight: float = Field(gt=0)
    activity: str
    goal: str
    daily_calories: int = Field(gt=0)
    macro_split: str = "40-30-30"
    cuisine_preference: str = "any"
    allergies: list[str] = Field(default_factory=list)
    avoid: list[str] = Field(default_factory=list)
    days: int = Field(default=3, ge=1, le=7)


class MealPlan(BaseModel):
    """Persisted meal plan."""

    id: UUID | None = None
    user_id: UUID
    days: list[DayPlan]
    start_date: date
    end_date: date
    status: str = "active"
    created_at: datetime | None = None
