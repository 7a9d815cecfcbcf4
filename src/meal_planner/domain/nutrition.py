"""Nutrition domain models."""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum

MACRO_FIELDS = ("protein_g", "carbs_g", "fats_g", "fiber_g", "sugars_g")
DEFAULT_VITAMINS = ("vitamin_A_mcg", "vitamin_C_mg")
DEFAULT_MINERALS = ("calcium_mg", "iron_mg", "potassium_mg", "sodium_mg")


class NutritionSource(str, Enum):
    """Origin of a nutrition payload."""

    NUTRITIONIX = "nutritionix"
    FATSECRET = "fatsecret"
    LLM = "llm"
    COMBINED = "combined"
    HEURISTIC = "heuristic"


@dataclass(frozen=True)
class ProviderPayload:
    """Raw provider response tagged with the provider that produced it."""

    source: NutritionSource
    payload: dict[str, object]


@dataclass(frozen=True)
class Macros:
    """Macronutrients in grams."""

    protein_g: float = 0.0
    carbs_g: float = 0.0
    fats_g: float = 0.0
    fiber_g: float = 0.0
    sugars_g: float = 0.0

    def as_dict(self) -> dict[str, float]:
        return {name: getattr(self, name) for name in MACRO_FIELDS}


@dataclass(frozen=True)
class NutritionRecord:
    """Canonical nutrition record shared by every provider."""

    food_name: str
    calories: float
    macros: Macros
    vitamins: dict[str, float] = field(default_factory=dict)
    minerals: dict[str, float] = field(default_factory=dict)

    def to_dict(self) -> dict[str, object]:
        """Serialize the record for JSON storage."""
        return {
            "food_name": self.food_name,
            "calories": self.calories,
            "macros": self.macros.as_dict(),
            "vitamins": dict(self.vitamins),
            "minerals": dict(self.minerals),
        }

    @classmethod
    def from_dict(cls, data: dict[str, object]) -> "NutritionRecord":
        """Build a record from its serialized form."""
        macros = data.get("macros") or {}
        return cls(
            food_name=str(data.get("food_name") or "Unknown"),
            calories=float(data.get("calories") or 0.0),
            macros=Macros(
                **{name: float(macros.get(name) or 0.0) for name in MACRO_FIELDS}
            ),
            vitamins={
                key: float(value or 0.0)
                for key, value in (data.get("vitamins") or {}).items()
            },
            minerals={
                key: float(value or 0.0)
                for key, value in (data.get("minerals") or {}).items()
            },
        )


@dataclass
class CacheEntry:
    """Durable cache row for a normalized food description."""

    key: str
    food_description: str
    nutrition: NutritionRecord
    source: str
    last_updated: datetime
    hit_count: int = 0


@dataclass(frozen=True)
class DailyTotals:
    """Nutrition summed across every valid meal of a day."""

    calories: float
    macros: Macros
    vitamins: dict[str, float]
    minerals: dict[str, float]

    def to_dict(self) -> dict[str, object]:
        return {
            "calories": self.calories,
            "macros": self.macros.as_dict(),
            "vitamins": dict(self.vitamins),
            "minerals": dict(self.minerals),
        }
