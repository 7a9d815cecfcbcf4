"""Typed errors raised by the nutrition pipeline and meal plan services."""


class MealPlannerError(Exception):
    """Base class for application errors."""

    status_code: int = 500


class NutritionError(MealPlannerError):
    """Base class for nutrition data problems."""


class ValidationError(NutritionError):
    """Nutrition record has missing, non-numeric or empty values."""

    status_code = 422


class NormalizationError(NutritionError):
    """Raw payload matches none of the known provider schemas."""

    status_code = 422


class CacheWriteError(NutritionError):
    """Nutrition data could not be normalized or validated for caching."""

    status_code = 422


class ProviderError(MealPlannerError):
    """Network, auth or payload failure from an external nutrition provider."""

    status_code = 502

    def __init__(
        self, message: str, *, provider: str, status_code: int | None = None
    ) -> None:
        super().__init__(message)
        self.provider = provider
        self.upstream_status = status_code


class KeysExhaustedError(ProviderError):
    """Every credential slot in the pool reached its daily limit."""

    status_code = 429

    def __init__(self, message: str, *, provider: str) -> None:
        super().__init__(message, provider=provider)


class RateLimitError(ProviderError):
    """Sliding-window call budget has been used up."""

    status_code = 429

    def __init__(
        self, message: str, *, provider: str, retry_after: int = 0
    ) -> None:
        super().__init__(message, provider=provider)
        self.retry_after = retry_after


class MealPlanGenerationError(MealPlannerError):
    """Language model failed to produce a usable meal plan."""

    status_code = 502
