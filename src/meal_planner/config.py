"""Application configuration."""

import os

from pydantic_settings import BaseSettings, SettingsConfigDict

_ENVIRONMENT = os.getenv("ENVIRONMENT", "local")
MAX_NUTRITIONIX_KEYS = 10


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    supabase_url: str
    supabase_service_key: str
    openai_api_key: str
    openai_model: str = "gpt-4o-mini"
    openai_base_url: str | None = None

    nutritionix_app_id_1: str | None = None
    nutritionix_app_key_1: str | None = None
    nutritionix_app_id_2: str | None = None
    nutritionix_app_key_2: str | None = None
    nutritionix_app_id_3: str | None = None
    nutritionix_app_key_3: str | None = None
    nutritionix_app_id_4: str | None = None
    nutritionix_app_key_4: str | None = None
    nutritionix_app_id_5: str | None = None
    nutritionix_app_key_5: str | None = None
    nutritionix_app_id_6: str | None = None
    nutritionix_app_key_6: str | None = None
    nutritionix_app_id_7: str | None = None
    nutritionix_app_key_7: str | None = None
    nutritionix_app_id_8: str | None = None
    nutritionix_app_key_8: str | None = None
    nutritionix_app_id_9: str | None = None
    nutritionix_app_key_9: str | None = None
    nutritionix_app_id_10: str | None = None
    nutritionix_app_key_10: str | None = None
    nutritionix_base_url: str = "https://trackapi.nutritionix.com/v2"
    nutritionix_daily_limit: int = 200
    key_reset_interval_seconds: int = 86400

    fatsecret_client_id: str | None = None
    fatsecret_client_secret: str | None = None
    fatsecret_base_url: str = "https://platform.fatsecret.com/rest/server.api"
    fatsecret_token_url: str = "https://oauth.fatsecret.com/connect/token"
    fatsecret_max_calls: int = 48000
    fatsecret_time_window_seconds: int = 86400

    redis_url: str | None = None
    cache_prefix: str = "meal-generator:"
    cache_ttl_seconds: int = 86400
    cache_max_size: int = 1000
    cache_retention_days: int = 30
    cache_min_hit_count: int = 5
    cache_sweep_interval_seconds: int = 3600

    provider_timeout_seconds: float = 15
    resolver_max_concurrency: int = 4
    log_level: str = "INFO"
    environment: str = _ENVIRONMENT

    model_config = SettingsConfigDict(
        env_file=(f".env.{_ENVIRONMENT}", ".env"),
        extra="ignore",
    )


def parse_credential_pairs(settings: Settings) -> list[tuple[str, str]]:
    """Collect configured Nutritionix (app id, app key) pairs, skipping partial ones."""
    pairs: list[tuple[str, str]] = []
    for index in range(1, MAX_NUTRITIONIX_KEYS + 1):
        app_id = (getattr(settings, f"nutritionix_app_id_{index}") or "").strip()
        app_key = (getattr(settings, f"nutritionix_app_key_{index}") or "").strip()
        if app_id and app_key:
            pairs.append((app_id, app_key))
    return pairs
