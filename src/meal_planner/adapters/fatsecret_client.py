"""FatSecret Platform API client."""

import asyncio
import logging
import time
from dataclasses import dataclass, field
from typing import Protocol

import httpx

from meal_planner.domain.errors import ProviderError
from meal_planner.services.rate_limiter import RateLimiter

_logger = logging.getLogger(__name__)

_PROVIDER = "fatsecret"
# Refresh tokens slightly before FatSecret expires them.
_TOKEN_EXPIRY_MARGIN_SECONDS = 60


class FatSecretClient(Protocol):
    """Interface for FatSecret API interactions."""

    async def search_foods(self, query: str, max_results: int = 1) -> dict[str, object]:
        """Search foods and return the raw API data."""

    async def get_food(self, food_id: str) -> dict[str, object]:
        """Fetch a food with servings by id."""


@dataclass
class HttpxFatSecretClient(FatSecretClient):
    """HTTPX-backed FatSecret client using OAuth2 client credentials."""

    client_id: str | None
    client_secret: str | None
    base_url: str
    token_url: str
    http_client: httpx.AsyncClient
    rate_limiter: RateLimiter
    timeout_seconds: float = 15
    _access_token: str | None = None
    _token_expiry: float = 0.0
    _token_lock: asyncio.Lock = field(default_factory=asyncio.Lock, repr=False)

    @classmethod
    def create(  # noqa: PLR0913
        cls,
        *,
        client_id: str | None,
        client_secret: str | None,
        base_url: str,
        token_url: str,
        rate_limiter: RateLimiter,
        timeout_seconds: float = 15,
    ) -> "HttpxFatSecretClient":
        """Create a FatSecret client with a managed httpx session."""
        if not client_id or not client_secret:
            _logger.warning("FatSecret credentials not configured")
        return cls(
            client_id=client_id,
            client_secret=client_secret,
            base_url=base_url,
            token_url=token_url,
            http_client=httpx.AsyncClient(),
            rate_limiter=rate_limiter,
            timeout_seconds=timeout_seconds,
        )

    async def get_access_token(self) -> str:
        """Return a cached bearer token, requesting a new one when expired."""
        async with self._token_lock:
            if self._access_token and time.monotonic() < self._token_expiry:
                return self._access_token
            if not self.client_id or not self.client_secret:
                raise ProviderError(
                    "FatSecret credentials not configured", provider=_PROVIDER
                )
            try:
                response = await self.http_client.post(
                    self.token_url,
                    data={
                        "grant_type": "client_credentials",
                        "scope": "premier",
                    },
                    auth=(self.client_id, self.client_secret),
                    timeout=self.timeout_seconds,
                )
                response.raise_for_status()
            except httpx.HTTPStatusError as exc:
                status_code = exc.response.status_code
                message = (
                    "Invalid FatSecret credentials"
                    if status_code == 401
                    else f"FatSecret token request failed with status {status_code}"
                )
                raise ProviderError(
                    message, provider=_PROVIDER, status_code=status_code
                ) from exc
            except httpx.HTTPError as exc:
                raise ProviderError(
                    f"FatSecret token request failed: {exc!r}", provider=_PROVIDER
                ) from exc

            payload = response.json()
            token = payload.get("access_token")
            if not token:
                raise ProviderError(
                    "FatSecret token response missing access_token", provider=_PROVIDER
                )
            expires_in = float(payload.get("expires_in") or 0)
            self._access_token = token
            self._token_expiry = (
                time.monotonic() + expires_in - _TOKEN_EXPIRY_MARGIN_SECONDS
            )
            return token

    async def search_foods(self, query: str, max_results: int = 1) -> dict[str, object]:
        """Search foods by expression."""
        data = await self._call(
            {
                "method": "foods.search.v3",
                "search_expression": query,
                "max_results": str(max_results),
            }
        )
        results = (data.get("foods_search") or {}).get("results") or {}
        if not isinstance(results, dict) or "food" not in results:
            raise ProviderError(
                "Invalid FatSecret search response format", provider=_PROVIDER
            )
        return data

    async def get_food(self, food_id: str) -> dict[str, object]:
        """Fetch a food with its servings."""
        data = await self._call({"method": "food.get.v3", "food_id": str(food_id)})
        if not isinstance(data.get("food"), dict):
            raise ProviderError(
                "Invalid FatSecret food response format", provider=_PROVIDER
            )
        return data

    async def verify_connection(self) -> bool:
        """Return True when a token can be obtained and a search succeeds."""
        try:
            await self.search_foods("apple")
        except ProviderError as exc:
            _logger.warning("FatSecret connection check failed: %s", exc)
            return False
        return True

    async def close(self) -> None:
        """Close the underlying HTTP session."""
        await self.http_client.aclose()

    async def _call(self, form: dict[str, str]) -> dict[str, object]:
        self.rate_limiter.check_limit()
        token = await self.get_access_token()
        try:
            response = await self.http_client.post(
                self.base_url,
                data={**form, "format": "json"},
                headers={"Authorization": f"Bearer {token}"},
                timeout=self.timeout_seconds,
            )
            response.raise_for_status()
        except httpx.HTTPStatusError as exc:
            status_code = exc.response.status_code
            if status_code == 401:
                self._access_token = None
            raise ProviderError(
                f"FatSecret request failed with status {status_code}",
                provider=_PROVIDER,
                status_code=status_code,
            ) from exc
        except httpx.HTTPError as exc:
            raise ProviderError(
                f"FatSecret request failed: {exc!r}", provider=_PROVIDER
            ) from exc
        data = response.json()
        if isinstance(data, dict) and "error" in data:
            raise ProviderError(
                f"FatSecret API error: {data['error']}", provider=_PROVIDER
            )
        return data
