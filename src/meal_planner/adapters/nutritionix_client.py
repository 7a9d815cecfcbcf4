"""Nutritionix API client with quota-aware key rotation."""

import logging
from dataclasses import dataclass
from typing import Protocol

import httpx

from meal_planner.domain.errors import KeysExhaustedError, ProviderError
from meal_planner.services.key_rotator import KeyRotator

_logger = logging.getLogger(__name__)

_PROVIDER = "nutritionix"
_QUOTA_STATUSES = {401, 403}


class NutritionixClient(Protocol):
    """Interface for Nutritionix API interactions."""

    async def natural_nutrients(self, query: str) -> dict[str, object]:
        """Return raw nutrient data for a natural-language food query."""

    async def search_instant(self, query: str) -> dict[str, object]:
        """Return raw instant-search results."""


@dataclass
class HttpxNutritionixClient(NutritionixClient):
    """HTTPX-backed Nutritionix client."""

    base_url: str
    rotator: KeyRotator
    http_client: httpx.AsyncClient
    timeout_seconds: float = 15

    @classmethod
    def create(
        cls, base_url: str, rotator: KeyRotator, timeout_seconds: float = 15
    ) -> "HttpxNutritionixClient":
        """Create a Nutritionix client with a managed httpx session."""
        return cls(
            base_url=base_url,
            rotator=rotator,
            http_client=httpx.AsyncClient(),
            timeout_seconds=timeout_seconds,
        )

    async def natural_nutrients(self, query: str) -> dict[str, object]:
        """Look up nutrients for a food description."""
        return await self._request(
            "POST", "/natural/nutrients", json={"query": query}
        )

    async def search_instant(self, query: str) -> dict[str, object]:
        """Search foods by name."""
        return await self._request("GET", "/search/instant", params={"query": query})

    async def verify_connection(self) -> bool:
        """Return True when a test search succeeds."""
        try:
            await self.search_instant("apple")
        except ProviderError as exc:
            _logger.warning("Nutritionix connection check failed: %s", exc)
            return False
        return True

    async def close(self) -> None:
        """Close the underlying HTTP session."""
        await self.http_client.aclose()

    async def _request(self, method: str, path: str, **kwargs: object) -> dict[str, object]:
        if not self.rotator.slots:
            raise KeysExhaustedError(
                "No Nutritionix API credentials configured", provider=_PROVIDER
            )
        slot = self.rotator.get_next_key()
        try:
            response = await self.http_client.request(
                method,
                f"{self.base_url}{path}",
                headers={"x-app-id": slot.id, "x-app-key": slot.secret},
                timeout=self.timeout_seconds,
                **kwargs,
            )
            response.raise_for_status()
        except httpx.HTTPStatusError as exc:
            status_code = exc.response.status_code
            if status_code in _QUOTA_STATUSES:
                self.rotator.mark_exhausted(slot.id)
            raise ProviderError(
                f"Nutritionix request failed with status {status_code}",
                provider=_PROVIDER,
                status_code=status_code,
            ) from exc
        except httpx.HTTPError as exc:
            raise ProviderError(
                f"Nutritionix request failed: {exc!r}", provider=_PROVIDER
            ) from exc
        return response.json()
