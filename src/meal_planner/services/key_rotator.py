"""Round-robin credential rotation for quota-limited APIs."""

import asyncio
import logging
import threading
from dataclasses import dataclass, field
from datetime import UTC, datetime, timedelta

from meal_planner.domain.errors import KeysExhaustedError

_logger = logging.getLogger(__name__)


@dataclass
class CredentialSlot:
    """One credential pair with its own daily request budget."""

    id: str
    secret: str
    request_count: int = 0
    last_reset: datetime = field(default_factory=lambda: datetime.now(tz=UTC))


@dataclass
class KeyRotator:
    """Hand out credentials round-robin, skipping slots at their daily limit.

    ``get_next_key`` reserves a request on the returned slot, so a slot is
    charged even when the call it was used for later fails. Slot selection
    and the counter increment happen under one lock.
    """

    slots: list[CredentialSlot]
    daily_limit: int = 200
    reset_interval_seconds: int = 86400
    provider: str = "nutritionix"
    _next_index: int = 0
    _lock: threading.Lock = field(default_factory=threading.Lock, repr=False)

    @classmethod
    def from_pairs(
        cls, pairs: list[tuple[str, str]], daily_limit: int = 200, **kwargs: object
    ) -> "KeyRotator":
        """Build a rotator from (id, secret) pairs."""
        slots = [CredentialSlot(id=key_id, secret=secret) for key_id, secret in pairs]
        _logger.info("Key rotator initialized with %s keys", len(slots))
        return cls(slots=slots, daily_limit=daily_limit, **kwargs)

    def get_next_key(self) -> CredentialSlot:
        """Return the next slot with budget left and charge one request to it."""
        with self._lock:
            for offset in range(len(self.slots)):
                index = (self._next_index + offset) % len(self.slots)
                slot = self.slots[index]
                if slot.request_count < self.daily_limit:
                    slot.request_count += 1
                    self._next_index = (index + 1) % len(self.slots)
                    _logger.debug(
                        "Using %s key %s (count=%s remaining=%s)",
                        self.provider,
                        _mask(slot.id),
                        slot.request_count,
                        self.daily_limit - slot.request_count,
                    )
                    return slot
        _logger.error("All %s API keys have reached their daily limit", self.provider)
        raise KeysExhaustedError(
            f"All {self.provider} API keys have reached their daily limit",
            provider=self.provider,
        )

    def mark_exhausted(self, slot_id: str) -> None:
        """Force a slot to its limit after a quota-related auth failure."""
        with self._lock:
            for slot in self.slots:
                if slot.id == slot_id:
                    slot.request_count = self.daily_limit
                    _logger.warning(
                        "Marked %s key as exhausted: %s", self.provider, _mask(slot_id)
                    )
                    return

    def reset_counts(self, now: datetime | None = None) -> int:
        """Zero counters for slots whose last reset is one interval old."""
        current = now or datetime.now(tz=UTC)
        interval = timedelta(seconds=self.reset_interval_seconds)
        reset = 0
        with self._lock:
            for slot in self.slots:
                if current - slot.last_reset >= interval:
                    slot.request_count = 0
                    slot.last_reset = current
                    reset += 1
                    _logger.info(
                        "Reset request count for %s key %s",
                        self.provider,
                        _mask(slot.id),
                    )
        return reset

    async def run_reset_loop(self) -> None:
        """Reset counters every interval until cancelled."""
        while True:
            await asyncio.sleep(self.reset_interval_seconds)
            self.reset_counts()

    def available_count(self) -> int:
        """Number of slots with budget left."""
        return sum(1 for slot in self.slots if slot.request_count < self.daily_limit)

    def total_requests(self) -> int:
        """Requests charged across all slots since their last reset."""
        return sum(slot.request_count for slot in self.slots)


def _mask(value: str) -> str:
    return f"{value[:4]}..."
