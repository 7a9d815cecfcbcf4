"""Two-level nutrition cache: volatile layer in front of a durable store."""

import asyncio
import logging
import re
from collections.abc import Coroutine
from dataclasses import dataclass, field
from datetime import UTC, datetime, timedelta
from typing import Protocol

from meal_planner.domain.errors import (
    CacheWriteError,
    NormalizationError,
    ValidationError,
)
from meal_planner.domain.nutrition import (
    CacheEntry,
    NutritionRecord,
    NutritionSource,
    ProviderPayload,
)
from meal_planner.services import normalizer
from meal_planner.services.cache import VolatileCache

_logger = logging.getLogger(__name__)

_WHITESPACE = re.compile(r"\s+")


class NutritionStore(Protocol):
    """Durable persistence for nutrition cache rows."""

    def get_entry(self, key: str) -> CacheEntry | None:
        """Return the row for a normalized description, if present."""

    def upsert_entry(self, entry: CacheEntry) -> None:
        """Insert the row, or overwrite payload, timestamp and hit count."""

    def increment_hit_count(self, key: str, touched_at: datetime) -> None:
        """Add one to a row's hit count and refresh its timestamp."""

    def delete_stale(self, older_than: datetime, min_hit_count: int) -> int:
        """Delete rows older than the cutoff with fewer hits than the floor."""

    def delete_entry(self, key: str) -> None:
        """Delete a single row."""

    def delete_all(self) -> int:
        """Delete every nutrition row."""


@dataclass(frozen=True)
class BatchLookup:
    """Cache hits and misses for a batch of descriptions."""

    cached: dict[str, NutritionRecord]
    missing: list[str]


@dataclass
class NutritionCache:
    """Get/set nutrition records by food description across both layers."""

    volatile: VolatileCache
    store: NutritionStore
    prefix: str = "meal-generator:"
    ttl_seconds: int = 86400
    retention_days: int = 30
    min_hit_count: int = 5
    sweep_interval_seconds: int = 3600
    _pending: set[asyncio.Task] = field(default_factory=set, repr=False)

    @staticmethod
    def get_key(food_description: str) -> str:
        """Normalize a description: lowercase, trimmed, single spaces."""
        return _WHITESPACE.sub(" ", food_description.strip().lower())

    async def get(self, food_description: str) -> NutritionRecord | None:
        """Return cached nutrition, consulting the durable store on a miss."""
        key = self.get_key(food_description)
        cached = await self.volatile.get(self._volatile_key(key))
        if cached is not None:
            _logger.debug("Nutrition cache hit (volatile): %s", key)
            self._spawn(self._touch(key), f"hit count for {key}")
            return NutritionRecord.from_dict(cached)

        entry = await asyncio.to_thread(self.store.get_entry, key)
        if entry is None:
            _logger.info("Nutrition cache miss: %s", key)
            return None

        _logger.info("Nutrition cache hit (durable): %s", key)
        self._spawn(self._touch(key), f"hit count for {key}")
        self._spawn(
            self.volatile.set(
                self._volatile_key(key), entry.nutrition.to_dict(), self.ttl_seconds
            ),
            f"backfill for {key}",
        )
        return entry.nutrition

    async def set(
        self,
        food_description: str,
        raw: ProviderPayload | NutritionRecord | dict[str, object],
        source: NutritionSource | None = None,
    ) -> NutritionRecord:
        """Normalize, validate and store nutrition in both layers."""
        key = self.get_key(food_description)
        try:
            if isinstance(raw, NutritionRecord):
                normalizer.validate(raw)
                record = normalizer.round_record(raw)
            else:
                record = normalizer.normalize(raw, source)
        except (NormalizationError, ValidationError) as exc:
            _logger.warning("Refusing to cache nutrition for %s: %s", key, exc)
            raise CacheWriteError(f"Cannot cache nutrition for {key!r}: {exc}") from exc

        if source is None and isinstance(raw, ProviderPayload):
            source = raw.source
        await self.volatile.set(
            self._volatile_key(key), record.to_dict(), self.ttl_seconds
        )
        entry = CacheEntry(
            key=key,
            food_description=food_description,
            nutrition=record,
            source=(source or NutritionSource.COMBINED).value,
            last_updated=datetime.now(tz=UTC),
            hit_count=0,
        )
        await asyncio.to_thread(self.store.upsert_entry, entry)
        _logger.info("Stored nutrition for %s (source=%s)", key, entry.source)
        return record

    async def get_batch(self, descriptions: list[str]) -> BatchLookup:
        """Look up many descriptions concurrently and split hits from misses."""
        if not descriptions:
            return BatchLookup(cached={}, missing=[])
        records = await asyncio.gather(*(self.get(item) for item in descriptions))
        cached: dict[str, NutritionRecord] = {}
        missing: list[str] = []
        for description, record in zip(descriptions, records, strict=True):
            if record is None:
                missing.append(description)
            else:
                cached[description] = record
        _logger.info(
            "Batch nutrition lookup: found=%s missing=%s", len(cached), len(missing)
        )
        return BatchLookup(cached=cached, missing=missing)

    async def clear(self, food_description: str | None = None) -> None:
        """Clear one description, or every nutrition entry when none is given."""
        if food_description is not None:
            key = self.get_key(food_description)
            await self.volatile.delete(self._volatile_key(key))
            await asyncio.to_thread(self.store.delete_entry, key)
            _logger.info("Cleared nutrition cache for %s", key)
            return
        removed_volatile = await self.volatile.delete_prefix(self._volatile_key(""))
        removed_durable = await asyncio.to_thread(self.store.delete_all)
        _logger.info(
            "Cleared nutrition cache: volatile=%s durable=%s",
            removed_volatile,
            removed_durable,
        )

    async def sweep(self, now: datetime | None = None) -> int:
        """Delete durable rows that are both old and rarely used."""
        cutoff = (now or datetime.now(tz=UTC)) - timedelta(days=self.retention_days)
        removed = await asyncio.to_thread(
            self.store.delete_stale, cutoff, self.min_hit_count
        )
        _logger.info(
            "Nutrition cache sweep removed %s rows older than %s", removed, cutoff
        )
        return removed

    async def run_sweeper(self) -> None:
        """Sweep the durable store on a fixed interval until cancelled."""
        while True:
            await asyncio.sleep(self.sweep_interval_seconds)
            try:
                await self.sweep()
            except Exception:
                _logger.exception("Nutrition cache sweep failed")

    async def drain(self) -> None:
        """Wait for pending background writes to finish."""
        while self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)

    def _volatile_key(self, key: str) -> str:
        return f"{self.prefix}nutrition:{key}"

    async def _touch(self, key: str) -> None:
        await asyncio.to_thread(
            self.store.increment_hit_count, key, datetime.now(tz=UTC)
        )

    def _spawn(self, coro: Coroutine[object, object, object], label: str) -> None:
        """Run a background write, logging instead of raising on failure."""
        task = asyncio.create_task(coro)
        self._pending.add(task)

        def _done(finished: asyncio.Task) -> None:
            self._pending.discard(finished)
            if finished.cancelled():
                return
            exc = finished.exception()
            if exc is not None:
                _logger.warning("Background %s failed: %s", label, exc)

        task.add_done_callback(_done)
