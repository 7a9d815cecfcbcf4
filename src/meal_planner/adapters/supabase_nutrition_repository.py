"""Supabase implementation of the durable nutrition cache store."""

from dataclasses import dataclass
from datetime import UTC, datetime

from supabase import Client

from meal_planner.domain.nutrition import CacheEntry, NutritionRecord
from meal_planner.services.nutrition_cache import NutritionStore

_TABLE = "nutrition_data"
_INCREMENT_HIT_COUNT = "increment_nutrition_hit_count"


@dataclass
class SupabaseNutritionRepository(NutritionStore):
    """Supabase-backed repository for cached nutrition rows."""

    client: Client

    def get_entry(self, key: str) -> CacheEntry | None:
        """Return the row for a normalized description, if present."""
        response = (
            self.client.table(_TABLE)
            .select("*")
            .eq("normalized_description", key)
            .limit(1)
            .execute()
        )
        if not response.data:
            return None
        return _parse_entry(response.data[0])

    def upsert_entry(self, entry: CacheEntry) -> None:
        """Insert or overwrite a row keyed by normalized description."""
        self.client.table(_TABLE).upsert(
            {
                "normalized_description": entry.key,
                "food_description": entry.food_description,
                "nutrition_data": entry.nutrition.to_dict(),
                "source": entry.source,
                "hit_count": entry.hit_count,
                "last_updated": entry.last_updated.isoformat(),
            },
            on_conflict="normalized_description",
        ).execute()

    def increment_hit_count(self, key: str, touched_at: datetime) -> None:
        """Increment the hit counter for a row in a single database statement."""
        self.client.rpc(
            _INCREMENT_HIT_COUNT,
            {"p_key": key, "p_touched_at": touched_at.isoformat()},
        ).execute()

    def delete_stale(self, older_than: datetime, min_hit_count: int) -> int:
        """Delete rows older than the cutoff with too few hits."""
        response = (
            self.client.table(_TABLE)
            .delete()
            .lt("last_updated", older_than.isoformat())
            .lt("hit_count", min_hit_count)
            .execute()
        )
        return len(response.data or [])

    def delete_entry(self, key: str) -> None:
        """Delete a single row."""
        self.client.table(_TABLE).delete().eq("normalized_description", key).execute()

    def delete_all(self) -> int:
        """Delete every row."""
        response = (
            self.client.table(_TABLE)
            .delete()
            .neq("normalized_description", "")
            .execute()
        )
        return len(response.data or [])


def _parse_entry(row: dict[str, object]) -> CacheEntry:
    """Parse a nutrition_data row into a cache entry."""
    updated_raw = row.get("last_updated")
    last_updated = (
        datetime.fromisoformat(updated_raw)
        if isinstance(updated_raw, str) and updated_raw
        else datetime.now(tz=UTC)
    )
    payload = row.get("nutrition_data")
    return CacheEntry(
        key=str(row.get("normalized_description", "")),
        food_description=str(row.get("food_description", "")),
        nutrition=NutritionRecord.from_dict(payload if isinstance(payload, dict) else {}),
        source=str(row.get("source") or ""),
        last_updated=last_updated,
        hit_count=int(row.get("hit_count") or 0),
    )
