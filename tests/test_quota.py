"""Tests for the credential rotator and sliding-window rate limiter."""

import asyncio
from datetime import UTC, datetime, timedelta

import pytest

from meal_planner.domain.errors import KeysExhaustedError, RateLimitError
from meal_planner.services.key_rotator import KeyRotator
from meal_planner.services.rate_limiter import RateLimiter


class FakeClock:
    def __init__(self, now: float = 1000.0) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now


def test_rotator_round_robins_between_keys() -> None:
    rotator = KeyRotator.from_pairs([("a", "ka"), ("b", "kb")], daily_limit=5)

    used = [rotator.get_next_key().id for _ in range(4)]

    assert used == ["a", "b", "a", "b"]
    assert rotator.total_requests() == 4


def test_rotator_exhausts_after_limit_times_keys() -> None:
    rotator = KeyRotator.from_pairs(
        [("a", "ka"), ("b", "kb"), ("c", "kc")], daily_limit=200
    )

    for _ in range(600):
        rotator.get_next_key()

    assert rotator.available_count() == 0
    with pytest.raises(KeysExhaustedError):
        rotator.get_next_key()


def test_rotator_never_oversells_under_concurrent_callers() -> None:
    rotator = KeyRotator.from_pairs([("a", "ka"), ("b", "kb")], daily_limit=25)

    def take() -> str | None:
        try:
            return rotator.get_next_key().id
        except KeysExhaustedError:
            return None

    async def scenario() -> list[str | None]:
        return await asyncio.gather(*(asyncio.to_thread(take) for _ in range(80)))

    used = asyncio.run(scenario())

    granted = [slot_id for slot_id in used if slot_id is not None]
    assert len(granted) == 50
    assert granted.count("a") == 25
    assert granted.count("b") == 25
    assert [slot.request_count for slot in rotator.slots] == [25, 25]


def test_rotator_reset_restores_capacity() -> None:
    rotator = KeyRotator.from_pairs([("a", "ka")], daily_limit=1)
    rotator.get_next_key()
    with pytest.raises(KeysExhaustedError):
        rotator.get_next_key()

    later = datetime.now(tz=UTC) + timedelta(days=1, seconds=1)
    reset = rotator.reset_counts(now=later)

    assert reset == 1
    assert rotator.get_next_key().id == "a"


def test_rotator_reset_skips_recent_slots() -> None:
    rotator = KeyRotator.from_pairs([("a", "ka")], daily_limit=1)
    rotator.get_next_key()

    assert rotator.reset_counts() == 0
    assert rotator.available_count() == 0


def test_rotator_mark_exhausted_skips_slot() -> None:
    rotator = KeyRotator.from_pairs([("a", "ka"), ("b", "kb")], daily_limit=10)

    rotator.mark_exhausted("a")

    assert {rotator.get_next_key().id for _ in range(3)} == {"b"}


def test_rotator_with_no_keys_raises() -> None:
    with pytest.raises(KeysExhaustedError):
        KeyRotator.from_pairs([]).get_next_key()


def test_rate_limiter_allows_five_calls_per_second() -> None:
    clock = FakeClock()
    limiter = RateLimiter(max_calls=5, time_window_seconds=1, clock=clock)

    for _ in range(5):
        assert limiter.check_limit() is True

    assert limiter.get_remaining_calls() == 0
    with pytest.raises(RateLimitError) as excinfo:
        limiter.check_limit()
    assert excinfo.value.retry_after == 1
    assert "wait 1 seconds" in str(excinfo.value)

    clock.now += 1.0
    assert limiter.get_remaining_calls() == 5
    assert limiter.check_limit() is True


def test_rate_limiter_reports_wait_from_oldest_call() -> None:
    clock = FakeClock()
    limiter = RateLimiter(max_calls=2, time_window_seconds=60, clock=clock)
    limiter.check_limit()
    clock.now += 20
    limiter.check_limit()
    clock.now += 10.5

    with pytest.raises(RateLimitError) as excinfo:
        limiter.check_limit()

    assert excinfo.value.retry_after == 30
