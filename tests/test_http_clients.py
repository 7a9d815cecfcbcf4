"""Tests for HTTP-based adapters."""

import asyncio
import json

import httpx
import openai
import pytest

from meal_planner.adapters.fatsecret_client import HttpxFatSecretClient
from meal_planner.adapters.nutritionix_client import HttpxNutritionixClient
from meal_planner.adapters.openai_llm_client import OpenAILLMClient
from meal_planner.domain.errors import KeysExhaustedError, ProviderError, RateLimitError
from meal_planner.services.key_rotator import KeyRotator
from meal_planner.services.rate_limiter import RateLimiter


class _FakeResponses:
    def __init__(self, output_text: str = "", error: Exception | None = None) -> None:
        self.output_text = output_text
        self.error = error
        self.last_payload: dict[str, object] | None = None

    async def create(self, **kwargs):  # type: ignore[no-untyped-def]
        self.last_payload = kwargs
        if self.error is not None:
            raise self.error
        return type("Resp", (), {"output_text": self.output_text})()


class _FakeOpenAI:
    def __init__(self, responses: _FakeResponses) -> None:
        self.responses = responses


def test_openai_llm_client_requests_json_schema_output() -> None:
    responses = _FakeResponses(output_text=json.dumps({"nutrition": {}}))
    client = OpenAILLMClient(client=_FakeOpenAI(responses))  # type: ignore[arg-type]

    text = asyncio.run(
        client.complete(
            model="gpt-4o-mini",
            system_prompt="system",
            prompt="Meal: Oatmeal",
            schema={"type": "object"},
            schema_name="meal_nutrition",
        )
    )

    assert json.loads(text) == {"nutrition": {}}
    assert responses.last_payload is not None
    text_format = responses.last_payload["text"]["format"]  # type: ignore[index]
    assert text_format["type"] == "json_schema"
    assert text_format["name"] == "meal_nutrition"


def test_openai_llm_client_wraps_sdk_errors() -> None:
    responses = _FakeResponses(error=openai.OpenAIError("boom"))
    client = OpenAILLMClient(client=_FakeOpenAI(responses))  # type: ignore[arg-type]

    with pytest.raises(ProviderError) as excinfo:
        asyncio.run(
            client.complete(
                model="gpt-4o-mini",
                system_prompt="system",
                prompt="prompt",
                schema={},
                schema_name="x",
            )
        )
    assert excinfo.value.provider == "llm"


def test_nutritionix_client_sends_rotated_credentials() -> None:
    seen: list[tuple[str, str, str]] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(
            (
                request.url.path,
                request.headers["x-app-id"],
                request.headers["x-app-key"],
            )
        )
        return httpx.Response(200, json={"foods": [{"food_name": "apple"}]})

    rotator = KeyRotator.from_pairs([("id-1", "key-1"), ("id-2", "key-2")])
    client = HttpxNutritionixClient(
        base_url="https://trackapi.nutritionix.com/v2",
        rotator=rotator,
        http_client=httpx.AsyncClient(transport=httpx.MockTransport(handler)),
    )

    asyncio.run(client.natural_nutrients("apple"))
    asyncio.run(client.natural_nutrients("pear"))

    assert seen == [
        ("/v2/natural/nutrients", "id-1", "key-1"),
        ("/v2/natural/nutrients", "id-2", "key-2"),
    ]


def test_nutritionix_client_marks_key_exhausted_on_auth_failure() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(401, json={"message": "usage limits exceeded"})

    rotator = KeyRotator.from_pairs([("id-1", "key-1")], daily_limit=200)
    client = HttpxNutritionixClient(
        base_url="https://trackapi.nutritionix.com/v2",
        rotator=rotator,
        http_client=httpx.AsyncClient(transport=httpx.MockTransport(handler)),
    )

    with pytest.raises(ProviderError) as excinfo:
        asyncio.run(client.natural_nutrients("apple"))

    assert excinfo.value.upstream_status == 401
    assert rotator.available_count() == 0
    with pytest.raises(KeysExhaustedError):
        asyncio.run(client.natural_nutrients("apple"))


def test_nutritionix_client_without_keys_raises() -> None:
    client = HttpxNutritionixClient(
        base_url="https://trackapi.nutritionix.com/v2",
        rotator=KeyRotator.from_pairs([]),
        http_client=httpx.AsyncClient(
            transport=httpx.MockTransport(lambda request: httpx.Response(200))
        ),
    )

    with pytest.raises(KeysExhaustedError):
        asyncio.run(client.natural_nutrients("apple"))


def _fatsecret_handler(calls: list[str]):  # type: ignore[no-untyped-def]
    def handler(request: httpx.Request) -> httpx.Response:
        if request.url.host == "oauth.fatsecret.com":
            calls.append("token")
            assert request.headers["authorization"].startswith("Basic ")
            return httpx.Response(
                200, json={"access_token": "token-1", "expires_in": 86400}
            )
        form = dict(httpx.QueryParams(request.content.decode()))
        calls.append(form["method"])
        assert request.headers["authorization"] == "Bearer token-1"
        assert form["format"] == "json"
        if form["method"] == "foods.search.v3":
            return httpx.Response(
                200,
                json={
                    "foods_search": {
                        "results": {"food": [{"food_id": "42", "food_name": "Oats"}]}
                    }
                },
            )
        return httpx.Response(
            200,
            json={"food": {"food_id": "42", "servings": {"serving": {"calories": "150"}}}},
        )

    return handler


def _fatsecret_client(calls: list[str], limiter: RateLimiter) -> HttpxFatSecretClient:
    return HttpxFatSecretClient(
        client_id="client",
        client_secret="secret",
        base_url="https://platform.fatsecret.com/rest/server.api",
        token_url="https://oauth.fatsecret.com/connect/token",
        http_client=httpx.AsyncClient(
            transport=httpx.MockTransport(_fatsecret_handler(calls))
        ),
        rate_limiter=limiter,
    )


def test_fatsecret_client_caches_token_between_calls() -> None:
    calls: list[str] = []
    client = _fatsecret_client(calls, RateLimiter(max_calls=10, time_window_seconds=60))

    async def scenario() -> dict[str, object]:
        await client.search_foods("oats")
        food = await client.get_food("42")
        await client.close()
        return food

    food = asyncio.run(scenario())

    assert calls == ["token", "foods.search.v3", "food.get.v3"]
    assert food["food"]["food_id"] == "42"  # type: ignore[index]


def test_fatsecret_client_enforces_rate_limit() -> None:
    calls: list[str] = []
    client = _fatsecret_client(calls, RateLimiter(max_calls=1, time_window_seconds=60))

    async def scenario() -> None:
        await client.search_foods("oats")
        await client.search_foods("rice")

    with pytest.raises(RateLimitError):
        asyncio.run(scenario())
    assert calls.count("foods.search.v3") == 1


def test_fatsecret_client_without_credentials_fails() -> None:
    client = HttpxFatSecretClient(
        client_id=None,
        client_secret=None,
        base_url="https://platform.fatsecret.com/rest/server.api",
        token_url="https://oauth.fatsecret.com/connect/token",
        http_client=httpx.AsyncClient(
            transport=httpx.MockTransport(lambda request: httpx.Response(500))
        ),
        rate_limiter=RateLimiter(max_calls=10, time_window_seconds=60),
    )

    assert asyncio.run(client.verify_connection()) is False
