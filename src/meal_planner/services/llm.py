"""JSON completions from a language model with tolerant parsing and retries."""

import json
import logging
import re
from dataclasses import dataclass
from typing import Protocol

import json_repair
from tenacity import (
    AsyncRetrying,
    before_sleep_log,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from meal_planner.domain.errors import ProviderError

_logger = logging.getLogger(__name__)

_CODE_FENCE = re.compile(r"^```(?:json)?\s*|\s*```$", re.IGNORECASE)


class LLMClient(Protocol):
    """Interface for a language model returning JSON text."""

    async def complete(  # noqa: PLR0913
        self,
        *,
        model: str,
        system_prompt: str,
        prompt: str,
        schema: dict[str, object],
        schema_name: str,
    ) -> str:
        """Return the raw completion text."""


def parse_json_response(text: str) -> dict[str, object]:
    """Parse a JSON object out of model output, repairing it when malformed."""
    cleaned = _CODE_FENCE.sub("", text.strip()).strip()
    if not cleaned:
        raise ProviderError("LLM returned an empty response", provider="llm")
    try:
        parsed = json.loads(cleaned)
    except json.JSONDecodeError:
        _logger.info("LLM response is not valid JSON, attempting repair")
        parsed = json_repair.repair_json(cleaned, return_objects=True)
    if not isinstance(parsed, dict) or not parsed:
        raise ProviderError("LLM response did not contain a JSON object", provider="llm")
    return parsed


@dataclass
class LLMJsonRequester:
    """Request a JSON object from the model, retrying failed or unparsable replies."""

    client: LLMClient
    model: str
    attempts: int = 3
    backoff_seconds: float = 1.0
    max_backoff_seconds: float = 8.0

    async def request(
        self,
        *,
        system_prompt: str,
        prompt: str,
        schema: dict[str, object],
        schema_name: str,
    ) -> dict[str, object]:
        """Return the parsed JSON object from the first successful attempt."""
        async for attempt in AsyncRetrying(
            stop=stop_after_attempt(self.attempts),
            wait=wait_exponential(
                multiplier=self.backoff_seconds, max=self.max_backoff_seconds
            ),
            retry=retry_if_exception_type(ProviderError),
            before_sleep=before_sleep_log(_logger, logging.WARNING),
            reraise=True,
        ):
            with attempt:
                text = await self.client.complete(
                    model=self.model,
                    system_prompt=system_prompt,
                    prompt=prompt,
                    schema=schema,
                    schema_name=schema_name,
                )
                return parse_json_response(text)
        raise ProviderError("LLM request was not attempted", provider="llm")
