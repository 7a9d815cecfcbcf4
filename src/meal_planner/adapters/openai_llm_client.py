"""OpenAI Responses API client for JSON completions."""

from dataclasses import dataclass

import openai
from openai import AsyncOpenAI

from meal_planner.domain.errors import ProviderError
from meal_planner.services.llm import LLMClient


@dataclass
class OpenAILLMClient(LLMClient):
    """LLM client backed by the OpenAI Responses API."""

    client: AsyncOpenAI

    @classmethod
    def create(cls, api_key: str, base_url: str | None = None) -> "OpenAILLMClient":
        """Create an OpenAI client."""
        return cls(client=AsyncOpenAI(api_key=api_key, base_url=base_url))

    async def complete(  # noqa: PLR0913
        self,
        *,
        model: str,
        system_prompt: str,
        prompt: str,
        schema: dict[str, object],
        schema_name: str,
    ) -> str:
        """Return the raw text of a JSON-formatted completion."""
        try:
            response = await self.client.responses.create(
                model=model,
                input=[
                    {"role": "system", "content": system_prompt},
                    {"role": "user", "content": prompt},
                ],
                text={
                    "format": {
                        "type": "json_schema",
                        "name": schema_name,
                        "strict": False,
                        "schema": schema,
                    }
                },
                store=False,
            )
        except openai.OpenAIError as exc:
            raise ProviderError(f"OpenAI request failed: {exc}", provider="llm") from exc
        output_text = response.output_text
        if not output_text:
            raise ProviderError("OpenAI returned an empty response", provider="llm")
        return output_text

    async def close(self) -> None:
        """Close the underlying HTTP session."""
        await self.client.close()
