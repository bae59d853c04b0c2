"""OpenAI Responses API client for nutrition estimates and insights."""

import json
from dataclasses import dataclass

from openai import AsyncOpenAI, OpenAIError

from nutrisnap.services.estimation import EstimationError, NutritionAIClient


@dataclass
class OpenAINutritionClient(NutritionAIClient):
    """AI client backed by OpenAI Responses API."""

    client: AsyncOpenAI

    @classmethod
    def create(cls, api_key: str) -> "OpenAINutritionClient":
        """Create an OpenAI nutrition client."""
        return cls(client=AsyncOpenAI(api_key=api_key))

    async def generate_structured(  # noqa: PLR0913
        self,
        *,
        model: str,
        reasoning_effort: str | None,
        store: bool,
        prompt: str,
        schema: dict[str, object],
        image_data_url: str | None = None,
    ) -> dict[str, object]:
        """Call OpenAI Responses API with structured outputs."""
        content: list[dict[str, object]] = [{"type": "input_text", "text": prompt}]
        if image_data_url:
            content.append({"type": "input_image", "image_url": image_data_url})
        request_payload: dict[str, object] = {
            "model": model,
            "input": [{"role": "user", "content": content}],
            "text": {
                "format": {
                    "type": "json_schema",
                    "name": "nutrition_estimate",
                    "strict": True,
                    "schema": schema,
                }
            },
            "store": store,
        }
        if reasoning_effort:
            request_payload["reasoning"] = {"effort": reasoning_effort}

        output_text = await self._create(request_payload)
        try:
            return json.loads(output_text)
        except json.JSONDecodeError as exc:
            raise EstimationError("OpenAI returned invalid JSON") from exc

    async def generate_text(self, *, model: str, store: bool, prompt: str) -> str:
        """Call OpenAI Responses API for a plain-text answer."""
        return await self._create({"model": model, "input": prompt, "store": store})

    async def _create(self, request_payload: dict[str, object]) -> str:
        try:
            response = await self.client.responses.create(**request_payload)
        except OpenAIError as exc:
            raise EstimationError("OpenAI request failed") from exc
        output_text = response.output_text
        if not output_text:
            raise EstimationError("OpenAI returned an empty response")
        return output_text

    async def close(self) -> None:
        """Close the underlying HTTP session."""
        await self.client.close()
