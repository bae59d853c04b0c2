"""Nutrition estimation from meal photos or text queries."""

import base64
from dataclasses import dataclass
from typing import Protocol

from pydantic import BaseModel, Field, ValidationError

from nutrisnap.domain.records import NutritionRecord

ESTIMATE_SCHEMA: dict[str, object] = {
    "type": "object",
    "properties": {
        "items": {
            "type": "array",
            "items": {
                "type": "object",
                "properties": {
                    "name": {"type": "string"},
                    "calories": {"type": "number", "minimum": 0},
                    "protein": {"type": "number", "minimum": 0},
                    "carbs": {"type": "number", "minimum": 0},
                    "fat": {"type": "number", "minimum": 0},
                    "portion": {"type": "string"},
                },
                "required": ["name", "calories", "protein", "carbs", "fat", "portion"],
                "additionalProperties": False,
            },
        }
    },
    "required": ["items"],
    "additionalProperties": False,
}

IMAGE_PROMPT = (
    "Analyze this image of a meal. Identify each food item, estimate its "
    "portion size, and provide its nutritional information "
    "(calories, protein, carbs, fat)."
)


class EstimationError(RuntimeError):
    """Raised when the AI service cannot produce a usable answer."""


class NutritionAIClient(Protocol):
    """Interface for the generative AI service."""

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
        """Return JSON output that matches schema."""

    async def generate_text(self, *, model: str, store: bool, prompt: str) -> str:
        """Return free-form text output."""


class EstimatedItem(BaseModel):
    """One food item as estimated by the AI service."""

    name: str = Field(min_length=1)
    calories: float = Field(ge=0.0)
    protein: float = Field(ge=0.0)
    carbs: float = Field(ge=0.0)
    fat: float = Field(ge=0.0)
    portion: str = ""


class EstimateResult(BaseModel):
    """Structured estimation output."""

    items: list[EstimatedItem]


@dataclass
class EstimationService:
    """Turns photos and text queries into loggable records."""

    client: NutritionAIClient
    model: str
    reasoning_effort: str | None
    store: bool

    async def estimate_image(self, image_bytes: bytes) -> list[NutritionRecord]:
        """Estimate every food item visible in a meal photo."""
        if not image_bytes:
            raise EstimationError("Image is empty")
        return await self._estimate(IMAGE_PROMPT, _to_data_url(image_bytes))

    async def estimate_text(self, query: str) -> list[NutritionRecord]:
        """Estimate nutrition for a typed food description."""
        cleaned = query.strip()
        if not cleaned:
            raise EstimationError("Query is empty")
        prompt = (
            f'Provide nutritional information for "{cleaned}". '
            "If it's a generic item, assume a standard portion size "
            "(e.g., 1 medium for fruit, 100g for meat)."
        )
        return await self._estimate(prompt, None)

    async def _estimate(
        self, prompt: str, image_data_url: str | None
    ) -> list[NutritionRecord]:
        raw = await self.client.generate_structured(
            model=self.model,
            reasoning_effort=self.reasoning_effort,
            store=self.store,
            prompt=prompt,
            schema=ESTIMATE_SCHEMA,
            image_data_url=image_data_url,
        )
        try:
            result = EstimateResult.model_validate(raw)
        except ValidationError as exc:
            raise EstimationError("AI returned an unusable estimate") from exc
        return [NutritionRecord(**item.model_dump()) for item in result.items]


def _to_data_url(image_bytes: bytes) -> str:
    """Convert bytes to a base64 data URL for image input."""
    mime_type = _detect_mime_type(image_bytes)
    encoded = base64.b64encode(image_bytes).decode("utf-8")
    return f"data:{mime_type};base64,{encoded}"


def _detect_mime_type(image_bytes: bytes) -> str:
    """Infer a basic image MIME type from file signatures."""
    if image_bytes.startswith(b"\xff\xd8\xff"):
        return "image/jpeg"
    if image_bytes.startswith(b"\x89PNG\r\n\x1a\n"):
        return "image/png"
    if image_bytes[:4] == b"RIFF" and image_bytes[8:12] == b"WEBP":
        return "image/webp"
    return "image/jpeg"
