# food_analysis.py: carbohydrate estimation from food photos

from __future__ import annotations

import asyncio
import base64
import json
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Protocol

import httpx
from openai import AsyncOpenAI, OpenAIError
from openai.types.chat import ChatCompletionMessageParam
from pydantic import BaseModel, Field, ValidationError

from diabetes_assistant.config import Settings
from diabetes_assistant.diabetes.utils.openai_utils import get_async_openai_client

logger = logging.getLogger(__name__)

CHAT_COMPLETION_TIMEOUT = 30.0
CHAT_COMPLETION_MAX_TOKENS = 1024
RESPONSE_LANGUAGE = "Russian"

# Mock estimate: a standard pizza slice of ~100 g holds ~45 g of carbs.
MOCK_CARBS = 45.0
MOCK_PORTION_GRAMS = 100.0


class FoodAnalysisError(RuntimeError):
    """Raised when the image-analysis service fails or returns garbage."""


class FoodAnalysisResult(BaseModel):
    name: str = ""
    carbs: float = Field(ge=0)
    confidence: str = "low"
    reasoning: str = ""


@dataclass(frozen=True)
class ProviderSpec:
    base_url: str | None
    default_model: str


PROVIDERS: dict[str, ProviderSpec] = {
    "openai": ProviderSpec(None, "gpt-4o"),
    # Gemini and Grok both expose OpenAI-compatible chat endpoints.
    "gemini": ProviderSpec(
        "https://generativelanguage.googleapis.com/v1beta/openai/", "gemini-1.5-flash"
    ),
    "grok": ProviderSpec("https://api.x.ai/v1", "grok-2-vision-1212"),
}


class FoodProvider(Protocol):
    name: str

    async def analyze(
        self, image: bytes, *, content_type: str, food_weight: float | None
    ) -> FoodAnalysisResult: ...


def build_prompt(food_weight: float | None = None) -> str:
    """Return the instruction sent along with the photo."""

    prompt = (
        "You are a certified diabetes educator specializing in nutrition analysis.\n"
        "Analyze the food in the image and estimate its carbohydrate content for "
        "insulin dosing.\n\n"
        "TASK:\n"
        "1. Identify the food items in the image\n"
        "2. Estimate total carbohydrates in grams using standard nutritional data\n"
        "3. Assess your confidence (low, medium, high)\n\n"
        "REQUIREMENTS:\n"
        "- Include hidden ingredients that contain carbs and consider portion size\n"
        "- If the image shows packaging or nutrition labels, prefer that data\n"
        f"- Write the dish name and the reasoning in {RESPONSE_LANGUAGE}"
    )
    if food_weight:
        prompt += (
            "\n\nWEIGHT:\n"
            f"- The food weighs {food_weight:.1f} grams\n"
            "- Base the carbohydrate estimate on this exact weight and mention it"
        )
    prompt += (
        "\n\nRESPONSE FORMAT:\n"
        "Respond ONLY with JSON of this structure:\n"
        '{"name": "dish name", "carbs": number, '
        '"confidence": "low|medium|high", "reasoning": "short explanation"}'
    )
    return prompt


def extract_json_from_text(text: str) -> str:
    """Return the first balanced ``{...}`` object found in ``text``.

    Braces inside JSON strings are ignored. Raises :class:`ValueError` when no
    complete object is present.
    """

    start = -1
    depth = 0
    in_string = False
    escape = False
    for idx, char in enumerate(text):
        if in_string:
            if escape:
                escape = False
            elif char == "\\":
                escape = True
            elif char == '"':
                in_string = False
            continue
        if char == '"':
            in_string = True
        elif char == "{":
            if depth == 0:
                start = idx
            depth += 1
        elif char == "}" and depth > 0:
            depth -= 1
            if depth == 0:
                return text[start : idx + 1]
    raise ValueError("no JSON object found in text")


def parse_analysis(content: str) -> FoodAnalysisResult:
    """Parse the model reply, tolerating prose around the JSON object."""

    try:
        return FoodAnalysisResult.model_validate_json(content)
    except ValidationError:
        pass
    try:
        data = json.loads(extract_json_from_text(content))
        return FoodAnalysisResult.model_validate(data)
    except (ValueError, ValidationError) as exc:
        logger.error("Unparseable food analysis reply: %r", content[:200])
        raise FoodAnalysisError("failed to parse food analysis response") from exc


class OpenAICompatibleProvider:
    """Vision chat completion against OpenAI or an OpenAI-compatible API."""

    def __init__(self, name: str, client: AsyncOpenAI, model: str) -> None:
        self.name = name
        self._client = client
        self._model = model

    async def analyze(
        self, image: bytes, *, content_type: str, food_weight: float | None
    ) -> FoodAnalysisResult:
        data_url = f"data:{content_type};base64,{base64.b64encode(image).decode()}"
        messages: list[ChatCompletionMessageParam] = [
            {
                "role": "user",
                "content": [
                    {"type": "text", "text": build_prompt(food_weight)},
                    {"type": "image_url", "image_url": {"url": data_url}},
                ],
            }
        ]
        try:
            completion = await self._client.chat.completions.create(
                model=self._model,
                messages=messages,
                max_tokens=CHAT_COMPLETION_MAX_TOKENS,
                timeout=httpx.Timeout(CHAT_COMPLETION_TIMEOUT),
            )
        except httpx.TimeoutException as exc:
            logger.exception("[%s] Food analysis request timed out", self.name)
            raise FoodAnalysisError("food analysis request timed out") from exc
        except OpenAIError as exc:
            logger.exception("[%s] Food analysis request failed: %s", self.name, exc)
            raise FoodAnalysisError(f"{self.name} API error: {exc}") from exc

        if not completion.choices:
            raise FoodAnalysisError(f"no response from {self.name}")
        content = completion.choices[0].message.content or ""
        return parse_analysis(content)

    async def close(self) -> None:
        await self._client.close()


class MockProvider:
    """Deterministic provider used when no API key is configured."""

    name = "mock"

    async def analyze(
        self, image: bytes, *, content_type: str, food_weight: float | None
    ) -> FoodAnalysisResult:
        carbs = MOCK_CARBS
        reasoning = (
            "Test analysis for demonstration purposes. A typical pizza slice "
            f"contains about {MOCK_CARBS:.0f} g of carbohydrates."
        )
        if food_weight and food_weight > 0:
            carbs = MOCK_CARBS * food_weight / MOCK_PORTION_GRAMS
            reasoning = (
                "Test analysis for demonstration purposes. "
                f"{food_weight:.1f} g of pizza (standard slice ~{MOCK_PORTION_GRAMS:.0f} g) "
                f"contains about {carbs:.1f} g of carbohydrates."
            )
        return FoodAnalysisResult(name="Pizza", carbs=carbs, confidence="high", reasoning=reasoning)


class FoodAnalyzer:
    """Facade delegating to the selected provider."""

    def __init__(self, provider: FoodProvider) -> None:
        self.provider = provider

    @property
    def provider_name(self) -> str:
        return self.provider.name

    async def analyze_bytes(
        self,
        image: bytes,
        *,
        content_type: str = "image/jpeg",
        food_weight: float | None = None,
    ) -> FoodAnalysisResult:
        if not image:
            raise FoodAnalysisError("empty image")
        result = await self.provider.analyze(
            image, content_type=content_type, food_weight=food_weight
        )
        logger.info(
            "[%s] Estimated %.1f g carbs (%s confidence)",
            self.provider_name,
            result.carbs,
            result.confidence,
        )
        return result

    async def analyze_file(
        self,
        path: Path,
        *,
        content_type: str = "image/jpeg",
        food_weight: float | None = None,
    ) -> FoodAnalysisResult:
        try:
            image = await asyncio.to_thread(path.read_bytes)
        except OSError as exc:
            raise FoodAnalysisError(f"failed to read food image: {exc}") from exc
        return await self.analyze_bytes(image, content_type=content_type, food_weight=food_weight)

    async def close(self) -> None:
        close = getattr(self.provider, "close", None)
        if close is not None:
            await close()


def create_food_analyzer(settings: Settings) -> FoodAnalyzer:
    """Pick the first provider with a configured key, else the mock one."""

    keys = {
        "openai": settings.openai_api_key,
        "gemini": settings.gemini_api_key,
        "grok": settings.grok_api_key,
    }
    for name, key in keys.items():
        if not key:
            continue
        spec = PROVIDERS[name]
        try:
            client = get_async_openai_client(
                key, base_url=spec.base_url, proxy=settings.openai_proxy
            )
        except RuntimeError as exc:
            logger.warning("[%s] Provider unavailable: %s", name, exc)
            continue
        model = settings.vision_model or spec.default_model
        logger.info("Using %s provider (%s) for food analysis", name, model)
        return FoodAnalyzer(OpenAICompatibleProvider(name, client, model))

    logger.warning("No image-analysis API key configured, using mock provider")
    return FoodAnalyzer(MockProvider())
