import base64
import json
import logging
import re
from dataclasses import dataclass, field
from typing import Any, TypeVar

import openai
from openai import AsyncOpenAI
from pydantic import BaseModel, ValidationError

from bnrm.core.config import settings
from bnrm.core.errors import GatewayError

logger = logging.getLogger(__name__)

T = TypeVar("T", bound=BaseModel)

_SENTENCE_BOUNDARY = re.compile(r"[.!?\u3002\u061F]+")


def to_gateway_error(exc: Exception) -> GatewayError:
    if isinstance(exc, GatewayError):
        return exc
    if isinstance(exc, openai.RateLimitError):
        return GatewayError(429, "RATE_LIMIT", "Rate limit reached, please retry shortly.")
    if isinstance(exc, openai.APIStatusError):
        if exc.status_code == 402:
            return GatewayError(402, "PAYMENT_REQUIRED", "AI gateway credits exhausted.")
        if exc.status_code == 413:
            return GatewayError(413, "PAYLOAD_TOO_LARGE", "Payload too large for the AI gateway.")
        return GatewayError(502, "UPSTREAM_ERROR", f"AI gateway error: {exc.message}")
    if isinstance(exc, openai.APIConnectionError):
        return GatewayError(502, "UPSTREAM_UNREACHABLE", "AI gateway unreachable.")
    return GatewayError(500, "INTERNAL_ERROR", str(exc))


def _extract_fenced_block(text: str) -> str | None:
    blocks = re.findall(r"```(?:json)?\s*(.*?)\s*```", text, re.DOTALL | re.IGNORECASE)
    return blocks[0].strip() if blocks else None


def _extract_balanced_json_object(text: str) -> str | None:
    """First balanced top-level JSON object in `text`, skipping braces inside strings."""
    start_idx = text.find("{")
    if start_idx == -1:
        return None

    depth = 0
    in_string = False
    escape = False
    for i in range(start_idx, len(text)):
        ch = text[i]
        if in_string:
            if escape:
                escape = False
            elif ch == "\\":
                escape = True
            elif ch == '"':
                in_string = False
            continue

        if ch == '"':
            in_string = True
        elif ch == "{":
            depth += 1
        elif ch == "}":
            depth -= 1
            if depth == 0:
                return text[start_idx:i + 1]
    return None


def _structured_text_candidates(raw_text: str) -> list[str]:
    text = (raw_text or "").strip()
    if not text:
        return []

    candidates = [_extract_fenced_block(text), text, _extract_balanced_json_object(text)]
    return list(dict.fromkeys(c.strip() for c in candidates if c and c.strip()))


def split_segments(text: str) -> list[dict[str, Any]]:
    parts = [part.strip() for part in _SENTENCE_BOUNDARY.split(text or "")]
    return [
        {"id": index, "text": part, "start": 0, "end": 0}
        for index, part in enumerate(p for p in parts if p)
    ]


@dataclass
class Transcription:
    text: str
    segments: list[dict[str, Any]] = field(default_factory=list)
    method: str = "whisper"


# Languages the transcription model accepts as ISO-639-1 hints
_TRANSCRIPTION_LANGUAGES = {"ar", "fr", "en", "es", "de"}


class LLMClient:
    """OpenAI-compatible client for chat, structured output, vision OCR and transcription."""

    def __init__(
        self,
        model_name: str | None = None,
        base_url: str | None = None,
        api_key: str | None = None,
    ):
        self.model_name = model_name or settings.MODEL_DEFAULT
        self.client = AsyncOpenAI(
            base_url=base_url or settings.LLM_BASE_URL,
            api_key=api_key or settings.LLM_API_KEY,
        )

    @staticmethod
    def _first_choice_text(response: Any, model_name: str) -> str:
        if not getattr(response, "choices", None):
            logger.error("Received no choices from %s: %s", model_name, response)
            raise GatewayError(502, "EMPTY_RESPONSE", f"Provider {model_name} returned no output.")
        return response.choices[0].message.content or ""

    async def chat(
        self,
        messages: list[dict[str, Any]],
        *,
        temperature: float = 0.7,
        max_tokens: int | None = None,
    ) -> str:
        kwargs: dict[str, Any] = {"temperature": temperature}
        if max_tokens:
            kwargs["max_tokens"] = max_tokens
        logger.info("Issuing chat request to model %s (%s messages)", self.model_name, len(messages))
        try:
            response = await self.client.chat.completions.create(
                model=self.model_name, messages=messages, **kwargs
            )
        except openai.OpenAIError as exc:
            logger.warning("Chat request to %s failed: %s", self.model_name, exc)
            raise to_gateway_error(exc) from exc
        return self._first_choice_text(response, self.model_name).strip()

    async def generate_structured(
        self, system_prompt: str, user_prompt: str, response_schema: type[T]
    ) -> T:
        """
        Generate a response matching the given Pydantic schema.
        The schema is injected into the system prompt; one stricter retry is made
        when the first answer cannot be parsed.
        """
        schema_json = json.dumps(response_schema.model_json_schema())
        augmented_system_prompt = (
            f"{system_prompt}\n\n"
            "CRITICAL: You must respond in ONLY valid JSON format matching the following JSON Schema. "
            "Do not include markdown code blocks or any conversational text around the JSON.\n\n"
            f"EXPECTED SCHEMA:\n{schema_json}"
        )
        attempt_prompts = [
            augmented_system_prompt,
            (
                f"{augmented_system_prompt}\n\n"
                "RETRY INSTRUCTIONS: Your previous response was invalid or incomplete. "
                "Return ONLY a single JSON object matching the schema."
            ),
        ]

        for attempt_idx, system_prompt_attempt in enumerate(attempt_prompts, start=1):
            logger.info(
                "Issuing structured request to model %s (attempt %s/%s)...",
                self.model_name,
                attempt_idx,
                len(attempt_prompts),
            )
            try:
                response = await self.client.chat.completions.create(
                    model=self.model_name,
                    messages=[
                        {"role": "system", "content": system_prompt_attempt},
                        {"role": "user", "content": user_prompt},
                    ],
                    temperature=0 if attempt_idx > 1 else 0.2,
                )
            except openai.OpenAIError as exc:
                logger.error("Structured request to %s failed: %s", self.model_name, exc)
                raise to_gateway_error(exc) from exc

            text_response = self._first_choice_text(response, self.model_name)
            parse_errors: list[str] = []
            for candidate in _structured_text_candidates(text_response):
                try:
                    return response_schema.model_validate(json.loads(candidate, strict=False))
                except (json.JSONDecodeError, ValidationError) as candidate_error:
                    parse_errors.append(str(candidate_error))

            if attempt_idx < len(attempt_prompts):
                logger.warning(
                    "Structured parsing failed for %s on attempt %s: %s. Retrying...",
                    self.model_name,
                    attempt_idx,
                    " | ".join(parse_errors[:3]) or "empty content",
                )
                continue
            logger.error("Error parsing structured LLM response from %s", self.model_name)
            raise ValueError(
                "Unable to parse structured response: " + (" | ".join(parse_errors[:3]) or "empty content")
            )

        raise RuntimeError("Structured generation failed without a captured error")

    async def extract_text_from_image(
        self, image_bytes: bytes, mime_type: str = "image/jpeg", language: str = "ar"
    ) -> str:
        """Vision OCR of a single page image, returning the raw extracted text."""
        if language == "ar":
            instruction = "Please extract all Arabic and Latin text from this image accurately."
        elif language == "fr":
            instruction = "Please extract all French text from this image accurately."
        else:
            instruction = "Please extract all text from this image accurately."
        instruction += (
            " Preserve the original text layout and structure."
            " Output only the extracted text without any additional commentary."
        )
        data_url = f"data:{mime_type};base64,{base64.b64encode(image_bytes).decode('ascii')}"
        messages = [
            {
                "role": "system",
                "content": (
                    "You are an expert OCR assistant specialized in extracting text from document images. "
                    "You preserve layout and handle multiple scripts including Arabic, Latin, and numbers accurately."
                ),
            },
            {
                "role": "user",
                "content": [
                    {"type": "image_url", "image_url": {"url": data_url}},
                    {"type": "text", "text": instruction},
                ],
            },
        ]
        return await self.chat(messages, temperature=0)

    async def transcribe(
        self, audio_bytes: bytes, filename: str, language: str = "ar"
    ) -> Transcription:
        logger.info(
            "Transcribing %s (%s bytes, language=%s) with %s",
            filename,
            len(audio_bytes),
            language,
            self.model_name,
        )
        kwargs: dict[str, Any] = {}
        if language in _TRANSCRIPTION_LANGUAGES:
            kwargs["language"] = language
        try:
            result = await self.client.audio.transcriptions.create(
                model=self.model_name, file=(filename, audio_bytes), **kwargs
            )
        except openai.OpenAIError as exc:
            logger.warning("Transcription with %s failed: %s", self.model_name, exc)
            raise to_gateway_error(exc) from exc

        text = (getattr(result, "text", "") or "").strip()
        return Transcription(text=text, segments=split_segments(text))
