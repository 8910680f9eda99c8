"""
Vision analysis and translation through the user's AI provider.

Providers:
- gemini: google-genai SDK
- groq: groq SDK (OpenAI-compatible chat with image_url parts)

SDK calls are blocking and run in worker threads.
"""
from __future__ import annotations

import asyncio
import base64
import io
import json
import logging
import re
from dataclasses import dataclass
from typing import Any, Dict, Optional

from google import genai
from google.genai import types as genai_types
from groq import Groq
from PIL import Image, UnidentifiedImageError

from app.core.config import get_settings
from app.core.constants import RATE_LIMIT_MARKER
from app.core.i18n import language_label, resolve_language
from app.llm.prompts.coach_prompts import ANALYSIS_PROMPTS, TRANSLATION_PROMPT

logger = logging.getLogger(__name__)
settings = get_settings()

_PROVIDER_LABELS = {"gemini": "Gemini", "groq": "Groq"}


class AnalysisProviderError(RuntimeError):
    def __init__(self, message: str, status_code: Optional[int] = None) -> None:
        super().__init__(message)
        self.status_code = status_code

    @property
    def is_rate_limit(self) -> bool:
        return is_rate_limit_error(str(self))


class TranslationError(RuntimeError):
    pass


@dataclass(frozen=True)
class PreparedFrame:
    jpeg_bytes: bytes
    base64: str

    @property
    def data_url(self) -> str:
        return f"data:image/jpeg;base64,{self.base64}"


def is_rate_limit_error(message: Optional[str]) -> bool:
    return RATE_LIMIT_MARKER in (message or "").lower()


def normalize_b64_payload(payload: str) -> str:
    value = (payload or "").strip()
    if "," in value and value.lower().startswith("data:"):
        return value.split(",", 1)[1].strip()
    return value


def prepare_frame(frame: str, max_width: Optional[int] = None, max_height: Optional[int] = None) -> PreparedFrame:
    """Decode a base64/data-URL frame and re-encode it as a bounded RGB JPEG."""
    max_width = max_width or settings.coach_frame_max_width
    max_height = max_height or settings.coach_frame_max_height
    try:
        raw_bytes = base64.b64decode(normalize_b64_payload(frame), validate=False)
        image = Image.open(io.BytesIO(raw_bytes))
        image.load()
        image = image.convert("RGB")
    except (UnidentifiedImageError, ValueError, OSError) as exc:
        raise AnalysisProviderError(f"cannot decode video frame: {exc}") from exc

    image.thumbnail((max_width, max_height))
    buf = io.BytesIO()
    image.save(buf, format="JPEG", quality=80)
    jpeg_bytes = buf.getvalue()
    return PreparedFrame(jpeg_bytes=jpeg_bytes, base64=base64.b64encode(jpeg_bytes).decode("ascii"))


def extract_json(text_value: Optional[str]) -> Dict[str, Any]:
    if not text_value or not isinstance(text_value, str):
        raise AnalysisProviderError("Empty analysis response")

    cleaned = re.sub(r"^```(?:json)?\s*", "", text_value.strip(), flags=re.IGNORECASE)
    cleaned = re.sub(r"```$", "", cleaned).strip()
    try:
        parsed = json.loads(cleaned)
    except ValueError:
        first = cleaned.find("{")
        last = cleaned.rfind("}")
        if first == -1 or last <= first:
            raise AnalysisProviderError("Unable to parse analysis JSON")
        try:
            parsed = json.loads(cleaned[first : last + 1])
        except ValueError as exc:
            raise AnalysisProviderError(f"Unable to parse analysis JSON: {exc}") from exc
    if not isinstance(parsed, dict):
        raise AnalysisProviderError("Analysis JSON must be an object")
    return parsed


def _status_code(exc: Exception) -> Optional[int]:
    for attr in ("status_code", "code", "status"):
        value = getattr(exc, attr, None)
        if isinstance(value, int):
            return value
    return None


def _provider_error(provider: str, exc: Exception, action: str = "API") -> AnalysisProviderError:
    status = _status_code(exc)
    label = _PROVIDER_LABELS.get(provider, provider)
    message = f"{label} {action} error: {exc}"
    if status == 429 and not is_rate_limit_error(message):
        message = f"{message} (rate limit exceeded)"
    return AnalysisProviderError(message, status_code=status)


def _gemini_vision(api_key: str, prompt: str, frame: PreparedFrame) -> str:
    client = genai.Client(api_key=api_key)
    response = client.models.generate_content(
        model=settings.gemini_vision_model,
        contents=[
            genai_types.Part.from_bytes(data=frame.jpeg_bytes, mime_type="image/jpeg"),
            prompt,
        ],
        config=genai_types.GenerateContentConfig(
            temperature=settings.ai_temperature,
            max_output_tokens=settings.ai_max_tokens,
            response_mime_type="application/json",
        ),
    )
    return (getattr(response, "text", None) or "").strip()


def _groq_vision(api_key: str, prompt: str, frame: PreparedFrame) -> str:
    client = Groq(api_key=api_key)
    resp = client.chat.completions.create(
        model=settings.llm_groq_vision_model,
        messages=[
            {
                "role": "user",
                "content": [
                    {"type": "text", "text": prompt},
                    {"type": "image_url", "image_url": {"url": frame.data_url}},
                ],
            }
        ],
        temperature=settings.ai_temperature,
        max_tokens=settings.ai_max_tokens,
    )
    return (resp.choices[0].message.content or "").strip()


def _gemini_text(api_key: str, prompt: str) -> str:
    client = genai.Client(api_key=api_key)
    response = client.models.generate_content(
        model=settings.gemini_vision_model,
        contents=prompt,
        config=genai_types.GenerateContentConfig(
            temperature=0,
            max_output_tokens=settings.translation_max_tokens,
        ),
    )
    return (getattr(response, "text", None) or "").strip()


def _groq_text(api_key: str, prompt: str) -> str:
    client = Groq(api_key=api_key)
    resp = client.chat.completions.create(
        model=settings.llm_groq_vision_model,
        messages=[{"role": "user", "content": prompt}],
        temperature=0,
        max_tokens=settings.translation_max_tokens,
    )
    return (resp.choices[0].message.content or "").strip()


async def analyze_frame(frame: str, api_key: str, provider: str, language: Optional[str] = None) -> Dict[str, Any]:
    """Raw analysis JSON for one frame. Raises AnalysisProviderError."""
    if not api_key:
        raise AnalysisProviderError("Missing API key")
    if provider not in _PROVIDER_LABELS:
        raise AnalysisProviderError(f"Unsupported API provider: {provider}")

    prepared = prepare_frame(frame)
    prompt = ANALYSIS_PROMPTS[resolve_language(language)]
    generate = _gemini_vision if provider == "gemini" else _groq_vision
    try:
        raw_text = await asyncio.to_thread(generate, api_key, prompt, prepared)
    except Exception as exc:
        raise _provider_error(provider, exc) from exc
    return extract_json(raw_text)


async def translate_text(text_value: str, api_key: str, provider: str, target_language: Optional[str]) -> str:
    source_text = (text_value or "").strip()
    if not source_text:
        return ""
    if not api_key or provider not in _PROVIDER_LABELS:
        raise TranslationError(f"translation unavailable for provider {provider!r}")

    prompt = TRANSLATION_PROMPT.format(language_label=language_label(target_language), text=source_text)
    generate = _gemini_text if provider == "gemini" else _groq_text
    try:
        translated = await asyncio.to_thread(generate, api_key, prompt)
    except Exception as exc:
        raise TranslationError(str(_provider_error(provider, exc, action="translation"))) from exc
    return translated or source_text
