"""
RevVoice — Gemini Completion Backend

Thin adapter over google-genai.  Converts history turns into Gemini contents,
applies the generation + safety settings from config, and classifies every
upstream failure as RateLimited or CompletionFailed.  It never retries:
retry timing belongs to the client.
"""

from __future__ import annotations

import logging
from typing import Any, List, Optional, Sequence

from google import genai
from google.genai import types as genai_types

from ..core.config import GenerationConfig, generation_cfg, model_cfg
from ..core.errors import CompletionFailed, RateLimited, RevVoiceError
from ..core.models import ASSISTANT, Turn

logger = logging.getLogger("revvoice.completion")

_RETRY_INFO_TYPE = "RetryInfo"


# ---------------------------------------------------------------------------
# Error classification
# ---------------------------------------------------------------------------

def _retry_after(details: Any) -> Optional[str]:
    """Pull retryDelay out of a google.rpc RetryInfo detail, if present."""
    if isinstance(details, dict):
        inner = details.get("error", details)
        details = inner.get("details", []) if isinstance(inner, dict) else []
    if not isinstance(details, list):
        return None
    for entry in details:
        if isinstance(entry, dict) and _RETRY_INFO_TYPE in str(entry.get("@type", "")):
            delay = entry.get("retryDelay")
            return str(delay) if delay else None
    return None


def classify_completion_error(exc: BaseException) -> RevVoiceError:
    """Map an upstream exception onto RateLimited or CompletionFailed."""
    if isinstance(exc, RevVoiceError):
        return exc

    code = getattr(exc, "code", None)
    status = str(getattr(exc, "status", "") or "")
    message = str(getattr(exc, "message", "") or exc)

    if code == 429 or status == "RESOURCE_EXHAUSTED":
        return RateLimited(
            "Rate limit exceeded",
            retry_after=_retry_after(getattr(exc, "details", None)) or "60s",
            details="Too many requests. Please wait a moment and try again.",
        )
    if "quota" in message.lower():
        return RateLimited(
            "API quota exceeded",
            details="Daily/monthly quota limit reached. Please try again later or upgrade your plan.",
        )
    return CompletionFailed("Failed to get AI response", details=message[:500])


# ---------------------------------------------------------------------------
# Request building
# ---------------------------------------------------------------------------

def build_contents(history: Sequence[Turn]) -> List[genai_types.Content]:
    """Gemini calls the assistant role "model"."""
    return [
        genai_types.Content(
            role="model" if turn.role == ASSISTANT else "user",
            parts=[genai_types.Part(text=turn.text)],
        )
        for turn in history
    ]


def build_generation_config(cfg: GenerationConfig = generation_cfg) -> genai_types.GenerateContentConfig:
    return genai_types.GenerateContentConfig(
        temperature=cfg.temperature,
        top_k=cfg.top_k,
        top_p=cfg.top_p,
        max_output_tokens=cfg.max_output_tokens,
        candidate_count=cfg.candidate_count,
        safety_settings=[
            genai_types.SafetySetting(
                category=genai_types.HarmCategory(category),
                threshold=genai_types.HarmBlockThreshold(cfg.block_threshold),
            )
            for category in cfg.blocked_categories
        ],
    )


# ═══════════════════════════════════════════════════════════════════════════
# Backend
# ═══════════════════════════════════════════════════════════════════════════

class GeminiBackend:
    """Implements CompletionBackend over google-genai."""

    def __init__(
        self,
        api_key: str = model_cfg.gemini_api_key,
        generation: GenerationConfig = generation_cfg,
    ) -> None:
        self._api_key = api_key
        self._config = build_generation_config(generation)
        self._client: Optional[genai.Client] = None

    def _get_client(self) -> genai.Client:
        if self._client is None:
            if not self._api_key:
                raise CompletionFailed("GEMINI_API_KEY not set in environment variables.")
            self._client = genai.Client(api_key=self._api_key)
        return self._client

    def prepare(self, model: str) -> None:
        if not model:
            raise CompletionFailed("No model configured")
        self._get_client()
        logger.debug(f"Model ready: {model}")

    async def complete(self, model: str, history: Sequence[Turn]) -> str:
        if not history:
            raise CompletionFailed("Refusing to call the model with empty history")
        try:
            response = await self._get_client().aio.models.generate_content(
                model=model,
                contents=build_contents(history),
                config=self._config,
            )
        except Exception as e:
            raise classify_completion_error(e) from e

        text = response.text
        if not text:
            raise CompletionFailed("Failed to get AI response", details="Empty or blocked response")
        return text
