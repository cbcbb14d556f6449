"""
RevVoice — Language Resolver

Maps free text to one of the supported language tags.  Non-Latin scripts are
decided by character ranges (fast and exact); Latin-script text goes through
langdetect.  Anything unsupported, undetermined or failing resolves to "en".
"""

from __future__ import annotations

import logging
import re
from typing import Dict

from langdetect import DetectorFactory, LangDetectException, detect

from .config import DEFAULT_LANGUAGE, SUPPORTED_LANGUAGES

logger = logging.getLogger("revvoice.language")

# langdetect is probabilistic; a fixed seed keeps results stable per input
DetectorFactory.seed = 0

MIN_DETECTION_CHARS = 3

_SCRIPT_PATTERNS = (
    ("hi", re.compile("[\u0900-\u097F]")),
    ("ja", re.compile("[\u3040-\u309F\u30A0-\u30FF]")),
    ("ko", re.compile("[\uAC00-\uD7AF\u1100-\u11FF]")),
    ("zh", re.compile("[\u4E00-\u9FFF]")),
)

_DETECTOR_ALIASES: Dict[str, str] = {
    "zh-cn": "zh",
    "zh-tw": "zh",
}

RECOGNIZER_LOCALES: Dict[str, str] = {
    "en": "en-US",
    "es": "es-ES",
    "fr": "fr-FR",
    "de": "de-DE",
    "hi": "hi-IN",
    "zh": "zh-CN",
    "ja": "ja-JP",
    "ko": "ko-KR",
}


def is_supported(tag: str) -> bool:
    return tag in SUPPORTED_LANGUAGES


def resolve_language(text: str) -> str:
    """Return a supported language tag for `text`.  Never raises."""
    try:
        stripped = (text or "").strip()
        if not stripped:
            return DEFAULT_LANGUAGE

        # Kana must win over ideographs: Japanese text mixes both
        for tag, pattern in _SCRIPT_PATTERNS:
            if pattern.search(stripped):
                return tag

        letters = [ch for ch in stripped if ch.isalpha()]
        if len(letters) < MIN_DETECTION_CHARS:
            return DEFAULT_LANGUAGE

        code = detect(stripped)
        detected = _DETECTOR_ALIASES.get(code, code.split("-")[0])
        return detected if is_supported(detected) else DEFAULT_LANGUAGE
    except LangDetectException:
        return DEFAULT_LANGUAGE
    except Exception as e:
        logger.error(f"Language detection error: {e}")
        return DEFAULT_LANGUAGE


def recognizer_locale(tag: str) -> str:
    """BCP-47 locale the recognizer should listen in for `tag`."""
    return RECOGNIZER_LOCALES.get(tag, RECOGNIZER_LOCALES[DEFAULT_LANGUAGE])
