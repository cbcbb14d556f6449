"""
RevVoice — Voice Selection

Picks a synthesis voice for a reply language from whatever the platform
offers.  Preference:
  1. the platform default voice for the language
  2. any voice for the language
  3. any English voice
  4. the first available voice
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional, Sequence

logger = logging.getLogger("revvoice.voices")


@dataclass(frozen=True)
class Voice:
    name: str
    lang: str            # BCP-47, e.g. "es-ES"
    default: bool = False


def _primary_tag(lang: str) -> str:
    return lang.replace("_", "-").split("-")[0].lower()


def select_voice(voices: Sequence[Voice], language: str) -> Optional[Voice]:
    if not voices:
        return None

    matching = [v for v in voices if _primary_tag(v.lang) == language]
    for v in matching:
        if v.default:
            return v
    if matching:
        return matching[0]

    english = next((v for v in voices if _primary_tag(v.lang) == "en"), None)
    if english is not None:
        logger.debug(f"No voice for '{language}', using {english.name}")
        return english
    return voices[0]
