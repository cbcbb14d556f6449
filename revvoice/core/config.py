"""
RevVoice — Configuration

Centralised settings from environment variables.
All tuneable constants live here — zero magic numbers in other files.
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Dict, Tuple

from dotenv import load_dotenv
import certifi

os.environ.setdefault("SSL_CERT_FILE", certifi.where())
os.environ.setdefault("REQUESTS_CA_BUNDLE", certifi.where())

load_dotenv()

# ── Bridge env-var naming: google-genai reads GOOGLE_API_KEY ────────────
_gemini_key = os.getenv("GEMINI_API_KEY", "")
if _gemini_key and not os.getenv("GOOGLE_API_KEY"):
    os.environ["GOOGLE_API_KEY"] = _gemini_key


SUPPORTED_LANGUAGES: Tuple[str, ...] = ("en", "es", "fr", "de", "hi", "zh", "ja", "ko")
DEFAULT_LANGUAGE = "en"


# ---------------------------------------------------------------------------
# Server
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class ServerConfig:
    host: str = os.getenv("HOST", "0.0.0.0")
    port: int = int(os.getenv("PORT", "3000"))
    environment: str = os.getenv("REVVOICE_ENV", os.getenv("NODE_ENV", "production"))
    cors_origins: tuple[str, ...] = ("*",)


# ---------------------------------------------------------------------------
# Models — primary / fallback pair per deployment environment
# ---------------------------------------------------------------------------

_MODEL_PROFILES: Dict[str, Tuple[str, str]] = {
    "production": ("gemini-2.0-flash-001", "gemini-2.0-flash-exp"),
    "development": ("gemini-2.0-flash-001", "gemini-2.0-flash-exp"),
    "testing": ("gemini-2.0-flash-exp", "gemini-2.0-flash-001"),
}


def _profile_model(index: int) -> str:
    env = os.getenv("REVVOICE_ENV", os.getenv("NODE_ENV", "production"))
    return _MODEL_PROFILES.get(env, _MODEL_PROFILES["production"])[index]


@dataclass(frozen=True)
class ModelConfig:
    """API key and the primary/fallback model identifiers."""
    gemini_api_key: str = os.getenv("GEMINI_API_KEY", "")
    primary_model: str = os.getenv("PRIMARY_MODEL", "") or _profile_model(0)
    fallback_model: str = os.getenv("FALLBACK_MODEL", "") or _profile_model(1)

    @property
    def has_api_key(self) -> bool:
        return bool(self.gemini_api_key)


# ---------------------------------------------------------------------------
# Session store tunables
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class SessionConfig:
    # Idle time (seconds) after which a session is swept
    ttl_seconds: float = float(os.getenv("SESSION_TTL_SECONDS", "3600"))
    # How often the sweeper runs
    sweep_interval_seconds: float = float(os.getenv("SESSION_SWEEP_SECONDS", "300"))
    # Replies longer than this are cut and marked
    max_reply_chars: int = 200
    truncation_marker: str = "..."


# ---------------------------------------------------------------------------
# Generation tunables (sent with every completion request)
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class GenerationConfig:
    temperature: float = 0.7
    top_k: int = 40
    top_p: float = 0.95
    max_output_tokens: int = 150
    candidate_count: int = 1
    # Harm categories blocked at MEDIUM_AND_ABOVE
    blocked_categories: tuple[str, ...] = (
        "HARM_CATEGORY_HARASSMENT",
        "HARM_CATEGORY_HATE_SPEECH",
        "HARM_CATEGORY_SEXUALLY_EXPLICIT",
        "HARM_CATEGORY_DANGEROUS_CONTENT",
    )
    block_threshold: str = "BLOCK_MEDIUM_AND_ABOVE"


# ---------------------------------------------------------------------------
# Client (turn-taking controller + transport) tunables — seconds
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class ClientConfig:
    api_base_url: str = os.getenv("REVVOICE_API_URL", "http://localhost:3000")
    # Transport timeouts
    health_timeout: float = 5.0
    start_timeout: float = 10.0
    message_timeout: float = 15.0
    end_timeout: float = 5.0
    # Network recognizer errors tolerated before giving up
    max_network_retries: int = 3
    backoff_floor: float = 1.0
    backoff_cap: float = 8.0
    # Minimum gap between two interruptions
    interruption_cooldown: float = 1.0
    # Interim transcripts must be longer than this to interrupt
    interruption_min_chars: int = 2
    # Delay before listening again after the AI finishes speaking
    post_speech_restart_delay: float = 0.3
    # Delay when there is no synthesizer or after a recoverable failure
    recovery_restart_delay: float = 1.0
    # no-speech / recognizer-ended / start-race restarts
    quick_restart_delay: float = 0.1
    # Stop listening after this much silence
    silence_timeout: float = 30.0
    # Synthesis voice settings
    speech_rate: float = 0.9
    speech_pitch: float = 1.0
    speech_volume: float = 0.8


# ---------------------------------------------------------------------------
# Singletons
# ---------------------------------------------------------------------------

server_cfg = ServerConfig()
model_cfg = ModelConfig()
session_cfg = SessionConfig()
generation_cfg = GenerationConfig()
client_cfg = ClientConfig()
