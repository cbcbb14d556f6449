"""
RevVoice — Error Taxonomy

One exception type per failure the user can tell apart.  Server-side errors
are mapped to HTTP status codes in server.py; the transport client maps them
back from HTTP responses so both sides speak the same vocabulary.
"""

from __future__ import annotations

from typing import Any, Dict, Optional


class RevVoiceError(Exception):
    """Base class.  `user_message` is what the UI shows."""

    user_message: str = "Something went wrong. Please try again."

    def __init__(self, message: str = "", *, details: str = "") -> None:
        super().__init__(message or self.user_message)
        self.details = details

    @property
    def message(self) -> str:
        return str(self)


# ---------------------------------------------------------------------------
# Server-side
# ---------------------------------------------------------------------------

class SessionNotFound(RevVoiceError):
    user_message = "Your conversation has expired. Tap the microphone to start a new one."

    def __init__(self, session_id: str = "", message: str = "") -> None:
        super().__init__(
            message or "Session not found",
            details="Chat session has expired or does not exist",
        )
        self.session_id = session_id


class ModelUnavailable(RevVoiceError):
    user_message = "All AI models are currently unavailable. Please try again later."


class RateLimited(RevVoiceError):
    user_message = "API limit reached. Please wait a moment and try again."

    def __init__(
        self,
        message: str = "Rate limit exceeded",
        *,
        retry_after: Optional[str] = None,
        details: str = "",
    ) -> None:
        super().__init__(message, details=details)
        self.retry_after = retry_after


class CompletionFailed(RevVoiceError):
    user_message = "The assistant could not answer. Please try again."


# ---------------------------------------------------------------------------
# Client-side
# ---------------------------------------------------------------------------

class NetworkUnavailable(RevVoiceError):
    user_message = "No internet connection. Please check your network."


class RequestTimedOut(RevVoiceError):
    user_message = "Request timed out. Please check your connection and try again."


class HttpRequestFailed(RevVoiceError):
    """Non-2xx response that has no more specific mapping."""

    def __init__(self, status: int, error: str = "", details: str = "") -> None:
        super().__init__(f"HTTP error! status: {status}" + (f" ({error})" if error else ""), details=details)
        self.status = status
        self.error = error

    @property
    def user_message(self) -> str:  # type: ignore[override]
        if self.status >= 500:
            return "Server error. Please check that the server is configured with an API key."
        return f"Request failed with status {self.status}."


class UnexpectedResponse(RevVoiceError):
    """2xx response whose body is not the JSON object the endpoint promises."""

    user_message = "The server sent an unexpected response. Please try again."


class PermissionDenied(RevVoiceError):
    user_message = "Microphone access denied. Please allow microphone permissions and try again."


class HardwareUnavailable(RevVoiceError):
    user_message = "No microphone found. Please connect a microphone and try again."


class RecognitionTerminal(RevVoiceError):
    user_message = "Speech recognition failed. Tap the microphone button to try again."


def error_body(exc: RevVoiceError) -> Dict[str, Any]:
    """JSON body for an error response: {error, details[, retryAfter]}."""
    body: Dict[str, Any] = {"error": exc.message}
    if exc.details:
        body["details"] = exc.details
    if isinstance(exc, RateLimited) and exc.retry_after:
        body["retryAfter"] = exc.retry_after
    return body
