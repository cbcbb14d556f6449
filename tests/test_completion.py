from types import SimpleNamespace

import pytest

from revvoice.core.config import GenerationConfig
from revvoice.core.errors import CompletionFailed, RateLimited, SessionNotFound
from revvoice.core.models import ASSISTANT, USER, Turn
from revvoice.services.completion import (
    GeminiBackend,
    build_contents,
    build_generation_config,
    classify_completion_error,
)


class _UpstreamError(Exception):
    def __init__(self, message, code=None, status=None, details=None):
        super().__init__(message)
        self.message = message
        self.code = code
        self.status = status
        self.details = details


class _FakeModels:
    def __init__(self, result=None, error=None):
        self.result = result
        self.error = error
        self.requests = []

    async def generate_content(self, model, contents, config):
        self.requests.append((model, contents, config))
        if self.error is not None:
            raise self.error
        return self.result


def _backend_with(models: _FakeModels) -> GeminiBackend:
    backend = GeminiBackend(api_key="test-key")
    backend._client = SimpleNamespace(aio=SimpleNamespace(models=models))
    return backend


def test_rate_limit_uses_retry_info_delay():
    details = {
        "error": {
            "details": [
                {"@type": "type.googleapis.com/google.rpc.QuotaFailure"},
                {"@type": "type.googleapis.com/google.rpc.RetryInfo", "retryDelay": "37s"},
            ]
        }
    }
    err = classify_completion_error(_UpstreamError("Too many", code=429, details=details))
    assert isinstance(err, RateLimited)
    assert err.retry_after == "37s"
    assert err.message == "Rate limit exceeded"


def test_rate_limit_defaults_retry_after():
    err = classify_completion_error(_UpstreamError("slow down", status="RESOURCE_EXHAUSTED"))
    assert isinstance(err, RateLimited)
    assert err.retry_after == "60s"


def test_quota_message_is_rate_limited():
    err = classify_completion_error(_UpstreamError("Daily Quota exhausted for project"))
    assert isinstance(err, RateLimited)
    assert err.message == "API quota exceeded"
    assert err.retry_after is None


def test_other_errors_are_completion_failures():
    err = classify_completion_error(ValueError("bad response shape"))
    assert isinstance(err, CompletionFailed)
    assert err.details == "bad response shape"


def test_taxonomy_errors_pass_through():
    original = SessionNotFound("session_x")
    assert classify_completion_error(original) is original


def test_contents_map_assistant_to_model_role():
    contents = build_contents([Turn(USER, "system prompt"), Turn(ASSISTANT, "welcome")])
    assert [c.role for c in contents] == ["user", "model"]
    assert contents[1].parts[0].text == "welcome"


def test_generation_config_carries_sampling_and_safety():
    config = build_generation_config(GenerationConfig())
    assert config.temperature == 0.7
    assert config.top_k == 40
    assert config.top_p == 0.95
    assert config.max_output_tokens == 150
    assert config.candidate_count == 1
    assert len(config.safety_settings) == 4
    assert {s.threshold.value for s in config.safety_settings} == {"BLOCK_MEDIUM_AND_ABOVE"}


def test_prepare_without_api_key_fails():
    with pytest.raises(CompletionFailed):
        GeminiBackend(api_key="").prepare("gemini-2.0-flash-001")


@pytest.mark.asyncio
async def test_complete_refuses_empty_history():
    backend = _backend_with(_FakeModels(result=SimpleNamespace(text="hi")))
    with pytest.raises(CompletionFailed):
        await backend.complete("gemini-2.0-flash-001", [])


@pytest.mark.asyncio
async def test_complete_returns_text():
    models = _FakeModels(result=SimpleNamespace(text="The RV400 has a 150 km range."))
    backend = _backend_with(models)
    reply = await backend.complete("gemini-2.0-flash-001", [Turn(USER, "range?")])

    assert reply == "The RV400 has a 150 km range."
    model, contents, _ = models.requests[0]
    assert model == "gemini-2.0-flash-001"
    assert len(contents) == 1


@pytest.mark.asyncio
async def test_complete_classifies_upstream_errors():
    backend = _backend_with(_FakeModels(error=_UpstreamError("quota", code=429)))
    with pytest.raises(RateLimited):
        await backend.complete("m", [Turn(USER, "hello")])


@pytest.mark.asyncio
async def test_empty_response_is_a_failure():
    backend = _backend_with(_FakeModels(result=SimpleNamespace(text=None)))
    with pytest.raises(CompletionFailed):
        await backend.complete("m", [Turn(USER, "hello")])
