import pytest

from revvoice.services.prompts import (
    SYSTEM_PROMPTS,
    WELCOME_MESSAGES,
    UtteranceKind,
    build_user_prompt,
    classify_utterance,
    system_prompt,
    welcome_message,
)
from revvoice.core.config import SUPPORTED_LANGUAGES


def test_every_supported_language_has_prompt_and_welcome():
    for lang in SUPPORTED_LANGUAGES:
        assert SYSTEM_PROMPTS[lang]
        assert WELCOME_MESSAGES[lang]


def test_unknown_language_uses_english_prompt():
    assert system_prompt("pt") == SYSTEM_PROMPTS["en"]
    assert welcome_message("pt") == WELCOME_MESSAGES["en"]


def test_first_message_wins_over_keywords():
    assert classify_utterance("thanks, bye", message_count=1) == UtteranceKind.FIRST_MESSAGE


@pytest.mark.parametrize(
    "text",
    ["Thank you so much", "GRACIAS amigo", "merci beaucoup", "बहुत धन्यवाद", "谢谢你", "감사합니다"],
)
def test_gratitude_in_any_language(text):
    assert classify_utterance(text, message_count=4) == UtteranceKind.GRATITUDE


@pytest.mark.parametrize("text", ["ok bye", "Au revoir", "再见", "さようなら"])
def test_farewell_in_any_language(text):
    assert classify_utterance(text, message_count=4) == UtteranceKind.FAREWELL


def test_gratitude_checked_before_farewell():
    assert classify_utterance("thanks and goodbye", message_count=3) == UtteranceKind.GRATITUDE


def test_classification_never_raises():
    assert classify_utterance(None, message_count=3) == UtteranceKind.OTHER


def test_user_prompt_wraps_and_shapes():
    prompt = build_user_prompt("What is the range?", "es", message_count=5)
    assert prompt.startswith(SYSTEM_PROMPTS["es"])
    assert "\n\nUser message (es): What is the range?\n\n" in prompt
    assert prompt.endswith("Respond in the same language as the user's message.")


def test_first_message_prompt_invites_elaboration():
    prompt = build_user_prompt("hi", "en", message_count=1)
    assert 'User says: "hi". This is their first message.' in prompt
