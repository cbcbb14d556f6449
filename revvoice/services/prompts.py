"""
RevVoice — Prompt Catalogue

Language-specific system prompts and welcome replies, plus the best-effort
utterance classifier that shapes the user prompt (first message, thanks,
goodbye).  Classification is a heuristic: when nothing matches the utterance
passes through unchanged.
"""

from __future__ import annotations

import logging
from enum import Enum
from typing import Dict, Tuple

from ..core.config import DEFAULT_LANGUAGE

logger = logging.getLogger("revvoice.prompts")


SYSTEM_PROMPTS: Dict[str, str] = {
    "en": (
        "You are Rev, a helpful AI assistant for Revolt Motors, an electric vehicle company. "
        "You help customers with electric vehicles, charging, maintenance and general EV questions. "
        "Be knowledgeable, friendly and professional. Keep responses under 50 words so the "
        "conversation flows naturally. Always identify yourself as Rev."
    ),
    "es": (
        "Eres Rev, un asistente de IA de Revolt Motors, una empresa de vehículos eléctricos. "
        "Ayudas con vehículos eléctricos, carga, mantenimiento y preguntas generales. "
        "Sé amable y profesional. Responde en menos de 50 palabras. Identifícate siempre como Rev."
    ),
    "fr": (
        "Vous êtes Rev, l'assistant IA de Revolt Motors, une entreprise de véhicules électriques. "
        "Vous aidez avec les véhicules électriques, la recharge, l'entretien et les questions générales. "
        "Soyez aimable et professionnel. Répondez en moins de 50 mots. Présentez-vous toujours comme Rev."
    ),
    "de": (
        "Sie sind Rev, der KI-Assistent von Revolt Motors, einem Elektrofahrzeugunternehmen. "
        "Sie helfen bei Elektrofahrzeugen, Laden, Wartung und allgemeinen Fragen. "
        "Seien Sie freundlich und professionell. Antworten Sie in weniger als 50 Wörtern. "
        "Stellen Sie sich immer als Rev vor."
    ),
    "hi": (
        "आप रेव हैं, इलेक्ट्रिक वाहन कंपनी रेवोल्ट मोटर्स के AI सहायक। "
        "आप इलेक्ट्रिक वाहनों, चार्जिंग और रखरखाव से जुड़े सवालों में मदद करते हैं। "
        "मित्रवत और पेशेवर रहें। 50 शब्दों से कम में जवाब दें। हमेशा खुद को रेव बताएं।"
    ),
    "zh": (
        "您是Rev，电动汽车公司Revolt Motors的AI助手。"
        "您帮助客户解答电动汽车、充电、维护等问题。"
        "请友好、专业，回答少于50个字，并始终自称Rev。"
    ),
    "ja": (
        "あなたはRevです。電気自動車会社Revolt MotorsのAIアシスタントです。"
        "電気自動車、充電、メンテナンスに関する質問をサポートします。"
        "親しみやすく丁寧に、50語未満で答えてください。常にRevと名乗ってください。"
    ),
    "ko": (
        "당신은 전기차 회사 Revolt Motors의 AI 어시스턴트 Rev입니다. "
        "전기차, 충전, 유지보수에 관한 질문을 돕습니다. "
        "친근하고 전문적으로 50단어 미만으로 답하세요. 항상 자신을 Rev라고 소개하세요."
    ),
}

WELCOME_MESSAGES: Dict[str, str] = {
    "en": "Hello! I'm Rev, your Revolt Motors AI assistant. How can I help you today?",
    "es": "¡Hola! Soy Rev, tu asistente de IA de Revolt Motors. ¿Cómo puedo ayudarte hoy?",
    "fr": "Bonjour ! Je suis Rev, votre assistant IA Revolt Motors. Comment puis-je vous aider ?",
    "de": "Hallo! Ich bin Rev, Ihr KI-Assistent von Revolt Motors. Wie kann ich helfen?",
    "hi": "नमस्ते! मैं रेव हूं, आपका रेवोल्ट मोटर्स AI सहायक। मैं आपकी कैसे मदद कर सकता हूं?",
    "zh": "你好！我是Rev，您的Revolt Motors AI助手。今天我能帮您什么？",
    "ja": "こんにちは！Revolt MotorsのAIアシスタント、Revです。ご用件は何でしょうか？",
    "ko": "안녕하세요! Revolt Motors AI 어시스턴트 Rev입니다. 무엇을 도와드릴까요?",
}

GRATITUDE_KEYWORDS: Tuple[str, ...] = (
    "thank", "thanks", "gracias", "merci", "danke",
    "धन्यवाद", "谢谢", "ありがとう", "감사합니다",
)

FAREWELL_KEYWORDS: Tuple[str, ...] = (
    "bye", "goodbye", "adiós", "au revoir", "auf wiedersehen",
    "अलविदा", "再见", "さようなら", "안녕히",
)


class UtteranceKind(str, Enum):
    FIRST_MESSAGE = "first_message"
    GRATITUDE = "gratitude"
    FAREWELL = "farewell"
    OTHER = "other"


def system_prompt(language: str) -> str:
    return SYSTEM_PROMPTS.get(language, SYSTEM_PROMPTS[DEFAULT_LANGUAGE])


def welcome_message(language: str) -> str:
    return WELCOME_MESSAGES.get(language, WELCOME_MESSAGES[DEFAULT_LANGUAGE])


def classify_utterance(text: str, message_count: int) -> UtteranceKind:
    """First message wins, then gratitude, then farewell."""
    try:
        if message_count == 1:
            return UtteranceKind.FIRST_MESSAGE
        lowered = text.lower()
        if any(k in lowered for k in GRATITUDE_KEYWORDS):
            return UtteranceKind.GRATITUDE
        if any(k in lowered for k in FAREWELL_KEYWORDS):
            return UtteranceKind.FAREWELL
    except Exception as e:
        logger.debug(f"Utterance classification skipped: {e}")
    return UtteranceKind.OTHER


def shape_utterance(text: str, kind: UtteranceKind) -> str:
    if kind == UtteranceKind.FIRST_MESSAGE:
        return (
            f'User says: "{text}". This is their first message. '
            "Respond warmly and ask how you can help with electric vehicles."
        )
    if kind == UtteranceKind.GRATITUDE:
        return (
            f'User says: "{text}". They\'re thanking you. '
            "Respond warmly and offer to help with anything else."
        )
    if kind == UtteranceKind.FAREWELL:
        return (
            f'User says: "{text}". They\'re saying goodbye. '
            "Respond warmly and invite them back anytime."
        )
    return text


def build_user_prompt(text: str, language: str, message_count: int) -> str:
    """Full prompt stored as the user turn for one utterance."""
    shaped = shape_utterance(text, classify_utterance(text, message_count))
    return (
        f"{system_prompt(language)}\n\n"
        f"User message ({language}): {shaped}\n\n"
        "Respond in the same language as the user's message."
    )
