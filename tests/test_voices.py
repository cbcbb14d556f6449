from revvoice.client.voices import Voice, select_voice

VOICES = [
    Voice("Alex", "en-GB"),
    Voice("Samantha", "en-US", default=True),
    Voice("Jorge", "es-ES"),
    Voice("Paulina", "es-MX", default=True),
    Voice("Kyoko", "ja_JP"),
]


def test_default_voice_for_language_wins():
    assert select_voice(VOICES, "es").name == "Paulina"


def test_any_voice_for_language():
    assert select_voice(VOICES, "ja").name == "Kyoko"


def test_english_when_language_missing():
    assert select_voice(VOICES, "ko").name == "Alex"


def test_first_voice_when_no_english():
    voices = [Voice("Anna", "de-DE"), Voice("Thomas", "fr-FR")]
    assert select_voice(voices, "hi").name == "Anna"


def test_no_voices():
    assert select_voice([], "en") is None
