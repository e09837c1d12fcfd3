from __future__ import annotations

from languages import SUPPORTED_LANGUAGES, language_flag, language_name, primary_subtag, to_locale


def test_every_supported_language_has_a_locale() -> None:
    locales = [to_locale(code) for code in SUPPORTED_LANGUAGES]
    assert locales == [
        "ko-KR", "en-US", "ja-JP", "zh-CN", "es-ES",
        "fr-FR", "de-DE", "pt-BR", "ru-RU", "ar-SA",
    ]


def test_unknown_code_passes_through() -> None:
    assert to_locale("it") == "it"
    assert to_locale("") == ""


def test_primary_subtag() -> None:
    assert primary_subtag("ko-KR") == "ko"
    assert primary_subtag("EN") == "en"


def test_display_helpers() -> None:
    assert language_name("de") == "Deutsch"
    assert language_name("it") == "IT"
    assert language_flag("ko") == "🇰🇷"
    assert language_flag("it") == "🌐"
