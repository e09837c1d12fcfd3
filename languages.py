"""Language codes, recognizer locales and display helpers."""

from __future__ import annotations

SUPPORTED_LANGUAGES = ("ko", "en", "ja", "zh", "es", "fr", "de", "pt", "ru", "ar")

LANGUAGE_LOCALES = {
    "ko": "ko-KR",
    "en": "en-US",
    "ja": "ja-JP",
    "zh": "zh-CN",
    "es": "es-ES",
    "fr": "fr-FR",
    "de": "de-DE",
    "pt": "pt-BR",
    "ru": "ru-RU",
    "ar": "ar-SA",
}

LANGUAGE_NAMES = {
    "ko": "한국어",
    "en": "English",
    "ja": "日本語",
    "zh": "中文",
    "es": "Español",
    "fr": "Français",
    "de": "Deutsch",
    "pt": "Português",
    "ru": "Русский",
    "ar": "العربية",
}

LANGUAGE_FLAGS = {
    "ko": "🇰🇷",
    "en": "🇺🇸",
    "ja": "🇯🇵",
    "zh": "🇨🇳",
    "es": "🇪🇸",
    "fr": "🇫🇷",
    "de": "🇩🇪",
    "pt": "🇧🇷",
    "ru": "🇷🇺",
    "ar": "🇸🇦",
}


def to_locale(code: str) -> str:
    """Map an app language code to a recognizer locale; unknown codes pass through."""
    return LANGUAGE_LOCALES.get(code, code)


def primary_subtag(locale: str) -> str:
    return locale.split("-", 1)[0].lower()


def language_name(code: str) -> str:
    return LANGUAGE_NAMES.get(code, code.upper())


def language_flag(code: str) -> str:
    return LANGUAGE_FLAGS.get(code, "🌐")
