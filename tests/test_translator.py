from __future__ import annotations

from types import SimpleNamespace
from typing import Callable, List
from unittest.mock import MagicMock, patch

from models import TranslationResult
from translator import MODE_API, MODE_MOCK, DebouncedTranslator, Translator, mock_translate


def _api_response(content: str, status_code: int = 200) -> SimpleNamespace:
    message = SimpleNamespace(content=content)
    return SimpleNamespace(
        status_code=status_code,
        code="" if status_code == 200 else "InvalidApiKey",
        message="" if status_code == 200 else "Invalid API-key provided.",
        output=SimpleNamespace(choices=[SimpleNamespace(message=message)]),
    )


class FakeTimer:
    def __init__(self, callback: Callable[[], None]) -> None:
        self.callback = callback
        self.cancelled = False

    def cancel(self) -> None:
        self.cancelled = True


class FakeScheduler:
    def __init__(self) -> None:
        self.timers: List[FakeTimer] = []

    def call_later(self, delay_s: float, callback: Callable[[], None]) -> FakeTimer:
        timer = FakeTimer(callback)
        self.timers.append(timer)
        return timer

    def monotonic(self) -> float:
        return 0.0

    def fire_all(self) -> None:
        for timer in list(self.timers):
            if not timer.cancelled:
                timer.callback()


# ---------------------------------------------------------------
# Mock translation
# ---------------------------------------------------------------

def test_mock_uses_phrase_table_case_insensitively() -> None:
    assert mock_translate("  Hello ", "en", "ko") == "안녕하세요"
    assert mock_translate("감사합니다", "ko", "ja") == "ありがとうございます"


def test_mock_korean_to_english_substitutes_keywords() -> None:
    assert mock_translate("오늘 회의 시작", "ko", "en") == "🇺🇸 [Translation] today meeting start"


def test_mock_other_pairs_are_labelled() -> None:
    assert mock_translate("good morning team", "en", "ko") == "🇰🇷 [번역] good morning team"
    assert mock_translate("bonjour", "fr", "de") == "🇩🇪 [Deutsch] bonjour"


# ---------------------------------------------------------------
# Translator
# ---------------------------------------------------------------

def test_same_language_returns_text_unchanged() -> None:
    result = Translator(api_key="k").translate("hello", "en", "en")
    assert result == TranslationResult("hello", "en", "en")


def test_blank_text_returns_empty_translation() -> None:
    result = Translator(api_key="k").translate("   ", "en", "ko")
    assert result.translated_text == ""


@patch("translator.dashscope")
def test_disabled_translation_uses_mock_without_api_call(mock_ds: MagicMock) -> None:
    result = Translator(api_key="k", enabled=False).translate("hello", "en", "ko")

    assert result.mode == MODE_MOCK
    assert result.translated_text == "안녕하세요"
    mock_ds.Generation.call.assert_not_called()


@patch.dict("os.environ", {"DASHSCOPE_API_KEY": ""}, clear=False)
@patch("translator.dashscope")
def test_missing_api_key_uses_mock(mock_ds: MagicMock) -> None:
    result = Translator(api_key="").translate("thank you", "en", "ko")

    assert result.mode == MODE_MOCK
    assert result.translated_text == "감사합니다"
    mock_ds.Generation.call.assert_not_called()


@patch("translator.dashscope")
def test_api_translation(mock_ds: MagicMock) -> None:
    mock_ds.Generation.call.return_value = _api_response("  Let's begin.  ")

    result = Translator(api_key="k", model="qwen-turbo").translate("시작합시다", "ko", "en")

    assert result == TranslationResult("Let's begin.", "ko", "en", MODE_API)
    kwargs = mock_ds.Generation.call.call_args.kwargs
    assert kwargs["model"] == "qwen-turbo"
    assert "한국어" in kwargs["messages"][0]["content"]
    assert kwargs["messages"][1] == {"role": "user", "content": "시작합시다"}


@patch("translator.dashscope")
def test_api_error_falls_back_to_mock(mock_ds: MagicMock) -> None:
    mock_ds.Generation.call.return_value = _api_response("", status_code=401)

    result = Translator(api_key="bad").translate("hello", "en", "ko")

    assert result.mode == MODE_MOCK
    assert result.translated_text == "안녕하세요"


@patch("translator.dashscope")
def test_api_exception_falls_back_to_mock(mock_ds: MagicMock) -> None:
    mock_ds.Generation.call.side_effect = ConnectionError("timeout")

    result = Translator(api_key="k").translate("yes", "en", "ko")

    assert result.mode == MODE_MOCK
    assert result.translated_text == "네"


# ---------------------------------------------------------------
# DebouncedTranslator
# ---------------------------------------------------------------

def test_debounce_only_delivers_latest_request() -> None:
    scheduler = FakeScheduler()
    debounced = DebouncedTranslator(Translator(enabled=False), scheduler)
    results: List[TranslationResult] = []

    debounced.submit("hello", "en", "ko", results.append)
    debounced.submit("thank you", "en", "ko", results.append)
    scheduler.fire_all()

    assert [r.translated_text for r in results] == ["감사합니다"]
    assert scheduler.timers[0].cancelled is True
    assert debounced.pending is False


def test_debounce_cancel_drops_pending_request() -> None:
    scheduler = FakeScheduler()
    debounced = DebouncedTranslator(Translator(enabled=False), scheduler)
    results: List[TranslationResult] = []

    debounced.submit("hello", "en", "ko", results.append)
    debounced.cancel()
    scheduler.fire_all()

    assert results == []


def test_debouncers_do_not_interfere() -> None:
    scheduler = FakeScheduler()
    translator = Translator(enabled=False)
    first = DebouncedTranslator(translator, scheduler)
    second = DebouncedTranslator(translator, scheduler)
    results: List[str] = []

    first.submit("hello", "en", "ko", lambda r: results.append(r.translated_text))
    second.submit("yes", "en", "ko", lambda r: results.append(r.translated_text))
    scheduler.fire_all()

    assert results == ["안녕하세요", "네"]


def test_cancel_while_translating_drops_the_late_result() -> None:
    # A final result arrives while the interim preview is being translated.
    scheduler = FakeScheduler()
    holder: dict = {}

    class SlowTranslator:
        def translate(self, text: str, source_lang: str, target_lang: str) -> TranslationResult:
            holder["debounced"].cancel()
            return TranslationResult("late", source_lang, target_lang, MODE_MOCK)

    debounced = DebouncedTranslator(SlowTranslator(), scheduler)  # type: ignore[arg-type]
    holder["debounced"] = debounced
    results: List[TranslationResult] = []

    debounced.submit("hello wor", "en", "ko", results.append)
    scheduler.fire_all()

    assert results == []
