"""Utterance translation between the two meeting languages.

Uses a DashScope chat model when an API key is configured and translation is
enabled; otherwise, or when the API call fails, falls back to a small phrase
table and a labelled pass-through so the UI always has something to show.
"""

from __future__ import annotations

import logging
import os
import threading
from http import HTTPStatus
from typing import Callable, Optional

import dashscope

from interfaces import Scheduler, TimerHandle
from languages import language_flag, language_name
from models import TranslationResult

logger = logging.getLogger(__name__)

MODE_API = "dashscope"
MODE_MOCK = "mock"

MOCK_TRANSLATIONS = {
    ("안녕하세요", "ko", "en"): "Hello",
    ("반갑습니다", "ko", "en"): "Nice to meet you",
    ("감사합니다", "ko", "en"): "Thank you",
    ("네", "ko", "en"): "Yes",
    ("아니요", "ko", "en"): "No",
    ("좋습니다", "ko", "en"): "Good",
    ("알겠습니다", "ko", "en"): "I understand",
    ("미팅을 시작하겠습니다", "ko", "en"): "Let's start the meeting",
    ("오늘 안건은", "ko", "en"): "Today's agenda is",
    ("질문 있으신가요", "ko", "en"): "Do you have any questions?",
    ("다음 주에 다시 이야기합시다", "ko", "en"): "Let's talk again next week",
    ("hello", "en", "ko"): "안녕하세요",
    ("nice to meet you", "en", "ko"): "반갑습니다",
    ("thank you", "en", "ko"): "감사합니다",
    ("yes", "en", "ko"): "네",
    ("no", "en", "ko"): "아니요",
    ("good", "en", "ko"): "좋습니다",
    ("i understand", "en", "ko"): "알겠습니다",
    ("let's start the meeting", "en", "ko"): "미팅을 시작하겠습니다",
    ("today's agenda is", "en", "ko"): "오늘 안건은",
    ("do you have any questions", "en", "ko"): "질문 있으신가요?",
    ("let's talk again next week", "en", "ko"): "다음 주에 다시 이야기합시다",
    ("안녕하세요", "ko", "ja"): "こんにちは",
    ("감사합니다", "ko", "ja"): "ありがとうございます",
    ("こんにちは", "ja", "ko"): "안녕하세요",
    ("ありがとうございます", "ja", "ko"): "감사합니다",
}

KOREAN_KEYWORDS = {
    "안녕": "Hello",
    "네": "Yes",
    "아니": "No",
    "감사": "Thank",
    "좋": "Good",
    "나쁘": "Bad",
    "미팅": "meeting",
    "회의": "meeting",
    "질문": "question",
    "답변": "answer",
    "프로젝트": "project",
    "일정": "schedule",
    "진행": "progress",
    "완료": "complete",
    "시작": "start",
    "종료": "end",
    "오늘": "today",
    "내일": "tomorrow",
    "어제": "yesterday",
}

SYSTEM_PROMPT = (
    "You are a professional translator. Translate the following text from {source} to {target}.\n"
    "Only respond with the translated text, nothing else.\n"
    "Maintain the original tone and context.\n"
    "If the text contains proper nouns or technical terms, keep them as appropriate "
    "for the target language."
)


def mock_translate(text: str, source_lang: str, target_lang: str) -> str:
    key = (text.strip().lower(), source_lang, target_lang)
    if key in MOCK_TRANSLATIONS:
        return MOCK_TRANSLATIONS[key]

    flag = language_flag(target_lang)
    if source_lang == "ko" and target_lang == "en":
        converted = text
        for korean, english in KOREAN_KEYWORDS.items():
            converted = converted.replace(korean, english)
        return f"{flag} [Translation] {converted}"
    if source_lang == "en" and target_lang == "ko":
        return f"{flag} [번역] {text}"
    return f"{flag} [{language_name(target_lang)}] {text}"


class Translator:
    def __init__(
        self,
        api_key: str = "",
        model: str = "qwen-turbo",
        enabled: bool = True,
        request_timeout_s: float = 10.0,
    ) -> None:
        self._api_key = api_key
        self._model = model
        self._enabled = enabled
        self._request_timeout_s = request_timeout_s

    def set_api_key(self, api_key: str) -> None:
        self._api_key = api_key

    def translate(self, text: str, source_lang: str, target_lang: str) -> TranslationResult:
        if source_lang == target_lang:
            return TranslationResult(text, source_lang, target_lang)
        if not text.strip():
            return TranslationResult("", source_lang, target_lang)

        api_key = self._api_key or os.getenv("DASHSCOPE_API_KEY", "")
        if not self._enabled or not api_key:
            logger.debug("Translation API disabled, using mock translation")
            return self._mock(text, source_lang, target_lang)

        try:
            translated = self._call_api(api_key, text, source_lang, target_lang)
        except Exception as exc:
            logger.warning("Translation API failed, using mock translation: %s", exc)
            return self._mock(text, source_lang, target_lang)

        logger.info("Translated %s -> %s: %r -> %r", source_lang, target_lang, text[:30], translated[:30])
        return TranslationResult(translated or text, source_lang, target_lang, MODE_API)

    def _call_api(self, api_key: str, text: str, source_lang: str, target_lang: str) -> str:
        prompt = SYSTEM_PROMPT.format(
            source=language_name(source_lang), target=language_name(target_lang)
        )
        response = dashscope.Generation.call(
            api_key=api_key,
            model=self._model,
            messages=[
                {"role": "system", "content": prompt},
                {"role": "user", "content": text},
            ],
            result_format="message",
            temperature=0.3,
            max_tokens=1000,
            timeout=self._request_timeout_s,
        )
        if response.status_code != HTTPStatus.OK:
            raise RuntimeError(f"{response.code}: {response.message}")
        return str(response.output.choices[0].message.content).strip()

    def _mock(self, text: str, source_lang: str, target_lang: str) -> TranslationResult:
        return TranslationResult(
            mock_translate(text, source_lang, target_lang), source_lang, target_lang, MODE_MOCK
        )


class DebouncedTranslator:
    """Translate only the latest of a burst of requests.

    Each instance owns its pending timer, so separate callers never cancel
    each other's work.
    """

    def __init__(self, translator: Translator, scheduler: Scheduler, delay_s: float = 0.3) -> None:
        self._translator = translator
        self._scheduler = scheduler
        self._delay_s = delay_s
        self._lock = threading.Lock()
        self._timer: Optional[TimerHandle] = None
        self._generation = 0

    def submit(
        self,
        text: str,
        source_lang: str,
        target_lang: str,
        callback: Callable[[TranslationResult], None],
    ) -> None:
        with self._lock:
            self._cancel_locked()
            generation = self._generation

            def run() -> None:
                with self._lock:
                    if generation != self._generation:
                        return
                    self._timer = None
                result = self._translator.translate(text, source_lang, target_lang)
                with self._lock:
                    if generation != self._generation:
                        return
                callback(result)

            self._timer = self._scheduler.call_later(self._delay_s, run)

    def cancel(self) -> None:
        with self._lock:
            self._cancel_locked()

    @property
    def pending(self) -> bool:
        return self._timer is not None

    def _cancel_locked(self) -> None:
        self._generation += 1
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None
