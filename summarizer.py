"""Bilingual meeting summaries."""

from __future__ import annotations

import json
import logging
import os
from http import HTTPStatus
from typing import Sequence

import dashscope

from errors import EmptyTranscriptError
from languages import language_name
from models import MeetingSummary

logger = logging.getLogger(__name__)

MODE_API = "dashscope"
MODE_MOCK = "mock"

SUMMARY_PROMPT = (
    "You summarise meeting transcripts. Reply with a JSON object only, with the keys "
    "summary_a, decisions_a, action_items_a written in {language_a} and "
    "summary_b, decisions_b, action_items_b written in {language_b}. "
    "Decisions and action items are bullet lists, one item per line starting with '• '."
)

# (summary, decisions, action items) bodies for the mock summary.
MOCK_BODIES = {
    "ko": (
        "이 미팅에서는 주요 안건에 대해 논의했습니다. 참가자들은 적극적으로 의견을 교환했으며, "
        "구체적인 실행 계획을 수립했습니다.",
        "• 프로젝트 일정 확정\n• 역할 분담 완료\n• 다음 미팅 일정 합의",
        "• 화자 1: 기획서 작성 (D+3)\n• 화자 2: 리소스 검토 (D+5)\n• 전체: 다음 주 월요일 팔로업 미팅",
    ),
    "en": (
        "This meeting covered key agenda items. Participants actively exchanged opinions "
        "and established concrete action plans.",
        "• Project schedule confirmed\n• Role assignments completed\n• Next meeting date agreed",
        "• Speaker 1: Draft proposal (D+3)\n• Speaker 2: Resource review (D+5)\n"
        "• All: Follow-up meeting next Monday",
    ),
}


def mock_summary(language_a: str, language_b: str) -> MeetingSummary:
    def part(language: str) -> tuple[str, str, str]:
        summary, decisions, actions = MOCK_BODIES.get(language, MOCK_BODIES["en"])
        return f"[{language_name(language)} Summary]\n\n{summary}", decisions, actions

    summary_a, decisions_a, actions_a = part(language_a)
    summary_b, decisions_b, actions_b = part(language_b)
    return MeetingSummary(
        language_a=language_a,
        language_b=language_b,
        summary_a=summary_a,
        decisions_a=decisions_a,
        action_items_a=actions_a,
        summary_b=summary_b,
        decisions_b=decisions_b,
        action_items_b=actions_b,
        mode=MODE_MOCK,
    )


class Summarizer:
    def __init__(
        self,
        api_key: str = "",
        model: str = "qwen-plus",
        enabled: bool = True,
        request_timeout_s: float = 60.0,
    ) -> None:
        self._api_key = api_key
        self._model = model
        self._enabled = enabled
        self._request_timeout_s = request_timeout_s

    def set_api_key(self, api_key: str) -> None:
        self._api_key = api_key

    def summarize(self, lines: Sequence[str], language_a: str, language_b: str) -> MeetingSummary:
        transcript = "\n".join(line for line in lines if line.strip())
        if not transcript:
            raise EmptyTranscriptError("There is no meeting content to summarise.")

        api_key = self._api_key or os.getenv("DASHSCOPE_API_KEY", "")
        if not self._enabled or not api_key:
            return mock_summary(language_a, language_b)

        try:
            return self._call_api(api_key, transcript, language_a, language_b)
        except Exception as exc:
            logger.warning("Summary API failed, using mock summary: %s", exc)
            return mock_summary(language_a, language_b)

    def _call_api(
        self, api_key: str, transcript: str, language_a: str, language_b: str
    ) -> MeetingSummary:
        prompt = SUMMARY_PROMPT.format(
            language_a=language_name(language_a), language_b=language_name(language_b)
        )
        response = dashscope.Generation.call(
            api_key=api_key,
            model=self._model,
            messages=[
                {"role": "system", "content": prompt},
                {"role": "user", "content": transcript},
            ],
            result_format="message",
            temperature=0.3,
            timeout=self._request_timeout_s,
        )
        if response.status_code != HTTPStatus.OK:
            raise RuntimeError(f"{response.code}: {response.message}")

        content = str(response.output.choices[0].message.content).strip()
        if content.startswith("```"):
            content = content.strip("`")
            content = content[content.find("{"):]
        data = json.loads(content)
        return MeetingSummary(
            language_a=language_a,
            language_b=language_b,
            summary_a=str(data["summary_a"]),
            decisions_a=str(data.get("decisions_a", "")),
            action_items_a=str(data.get("action_items_a", "")),
            summary_b=str(data["summary_b"]),
            decisions_b=str(data.get("decisions_b", "")),
            action_items_b=str(data.get("action_items_b", "")),
            mode=MODE_API,
        )
