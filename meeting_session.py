"""In-memory meeting: speakers, translated transcript and summary."""

from __future__ import annotations

import logging
import threading
from datetime import datetime, timezone
from typing import Callable, List, Optional

from languages import language_flag
from models import MeetingStatus, MeetingSummary, Speaker, SpeechResult, TranscriptEntry
from summarizer import Summarizer
from translator import Translator

logger = logging.getLogger(__name__)

EntryCallback = Callable[[TranscriptEntry], None]


def _now() -> datetime:
    return datetime.now(timezone.utc)


class MeetingSession:
    def __init__(
        self,
        title: str,
        speaker_a: Speaker,
        speaker_b: Speaker,
        translator: Translator,
        summarizer: Summarizer,
        on_entry: Optional[EntryCallback] = None,
    ) -> None:
        self.title = title
        self.speaker_a = speaker_a
        self.speaker_b = speaker_b
        self._translator = translator
        self._summarizer = summarizer
        self._on_entry = on_entry

        self._lock = threading.Lock()
        self._entries: List[TranscriptEntry] = []
        self._current = speaker_a
        self.status = MeetingStatus.SCHEDULED
        self.started_at: Optional[datetime] = None
        self.ended_at: Optional[datetime] = None

    @property
    def current_speaker(self) -> Speaker:
        return self._current

    @property
    def entries(self) -> List[TranscriptEntry]:
        with self._lock:
            return list(self._entries)

    @property
    def duration_s(self) -> float:
        if self.started_at is None:
            return 0.0
        end = self.ended_at or _now()
        return (end - self.started_at).total_seconds()

    def start(self) -> None:
        if self.status == MeetingStatus.IN_PROGRESS:
            return
        self.status = MeetingStatus.IN_PROGRESS
        if self.started_at is None:
            self.started_at = _now()
        self.ended_at = None
        logger.info("Meeting %r started", self.title)

    def end(self) -> None:
        if self.status != MeetingStatus.IN_PROGRESS:
            return
        self.status = MeetingStatus.COMPLETED
        self.ended_at = _now()
        logger.info("Meeting %r ended after %.0fs", self.title, self.duration_s)

    def switch_speaker(self) -> Speaker:
        self._current = self.speaker_b if self._current is self.speaker_a else self.speaker_a
        return self._current

    def set_current_speaker(self, speaker_id: str) -> Speaker:
        for speaker in (self.speaker_a, self.speaker_b):
            if speaker.id == speaker_id:
                self._current = speaker
                return speaker
        raise KeyError(speaker_id)

    def listener_of(self, speaker: Speaker) -> Speaker:
        return self.speaker_b if speaker is self.speaker_a else self.speaker_a

    def speaker_for_language(self, language: str) -> Speaker:
        """Speaker whose audio was captured under ``language``; current speaker first."""
        current = self._current
        if not language or current.language == language:
            return current
        other = self.listener_of(current)
        return other if other.language == language else current

    def add_final_result(self, result: SpeechResult, speaker: Speaker) -> Optional[TranscriptEntry]:
        """Translate a finalized utterance for the other speaker and record it."""
        text = result.transcript.strip()
        if not text:
            return None

        target = self.listener_of(speaker).language
        translation = self._translator.translate(text, speaker.language, target)
        entry = TranscriptEntry(
            speaker_id=speaker.id,
            speaker_name=speaker.name,
            speaker_language=speaker.language,
            original_text=text,
            translated_text=translation.translated_text,
            translated_language=target,
            confidence=result.confidence,
            timestamp=_now(),
        )
        with self._lock:
            self._entries.append(entry)
        if self._on_entry:
            self._on_entry(entry)
        return entry

    def transcript_lines(self) -> List[str]:
        return [f"{e.speaker_name}: {e.original_text}" for e in self.entries]

    def to_text(self) -> str:
        lines = [self.title]
        for e in self.entries:
            stamp = e.timestamp.astimezone().strftime("%H:%M:%S")
            lines.append(f"[{stamp}] {e.speaker_name} {language_flag(e.speaker_language)}: {e.original_text}")
            if e.translated_text:
                lines.append(f"    {language_flag(e.translated_language)} {e.translated_text}")
        return "\n".join(lines)

    def summarize(self) -> MeetingSummary:
        return self._summarizer.summarize(
            self.transcript_lines(), self.speaker_a.language, self.speaker_b.language
        )
