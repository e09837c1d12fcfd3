"""Core data models for the app."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import List


class CaptureState(str, Enum):
    IDLE = "IDLE"
    STARTING = "STARTING"
    LISTENING = "LISTENING"
    PENDING_RESTART = "PENDING_RESTART"
    REFRESHING = "REFRESHING"
    FAILED = "FAILED"


class MeetingStatus(str, Enum):
    SCHEDULED = "SCHEDULED"
    IN_PROGRESS = "IN_PROGRESS"
    COMPLETED = "COMPLETED"


@dataclass
class AudioFrame:
    pcm16_bytes: bytes
    sample_rate: int = 16000
    channels: int = 1
    timestamp_ms: int = 0

    @property
    def duration_s(self) -> float:
        return len(self.pcm16_bytes) / (2 * self.channels * self.sample_rate)


@dataclass
class RecognitionAlternative:
    transcript: str
    confidence: float = 0.0


@dataclass
class RecognitionResultItem:
    is_final: bool
    alternatives: List[RecognitionAlternative] = field(default_factory=list)


@dataclass
class RecognitionResultEvent:
    result_index: int
    results: List[RecognitionResultItem]


@dataclass
class RecognitionErrorEvent:
    error: str
    message: str = ""


@dataclass
class SpeechResult:
    transcript: str
    is_final: bool
    confidence: float
    language: str = ""  # app language the audio was captured under


@dataclass
class RecoveryPolicy:
    """Timing and retry limits for keeping a capture session alive (seconds)."""

    restart_delay_s: float = 0.3
    max_restart_delay_s: float = 5.0
    max_consecutive_errors: int = 5
    no_speech_delay_s: float = 0.5
    audio_capture_delay_s: float = 1.0
    refresh_start_delay_s: float = 0.1
    refresh_interval_s: float = 60.0
    stale_after_s: float = 30.0

    def backoff_delay(self, attempt: int) -> float:
        return min(self.restart_delay_s * (2 ** attempt), self.max_restart_delay_s)


@dataclass
class TranslationResult:
    translated_text: str
    source_lang: str
    target_lang: str
    mode: str = ""


@dataclass
class Speaker:
    id: str
    name: str
    language: str


@dataclass
class TranscriptEntry:
    speaker_id: str
    speaker_name: str
    speaker_language: str
    original_text: str
    translated_text: str
    translated_language: str
    confidence: float
    timestamp: datetime


@dataclass
class MeetingSummary:
    language_a: str
    language_b: str
    summary_a: str
    decisions_a: str
    action_items_a: str
    summary_b: str
    decisions_b: str
    action_items_b: str
    mode: str = ""


@dataclass
class CopyResult:
    success: bool
    reason: str
