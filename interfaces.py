"""Protocol interfaces used by SpeechCaptureController and its adapters."""

from __future__ import annotations

from queue import Queue
from typing import Callable, Optional, Protocol

from models import AudioFrame, RecognitionErrorEvent, RecognitionResultEvent


class Recorder(Protocol):
    def start(self, audio_queue: Queue[AudioFrame | None]) -> None: ...

    def stop(self) -> None: ...


class RecognitionHandle(Protocol):
    continuous: bool
    interim_results: bool
    lang: str
    max_alternatives: int

    on_start: Optional[Callable[[], None]]
    on_end: Optional[Callable[[], None]]
    on_audio_start: Optional[Callable[[], None]]
    on_speech_start: Optional[Callable[[], None]]
    on_result: Optional[Callable[[RecognitionResultEvent], None]]
    on_error: Optional[Callable[[RecognitionErrorEvent], None]]

    def start(self) -> None: ...

    def stop(self) -> None: ...

    def abort(self) -> None: ...


RecognitionFactory = Callable[[], RecognitionHandle]


class TimerHandle(Protocol):
    def cancel(self) -> None: ...


class Scheduler(Protocol):
    def call_later(self, delay_s: float, callback: Callable[[], None]) -> TimerHandle: ...

    def monotonic(self) -> float: ...
