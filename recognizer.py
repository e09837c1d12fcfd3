"""Continuous recognition handle using the microphone and DashScope qwen3-asr-flash.

The qwen3-asr-flash model accepts complete audio and streams back text via
``stream=True``. The handle reads microphone frames on a worker thread,
cuts them into utterances on silence, and sends each utterance to the model.
Streamed text is reported as interim results and the last text of each
utterance as a final result, through the same start / end / result / error
handlers a browser speech-recognition object exposes.
"""

from __future__ import annotations

import base64
import functools
import io
import logging
import os
import threading
import wave
from http import HTTPStatus
from queue import Empty, Queue
from typing import Callable, List, Optional

import dashscope
import numpy as np

from errors import (
    ABORTED,
    AUDIO_CAPTURE,
    LANGUAGE_NOT_SUPPORTED,
    NETWORK,
    NO_SPEECH,
    SERVICE_NOT_ALLOWED,
    AudioCaptureError,
    InvalidStateError,
)
from interfaces import Recorder
from languages import primary_subtag
from models import (
    AudioFrame,
    RecognitionAlternative,
    RecognitionErrorEvent,
    RecognitionResultEvent,
    RecognitionResultItem,
)
from recorder import SoundDeviceRecorder, input_available

logger = logging.getLogger(__name__)


class _RecognitionFailure(Exception):
    def __init__(self, error: str, message: str) -> None:
        super().__init__(message)
        self.error = error
        self.message = message


def _pcm_to_wav_base64(
    pcm: bytes,
    sample_rate: int = 16000,
    channels: int = 1,
    sample_width: int = 2,
) -> str:
    """Convert raw PCM bytes to a base64-encoded WAV string."""
    buf = io.BytesIO()
    with wave.open(buf, "wb") as wf:
        wf.setnchannels(channels)
        wf.setsampwidth(sample_width)
        wf.setframerate(sample_rate)
        wf.writeframes(pcm)
    return base64.b64encode(buf.getvalue()).decode("ascii")


def _rms(pcm: bytes) -> float:
    samples = np.frombuffer(pcm, dtype=np.int16).astype(np.float32)
    if samples.size == 0:
        return 0.0
    return float(np.sqrt(np.mean(samples * samples)))


def _classify_failure(message: str, status_code: Optional[int] = None) -> str:
    low = message.lower()
    if status_code in (HTTPStatus.UNAUTHORIZED, HTTPStatus.FORBIDDEN):
        return SERVICE_NOT_ALLOWED
    if "401" in low or "auth" in low or "api key" in low or "access denied" in low:
        return SERVICE_NOT_ALLOWED
    if "language" in low and "support" in low:
        return LANGUAGE_NOT_SUPPORTED
    return NETWORK


class DashscopeSpeechRecognition:
    def __init__(
        self,
        api_key: str = "",
        model: str = "qwen3-asr-flash",
        recorder_factory: Callable[[], Recorder] = SoundDeviceRecorder,
        request_timeout_s: float = 10.0,
        silence_threshold: float = 350.0,
        silence_duration_s: float = 0.8,
        max_segment_s: float = 15.0,
        no_speech_timeout_s: float = 8.0,
        queue_maxsize: int = 100,
    ) -> None:
        self.continuous = False
        self.interim_results = False
        self.lang = "en-US"
        self.max_alternatives = 1

        self.on_start: Optional[Callable[[], None]] = None
        self.on_end: Optional[Callable[[], None]] = None
        self.on_audio_start: Optional[Callable[[], None]] = None
        self.on_speech_start: Optional[Callable[[], None]] = None
        self.on_result: Optional[Callable[[RecognitionResultEvent], None]] = None
        self.on_error: Optional[Callable[[RecognitionErrorEvent], None]] = None

        self._api_key = api_key
        self._model = model
        self._recorder_factory = recorder_factory
        self._request_timeout_s = request_timeout_s
        self._silence_threshold = silence_threshold
        self._silence_duration_s = silence_duration_s
        self._max_segment_s = max_segment_s
        self._no_speech_timeout_s = no_speech_timeout_s
        self._queue_maxsize = queue_maxsize

        self._lock = threading.Lock()
        self._thread: Optional[threading.Thread] = None
        self._stop_event = threading.Event()
        self._abort_event = threading.Event()
        self._results: List[RecognitionResultItem] = []

    def start(self) -> None:
        with self._lock:
            if self._thread is not None and self._thread.is_alive():
                raise InvalidStateError("recognition has already started")
            self._stop_event.clear()
            self._abort_event.clear()
            self._thread = threading.Thread(target=self._worker, args=(self.lang,), daemon=True)
            self._thread.start()

    def stop(self) -> None:
        self._stop_event.set()

    def abort(self) -> None:
        self._abort_event.set()
        self._stop_event.set()

    # ------------------------------------------------------------------
    # Internal
    # ------------------------------------------------------------------

    def _worker(self, lang: str) -> None:
        self._results = []
        audio_queue: Queue[AudioFrame | None] = Queue(maxsize=self._queue_maxsize)
        recorder = self._recorder_factory()
        try:
            recorder.start(audio_queue)
        except AudioCaptureError as exc:
            logger.warning("Audio capture failed: %s", exc)
            self._emit(self.on_error, RecognitionErrorEvent(AUDIO_CAPTURE, str(exc)))
            self._emit(self.on_end)
            return

        self._emit(self.on_start)
        self._emit(self.on_audio_start)
        try:
            self._capture(audio_queue, lang)
        except _RecognitionFailure as exc:
            self._emit(self.on_error, RecognitionErrorEvent(exc.error, exc.message))
        finally:
            recorder.stop()

        if self._abort_event.is_set():
            self._emit(self.on_error, RecognitionErrorEvent(ABORTED, "recognition aborted"))
        self._emit(self.on_end)

    def _capture(self, audio_queue: Queue[AudioFrame | None], lang: str) -> None:
        """Cut frames into utterances and recognise each one under the start-time locale."""
        segment = bytearray()
        sample_rate = 16000
        channels = 1
        in_speech = False
        idle_s = silent_s = speech_s = 0.0

        while not self._stop_event.is_set():
            try:
                frame = audio_queue.get(timeout=0.2)
            except Empty:
                continue
            if frame is None:  # Sentinel
                break
            sample_rate = frame.sample_rate
            channels = frame.channels
            loud = _rms(frame.pcm16_bytes) >= self._silence_threshold

            if not in_speech:
                if not loud:
                    idle_s += frame.duration_s
                    if idle_s >= self._no_speech_timeout_s:
                        raise _RecognitionFailure(NO_SPEECH, "no speech detected")
                    continue
                in_speech = True
                self._emit(self.on_speech_start)

            segment.extend(frame.pcm16_bytes)
            speech_s += frame.duration_s
            silent_s = 0.0 if loud else silent_s + frame.duration_s
            if silent_s >= self._silence_duration_s or speech_s >= self._max_segment_s:
                self._recognize(bytes(segment), sample_rate, channels, lang)
                segment.clear()
                in_speech = False
                idle_s = silent_s = speech_s = 0.0
                if not self.continuous:
                    return

        if segment and not self._abort_event.is_set():
            self._recognize(bytes(segment), sample_rate, channels, lang)

    def _recognize(self, pcm: bytes, sample_rate: int, channels: int, lang: str) -> None:
        """Send one utterance to dashscope and report partial/final text."""
        api_key = self._api_key or os.getenv("DASHSCOPE_API_KEY", "")
        if not api_key:
            raise _RecognitionFailure(SERVICE_NOT_ALLOWED, "No DashScope API key configured")

        audio = "data:audio/wav;base64," + _pcm_to_wav_base64(pcm, sample_rate, channels)
        try:
            response = dashscope.MultiModalConversation.call(
                api_key=api_key,
                model=self._model,
                messages=[
                    {"role": "system", "content": [{"text": ""}]},
                    {"role": "user", "content": [{"audio": audio}]},
                ],
                result_format="message",
                asr_options={"enable_itn": False, "language": primary_subtag(lang)},
                stream=True,
                timeout=self._request_timeout_s,
            )
        except Exception as exc:
            raise _RecognitionFailure(_classify_failure(str(exc)), str(exc)) from exc

        latest_text = ""
        try:
            for chunk in response:
                if self._abort_event.is_set():
                    return
                self._check_status(chunk)
                text = self._extract_text(chunk)
                if text:
                    latest_text = text
                    if self.interim_results:
                        self._emit_result(text, is_final=False)
        except _RecognitionFailure:
            raise
        except Exception as exc:
            raise _RecognitionFailure(_classify_failure(str(exc)), str(exc)) from exc

        if latest_text:
            self._emit_result(latest_text, is_final=True)
        elif self._results and not self._results[-1].is_final:
            self._emit_result("", is_final=False)

    def _check_status(self, chunk: object) -> None:
        if not isinstance(chunk, dict):
            return
        status_code = chunk.get("status_code")
        if status_code is None or status_code == HTTPStatus.OK:
            return
        message = f"{chunk.get('code', '')} {chunk.get('message', '')}".strip()
        raise _RecognitionFailure(_classify_failure(message, status_code), message)

    def _extract_text(self, chunk: object) -> str:
        """Pull text from a dashscope streaming chunk dict."""
        if isinstance(chunk, dict):
            output = chunk.get("output") or {}
            choices = output.get("choices") or []
            if not choices:
                return ""
            message = choices[0].get("message") or {}
            content = message.get("content") or []
            if not content:
                return ""
            value = content[0]
            if isinstance(value, dict):
                return str(value.get("text", ""))
        return ""

    def _emit_result(self, text: str, is_final: bool) -> None:
        # Model gives no confidence score, report 0.0.
        item = RecognitionResultItem(is_final, [RecognitionAlternative(text, 0.0)])
        if self._results and not self._results[-1].is_final:
            self._results[-1] = item
        else:
            self._results.append(item)
        index = len(self._results) - 1
        self._emit(self.on_result, RecognitionResultEvent(index, list(self._results)))

    def _emit(self, handler: Optional[Callable[..., None]], *args: object) -> None:
        if handler is None:
            return
        try:
            handler(*args)
        except Exception:
            logger.exception("Recognition handler failed")


def recognition_factory(
    api_key: str,
    model: str = "qwen3-asr-flash",
) -> Optional[Callable[[], DashscopeSpeechRecognition]]:
    """Return a handle constructor, or None when there is no microphone."""
    if not input_available():
        return None
    return functools.partial(DashscopeSpeechRecognition, api_key=api_key, model=model)
