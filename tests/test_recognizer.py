"""Tests for DashscopeSpeechRecognition."""

from __future__ import annotations

import base64
import time
from queue import Queue
from typing import List, Optional
from unittest.mock import MagicMock, patch

import numpy as np
import pytest

from capture_controller import SpeechCaptureController
from errors import (
    ABORTED,
    AUDIO_CAPTURE,
    NETWORK,
    NO_SPEECH,
    SERVICE_NOT_ALLOWED,
    AudioCaptureError,
    InvalidStateError,
)
from models import AudioFrame, RecognitionErrorEvent, RecognitionResultEvent, SpeechResult
from recognizer import DashscopeSpeechRecognition, _pcm_to_wav_base64
from scheduler import ThreadingScheduler


# ---------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------

def _frame(level: int) -> AudioFrame:
    """100ms of constant-level audio at 16kHz."""
    return AudioFrame(pcm16_bytes=np.full(1600, level, dtype=np.int16).tobytes())


LOUD = 3000
SILENT = 0


class FakeRecorder:
    def __init__(self, frames: Optional[List[AudioFrame]] = None, fail: bool = False,
                 sentinel: bool = True) -> None:
        self.frames = frames or []
        self.fail = fail
        self.sentinel = sentinel
        self.stopped = False

    def start(self, audio_queue: Queue) -> None:
        if self.fail:
            raise AudioCaptureError("no input device")
        for frame in self.frames:
            audio_queue.put(frame)
        if self.sentinel:
            audio_queue.put(None)

    def stop(self) -> None:
        self.stopped = True


class EventLog:
    def __init__(self, recognition: DashscopeSpeechRecognition) -> None:
        self.events: List[tuple] = []
        recognition.on_start = lambda: self.events.append(("start",))
        recognition.on_audio_start = lambda: self.events.append(("audio_start",))
        recognition.on_speech_start = lambda: self.events.append(("speech_start",))
        recognition.on_result = lambda e: self.events.append(("result", e))
        recognition.on_error = lambda e: self.events.append(("error", e))
        recognition.on_end = lambda: self.events.append(("end",))

    def names(self) -> List[str]:
        return [e[0] for e in self.events]

    def results(self) -> List[RecognitionResultEvent]:
        return [e[1] for e in self.events if e[0] == "result"]

    def errors(self) -> List[RecognitionErrorEvent]:
        return [e[1] for e in self.events if e[0] == "error"]

    def wait_for_end(self, timeout: float = 3.0) -> None:
        deadline = time.time() + timeout
        while time.time() < deadline:
            if "end" in self.names():
                return
            time.sleep(0.02)


def _utterance() -> List[AudioFrame]:
    return [_frame(LOUD)] * 3 + [_frame(SILENT)] * 9


def _make(recorder: FakeRecorder, **kwargs) -> tuple[DashscopeSpeechRecognition, EventLog]:
    recognition = DashscopeSpeechRecognition(
        api_key="test-key", recorder_factory=lambda: recorder, **kwargs
    )
    recognition.continuous = True
    recognition.interim_results = True
    recognition.lang = "zh-CN"
    return recognition, EventLog(recognition)


def _fake_streaming_response():
    """Simulate dashscope streaming chunks."""
    yield {"output": {"choices": [{"message": {"content": [{"text": "你"}]}}]}}
    yield {"output": {"choices": [{"message": {"content": [{"text": "你好"}]}}]}}
    yield {"output": {"choices": [{"message": {"content": [{"text": "你好世界"}]}}]}}


# ---------------------------------------------------------------
# _pcm_to_wav_base64
# ---------------------------------------------------------------

def test_pcm_to_wav_base64_produces_valid_base64() -> None:
    pcm = b"\x00\x00" * 1600  # 100ms of silence at 16kHz
    result = _pcm_to_wav_base64(pcm, sample_rate=16000, channels=1)
    decoded = base64.b64decode(result)
    assert decoded[:4] == b"RIFF"


# ---------------------------------------------------------------
# Utterance recognition
# ---------------------------------------------------------------

@patch("recognizer.dashscope")
def test_utterance_emits_interim_then_final(mock_ds: MagicMock) -> None:
    mock_ds.MultiModalConversation.call.return_value = _fake_streaming_response()
    recorder = FakeRecorder(_utterance())
    recognition, log = _make(recorder)

    recognition.start()
    log.wait_for_end()

    assert log.names()[:3] == ["start", "audio_start", "speech_start"]
    assert log.names()[-1] == "end"
    results = log.results()
    assert [r.results[r.result_index].is_final for r in results] == [False, False, False, True]
    final = results[-1].results[results[-1].result_index]
    assert final.alternatives[0].transcript == "你好世界"
    # interim results replace each other, so only the final item remains
    assert len(results[-1].results) == 1
    assert recorder.stopped is True

    kwargs = mock_ds.MultiModalConversation.call.call_args.kwargs
    assert kwargs["asr_options"]["language"] == "zh"
    assert kwargs["stream"] is True


@patch("recognizer.dashscope")
def test_interim_results_disabled_reports_only_final(mock_ds: MagicMock) -> None:
    mock_ds.MultiModalConversation.call.return_value = _fake_streaming_response()
    recognition, log = _make(FakeRecorder(_utterance()))
    recognition.interim_results = False

    recognition.start()
    log.wait_for_end()

    results = log.results()
    assert len(results) == 1
    assert results[0].results[0].is_final is True


@patch("recognizer.dashscope")
def test_single_shot_mode_ends_after_first_utterance(mock_ds: MagicMock) -> None:
    mock_ds.MultiModalConversation.call.side_effect = lambda *a, **k: _fake_streaming_response()
    recognition, log = _make(FakeRecorder(_utterance() + _utterance()))
    recognition.continuous = False

    recognition.start()
    log.wait_for_end()

    assert mock_ds.MultiModalConversation.call.call_count == 1
    assert log.names()[-1] == "end"


# ---------------------------------------------------------------
# Error mapping
# ---------------------------------------------------------------

def test_recorder_failure_reports_audio_capture() -> None:
    recognition, log = _make(FakeRecorder(fail=True))

    recognition.start()
    log.wait_for_end()

    assert log.names() == ["error", "end"]
    assert log.errors()[0].error == AUDIO_CAPTURE


def test_silence_reports_no_speech() -> None:
    recognition, log = _make(FakeRecorder([_frame(SILENT)] * 10), no_speech_timeout_s=0.5)

    recognition.start()
    log.wait_for_end()

    assert [e.error for e in log.errors()] == [NO_SPEECH]
    assert "speech_start" not in log.names()


@patch("recognizer.dashscope")
def test_network_error_maps_correctly(mock_ds: MagicMock) -> None:
    mock_ds.MultiModalConversation.call.side_effect = ConnectionError("network timeout")
    recognition, log = _make(FakeRecorder(_utterance()))

    recognition.start()
    log.wait_for_end()

    assert [e.error for e in log.errors()] == [NETWORK]


@patch("recognizer.dashscope")
def test_auth_status_chunk_maps_to_service_not_allowed(mock_ds: MagicMock) -> None:
    mock_ds.MultiModalConversation.call.return_value = iter(
        [{"status_code": 401, "code": "InvalidApiKey", "message": "Invalid API-key provided."}]
    )
    recognition, log = _make(FakeRecorder(_utterance()))

    recognition.start()
    log.wait_for_end()

    assert [e.error for e in log.errors()] == [SERVICE_NOT_ALLOWED]


@patch("recognizer.dashscope", MagicMock())
@patch.dict("os.environ", {"DASHSCOPE_API_KEY": ""}, clear=False)
def test_missing_api_key_reports_service_not_allowed() -> None:
    recorder = FakeRecorder(_utterance())
    recognition = DashscopeSpeechRecognition(api_key="", recorder_factory=lambda: recorder)
    log = EventLog(recognition)
    recognition.continuous = True

    recognition.start()
    log.wait_for_end()

    assert [e.error for e in log.errors()] == [SERVICE_NOT_ALLOWED]


# ---------------------------------------------------------------
# Lifecycle
# ---------------------------------------------------------------

def test_start_twice_raises_and_abort_reports_aborted() -> None:
    recognition, log = _make(FakeRecorder(sentinel=False))

    recognition.start()
    with pytest.raises(InvalidStateError):
        recognition.start()
    recognition.abort()
    log.wait_for_end()

    assert [e.error for e in log.errors()] == [ABORTED]
    assert log.names()[-1] == "end"


@patch("recognizer.dashscope")
def test_stop_flushes_pending_utterance(mock_ds: MagicMock) -> None:
    mock_ds.MultiModalConversation.call.return_value = _fake_streaming_response()
    # Loud audio with no trailing silence and no sentinel.
    recognition, log = _make(FakeRecorder([_frame(LOUD)] * 3, sentinel=False))

    recognition.start()
    time.sleep(0.3)
    recognition.stop()
    log.wait_for_end()

    assert mock_ds.MultiModalConversation.call.call_count == 1
    assert log.errors() == []
    assert log.results()[-1].results[-1].is_final is True


@patch("recognizer.dashscope")
def test_language_hint_is_fixed_when_started(mock_ds: MagicMock) -> None:
    mock_ds.MultiModalConversation.call.return_value = _fake_streaming_response()
    recognition, log = _make(FakeRecorder([_frame(LOUD)] * 3, sentinel=False))

    recognition.start()
    time.sleep(0.3)
    recognition.lang = "en-US"
    recognition.stop()
    log.wait_for_end()

    kwargs = mock_ds.MultiModalConversation.call.call_args.kwargs
    assert kwargs["asr_options"]["language"] == "zh"


@patch("recognizer.dashscope")
def test_controller_language_change_keeps_flushed_speech_in_old_language(
    mock_ds: MagicMock,
) -> None:
    mock_ds.MultiModalConversation.call.side_effect = lambda *a, **k: _fake_streaming_response()
    results: List[SpeechResult] = []
    controller = SpeechCaptureController(
        recognition_factory=lambda: DashscopeSpeechRecognition(
            api_key="test-key",
            recorder_factory=lambda: FakeRecorder([_frame(LOUD)] * 3, sentinel=False),
        ),
        scheduler=ThreadingScheduler(),
        language="ko",
        on_result=results.append,
    )

    controller.start_listening()
    deadline = time.time() + 3.0
    while not controller.is_listening and time.time() < deadline:
        time.sleep(0.02)
    time.sleep(0.3)
    controller.set_language("en")
    while not results and time.time() < deadline:
        time.sleep(0.02)
    controller.close()

    first_call = mock_ds.MultiModalConversation.call.call_args_list[0]
    assert first_call.kwargs["asr_options"]["language"] == "ko"
    assert results[0].transcript == "你好世界"
    assert results[0].language == "ko"
