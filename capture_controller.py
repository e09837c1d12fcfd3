"""State-machine based continuous speech capture.

Keeps one recognition handle alive for as long as the user wants capture:
restarts it after it ends, backs off on repeated failures, and replaces it
periodically when it stops producing results.

Every input (public call, handle event, timer) goes through ``_post`` and is
processed one at a time from a FIFO queue under a re-entrant lock. Callbacks
that call back into the controller therefore queue their work instead of
nesting it.
"""

from __future__ import annotations

import logging
import threading
from collections import deque
from typing import Any, Callable, Deque, Optional, Tuple

from errors import (
    ABORTED,
    AUDIO_CAPTURE,
    MICROPHONE_CHECK_MESSAGE,
    NETWORK,
    NETWORK_GIVE_UP_MESSAGE,
    NO_SPEECH,
    START_FAILED_MESSAGE,
    UNSUPPORTED_MESSAGE,
    error_message,
)
from interfaces import RecognitionFactory, RecognitionHandle, Scheduler, TimerHandle
from languages import to_locale
from models import (
    CaptureState,
    RecognitionErrorEvent,
    RecognitionResultEvent,
    RecoveryPolicy,
    SpeechResult,
)

logger = logging.getLogger(__name__)

StateCallback = Callable[[CaptureState, CaptureState], None]
ResultCallback = Callable[[SpeechResult], None]
InterimCallback = Callable[[str], None]
ErrorCallback = Callable[[str], None]
EndCallback = Callable[[], None]


class SpeechCaptureController:
    def __init__(
        self,
        recognition_factory: Optional[RecognitionFactory],
        scheduler: Scheduler,
        language: str = "ko",
        continuous: bool = True,
        interim_results: bool = True,
        policy: Optional[RecoveryPolicy] = None,
        on_result: Optional[ResultCallback] = None,
        on_interim: Optional[InterimCallback] = None,
        on_error: Optional[ErrorCallback] = None,
        on_end: Optional[EndCallback] = None,
        on_state_change: Optional[StateCallback] = None,
    ) -> None:
        self._recognition_factory = recognition_factory
        self._scheduler = scheduler
        self._language = language
        self._continuous = continuous
        self._interim_results = interim_results
        self._policy = policy or RecoveryPolicy()
        self._on_result = on_result
        self._on_interim = on_interim
        self._on_error = on_error
        self._on_end = on_end
        self._on_state_change = on_state_change

        self._lock = threading.RLock()
        self._events: Deque[Tuple[Callable[..., None], Tuple[Any, ...]]] = deque()
        self._draining = False

        self._state = CaptureState.IDLE
        self._is_supported = recognition_factory is not None
        self._is_listening = False
        self._desired = False
        self._restarting = False
        self._error_count = 0
        self._last_success = scheduler.monotonic()
        self._handle: Optional[RecognitionHandle] = None
        self._restart_timer: Optional[TimerHandle] = None
        self._restart_token = 0
        self._refresh_timer: Optional[TimerHandle] = None
        self._refresh_token = 0
        self._capture_language = language
        self._transcript = ""
        self._interim = ""

    # ------------------------------------------------------------------
    # Observed state
    # ------------------------------------------------------------------

    @property
    def state(self) -> CaptureState:
        return self._state

    @property
    def is_listening(self) -> bool:
        return self._is_listening

    @property
    def is_supported(self) -> bool:
        return self._is_supported

    @property
    def transcript(self) -> str:
        return self._transcript

    @property
    def interim_transcript(self) -> str:
        return self._interim

    @property
    def language(self) -> str:
        return self._language

    @property
    def desired_listening(self) -> bool:
        return self._desired

    @property
    def is_restarting(self) -> bool:
        return self._restarting

    @property
    def consecutive_errors(self) -> int:
        return self._error_count

    @property
    def has_pending_restart(self) -> bool:
        return self._restart_timer is not None

    # ------------------------------------------------------------------
    # Public operations
    # ------------------------------------------------------------------

    def start_listening(self) -> None:
        self._post(self._handle_start_requested)

    def stop_listening(self) -> None:
        self._post(self._handle_stop_requested)

    def reset_transcript(self) -> None:
        self._post(self._handle_reset_requested)

    def set_language(self, language: str) -> None:
        self._post(self._handle_language_changed, language)

    def close(self) -> None:
        self._post(self._handle_close_requested)

    # ------------------------------------------------------------------
    # Event queue
    # ------------------------------------------------------------------

    def _post(self, handler: Callable[..., None], *args: Any) -> None:
        with self._lock:
            self._events.append((handler, args))
            if self._draining:
                return
            self._draining = True
            try:
                while self._events:
                    next_handler, next_args = self._events.popleft()
                    next_handler(*next_args)
            finally:
                self._draining = False

    # ------------------------------------------------------------------
    # Caller requests
    # ------------------------------------------------------------------

    def _handle_start_requested(self) -> None:
        if not self._is_supported:
            logger.warning("[Speech] start requested but recognition is unsupported")
            self._emit_error(UNSUPPORTED_MESSAGE)
            return
        if self._desired:
            return

        logger.info("[Speech] start requested (language=%s)", self._language)
        self._desired = True
        self._error_count = 0
        self._last_success = self._scheduler.monotonic()

        if self._handle is None:
            self._handle = self._create_recognition()
        self._transition(CaptureState.STARTING)
        self._schedule_refresh()

        try:
            self._start_handle(self._handle)
        except Exception as exc:
            logger.warning("[Speech] start failed, recreating handle: %s", exc)
            self._refresh_recognition()

    def _handle_stop_requested(self) -> None:
        logger.info("[Speech] stop requested")
        self._desired = False
        self._restarting = False
        self._cancel_restart()
        self._cancel_refresh()
        self._set_interim("")
        self._safe_stop(self._handle)
        self._is_listening = False
        self._transition(CaptureState.IDLE)

    def _handle_reset_requested(self) -> None:
        self._transcript = ""
        self._set_interim("")

    def _handle_language_changed(self, language: str) -> None:
        if language == self._language:
            return
        logger.info("[Speech] language changed %s -> %s", self._language, language)
        self._language = language
        if self._is_listening:
            # Pending audio is flushed under the old locale; the end event
            # restarts the handle with the new one.
            self._safe_stop(self._handle)

    def _handle_close_requested(self) -> None:
        self._handle_stop_requested()
        self._safe_abort(self._handle)
        self._handle = None

    # ------------------------------------------------------------------
    # Recognition handle
    # ------------------------------------------------------------------

    def _create_recognition(self) -> RecognitionHandle:
        if self._recognition_factory is None:
            raise RuntimeError("speech recognition is not supported")
        recognition = self._recognition_factory()
        recognition.continuous = self._continuous
        recognition.interim_results = self._interim_results
        recognition.max_alternatives = 1
        recognition.lang = to_locale(self._language)

        recognition.on_start = lambda: self._post(self._handle_started, recognition)
        recognition.on_audio_start = lambda: logger.debug("[Speech] audio started")
        recognition.on_speech_start = lambda: self._post(self._handle_speech_detected, recognition)
        recognition.on_result = lambda event: self._post(self._handle_results, recognition, event)
        recognition.on_error = lambda event: self._post(self._handle_error, recognition, event)
        recognition.on_end = lambda: self._post(self._handle_ended, recognition)
        return recognition

    def _start_handle(self, recognition: RecognitionHandle) -> None:
        recognition.lang = to_locale(self._language)
        self._capture_language = self._language
        recognition.start()

    def _is_active(self, recognition: RecognitionHandle) -> bool:
        if recognition is self._handle:
            return True
        logger.debug("[Speech] ignoring event from a retired handle")
        return False

    def _handle_started(self, recognition: RecognitionHandle) -> None:
        if not self._is_active(recognition):
            return
        if not self._desired:
            logger.debug("[Speech] handle started after stop, stopping it again")
            self._safe_stop(recognition)
            return
        logger.info("[Speech] started")
        self._restarting = False
        self._is_listening = True
        self._transition(CaptureState.LISTENING)
        if self._capture_language != self._language:
            logger.info("[Speech] language changed during start, restarting")
            self._safe_stop(recognition)

    def _handle_speech_detected(self, recognition: RecognitionHandle) -> None:
        if not self._is_active(recognition):
            return
        self._last_success = self._scheduler.monotonic()

    def _handle_results(self, recognition: RecognitionHandle, event: RecognitionResultEvent) -> None:
        if not self._is_active(recognition):
            return

        final_text = ""
        interim = ""
        for item in event.results[event.result_index:]:
            if not item.alternatives:
                continue
            best = item.alternatives[0]
            if not item.is_final:
                interim += best.transcript
                continue
            final_text += best.transcript
            self._error_count = 0
            self._last_success = self._scheduler.monotonic()
            logger.info("[Speech] final: %s", best.transcript[:50])
            if self._on_result:
                self._on_result(
                    SpeechResult(best.transcript, True, best.confidence, self._capture_language)
                )

        if final_text:
            self._transcript += final_text
            self._set_interim("")
        else:
            self._set_interim(interim)

    def _handle_ended(self, recognition: RecognitionHandle) -> None:
        if not self._is_active(recognition):
            return
        logger.info("[Speech] ended (desired=%s)", self._desired)
        self._is_listening = False
        if self._on_end:
            self._on_end()
        if self._desired and not self._restarting:
            self._schedule_restart(self._policy.restart_delay_s)
        elif not self._desired and self._state != CaptureState.FAILED:
            self._transition(CaptureState.IDLE)

    def _handle_error(self, recognition: RecognitionHandle, event: RecognitionErrorEvent) -> None:
        if not self._is_active(recognition):
            return
        code = event.error
        logger.warning("[Speech] error: %s %s", code, event.message)

        if code == ABORTED:
            return
        if not self._desired:
            return
        if code == NO_SPEECH:
            self._schedule_restart(self._policy.no_speech_delay_s)
            return
        if code == NETWORK:
            self._error_count += 1
            if self._error_count >= self._policy.max_consecutive_errors:
                self._fail(NETWORK_GIVE_UP_MESSAGE)
                return
            delay = self._policy.backoff_delay(self._error_count - 1)
            logger.info("[Speech] network error, retrying in %.1fs", delay)
            self._schedule_restart(delay)
            return
        if code == AUDIO_CAPTURE:
            self._error_count += 1
            if self._error_count >= self._policy.max_consecutive_errors:
                self._fail(MICROPHONE_CHECK_MESSAGE)
                return
            self._schedule_restart(self._policy.audio_capture_delay_s)
            return

        self._fail(error_message(code))

    # ------------------------------------------------------------------
    # Restart
    # ------------------------------------------------------------------

    def _schedule_restart(
        self,
        delay_s: float,
        action: Optional[Callable[[int], None]] = None,
    ) -> None:
        self._cancel_restart()
        if not self._desired:
            return
        self._restarting = True
        self._transition(CaptureState.PENDING_RESTART)
        logger.debug("[Speech] scheduling restart in %.2fs", delay_s)

        self._restart_token += 1
        token = self._restart_token
        handler = action or self._handle_restart_due
        self._restart_timer = self._scheduler.call_later(
            delay_s, lambda: self._post(handler, token)
        )

    def _handle_restart_due(self, token: int) -> None:
        if token != self._restart_token:
            return
        self._restart_timer = None
        if not self._desired:
            self._restarting = False
            return

        handle = self._handle
        if handle is None:
            self._refresh_recognition()
            return
        try:
            self._start_handle(handle)
        except Exception as exc:
            logger.warning("[Speech] restart failed: %s", exc)
            self._refresh_recognition()
            return
        self._transition(CaptureState.STARTING)

    def _cancel_restart(self) -> None:
        self._restart_token += 1
        if self._restart_timer is not None:
            self._restart_timer.cancel()
            self._restart_timer = None

    # ------------------------------------------------------------------
    # Refresh
    # ------------------------------------------------------------------

    def _refresh_recognition(self) -> None:
        logger.info("[Speech] refreshing recognition handle")
        self._transition(CaptureState.REFRESHING)
        self._safe_abort(self._handle)
        # The retired handle's end event is ignored.
        self._is_listening = False
        self._handle = self._create_recognition()

        if self._desired:
            self._schedule_restart(
                self._policy.refresh_start_delay_s, self._handle_refreshed_start_due
            )
        else:
            self._transition(CaptureState.IDLE)

    def _handle_refreshed_start_due(self, token: int) -> None:
        if token != self._restart_token:
            return
        self._restart_timer = None
        if not self._desired or self._handle is None:
            self._restarting = False
            return
        try:
            self._start_handle(self._handle)
        except Exception as exc:
            logger.error("[Speech] failed to start after refresh: %s", exc)
            self._error_count += 1
            if self._error_count >= self._policy.max_consecutive_errors:
                self._fail(START_FAILED_MESSAGE)
                return
            self._schedule_restart(self._policy.backoff_delay(self._error_count - 1))
            return
        self._transition(CaptureState.STARTING)

    def _schedule_refresh(self) -> None:
        self._cancel_refresh()
        token = self._refresh_token
        self._refresh_timer = self._scheduler.call_later(
            self._policy.refresh_interval_s,
            lambda: self._post(self._handle_refresh_due, token),
        )

    def _handle_refresh_due(self, token: int) -> None:
        if token != self._refresh_token:
            return
        self._refresh_timer = None
        if not self._desired:
            return
        self._schedule_refresh()

        idle_s = self._scheduler.monotonic() - self._last_success
        if idle_s > self._policy.stale_after_s:
            logger.info("[Speech] periodic refresh after %.0fs without results", idle_s)
            self._refresh_recognition()

    def _cancel_refresh(self) -> None:
        self._refresh_token += 1
        if self._refresh_timer is not None:
            self._refresh_timer.cancel()
            self._refresh_timer = None

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _fail(self, message: str) -> None:
        logger.error("[Speech] giving up: %s", message)
        self._desired = False
        self._restarting = False
        self._cancel_restart()
        self._cancel_refresh()
        self._is_listening = False
        self._transition(CaptureState.FAILED)
        self._emit_error(message)

    def _emit_error(self, message: str) -> None:
        if self._on_error:
            self._on_error(message)

    def _set_interim(self, text: str) -> None:
        if text == self._interim:
            return
        self._interim = text
        if self._on_interim:
            self._on_interim(text)

    def _safe_stop(self, recognition: Optional[RecognitionHandle]) -> None:
        if recognition is None:
            return
        try:
            recognition.stop()
        except Exception as exc:
            logger.debug("[Speech] stop ignored: %s", exc)

    def _safe_abort(self, recognition: Optional[RecognitionHandle]) -> None:
        if recognition is None:
            return
        try:
            recognition.abort()
        except Exception as exc:
            logger.debug("[Speech] abort ignored: %s", exc)

    def _transition(self, to_state: CaptureState) -> None:
        from_state = self._state
        if from_state == to_state:
            return
        self._state = to_state
        if self._on_state_change:
            self._on_state_change(from_state, to_state)
