"""Application entrypoint."""

from __future__ import annotations

import logging
import sys
import threading
from concurrent.futures import ThreadPoolExecutor

from capture_controller import SpeechCaptureController
from clipboard import ClipboardService
from config import JsonConfigStore
from errors import EmptyTranscriptError
from hotkey import GlobalHotkeyAdapter
from languages import SUPPORTED_LANGUAGES, language_flag, language_name
from logger_setup import setup_logger
from meeting_session import MeetingSession
from models import CaptureState, MeetingSummary, Speaker, SpeechResult, TranscriptEntry
from recognizer import recognition_factory
from scheduler import ThreadingScheduler
from summarizer import Summarizer
from translator import DebouncedTranslator, Translator

try:
    from PySide6.QtCore import QObject, QSize, Signal
    from PySide6.QtGui import QAction, QBrush, QColor, QIcon, QPainter, QPixmap
    from PySide6.QtWidgets import QApplication, QInputDialog, QMenu, QMessageBox, QSystemTrayIcon
except Exception as exc:  # pragma: no cover
    raise SystemExit(f"PySide6 is required to run the desktop app: {exc}")

from overlay import OverlayWindow

logger = logging.getLogger(__name__)


def _create_icon(color: str = "#888888", size: int = 22) -> QIcon:
    """Generate a simple circular tray icon with the given color."""
    pixmap = QPixmap(QSize(size, size))
    pixmap.fill(QColor(0, 0, 0, 0))  # transparent background
    painter = QPainter(pixmap)
    painter.setRenderHint(QPainter.Antialiasing, True)
    painter.setBrush(QBrush(QColor(color)))
    painter.setPen(QColor(color))
    painter.drawEllipse(2, 2, size - 4, size - 4)
    painter.end()
    return QIcon(pixmap)


ICON_IDLE = "#888888"      # grey
ICON_LISTENING = "#FF4444"  # red
ICON_RECOVERING = "#FFCC00"  # yellow
ICON_ERROR = "#FF8800"     # orange


def _format_summary(summary: MeetingSummary) -> str:
    return "\n\n".join(
        [
            summary.summary_a,
            summary.decisions_a,
            summary.action_items_a,
            summary.summary_b,
            summary.decisions_b,
            summary.action_items_b,
        ]
    )


class UIBridge(QObject):
    interim_signal = Signal(str)
    interim_translation_signal = Signal(str)
    entry_signal = Signal(str, str, str)  # speaker, original, translated
    error_signal = Signal(str)
    state_signal = Signal(str, str)  # from_state, to_state
    summary_signal = Signal(str)


class App:
    def __init__(self) -> None:
        self.app = QApplication(sys.argv)
        self.app.setQuitOnLastWindowClosed(False)
        self.config_store = JsonConfigStore()
        self.clipboard = ClipboardService()
        self.overlay = OverlayWindow()
        self.ui = UIBridge()
        self.ui.interim_signal.connect(self._on_interim_ui)
        self.ui.interim_translation_signal.connect(self._on_interim_translation_ui)
        self.ui.entry_signal.connect(self._on_entry_ui)
        self.ui.error_signal.connect(self._on_error_ui)
        self.ui.state_signal.connect(self._on_state_change_ui)
        self.ui.summary_signal.connect(self._on_summary_ui)

        api_key = self.config_store.get_api_key()
        language_a, language_b = self.config_store.get_languages()
        name_a, name_b = self.config_store.get_speaker_names()
        self.translator = Translator(
            api_key=api_key,
            model=self.config_store.get_llm_model(),
            enabled=self.config_store.get_translation_enabled(),
        )
        self.summarizer = Summarizer(api_key=api_key, model=self.config_store.get_llm_model())
        self.session = MeetingSession(
            title="Meeting",
            speaker_a=Speaker("a", name_a, language_a),
            speaker_b=Speaker("b", name_b, language_b),
            translator=self.translator,
            summarizer=self.summarizer,
            on_entry=self._on_entry,
        )
        # One worker keeps translated entries in utterance order.
        self.executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="translate")
        self.scheduler = ThreadingScheduler()
        self.interim_translator = DebouncedTranslator(self.translator, self.scheduler)
        self.controller = self._build_controller(api_key)

        self.hotkey = GlobalHotkeyAdapter(
            {
                self.config_store.get_hotkey(): self._toggle_capture,
                self.config_store.get_speaker_hotkey(): self._switch_speaker,
            }
        )

        self.tray = QSystemTrayIcon()
        self.tray.setIcon(_create_icon(ICON_IDLE))
        self.tray.setToolTip("Meeting Captions — Ready")
        self._setup_menu()
        self.tray.show()

    def _build_controller(self, api_key: str) -> SpeechCaptureController:
        return SpeechCaptureController(
            recognition_factory=recognition_factory(api_key, self.config_store.get_asr_model()),
            scheduler=self.scheduler,
            language=self.session.current_speaker.language,
            on_result=self._on_result,
            on_interim=self._on_interim,
            on_error=self._on_error,
            on_state_change=self._on_state_change,
        )

    def _setup_menu(self) -> None:
        menu = QMenu()

        self.capture_action = QAction("Start Listening", menu)
        self.capture_action.triggered.connect(self._toggle_capture)
        menu.addAction(self.capture_action)

        self.speaker_action = QAction(self._speaker_label(), menu)
        self.speaker_action.triggered.connect(self._switch_speaker)
        menu.addAction(self.speaker_action)

        end_action = QAction("End Meeting", menu)
        end_action.triggered.connect(self._end_meeting)
        menu.addAction(end_action)

        menu.addSeparator()
        copy_action = QAction("Copy Transcript", menu)
        copy_action.triggered.connect(self._copy_transcript)
        menu.addAction(copy_action)

        summary_action = QAction("Summarize && Copy", menu)
        summary_action.triggered.connect(self._summarize)
        menu.addAction(summary_action)

        menu.addSeparator()
        api_action = QAction("Set API Key", menu)
        api_action.triggered.connect(self._set_api_key)
        menu.addAction(api_action)

        languages_action = QAction("Set Languages", menu)
        languages_action.triggered.connect(self._set_languages)
        menu.addAction(languages_action)

        menu.addSeparator()
        quit_action = QAction("Quit", menu)
        quit_action.triggered.connect(self.quit)
        menu.addAction(quit_action)

        self.tray.setContextMenu(menu)

    def _speaker_label(self) -> str:
        speaker = self.session.current_speaker
        return f"Speaker: {speaker.name} {language_flag(speaker.language)}"

    # ------------------------------------------------------------------
    # Actions
    # ------------------------------------------------------------------

    def _toggle_capture(self) -> None:
        if self.controller.desired_listening:
            self.controller.stop_listening()
            return
        self.session.start()
        self.controller.start_listening()

    def _switch_speaker(self) -> None:
        speaker = self.session.switch_speaker()
        logger.info("Current speaker: %s (%s)", speaker.name, speaker.language)
        self.controller.set_language(speaker.language)
        self.speaker_action.setText(self._speaker_label())

    def _end_meeting(self) -> None:
        self.controller.stop_listening()
        self.session.end()

    def _copy_transcript(self) -> None:
        result = self.clipboard.copy_text(self.session.to_text())
        if not result.success:
            self.overlay.show_error(f"Copy failed: {result.reason}")

    def _summarize(self) -> None:
        def work() -> None:
            try:
                summary = self.session.summarize()
            except EmptyTranscriptError as exc:
                self.ui.error_signal.emit(str(exc))
                return
            self.ui.summary_signal.emit(_format_summary(summary))

        threading.Thread(target=work, daemon=True).start()

    def _set_api_key(self) -> None:
        value, ok = QInputDialog.getText(None, "API Key", "DashScope API Key")
        if not ok:
            return
        self.config_store.set_api_key(value)
        self.translator.set_api_key(value)
        self.summarizer.set_api_key(value)
        # Hot-swap the capture controller with the new key
        self.controller.close()
        self.controller = self._build_controller(value)
        QMessageBox.information(None, "Saved", "API Key saved and applied.")

    def _set_languages(self) -> None:
        labels = [f"{code} — {language_name(code)}" for code in SUPPORTED_LANGUAGES]
        chosen = []
        for speaker in (self.session.speaker_a, self.session.speaker_b):
            current = SUPPORTED_LANGUAGES.index(speaker.language) if speaker.language in SUPPORTED_LANGUAGES else 0
            value, ok = QInputDialog.getItem(
                None, "Languages", f"Language for {speaker.name}", labels, current, False
            )
            if not ok:
                return
            chosen.append(value.split(" ", 1)[0])

        self.session.speaker_a.language, self.session.speaker_b.language = chosen
        self.config_store.set_languages(chosen[0], chosen[1])
        self.controller.set_language(self.session.current_speaker.language)
        self.speaker_action.setText(self._speaker_label())

    # ------------------------------------------------------------------
    # Callbacks (called from worker threads → emit signals for UI thread)
    # ------------------------------------------------------------------

    def _on_result(self, result: SpeechResult) -> None:
        self.interim_translator.cancel()
        speaker = self.session.speaker_for_language(result.language)
        self.executor.submit(self.session.add_final_result, result, speaker)

    def _on_entry(self, entry: TranscriptEntry) -> None:
        self.ui.entry_signal.emit(entry.speaker_name, entry.original_text, entry.translated_text)

    def _on_interim(self, text: str) -> None:
        self.ui.interim_signal.emit(text)
        if not text.strip():
            self.interim_translator.cancel()
            return
        speaker = self.session.current_speaker
        listener = self.session.listener_of(speaker)
        self.interim_translator.submit(
            text,
            speaker.language,
            listener.language,
            lambda r: self.ui.interim_translation_signal.emit(r.translated_text),
        )

    def _on_error(self, message: str) -> None:
        self.ui.error_signal.emit(message)

    def _on_state_change(self, from_state: CaptureState, to_state: CaptureState) -> None:
        self.ui.state_signal.emit(from_state.value, to_state.value)

    # ------------------------------------------------------------------
    # UI thread handlers (safe for Qt)
    # ------------------------------------------------------------------

    def _on_interim_ui(self, text: str) -> None:
        self.overlay.show_interim(self.session.current_speaker.name, text)

    def _on_interim_translation_ui(self, text: str) -> None:
        self.overlay.show_interim_translation(text)

    def _on_entry_ui(self, speaker: str, original: str, translated: str) -> None:
        self.overlay.show_entry(speaker, original, translated)

    def _on_error_ui(self, msg: str) -> None:
        self.overlay.show_error(msg)

    def _on_summary_ui(self, text: str) -> None:
        result = self.clipboard.copy_text(text)
        if result.success:
            self.tray.showMessage("Meeting Captions", "Summary copied to clipboard.")
        else:
            self.overlay.show_error(f"Copy failed: {result.reason}")

    def _on_state_change_ui(self, from_state: str, to_state: str) -> None:
        if to_state == CaptureState.LISTENING.value:
            self.tray.setIcon(_create_icon(ICON_LISTENING))
            self.tray.setToolTip("Meeting Captions — Listening...")
            self.capture_action.setText("Stop Listening")
            self.overlay.show_status("🎙️ Listening...")
        elif to_state in (CaptureState.PENDING_RESTART.value, CaptureState.REFRESHING.value):
            self.tray.setIcon(_create_icon(ICON_RECOVERING))
            self.tray.setToolTip("Meeting Captions — Reconnecting...")
        elif to_state == CaptureState.IDLE.value:
            self.tray.setIcon(_create_icon(ICON_IDLE))
            self.tray.setToolTip("Meeting Captions — Ready")
            self.capture_action.setText("Start Listening")
            self.overlay.hide_with_delay(400)
        elif to_state == CaptureState.FAILED.value:
            self.tray.setIcon(_create_icon(ICON_ERROR))
            self.tray.setToolTip("Meeting Captions — Stopped")
            self.capture_action.setText("Start Listening")

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def run(self) -> int:
        try:
            self.hotkey.start()
        except Exception as exc:
            self.overlay.show_error(f"Hotkey disabled: {exc}")
        return self.app.exec()

    def quit(self) -> None:
        self.hotkey.stop()
        self.interim_translator.cancel()
        self.controller.close()
        self.executor.shutdown(wait=False)
        self.app.quit()


def main() -> int:
    setup_logger()
    app = App()
    return app.run()


if __name__ == "__main__":
    raise SystemExit(main())
