"""Caption overlay: interim text, last utterance and its translation."""

from __future__ import annotations

from PySide6.QtCore import Qt, QTimer
from PySide6.QtWidgets import QApplication, QLabel, QVBoxLayout, QWidget

CAPTION_STYLE = (
    "color: white; font-size: 18px; padding: 12px 16px;"
    "background: rgba(0,0,0,190); border-radius: 12px;"
)
TRANSLATION_STYLE = (
    "color: #9AD1FF; font-size: 16px; padding: 8px 16px;"
    "background: rgba(0,0,0,170); border-radius: 12px;"
)
ERROR_STYLE = (
    "color: #FF6B6B; font-size: 18px; padding: 12px 16px;"
    "background: rgba(0,0,0,210); border-radius: 12px;"
)


class OverlayWindow(QWidget):
    def __init__(self) -> None:
        super().__init__()
        self.setWindowFlags(
            Qt.WindowStaysOnTopHint | Qt.FramelessWindowHint | Qt.Tool
        )
        self.setAttribute(Qt.WA_TranslucentBackground, True)
        self.setFixedWidth(720)

        self._caption = QLabel("")
        self._caption.setWordWrap(True)
        self._caption.setStyleSheet(CAPTION_STYLE)
        self._translation = QLabel("")
        self._translation.setWordWrap(True)
        self._translation.setStyleSheet(TRANSLATION_STYLE)
        self._translation.hide()

        layout = QVBoxLayout()
        layout.setContentsMargins(0, 0, 0, 0)
        layout.setSpacing(6)
        layout.addWidget(self._caption)
        layout.addWidget(self._translation)
        self.setLayout(layout)

        self._hide_timer: QTimer | None = None

    def _place_bottom_center(self) -> None:
        screen = QApplication.primaryScreen()
        if screen is None:
            return
        geom = screen.availableGeometry()
        self.adjustSize()
        x = geom.x() + (geom.width() - self.width()) // 2
        y = geom.y() + geom.height() - self.height() - 60
        self.move(x, y)

    def show_interim(self, speaker: str, text: str) -> None:
        self._cancel_hide_timer()
        self._caption.setStyleSheet(CAPTION_STYLE)
        self._caption.setText(f"{speaker}: {text} …" if text else f"{speaker}: 🎙️")
        self._place_bottom_center()
        self.show()

    def show_interim_translation(self, translated: str) -> None:
        self._translation.setText(f"{translated} …" if translated else "")
        self._translation.setVisible(bool(translated))
        self.adjustSize()

    def show_entry(self, speaker: str, original: str, translated: str) -> None:
        self._cancel_hide_timer()
        self._caption.setStyleSheet(CAPTION_STYLE)
        self._caption.setText(f"{speaker}: {original}")
        self._translation.setText(translated)
        self._translation.setVisible(bool(translated))
        self._place_bottom_center()
        self.show()

    def show_status(self, text: str) -> None:
        self._cancel_hide_timer()
        self._caption.setStyleSheet(CAPTION_STYLE)
        self._caption.setText(text)
        self._translation.hide()
        self._place_bottom_center()
        self.show()

    def show_error(self, text: str, hide_after_ms: int = 4000) -> None:
        self._caption.setStyleSheet(ERROR_STYLE)
        self._caption.setText(f"⚠️ {text}")
        self._translation.hide()
        self._place_bottom_center()
        self.show()
        self.hide_with_delay(hide_after_ms)

    def hide_with_delay(self, delay_ms: int = 400) -> None:
        self._cancel_hide_timer()
        self._hide_timer = QTimer()
        self._hide_timer.setSingleShot(True)
        self._hide_timer.timeout.connect(self.hide)
        self._hide_timer.start(delay_ms)

    def _cancel_hide_timer(self) -> None:
        if self._hide_timer is not None:
            self._hide_timer.stop()
            self._hide_timer = None
