"""Clipboard export of transcripts and summaries."""

from __future__ import annotations

import logging

import pyperclip

from models import CopyResult

logger = logging.getLogger(__name__)


class ClipboardService:
    def copy_text(self, text: str) -> CopyResult:
        if not text.strip():
            return CopyResult(success=False, reason="empty text")
        try:
            pyperclip.copy(text)
        except pyperclip.PyperclipException as exc:
            logger.warning("Clipboard copy failed: %s", exc)
            return CopyResult(success=False, reason=str(exc))
        return CopyResult(success=True, reason="ok")
