"""Simple JSON-based config store."""

from __future__ import annotations

import json
from pathlib import Path

DEFAULTS = {
    "api_key": "",
    "hotkey": "Key.f8",
    "speaker_hotkey": "Key.f9",
    "language_a": "ko",
    "language_b": "en",
    "speaker_a_name": "Speaker A",
    "speaker_b_name": "Speaker B",
    "translation_enabled": True,
    "asr_model": "qwen3-asr-flash",
    "llm_model": "qwen-plus",
}


class JsonConfigStore:
    def __init__(self, path: Path | None = None) -> None:
        self._path = path or Path.home() / ".config" / "meetcap" / "config.json"
        self._path.parent.mkdir(parents=True, exist_ok=True)

    def get_api_key(self) -> str:
        return str(self._get("api_key"))

    def set_api_key(self, key: str) -> None:
        self._set("api_key", key)

    def get_hotkey(self) -> str:
        return str(self._get("hotkey"))

    def set_hotkey(self, hotkey: str) -> None:
        self._set("hotkey", hotkey)

    def get_speaker_hotkey(self) -> str:
        return str(self._get("speaker_hotkey"))

    def get_languages(self) -> tuple[str, str]:
        return str(self._get("language_a")), str(self._get("language_b"))

    def set_languages(self, language_a: str, language_b: str) -> None:
        data = self._read_all()
        data["language_a"] = language_a
        data["language_b"] = language_b
        self._write_all(data)

    def get_speaker_names(self) -> tuple[str, str]:
        return str(self._get("speaker_a_name")), str(self._get("speaker_b_name"))

    def get_translation_enabled(self) -> bool:
        return bool(self._get("translation_enabled"))

    def set_translation_enabled(self, enabled: bool) -> None:
        self._set("translation_enabled", enabled)

    def get_asr_model(self) -> str:
        return str(self._get("asr_model"))

    def get_llm_model(self) -> str:
        return str(self._get("llm_model"))

    def _get(self, key: str) -> object:
        return self._read_all().get(key, DEFAULTS[key])

    def _set(self, key: str, value: object) -> None:
        data = self._read_all()
        data[key] = value
        self._write_all(data)

    def _read_all(self) -> dict:
        if not self._path.exists():
            return {}
        try:
            data = json.loads(self._path.read_text(encoding="utf-8"))
        except (json.JSONDecodeError, OSError):
            return {}
        return data if isinstance(data, dict) else {}

    def _write_all(self, data: dict) -> None:
        self._path.write_text(json.dumps(data, ensure_ascii=False, indent=2), encoding="utf-8")
