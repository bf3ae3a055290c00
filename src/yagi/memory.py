"""Persistent key/value memory the agent can read and write through tools."""

from __future__ import annotations

import json
import logging
import os
import threading
from pathlib import Path
from typing import Optional

__all__ = ["MemoryStore"]


class MemoryStore:
    """A JSON file of learned facts, rewritten on every change."""

    def __init__(self, path: str | Path, *, logger: Optional[logging.Logger] = None) -> None:
        self.path = Path(path)
        self.logger = logger or logging.getLogger(__name__)
        self._lock = threading.Lock()
        self._data: dict[str, str] = {}

    def load(self) -> None:
        """Read the file; a missing file means an empty memory."""
        try:
            raw = self.path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return
        data = json.loads(raw)
        if not isinstance(data, dict):
            raise ValueError(f"{self.path} must contain a JSON object")
        with self._lock:
            self._data = {str(k): str(v) for k, v in data.items()}

    def _save(self) -> None:
        with self._lock:
            payload = json.dumps(self._data, indent=2, ensure_ascii=False)
        self.path.parent.mkdir(parents=True, exist_ok=True)
        fd = os.open(self.path, os.O_WRONLY | os.O_CREAT | os.O_TRUNC, 0o600)
        with os.fdopen(fd, "w", encoding="utf-8") as fh:
            fh.write(payload)

    def get(self, key: str) -> Optional[str]:
        with self._lock:
            return self._data.get(key)

    def set(self, key: str, value: str) -> None:
        with self._lock:
            self._data[key] = value
        self._save()

    def delete(self, key: str) -> bool:
        with self._lock:
            existed = self._data.pop(key, None) is not None
        if existed:
            self._save()
        return existed

    def all(self) -> dict[str, str]:
        with self._lock:
            return dict(self._data)

    def as_markdown(self) -> str:
        """Section to append to the system message; empty when nothing is stored."""
        entries = self.all()
        if not entries:
            return ""
        lines = ["", "---", "## Learned Information"]
        lines.extend(f"- {key}: {value}" for key, value in entries.items())
        return "\n".join(lines) + "\n"
