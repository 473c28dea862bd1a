"""
Pinned-version manifest — loose key/value scanning.

The manifest (``global.json`` style) is not parsed as JSON. It is
scanned as text for ``"key": "value"`` and the first textual match
wins, so duplicate keys, trailing commas or comments never abort a
run. A missing or unreadable file simply yields no value.
"""

from __future__ import annotations

import logging
import re
from pathlib import Path

logger = logging.getLogger(__name__)


def scan_value(text: str, key: str) -> str | None:
    """Return the first ``"key": "value"`` value in *text*, or None."""
    pattern = re.compile(r'"' + re.escape(key) + r'"\s*:\s*"([^"]+)"')
    match = pattern.search(text)
    if match is None:
        return None
    value = match.group(1).strip()
    return value or None


class Manifest:
    """A manifest file read once and queried by key."""

    def __init__(self, path: Path):
        self.path = path
        self._text: str | None = None
        self._loaded = False

    def _load(self) -> str | None:
        if not self._loaded:
            self._loaded = True
            if self.path.is_file():
                try:
                    self._text = self.path.read_text(encoding="utf-8", errors="replace")
                except OSError as e:
                    logger.warning("Cannot read manifest %s: %s", self.path, e)
        return self._text

    @property
    def exists(self) -> bool:
        return self._load() is not None

    def get(self, key: str) -> str | None:
        text = self._load()
        if text is None:
            return None
        return scan_value(text, key)
