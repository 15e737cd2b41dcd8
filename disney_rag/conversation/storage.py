"""SessionStorage — session-scoped key/value store backed by JSON files."""

from __future__ import annotations

import logging
import re
from typing import TYPE_CHECKING

from disney_rag.client.errors import StorageFailure
from disney_rag.config import settings

if TYPE_CHECKING:
    from pathlib import Path

logger = logging.getLogger(__name__)

MAX_VALUE_SIZE = 5 * 1024 * 1024  # 5 MB per key, same order as browser session storage

_SAFE_NAME_RE = re.compile(r"[^a-zA-Z0-9._\-]")


class SessionStorage:
    """String values keyed by name, scoped to one session directory.

    Each key is a UTF-8 file under ``<root>/<session_id>/``. Pass an explicit
    *root* for test isolation (e.g. ``tmp_path / "session"``). Reads of a
    missing key return ``None``; all I/O failures raise ``StorageFailure``.
    """

    def __init__(self, root: Path | None = None, session_id: str | None = None) -> None:
        base = (root or settings.session_storage_dir).resolve()
        self._dir = base / self._safe_name(session_id or settings.session_id)

    @property
    def path(self) -> Path:
        return self._dir

    @staticmethod
    def _safe_name(name: str) -> str:
        sanitized = _SAFE_NAME_RE.sub("_", name).lstrip(".")[:255]
        if not sanitized:
            msg = f"Storage name is empty after sanitization: {name!r}"
            raise ValueError(msg)
        return sanitized

    def _file(self, key: str) -> Path:
        return self._dir / f"{self._safe_name(key)}.json"

    def get_item(self, key: str) -> str | None:
        """Return the stored string for *key*, or None if absent."""
        target = self._file(key)
        try:
            return target.read_text("utf-8")
        except FileNotFoundError:
            return None
        except (OSError, UnicodeDecodeError) as exc:
            msg = f"Could not read storage key {key!r}"
            raise StorageFailure(msg) from exc

    def set_item(self, key: str, value: str) -> None:
        """Store *value* under *key*, replacing any previous value."""
        data = value.encode("utf-8")
        if len(data) > MAX_VALUE_SIZE:
            msg = f"Storage quota exceeded for {key!r}: {len(data)} bytes (max {MAX_VALUE_SIZE})"
            raise StorageFailure(msg)
        target = self._file(key)
        tmp = target.with_suffix(".tmp")
        try:
            self._dir.mkdir(parents=True, exist_ok=True)
            tmp.write_bytes(data)
            tmp.replace(target)
        except OSError as exc:
            msg = f"Could not write storage key {key!r}"
            raise StorageFailure(msg) from exc

    def remove_item(self, key: str) -> bool:
        """Delete *key*. Returns True if it existed."""
        target = self._file(key)
        try:
            target.unlink()
        except FileNotFoundError:
            return False
        except OSError as exc:
            msg = f"Could not remove storage key {key!r}"
            raise StorageFailure(msg) from exc
        return True
