"""Device-scoped key-value media for the client stores.

Values are JSON documents. ``MemoryStorage`` keeps them serialised in a dict
(so callers never share mutable state with the medium), ``FileStorage``
persists the whole map to one JSON file with an atomic replace.
"""

from __future__ import annotations

import json
import logging
import os
import tempfile
from pathlib import Path
from typing import Any, Dict, Optional

from .errors import BackendError

logger = logging.getLogger(__name__)


class MemoryStorage:
    def __init__(self) -> None:
        self._data: Dict[str, str] = {}

    def get(self, key: str) -> Optional[Any]:
        raw = self._data.get(key)
        if raw is None:
            return None
        return json.loads(raw)

    def set(self, key: str, value: Any) -> None:
        self._data[key] = json.dumps(value)

    def delete(self, key: str) -> None:
        self._data.pop(key, None)

    def set_many(self, items: Dict[str, Any]) -> None:
        """All of ``items`` are written, or none are."""
        encoded = {key: json.dumps(value) for key, value in items.items()}
        self._data.update(encoded)

    def keys(self):
        return list(self._data)


class FileStorage(MemoryStorage):
    """
    Same contract as MemoryStorage, backed by ``path``.
    A missing or unreadable file starts out empty; write failures raise
    BackendError so the caller can treat the mutation as not applied.
    """

    def __init__(self, path: str | Path) -> None:
        super().__init__()
        self.path = Path(path)
        self._load()

    def _load(self) -> None:
        if not self.path.exists():
            return
        try:
            parsed = json.loads(self.path.read_text(encoding="utf-8"))
        except (OSError, ValueError):
            logger.warning("unreadable storage file %s, starting empty", self.path)
            return
        if isinstance(parsed, dict):
            self._data = {k: json.dumps(v) for k, v in parsed.items()}

    def _flush(self) -> None:
        snapshot = {k: json.loads(v) for k, v in self._data.items()}
        serialized = json.dumps(snapshot, ensure_ascii=False, indent=2)
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            with tempfile.NamedTemporaryFile(
                "w", dir=self.path.parent, delete=False, encoding="utf-8"
            ) as tmp:
                tmp.write(serialized)
                tmp.flush()
                os.fsync(tmp.fileno())
                temp_path = Path(tmp.name)
            temp_path.replace(self.path)
        except OSError as exc:
            raise BackendError("STORAGE_WRITE_FAILED") from exc

    def set(self, key: str, value: Any) -> None:
        previous = self._data.get(key)
        super().set(key, value)
        try:
            self._flush()
        except BackendError:
            if previous is None:
                self._data.pop(key, None)
            else:
                self._data[key] = previous
            raise

    def set_many(self, items: Dict[str, Any]) -> None:
        previous = {key: self._data.get(key) for key in items}
        super().set_many(items)
        try:
            self._flush()
        except BackendError:
            for key, value in previous.items():
                if value is None:
                    self._data.pop(key, None)
                else:
                    self._data[key] = value
            raise

    def delete(self, key: str) -> None:
        previous = self._data.get(key)
        if previous is None:
            return
        super().delete(key)
        try:
            self._flush()
        except BackendError:
            self._data[key] = previous
            raise


def open_storage(path: str = "") -> MemoryStorage:
    return FileStorage(path) if path else MemoryStorage()
