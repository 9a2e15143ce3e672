"""Key-value persistence substrate for the CRM store.

Defines the standard interface both storage scopes implement:
- FileKeyValueStore: durable store, one file per key under a data directory
  (the local-storage scope, survives restarts)
- MemoryKeyValueStore: volatile store living as long as the process
  (the session-storage scope used for navigation handoff)

Values are always strings; callers own serialization.
"""

from __future__ import annotations

import os
import re
import tempfile
from abc import ABC, abstractmethod
from pathlib import Path


class KeyValueStore(ABC):
    """Abstract string key-value store.

    Methods:
        get: Return the stored string, or None if the key is absent.
        set: Store a string under a key, replacing any prior value.
        delete: Remove a key; absent keys are ignored.
    """

    @abstractmethod
    def get(self, key: str) -> str | None:
        """Return the value for key, or None if absent."""
        ...

    @abstractmethod
    def set(self, key: str, value: str) -> None:
        """Store value under key, replacing any prior value."""
        ...

    @abstractmethod
    def delete(self, key: str) -> None:
        """Remove key if present."""
        ...


class MemoryKeyValueStore(KeyValueStore):
    """Volatile store backed by a dict."""

    def __init__(self, initial: dict[str, str] | None = None) -> None:
        self._data: dict[str, str] = dict(initial or {})

    def get(self, key: str) -> str | None:
        return self._data.get(key)

    def set(self, key: str, value: str) -> None:
        self._data[key] = value

    def delete(self, key: str) -> None:
        self._data.pop(key, None)

    def __contains__(self, key: object) -> bool:
        return key in self._data

    def __len__(self) -> int:
        return len(self._data)


_UNSAFE_KEY_CHARS = re.compile(r"[^A-Za-z0-9._-]")


class FileKeyValueStore(KeyValueStore):
    """Durable store writing each key to its own file.

    Writes go to a temp file in the same directory and are moved into place
    with os.replace, so a reader never sees a half-written value.

    Args:
        root: Directory holding the key files. Created on first write.
    """

    SUFFIX = ".json"

    def __init__(self, root: str | os.PathLike[str]) -> None:
        self._root = Path(root)

    @property
    def root(self) -> Path:
        return self._root

    def _path(self, key: str) -> Path:
        if not key:
            raise ValueError("Storage key must not be empty")
        return self._root / (_UNSAFE_KEY_CHARS.sub("_", key) + self.SUFFIX)

    def get(self, key: str) -> str | None:
        path = self._path(key)
        try:
            return path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return None

    def set(self, key: str, value: str) -> None:
        path = self._path(key)
        self._root.mkdir(parents=True, exist_ok=True)
        fd, tmp_name = tempfile.mkstemp(dir=self._root, prefix=".tmp-", suffix=self.SUFFIX)
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as fh:
                fh.write(value)
            os.replace(tmp_name, path)
        except BaseException:
            Path(tmp_name).unlink(missing_ok=True)
            raise

    def delete(self, key: str) -> None:
        self._path(key).unlink(missing_ok=True)
