"""
Key-value persistence for the exam portal.
Values are JSON text; the storage service in db.py decides what they hold.
"""
import json
import logging
import os
import tempfile
from pathlib import Path
from typing import Dict, Iterator, Optional, Union

logger = logging.getLogger(__name__)


class KeyValueStore:
    """String-to-string store, the local counterpart of browser storage."""

    def get_item(self, key: str) -> Optional[str]:
        raise NotImplementedError

    def set_item(self, key: str, value: str) -> None:
        raise NotImplementedError

    def remove_item(self, key: str) -> None:
        raise NotImplementedError

    def keys(self) -> Iterator[str]:
        raise NotImplementedError


class MemoryStore(KeyValueStore):
    """In-process store. Used by tests and as a throwaway store."""

    def __init__(self, initial: Optional[Dict[str, str]] = None):
        self._data: Dict[str, str] = dict(initial or {})

    def get_item(self, key: str) -> Optional[str]:
        return self._data.get(key)

    def set_item(self, key: str, value: str) -> None:
        self._data[key] = value

    def remove_item(self, key: str) -> None:
        self._data.pop(key, None)

    def keys(self) -> Iterator[str]:
        return iter(list(self._data))


class JsonFileStore(KeyValueStore):
    """
    Store backed by one JSON object on disk ({key: json_text}).

    Every write rewrites the file through a temp file + os.replace, so a
    crash mid-write leaves the previous document intact. An unreadable file
    is treated as empty.
    """

    def __init__(self, path: Union[str, Path]):
        self.path = Path(path)
        self._data: Dict[str, str] = self._load()

    def _load(self) -> Dict[str, str]:
        if not self.path.exists():
            return {}
        try:
            raw = json.loads(self.path.read_text(encoding="utf-8"))
        except (OSError, ValueError) as e:
            logger.warning(f"Could not read store {self.path}, starting empty: {e}")
            return {}
        if not isinstance(raw, dict):
            logger.warning(f"Store {self.path} is not a JSON object, starting empty")
            return {}
        return {str(k): v for k, v in raw.items() if isinstance(v, str)}

    def _flush(self) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp = tempfile.mkstemp(dir=self.path.parent, prefix=f".{self.path.name}.", suffix=".tmp")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(self._data, f)
            os.replace(tmp, self.path)
        except BaseException:
            Path(tmp).unlink(missing_ok=True)
            raise

    def get_item(self, key: str) -> Optional[str]:
        return self._data.get(key)

    def set_item(self, key: str, value: str) -> None:
        self._data[key] = value
        self._flush()

    def remove_item(self, key: str) -> None:
        if key in self._data:
            del self._data[key]
            self._flush()

    def keys(self) -> Iterator[str]:
        return iter(list(self._data))
