"""
Bounded append-only event sinks backing the access and activity logs
"""
import json
import logging
from abc import ABC, abstractmethod
from collections import deque
from pathlib import Path
from typing import Deque, List, Union

logger = logging.getLogger(__name__)

ACCESS_LOG_MAX_ENTRIES = 1000
ACTIVITY_LOG_MAX_ENTRIES = 5000


class EventSink(ABC):
    """Keeps only the most recent max_entries events."""

    def __init__(self, max_entries: int):
        self.max_entries = max_entries

    @abstractmethod
    def append(self, entry: dict) -> None:
        ...

    @abstractmethod
    def read_all(self) -> List[dict]:
        """All retained events, oldest first."""

    def read_recent(self, n: int) -> List[dict]:
        """The n newest events, newest first."""
        if n <= 0:
            return []
        return list(reversed(self.read_all()[-n:]))


class MemoryEventSink(EventSink):
    def __init__(self, max_entries: int):
        super().__init__(max_entries)
        self._entries: Deque[dict] = deque(maxlen=max_entries)

    def append(self, entry: dict) -> None:
        self._entries.append(dict(entry))

    def read_all(self) -> List[dict]:
        return [dict(entry) for entry in self._entries]


class JsonFileEventSink(EventSink):
    """
    Events stored as one JSON array per file.

    Every append rewrites the whole file (temp file, then rename). There is
    no file locking: concurrent writers are last-writer-wins.
    """

    def __init__(self, path: Union[str, Path], max_entries: int):
        super().__init__(max_entries)
        self.path = Path(path)

    def _ensure_file(self) -> None:
        if not self.path.exists():
            self.path.parent.mkdir(parents=True, exist_ok=True)
            self._write([])
            logger.info(f"Created event log file {self.path}")

    def _write(self, entries: List[dict]) -> None:
        temp_path = self.path.with_suffix(self.path.suffix + ".tmp")
        with open(temp_path, "w", encoding="utf-8") as f:
            json.dump(entries, f, indent=2)
        temp_path.replace(self.path)

    def read_all(self) -> List[dict]:
        self._ensure_file()
        try:
            with open(self.path, "r", encoding="utf-8") as f:
                entries = json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            logger.error(f"Error reading event log {self.path}: {e}")
            return []
        if not isinstance(entries, list):
            logger.error(f"Event log {self.path} is not a JSON array, ignoring its content")
            return []
        return entries

    def append(self, entry: dict) -> None:
        entries = self.read_all()
        entries.append(entry)
        if len(entries) > self.max_entries:
            entries = entries[-self.max_entries:]
        self._write(entries)
