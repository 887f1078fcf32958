"""
services/session_store.py

Durable per-(candidate, round) key-value store for an in-flight exam.

Fields kept per key:
  - answers       : {question_id: answer}
  - time          : remaining seconds (countdown cache)
  - start_time    : ISO-8601 start timestamp
  - started       : bool
  - question_ids  : sampled question order
  - completed     : bool, set once the attempt is scored
  - pending_record: attempt record awaiting a Result Store acknowledgement

All fields of a key are cleared together, and only once the Result Store has
acknowledged the attempt.
"""

import json
import logging
import os
import re
import threading
from abc import ABC, abstractmethod
from typing import Any, Dict

from interview_exam.errors import SessionStoreError

logger = logging.getLogger(__name__)

ANSWERS = "answers"
TIME = "time"
START_TIME = "start_time"
STARTED = "started"
QUESTION_IDS = "question_ids"
COMPLETED = "completed"
PENDING_RECORD = "pending_record"

FIELDS = (ANSWERS, TIME, START_TIME, STARTED, QUESTION_IDS, COMPLETED, PENDING_RECORD)


def _check_field(field: str) -> None:
    if field not in FIELDS:
        raise SessionStoreError(f"Unknown session field: {field}")


class SessionStore(ABC):
    """get/set/clear keyed by (candidate_id, round_id)."""

    @abstractmethod
    def load(self, candidate_id: str, round_id: str) -> Dict[str, Any]:
        """Every persisted field for the key. Empty dict when nothing is stored."""

    @abstractmethod
    def set(self, candidate_id: str, round_id: str, field: str, value: Any) -> None:
        ...

    @abstractmethod
    def clear(self, candidate_id: str, round_id: str) -> None:
        ...

    def get(self, candidate_id: str, round_id: str, field: str, default=None):
        return self.load(candidate_id, round_id).get(field, default)


# ── In-memory ────────────────────────────────────────────────────────────────

class InMemorySessionStore(SessionStore):
    """Lock-guarded dict. Survives engine rebuilds inside one process."""

    def __init__(self):
        self._lock = threading.Lock()
        self._data: Dict[tuple, Dict[str, Any]] = {}

    def load(self, candidate_id: str, round_id: str) -> Dict[str, Any]:
        with self._lock:
            return json.loads(json.dumps(self._data.get((candidate_id, round_id), {})))

    def set(self, candidate_id: str, round_id: str, field: str, value: Any) -> None:
        _check_field(field)
        try:
            # JSON round-trip so stored values behave like a real medium
            stored = json.loads(json.dumps(value))
        except TypeError as e:
            raise SessionStoreError(f"Value for '{field}' is not serialisable: {e}") from e
        with self._lock:
            self._data.setdefault((candidate_id, round_id), {})[field] = stored

    def clear(self, candidate_id: str, round_id: str) -> None:
        with self._lock:
            self._data.pop((candidate_id, round_id), None)


# ── JSON files ───────────────────────────────────────────────────────────────

_UNSAFE = re.compile(r"[^A-Za-z0-9_.-]")


class JsonFileSessionStore(SessionStore):
    """One JSON file per (candidate, round) under `directory`."""

    def __init__(self, directory: str):
        self.directory = directory
        self._lock = threading.Lock()
        os.makedirs(directory, exist_ok=True)

    def _path(self, candidate_id: str, round_id: str) -> str:
        name = f"exam_{_UNSAFE.sub('_', candidate_id)}_{_UNSAFE.sub('_', round_id)}.json"
        return os.path.join(self.directory, name)

    def _read(self, path: str) -> Dict[str, Any]:
        if not os.path.exists(path):
            return {}
        try:
            with open(path, "r", encoding="utf-8") as f:
                data = json.load(f)
        except json.JSONDecodeError as e:
            logger.warning(f"Corrupt session file ignored: {path} ({e})")
            return {}
        except OSError as e:
            raise SessionStoreError(f"Cannot read {path}: {e}") from e
        return data if isinstance(data, dict) else {}

    def load(self, candidate_id: str, round_id: str) -> Dict[str, Any]:
        with self._lock:
            return self._read(self._path(candidate_id, round_id))

    def set(self, candidate_id: str, round_id: str, field: str, value: Any) -> None:
        _check_field(field)
        path = self._path(candidate_id, round_id)
        with self._lock:
            data = self._read(path)
            data[field] = value
            tmp_path = path + ".tmp"
            try:
                with open(tmp_path, "w", encoding="utf-8") as f:
                    json.dump(data, f, ensure_ascii=False)
                os.replace(tmp_path, path)
            except (OSError, TypeError) as e:
                try:
                    os.remove(tmp_path)
                except OSError:
                    pass
                raise SessionStoreError(f"Cannot write {path}: {e}") from e

    def clear(self, candidate_id: str, round_id: str) -> None:
        path = self._path(candidate_id, round_id)
        with self._lock:
            try:
                os.remove(path)
            except FileNotFoundError:
                pass
            except OSError as e:
                raise SessionStoreError(f"Cannot remove {path}: {e}") from e
