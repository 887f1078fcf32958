"""
api/session.py — multi-user in-memory session registry (cookie based)

Every browser gets a UUID session id; each session owns the live ExamEngine
objects for the rounds it opened. Sessions expire after SESSION_TTL of
inactivity. Answers survive expiry through the persistent session store,
so an expired engine is simply rebuilt (and resumed) on the next open.
"""

import threading
import time
import uuid
from typing import Any, Optional

from config import SESSION_TTL
from interview_exam.services.exam_engine import ExamEngine

_lock = threading.Lock()
_sessions: dict[str, dict[str, Any]] = {}
_timestamps: dict[str, float] = {}


def _new_state() -> dict[str, Any]:
    return {"engines": {}}


def create_session() -> str:
    """Create a session and return its id."""
    sid = uuid.uuid4().hex
    with _lock:
        _sessions[sid] = _new_state()
        _timestamps[sid] = time.time()
    return sid


def get_session(sid: str) -> dict[str, Any] | None:
    """Session data for `sid`, or None when unknown or expired."""
    with _lock:
        if sid not in _sessions:
            return None
        if time.time() - _timestamps[sid] > SESSION_TTL:
            _drop(sid)
            return None
        _timestamps[sid] = time.time()  # refresh on access
        return _sessions[sid]


def get_engine(sid: str, round_id: str) -> Optional[ExamEngine]:
    session = get_session(sid)
    if session is None:
        return None
    return session["engines"].get(round_id)


def put_engine(sid: str, round_id: str, engine: ExamEngine) -> None:
    with _lock:
        if sid not in _sessions:
            _sessions[sid] = _new_state()
        _sessions[sid]["engines"][round_id] = engine
        _timestamps[sid] = time.time()


def drop_engine(sid: str, round_id: str) -> None:
    with _lock:
        if sid in _sessions:
            engine = _sessions[sid]["engines"].pop(round_id, None)
            if engine is not None:
                engine.clock.stop()


def _drop(sid: str) -> None:
    for engine in _sessions[sid]["engines"].values():
        engine.clock.stop()
    del _sessions[sid]
    del _timestamps[sid]


def cleanup_expired() -> int:
    """Drop expired sessions. Returns how many were removed."""
    now = time.time()
    removed = 0
    with _lock:
        expired = [sid for sid, ts in _timestamps.items() if now - ts > SESSION_TTL]
        for sid in expired:
            _drop(sid)
            removed += 1
    return removed
