"""
In-memory store for import sessions.
Sessions expire after a period without access.
Single-process only; sessions are lost on restart.
"""
import threading
from datetime import datetime, timedelta
from typing import Optional

from config import get_settings
from exceptions import ImportSessionNotFoundError
from services.import_session import ImportSession

_sessions: dict[str, tuple[datetime, ImportSession]] = {}
_lock = threading.Lock()


def _ttl(ttl_minutes: Optional[int]) -> timedelta:
    if ttl_minutes is None:
        ttl_minutes = get_settings().session_ttl_minutes
    return timedelta(minutes=ttl_minutes)


def store_session(session: ImportSession, ttl_minutes: Optional[int] = None) -> str:
    """Keep a session, return its id."""
    with _lock:
        _sessions[session.id] = (datetime.now() + _ttl(ttl_minutes), session)
        _cleanup_expired()
    return session.id


def get_session(session_id: str, ttl_minutes: Optional[int] = None) -> ImportSession:
    """
    Fetch a live session and extend its expiry.

    Raises:
        ImportSessionNotFoundError: If unknown or expired
    """
    with _lock:
        entry = _sessions.get(session_id)
        if entry is None:
            raise ImportSessionNotFoundError(session_id)
        expires_at, session = entry
        if datetime.now() > expires_at and not session.import_running:
            del _sessions[session_id]
            raise ImportSessionNotFoundError(session_id)
        _sessions[session_id] = (datetime.now() + _ttl(ttl_minutes), session)
        return session


def delete_session(session_id: str) -> None:
    """Drop a session; aborts it first if an import is running."""
    with _lock:
        entry = _sessions.pop(session_id, None)
    if entry is not None:
        entry[1].abort()


def session_count() -> int:
    with _lock:
        return len(_sessions)


def clear_sessions() -> int:
    """Abort and drop every session. Returns how many were dropped."""
    with _lock:
        entries = list(_sessions.values())
        _sessions.clear()
    for _, session in entries:
        session.abort()
    return len(entries)


def _cleanup_expired() -> None:
    """Remove expired sessions that are not importing."""
    now = datetime.now()
    expired = [
        k for k, (exp, session) in _sessions.items()
        if now > exp and not session.import_running
    ]
    for k in expired:
        del _sessions[k]
