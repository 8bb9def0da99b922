"""
In-memory session index.

Sessions are immutable; the index only ever swaps whole values, so a reader
holding a Session keeps a frozen snapshot. A readers-writer lock lets the
API read concurrently while the scanner or watcher replaces entries.
"""

from __future__ import annotations

import threading
from collections.abc import Iterable, Iterator
from contextlib import contextmanager

from cclive.models import Session, SessionSummary, sort_key


class _ReadWriteLock:
    """Many concurrent readers or one writer."""

    def __init__(self):
        self._cond = threading.Condition(threading.Lock())
        self._readers = 0
        self._writer = False

    @contextmanager
    def read(self) -> Iterator[None]:
        with self._cond:
            while self._writer:
                self._cond.wait()
            self._readers += 1
        try:
            yield
        finally:
            with self._cond:
                self._readers -= 1
                if not self._readers:
                    self._cond.notify_all()

    @contextmanager
    def write(self) -> Iterator[None]:
        with self._cond:
            while self._writer or self._readers:
                self._cond.wait()
            self._writer = True
        try:
            yield
        finally:
            with self._cond:
                self._writer = False
                self._cond.notify_all()


class SessionIndex:
    """Session id -> Session, safe for concurrent readers and writers."""

    def __init__(self):
        self._sessions: dict[str, Session] = {}
        self._lock = _ReadWriteLock()

    def put(self, session: Session) -> None:
        """Insert or replace the entry for session.id."""
        with self._lock.write():
            self._sessions[session.id] = session

    def get(self, session_id: str) -> Session | None:
        with self._lock.read():
            return self._sessions.get(session_id)

    def list(self) -> list[SessionSummary]:
        """Snapshot of all summaries, most recently active first."""
        with self._lock.read():
            summaries = [s.summary for s in self._sessions.values()]
        summaries.sort(key=lambda s: s.id)
        summaries.sort(key=lambda s: sort_key(s.last_update), reverse=True)
        return summaries

    def __len__(self) -> int:
        with self._lock.read():
            return len(self._sessions)

    def __contains__(self, session_id: object) -> bool:
        with self._lock.read():
            return session_id in self._sessions


def filter_by_project(
    summaries: Iterable[SessionSummary], project: str | None
) -> list[SessionSummary]:
    """Keep summaries whose project name or path equals project."""
    if not project:
        return list(summaries)
    return [s for s in summaries if project in (s.project_name, s.project_dir)]
