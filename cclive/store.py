"""
Session store: initial scan, live watching and the read API used by the
display layer.
"""

from __future__ import annotations

import logging
import os
import time
from pathlib import Path

from cclive.builder import is_valid_session_file, parse_session_file
from cclive.config import DEFAULT_MAX_LINE_BYTES
from cclive.index import SessionIndex, filter_by_project
from cclive.models import Session, SessionSummary
from cclive.watcher import ChangeWatcher, Notifier, Subscription

logger = logging.getLogger("cclive.store")


class ScanError(Exception):
    """The projects directory could not be scanned at all."""

    def __init__(self, projects_dir: Path, reason: str):
        self.projects_dir = projects_dir
        self.reason = reason
        super().__init__(f"Cannot scan projects directory {projects_dir}: {reason}")


class SessionStore:
    """Discovers, indexes and watches Claude Code transcripts under one base directory."""

    def __init__(
        self,
        projects_dir: Path,
        debounce_ms: int = 500,
        max_line_bytes: int = DEFAULT_MAX_LINE_BYTES,
    ):
        self.projects_dir = projects_dir
        self.max_line_bytes = max_line_bytes
        self.index = SessionIndex()
        self.notifier = Notifier()
        self.watcher = ChangeWatcher(
            self.index, self.notifier, debounce_ms=debounce_ms, max_line_bytes=max_line_bytes
        )
        self._watched_dirs: list[Path] = []

    @property
    def watched_dirs(self) -> list[Path]:
        return list(self._watched_dirs)

    def scan(self) -> int:
        """Parse every transcript under the projects directory into the index.

        Unreadable project directories and files are skipped. Returns the
        number of sessions indexed; raises ScanError if the base directory
        itself cannot be listed.
        """
        start = time.monotonic()
        try:
            project_entries = [e for e in os.scandir(self.projects_dir) if e.is_dir()]
        except OSError as e:
            raise ScanError(self.projects_dir, e.strerror or str(e)) from e

        indexed = 0
        for entry in sorted(project_entries, key=lambda e: e.name):
            project_dir = Path(entry.path)
            if project_dir not in self._watched_dirs:
                self._watched_dirs.append(project_dir)
            try:
                files = [
                    Path(f.path)
                    for f in os.scandir(project_dir)
                    if f.is_file() and is_valid_session_file(f.name)
                ]
            except OSError as e:
                logger.warning(f"Cannot list {project_dir}: {e}")
                continue

            for path in files:
                if self._load(path):
                    indexed += 1

        logger.info(
            f"Indexed {indexed} sessions from {len(self._watched_dirs)} projects "
            f"in {time.monotonic() - start:.1f}s"
        )
        return indexed

    def _load(self, path: Path) -> bool:
        try:
            session = parse_session_file(path, self.max_line_bytes)
        except OSError as e:
            logger.warning(f"Cannot read session file {path}: {e}")
            return False
        except Exception as e:
            logger.error(f"Error parsing session file {path}: {e}")
            return False
        if session is None:
            return False
        self.index.put(session)
        return True

    async def start_watching(self) -> None:
        await self.watcher.start(self._watched_dirs)

    async def stop(self) -> None:
        await self.watcher.stop()

    def subscribe(self) -> Subscription:
        return self.notifier.subscribe()

    def list(self, project: str | None = None) -> list[SessionSummary]:
        return filter_by_project(self.index.list(), project)

    def get(self, session_id: str) -> Session | None:
        return self.index.get(session_id)
