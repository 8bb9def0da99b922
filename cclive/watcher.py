"""
Live updates: per-file debounced re-parse driven by watchfiles.

Each transcript path moves through IDLE -> PENDING -> REPARSING -> IDLE. A
burst of writes keeps restarting the PENDING timer, so it collapses into a
single re-parse once the file has been quiet for the debounce window.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Iterable
from enum import Enum
from pathlib import Path

from watchfiles import Change, awatch

from cclive.builder import is_valid_session_file, parse_session_file
from cclive.config import DEFAULT_MAX_LINE_BYTES
from cclive.index import SessionIndex

logger = logging.getLogger("cclive.watcher")

_RESTART_DELAY = 1.0


# ═══════════════════════════════════════════════════════════════════════════════
# Notifications
# ═══════════════════════════════════════════════════════════════════════════════


class Subscription:
    """Holds at most one pending "index changed" signal."""

    def __init__(self, notifier: Notifier):
        self._notifier = notifier
        self._queue: asyncio.Queue[None] = asyncio.Queue(maxsize=1)

    @property
    def pending(self) -> bool:
        return not self._queue.empty()

    def _offer(self) -> None:
        try:
            self._queue.put_nowait(None)
        except asyncio.QueueFull:
            pass

    async def wait(self) -> None:
        await self._queue.get()

    def close(self) -> None:
        self._notifier.unsubscribe(self)

    def __aiter__(self) -> Subscription:
        return self

    async def __anext__(self) -> None:
        await self.wait()


class Notifier:
    def __init__(self):
        self._subscriptions: list[Subscription] = []

    @property
    def subscriber_count(self) -> int:
        return len(self._subscriptions)

    def subscribe(self) -> Subscription:
        sub = Subscription(self)
        self._subscriptions.append(sub)
        return sub

    def unsubscribe(self, sub: Subscription) -> None:
        if sub in self._subscriptions:
            self._subscriptions.remove(sub)

    def publish(self) -> None:
        """Signal every subscriber without blocking; already-pending signals absorb this one."""
        for sub in list(self._subscriptions):
            sub._offer()


# ═══════════════════════════════════════════════════════════════════════════════
# Change Watcher
# ═══════════════════════════════════════════════════════════════════════════════


class WatchState(str, Enum):
    IDLE = "idle"
    PENDING = "pending"
    REPARSING = "reparsing"


class ChangeWatcher:
    """Re-parses transcripts after writes and publishes index changes."""

    def __init__(
        self,
        index: SessionIndex,
        notifier: Notifier,
        debounce_ms: int = 500,
        max_line_bytes: int = DEFAULT_MAX_LINE_BYTES,
    ):
        self.index = index
        self.notifier = notifier
        self.debounce_ms = debounce_ms
        self.max_line_bytes = max_line_bytes
        self.reparse_count = 0
        self._timers: dict[Path, asyncio.Task] = {}
        self._states: dict[Path, WatchState] = {}
        self._locks: dict[Path, asyncio.Lock] = {}
        self._task: asyncio.Task | None = None

    @property
    def is_running(self) -> bool:
        return self._task is not None and not self._task.done()

    def state(self, path: Path) -> WatchState:
        return self._states.get(Path(path), WatchState.IDLE)

    def notify_change(self, path: Path | str) -> None:
        """Record a write/create for path and (re)start its debounce timer.

        Must be called from the event loop thread.
        """
        path = Path(path)
        if not is_valid_session_file(path.name):
            return

        timer = self._timers.get(path)
        if timer is not None and self._states.get(path) is WatchState.PENDING:
            timer.cancel()

        self._states[path] = WatchState.PENDING
        self._timers[path] = asyncio.get_running_loop().create_task(self._debounced_reparse(path))

    async def _debounced_reparse(self, path: Path) -> None:
        me = asyncio.current_task()
        try:
            await asyncio.sleep(self.debounce_ms / 1000)
            lock = self._locks.setdefault(path, asyncio.Lock())
            async with lock:
                if self._timers.get(path) is me:
                    self._states[path] = WatchState.REPARSING
                await self._reparse(path)
        finally:
            if self._timers.get(path) is me:
                del self._timers[path]
                self._states[path] = WatchState.IDLE

    async def _reparse(self, path: Path) -> None:
        self.reparse_count += 1
        try:
            session = await asyncio.to_thread(parse_session_file, path, self.max_line_bytes)
        except OSError as e:
            logger.warning(f"Cannot re-parse {path}: {e}")
            return
        except Exception as e:
            logger.error(f"Error re-parsing {path}: {e}")
            return
        if session is None:
            logger.debug(f"{path.name} has no events yet, keeping previous entry")
            return
        self.index.put(session)
        logger.debug(f"Re-parsed {path.name}: {session.summary.event_count} events")
        self.notifier.publish()

    # ── watchfiles loop ─────────────────────────────────────────────────────

    async def start(self, directories: Iterable[Path]) -> None:
        dirs = [Path(d) for d in directories]
        self._task = asyncio.create_task(self._watch_loop(dirs))

    async def stop(self) -> None:
        if self._task:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None
        for timer in self._timers.values():
            timer.cancel()
        self._timers.clear()
        self._states.clear()

    async def _watch_loop(self, directories: list[Path]) -> None:
        while True:
            existing = []
            for d in directories:
                if d.is_dir():
                    existing.append(d)
                else:
                    logger.warning(f"Project directory {d} is gone, no longer watching it")
            directories = existing
            if not directories:
                logger.warning("No project directories to watch")
                return

            logger.info(f"Watching {len(directories)} project directories")
            try:
                async for changes in awatch(*directories, recursive=False, debounce=50, step=50):
                    for change_type, path_str in changes:
                        if change_type in (Change.added, Change.modified):
                            self.notify_change(path_str)
                return
            except asyncio.CancelledError:
                raise
            except Exception as e:
                logger.error(f"File watcher error: {e}, restarting")
            await asyncio.sleep(_RESTART_DELAY)
