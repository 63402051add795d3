"""Schedule file watcher: debounced change notifications per file.

A single watchdog observer watches the parent directory of every registered
file (so atomic rename-over writes are seen) and hands events to the asyncio
loop. Each file gets a trailing-edge debounce: a burst of writes produces one
callback once the file has been quiet for `debounce_seconds`.
"""

import asyncio
import logging
import os
from collections.abc import Callable
from dataclasses import dataclass
from pathlib import Path

from watchdog.events import (
    EVENT_TYPE_CLOSED,
    EVENT_TYPE_CREATED,
    EVENT_TYPE_DELETED,
    EVENT_TYPE_MODIFIED,
    EVENT_TYPE_MOVED,
    FileSystemEvent,
    FileSystemEventHandler,
)
from watchdog.observers import Observer
from watchdog.observers.api import BaseObserver, ObservedWatch

logger = logging.getLogger(__name__)

DEFAULT_DEBOUNCE_SECONDS = 0.5

# Opened / closed-without-write events come from our own reads; ignore them.
_CONTENT_EVENTS = frozenset(
    {
        EVENT_TYPE_CLOSED,
        EVENT_TYPE_CREATED,
        EVENT_TYPE_DELETED,
        EVENT_TYPE_MODIFIED,
        EVENT_TYPE_MOVED,
    }
)

ChangeCallback = Callable[[], None]


@dataclass
class _Target:
    path: str
    callback: ChangeCallback
    pending: asyncio.TimerHandle | None = None


class _DirectoryHandler(FileSystemEventHandler):
    """Forwards content events from the observer thread to the loop."""

    def __init__(self, watcher: "FileWatcher") -> None:
        self._watcher = watcher

    def on_any_event(self, event: FileSystemEvent) -> None:
        if event.is_directory or event.event_type not in _CONTENT_EVENTS:
            return
        paths = {_normalize(event.src_path)}
        dest = getattr(event, "dest_path", "")
        if dest:
            paths.add(_normalize(dest))
        self._watcher._post(paths)


def _normalize(path: str | bytes | Path) -> str:
    return os.path.normpath(os.fsdecode(path))


class FileWatcher:
    """Watches individual files and invokes a callback when they settle.

    Example:
        watcher = FileWatcher(debounce_seconds=0.5)
        watcher.start()
        watcher.watch("general", Path("channels/general/schedule.yaml"), reload)
        ...
        watcher.stop()

    Callbacks run on the event loop thread that called start().
    """

    def __init__(self, debounce_seconds: float = DEFAULT_DEBOUNCE_SECONDS) -> None:
        self._debounce = debounce_seconds
        self._loop: asyncio.AbstractEventLoop | None = None
        self._observer: BaseObserver | None = None
        self._handler = _DirectoryHandler(self)
        self._targets: dict[str, _Target] = {}
        self._dir_watches: dict[str, ObservedWatch] = {}

    @property
    def is_running(self) -> bool:
        return self._observer is not None

    @property
    def watched_keys(self) -> list[str]:
        return list(self._targets)

    def start(self) -> None:
        """Start the observer thread. Must be called from within the loop."""
        if self._observer is not None:
            return
        self._loop = asyncio.get_running_loop()
        observer = Observer()
        observer.daemon = True
        observer.start()
        self._observer = observer
        # Re-register directories for targets added before start()
        for target in self._targets.values():
            self._ensure_dir_watch(os.path.dirname(target.path))

    def stop(self) -> None:
        """Stop the observer and drop all targets and pending callbacks."""
        for target in self._targets.values():
            if target.pending is not None:
                target.pending.cancel()
        self._targets.clear()
        self._dir_watches.clear()
        observer, self._observer = self._observer, None
        if observer is not None:
            observer.stop()
            observer.join(timeout=2)
        self._loop = None

    def watch(self, key: str, path: Path, callback: ChangeCallback) -> None:
        """Watch `path`, replacing any previous registration under `key`."""
        self.unwatch(key)
        resolved = _normalize(path.expanduser().resolve())
        self._targets[key] = _Target(path=resolved, callback=callback)
        if self._observer is not None:
            self._ensure_dir_watch(os.path.dirname(resolved))
        logger.debug(
            "file_watch_added", extra={"watch.key": key, "file.path": resolved}
        )

    def unwatch(self, key: str) -> None:
        target = self._targets.pop(key, None)
        if target is None:
            return
        if target.pending is not None:
            target.pending.cancel()
        directory = os.path.dirname(target.path)
        still_used = any(
            os.path.dirname(t.path) == directory for t in self._targets.values()
        )
        if not still_used:
            watch = self._dir_watches.pop(directory, None)
            if watch is not None and self._observer is not None:
                try:
                    self._observer.unschedule(watch)
                except KeyError:
                    pass
        logger.debug("file_watch_removed", extra={"watch.key": key})

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _ensure_dir_watch(self, directory: str) -> None:
        if directory in self._dir_watches or self._observer is None:
            return
        Path(directory).mkdir(parents=True, exist_ok=True)
        try:
            self._dir_watches[directory] = self._observer.schedule(
                self._handler, directory, recursive=False
            )
        except OSError as e:
            logger.error(
                "file_watch_failed",
                extra={"file.path": directory, "error.message": str(e)},
            )

    def _post(self, paths: set[str]) -> None:
        """Called from the observer thread."""
        loop = self._loop
        if loop is None or loop.is_closed():
            return
        try:
            loop.call_soon_threadsafe(self._notify, paths)
        except RuntimeError:
            # Loop closed between the check and the call
            pass

    def _notify(self, paths: set[str]) -> None:
        """Restart the debounce timer for every target touched by an event."""
        if self._loop is None:
            return
        for key, target in self._targets.items():
            if target.path not in paths:
                continue
            if target.pending is not None:
                target.pending.cancel()
            target.pending = self._loop.call_later(self._debounce, self._fire, key)

    def _fire(self, key: str) -> None:
        target = self._targets.get(key)
        if target is None:
            return
        target.pending = None
        logger.debug("file_changed", extra={"watch.key": key, "file.path": target.path})
        try:
            target.callback()
        except Exception:
            logger.exception("file_change_callback_failed", extra={"watch.key": key})
