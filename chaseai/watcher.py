"""Filesystem watcher that reports changes to the network config file."""

from __future__ import annotations

import logging
import threading
import time
from pathlib import Path
from typing import Callable

from watchdog.events import FileSystemEvent, FileSystemEventHandler
from watchdog.observers import Observer
from watchdog.observers.api import BaseObserver

logger = logging.getLogger(__name__)

DEFAULT_DEBOUNCE = 0.1  # seconds


def _to_path(src_path: bytes | str) -> Path:
    """Convert watchdog src_path to Path, handling bytes case."""
    if isinstance(src_path, bytes):
        return Path(src_path.decode())
    return Path(src_path)


class ConfigFileHandler(FileSystemEventHandler):
    """Calls on_change when the watched file is written, created or moved into place."""

    def __init__(self, path: Path, on_change: Callable[[], None], debounce: float = DEFAULT_DEBOUNCE):
        self.path = path.resolve()
        self.on_change = on_change
        self.debounce = debounce
        self._last_fired = 0.0
        self._lock = threading.Lock()

    def _matches(self, event: FileSystemEvent) -> bool:
        if event.is_directory:
            return False
        paths = [event.src_path, getattr(event, "dest_path", "")]
        return any(p and _to_path(p).resolve() == self.path for p in paths)

    def _fire(self) -> None:
        with self._lock:
            now = time.monotonic()
            if now - self._last_fired < self.debounce:
                return
            self._last_fired = now
        try:
            self.on_change()
        except Exception as e:
            logger.error(f"Config change handler failed: {e}", exc_info=True)

    def on_modified(self, event: FileSystemEvent) -> None:
        if self._matches(event):
            self._fire()

    def on_created(self, event: FileSystemEvent) -> None:
        if self._matches(event):
            self._fire()

    def on_moved(self, event: FileSystemEvent) -> None:
        if self._matches(event):
            self._fire()


class ConfigWatcher:
    """Watches one config file; the caller must stop() it on shutdown."""

    def __init__(self, path: Path | str, on_change: Callable[[], None], debounce: float = DEFAULT_DEBOUNCE):
        self.path = Path(path)
        self.handler = ConfigFileHandler(self.path, on_change, debounce)
        self._observer: BaseObserver | None = None

    def start(self) -> None:
        # Watch the parent so the file can be created or atomically replaced
        self.path.parent.mkdir(parents=True, exist_ok=True)
        observer = Observer()
        observer.schedule(self.handler, str(self.path.parent), recursive=False)
        observer.start()
        self._observer = observer
        logger.info(f"Watching {self.path} for changes")

    def stop(self) -> None:
        if self._observer is None:
            return
        self._observer.stop()
        self._observer.join()
        self._observer = None
