"""Live reload of file overrides.

File-system events arrive on watchdog's observer thread. The controller never
touches settings there: it posts the re-resolution onto the execution
context that owns the settings, and coalesces bursts of events so each kind
is re-resolved at most once per pending post.
"""

import asyncio
import queue
import threading
from abc import ABC, abstractmethod
from pathlib import Path
from typing import TYPE_CHECKING, Callable, Dict, Iterable, Optional, Set

from loguru import logger
from watchdog.events import FileSystemEvent, FileSystemEventHandler
from watchdog.observers import Observer

from .overrides import FileOverrideSource

if TYPE_CHECKING:
    from .lifecycle import SettingsRegistry


class ExecutionContext(ABC):
    """The single context on which a kind's active instance is replaced."""

    @abstractmethod
    def post(self, callback: Callable[[], None]) -> None:
        """Schedule callback to run on this context. Safe from any thread."""


class QueueContext(ExecutionContext):
    """Callbacks queued here run when the owner thread calls run_pending()."""

    def __init__(self):
        self._queue: "queue.Queue[Callable[[], None]]" = queue.Queue()

    def post(self, callback: Callable[[], None]) -> None:
        self._queue.put(callback)

    @property
    def pending(self) -> int:
        return self._queue.qsize()

    def run_pending(self) -> int:
        """Run every queued callback on the calling thread."""
        count = 0
        while True:
            try:
                callback = self._queue.get_nowait()
            except queue.Empty:
                return count
            callback()
            count += 1


class LoopContext(ExecutionContext):
    """Posts callbacks onto an asyncio event loop."""

    def __init__(self, loop: asyncio.AbstractEventLoop):
        self.loop = loop

    def post(self, callback: Callable[[], None]) -> None:
        self.loop.call_soon_threadsafe(callback)


class _OverrideFileHandler(FileSystemEventHandler):
    def __init__(self, controller: "LiveReloadController"):
        super().__init__()
        self.controller = controller

    def on_any_event(self, event: FileSystemEvent) -> None:
        if event.is_directory or event.event_type not in ("modified", "created", "moved"):
            return
        paths = [event.src_path]
        dest_path = getattr(event, "dest_path", None)
        if dest_path:
            paths.append(dest_path)
        for path in paths:
            if isinstance(path, bytes):
                path = path.decode()
            self.controller.notify_changed(path)


class LiveReloadController:
    """Watches override files of live-reloadable kinds."""

    def __init__(
        self,
        registry: "SettingsRegistry",
        context: ExecutionContext,
        observer_factory: Callable[[], Observer] = Observer,
    ):
        self.registry = registry
        self.context = context
        self._observer_factory = observer_factory
        self._observer: Optional[Observer] = None
        self._handler = _OverrideFileHandler(self)
        self._lock = threading.Lock()
        self._watched_dirs: Set[Path] = set()
        self._kinds_by_path: Dict[Path, Set[type]] = {}
        self._pending: Set[type] = set()
        self._generation = 0
        self._active = False

    @property
    def is_active(self) -> bool:
        return self._active

    def start(self) -> None:
        with self._lock:
            if self._active:
                return
            self._generation += 1
            self._observer = self._observer_factory()
            self._observer.daemon = True
            self._observer.start()
            self._active = True

    def watch(self, cls: type, sources: Iterable[FileOverrideSource]) -> int:
        """Watch the directories of a kind's file sources; returns the number of files."""
        count = 0
        with self._lock:
            if not self._active:
                return 0
            for source in sources:
                path = source.resolved_path
                directory = path.parent
                if not directory.is_dir():
                    logger.debug(f"Not watching {path}: directory does not exist")
                    continue
                if directory not in self._watched_dirs:
                    self._observer.schedule(self._handler, str(directory), recursive=False)
                    self._watched_dirs.add(directory)
                self._kinds_by_path.setdefault(path, set()).add(cls)
                count += 1
        if count:
            logger.info(f"Watching {count} override file(s) for {cls.__name__}")
        return count

    def watched_paths(self) -> Set[Path]:
        with self._lock:
            return set(self._kinds_by_path)

    def notify_changed(self, path) -> None:
        """Handle a change of a file; may be called from any thread."""
        resolved = Path(path).expanduser().resolve()
        with self._lock:
            if not self._active:
                return
            kinds = self._kinds_by_path.get(resolved, set())
            to_post = [cls for cls in kinds if cls not in self._pending]
            self._pending.update(to_post)
            generation = self._generation

        for cls in to_post:
            logger.debug(f"Override file {resolved} changed, scheduling reload of {cls.__name__}")
            self.context.post(lambda cls=cls: self._reload(cls, generation))

    def _reload(self, cls: type, generation: int) -> None:
        with self._lock:
            if generation != self._generation or not self._active:
                return
            self._pending.discard(cls)
        self.registry.reresolve(cls)

    def stop(self) -> None:
        """Cancel all watches; no reload posted earlier will run afterwards."""
        with self._lock:
            if not self._active:
                return
            self._active = False
            self._generation += 1
            self._pending.clear()
            self._kinds_by_path.clear()
            self._watched_dirs.clear()
            observer = self._observer
            self._observer = None
        observer.unschedule_all()
        observer.stop()
        observer.join()
        logger.info("Stopped watching override files")
