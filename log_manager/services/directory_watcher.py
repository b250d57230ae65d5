import asyncio
import logging
import os
from typing import Callable, Optional

from watchdog.events import FileSystemEvent, FileSystemEventHandler
from watchdog.observers import Observer
from watchdog.observers.api import BaseObserver

from log_manager.core.exceptions import ConfigurationError

logger = logging.getLogger(__name__)

WatchCallback = Callable[[FileSystemEvent], None]

# Access notifications, not changes to the directory
IGNORED_EVENT_TYPES = frozenset({"opened", "closed_no_write"})


class _LoopForwardingHandler(FileSystemEventHandler):
    """Hands every watchdog notification to the asyncio loop that owns the watcher."""

    def __init__(self, loop: asyncio.AbstractEventLoop, callback: WatchCallback):
        super().__init__()
        self._loop = loop
        self._callback = callback

    def on_any_event(self, event: FileSystemEvent) -> None:
        if event.event_type in IGNORED_EVENT_TYPES or self._loop.is_closed():
            return
        try:
            self._loop.call_soon_threadsafe(self._callback, event)
        except RuntimeError:
            # Loop closed between the check and the call
            pass


class DirectoryWatcher:
    """
    Watches one directory (non-recursive) and forwards native change
    notifications to ``callback`` on the event loop thread.

    ``started`` is derived from the observer handle: there is an observer
    exactly while the watcher is running.
    """

    def __init__(self, directory: str, callback: WatchCallback):
        self.directory = directory
        self._callback = callback
        self._observer: Optional[BaseObserver] = None

    def started(self) -> bool:
        return self._observer is not None

    def start(self) -> bool:
        if self._observer is not None:
            logger.debug(f"Already watching : {self.directory}")
            return False

        if not os.path.isdir(self.directory):
            raise ConfigurationError(f"Log directory does not exist: {self.directory}")

        loop = asyncio.get_running_loop()
        observer = Observer()
        observer.schedule(
            _LoopForwardingHandler(loop, self._callback), self.directory, recursive=False
        )
        observer.daemon = True
        observer.start()
        self._observer = observer
        logger.info(f"Started watching : {self.directory}")
        return True

    async def stop(self) -> bool:
        observer = self._observer
        if observer is None:
            logger.debug(f"Not watching : {self.directory}")
            return False

        # Clear the handle first so concurrent stop() calls are no-ops
        self._observer = None
        try:
            observer.stop()
            await asyncio.to_thread(observer.join, 3)
            if observer.is_alive():
                logger.warning(f"Watch observer for {self.directory} did not stop cleanly")
        except Exception as e:
            logger.error(f"Error stopping watch observer: {e}", exc_info=True)

        logger.info(f"Stopped watching : {self.directory}")
        return True
