import asyncio
import logging
import time
from typing import Any, Callable, List, Optional, Set

from watchdog.events import FileSystemEvent

from .config import LogManagerSettings, load_settings
from .core.exceptions import TransientIOError
from .models import (
    CloseCallback,
    DataCallback,
    RegistrationCallback,
    TailFollowOptions,
    TailOptions,
    build_options,
)
from .services.compressor import Compressor
from .services.directory_watcher import DirectoryWatcher
from .services.liveness import ProcessLivenessOracle
from .services.retention_reaper import RetentionReaper
from .services.scanner import FileClassifier, RotationPolicy
from .services.tail import TailMultiplexer

PACKAGE_LOGGER = "log_manager"
logger = logging.getLogger(__name__)


class LogManager:
    """
    Rotation, retention and live-tail manager for one log directory.

    Every directory change notification triggers an independent rescan task:
    classify the directory, compress active files whose process died or which
    fall outside the per-process cap, and delete archives older than the
    retention horizon. Rescans are never serialized; every destructive step
    checks that its target still exists and tolerates it vanishing.

    Must be used from within a running asyncio event loop.
    """

    def __init__(
        self,
        settings: Optional[LogManagerSettings] = None,
        *,
        liveness_oracle: Optional[ProcessLivenessOracle] = None,
        clock: Callable[[], float] = time.time,
        **options: Any,
    ):
        self.settings = load_settings(settings, **options)

        package_logger = logging.getLogger(PACKAGE_LOGGER)
        package_logger.setLevel(self.settings.log_level)
        if package_logger.isEnabledFor(logging.DEBUG):
            logger.debug(f"LogManager config: {self.settings.model_dump()}")

        self.log_dir = str(self.settings.log_directory)
        self._watch_event_count = 0
        self._background_tasks: Set[asyncio.Task] = set()

        self.classifier = FileClassifier(self.log_dir)
        self.liveness_oracle = liveness_oracle or ProcessLivenessOracle()
        self.rotation_policy = RotationPolicy(
            self.settings.max_number_active_files,
            numeric_ordering=self.settings.numeric_sequence_ordering,
        )
        self.compressor = Compressor(chunk_size_kb=self.settings.gzip_chunk_size_kb)
        self.reaper = RetentionReaper(self.settings.retention_days, clock=clock)
        self.tail_multiplexer = TailMultiplexer(
            read_chunk_size=self.settings.follow_read_chunk_size
        )
        self._watcher = DirectoryWatcher(self.log_dir, self._on_watch_event)

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    @property
    def max_number_active_files(self) -> int:
        return self.settings.max_number_active_files

    @property
    def watch_event_count(self) -> int:
        return self._watch_event_count

    def started(self) -> bool:
        return self._watcher.started()

    async def start(self) -> None:
        if self._watcher.start():
            # Catch up on files written before the watcher existed
            self._spawn_task(self.rescan(), "initial rescan")

    async def stop(self) -> None:
        """
        Stop watching and kill every tail -f process.

        In-flight compressions and retention deletes are not awaited.
        """
        await self._watcher.stop()
        self.tail_multiplexer.close_all()

    def _on_watch_event(self, event: FileSystemEvent) -> None:
        # Notifications queued before the observer stopped are dropped
        if not self._watcher.started():
            return
        self._watch_event_count += 1
        logger.debug(f"{event.event_type} : {event.src_path}")
        self._spawn_task(self.rescan(), f"rescan #{self._watch_event_count}")

    def _spawn_task(self, coro, name: str) -> asyncio.Task:
        task = asyncio.create_task(coro, name=name)
        self._background_tasks.add(task)
        task.add_done_callback(self._on_task_done)
        return task

    def _on_task_done(self, task: asyncio.Task) -> None:
        self._background_tasks.discard(task)
        if task.cancelled():
            return
        error = task.exception()
        if error is not None:
            logger.error(
                f"Background task '{task.get_name()}' failed: {error}",
                exc_info=error,
            )

    # ------------------------------------------------------------------
    # Rotation & retention
    # ------------------------------------------------------------------

    async def list_directory_files(self) -> List[str]:
        return await self.classifier.list_directory_files()

    async def rescan(self) -> None:
        """One classify -> rotate -> reap pass. Failures are logged, never raised."""
        try:
            liveness, classified = await asyncio.gather(
                self.liveness_oracle.snapshot(),
                self.classifier.scan(),
            )
        except TransientIOError as e:
            logger.error(f"Rescan of {self.log_dir} aborted: {e}")
            return

        to_compress = self.rotation_policy.select_files_to_compress(
            classified.active, liveness
        )

        for record in to_compress:
            self._spawn_task(self.gzip(record.absolute_path), f"gzip {record.absolute_path}")

        if classified.archived:
            self._spawn_task(
                self.reaper.delete_old_log_files(classified.archived), "retention"
            )

    async def gzip(self, file_path: str) -> bool:
        return await self.compressor.gzip(file_path)

    def get_retention_horizon_millis(self) -> int:
        return self.reaper.get_logs_retention_time_millis()

    get_logs_retention_time_millis = get_retention_horizon_millis

    # ------------------------------------------------------------------
    # Tail
    # ------------------------------------------------------------------

    def tail(
        self,
        file: str,
        on_data: DataCallback,
        on_close: Optional[CloseCallback] = None,
        lines: Optional[int] = None,
    ) -> asyncio.Task:
        """Read the last ``lines`` lines once. Invalid arguments raise ConfigurationError."""
        options = self._tail_options(TailOptions, file, on_data, on_close, lines)
        return self._spawn_task(self.tail_multiplexer.tail(options), f"tail {file}")

    def head(
        self,
        file: str,
        on_data: DataCallback,
        on_close: Optional[CloseCallback] = None,
        lines: Optional[int] = None,
    ) -> asyncio.Task:
        """Read the first ``lines`` lines once. Invalid arguments raise ConfigurationError."""
        options = self._tail_options(TailOptions, file, on_data, on_close, lines)
        return self._spawn_task(self.tail_multiplexer.head(options), f"head {file}")

    def tail_follow(
        self,
        file: str,
        on_data: DataCallback,
        on_close: Optional[CloseCallback] = None,
        on_registration: Optional[RegistrationCallback] = None,
        lines: Optional[int] = None,
    ) -> asyncio.Task:
        """
        Subscribe to ``tail -f`` output of ``file``.

        ``on_registration(error, file, listener_id)`` is called once: with a
        MissingFileError and no id when the file does not exist, otherwise with
        ``None`` and the id to pass to :meth:`stop_tail_following`. The
        returned task resolves to the same listener id (or None).
        """
        options = self._tail_options(
            TailFollowOptions, file, on_data, on_close, lines,
            on_registration=on_registration,
        )
        return self._spawn_task(self.tail_multiplexer.follow(options), f"tail -f {file}")

    def stop_tail_following(self, file: str, listener_id: str) -> None:
        self.tail_multiplexer.stop_following(file, listener_id)

    def _tail_options(self, model, file, on_data, on_close, lines, **extra):
        return build_options(
            model,
            file=file,
            on_data=on_data,
            on_close=on_close,
            lines=self.settings.default_lines if lines is None else lines,
            **extra,
        )
