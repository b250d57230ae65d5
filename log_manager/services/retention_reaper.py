import asyncio
import logging
import time
from typing import Callable, Iterable

import aiofiles.os

from log_manager.models import ArchivedFileRecord
from .file_removal import remove_tolerating_disappearance

logger = logging.getLogger(__name__)

MILLIS_PER_DAY = 24 * 60 * 60 * 1000


class RetentionReaper:
    """Deletes archived log files whose modification time is past the retention horizon."""

    def __init__(self, retention_days: int, clock: Callable[[], float] = time.time):
        self.retention_days = retention_days
        self._clock = clock

    def get_logs_retention_time_millis(self) -> int:
        """Epoch millis; archives modified strictly before this are deleted."""
        now_millis = int(self._clock() * 1000)
        return now_millis - self.retention_days * MILLIS_PER_DAY

    async def delete_old_log_files(self, records: Iterable[ArchivedFileRecord]) -> int:
        horizon = self.get_logs_retention_time_millis()
        results = await asyncio.gather(
            *(self._reap(record, horizon) for record in records)
        )
        deleted = sum(1 for result in results if result)
        if deleted:
            logger.info(f"Retention: deleted {deleted} archived log files")
        return deleted

    async def _reap(self, record: ArchivedFileRecord, horizon_millis: int) -> bool:
        file_path = record.absolute_path
        try:
            if not await aiofiles.os.path.exists(file_path):
                return False
            stat_result = await aiofiles.os.stat(file_path)
        except FileNotFoundError:
            return False
        except OSError as e:
            logger.error(f"Failed to stat archived log {file_path}: {e}")
            return False

        mtime_millis = stat_result.st_mtime_ns // 1_000_000
        if mtime_millis < horizon_millis:
            return await remove_tolerating_disappearance(file_path, "expired archive")

        logger.debug(f"Retaining {file_path}")
        return False
