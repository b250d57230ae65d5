import asyncio
import logging
import os
import re
from typing import Iterable, List, Optional, Union

from log_manager.core.exceptions import TransientIOError
from log_manager.models import ActiveFileRecord, ArchivedFileRecord, ClassifiedFiles

logger = logging.getLogger(__name__)

ACTIVE_LOG_PATTERN = re.compile(r"^\w+\.(\d+)\.log\.(\d+)$")
ARCHIVED_LOG_PATTERN = re.compile(r"^\w+\.(\d+)\.log\.(\d+)\.gz$")


def classify_file_name(
    log_dir: str, name: str
) -> Optional[Union[ActiveFileRecord, ArchivedFileRecord]]:
    """Match one directory entry name; None when it is neither active nor archived."""
    match = ACTIVE_LOG_PATTERN.match(name)
    if match:
        return ActiveFileRecord(
            absolute_path=os.path.join(log_dir, name),
            pid=int(match.group(1)),
            sequence=match.group(2),
        )

    match = ARCHIVED_LOG_PATTERN.match(name)
    if match:
        return ArchivedFileRecord(
            absolute_path=os.path.join(log_dir, name),
            pid=int(match.group(1)),
            sequence=match.group(2),
        )

    return None


class FileClassifier:
    """Lists the log directory and sorts entries into active and archived records."""

    def __init__(self, log_dir: str):
        self.log_dir = os.path.abspath(log_dir)

    async def list_directory_files(self) -> List[str]:
        try:
            return await asyncio.to_thread(os.listdir, self.log_dir)
        except OSError as e:
            raise TransientIOError(f"listing {self.log_dir}", e) from e

    def classify(self, names: Iterable[str]) -> ClassifiedFiles:
        active: List[ActiveFileRecord] = []
        archived: List[ArchivedFileRecord] = []

        for name in names:
            record = classify_file_name(self.log_dir, name)
            if isinstance(record, ActiveFileRecord):
                active.append(record)
            elif isinstance(record, ArchivedFileRecord):
                archived.append(record)

        logger.debug(
            f"Classified {len(active)} active and {len(archived)} archived log files "
            f"in {self.log_dir}"
        )
        return ClassifiedFiles(active=active, archived=archived)

    async def scan(self) -> ClassifiedFiles:
        return self.classify(await self.list_directory_files())
