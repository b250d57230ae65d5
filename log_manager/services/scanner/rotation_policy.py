import logging
from collections import defaultdict
from typing import Dict, List

from log_manager.models import ActiveFileRecord
from log_manager.services.liveness import LivenessSnapshot

logger = logging.getLogger(__name__)


class RotationPolicy:
    """
    Decides which active log files should be compressed.

    Files owned by a dead process are always rotated. For live processes only
    the newest ``max_number_active_files`` files are kept, where "newest" is
    the descending order of ``f"{pid}{sequence}"`` compared as strings.
    String comparison means sequence "9" ranks above "10"; set
    ``numeric_ordering`` to compare sequences as integers instead.
    """

    def __init__(self, max_number_active_files: int, numeric_ordering: bool = False):
        if max_number_active_files < 1:
            raise ValueError("max_number_active_files must be greater than 0")
        self.max_number_active_files = max_number_active_files
        self.numeric_ordering = numeric_ordering

    def select_files_to_compress(
        self, active_files: List[ActiveFileRecord], liveness: LivenessSnapshot
    ) -> List[ActiveFileRecord]:
        to_compress: List[ActiveFileRecord] = []
        by_pid: Dict[int, List[ActiveFileRecord]] = defaultdict(list)

        for record in active_files:
            if liveness.is_alive(record.pid):
                by_pid[record.pid].append(record)
            else:
                logger.debug(
                    f"Process {record.pid} is not running - rotating {record.absolute_path}"
                )
                to_compress.append(record)

        for pid, records in by_pid.items():
            if len(records) <= self.max_number_active_files:
                continue

            ordered = sorted(records, key=self._sort_key, reverse=True)
            overflow = ordered[self.max_number_active_files:]
            logger.debug(
                f"Process {pid} has {len(records)} active files "
                f"(max {self.max_number_active_files}) - rotating {len(overflow)}"
            )
            to_compress.extend(overflow)

        return to_compress

    def _sort_key(self, record: ActiveFileRecord):
        if self.numeric_ordering:
            return (record.pid, int(record.sequence))
        return record.sort_key
