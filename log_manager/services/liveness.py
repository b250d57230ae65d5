"""Process liveness snapshots backed by psutil."""

import asyncio
import logging
from dataclasses import dataclass
from typing import FrozenSet

import psutil

from log_manager.core.exceptions import TransientIOError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class LivenessSnapshot:
    """Set of process ids that were alive when the snapshot was taken."""

    pids: FrozenSet[int]

    def is_alive(self, pid: int) -> bool:
        return pid in self.pids

    def __len__(self) -> int:
        return len(self.pids)


class ProcessLivenessOracle:
    """
    Answers "which pids are alive" once per rescan.

    psutil hides the platform differences (procfs, sysctl, Win32 snapshots);
    a single listing is taken per snapshot so every file in one rescan is
    judged against the same view of the process table.
    """

    async def snapshot(self) -> LivenessSnapshot:
        try:
            pids = await asyncio.to_thread(psutil.pids)
        except (psutil.Error, OSError) as e:
            raise TransientIOError("process table listing", e) from e

        logger.debug(f"Liveness snapshot: {len(pids)} live processes")
        return LivenessSnapshot(frozenset(pids))

