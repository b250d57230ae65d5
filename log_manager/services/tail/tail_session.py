import asyncio
import logging
from dataclasses import dataclass
from typing import Dict, List, Optional

from log_manager.models import CloseCallback, DataCallback
from .callbacks import dispatch

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class TailListener:
    on_data: DataCallback
    on_close: Optional[CloseCallback] = None


class TailSession:
    """
    One ``tail -f`` process for one file, shared by every registered listener.

    Listeners are keyed by listener id, not by callback, so two subscribers
    passing identical callbacks are still removed independently. Insertion
    order is the fan-out order.
    """

    def __init__(self, file_path: str, process: asyncio.subprocess.Process):
        self.file_path = file_path
        self.process = process
        self.listeners: Dict[str, TailListener] = {}
        self.reader_task: Optional[asyncio.Task] = None

    @property
    def is_empty(self) -> bool:
        return not self.listeners

    def add_listener(self, listener_id: str, listener: TailListener) -> None:
        self.listeners[listener_id] = listener

    def remove_listener(self, listener_id: str) -> bool:
        return self.listeners.pop(listener_id, None) is not None

    def clear_listeners(self) -> None:
        self.listeners.clear()

    async def fan_out_data(self, chunk: bytes) -> None:
        for listener_id in list(self.listeners):
            # A listener removed by an earlier callback in this round gets nothing
            listener = self.listeners.get(listener_id)
            if listener is not None:
                await dispatch(listener.on_data, chunk)

    async def fan_out_close(self, code: Optional[int]) -> None:
        listeners: List[TailListener] = list(self.listeners.values())
        self.listeners.clear()
        for listener in listeners:
            await dispatch(listener.on_close, code)

    def kill(self) -> None:
        if self.process.returncode is not None:
            return
        try:
            self.process.kill()
            logger.debug(f"Killed tail process {self.process.pid} for {self.file_path}")
        except ProcessLookupError:
            pass
