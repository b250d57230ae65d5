from .tail_multiplexer import TailMultiplexer
from .tail_session import TailListener, TailSession

__all__ = [
    "TailListener",
    "TailMultiplexer",
    "TailSession",
]
