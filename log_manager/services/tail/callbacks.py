import inspect
import logging
from typing import Any, Callable, Optional

logger = logging.getLogger(__name__)


async def dispatch(callback: Optional[Callable[..., Any]], *args: Any) -> None:
    """
    Invoke a subscriber callback (plain function or coroutine function).

    Subscriber failures are logged and swallowed so that one broken
    subscriber can neither stop the fan-out nor the manager.
    """
    if callback is None:
        return
    try:
        result = callback(*args)
        if inspect.isawaitable(result):
            await result
    except Exception as e:
        name = getattr(callback, "__name__", repr(callback))
        logger.error(f"Unhandled exception in tail callback '{name}': {e}", exc_info=True)
