import asyncio
import logging
import signal
import sys

from .config import load_settings
from .core.exceptions import ConfigurationError
from .log_manager import LogManager
from .logging_config import setup_logging

_STOP_SIGNALS = (signal.SIGINT, signal.SIGTERM)


async def run_daemon(manager: LogManager) -> None:
    """Run until SIGINT/SIGTERM, then stop the manager."""
    stop_event = asyncio.Event()
    loop = asyncio.get_running_loop()
    installed = []
    for sig in _STOP_SIGNALS:
        try:
            loop.add_signal_handler(sig, stop_event.set)
            installed.append(sig)
        except NotImplementedError:
            # Windows event loops have no signal handler support
            pass

    await manager.start()
    logging.info(f"Log manager running for {manager.log_dir}")
    try:
        await stop_event.wait()
    finally:
        for sig in installed:
            loop.remove_signal_handler(sig)
        await manager.stop()
        logging.info("Log manager stopped")


def main() -> int:
    try:
        settings = load_settings()
    except ConfigurationError as e:
        print(f"Configuration error: {e}", file=sys.stderr)
        return 2

    setup_logging(settings)
    manager = LogManager(settings)
    try:
        asyncio.run(run_daemon(manager))
    except KeyboardInterrupt:
        pass
    return 0


if __name__ == "__main__":
    sys.exit(main())
