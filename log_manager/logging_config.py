import logging

from rich.console import Console
from rich.logging import RichHandler

from .config import LogManagerSettings


def setup_logging(settings: LogManagerSettings) -> None:
    # Create Rich console handler for beautiful output
    console = Console(width=120, stderr=True)
    rich_handler = RichHandler(
        console=console,
        show_time=True,
        show_level=True,
        show_path=True,
        markup=True,
        rich_tracebacks=True,
        tracebacks_show_locals=False,
    )
    rich_handler.setLevel(settings.log_level)

    # Configure root logger (catches everything)
    root_logger = logging.getLogger()
    root_logger.setLevel(settings.log_level)

    # Clear any existing handlers to avoid duplicates
    root_logger.handlers.clear()
    root_logger.addHandler(rich_handler)

    # watchdog is chatty at DEBUG
    logging.getLogger("watchdog").setLevel(logging.WARNING)

    logging.getLogger(__name__).info(
        f"[bold green]Logging initialized[/] - "
        f"Level: [yellow]{settings.log_level}[/], "
        f"Log dir: [cyan]{settings.log_directory}[/], "
        f"Retention: [blue]{settings.retention_days}[/] days"
    )
