"""Logging setup: full log to a file, warnings and errors on the console."""
import logging
from pathlib import Path

from rich.console import Console
from rich.logging import RichHandler

from vocab_curator.config import Settings

FILE_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


def configure_logging(settings: Settings, console: Console = None) -> None:
    root = logging.getLogger("vocab_curator")
    root.setLevel(getattr(logging, settings.log_level.upper(), logging.INFO))
    for handler in list(root.handlers):
        root.removeHandler(handler)
        handler.close()

    if settings.log_file:
        log_file = Path(settings.log_file)
        log_file.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(log_file, encoding="utf-8")
        file_handler.setFormatter(logging.Formatter(FILE_FORMAT))
        root.addHandler(file_handler)

    console_handler = RichHandler(console=console, show_path=False, rich_tracebacks=False)
    console_handler.setLevel(logging.WARNING)
    root.addHandler(console_handler)
    root.propagate = False
