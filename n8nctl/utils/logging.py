"""Logging configuration for n8nctl."""

import logging
import sys
from typing import Optional

import click

SUCCESS = 25
logging.addLevelName(SUCCESS, "SUCCESS")

_LEVEL_COLORS = {
    "DEBUG": "white",
    "INFO": "blue",
    "SUCCESS": "green",
    "WARNING": "yellow",
    "ERROR": "red",
    "CRITICAL": "red",
}


class ColorFormatter(logging.Formatter):
    """Renders records as ``[LEVEL] message`` with a colored level tag."""

    def __init__(self, use_color: bool = True):
        super().__init__("%(message)s")
        self.use_color = use_color

    def format(self, record: logging.LogRecord) -> str:
        message = super().format(record)
        tag = f"[{record.levelname}]"
        if self.use_color:
            tag = click.style(tag, fg=_LEVEL_COLORS.get(record.levelname, "white"), bold=True)
        return f"{tag} {message}"


def log_success(logger: logging.Logger, message: str, *args) -> None:
    """Log ``message`` at the SUCCESS level."""
    logger.log(SUCCESS, message, *args)


def setup_logging(verbose: bool = False, log_file: Optional[str] = None, use_color: Optional[bool] = None) -> None:
    """
    Setup logging configuration for the CLI.

    Args:
        verbose: Enable verbose/debug logging
        log_file: Optional log file path
        use_color: Force colors on/off (default: only when stdout is a terminal)
    """
    level = logging.DEBUG if verbose else logging.INFO

    if use_color is None:
        use_color = sys.stdout.isatty()

    root_logger = logging.getLogger()

    # Replace handlers from a previous call (tests invoke the CLI repeatedly)
    for handler in list(root_logger.handlers):
        if getattr(handler, "_n8nctl", False):
            root_logger.removeHandler(handler)
            handler.close()

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(level)
    console_handler.setFormatter(ColorFormatter(use_color=use_color))
    console_handler._n8nctl = True

    root_logger.setLevel(logging.DEBUG if log_file else level)
    root_logger.addHandler(console_handler)

    if log_file:
        file_handler = logging.FileHandler(log_file)
        file_handler.setLevel(logging.DEBUG)
        file_handler.setFormatter(logging.Formatter("%(asctime)s - %(name)s - %(levelname)s - %(message)s"))
        file_handler._n8nctl = True
        root_logger.addHandler(file_handler)

    # Reduce noise from third-party libraries
    logging.getLogger("docker").setLevel(logging.WARNING)
    logging.getLogger("urllib3").setLevel(logging.WARNING)
    logging.getLogger("git").setLevel(logging.WARNING)
