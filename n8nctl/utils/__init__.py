"""Utilities for n8nctl."""

from .files import FileManager, human_size
from .logging import log_success, setup_logging

__all__ = ["FileManager", "human_size", "log_success", "setup_logging"]
