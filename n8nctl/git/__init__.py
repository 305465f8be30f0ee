"""Git inspection of the deployment project."""

from .operations import GitOperations

__all__ = ["GitOperations"]
