"""Container management for n8nctl."""

from .compose import ComposeOrchestrator
from .health import UNAVAILABLE, HealthChecker

__all__ = ["ComposeOrchestrator", "HealthChecker", "UNAVAILABLE"]
