"""Configuration management for n8nctl."""

from .manager import ConfigManager, OpsConfig
from .schemas import OPS_CONFIG_SCHEMA
from .validator import ConfigValidationError, ConfigValidator

__all__ = ["ConfigManager", "ConfigValidationError", "ConfigValidator", "OPS_CONFIG_SCHEMA", "OpsConfig"]
