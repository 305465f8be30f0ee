"""Configuration management for n8nctl."""

import os
from dataclasses import dataclass, field, fields
from typing import Any, Dict, Optional

import yaml

from .validator import ConfigValidationError, ConfigValidator

CONFIG_FILENAME = "n8nctl.yml"


def _default_endpoints() -> Dict[str, str]:
    return {
        "n8n": "http://localhost:5678/healthz",
        "traefik": "http://localhost:8080/ping",
    }


@dataclass
class OpsConfig:
    """Paths and tunables shared by every coordinator."""

    project_dir: str = "."
    data_dir: str = "n8n_data"
    backup_dir: str = "backups"
    certs_dir: str = "letsencrypt"
    env_file: str = ".env"
    env_template: str = ".env.example"
    compose_file: str = "docker-compose.yml"
    backup_prefix: str = "n8n_backup"
    keep_backups: int = 7
    keep_safety_copies: int = 5
    app_service: str = "n8n"
    proxy_service: str = "traefik"
    network_name: str = "web"
    health_attempts: int = 30
    health_interval: float = 10
    start_grace_seconds: float = 10
    version_settle_seconds: float = 5
    command_timeout: int = 300
    health_endpoints: Dict[str, str] = field(default_factory=_default_endpoints)

    def path(self, value: str) -> str:
        """Resolve ``value`` against the project directory."""
        if os.path.isabs(value):
            return value
        return os.path.abspath(os.path.join(self.project_dir, value))

    @property
    def data_path(self) -> str:
        return self.path(self.data_dir)

    @property
    def backup_path(self) -> str:
        return self.path(self.backup_dir)

    @property
    def certs_path(self) -> str:
        return self.path(self.certs_dir)

    @property
    def env_path(self) -> str:
        return self.path(self.env_file)

    @property
    def env_template_path(self) -> str:
        return self.path(self.env_template)

    @property
    def compose_path(self) -> str:
        return self.path(self.compose_file)

    @classmethod
    def from_dict(cls, values: Dict[str, Any]) -> "OpsConfig":
        """Build a config from a mapping, ignoring unknown keys."""
        known = {f.name for f in fields(cls)}
        return cls(**{key: value for key, value in values.items() if key in known})


class ConfigManager:
    """Loads the optional ``n8nctl.yml`` for a project directory."""

    def __init__(self, project_dir: Optional[str] = None):
        """
        Initialize configuration manager.

        Args:
            project_dir: Optional project directory (defaults to current directory)
        """
        self.project_dir = os.path.abspath(project_dir or os.getcwd())
        self.validator = ConfigValidator()

    def get_config_path(self) -> Optional[str]:
        """Get path to the project's configuration file, if there is one."""
        config_path = os.path.join(self.project_dir, CONFIG_FILENAME)
        if os.path.exists(config_path):
            return config_path
        return None

    def load_config(self, config_path: Optional[str] = None, validate: bool = True) -> OpsConfig:
        """
        Load configuration for the project.

        Args:
            config_path: Explicit config file (defaults to ``<project>/n8nctl.yml``)
            validate: Whether to validate the configuration

        Returns:
            OpsConfig: Loaded configuration (defaults when no file exists)

        Raises:
            ConfigValidationError: If the file is invalid
            FileNotFoundError: If an explicit config file doesn't exist
        """
        if config_path is None:
            config_path = self.get_config_path()
            if config_path is None:
                return OpsConfig(project_dir=self.project_dir)
        elif not os.path.exists(config_path):
            raise FileNotFoundError(f"Configuration file not found: {config_path}")

        try:
            with open(config_path, encoding="utf-8") as f:
                raw = yaml.safe_load(f) or {"n8nctl": {}}
        except yaml.YAMLError as e:
            raise ConfigValidationError([f"Invalid YAML in {config_path}: {e}"]) from e

        if isinstance(raw, dict) and "n8nctl" in raw and raw["n8nctl"] is None:
            raw["n8nctl"] = {}

        if validate:
            errors = self.validator.validate_ops_config(raw)
            if errors:
                raise ConfigValidationError(errors)

        settings = dict(raw.get("n8nctl") or {})

        # A relative project_dir in the file is relative to the file itself
        project_dir = settings.pop("project_dir", None)
        if project_dir is None:
            project_dir = self.project_dir
        elif not os.path.isabs(project_dir):
            project_dir = os.path.join(os.path.dirname(os.path.abspath(config_path)), project_dir)

        return OpsConfig.from_dict({**settings, "project_dir": os.path.abspath(project_dir)})
