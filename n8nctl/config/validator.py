"""Configuration validation for n8nctl."""

from typing import Any, Dict, List

import jsonschema

from n8nctl.utils.errors import ConfigurationError, format_validation_errors

from .schemas import OPS_CONFIG_SCHEMA


class ConfigValidationError(ConfigurationError):
    """Raised when configuration validation fails."""

    def __init__(self, errors: List[str]):
        self.errors = errors
        super().__init__(
            f"Configuration validation failed: {'; '.join(errors)}",
            details=format_validation_errors(errors),
            suggestions=["Check YAML syntax in configuration file", "Remove unknown keys under 'n8nctl'"],
        )


class ConfigValidator:
    """Validates n8nctl configuration files."""

    def validate_ops_config(self, config: Dict[str, Any]) -> List[str]:
        """
        Validate an n8nctl configuration mapping.

        Args:
            config: Configuration dictionary to validate

        Returns:
            List[str]: List of validation errors (empty if valid)
        """
        errors = []

        validator = jsonschema.Draft7Validator(OPS_CONFIG_SCHEMA)
        for error in sorted(validator.iter_errors(config), key=lambda e: list(e.path)):
            location = ".".join(str(part) for part in error.path)
            if location:
                errors.append(f"{location}: {error.message}")
            else:
                errors.append(error.message)

        if errors:
            return errors

        settings = config["n8nctl"]

        # Both services are addressed by name in compose commands
        if settings.get("app_service") and settings.get("app_service") == settings.get("proxy_service"):
            errors.append("app_service and proxy_service must name different services")

        backup_dir = settings.get("backup_dir")
        for key in ("data_dir", "certs_dir"):
            if backup_dir and settings.get(key) == backup_dir:
                errors.append(f"{key} must not be the same directory as backup_dir")

        return errors
