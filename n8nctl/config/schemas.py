"""Configuration file schemas for n8nctl."""

_RELATIVE_OR_ABSOLUTE_PATH = {"type": "string", "minLength": 1}

OPS_CONFIG_SCHEMA = {
    "type": "object",
    "properties": {
        "n8nctl": {
            "type": "object",
            "properties": {
                "project_dir": _RELATIVE_OR_ABSOLUTE_PATH,
                "data_dir": _RELATIVE_OR_ABSOLUTE_PATH,
                "backup_dir": _RELATIVE_OR_ABSOLUTE_PATH,
                "certs_dir": _RELATIVE_OR_ABSOLUTE_PATH,
                "env_file": _RELATIVE_OR_ABSOLUTE_PATH,
                "env_template": _RELATIVE_OR_ABSOLUTE_PATH,
                "compose_file": _RELATIVE_OR_ABSOLUTE_PATH,
                "backup_prefix": {
                    "type": "string",
                    "pattern": r"^[A-Za-z0-9][A-Za-z0-9_.-]*$",
                },
                "keep_backups": {"type": "integer", "minimum": 1},
                "keep_safety_copies": {
                    "type": "integer",
                    "minimum": 0,
                    "description": "Rename-aside copies kept per directory (0 keeps all)",
                },
                "app_service": {"type": "string", "minLength": 1},
                "proxy_service": {"type": "string", "minLength": 1},
                "network_name": {"type": "string", "minLength": 1},
                "health_attempts": {"type": "integer", "minimum": 1},
                "health_interval": {"type": "number", "minimum": 0},
                "start_grace_seconds": {"type": "number", "minimum": 0},
                "version_settle_seconds": {"type": "number", "minimum": 0},
                "command_timeout": {"type": "integer", "minimum": 1},
                "health_endpoints": {
                    "type": "object",
                    "additionalProperties": {
                        "type": "string",
                        "pattern": r"^https?://",
                    },
                },
            },
            "additionalProperties": False,
        }
    },
    "required": ["n8nctl"],
    "additionalProperties": False,
}
