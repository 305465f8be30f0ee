"""Tests for configuration management."""

import os

import pytest
import yaml

from n8nctl.config import ConfigManager, ConfigValidationError, ConfigValidator, OpsConfig


class TestOpsConfig:
    """Test the configuration object."""

    def test_defaults(self):
        config = OpsConfig()

        assert config.data_dir == "n8n_data"
        assert config.backup_prefix == "n8n_backup"
        assert config.keep_backups == 7
        assert config.keep_safety_copies == 5
        assert config.health_endpoints["n8n"] == "http://localhost:5678/healthz"

    def test_paths_resolve_against_project_dir(self, tmp_path):
        config = OpsConfig(project_dir=str(tmp_path), backup_dir="/var/backups/n8n")

        assert config.data_path == os.path.join(str(tmp_path), "n8n_data")
        assert config.compose_path == os.path.join(str(tmp_path), "docker-compose.yml")
        assert config.backup_path == "/var/backups/n8n"

    def test_from_dict_ignores_unknown_keys(self):
        config = OpsConfig.from_dict({"keep_backups": 3, "unknown": True})

        assert config.keep_backups == 3


class TestConfigManager:
    """Test configuration manager functionality."""

    def test_load_without_file_uses_defaults(self, tmp_path):
        config = ConfigManager(str(tmp_path)).load_config()

        assert config.project_dir == str(tmp_path)
        assert config.keep_backups == 7

    def test_load_project_file(self, tmp_path):
        (tmp_path / "n8nctl.yml").write_text(
            yaml.dump({"n8nctl": {"keep_backups": 14, "backup_dir": "/mnt/backups", "app_service": "n8n-main"}})
        )

        config = ConfigManager(str(tmp_path)).load_config()

        assert config.keep_backups == 14
        assert config.backup_path == "/mnt/backups"
        assert config.app_service == "n8n-main"

    def test_empty_section_means_defaults(self, tmp_path):
        (tmp_path / "n8nctl.yml").write_text("n8nctl:\n")

        assert ConfigManager(str(tmp_path)).load_config().keep_backups == 7

    def test_relative_project_dir_is_relative_to_file(self, tmp_path):
        config_dir = tmp_path / "etc"
        config_dir.mkdir()
        config_file = config_dir / "n8nctl.yml"
        config_file.write_text(yaml.dump({"n8nctl": {"project_dir": "../deploy"}}))

        config = ConfigManager(str(tmp_path)).load_config(str(config_file))

        assert config.project_dir == str(tmp_path / "deploy")

    def test_missing_explicit_file(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            ConfigManager(str(tmp_path)).load_config(str(tmp_path / "missing.yml"))

    def test_invalid_yaml(self, tmp_path):
        (tmp_path / "n8nctl.yml").write_text("n8nctl: [unclosed\n")

        with pytest.raises(ConfigValidationError):
            ConfigManager(str(tmp_path)).load_config()

    def test_unknown_key_rejected(self, tmp_path):
        (tmp_path / "n8nctl.yml").write_text(yaml.dump({"n8nctl": {"keep_forever": True}}))

        with pytest.raises(ConfigValidationError) as exc_info:
            ConfigManager(str(tmp_path)).load_config()

        assert "keep_forever" in exc_info.value.message


class TestConfigValidator:
    """Test schema and cross-field validation."""

    def setup_method(self):
        self.validator = ConfigValidator()

    def test_valid_config(self):
        assert self.validator.validate_ops_config({"n8nctl": {"keep_backups": 5}}) == []

    def test_keep_backups_minimum(self):
        errors = self.validator.validate_ops_config({"n8nctl": {"keep_backups": 0}})

        assert len(errors) == 1
        assert "keep_backups" in errors[0]

    def test_endpoint_must_be_url(self):
        errors = self.validator.validate_ops_config({"n8nctl": {"health_endpoints": {"n8n": "localhost:5678"}}})

        assert errors

    def test_same_service_names_rejected(self):
        errors = self.validator.validate_ops_config({"n8nctl": {"app_service": "web", "proxy_service": "web"}})

        assert errors

    def test_data_dir_cannot_be_backup_dir(self):
        errors = self.validator.validate_ops_config({"n8nctl": {"data_dir": "store", "backup_dir": "store"}})

        assert errors
