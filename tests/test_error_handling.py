"""Tests for error handling system."""

from unittest.mock import patch

import click
from click.testing import CliRunner

from n8nctl.utils.errors import (
    BackupError,
    ConfigurationError,
    DegradedStepWarning,
    DockerError,
    ErrorHandler,
    N8nctlError,
    NotFoundError,
    UserCancelled,
    create_error_suggestions,
    format_validation_errors,
)


class TestN8nctlError:
    """Test custom error classes."""

    def test_n8nctl_error_basic(self):
        """Test basic N8nctlError functionality."""
        error = N8nctlError("Test error message")

        assert str(error) == "Test error message"
        assert error.message == "Test error message"
        assert error.details is None
        assert error.suggestions == []

    def test_n8nctl_error_with_details(self):
        """Test N8nctlError with details and suggestions."""
        suggestions = ["Try this", "Or try that"]
        error = N8nctlError("Test error", details="Detailed explanation", suggestions=suggestions)

        assert error.message == "Test error"
        assert error.details == "Detailed explanation"
        assert error.suggestions == suggestions

    def test_error_hierarchy(self):
        """Every error class derives from N8nctlError."""
        for cls in (ConfigurationError, DockerError, BackupError, NotFoundError, DegradedStepWarning, UserCancelled):
            assert issubclass(cls, N8nctlError)


class TestErrorHandler:
    """Test error handler functionality."""

    def setup_method(self):
        """Setup test environment."""
        self.handler = ErrorHandler(verbose=False)
        self.verbose_handler = ErrorHandler(verbose=True)

    def test_handle_n8nctl_error(self):
        """Test handling n8nctl-specific errors."""
        error = N8nctlError("Test error message", details="Error details", suggestions=["Suggestion 1"])

        with patch("click.echo") as mock_echo:
            self.handler.handle_error(error, "Backup")

        output = " ".join(str(call) for call in mock_echo.call_args_list)
        assert "✗ Test error message" in output
        assert "Context: Backup" in output
        assert "Details: Error details" in output
        assert "Suggestion 1" in output

    def test_handle_generic_error_file_not_found(self):
        """Test handling FileNotFoundError."""
        with patch("click.echo") as mock_echo:
            self.handler.handle_error(FileNotFoundError("n8nctl.yml not found"))

        assert "File not found" in str(mock_echo.call_args_list[0])

    def test_handle_generic_error_permission_denied(self):
        """Test handling PermissionError."""
        with patch("click.echo") as mock_echo:
            self.handler.handle_error(PermissionError("n8n_data"))

        assert "Permission denied" in str(mock_echo.call_args_list[0])

    def test_handle_error_with_verbose(self):
        """Test error handling with verbose output."""
        with patch("click.echo"):
            with patch("traceback.print_exc") as mock_traceback:
                self.verbose_handler.handle_error(N8nctlError("Test error"))

        mock_traceback.assert_called_once()

    def test_exit_with_error(self):
        """Test exit_with_error functionality."""
        with patch("click.echo"):
            with patch("sys.exit") as mock_exit:
                self.handler.exit_with_error(N8nctlError("Fatal error"))

        mock_exit.assert_called_once_with(1)


class TestErrorUtilities:
    """Test error utility functions."""

    def test_create_error_suggestions_docker(self):
        """Test Docker error suggestions."""
        suggestions = create_error_suggestions("docker_not_running")

        assert any("Docker" in suggestion for suggestion in suggestions)

    def test_create_error_suggestions_archive_path(self):
        """Missing archive suggestions name the path first."""
        suggestions = create_error_suggestions("archive_not_found", path="backups/old.tar.gz")

        assert suggestions[0] == "No file at 'backups/old.tar.gz'"
        assert any("n8nctl backups" in suggestion for suggestion in suggestions)

    def test_create_error_suggestions_unknown(self):
        """Test suggestions for unknown error type."""
        assert create_error_suggestions("unknown_error_type") == []

    def test_format_validation_errors_single(self):
        """Test formatting single validation error."""
        result = format_validation_errors(["n8nctl.keep_backups: 0 is less than the minimum of 1"])

        assert "Validation error:" in result
        assert "keep_backups" in result

    def test_format_validation_errors_multiple(self):
        """Test formatting multiple validation errors."""
        result = format_validation_errors(["first", "second", "third"])

        assert "Validation errors:" in result
        assert "1." in result
        assert "3." in result

    def test_format_validation_errors_empty(self):
        """Test formatting empty validation errors."""
        assert format_validation_errors([]) == "No validation errors"


class TestClickIntegration:
    """Test error handling integration with Click commands."""

    def test_cli_error_handling(self):
        """Errors routed through ErrorHandler exit with code 1."""

        @click.command()
        def failing_command():
            ErrorHandler().exit_with_error(ConfigurationError("Test config error"))

        result = CliRunner().invoke(failing_command)

        assert result.exit_code == 1
        assert "Test config error" in result.output
