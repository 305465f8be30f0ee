"""Error handling utilities for n8nctl."""

import sys
import traceback
from typing import Optional

import click


class N8nctlError(Exception):
    """Base exception for n8nctl errors."""

    def __init__(
        self,
        message: str,
        details: Optional[str] = None,
        suggestions: Optional[list] = None,
    ):
        self.message = message
        self.details = details
        self.suggestions = suggestions or []
        super().__init__(message)


class ConfigurationError(N8nctlError):
    """Raised when configuration is invalid or missing."""

    pass


class N8nctlEnvironmentError(N8nctlError):
    """Raised when a required external tool is missing or not functional."""

    pass


class NotFoundError(N8nctlError):
    """Raised when a referenced archive or required file is missing."""

    pass


class InvalidFormatError(N8nctlError):
    """Raised when an archive does not have the expected internal structure."""

    pass


class DockerError(N8nctlError):
    """Raised when Docker operations fail."""

    pass


class GitError(N8nctlError):
    """Raised when Git operations fail."""

    pass


class BackupError(N8nctlError):
    """Raised when a backup run cannot produce an archive."""

    pass


class RestoreError(N8nctlError):
    """Raised when a restore run fails."""

    pass


class UpdateError(N8nctlError):
    """Raised when an update run fails."""

    pass


class ProvisioningError(N8nctlError):
    """Raised when host bootstrap fails."""

    pass


class DegradedStepWarning(N8nctlError):
    """Raised by a step that could not complete but must not stop the run."""

    pass


class UserCancelled(N8nctlError):
    """Raised when the operator declines an interactive confirmation."""

    pass


class ErrorHandler:
    """Handles and formats errors for user-friendly display."""

    def __init__(self, verbose: bool = False):
        self.verbose = verbose

    def handle_error(self, error: Exception, context: Optional[str] = None) -> None:
        """
        Handle and display error with appropriate formatting.

        Args:
            error: Exception to handle
            context: Optional context about when/where error occurred
        """
        if isinstance(error, N8nctlError):
            self._handle_n8nctl_error(error, context)
        else:
            self._handle_generic_error(error, context)

    def _handle_n8nctl_error(self, error: N8nctlError, context: Optional[str]) -> None:
        """Handle n8nctl-specific errors."""
        click.echo(f"✗ {error.message}", err=True)

        if context:
            click.echo(f"Context: {context}", err=True)

        if error.details:
            click.echo(f"Details: {error.details}", err=True)

        if error.suggestions:
            click.echo("\nSuggestions:", err=True)
            for suggestion in error.suggestions:
                click.echo(f"  • {suggestion}", err=True)

        if self.verbose:
            click.echo("\nFull traceback:", err=True)
            traceback.print_exc()

    def _handle_generic_error(self, error: Exception, context: Optional[str]) -> None:
        """Handle generic Python exceptions."""
        error_type = type(error).__name__

        if isinstance(error, FileNotFoundError):
            message = f"File not found: {error}"
            suggestions = [
                "Check that the file path is correct",
                "Ensure the file exists and is readable",
            ]
        elif isinstance(error, PermissionError):
            message = f"Permission denied: {error}"
            suggestions = [
                "Check file/directory permissions",
                "Data directories written by containers may be owned by another user",
            ]
        else:
            message = f"{error_type}: {error}"
            suggestions = []

        click.echo(f"✗ {message}", err=True)

        if context:
            click.echo(f"Context: {context}", err=True)

        if suggestions:
            click.echo("\nSuggestions:", err=True)
            for suggestion in suggestions:
                click.echo(f"  • {suggestion}", err=True)

        if self.verbose:
            click.echo("\nFull traceback:", err=True)
            traceback.print_exc()

    def exit_with_error(self, error: Exception, context: Optional[str] = None, exit_code: int = 1) -> None:
        """Handle error and exit with specified code."""
        self.handle_error(error, context)
        sys.exit(exit_code)


def create_error_suggestions(error_type: str, **kwargs) -> list:
    """
    Create contextual error suggestions based on error type and context.

    Args:
        error_type: Type of error
        **kwargs: Additional context information (e.g. ``path``)

    Returns:
        list: List of suggestion strings
    """
    suggestions = {
        "docker_missing": [
            "Install Docker Engine and the compose plugin (run 'n8nctl setup')",
            "Check that 'docker' is on your PATH",
            "Verify that 'docker compose version' works for the current user",
        ],
        "docker_not_running": [
            "Start the Docker daemon: sudo systemctl start docker",
            "Verify Docker permissions for current user (docker group)",
        ],
        "archive_not_found": [
            "List available archives with 'n8nctl backups'",
            "Pass either a path or a file name inside the backup directory",
        ],
        "archive_invalid": [
            "Make sure the file was produced by 'n8nctl backup'",
            "Check that the archive was not truncated during transfer",
        ],
        "backup_failed": [
            "Check free disk space in the backup directory",
            "Re-run with --verbose for the full step log",
        ],
        "configuration_invalid": [
            "Check YAML syntax in configuration file",
            "Verify that all keys live under the top-level 'n8nctl' mapping",
        ],
        "service_unhealthy": [
            "Check service logs: docker compose logs -f",
            "Restart services: docker compose restart",
            "Restore from backup if needed: n8nctl restore <backup-file>",
        ],
    }

    result = list(suggestions.get(error_type, []))
    path = kwargs.get("path")
    if path and error_type == "archive_not_found":
        result.insert(0, f"No file at '{path}'")
    return result


def format_validation_errors(errors: list) -> str:
    """
    Format validation errors for display.

    Args:
        errors: List of validation error messages

    Returns:
        str: Formatted error message
    """
    if not errors:
        return "No validation errors"

    if len(errors) == 1:
        return f"Validation error: {errors[0]}"

    formatted = "Validation errors:\n"
    for i, error in enumerate(errors, 1):
        formatted += f"  {i}. {error}\n"

    return formatted.strip()
