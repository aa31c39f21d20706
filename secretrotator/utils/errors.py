"""Error handling utilities for the secret rotator."""

import sys
import traceback
from typing import Optional

import click


class RotatorError(Exception):
    """Base exception for secret rotator errors."""

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


class ConfigurationError(RotatorError):
    """Raised when a policy or configuration file is invalid."""

    pass


class GenerationError(RotatorError):
    """Raised when credential generation fails."""

    pass


class InvalidInputError(GenerationError):
    """Raised when generation parameters can never produce a credential."""

    pass


class EntropySourceError(GenerationError):
    """Raised when the secure random source fails or misbehaves."""

    pass


class StoreError(RotatorError):
    """Raised when the secret store cannot be reached or written."""

    pass


class StatePersistenceError(RotatorError):
    """Raised when rotation state cannot be written back."""

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
        if isinstance(error, RotatorError):
            self._handle_rotator_error(error, context)
        else:
            self._handle_generic_error(error, context)

    def _handle_rotator_error(self, error: RotatorError, context: Optional[str]) -> None:
        """Handle rotator-specific errors."""
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
                "Run 'secret-rotator init' to create a default configuration",
            ]
        elif isinstance(error, PermissionError):
            message = f"Permission denied: {error}"
            suggestions = [
                "Check file/directory permissions",
                "State and key files must be owned by the rotator user",
            ]
        elif isinstance(error, ConnectionError):
            message = f"Connection failed: {error}"
            suggestions = [
                "Verify that the secret store is reachable",
                "Check firewall settings",
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


def create_error_suggestions(error_type: str) -> list:
    """
    Create contextual error suggestions based on error type.

    Args:
        error_type: Type of error

    Returns:
        list: List of suggestion strings
    """
    suggestions = {
        "configuration_invalid": [
            "Check YAML syntax in configuration file",
            "Verify all required fields are present",
            "Run 'secret-rotator validate' for a full report",
        ],
        "interval_invalid": [
            "Use a duration such as '24h', '90m' or '1h30m'",
            "The interval must be greater than zero",
        ],
        "store_unavailable": [
            "Check the secret store address and credentials",
            "Verify the store path is writable by the rotator",
        ],
        "policy_not_found": [
            "Check the policy name in the 'rotations' section",
            "Run 'secret-rotator status' to list known policies",
        ],
    }

    return suggestions.get(error_type, [])


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
