"""Configuration validation for the secret rotator."""

from typing import Any, Dict, List

import jsonschema
import yaml

from ..utils.durations import parse_duration
from .schemas import ROTATOR_CONFIG_SCHEMA


class ConfigValidationError(Exception):
    """Raised when configuration validation fails."""

    def __init__(self, errors: List[str]):
        self.errors = errors
        super().__init__(f"Configuration validation failed: {'; '.join(errors)}")


class ConfigValidator:
    """Validates secret rotator configuration files."""

    def validate_config(self, config: Dict[str, Any]) -> List[str]:
        """
        Validate the structure of a rotator configuration.

        Intervals are not parsed here: a policy with a malformed interval is
        still loaded so that its status can report the configuration error.

        Args:
            config: Configuration dictionary to validate

        Returns:
            List[str]: List of validation errors (empty if valid)
        """
        errors = []

        validator = jsonschema.Draft7Validator(ROTATOR_CONFIG_SCHEMA)
        for error in sorted(validator.iter_errors(config), key=lambda e: list(e.path)):
            location = "/".join(str(part) for part in error.path)
            if location:
                errors.append(f"Schema validation failed at {location}: {error.message}")
            else:
                errors.append(f"Schema validation failed: {error.message}")

        if isinstance(config.get("rotations"), list):
            errors.extend(self._validate_unique_names(config["rotations"]))

        return errors

    def validate_policies(self, config: Dict[str, Any]) -> List[str]:
        """
        Check the rotation policies semantically.

        Args:
            config: Configuration dictionary

        Returns:
            List[str]: Problems that would put a policy into ConfigError
        """
        errors = []

        for policy in config.get("rotations") or []:
            if not isinstance(policy, dict):
                continue
            name = policy.get("name", "<unnamed>")
            interval = policy.get("rotation_interval", policy.get("rotationInterval"))
            if interval is None:
                continue

            interval_errors = self._validate_interval(str(interval))
            errors.extend(f"Policy '{name}': {error}" for error in interval_errors)

        return errors

    def validate_config_file(self, file_path: str) -> List[str]:
        """
        Validate configuration file, including policy intervals.

        Args:
            file_path: Path to configuration file

        Returns:
            List[str]: List of validation errors (empty if valid)
        """
        try:
            with open(file_path, encoding="utf-8") as f:
                config = yaml.safe_load(f)
        except FileNotFoundError:
            return [f"Configuration file not found: {file_path}"]
        except yaml.YAMLError as e:
            return [f"YAML parsing error: {e}"]
        except Exception as e:
            return [f"Error reading configuration file: {e}"]

        if config is None:
            return ["Configuration file is empty"]
        if not isinstance(config, dict):
            return ["Configuration file must contain a mapping"]

        return self.validate_config(config) + self.validate_policies(config)

    def _validate_interval(self, interval: str) -> List[str]:
        """Validate a rotation interval string."""
        try:
            duration = parse_duration(interval)
        except ValueError:
            return [f"Invalid rotation interval: {interval!r}"]

        if duration.total_seconds() <= 0:
            return [f"Rotation interval must be positive: {interval!r}"]

        return []

    def _validate_unique_names(self, rotations: List[Any]) -> List[str]:
        """Validate that policy names are unique."""
        errors = []
        seen = set()

        for policy in rotations:
            if not isinstance(policy, dict) or "name" not in policy:
                continue
            name = policy["name"]
            if name in seen:
                errors.append(f"Duplicate policy name: {name}")
            seen.add(name)

        return errors
