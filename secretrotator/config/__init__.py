"""Configuration management for the secret rotator."""

from .manager import ConfigManager
from .schemas import ROTATION_POLICY_SCHEMA, ROTATOR_CONFIG_SCHEMA
from .validator import ConfigValidationError, ConfigValidator

__all__ = [
    "ConfigManager",
    "ConfigValidationError",
    "ConfigValidator",
    "ROTATION_POLICY_SCHEMA",
    "ROTATOR_CONFIG_SCHEMA",
]
