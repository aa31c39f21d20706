"""Configuration management for the secret rotator."""

import os
from typing import Any, Dict, Optional

import yaml
from jinja2 import Environment, FileSystemLoader

from ..secrets.rotation import RotationPolicy
from .validator import ConfigValidationError, ConfigValidator

DEFAULT_CONFIG_FILE = "secret-rotator.yml"
DEFAULT_STATE_FILE = ".secret-rotator/state.json"


class ConfigManager:
    """Manages the rotator configuration file."""

    def __init__(self, config_path: Optional[str] = None):
        """
        Initialize configuration manager.

        Args:
            config_path: Optional config file path (defaults to secret-rotator.yml
                in the current directory)
        """
        self.config_path = config_path or os.path.join(os.getcwd(), DEFAULT_CONFIG_FILE)
        self.validator = ConfigValidator()
        self._config_cache: Dict[str, Any] = {}

        templates_dir = os.path.join(os.path.dirname(__file__), "..", "templates")
        self.jinja_env = Environment(loader=FileSystemLoader(templates_dir), trim_blocks=True, lstrip_blocks=True)

    def load_config(self, validate: bool = True) -> Dict[str, Any]:
        """
        Load the configuration file.

        Args:
            validate: Whether to validate the configuration

        Returns:
            Dict[str, Any]: Loaded configuration

        Raises:
            ConfigValidationError: If validation fails
            FileNotFoundError: If config file doesn't exist
        """
        if self.config_path in self._config_cache:
            return self._config_cache[self.config_path]

        try:
            with open(self.config_path, encoding="utf-8") as f:
                config = yaml.safe_load(f)
        except FileNotFoundError:
            raise FileNotFoundError(f"Configuration file not found: {self.config_path}")
        except yaml.YAMLError as e:
            raise ConfigValidationError([f"Invalid YAML in {self.config_path}: {e}"])

        if config is None:
            config = {"rotations": []}

        if validate:
            if not isinstance(config, dict):
                raise ConfigValidationError(["Configuration file must contain a mapping"])
            errors = self.validator.validate_config(config)
            if errors:
                raise ConfigValidationError(errors)

        self._config_cache[self.config_path] = config
        return config

    def load_policies(self) -> Dict[str, RotationPolicy]:
        """
        Load rotation policies keyed by name.

        Returns:
            Dict[str, RotationPolicy]: Policies in file order
        """
        config = self.load_config()
        return {
            data["name"]: RotationPolicy.from_dict(data)
            for data in config.get("rotations") or []
        }

    def get_store_config(self) -> Dict[str, Any]:
        """Get the secret store section."""
        return self.load_config().get("store") or {"type": "file"}

    def get_rotator_config(self) -> Dict[str, Any]:
        """Get the rotator section with defaults applied."""
        rotator = dict(self.load_config().get("rotator") or {})
        rotator.setdefault("state_file", DEFAULT_STATE_FILE)
        rotator.setdefault("workers", 1)
        return rotator

    def render_default_config(self, **template_vars: Any) -> str:
        """
        Render the default configuration template.

        Args:
            **template_vars: Variables for template rendering

        Returns:
            str: Rendered YAML
        """
        template = self.jinja_env.get_template("rotator.yml.j2")
        return template.render(**template_vars)

    def initialize_config(
        self,
        store_type: str = "file",
        vault_address: str = "http://vault.vault-system:8200",
        version: str = "1.0.0",
    ) -> str:
        """
        Write a default configuration file.

        Args:
            store_type: Secret store type (file, vault)
            vault_address: Vault address used for the vault store
            version: Configuration version

        Returns:
            str: Path to created configuration file
        """
        if os.path.exists(self.config_path):
            raise FileExistsError(f"Configuration file already exists: {self.config_path}")

        config_yaml = self.render_default_config(
            store_type=store_type,
            vault_address=vault_address,
            version=version,
            state_file=DEFAULT_STATE_FILE,
        )

        errors = self.validator.validate_config(yaml.safe_load(config_yaml))
        if errors:
            raise ConfigValidationError(errors)

        config_dir = os.path.dirname(self.config_path)
        if config_dir:
            os.makedirs(config_dir, exist_ok=True)

        with open(self.config_path, "w", encoding="utf-8") as f:
            f.write(config_yaml)

        return self.config_path

    def clear_cache(self) -> None:
        """Clear configuration cache."""
        self._config_cache.clear()
