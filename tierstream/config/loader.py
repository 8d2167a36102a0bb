"""YAML configuration loader for tierstream."""
import os
from pathlib import Path
from typing import Any, Dict, Mapping, Optional

import yaml

from tierstream.adapters.llm.factory import detect_provider
from tierstream.config.schema import RelayConfig


class ConfigLoader:
    """Load and validate tierstream configuration."""

    def __init__(self, config_path: str, environ: Optional[Mapping[str, str]] = None):
        """
        Args:
            config_path: Path to YAML configuration file
            environ: Environment used to resolve secrets (default os.environ)
        """
        self.config_path = Path(config_path)
        self.environ = os.environ if environ is None else environ
        self.config: Optional[RelayConfig] = None

    def load(self) -> RelayConfig:
        """Load and validate configuration from YAML file."""
        if not self.config_path.exists():
            raise FileNotFoundError(f"Config file not found: {self.config_path}")

        try:
            with open(self.config_path, "r") as f:
                raw_config = yaml.safe_load(f) or {}
        except yaml.YAMLError as e:
            raise ValueError(f"Invalid YAML syntax in {self.config_path}: {e}") from e

        self.config = self.from_dict(raw_config, self.environ)
        return self.config

    @staticmethod
    def from_dict(raw_config: Dict[str, Any], environ: Optional[Mapping[str, str]] = None) -> RelayConfig:
        """Validate a raw configuration mapping and resolve the provider key.

        The provider name defaults from a well-known ``base_url`` and the key
        variable defaults to ``<NAME>_API_KEY``.
        """
        environ = os.environ if environ is None else environ
        if not isinstance(raw_config, dict):
            raise ValueError("Configuration must be a mapping")

        provider = dict(raw_config.get("provider") or {})
        if not provider.get("name") and provider.get("base_url"):
            detected = detect_provider(str(provider["base_url"]))
            if detected:
                provider["name"] = detected
        if not provider.get("api_key_env"):
            provider["api_key_env"] = f"{str(provider.get('name') or 'openai').upper()}_API_KEY"
        if not provider.get("api_key"):
            provider["api_key"] = environ.get(provider["api_key_env"])

        try:
            return RelayConfig(**{**raw_config, "provider": provider})
        except Exception as e:
            raise ValueError(f"Configuration validation failed: {e}") from e
