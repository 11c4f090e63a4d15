"""Configuration management with environment variable integration and validation."""

import os
import yaml
from pathlib import Path
from typing import Dict, Any, Optional, Mapping

from .types import ResilienceConfig
from .errors import ConfigurationError

# Variables predating the RESILIENCE_ prefix convention
LEGACY_ENV_FIELDS = {
    "LOG_IMMEDIATE": "log_immediate",
}


def load_env_overrides(
    prefix: str = "RESILIENCE_", environ: Optional[Mapping[str, str]] = None
) -> Dict[str, Any]:
    """Load environment variables with the given prefix and convert to appropriate types."""
    environ = os.environ if environ is None else environ
    overrides: Dict[str, Any] = {}

    for key, value in environ.items():
        if key.startswith(prefix):
            field_name = key[len(prefix) :].lower()

            # Nested configuration (e.g., RESILIENCE_TIMEOUTS__HEALTH_RETRY_INTERVAL)
            if "__" in field_name:
                parts = field_name.split("__")
                if len(parts) == 2:
                    section, sub_field = parts
                    overrides.setdefault(section, {})[sub_field] = _convert_env_value(
                        value
                    )
                continue

            overrides[field_name] = _convert_env_value(value)

    for key, field_name in LEGACY_ENV_FIELDS.items():
        if key in environ and field_name not in overrides:
            overrides[field_name] = _convert_env_value(environ[key])

    if "ARANGO_STORAGE_ENGINE" in environ and "storage_engine" not in overrides:
        overrides["storage_engine"] = _legacy_storage_engine(
            environ["ARANGO_STORAGE_ENGINE"]
        )

    if environ.get("PORT_OFFSET"):
        try:
            port_offset = int(environ["PORT_OFFSET"])
        except ValueError as e:
            raise ConfigurationError(
                f"PORT_OFFSET must be an integer, got {environ['PORT_OFFSET']!r}"
            ) from e
        overrides.setdefault("ports", {})["port_offset"] = port_offset

    # Paths and image references are never numbers
    for field_name in ("arango_basepath", "docker_image", "arango_wrapper"):
        if field_name in overrides and overrides[field_name] is not None:
            overrides[field_name] = str(overrides[field_name])

    return overrides


def _legacy_storage_engine(value: str) -> str:
    """Anything but mmfiles selects rocksdb."""
    return "mmfiles" if value.strip().lower() == "mmfiles" else "rocksdb"


def _convert_env_value(value: str) -> Any:
    """Convert string environment value to appropriate Python type."""
    if not value:
        return None

    try:
        return int(value)
    except ValueError:
        pass

    try:
        return float(value)
    except ValueError:
        pass

    if value.lower() in ("true", "yes", "on"):
        return True
    elif value.lower() in ("false", "no", "off"):
        return False

    return value


class ConfigManager:
    """Central configuration management."""

    def __init__(self) -> None:
        self._config: Optional[ResilienceConfig] = None

    def load_config(
        self, config_file: Optional[Path] = None, **overrides: Any
    ) -> ResilienceConfig:
        """Load configuration from file and environment with explicit overrides.

        Precedence, highest first: explicit overrides, environment variables,
        config file, model defaults.
        """
        config_data: Dict[str, Any] = {}

        if config_file and config_file.exists():
            config_data.update(self._load_from_file(config_file))

        for key, value in load_env_overrides().items():
            if isinstance(value, dict) and isinstance(config_data.get(key), dict):
                config_data[key] = {**config_data[key], **value}
            else:
                config_data[key] = value

        config_data.update(overrides)

        self._config = ResilienceConfig(**config_data)
        return self._config

    def get_config(self) -> ResilienceConfig:
        """Get current configuration."""
        if self._config is None:
            self._config = self.load_config()
        return self._config

    def reset(self) -> None:
        """Forget the loaded configuration."""
        self._config = None

    def _load_from_file(self, config_file: Path) -> Dict[str, Any]:
        """Load configuration from YAML file."""
        if config_file.suffix.lower() not in (".yml", ".yaml"):
            raise ConfigurationError(
                f"Unsupported config file format: {config_file.suffix}"
            )
        try:
            with open(config_file, "r", encoding="utf-8") as f:
                return yaml.safe_load(f) or {}
        except (OSError, yaml.YAMLError) as e:
            raise ConfigurationError(
                f"Failed to load config file {config_file}: {e}"
            ) from e


# Global config manager instance
_config_manager = ConfigManager()


def load_config(**kwargs: Any) -> ResilienceConfig:
    """Load global configuration."""
    return _config_manager.load_config(**kwargs)


def get_config() -> ResilienceConfig:
    """Get current global configuration."""
    return _config_manager.get_config()


def reset_config() -> None:
    """Forget the global configuration so the next access reloads it."""
    _config_manager.reset()
