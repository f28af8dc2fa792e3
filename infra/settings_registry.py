"""Settings Registry for the simulator infrastructure

Centralized simulator configuration.
Supports YAML configuration with environment variable overrides.
"""
import os
import yaml
from pathlib import Path
from typing import Optional
from dotenv import load_dotenv
from pydantic import BaseModel, ConfigDict, Field


ENV_PREFIX = "PDSIM_"

# Lazy loading: Don't load configs or instantiate registry at import time
_CONFIG_PATH = Path(__file__).parent / "simulator_configs.yaml"
_DEFAULT_CONFIGS = None


class SimulatorSettings(BaseModel):
    """Runtime settings shared by the simulator, its sinks and its parser."""
    model_config = ConfigDict(extra="forbid", frozen=True)

    app_name: str = Field(
        default="permission_denied_simulator",
        description="Name of the separate client app used for simulated calls, so the "
        "simulated identity never replaces the live client's authentication."
    )
    diagnostic_prefix: str = Field(
        default="FIREBASE: ",
        min_length=1,
        description="Marker the backend puts in front of every rule-evaluation diagnostic line."
    )
    diagnostic_logger: str = Field(
        default="firebase",
        description="Logger name the database client writes its diagnostic lines to."
    )
    diagnostic_level: str = Field(
        default="DEBUG",
        description="Logging level the database client writes its diagnostic lines at; the "
        "diagnostic logger is enabled down to this level when the filter is installed."
    )
    remember: str = Field(
        default="none",
        description="Session persistence passed to authenticate_with_custom_token."
    )
    location_indent: str = Field(
        default="   ",
        description="Indent placed before rule-source location lines (e.g. '3:14: ...') in traces."
    )


def _load_default_configs(config_path: Optional[Path] = None) -> dict:
    """Lazy load default configs from YAML."""
    global _DEFAULT_CONFIGS
    if config_path is not None:
        with open(config_path, 'r', encoding='utf-8') as f:
            return yaml.safe_load(f) or {}
    if _DEFAULT_CONFIGS is None:
        _DEFAULT_CONFIGS = {}
        if _CONFIG_PATH.exists():
            with open(_CONFIG_PATH, 'r', encoding='utf-8') as f:
                _DEFAULT_CONFIGS = yaml.safe_load(f) or {}
    return _DEFAULT_CONFIGS


class SettingsRegistry:
    """Registry holding the resolved simulator settings."""

    def __init__(self, config_path: Optional[Path] = None):
        self._config_path = config_path
        self._settings: Optional[SimulatorSettings] = None

    def _load_configs(self) -> dict:
        """Load configurations from YAML and environment variables."""
        load_dotenv()  # Load env vars when settings are first resolved
        config = dict(_load_default_configs(self._config_path))

        # Override with environment variables if present
        for field_name in SimulatorSettings.model_fields:
            if (value := os.getenv(f"{ENV_PREFIX}{field_name.upper()}")) is not None:
                config[field_name] = value
        return config

    def get_settings(self) -> SimulatorSettings:
        """Get (and cache) the resolved settings.

        Raises:
            pydantic.ValidationError: If the YAML file or environment holds
                unknown keys or invalid values
        """
        if self._settings is None:
            self._settings = SimulatorSettings(**self._load_configs())
        return self._settings


# Lazy registry: Don't instantiate at import time
_registry: Optional[SettingsRegistry] = None


def get_settings() -> SimulatorSettings:
    """Convenience function to get the process-wide simulator settings."""
    global _registry
    if _registry is None:
        _registry = SettingsRegistry()
    return _registry.get_settings()
