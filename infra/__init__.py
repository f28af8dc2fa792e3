"""Infrastructure module for the permission-denied simulator

Provides settings registry and configuration management.
"""
from infra.settings_registry import SettingsRegistry, SimulatorSettings, get_settings

__all__ = ['SettingsRegistry', 'SimulatorSettings', 'get_settings']
