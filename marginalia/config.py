"""
Configuration management for Marginalia.

This module handles loading and accessing configuration values from config.yaml.
It provides a centralized way to manage store locations, migration behaviour and
annotation defaults without changing code.
"""

import yaml
from pathlib import Path
from typing import Any, Dict
import logging


class ConfigManager:
    """
    Manages configuration loading and access for Marginalia.
    """

    def __init__(self, config_path: str = "config.yaml"):
        """
        Initialize the configuration manager.

        Args:
            config_path: Path to the configuration file
        """
        self.config_path = Path(config_path)
        self._config: Dict[str, Any] = {}
        self._load_config()

    def _load_config(self) -> None:
        """Load configuration from YAML file."""
        try:
            if not self.config_path.exists():
                raise FileNotFoundError(f"Configuration file not found: {self.config_path}")

            with open(self.config_path, 'r', encoding='utf-8') as f:
                self._config = yaml.safe_load(f) or {}

            logging.info(f"Configuration loaded from {self.config_path}")

        except (OSError, yaml.YAMLError) as e:
            logging.warning(f"Failed to load configuration: {e}")
            # Fall back to default configuration
            self._config = self._get_default_config()

    def _get_default_config(self) -> Dict[str, Any]:
        """Get default configuration values as fallback."""
        return {
            "database": {
                "filename": "marginalia.db"
            },
            "paths": {
                "data_dir": ".",
                "settings_file": "settings.json",
                "ui_settings_file": "ui_settings.json",
                "log_file": "marginalia.log"
            },
            "users": {
                "default_name": "admin"
            },
            "annotations": {
                "default_highlight_color": "#ffd700",
                "default_highlight_type": "underline",
                "default_note_width": 280.0,
                "default_note_height": 180.0
            },
            "packages": {
                "version": "1.0"
            },
            "migration": {
                "sidecar_suffix": ".ann",
                "backup_suffix": ".backup.migrated",
                "user_name": "migrated"
            },
            "settings": {
                "version": "1.0",
                "font_size": 16,
                "font_family": "system-ui",
                "default_export_format": "html",
                "show_notes_by_default": True,
                "language": "zh-CN"
            },
            "logging": {
                "level": "INFO",
                "format": "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
            }
        }

    def get(self, key_path: str, default: Any = None) -> Any:
        """
        Get a configuration value using dot notation.

        Args:
            key_path: Dot-separated path to the configuration value (e.g., "database.filename")
            default: Default value if key is not found

        Returns:
            The configuration value

        Examples:
            config.get("migration.sidecar_suffix")  # Returns ".ann"
            config.get("annotations.default_highlight_color")  # Returns "#ffd700"
        """
        keys = key_path.split('.')
        value = self._config

        for key in keys:
            if isinstance(value, dict) and key in value:
                value = value[key]
            else:
                return default

        return value

    def get_section(self, section: str) -> Dict[str, Any]:
        """
        Get an entire configuration section.

        Args:
            section: Name of the configuration section

        Returns:
            Dictionary containing the section configuration
        """
        return self._config.get(section, {})

    def reload(self) -> None:
        """Reload configuration from file."""
        self._load_config()

    # Convenience properties for commonly used values

    @property
    def data_directory(self) -> str:
        """Get the directory holding the database and side files."""
        return self.get("paths.data_dir", ".")

    @property
    def database_filename(self) -> str:
        """Get database filename."""
        return self.get("database.filename", "marginalia.db")

    @property
    def database_path(self) -> str:
        """Get the full database path inside the data directory."""
        return str(Path(self.data_directory) / self.database_filename)

    @property
    def settings_path(self) -> str:
        """Get the settings document path."""
        return str(Path(self.data_directory) / self.get("paths.settings_file", "settings.json"))

    @property
    def ui_settings_path(self) -> str:
        """Get the UI settings document path."""
        return str(Path(self.data_directory) / self.get("paths.ui_settings_file", "ui_settings.json"))

    @property
    def log_filename(self) -> str:
        """Get log file name."""
        return self.get("paths.log_file", "marginalia.log")

    @property
    def default_user_name(self) -> str:
        """Get the name given to the primary user when it is first created."""
        return self.get("users.default_name", "admin")

    @property
    def default_highlight_color(self) -> str:
        return self.get("annotations.default_highlight_color", "#ffd700")

    @property
    def default_highlight_type(self) -> str:
        return self.get("annotations.default_highlight_type", "underline")

    @property
    def default_note_width(self) -> float:
        return float(self.get("annotations.default_note_width", 280.0))

    @property
    def default_note_height(self) -> float:
        return float(self.get("annotations.default_note_height", 180.0))

    @property
    def package_version(self) -> str:
        """Get the only accepted annotation package version."""
        return str(self.get("packages.version", "1.0"))

    @property
    def sidecar_suffix(self) -> str:
        """Get the legacy sidecar file suffix."""
        return self.get("migration.sidecar_suffix", ".ann")

    @property
    def backup_suffix(self) -> str:
        """Get the suffix appended to sidecar files once migrated."""
        return self.get("migration.backup_suffix", ".backup.migrated")

    @property
    def migration_user_name(self) -> str:
        """Get the name of the synthetic user owning migrated annotations."""
        return self.get("migration.user_name", "migrated")


# Global configuration instance
config = ConfigManager()


def get_config() -> ConfigManager:
    """
    Get the global configuration instance.

    Returns:
        The global ConfigManager instance
    """
    return config
