"""Settings documents kept next to the store."""

from .manager import SettingsManager, generate_random_name, rename_current_user

__all__ = ["SettingsManager", "generate_random_name", "rename_current_user"]
