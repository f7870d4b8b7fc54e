"""
Settings storage for Marginalia.

This module persists the typed settings document and the opaque UI settings
blob as JSON files next to the database, and holds the small user helpers that
keep the settings file and the user table in agreement.
"""

import json
import logging
import random
from pathlib import Path
from typing import Any, Dict, Optional

from pydantic import ValidationError

from ..config import config
from ..database import DatabaseManager
from ..errors import IoFailureError, MalformedInputError
from ..models import (
    Settings,
    UserSettings,
    EditorSettings,
    ExportSettings,
    I18nSettings,
    User,
    new_id,
)


ADJECTIVES = [
    "Swift", "Bright", "Calm", "Eager", "Gentle", "Happy", "Jolly", "Kind", "Lively",
    "Nice", "Proud", "Silly", "Witty", "Zesty", "Cool", "Fine", "Bold", "Wild",
]

NOUNS = [
    "Panda", "Tiger", "Eagle", "Lion", "Wolf", "Bear", "Fox", "Hawk", "Owl", "Deer",
    "Rabbit", "Swan", "Dove", "Frog", "Fish", "Whale", "Dolphin", "Shark", "Cat", "Dog",
]


def generate_random_name() -> str:
    """
    Generate a playful display name such as "SwiftPanda1234".

    Returns:
        Adjective, noun and a four-digit number joined together
    """
    return f"{random.choice(ADJECTIVES)}{random.choice(NOUNS)}{random.randint(1000, 9999)}"


class SettingsManager:
    """
    Reads and writes the settings and UI settings documents.
    """

    def __init__(self, settings_path: Optional[str] = None, ui_settings_path: Optional[str] = None):
        """
        Initialize the settings manager.

        Args:
            settings_path: Path of the settings document (defaults to config value)
            ui_settings_path: Path of the UI settings document (defaults to config value)
        """
        self.settings_path = Path(settings_path or config.settings_path)
        self.ui_settings_path = Path(ui_settings_path or config.ui_settings_path)

    def default_settings(self) -> Settings:
        """Build the settings written on first use."""
        return Settings(
            version=config.get("settings.version", "1.0"),
            user=UserSettings(
                id=new_id(),
                name=config.default_user_name,
                can_reroll=True
            ),
            editor=EditorSettings(
                default_highlight_color=config.default_highlight_color,
                default_highlight_type=config.default_highlight_type,
                font_size=config.get("settings.font_size", 16),
                font_family=config.get("settings.font_family", "system-ui")
            ),
            export=ExportSettings(
                default_format=config.get("settings.default_export_format", "html"),
                show_notes_by_default=config.get("settings.show_notes_by_default", True)
            ),
            i18n=I18nSettings(
                language=config.get("settings.language", "zh-CN")
            )
        )

    def load_settings(self) -> Settings:
        """
        Load the settings document, creating it with defaults if missing.

        Returns:
            The current settings

        Raises:
            IoFailureError: If the file cannot be read or written
            MalformedInputError: If the file is not a valid settings document
        """
        if not self.settings_path.exists():
            settings = self.default_settings()
            self.save_settings(settings)
            logging.info(f"Created default settings at {self.settings_path}")
            return settings

        data = self._read_json(self.settings_path)
        try:
            return Settings.model_validate(data)
        except ValidationError as e:
            raise MalformedInputError(f"Invalid settings file {self.settings_path}: {e}") from e

    def save_settings(self, settings: Settings) -> None:
        self._write_json(self.settings_path, settings.model_dump())

    def update_user_name(self, name: str) -> Settings:
        """Change the user name recorded in the settings document."""
        settings = self.load_settings()
        settings.user.name = name
        self.save_settings(settings)
        return settings

    def load_ui_settings(self) -> Optional[Dict[str, Any]]:
        """
        Load the UI settings blob.

        Returns:
            The stored JSON object, or None if nothing was saved yet
        """
        if not self.ui_settings_path.exists():
            return None
        data = self._read_json(self.ui_settings_path)
        if not isinstance(data, dict):
            raise MalformedInputError(f"UI settings file {self.ui_settings_path} is not a JSON object")
        return data

    def save_ui_settings(self, settings: Dict[str, Any]) -> None:
        self._write_json(self.ui_settings_path, settings)

    def _read_json(self, path: Path) -> Any:
        try:
            content = path.read_text(encoding='utf-8')
        except OSError as e:
            raise IoFailureError(f"Cannot read {path}: {e}") from e
        try:
            return json.loads(content)
        except json.JSONDecodeError as e:
            raise MalformedInputError(f"{path} is not valid JSON: {e}") from e

    def _write_json(self, path: Path, data: Any) -> None:
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_text(json.dumps(data, indent=2, ensure_ascii=False), encoding='utf-8')
        except OSError as e:
            raise IoFailureError(f"Cannot write {path}: {e}") from e


def rename_current_user(db: DatabaseManager, settings_manager: SettingsManager, name: str) -> User:
    """
    Rename the primary user in both the store and the settings document.

    Args:
        db: The store
        settings_manager: The settings storage
        name: The new display name

    Returns:
        The renamed user
    """
    current = db.get_or_create_user(config.default_user_name)
    user = db.update_user_name(current.id, name)
    settings_manager.update_user_name(name)
    logging.info(f"Renamed user {current.name} to {name}")
    return user
