"""
Settings models for Marginalia.

The settings document is a versioned tree persisted next to the database.
"""

from pydantic import BaseModel


class UserSettings(BaseModel):
    id: str
    name: str
    can_reroll: bool = True


class EditorSettings(BaseModel):
    default_highlight_color: str
    default_highlight_type: str
    font_size: int
    font_family: str


class ExportSettings(BaseModel):
    default_format: str
    show_notes_by_default: bool


class I18nSettings(BaseModel):
    language: str


class Settings(BaseModel):
    """
    The whole settings document.
    """

    version: str
    user: UserSettings
    editor: EditorSettings
    export: ExportSettings
    i18n: I18nSettings
