"""Data models for Marginalia."""

from .records import (
    User,
    Document,
    Annotation,
    AnnotationEdit,
    DetachedAnnotation,
    now_ms,
    new_id,
)
from .package import (
    SourceDocument,
    PackageAnnotation,
    BatchPackage,
    SinglePackage,
    DecodedPackage,
)
from .settings import Settings, UserSettings, EditorSettings, ExportSettings, I18nSettings

__all__ = [
    "User",
    "Document",
    "Annotation",
    "AnnotationEdit",
    "DetachedAnnotation",
    "now_ms",
    "new_id",
    "SourceDocument",
    "PackageAnnotation",
    "BatchPackage",
    "SinglePackage",
    "DecodedPackage",
    "Settings",
    "UserSettings",
    "EditorSettings",
    "ExportSettings",
    "I18nSettings",
]
