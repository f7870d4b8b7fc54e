"""
Marginalia: highlights and sticky notes anchored to documents.

Stores annotations in a relational store, moves them between stores as
versioned packages, and migrates legacy per-document sidecar files.
"""

__version__ = "0.1.0"
__author__ = "Marginalia Project"

# Import main components
from .checksum import checksum
from .database import DatabaseManager
from .models import User, Document, Annotation, AnnotationEdit, DetachedAnnotation, DecodedPackage
from .packages import PackageCodec
from .merge import MergeEngine
from .importers import BaseImporter, SidecarImporter, MigrationResult
from .settings import SettingsManager

__all__ = [
    "checksum",
    "DatabaseManager",
    "User",
    "Document",
    "Annotation",
    "AnnotationEdit",
    "DetachedAnnotation",
    "DecodedPackage",
    "PackageCodec",
    "MergeEngine",
    "BaseImporter",
    "SidecarImporter",
    "MigrationResult",
    "SettingsManager",
]
