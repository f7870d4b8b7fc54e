"""Importers for annotations kept outside the store."""

from .base import BaseImporter, MigrationResult
from .sidecar import SidecarImporter, convert_legacy_record

__all__ = ["BaseImporter", "MigrationResult", "SidecarImporter", "convert_legacy_record"]
