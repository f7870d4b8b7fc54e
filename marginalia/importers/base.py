"""
Base importer interface for Marginalia.

This module defines the abstract interface that all legacy annotation
importers must implement.
"""

from abc import ABC, abstractmethod
from pathlib import Path
from typing import List, Union

from pydantic import BaseModel, Field


class MigrationResult(BaseModel):
    """
    Aggregate outcome of a migration run.
    """

    migrated: int = Field(
        0,
        description="Number of annotations inserted into the store"
    )

    errors: int = Field(
        0,
        description="Number of files or records that could not be migrated"
    )


class BaseImporter(ABC):
    """
    Abstract base class for legacy annotation importers.

    Each importer moves annotations kept outside the store (sidecar files,
    older exports, ...) into the relational store once.
    """

    @abstractmethod
    def find_sources(self, directory: Path) -> List[Path]:
        """
        List the legacy files this importer would migrate from a directory.

        Args:
            directory: Directory to scan (not recursively)

        Returns:
            Paths of the legacy files found
        """
        pass

    @abstractmethod
    def migrate(self, directory: Union[str, Path]) -> MigrationResult:
        """
        Migrate every legacy file found in a directory.

        Args:
            directory: Directory to scan

        Returns:
            Aggregate counters for the run
        """
        pass
