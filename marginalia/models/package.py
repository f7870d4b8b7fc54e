"""
Annotation package models for Marginalia.

These describe the portable JSON exchange format. Two wire shapes exist: the
current batch shape carrying a list of annotations, and the legacy single shape
carrying one annotation. Neither has a discriminant tag on the wire; decoding
produces a DecodedPackage whose `kind` records which shape was read.
"""

from typing import List, Literal, Optional
from pydantic import BaseModel, Field

from .records import DetachedAnnotation


class SourceDocument(BaseModel):
    """
    Provenance of an exported package.
    """

    name: str = Field(
        ...,
        description="Base name of the document the annotations were exported from"
    )

    checksum: str = Field(
        ...,
        description="SHA-256 of the source document's content at export time"
    )


class PackageAnnotation(DetachedAnnotation):
    """
    An annotation as it appears on the wire.

    The source store's bindings are carried along but never trusted on import.
    """

    document_id: Optional[str] = None
    user_id: Optional[str] = None


class BatchPackage(BaseModel):
    """
    Current package shape: any number of annotations.
    """

    version: str
    exported_at: int
    source_document: Optional[SourceDocument] = None
    annotations: List[PackageAnnotation]


class SinglePackage(BaseModel):
    """
    Legacy package shape: exactly one annotation.
    """

    version: str
    exported_at: int
    source_document: Optional[SourceDocument] = None
    annotation: PackageAnnotation


class DecodedPackage(BaseModel):
    """
    The result of decoding a package.

    Annotations are detached: they carry fresh ids and no document or user
    binding.
    """

    kind: Literal["batch", "single"]
    version: str
    exported_at: int
    source_document: Optional[SourceDocument] = None
    annotations: List[DetachedAnnotation] = Field(default_factory=list)
