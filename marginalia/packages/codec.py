"""
Annotation package codec for Marginalia.

This module turns stored annotations into the portable, versioned JSON package
format and decodes such packages back into detached annotations ready to be
merged into another store.
"""

import json
import logging
from pathlib import Path
from typing import Any, Dict, List, Optional

from pydantic import ValidationError

from ..config import config
from ..database import DatabaseManager
from ..errors import MalformedInputError, NotFoundError, VersionMismatchError
from ..models import (
    Annotation,
    BatchPackage,
    DecodedPackage,
    DetachedAnnotation,
    Document,
    PackageAnnotation,
    SinglePackage,
    SourceDocument,
    now_ms,
)


class PackageCodec:
    """
    Encodes and decodes annotation packages.

    Encoding reads from the store it is given; decoding is pure and never
    touches the store.
    """

    def __init__(self, database_manager: Optional[DatabaseManager] = None,
                 version: Optional[str] = None):
        """
        Initialize the codec.

        Args:
            database_manager: Store to read annotations from when encoding
            version: Package version to emit and accept (defaults to config value)
        """
        self.db = database_manager
        self.version = version or config.package_version

    def _require_db(self) -> DatabaseManager:
        if self.db is None:
            raise RuntimeError("PackageCodec needs a DatabaseManager to encode packages")
        return self.db

    # ---- encoding ----------------------------------------------------

    def encode_single(self, annotation_id: str, document_path: str) -> str:
        """
        Export one annotation as a batch-shaped package.

        Args:
            annotation_id: The annotation to export
            document_path: Path of the document it belongs to

        Returns:
            The package as pretty-printed JSON

        Raises:
            NotFoundError: If the annotation or the document does not exist
        """
        db = self._require_db()

        annotation = db.get_annotation(annotation_id)
        if annotation is None:
            raise NotFoundError(f"Annotation not found: {annotation_id}")

        document = db.get_document_by_path(document_path)
        if document is None:
            raise NotFoundError(f"Document not found: {document_path}")

        return self._encode(document, [annotation])

    def encode_document(self, document_path: str, annotation_ids: Optional[List[str]] = None) -> str:
        """
        Export the annotations of a document as one package.

        Args:
            document_path: Path of the document
            annotation_ids: Restrict the export to these annotations (all when None)

        Returns:
            The package as pretty-printed JSON

        Raises:
            NotFoundError: If the document, or one of the requested
                annotations on it, does not exist
        """
        db = self._require_db()

        document = db.get_document_by_path(document_path)
        if document is None:
            raise NotFoundError(f"Document not found: {document_path}")

        annotations = db.get_annotations_by_document(document.id)
        if annotation_ids is not None:
            by_id = {annotation.id: annotation for annotation in annotations}
            missing = [annotation_id for annotation_id in annotation_ids if annotation_id not in by_id]
            if missing:
                raise NotFoundError(f"Annotations not found on {document_path}: {', '.join(missing)}")
            annotations = [by_id[annotation_id] for annotation_id in annotation_ids]

        return self._encode(document, annotations)

    def _encode(self, document: Document, annotations: List[Annotation]) -> str:
        package = BatchPackage(
            version=self.version,
            exported_at=now_ms(),
            source_document=SourceDocument(
                name=Path(document.path).name,
                checksum=document.checksum
            ),
            annotations=[PackageAnnotation(**annotation.model_dump()) for annotation in annotations]
        )
        logging.info(f"Exported {len(annotations)} annotation(s) from {document.path}")
        return package.model_dump_json(indent=2)

    # ---- decoding ----------------------------------------------------

    def decode(self, package_json: str) -> DecodedPackage:
        """
        Decode a package into detached annotations.

        Every returned annotation carries a brand-new id and no document or
        user binding; the merge engine rebinds them.

        Args:
            package_json: The package text

        Returns:
            The decoded package

        Raises:
            MalformedInputError: If the text is not JSON or matches no package shape
            VersionMismatchError: If the package version is not exactly supported
        """
        try:
            data = json.loads(package_json)
        except (TypeError, json.JSONDecodeError) as e:
            raise MalformedInputError(f"Package is not valid JSON: {e}") from e

        if not isinstance(data, dict):
            raise MalformedInputError("Package must be a JSON object")

        if "annotations" in data:
            decoded = self._decode_batch(data)
        elif "annotation" in data:
            decoded = self._decode_legacy_single(data)
        else:
            raise MalformedInputError("Package carries neither 'annotations' nor 'annotation'")

        logging.info(f"Decoded {decoded.kind} package with {len(decoded.annotations)} annotation(s)")
        return decoded

    def decode_annotations(self, package_json: str) -> List[DetachedAnnotation]:
        """Decode a package and return only its detached annotations."""
        return self.decode(package_json).annotations

    def _decode_batch(self, data: Dict[str, Any]) -> DecodedPackage:
        try:
            package = BatchPackage.model_validate(data)
        except ValidationError as e:
            raise MalformedInputError(f"Invalid annotation package: {e}") from e

        self._check_version(package.version)
        return DecodedPackage(
            kind="batch",
            version=package.version,
            exported_at=package.exported_at,
            source_document=package.source_document,
            annotations=[self._detach(annotation) for annotation in package.annotations]
        )

    def _decode_legacy_single(self, data: Dict[str, Any]) -> DecodedPackage:
        # Compatibility with packages written before batch export existed
        try:
            package = SinglePackage.model_validate(data)
        except ValidationError as e:
            raise MalformedInputError(f"Invalid legacy annotation package: {e}") from e

        self._check_version(package.version)
        return DecodedPackage(
            kind="single",
            version=package.version,
            exported_at=package.exported_at,
            source_document=package.source_document,
            annotations=[self._detach(package.annotation)]
        )

    def _check_version(self, version: str) -> None:
        if version != self.version:
            raise VersionMismatchError(version, self.version)

    def _detach(self, annotation: PackageAnnotation) -> DetachedAnnotation:
        return DetachedAnnotation(**annotation.model_dump(exclude={"id", "document_id", "user_id"}))
