"""
Merge engine for Marginalia.

This module reconciles decoded package contents with the annotations already
stored on a target document. Deduplication compares excerpt text only: two
distinct highlights of the same phrase are indistinguishable, and only the one
already stored survives a merge.
"""

import logging
from typing import List, Optional

from ..config import config
from ..database import DatabaseManager
from ..errors import NotFoundError
from ..models import Annotation, DetachedAnnotation, User, now_ms, new_id
from ..packages import PackageCodec


class MergeEngine:
    """
    Inserts detached annotations into a document of the store.
    """

    def __init__(self, database_manager: DatabaseManager, codec: Optional[PackageCodec] = None):
        """
        Initialize the merge engine.

        Args:
            database_manager: The store to merge into
            codec: Codec used by import_package (one bound to the same store by default)
        """
        self.db = database_manager
        self.codec = codec or PackageCodec(database_manager)

    def _resolve_user(self, user: Optional[User]) -> User:
        if user is not None:
            return user
        return self.db.get_or_create_user(config.default_user_name)

    def _require_document(self, document_id: str) -> None:
        if self.db.get_document(document_id) is None:
            raise NotFoundError(f"Document not found: {document_id}")

    def _bind(self, detached: DetachedAnnotation, document_id: str, user: User) -> Annotation:
        # The package's author name is kept as the attribution snapshot
        return detached.attach(document_id, user.id, detached.user_name or user.name)

    def merge_one(self, detached: DetachedAnnotation, target_document_id: str,
                  user: Optional[User] = None) -> Annotation:
        """
        Insert a single imported annotation without any duplicate check.

        Args:
            detached: The decoded annotation
            target_document_id: The document to attach it to
            user: Owning user (the store's primary user when None)

        Returns:
            The stored annotation

        Raises:
            NotFoundError: If the target document does not exist
        """
        with self.db.transaction():
            self._require_document(target_document_id)
            owner = self._resolve_user(user)
            annotation = self._bind(detached, target_document_id, owner)
            annotation = annotation.model_copy(update={"created_at": now_ms()})
            stored = self.db.add_annotation(annotation)

        logging.info(f"Merged annotation {stored.id} into document {target_document_id}")
        return stored

    def merge_batch(self, detached_annotations: List[DetachedAnnotation], target_document_id: str,
                    user: Optional[User] = None) -> int:
        """
        Insert imported annotations, skipping texts the document already has.

        The set of existing texts is read once before the batch starts and is
        not extended as annotations are inserted, so repeated texts within the
        incoming batch are each inserted. The batch is all-or-nothing.

        Args:
            detached_annotations: The decoded annotations
            target_document_id: The document to attach them to
            user: Owning user (the store's primary user when None)

        Returns:
            Number of annotations actually inserted

        Raises:
            NotFoundError: If the target document does not exist
        """
        inserted = 0

        with self.db.transaction():
            self._require_document(target_document_id)
            owner = self._resolve_user(user)
            existing_texts = self.db.get_annotation_texts(target_document_id)
            now = now_ms()

            for detached in detached_annotations:
                if detached.text in existing_texts:
                    logging.debug(f"Skipping duplicate annotation text: {detached.text[:40]!r}")
                    continue

                annotation = self._bind(detached, target_document_id, owner).model_copy(
                    update={"id": new_id(), "created_at": now, "updated_at": now}
                )
                self.db.add_annotation(annotation)
                inserted += 1

        logging.info(
            f"Merged {inserted} of {len(detached_annotations)} annotation(s) into document {target_document_id}"
        )
        return inserted

    def import_package(self, package_json: str, document_path: str, user: Optional[User] = None) -> int:
        """
        Decode a package and merge it into the document stored under a path.

        Legacy single packages go through merge_one, batch packages through
        merge_batch. Nothing is written when decoding or the document lookup
        fails.

        Args:
            package_json: The package text
            document_path: Path of the target document
            user: Owning user (the store's primary user when None)

        Returns:
            Number of annotations inserted

        Raises:
            NotFoundError: If the document is not registered
        """
        decoded = self.codec.decode(package_json)

        document = self.db.get_document_by_path(document_path)
        if document is None:
            raise NotFoundError(f"Document not found: {document_path}")

        if decoded.kind == "single":
            self.merge_one(decoded.annotations[0], document.id, user)
            return 1
        return self.merge_batch(decoded.annotations, document.id, user)
