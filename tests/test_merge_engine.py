"""
Tests for merging imported annotations into a document.
"""

import json
import unittest
from unittest.mock import patch

from marginalia.database import DatabaseManager
from marginalia.errors import ConstraintViolationError, NotFoundError, VersionMismatchError
from marginalia.merge import MergeEngine
from marginalia.models import DetachedAnnotation
from marginalia.packages import PackageCodec

from tests.factories import make_annotation


def detached(text: str, **overrides) -> DetachedAnnotation:
    fields = {"text": text, "anchor_data": json.dumps([text]), "user_name": "alice"}
    fields.update(overrides)
    return DetachedAnnotation(**fields)


class TestMergeEngine(unittest.TestCase):
    """Test merge_one, merge_batch and import_package."""

    def setUp(self):
        self.db = DatabaseManager(":memory:")
        self.db.connect()
        self.db.initialize_database()

        self.user = self.db.get_or_create_user("admin")
        self.document = self.db.save_document("/docs/target.md", "A B C")
        self.engine = MergeEngine(self.db)

    def tearDown(self):
        self.db.disconnect()

    def texts(self):
        return sorted(a.text for a in self.db.get_annotations_by_document(self.document.id))

    def test_merge_one_binds_to_target(self):
        incoming = detached("A", created_at=5)

        stored = self.engine.merge_one(incoming, self.document.id)

        self.assertEqual(stored.document_id, self.document.id)
        self.assertEqual(stored.user_id, self.user.id)
        self.assertEqual(stored.user_name, "alice")
        self.assertGreater(stored.created_at, 5)
        self.assertEqual(self.db.get_annotation(stored.id), stored)

    def test_merge_one_does_not_deduplicate(self):
        self.db.add_annotation(make_annotation(self.document.id, self.user.id, "A"))

        self.engine.merge_one(detached("A"), self.document.id)

        self.assertEqual(self.texts(), ["A", "A"])

    def test_merge_one_with_explicit_user(self):
        other = self.db.get_or_create_user_by_name("guest")

        stored = self.engine.merge_one(detached("A", user_name=""), self.document.id, other)

        self.assertEqual(stored.user_id, other.id)
        self.assertEqual(stored.user_name, "guest")

    def test_merge_batch_skips_existing_texts(self):
        self.db.add_annotation(make_annotation(self.document.id, self.user.id, "A"))
        self.db.add_annotation(make_annotation(self.document.id, self.user.id, "B"))

        inserted = self.engine.merge_batch(
            [detached("A"), detached("C"), detached("C")], self.document.id
        )

        # Existing texts are read once, so both incoming "C"s are new
        self.assertEqual(inserted, 2)
        self.assertEqual(self.texts(), ["A", "B", "C", "C"])

    def test_merge_batch_assigns_new_ids_and_bindings(self):
        batch = [detached("X"), detached("Y")]

        self.engine.merge_batch(batch, self.document.id)

        stored = self.db.get_annotations_by_document(self.document.id)
        self.assertEqual(len(stored), 2)
        self.assertTrue({a.id for a in stored}.isdisjoint({a.id for a in batch}))
        for annotation in stored:
            self.assertEqual(annotation.document_id, self.document.id)
            self.assertEqual(annotation.user_id, self.user.id)

    def test_merge_batch_empty(self):
        self.assertEqual(self.engine.merge_batch([], self.document.id), 0)

    def test_failed_batch_inserts_nothing(self):
        add_annotation = self.db.add_annotation
        attempts = []

        def fail_on_second(annotation):
            attempts.append(annotation.text)
            if len(attempts) == 2:
                raise ConstraintViolationError("duplicate key")
            return add_annotation(annotation)

        with patch.object(self.db, "add_annotation", side_effect=fail_on_second):
            with self.assertRaises(ConstraintViolationError):
                self.engine.merge_batch([detached("X"), detached("Y"), detached("Z")], self.document.id)

        self.assertEqual(attempts, ["X", "Y"])
        self.assertEqual(self.texts(), [])

    def test_merge_into_unknown_document(self):
        with self.assertRaises(NotFoundError):
            self.engine.merge_one(detached("A"), "no-such-document")
        with self.assertRaises(NotFoundError):
            self.engine.merge_batch([detached("A")], "no-such-document")

        self.assertEqual(self.db.get_annotations_by_document("no-such-document"), [])

    def test_round_trip_between_stores(self):
        source = DatabaseManager(":memory:")
        source.connect()
        try:
            source.initialize_database()
            author = source.get_or_create_user("bob")
            source_doc = source.save_document("/elsewhere/target.md", "A B C")
            original = source.add_annotation(make_annotation(source_doc.id, author.id, "B", user_name="bob"))

            package = PackageCodec(source).encode_single(original.id, source_doc.path)
        finally:
            source.disconnect()

        count = self.engine.import_package(package, self.document.path)

        self.assertEqual(count, 1)
        merged = self.db.get_annotations_by_document(self.document.id)[0]
        self.assertNotEqual(merged.id, original.id)
        self.assertEqual(merged.document_id, self.document.id)
        self.assertEqual(merged.user_id, self.user.id)
        self.assertEqual(merged.user_name, "bob")
        self.assertEqual(merged.text, "B")
        self.assertEqual(merged.edit(), original.edit())

    def test_import_batch_package_deduplicates(self):
        self.db.add_annotation(make_annotation(self.document.id, self.user.id, "A"))
        package = json.dumps({
            "version": "1.0",
            "exported_at": 1,
            "annotations": [
                {"text": "A", "anchor_data": "[]"},
                {"text": "B", "anchor_data": "[]"},
            ],
        })

        self.assertEqual(self.engine.import_package(package, self.document.path), 1)
        self.assertEqual(self.texts(), ["A", "B"])

    def test_import_legacy_single_package(self):
        self.db.add_annotation(make_annotation(self.document.id, self.user.id, "C"))
        package = json.dumps({
            "version": "1.0",
            "exported_at": 1,
            "annotation": {"text": "C", "anchor_data": "[]"},
        })

        # Single packages are inserted without a duplicate check
        self.assertEqual(self.engine.import_package(package, self.document.path), 1)
        self.assertEqual(self.texts(), ["C", "C"])

    def test_import_unsupported_version_leaves_store_unchanged(self):
        package = json.dumps({
            "version": "2.0",
            "exported_at": 1,
            "annotations": [{"text": "Z", "anchor_data": "[]"}],
        })

        with self.assertRaises(VersionMismatchError):
            self.engine.import_package(package, self.document.path)
        self.assertEqual(self.texts(), [])

    def test_import_into_unknown_document(self):
        package = json.dumps({
            "version": "1.0",
            "exported_at": 1,
            "annotations": [{"text": "Z", "anchor_data": "[]"}],
        })

        with self.assertRaises(NotFoundError):
            self.engine.import_package(package, "/docs/unregistered.md")
        self.assertEqual(self.texts(), [])


if __name__ == '__main__':
    unittest.main(verbosity=2)
