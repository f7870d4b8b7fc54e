"""
Tests for the annotation package codec.
"""

import json
import shutil
import tempfile
import unittest
from pathlib import Path

from marginalia.checksum import checksum
from marginalia.database import DatabaseManager
from marginalia.errors import MalformedInputError, NotFoundError, VersionMismatchError
from marginalia.packages import PackageCodec

from tests.factories import make_annotation


def wire_annotation(text: str, **overrides) -> dict:
    """An annotation object as another store would have exported it."""
    data = {
        "id": "source-annotation-id",
        "document_id": "source-document-id",
        "user_id": "source-user-id",
        "user_name": "alice",
        "text": text,
        "note": "remember this",
        "note_visible": True,
        "note_position_x": 10.0,
        "note_position_y": 20.0,
        "note_width": 280.0,
        "note_height": 180.0,
        "highlight_color": "#ffd700",
        "highlight_type": "underline",
        "anchor_data": "{\"start\": 3, \"end\": 9}",
        "created_at": 1690000000000,
        "updated_at": 1690000000000,
    }
    data.update(overrides)
    return data


class TestPackageEncoding(unittest.TestCase):
    """Test exporting annotations from a store."""

    def setUp(self):
        self.temp_dir = tempfile.mkdtemp()
        self.db = DatabaseManager(str(Path(self.temp_dir) / "codec.db"))
        self.db.connect()
        self.db.initialize_database()

        self.user = self.db.get_or_create_user("admin")
        self.document = self.db.save_document("/home/me/notes/chapter1.md", "Once upon a time")
        self.annotation = self.db.add_annotation(make_annotation(self.document.id, self.user.id, "Once"))
        self.codec = PackageCodec(self.db)

    def tearDown(self):
        self.db.disconnect()
        shutil.rmtree(self.temp_dir, ignore_errors=True)

    def test_encode_single_produces_batch_shape(self):
        package = json.loads(self.codec.encode_single(self.annotation.id, self.document.path))

        self.assertEqual(package["version"], "1.0")
        self.assertIsInstance(package["exported_at"], int)
        self.assertEqual(len(package["annotations"]), 1)
        self.assertNotIn("annotation", package)

        exported = package["annotations"][0]
        self.assertEqual(exported["id"], self.annotation.id)
        self.assertEqual(exported["text"], "Once")
        self.assertEqual(exported["anchor_data"], self.annotation.anchor_data)

    def test_source_document_uses_basename_and_checksum(self):
        package = json.loads(self.codec.encode_single(self.annotation.id, self.document.path))

        self.assertEqual(package["source_document"]["name"], "chapter1.md")
        self.assertEqual(package["source_document"]["checksum"], checksum("Once upon a time"))

    def test_encode_single_unknown_annotation(self):
        with self.assertRaises(NotFoundError):
            self.codec.encode_single("missing", self.document.path)

    def test_encode_single_unknown_document(self):
        with self.assertRaises(NotFoundError):
            self.codec.encode_single(self.annotation.id, "/not/registered.md")

    def test_encode_document_exports_everything(self):
        second = self.db.add_annotation(make_annotation(self.document.id, self.user.id, "time"))

        package = json.loads(self.codec.encode_document(self.document.path))
        ids = {item["id"] for item in package["annotations"]}
        self.assertEqual(ids, {self.annotation.id, second.id})

    def test_encode_document_selection(self):
        second = self.db.add_annotation(make_annotation(self.document.id, self.user.id, "time"))

        package = json.loads(self.codec.encode_document(self.document.path, [second.id]))
        self.assertEqual([item["id"] for item in package["annotations"]], [second.id])

        with self.assertRaises(NotFoundError):
            self.codec.encode_document(self.document.path, ["not-on-this-document"])

    def test_encoding_without_store(self):
        with self.assertRaises(RuntimeError):
            PackageCodec().encode_single(self.annotation.id, self.document.path)


class TestPackageDecoding(unittest.TestCase):
    """Test decoding packages into detached annotations."""

    def setUp(self):
        self.codec = PackageCodec()

    def test_decode_batch_package(self):
        package = {
            "version": "1.0",
            "exported_at": 1700000000000,
            "source_document": {"name": "chapter1.md", "checksum": "abc"},
            "annotations": [wire_annotation("first"), wire_annotation("second")],
        }

        decoded = self.codec.decode(json.dumps(package))

        self.assertEqual(decoded.kind, "batch")
        self.assertEqual(decoded.source_document.name, "chapter1.md")
        self.assertEqual([a.text for a in decoded.annotations], ["first", "second"])
        self.assertEqual(decoded.annotations[0].user_name, "alice")
        self.assertEqual(decoded.annotations[0].note, "remember this")
        self.assertEqual(decoded.annotations[0].anchor_data, "{\"start\": 3, \"end\": 9}")

    def test_decoded_annotations_have_fresh_ids_and_no_bindings(self):
        package = {
            "version": "1.0",
            "exported_at": 1700000000000,
            "annotations": [wire_annotation("first", id="a"), wire_annotation("second", id="b")],
        }

        annotations = self.codec.decode_annotations(json.dumps(package))

        ids = [a.id for a in annotations]
        self.assertEqual(len(set(ids)), 2)
        self.assertTrue(set(ids).isdisjoint({"a", "b"}))
        for annotation in annotations:
            self.assertFalse(hasattr(annotation, "document_id"))
            self.assertFalse(hasattr(annotation, "user_id"))

    def test_decode_legacy_single_package(self):
        package = {
            "version": "1.0",
            "exported_at": 1700000000000,
            "annotation": wire_annotation("only one"),
        }

        decoded = self.codec.decode(json.dumps(package))

        self.assertEqual(decoded.kind, "single")
        self.assertEqual(len(decoded.annotations), 1)
        self.assertEqual(decoded.annotations[0].text, "only one")
        self.assertNotEqual(decoded.annotations[0].id, "source-annotation-id")

    def test_batch_shape_wins_when_both_keys_present(self):
        package = {
            "version": "1.0",
            "exported_at": 1700000000000,
            "annotations": [wire_annotation("from batch")],
            "annotation": wire_annotation("from single"),
        }

        decoded = self.codec.decode(json.dumps(package))
        self.assertEqual(decoded.kind, "batch")
        self.assertEqual([a.text for a in decoded.annotations], ["from batch"])

    def test_empty_batch(self):
        package = {"version": "1.0", "exported_at": 1, "annotations": []}
        self.assertEqual(self.codec.decode_annotations(json.dumps(package)), [])

    def test_unsupported_version(self):
        package = {
            "version": "2.0",
            "exported_at": 1700000000000,
            "annotations": [wire_annotation("first")],
        }

        with self.assertRaises(VersionMismatchError) as ctx:
            self.codec.decode(json.dumps(package))
        self.assertEqual(ctx.exception.version, "2.0")
        self.assertEqual(ctx.exception.expected, "1.0")

    def test_version_match_is_exact(self):
        package = {"version": "1.0.0", "exported_at": 1, "annotation": wire_annotation("x")}
        with self.assertRaises(VersionMismatchError):
            self.codec.decode(json.dumps(package))

    def test_malformed_inputs(self):
        bad_inputs = [
            "not json at all",
            "[1, 2, 3]",
            json.dumps({"version": "1.0", "exported_at": 1}),
            json.dumps({"version": "1.0", "exported_at": 1, "annotations": "nope"}),
            json.dumps({"version": "1.0", "exported_at": 1, "annotations": [{"note": "no text"}]}),
            json.dumps({"exported_at": 1, "annotation": wire_annotation("x")}),
        ]

        for bad in bad_inputs:
            with self.subTest(package=bad):
                with self.assertRaises(MalformedInputError):
                    self.codec.decode(bad)

    def test_missing_optional_fields_take_defaults(self):
        package = {
            "version": "1.0",
            "exported_at": 1,
            "annotations": [{"text": "bare", "anchor_data": "[]"}],
        }

        annotation = self.codec.decode_annotations(json.dumps(package))[0]
        self.assertEqual(annotation.highlight_color, "#ffd700")
        self.assertEqual(annotation.note_width, 280.0)
        self.assertIsNone(annotation.note)


if __name__ == '__main__':
    unittest.main(verbosity=2)
