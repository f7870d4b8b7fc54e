"""
Sidecar file importer for Marginalia.

Before annotations lived in the database, each document `notes.md` had a
sidecar `notes.md.ann` next to it holding a JSON array of annotation objects.
This importer moves those into the store and renames every processed sidecar
so it is never migrated twice.
"""

import json
import logging
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple, Union

from pydantic import ValidationError

from ..config import config
from ..database import DatabaseManager
from ..errors import IoFailureError, MalformedInputError, MarginaliaError
from ..models import Annotation, Document, User, now_ms, new_id
from ..models.records import DEFAULT_NOTE_HEIGHT, DEFAULT_NOTE_WIDTH
from .base import BaseImporter, MigrationResult


def _first(record: Dict[str, Any], *keys: str, default: Any = None) -> Any:
    for key in keys:
        if record.get(key) is not None:
            return record[key]
    return default


def _as_dict(value: Any) -> Dict[str, Any]:
    return value if isinstance(value, dict) else {}


def convert_legacy_record(record: Any, document: Document, user: User,
                          highlight_color: str, highlight_type: str,
                          note_width: float = DEFAULT_NOTE_WIDTH,
                          note_height: float = DEFAULT_NOTE_HEIGHT) -> Annotation:
    """
    Build a store annotation from one loosely-typed sidecar object.

    Old sidecars use camelCase keys (`noteVisible`, `notePosition`,
    `noteSize`, `createdAt`) and keep the anchor as a list; snake_case keys and
    an already serialized `anchor_data` string are accepted too. The old format
    had no highlight style, so the given defaults are always applied.

    Args:
        record: One element of the sidecar's JSON array
        document: The document the sidecar belongs to
        user: The user the annotation is attributed to
        highlight_color: Color forced onto the annotation
        highlight_type: Highlight style forced onto the annotation
        note_width: Note width used when the record has no size
        note_height: Note height used when the record has no size

    Returns:
        An unsaved annotation with a fresh id

    Raises:
        MalformedInputError: If the object has no usable text or bad field types
    """
    if not isinstance(record, dict):
        raise MalformedInputError(f"Legacy annotation is not an object: {type(record).__name__}")

    text = record.get("text")
    if not isinstance(text, str):
        raise MalformedInputError("Legacy annotation has no text")

    anchor_data = record.get("anchor_data")
    if not isinstance(anchor_data, str):
        anchor_data = json.dumps(record.get("anchor", []), ensure_ascii=False)

    position = _as_dict(record.get("notePosition"))
    size = _as_dict(record.get("noteSize"))
    now = now_ms()

    try:
        return Annotation(
            id=new_id(),
            document_id=document.id,
            user_id=user.id,
            user_name=user.name,
            text=text,
            note=record.get("note"),
            note_visible=_first(record, "noteVisible", "note_visible", default=False),
            note_position_x=_first(position, "x", default=record.get("note_position_x", 0.0)),
            note_position_y=_first(position, "y", default=record.get("note_position_y", 0.0)),
            note_width=_first(size, "width", default=record.get("note_width", note_width)),
            note_height=_first(size, "height", default=record.get("note_height", note_height)),
            highlight_color=highlight_color,
            highlight_type=highlight_type,
            anchor_data=anchor_data,
            created_at=_first(record, "createdAt", "created_at", default=now),
            updated_at=now
        )
    except ValidationError as e:
        raise MalformedInputError(f"Invalid legacy annotation: {e}") from e


class SidecarImporter(BaseImporter):
    """
    Migrates legacy `.ann` sidecar files into the store.

    Each sidecar is handled in isolation. A sidecar that cannot be parsed, or
    whose document cannot be read, counts as one error and is left in place.
    Otherwise every record is attempted; failed records are counted and
    skipped, records already inserted are kept, and the sidecar is renamed.
    """

    def __init__(self, database_manager: DatabaseManager, suffix: Optional[str] = None,
                 backup_suffix: Optional[str] = None, user_name: Optional[str] = None):
        """
        Initialize the sidecar importer.

        Args:
            database_manager: The store to migrate into
            suffix: Sidecar file suffix (defaults to config value)
            backup_suffix: Suffix appended to migrated sidecars (defaults to config value)
            user_name: Name of the synthetic user owning migrated annotations
        """
        self.db = database_manager
        self.suffix = suffix or config.sidecar_suffix
        self.backup_suffix = backup_suffix or config.backup_suffix
        self.user_name = user_name or config.migration_user_name
        self.highlight_color = config.default_highlight_color
        self.highlight_type = config.default_highlight_type
        self.note_width = config.default_note_width
        self.note_height = config.default_note_height

    def find_sources(self, directory: Path) -> List[Path]:
        return sorted(
            path for path in directory.iterdir()
            if path.is_file() and path.name.endswith(self.suffix) and len(path.name) > len(self.suffix)
        )

    def migrate(self, directory: Union[str, Path]) -> MigrationResult:
        return self.migrate_sidecar_files(directory)

    def migrate_sidecar_files(self, directory: Union[str, Path]) -> MigrationResult:
        """
        Migrate every sidecar file found directly inside a directory.

        Args:
            directory: Directory holding documents and their sidecars

        Returns:
            Total annotations migrated and total errors

        Raises:
            IoFailureError: If the directory itself cannot be listed
        """
        base_dir = Path(directory)
        try:
            sidecars = self.find_sources(base_dir)
        except OSError as e:
            raise IoFailureError(f"Cannot scan {base_dir} for sidecar files: {e}") from e

        logging.info(f"Found {len(sidecars)} sidecar file(s) in {base_dir}")

        migrated = 0
        errors = 0
        for sidecar in sidecars:
            file_migrated, file_errors = self._migrate_file(sidecar)
            migrated += file_migrated
            errors += file_errors

        logging.info(f"Migration complete: {migrated} annotations migrated, {errors} errors")
        return MigrationResult(migrated=migrated, errors=errors)

    def _migrate_file(self, sidecar: Path) -> Tuple[int, int]:
        try:
            records = json.loads(sidecar.read_text(encoding='utf-8'))
        except (OSError, UnicodeDecodeError, json.JSONDecodeError) as e:
            logging.error(f"Cannot read sidecar {sidecar}: {e}")
            return 0, 1

        if not isinstance(records, list):
            logging.error(f"Sidecar {sidecar} does not hold a JSON array")
            return 0, 1

        document_path = str(sidecar)[:-len(self.suffix)]
        try:
            document = self._ensure_document(document_path)
            user = self.db.get_or_create_user_by_name(self.user_name)
        except (OSError, UnicodeDecodeError, MarginaliaError) as e:
            logging.error(f"Cannot register document {document_path} for sidecar {sidecar.name}: {e}")
            return 0, 1

        migrated = 0
        errors = 0
        for index, record in enumerate(records):
            try:
                annotation = convert_legacy_record(
                    record, document, user, self.highlight_color, self.highlight_type,
                    self.note_width, self.note_height
                )
                self.db.add_annotation(annotation)
            except MarginaliaError as e:
                errors += 1
                logging.error(f"Error importing annotation #{index} from {sidecar.name}: {e}")
                continue
            migrated += 1

        backup = sidecar.with_name(sidecar.name + self.backup_suffix)
        try:
            sidecar.rename(backup)
        except OSError as e:
            errors += 1
            logging.warning(f"Migrated {sidecar.name} but could not rename it to {backup.name}: {e}")

        logging.info(f"Migrated {migrated} annotation(s) from {sidecar.name} ({errors} errors)")
        return migrated, errors

    def _ensure_document(self, document_path: str) -> Document:
        document = self.db.get_document_by_path(document_path)
        if document is not None:
            return document

        content = Path(document_path).read_text(encoding='utf-8')
        logging.info(f"Registering document {document_path} for migration")
        return self.db.save_document(document_path, content)
