"""
Database manager for Marginalia.

This module handles all record storage using DuckDB: users, documents and the
annotations anchored to them. A DatabaseManager is the explicit session handle
that every other component receives; nothing in the package opens its own
connection.
"""

import duckdb
import logging
import threading
from contextlib import contextmanager
from typing import Any, Iterator, List, Optional, Sequence, Set

from ..checksum import checksum
from ..errors import ConstraintViolationError, IoFailureError, NotFoundError
from ..models import User, Document, Annotation, AnnotationEdit, now_ms, new_id


ANNOTATION_COLUMNS = [
    "id", "document_id", "user_id", "user_name", "text", "note", "note_visible",
    "note_position_x", "note_position_y", "note_width", "note_height",
    "highlight_color", "highlight_type", "anchor_data", "created_at", "updated_at",
]

DOCUMENT_COLUMNS = ["id", "path", "content", "checksum", "last_modified", "created_at"]


class DatabaseManager:
    """
    Manages the DuckDB database holding users, documents and annotations.

    Multi-statement sequences run inside transaction(), which is re-entrant and
    serialised by a lock so a single handle can be shared between threads.
    """

    def __init__(self, db_path: str = "marginalia.db"):
        """
        Initialize the database manager.

        Args:
            db_path: Path to the DuckDB database file (":memory:" for a scratch store)
        """
        self.db_path = db_path
        self.connection = None
        self._lock = threading.RLock()
        self._depth = 0

    def connect(self):
        """Establish connection to the database."""
        try:
            self.connection = duckdb.connect(self.db_path)
        except duckdb.Error as e:
            raise IoFailureError(f"Failed to open database {self.db_path}: {e}") from e

    def disconnect(self):
        """Close the database connection."""
        if self.connection:
            self.connection.close()
            self.connection = None

    def __enter__(self):
        """Context manager entry."""
        self.connect()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        """Context manager exit."""
        self.disconnect()

    def _require_connection(self):
        if not self.connection:
            raise RuntimeError("Database connection not established")
        return self.connection

    def _run(self, query: str, params: Optional[Sequence[Any]] = None, fetch: Optional[str] = None):
        """Execute a statement, mapping DuckDB failures onto Marginalia errors."""
        connection = self._require_connection()
        with self._lock:
            try:
                result = connection.execute(query, params)
                if fetch == "one":
                    return result.fetchone()
                if fetch == "all":
                    return result.fetchall()
                return None
            except duckdb.IntegrityError as e:
                raise ConstraintViolationError(str(e)) from e
            except duckdb.Error as e:
                raise IoFailureError(str(e)) from e

    @contextmanager
    def transaction(self) -> Iterator["DatabaseManager"]:
        """
        Run the enclosed statements atomically.

        Nested uses join the outermost transaction; only the outermost one
        commits, and any exception rolls the whole unit back.
        """
        connection = self._require_connection()
        with self._lock:
            outermost = self._depth == 0
            if outermost:
                connection.begin()
            self._depth += 1
            try:
                yield self
            except BaseException:
                self._depth -= 1
                if outermost:
                    connection.rollback()
                raise
            self._depth -= 1
            if outermost:
                try:
                    connection.commit()
                except duckdb.Error as e:
                    raise IoFailureError(f"Commit failed: {e}") from e

    def initialize_database(self):
        """
        Create all necessary tables and indexes if they don't exist.

        Document and user references in annotations are logical only; callers
        make sure the referenced rows exist when writing.
        """
        self._run("""
            CREATE TABLE IF NOT EXISTS users (
                id VARCHAR PRIMARY KEY,
                name VARCHAR NOT NULL,
                created_at BIGINT
            )
        """)

        self._run("""
            CREATE TABLE IF NOT EXISTS documents (
                id VARCHAR PRIMARY KEY,
                path VARCHAR UNIQUE NOT NULL,
                content VARCHAR NOT NULL,
                checksum VARCHAR NOT NULL,
                last_modified BIGINT,
                created_at BIGINT
            )
        """)

        self._run("""
            CREATE TABLE IF NOT EXISTS annotations (
                id VARCHAR PRIMARY KEY,
                document_id VARCHAR NOT NULL,
                user_id VARCHAR NOT NULL,
                user_name VARCHAR NOT NULL,
                text VARCHAR NOT NULL,
                note VARCHAR,
                note_visible BOOLEAN DEFAULT FALSE,
                note_position_x DOUBLE DEFAULT 0,
                note_position_y DOUBLE DEFAULT 0,
                note_width DOUBLE DEFAULT 280,
                note_height DOUBLE DEFAULT 180,
                highlight_color VARCHAR DEFAULT '#ffd700',
                highlight_type VARCHAR DEFAULT 'underline',
                anchor_data VARCHAR NOT NULL,
                created_at BIGINT,
                updated_at BIGINT
            )
        """)

        self._run("CREATE INDEX IF NOT EXISTS idx_annotations_doc ON annotations(document_id)")
        self._run("CREATE INDEX IF NOT EXISTS idx_annotations_user ON annotations(user_id)")

    # ---- users -------------------------------------------------------

    def get_or_create_user(self, name: str) -> User:
        """
        Return the primary user, creating it on first use.

        Args:
            name: Name given to the user if none exists yet

        Returns:
            The oldest user in the store
        """
        with self.transaction():
            row = self._run(
                "SELECT id, name, created_at FROM users ORDER BY created_at, id LIMIT 1",
                fetch="one"
            )
            if row:
                return User(id=row[0], name=row[1], created_at=row[2])
            return self._insert_user(name)

    def get_or_create_user_by_name(self, name: str) -> User:
        """
        Return the oldest user with exactly this name, creating it if needed.

        Args:
            name: The user name to look up

        Returns:
            The matching user
        """
        with self.transaction():
            row = self._run(
                "SELECT id, name, created_at FROM users WHERE name = ? ORDER BY created_at, id LIMIT 1",
                [name], fetch="one"
            )
            if row:
                return User(id=row[0], name=row[1], created_at=row[2])
            return self._insert_user(name)

    def _insert_user(self, name: str) -> User:
        user = User(id=new_id(), name=name, created_at=now_ms())
        self._run(
            "INSERT INTO users (id, name, created_at) VALUES (?, ?, ?)",
            [user.id, user.name, user.created_at]
        )
        logging.info(f"Created user {user.name} ({user.id})")
        return user

    def get_user(self, user_id: str) -> Optional[User]:
        row = self._run(
            "SELECT id, name, created_at FROM users WHERE id = ?",
            [user_id], fetch="one"
        )
        if row:
            return User(id=row[0], name=row[1], created_at=row[2])
        return None

    def update_user_name(self, user_id: str, name: str) -> User:
        """
        Rename a user.

        Annotations keep the name snapshot taken when they were created.

        Raises:
            NotFoundError: If the user does not exist
        """
        row = self._run(
            "UPDATE users SET name = ? WHERE id = ? RETURNING id, name, created_at",
            [name, user_id], fetch="one"
        )
        if not row:
            raise NotFoundError(f"User not found: {user_id}")
        return User(id=row[0], name=row[1], created_at=row[2])

    # ---- documents ---------------------------------------------------

    def save_document(self, path: str, content: str) -> Document:
        """
        Insert or update the document stored under a path.

        The insert is a no-op when the path is already registered, so two
        concurrent first saves converge on one row; the update then refreshes
        the content while keeping the id and creation time.

        Args:
            path: The document path (natural key)
            content: The full document content

        Returns:
            The stored document
        """
        now = now_ms()
        digest = checksum(content)

        with self.transaction():
            self._run("""
                INSERT INTO documents (id, path, content, checksum, last_modified, created_at)
                VALUES (?, ?, ?, ?, ?, ?)
                ON CONFLICT (path) DO NOTHING
            """, [new_id(), path, content, digest, now, now])

            row = self._run(f"""
                UPDATE documents
                SET content = ?, checksum = ?, last_modified = GREATEST(last_modified, ?)
                WHERE path = ?
                RETURNING {', '.join(DOCUMENT_COLUMNS)}
            """, [content, digest, now, path], fetch="one")

        document = self._row_to_document(row)
        logging.debug(f"Saved document {path} ({document.id}, checksum {digest[:12]})")
        return document

    def get_document_by_path(self, path: str) -> Optional[Document]:
        """
        Retrieve a document by its path.

        Args:
            path: The document path

        Returns:
            The document if found, None otherwise
        """
        row = self._run(
            f"SELECT {', '.join(DOCUMENT_COLUMNS)} FROM documents WHERE path = ?",
            [path], fetch="one"
        )
        return self._row_to_document(row) if row else None

    def get_document(self, document_id: str) -> Optional[Document]:
        row = self._run(
            f"SELECT {', '.join(DOCUMENT_COLUMNS)} FROM documents WHERE id = ?",
            [document_id], fetch="one"
        )
        return self._row_to_document(row) if row else None

    def delete_document(self, document_id: str) -> None:
        """
        Delete a document together with all of its annotations.

        Args:
            document_id: The document to delete
        """
        with self.transaction():
            self._run("DELETE FROM annotations WHERE document_id = ?", [document_id])
            self._run("DELETE FROM documents WHERE id = ?", [document_id])
        logging.info(f"Deleted document {document_id} and its annotations")

    def _row_to_document(self, row) -> Document:
        return Document(**dict(zip(DOCUMENT_COLUMNS, row)))

    # ---- annotations -------------------------------------------------

    def add_annotation(self, annotation: Annotation) -> Annotation:
        """
        Insert a fully specified annotation.

        The stored updated_at is always the time of the insert, whatever the
        record carries.

        Args:
            annotation: The annotation to insert

        Returns:
            The annotation as stored
        """
        stored = annotation.model_copy(update={"updated_at": now_ms()})
        placeholders = ", ".join("?" for _ in ANNOTATION_COLUMNS)
        self._run(
            f"INSERT INTO annotations ({', '.join(ANNOTATION_COLUMNS)}) VALUES ({placeholders})",
            [getattr(stored, column) for column in ANNOTATION_COLUMNS]
        )
        return stored

    def update_annotation(self, annotation_id: str, edit: AnnotationEdit) -> Annotation:
        """
        Apply the editable fields of `edit` to a stored annotation.

        The excerpt text, bindings and creation time never change here. An
        Annotation may be passed as `edit`; only its editable fields are read.

        Args:
            annotation_id: The annotation to update
            edit: New values for the editable fields

        Returns:
            The updated annotation

        Raises:
            NotFoundError: If no annotation has this id
        """
        row = self._run(f"""
            UPDATE annotations SET
                note = ?,
                note_visible = ?,
                note_position_x = ?,
                note_position_y = ?,
                note_width = ?,
                note_height = ?,
                highlight_color = ?,
                highlight_type = ?,
                anchor_data = ?,
                updated_at = ?
            WHERE id = ?
            RETURNING {', '.join(ANNOTATION_COLUMNS)}
        """, [
            edit.note,
            edit.note_visible,
            edit.note_position_x,
            edit.note_position_y,
            edit.note_width,
            edit.note_height,
            edit.highlight_color,
            edit.highlight_type,
            edit.anchor_data,
            now_ms(),
            annotation_id
        ], fetch="one")

        if not row:
            raise NotFoundError(f"Annotation not found: {annotation_id}")
        return self._row_to_annotation(row)

    def delete_annotation(self, annotation_id: str) -> None:
        """Delete an annotation; unknown ids are ignored."""
        self._run("DELETE FROM annotations WHERE id = ?", [annotation_id])

    def get_annotations_by_document(self, document_id: str) -> List[Annotation]:
        """
        List all annotations of a document, oldest first.

        Args:
            document_id: The document whose annotations to list

        Returns:
            List of annotations
        """
        rows = self._run(f"""
            SELECT {', '.join(ANNOTATION_COLUMNS)}
            FROM annotations
            WHERE document_id = ?
            ORDER BY created_at, id
        """, [document_id], fetch="all")
        return [self._row_to_annotation(row) for row in rows]

    def get_annotation(self, annotation_id: str) -> Optional[Annotation]:
        row = self._run(
            f"SELECT {', '.join(ANNOTATION_COLUMNS)} FROM annotations WHERE id = ?",
            [annotation_id], fetch="one"
        )
        return self._row_to_annotation(row) if row else None

    def get_annotation_texts(self, document_id: str) -> Set[str]:
        """Return the set of excerpt texts already annotated on a document."""
        rows = self._run(
            "SELECT text FROM annotations WHERE document_id = ?",
            [document_id], fetch="all"
        )
        return {row[0] for row in rows}

    def _row_to_annotation(self, row) -> Annotation:
        return Annotation(**dict(zip(ANNOTATION_COLUMNS, row)))
