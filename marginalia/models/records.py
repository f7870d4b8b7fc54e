"""
Record models for Marginalia.

This module defines the three stored entities (users, documents, annotations)
plus the detached and editable views of an annotation used by the codec, the
merge engine and the store's update path.
"""

import uuid
from datetime import datetime, timezone
from typing import Optional
from pydantic import BaseModel, Field


DEFAULT_NOTE_WIDTH = 280.0
DEFAULT_NOTE_HEIGHT = 180.0
DEFAULT_HIGHLIGHT_COLOR = "#ffd700"
DEFAULT_HIGHLIGHT_TYPE = "underline"

EDITABLE_FIELDS = (
    "note",
    "note_visible",
    "note_position_x",
    "note_position_y",
    "note_width",
    "note_height",
    "highlight_color",
    "highlight_type",
    "anchor_data",
)


def now_ms() -> int:
    """Current UTC time in epoch milliseconds."""
    return int(datetime.now(timezone.utc).timestamp() * 1000)


def new_id() -> str:
    """Generate a fresh record identifier."""
    return str(uuid.uuid4())


class User(BaseModel):
    """
    A user who authors annotations.
    """

    id: str = Field(
        ...,
        description="Opaque 128-bit identifier (UUID string)"
    )

    name: str = Field(
        ...,
        description="Display name of the user"
    )

    created_at: int = Field(
        ...,
        description="Creation time in epoch milliseconds"
    )


class Document(BaseModel):
    """
    A document registered in the store, keyed naturally by its path.
    """

    id: str = Field(
        ...,
        description="Identifier assigned once and kept across content updates"
    )

    path: str = Field(
        ...,
        description="Unique filesystem path of the document"
    )

    content: str = Field(
        ...,
        description="Last saved content of the document"
    )

    checksum: str = Field(
        ...,
        description="SHA-256 hex digest of the content"
    )

    last_modified: int = Field(
        ...,
        description="Time of the last content write in epoch milliseconds"
    )

    created_at: int = Field(
        ...,
        description="Time of the first save in epoch milliseconds"
    )


class AnnotationEdit(BaseModel):
    """
    The subset of annotation fields that may change after creation.
    """

    note: Optional[str] = Field(
        None,
        description="Sticky note text attached to the highlight"
    )

    note_visible: bool = Field(
        False,
        description="Whether the sticky note is currently shown"
    )

    note_position_x: float = 0.0
    note_position_y: float = 0.0
    note_width: float = DEFAULT_NOTE_WIDTH
    note_height: float = DEFAULT_NOTE_HEIGHT

    highlight_color: str = DEFAULT_HIGHLIGHT_COLOR

    highlight_type: str = Field(
        DEFAULT_HIGHLIGHT_TYPE,
        description="Highlight style, e.g. 'underline' or 'square'"
    )

    anchor_data: str = Field(
        ...,
        description="Opaque serialized payload locating the excerpt; never interpreted"
    )


class DetachedAnnotation(AnnotationEdit):
    """
    An annotation that is not bound to any document or user yet.

    Produced by package decoding; the merge engine attaches it to a target
    document before it is persisted.
    """

    id: str = Field(
        default_factory=new_id,
        description="Record identifier"
    )

    user_name: str = Field(
        "",
        description="Snapshot of the authoring user's name"
    )

    text: str = Field(
        ...,
        description="The anchored excerpt; immutable once created"
    )

    created_at: int = 0
    updated_at: int = 0

    def attach(self, document_id: str, user_id: str, user_name: Optional[str] = None) -> "Annotation":
        """
        Bind this annotation to a document and an owning user.

        Args:
            document_id: The target document
            user_id: The owning user
            user_name: Name snapshot; keeps the current one when None

        Returns:
            A full Annotation record (not persisted)
        """
        data = self.model_dump()
        data["document_id"] = document_id
        data["user_id"] = user_id
        if user_name is not None:
            data["user_name"] = user_name
        return Annotation(**data)


class Annotation(DetachedAnnotation):
    """
    A highlight plus optional sticky note anchored to a document.
    """

    document_id: str = Field(
        ...,
        description="References documents.id"
    )

    user_id: str = Field(
        ...,
        description="References users.id"
    )

    def edit(self) -> AnnotationEdit:
        """Return the editable view of this annotation."""
        return AnnotationEdit(**self.model_dump(include=set(EDITABLE_FIELDS)))

    def detach(self) -> DetachedAnnotation:
        """Drop the document and user binding."""
        return DetachedAnnotation(**self.model_dump(exclude={"document_id", "user_id"}))
