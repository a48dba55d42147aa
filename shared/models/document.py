"""Pydantic models for documents and their chunks (notes).

Hierarchy:
  DocumentRecord: row in the documents table.
  NoteRecord: row in the notes table; its id doubles as the vector id.
  StoredDocument: JSON value kept in the blob store under "doc:<id>".
  DocumentWithChunks: document detail assembled from blob store and tables.
"""

from typing import Any

from pydantic import BaseModel, Field


class DocumentRecord(BaseModel):
    """Document metadata row.

    The metadata field is an opaque JSON object. Readers must not assume
    any key exists.
    """

    id: str
    title: str
    content_type: str | None = None
    uploaded_at: int
    chunk_count: int = 0
    metadata: dict[str, Any] = Field(default_factory=dict)


class NoteRecord(BaseModel):
    """A single chunk of a document.

    The note id is the vector id in the vector index. Deleting one without
    the other orphans either the row or the vector.
    """

    id: str
    document_id: str | None = None
    text: str
    chunk_index: int = 0


class StoredDocument(BaseModel):
    content: str
    content_type: str
    uploaded_at: int
    metadata: dict[str, Any] = Field(default_factory=dict)


class CreateDocumentInput(BaseModel):
    content: str
    title: str = "Untitled Document"
    content_type: str = "text/plain"
    metadata: dict[str, Any] = Field(default_factory=dict)


class DocumentWithChunks(BaseModel):
    id: str
    title: str
    content_type: str | None = None
    uploaded_at: int
    content: str
    chunks: list[NoteRecord]
    metadata: dict[str, Any] = Field(default_factory=dict)
