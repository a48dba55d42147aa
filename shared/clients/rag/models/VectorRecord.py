"""VectorRecord model: one embedded chunk as stored in a vector index."""

from pydantic import BaseModel


class VectorMetadata(BaseModel):
    """Metadata stored alongside each vector.

    Attributes:
        document_id:  Owning document, None for legacy notes.
        note_id:      Always equal to the record id.
        chunk_index:  Zero-based position of the chunk within the document.
    """

    document_id: str | None = None
    note_id: str
    chunk_index: int = 0


class VectorRecord(BaseModel):
    """A vector entry. Its id is the id of the note row it was computed from."""

    id: str
    embedding: list[float]
    metadata: VectorMetadata
