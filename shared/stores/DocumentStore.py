"""Document store: full content in the blob store, metadata and chunks in the tables.

Keeps both layers consistent: a document is only reported as existing when
both its blob and its row are present.
"""

import json
import sqlite3
from typing import Any

from shared.helper.HelperConfig import HelperConfig
from shared.models.document import (
    CreateDocumentInput,
    DocumentRecord,
    DocumentWithChunks,
    NoteRecord,
    StoredDocument,
)
from shared.stores.BlobStoreInterface import BlobStoreInterface
from shared.stores.Database import Database

# upper bound of ids per IN (...) lookup
MAX_IDS = 1000


def parse_json_object(raw: str | bytes | None) -> dict[str, Any]:
    """Parse an opaque JSON metadata blob. Anything but a JSON object yields {}."""
    if not raw:
        return {}
    try:
        value = json.loads(raw)
    except (TypeError, ValueError):
        return {}
    return value if isinstance(value, dict) else {}


class DocumentStore:
    def __init__(self, helper_config: HelperConfig, database: Database, blob_store: BlobStoreInterface) -> None:
        self.logging = helper_config.get_logger()
        self._db = database
        self._blobs = blob_store

    ##########################################
    ############## CONVERSION ################
    ##########################################

    @staticmethod
    def _to_document(row: sqlite3.Row) -> DocumentRecord:
        return DocumentRecord(
            id=row["id"],
            title=row["title"],
            content_type=row["content_type"],
            uploaded_at=row["uploaded_at"],
            chunk_count=row["chunk_count"] or 0,
            metadata=parse_json_object(row["metadata"]),
        )

    @staticmethod
    def _to_note(row: sqlite3.Row) -> NoteRecord:
        return NoteRecord(
            id=row["id"],
            document_id=row["document_id"],
            text=row["text"],
            chunk_index=row["chunk_index"] or 0,
        )

    ##########################################
    ############### DOCUMENTS ################
    ##########################################

    async def create_document(self, data: CreateDocumentInput, document_id: str) -> DocumentRecord:
        """Store the row first (for the database timestamp), then the full content blob.

        The blob write is compensated by deleting the row if it fails.
        """
        metadata = {"title": data.title, **data.metadata}
        row = (await self._db.fetch_all(
            "INSERT INTO documents (id, title, content_type, chunk_count, metadata) "
            "VALUES (?, ?, ?, 0, ?) RETURNING *",
            (document_id, data.title, data.content_type, json.dumps(metadata)),
        ))[0]
        record = self._to_document(row)

        stored = StoredDocument(
            content=data.content,
            content_type=data.content_type,
            uploaded_at=record.uploaded_at,
            metadata=metadata,
        )
        try:
            await self._blobs.put(
                self._blobs.get_document_key(document_id),
                stored.model_dump_json().encode("utf-8"),
                metadata={"documentId": document_id, "title": data.title, "uploadedAt": record.uploaded_at},
            )
        except Exception:
            self.logging.error("Blob write failed for document %s, removing its row.", document_id)
            await self._db.execute("DELETE FROM documents WHERE id = ?", (document_id,))
            raise

        self.logging.info("Document %s created ('%s').", document_id, data.title)
        return record

    async def get_document_record(self, document_id: str) -> DocumentRecord | None:
        row = await self._db.fetch_one("SELECT * FROM documents WHERE id = ?", (document_id,))
        return self._to_document(row) if row else None

    async def get_document(self, document_id: str) -> DocumentWithChunks | None:
        """Return the document with its content and chunks, or None when either layer misses it."""
        raw = await self._blobs.get(self._blobs.get_document_key(document_id))
        if raw is None:
            self.logging.warning("Document %s not found in blob store.", document_id)
            return None
        record = await self.get_document_record(document_id)
        if record is None:
            self.logging.warning("Document %s has content but no metadata row (inconsistent).", document_id)
            return None

        stored = parse_json_object(raw)
        chunks = await self.get_notes_for_document(document_id)
        return DocumentWithChunks(
            id=record.id,
            title=record.title,
            content_type=record.content_type,
            uploaded_at=record.uploaded_at,
            content=str(stored.get("content", "")),
            chunks=chunks,
            metadata=record.metadata or {"title": record.title},
        )

    async def list_documents(self, limit: int = 100, offset: int = 0) -> list[DocumentRecord]:
        rows = await self._db.fetch_all(
            "SELECT * FROM documents ORDER BY uploaded_at DESC LIMIT ? OFFSET ?", (limit, offset)
        )
        return [self._to_document(r) for r in rows]

    async def get_documents_by_ids(self, document_ids: list[str]) -> dict[str, DocumentRecord]:
        ids = list(dict.fromkeys(i for i in document_ids if i))[:MAX_IDS]
        if not ids:
            return {}
        placeholders = ",".join("?" for _ in ids)
        rows = await self._db.fetch_all(f"SELECT * FROM documents WHERE id IN ({placeholders})", ids)
        return {r["id"]: self._to_document(r) for r in rows}

    async def update_chunk_count(self, document_id: str, chunk_count: int) -> None:
        await self._db.execute("UPDATE documents SET chunk_count = ? WHERE id = ?", (chunk_count, document_id))

    async def delete_document(self, document_id: str) -> None:
        """Delete the blob and the row. Notes go with the row (ON DELETE CASCADE)."""
        await self._blobs.delete(self._blobs.get_document_key(document_id))
        await self._db.execute("DELETE FROM documents WHERE id = ?", (document_id,))
        self.logging.info("Document %s deleted.", document_id)

    ##########################################
    ################# NOTES ##################
    ##########################################

    async def create_note(self, note: NoteRecord) -> None:
        await self._db.execute(
            "INSERT INTO notes (id, document_id, text, chunk_index) VALUES (?, ?, ?, ?)",
            (note.id, note.document_id, note.text, note.chunk_index),
        )

    async def delete_note(self, note_id: str) -> bool:
        rows = await self._db.fetch_all("DELETE FROM notes WHERE id = ? RETURNING id", (note_id,))
        return bool(rows)

    async def get_notes_by_ids(self, note_ids: list[str]) -> dict[str, NoteRecord]:
        if len(note_ids) > MAX_IDS:
            self.logging.warning("Note id lookup truncated from %d to %d ids.", len(note_ids), MAX_IDS)
        ids = list(dict.fromkeys(note_ids))[:MAX_IDS]
        if not ids:
            return {}
        placeholders = ",".join("?" for _ in ids)
        rows = await self._db.fetch_all(f"SELECT * FROM notes WHERE id IN ({placeholders})", ids)
        return {r["id"]: self._to_note(r) for r in rows}

    async def get_notes_for_document(self, document_id: str) -> list[NoteRecord]:
        rows = await self._db.fetch_all(
            "SELECT * FROM notes WHERE document_id = ? ORDER BY chunk_index", (document_id,)
        )
        return [self._to_note(r) for r in rows]

    async def list_notes(self) -> list[NoteRecord]:
        rows = await self._db.fetch_all("SELECT * FROM notes ORDER BY document_id, chunk_index")
        return [self._to_note(r) for r in rows]

    async def get_all_note_ids(self) -> list[str]:
        rows = await self._db.fetch_all("SELECT id FROM notes")
        return [r["id"] for r in rows]

    ##########################################
    ################ CLEAR ###################
    ##########################################

    async def clear_all(self) -> None:
        """Delete every message, conversation, note, document and document blob."""
        await self._db.transaction([
            ("DELETE FROM messages", ()),
            ("DELETE FROM conversations", ()),
            ("DELETE FROM notes", ()),
            ("DELETE FROM documents", ()),
        ])
        await self._blobs.clear(prefix="doc:")
