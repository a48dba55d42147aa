"""Ingestion service.

Validates a document, stores its full content and metadata, splits the text
into chunks, embeds every chunk and writes one note row plus one vector per
chunk. The note id is the vector id; every deletion path removes both.
"""

import asyncio
import uuid

from pydantic import BaseModel

from shared.clients.embed.EmbedClientInterface import EmbedClientInterface
from shared.clients.rag.RAGClientInterface import RAGClientInterface
from shared.clients.rag.models.VectorRecord import VectorMetadata, VectorRecord
from shared.helper.HelperConfig import HelperConfig
from shared.helper.TextSplitter import TextSplitter
from shared.models.document import CreateDocumentInput, NoteRecord
from shared.models.errors import ErrorKind, PipelineError
from shared.stores.DocumentStore import DocumentStore
from server.core.Sanitizer import Sanitizer


class IngestionResult(BaseModel):
    document_id: str
    workflow_id: str
    chunk_count: int


class IngestionService:
    """Orchestrates document ingestion and identity-preserving deletion."""

    def __init__(
        self,
        helper_config: HelperConfig,
        sanitizer: Sanitizer,
        splitter: TextSplitter,
        embed_client: EmbedClientInterface,
        rag_client: RAGClientInterface,
        document_store: DocumentStore,
    ) -> None:
        self.logging = helper_config.get_logger()
        self._sanitizer = sanitizer
        self._splitter = splitter
        self._embed_client = embed_client
        self._rag_client = rag_client
        self._documents = document_store
        self.embed_concurrency = int(helper_config.get_number_val("INGEST_EMBED_CONCURRENCY", default=4))

    ##########################################
    ############### INGESTION ################
    ##########################################

    async def ingest(self, text, title=None, content_type=None, metadata=None) -> IngestionResult:
        """Ingest one document.

        Chunks that fail to embed or to index are skipped and logged. The
        document is rolled back if no chunk could be indexed.

        Raises:
            PipelineError: InvalidInput/PayloadTooLarge before any side effect,
                EmbeddingFailure when no chunk could be indexed,
                PersistenceFailure when the document cannot be stored.
        """
        doc = self._sanitizer.validate_document(text, title=title, content_type=content_type, metadata=metadata)
        document_id = str(uuid.uuid4())
        workflow_id = str(uuid.uuid4())
        log = self.logging.child(document=document_id)

        await self._documents.create_document(
            CreateDocumentInput(content=doc.text, title=doc.title, content_type=doc.content_type, metadata=doc.metadata),
            document_id,
        )

        chunks = self._splitter.split(doc.text)
        log.info("Processing %d chunk(s) of '%s'.", len(chunks), doc.title)

        sem = asyncio.Semaphore(self.embed_concurrency)
        results = await asyncio.gather(
            *[self._ingest_chunk(document_id, index, chunk, sem) for index, chunk in enumerate(chunks)],
            return_exceptions=True,
        )
        for index, result in enumerate(results):
            if isinstance(result, BaseException):
                log.error("Chunk %d failed unexpectedly: %s", index, result)

        indexed = sum(1 for r in results if r is True)
        if indexed == 0:
            log.error("No chunk could be indexed, removing the document.")
            await self._documents.delete_document(document_id)
            raise PipelineError(ErrorKind.EMBEDDING_FAILURE, f"none of {len(chunks)} chunk(s) could be indexed")

        await self._documents.update_chunk_count(document_id, indexed)
        skipped = len(chunks) - indexed
        if skipped:
            log.warning("Document ingested with %d of %d chunk(s); %d skipped.", indexed, len(chunks), skipped)
        else:
            log.info("Document ingested with %d chunk(s).", indexed, color="green")
        return IngestionResult(document_id=document_id, workflow_id=workflow_id, chunk_count=indexed)

    async def _ingest_chunk(self, document_id: str, chunk_index: int, chunk: str, sem: asyncio.Semaphore) -> bool:
        """Embed one chunk, store its note row and upsert its vector.

        Returns:
            bool: True if the chunk is fully indexed, False if it was skipped.
        """
        async with sem:
            try:
                vectors = await self._embed_client.do_embed([chunk])
            except PipelineError as exc:
                self.logging.error("Embedding failed for chunk %d of document %s: %s", chunk_index, document_id, exc)
                return False

            note = NoteRecord(id=str(uuid.uuid4()), document_id=document_id, text=chunk, chunk_index=chunk_index)
            await self._documents.create_note(note)

            record = VectorRecord(
                id=note.id,
                embedding=vectors[0],
                metadata=VectorMetadata(document_id=document_id, note_id=note.id, chunk_index=chunk_index),
            )
            try:
                await self._rag_client.do_upsert([record])
            except Exception as exc:
                self.logging.error(
                    "Vector upsert failed for chunk %d of document %s, removing note %s: %s",
                    chunk_index, document_id, note.id, exc,
                )
                await self._documents.delete_note(note.id)
                return False
            return True

    ##########################################
    ################ DELETION ################
    ##########################################

    async def delete_document(self, document_id: str) -> int:
        """Delete a document, its notes, their vectors and its content.

        Both the vectors and the rows are always attempted; a partial failure
        is logged as an inconsistency and reported as PersistenceFailure.

        Returns:
            int: Number of deleted chunks.

        Raises:
            PipelineError: NotFound if the document does not exist.
        """
        record = await self._documents.get_document_record(document_id)
        if record is None:
            raise PipelineError(ErrorKind.NOT_FOUND, f"document {document_id} not found", public_message="Document not found.")

        note_ids = [n.id for n in await self._documents.get_notes_for_document(document_id)]
        vector_error: Exception | None = None
        try:
            await self._rag_client.do_delete_by_ids(note_ids)
        except Exception as exc:
            vector_error = exc

        await self._documents.delete_document(document_id)

        if vector_error is not None:
            self.logging.error(
                "Document %s deleted but %d vector(s) could not be removed (orphaned vectors): %s",
                document_id, len(note_ids), vector_error,
            )
            raise PipelineError(ErrorKind.PERSISTENCE_FAILURE, f"vector deletion failed: {vector_error}")
        self.logging.info("Document %s deleted with %d chunk(s).", document_id, len(note_ids))
        return len(note_ids)

    async def delete_note(self, note_id: str) -> None:
        """Delete a single note row and its vector.

        Raises:
            PipelineError: NotFound if the note does not exist.
        """
        notes = await self._documents.get_notes_by_ids([note_id])
        if note_id not in notes:
            raise PipelineError(ErrorKind.NOT_FOUND, f"note {note_id} not found", public_message="Note not found.")

        vector_error: Exception | None = None
        try:
            await self._rag_client.do_delete_by_ids([note_id])
        except Exception as exc:
            vector_error = exc
        await self._documents.delete_note(note_id)

        if vector_error is not None:
            self.logging.error("Note %s deleted but its vector could not be removed: %s", note_id, vector_error)
            raise PipelineError(ErrorKind.PERSISTENCE_FAILURE, f"vector deletion failed: {vector_error}")
        self.logging.info("Note %s deleted.", note_id)

    async def clear_all(self) -> int:
        """Delete every vector, note, document, conversation and stored content.

        Returns:
            int: Number of deleted vectors.
        """
        note_ids = await self._documents.get_all_note_ids()
        vector_error: Exception | None = None
        try:
            await self._rag_client.do_delete_by_ids(note_ids)
        except Exception as exc:
            vector_error = exc
        await self._documents.clear_all()

        if vector_error is not None:
            self.logging.error("Clear-all removed the rows but %d vector(s) remain: %s", len(note_ids), vector_error)
            raise PipelineError(ErrorKind.PERSISTENCE_FAILURE, f"vector deletion failed: {vector_error}")
        self.logging.warning("Cleared all data: %d vector(s) removed.", len(note_ids), color="magenta")
        return len(note_ids)
