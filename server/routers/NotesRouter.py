from fastapi import APIRouter, Request

from server.models.requests import CreateNoteRequest
from server.models.responses import DeleteResponse, IngestResponse, NoteResponse

router = APIRouter(tags=["notes"])


@router.post("/notes", status_code=201, response_model=IngestResponse, response_model_by_alias=True)
async def create_note(request: Request, body: CreateNoteRequest) -> IngestResponse:
    """Ingest a document: store it, split it into notes and index one vector per note.

    Args:
        request (Request): FastAPI request (provides app.state.ingestion_service).
        body (CreateNoteRequest): JSON body with text and optional title, contentType, metadata.

    Returns:
        IngestResponse: Ids of the new document and ingestion run plus the number of chunks.
    """
    ingestion_service = request.app.state.ingestion_service
    result = await ingestion_service.ingest(
        body.text, title=body.title, content_type=body.content_type, metadata=body.metadata
    )
    return IngestResponse(
        message="Document ingested successfully",
        document_id=result.document_id,
        workflow_id=result.workflow_id,
        chunk_count=result.chunk_count,
    )


@router.get("/notes.json", response_model=list[NoteResponse], response_model_by_alias=True)
async def list_notes(request: Request) -> list[NoteResponse]:
    notes = await request.app.state.document_store.list_notes()
    return [
        NoteResponse(id=n.id, document_id=n.document_id, text=n.text, chunk_index=n.chunk_index)
        for n in notes
    ]


@router.delete("/notes/{note_id}", response_model=DeleteResponse, response_model_by_alias=True)
async def delete_note(request: Request, note_id: str) -> DeleteResponse:
    """Delete one note and its vector."""
    await request.app.state.ingestion_service.delete_note(note_id)
    return DeleteResponse(message="Note deleted successfully", deleted_chunks=1)
