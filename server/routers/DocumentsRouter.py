from fastapi import APIRouter, Query, Request

from server.models.responses import (
    DeleteResponse,
    DocumentDetailResponse,
    DocumentSummaryResponse,
    NoteResponse,
)
from shared.models.errors import ErrorKind, PipelineError

router = APIRouter(tags=["documents"])


@router.get("/documents", response_model=list[DocumentSummaryResponse], response_model_by_alias=True)
async def list_documents(
    request: Request,
    limit: int = Query(default=100, ge=1, le=1000),
    offset: int = Query(default=0, ge=0),
) -> list[DocumentSummaryResponse]:
    """List documents, newest first."""
    documents = await request.app.state.document_store.list_documents(limit=limit, offset=offset)
    return [
        DocumentSummaryResponse(
            id=d.id,
            title=d.title,
            content_type=d.content_type,
            uploaded_at=d.uploaded_at,
            chunk_count=d.chunk_count,
            metadata=d.metadata,
        )
        for d in documents
    ]


@router.get("/documents/{document_id}", response_model=DocumentDetailResponse, response_model_by_alias=True)
async def get_document(request: Request, document_id: str) -> DocumentDetailResponse:
    """Return a document with its full content and its chunks.

    Raises:
        PipelineError: NotFound if the content or the metadata row is missing.
    """
    document = await request.app.state.document_store.get_document(document_id)
    if document is None:
        raise PipelineError(ErrorKind.NOT_FOUND, f"document {document_id} not found", public_message="Document not found.")
    return DocumentDetailResponse(
        id=document.id,
        title=document.title,
        content_type=document.content_type,
        uploaded_at=document.uploaded_at,
        chunk_count=len(document.chunks),
        metadata=document.metadata,
        content=document.content,
        chunks=[
            NoteResponse(id=c.id, document_id=c.document_id, text=c.text, chunk_index=c.chunk_index)
            for c in document.chunks
        ],
    )


@router.delete("/documents/{document_id}", response_model=DeleteResponse, response_model_by_alias=True)
async def delete_document(request: Request, document_id: str) -> DeleteResponse:
    """Delete a document with its notes, vectors and stored content."""
    deleted = await request.app.state.ingestion_service.delete_document(document_id)
    return DeleteResponse(message="Document deleted successfully", deleted_chunks=deleted)


@router.delete("/api/clear-all", response_model=DeleteResponse, response_model_by_alias=True)
async def clear_all(request: Request) -> DeleteResponse:
    """Delete every vector, note, document, conversation and stored content."""
    deleted = await request.app.state.ingestion_service.clear_all()
    return DeleteResponse(message="All data cleared", deleted_chunks=deleted)
