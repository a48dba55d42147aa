from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from shared.models.chat import MessageRole, Source


class CamelModel(BaseModel):
    """Response model serialised with camelCase keys (use response_model_by_alias)."""

    model_config = ConfigDict(populate_by_name=True)


class IngestResponse(CamelModel):
    message: str
    document_id: str = Field(alias="documentId")
    workflow_id: str = Field(alias="workflowId")
    chunk_count: int = Field(alias="chunkCount")


class ConversationResponse(CamelModel):
    id: str
    created_at: float = Field(alias="createdAt")


class MessageResponse(CamelModel):
    role: MessageRole
    content: str
    sources: list[Source] | None = None


class NoteResponse(CamelModel):
    id: str
    document_id: str | None = Field(default=None, alias="documentId")
    text: str
    chunk_index: int = Field(alias="chunkIndex")


class DocumentSummaryResponse(CamelModel):
    id: str
    title: str
    content_type: str | None = Field(default=None, alias="contentType")
    uploaded_at: int = Field(alias="uploadedAt")
    chunk_count: int = Field(alias="chunkCount")
    metadata: dict[str, Any] = Field(default_factory=dict)


class DocumentDetailResponse(DocumentSummaryResponse):
    content: str
    chunks: list[NoteResponse]


class DeleteResponse(CamelModel):
    message: str
    deleted_chunks: int = Field(default=0, alias="deletedChunks")


class HealthResponse(CamelModel):
    status: str
    circuit_breakers: dict[str, dict] = Field(default_factory=dict, alias="circuitBreakers")


class ErrorResponse(BaseModel):
    error: str
