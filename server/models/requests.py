from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class CreateNoteRequest(BaseModel):
    """Body of POST /notes. Presence and type checks happen in the sanitizer."""

    model_config = ConfigDict(populate_by_name=True)

    text: Any = None
    title: Any = None
    content_type: Any = Field(default=None, alias="contentType")
    metadata: Any = None


class SendMessageRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    message: Any = None
    client_message_id: str | None = Field(default=None, alias="clientMessageId", max_length=200)
