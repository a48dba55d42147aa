from fastapi import APIRouter, Depends, Header, Request, Response

from server.dependencies.rate_limit import enforce_rate_limit
from server.models.requests import SendMessageRequest
from server.models.responses import ConversationResponse, MessageResponse
from shared.models.chat import MessageRole

router = APIRouter(prefix="/chat/conversations", tags=["chat"])


@router.post("", response_model=ConversationResponse, response_model_by_alias=True)
async def create_conversation(request: Request) -> ConversationResponse:
    conversation = await request.app.state.chat_orchestrator.create_conversation()
    return ConversationResponse(id=conversation.id, created_at=conversation.created_at)


@router.get("/{conversation_id}", response_model=list[MessageResponse], response_model_by_alias=True)
async def get_conversation(request: Request, conversation_id: str) -> list[MessageResponse]:
    """Return the message history of a conversation, oldest first."""
    history = await request.app.state.chat_orchestrator.get_history(conversation_id)
    return [MessageResponse(role=m.role, content=m.content, sources=m.sources) for m in history]


@router.post(
    "/{conversation_id}/messages",
    response_model=MessageResponse,
    response_model_by_alias=True,
    dependencies=[Depends(enforce_rate_limit)],
)
async def send_message(
    request: Request,
    response: Response,
    conversation_id: str,
    body: SendMessageRequest,
    idempotency_key: str | None = Header(default=None, max_length=200),
) -> MessageResponse:
    """Run one chat turn and return the assistant reply.

    Args:
        request (Request): FastAPI request (provides app.state.chat_orchestrator).
        response (Response): Used to set the x-model-used and x-source-count headers.
        conversation_id (str): Target conversation.
        body (SendMessageRequest): The user message and an optional clientMessageId.
        idempotency_key (str | None): Alternative to clientMessageId.

    Returns:
        MessageResponse: The assistant reply with the cited sources.
    """
    orchestrator = request.app.state.chat_orchestrator
    result = await orchestrator.handle_turn(
        conversation_id, body.message, client_key=body.client_message_id or idempotency_key
    )
    response.headers["x-model-used"] = result.model_used
    response.headers["x-source-count"] = str(result.get_source_count())
    return MessageResponse(role=MessageRole.ASSISTANT, content=result.content, sources=result.sources or None)
