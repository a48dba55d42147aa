from fastapi import APIRouter, Depends, Query, Request
from fastapi.responses import PlainTextResponse

from server.dependencies.rate_limit import enforce_rate_limit

router = APIRouter(tags=["query"])


@router.get("/", response_class=PlainTextResponse, dependencies=[Depends(enforce_rate_limit)])
async def query(request: Request, text: str | None = Query(default=None)) -> PlainTextResponse:
    """Answer a single question against the knowledge base, without conversation history.

    Args:
        request (Request): FastAPI request (provides app.state.chat_orchestrator).
        text (str | None): The question.

    Returns:
        PlainTextResponse: The answer, with x-model-used, x-source-count and x-sources headers.
    """
    result = await request.app.state.chat_orchestrator.answer_query(text)
    return PlainTextResponse(
        result.content,
        headers={
            "x-model-used": result.model_used,
            "x-source-count": str(result.get_source_count()),
            "x-sources": ",".join(s.id for s in result.sources),
        },
    )
