import math

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from shared.models.errors import ErrorKind, PUBLIC_MESSAGES, PipelineError

STATUS_CODES: dict[ErrorKind, int] = {
    ErrorKind.INVALID_INPUT: 400,
    ErrorKind.PAYLOAD_TOO_LARGE: 413,
    ErrorKind.NOT_FOUND: 404,
    ErrorKind.RATE_LIMITED: 429,
    ErrorKind.EMBEDDING_FAILURE: 500,
    ErrorKind.RETRIEVAL_FAILURE: 500,
    ErrorKind.GENERATION_FAILURE: 500,
    ErrorKind.PERSISTENCE_FAILURE: 500,
    ErrorKind.CITATION_ANOMALY: 500,
}


def register_exception_handlers(app: FastAPI) -> None:
    """Map pipeline errors to status codes with generic messages. Details only go to the log."""

    @app.exception_handler(PipelineError)
    async def handle_pipeline_error(request: Request, exc: PipelineError) -> JSONResponse:
        logging = request.app.state.logging
        status_code = STATUS_CODES.get(exc.kind, 500)
        log = logging.error if status_code >= 500 else logging.warning
        log("%s %s failed with %s: %s", request.method, request.url.path, exc.kind.value, exc.detail or "-")

        headers = {}
        if exc.kind == ErrorKind.RATE_LIMITED and exc.retry_after is not None:
            headers["Retry-After"] = str(max(1, math.ceil(exc.retry_after)))
        return JSONResponse(status_code=status_code, content={"error": exc.get_public_message()}, headers=headers)

    @app.exception_handler(RequestValidationError)
    async def handle_validation_error(request: Request, exc: RequestValidationError) -> JSONResponse:
        request.app.state.logging.warning("%s %s rejected: %s", request.method, request.url.path, exc.errors())
        return JSONResponse(status_code=400, content={"error": PUBLIC_MESSAGES[ErrorKind.INVALID_INPUT]})

    @app.exception_handler(Exception)
    async def handle_unexpected_error(request: Request, exc: Exception) -> JSONResponse:
        request.app.state.logging.exception("%s %s crashed: %s", request.method, request.url.path, exc)
        return JSONResponse(status_code=500, content={"error": "Internal server error."})
