from fastapi import Request

from shared.models.errors import ErrorKind, PipelineError


def get_client_ip(request: Request) -> str:
    """Caller address, honouring the usual proxy headers."""
    for header in ("cf-connecting-ip", "x-real-ip"):
        value = request.headers.get(header)
        if value:
            return value.strip()
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        return forwarded.split(",")[0].strip()
    return request.client.host if request.client else "unknown"


async def enforce_rate_limit(request: Request) -> None:
    """Admit the request per caller IP and, for chat messages, per conversation.

    Raises:
        PipelineError: RateLimited with the retry delay.
    """
    limiter = request.app.state.rate_limiter
    keys = [f"ip:{get_client_ip(request)}"]
    conversation_id = request.path_params.get("conversation_id")
    if conversation_id:
        keys.append(f"conv:{conversation_id}")

    rejected_key, admission = limiter.admit_all(keys)
    if not admission.allowed:
        raise PipelineError(
            ErrorKind.RATE_LIMITED,
            f"{rejected_key} rejected ({admission.reason})",
            retry_after=admission.retry_after,
        )
