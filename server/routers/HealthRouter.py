from fastapi import APIRouter, Request

from server.models.responses import HealthResponse

router = APIRouter(tags=["health"])


@router.get("/health", response_model=HealthResponse, response_model_by_alias=True)
async def health(request: Request) -> HealthResponse:
    breakers = request.app.state.breakers.get_snapshots()
    status = "degraded" if any(b["state"] != "closed" for b in breakers.values()) else "ok"
    return HealthResponse(status=status, circuit_breakers=breakers)
