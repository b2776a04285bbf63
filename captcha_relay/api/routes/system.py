"""Operational endpoints: liveness and Prometheus metrics."""

from fastapi import APIRouter, Response, status
from fastapi.responses import JSONResponse
from prometheus_client import CONTENT_TYPE_LATEST

from captcha_relay.core.config import get_settings
from captcha_relay.core.metrics import get_metrics_response
from captcha_relay.core.redis import get_redis_client

router = APIRouter(tags=["system"])


@router.get("/health", summary="Service health")
async def health_check() -> JSONResponse:
    """Report process liveness, configuration and result store status.

    Returns 200 when fully configured and the store answers, 503 otherwise.
    """
    settings = get_settings()
    missing = settings.missing_required()

    redis_client = get_redis_client()
    if redis_client is None:
        store = {"status": "unhealthy", "connected": False, "error": "not connected"}
    else:
        store = await redis_client.health_check()

    healthy = not missing and store["status"] == "healthy"
    return JSONResponse(
        status_code=status.HTTP_200_OK if healthy else status.HTTP_503_SERVICE_UNAVAILABLE,
        content={
            "status": "healthy" if healthy else "degraded",
            "version": settings.app_version,
            "missing_settings": missing,
            "result_store": store,
        },
    )


@router.get("/metrics", summary="Prometheus metrics", include_in_schema=False)
async def metrics() -> Response:
    """Endpoint for Prometheus scraping."""
    return Response(get_metrics_response(), media_type=CONTENT_TYPE_LATEST)
