import os
import logging

from fastapi import APIRouter, Depends, Response
from prometheus_client import generate_latest, CONTENT_TYPE_LATEST

from api.dependencies import get_services
from api.state import AppServices

router = APIRouter()
logger = logging.getLogger(__name__)


@router.get("/health")
async def health_check(services: AppServices = Depends(get_services)) -> dict:
    """Health check endpoint for container orchestration."""
    health = {
        "status": "healthy",
        "profile": os.getenv("DEPLOYMENT_PROFILE", "unknown"),
        "store": type(services.store).__name__,
        "completion": services.settings.llm_provider if services.completion else "disabled",
        "open_boards": len(services.boards),
    }

    try:
        store_health = await services.store.health_check()
        health["database"] = store_health
        if store_health.get("status") != "healthy":
            health["status"] = "degraded"
    except Exception as e:
        logger.error(f"Store health check failed: {e}")
        health["status"] = "degraded"
        health["database"] = {"status": "error", "error": str(e)}

    return health


@router.get("/metrics")
async def metrics() -> Response:
    """
    Prometheus scrape endpoint.
    """
    data = generate_latest()
    return Response(content=data, media_type=CONTENT_TYPE_LATEST)
