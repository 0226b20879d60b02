"""Health check endpoints."""

import logging

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from api.dependencies import get_store
from api.services.store import EvaluationStore
from core.config import settings
from core.exceptions import StoreError

logger = logging.getLogger(__name__)

router = APIRouter()


class HealthResponse(BaseModel):
    """Health check response."""

    status: str
    version: str


@router.get("/health", response_model=HealthResponse)
async def health_check():
    """Liveness check; does not touch the store."""
    return HealthResponse(status="healthy", version="0.1.0")


@router.get("/ready")
async def readiness_check(store: EvaluationStore = Depends(get_store)):
    """Readiness check for load balancers: the store must answer a catalog read."""
    try:
        async with store.transaction() as session:
            dimensions = await session.list_dimensions()
    except StoreError as e:
        logger.warning(f"Readiness check failed: {type(e).__name__}")
        return JSONResponse(
            status_code=503,
            content={"status": "unavailable", "store": settings.store_backend},
        )
    return {"status": "ready", "store": settings.store_backend, "dimensions": len(dimensions)}
