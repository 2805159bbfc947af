"""Health check endpoints."""

from __future__ import annotations

import logging

from fastapi import APIRouter
from fastapi.responses import JSONResponse

from ..dependencies import StorageDep
from ..diabetes.services.storage import Storage


logger = logging.getLogger(__name__)

router = APIRouter()


@router.get("/health", tags=["Health"])
async def health() -> dict[str, str]:
    """Return service health status."""

    return {"status": "ok"}


@router.get("/health/ping", tags=["Health"])
async def ping(storage: Storage = StorageDep) -> JSONResponse:
    """Quickly ping the storage backend."""

    try:
        await storage.ping()
    except Exception:
        logger.exception("Storage ping failed")
        return JSONResponse({"status": "down"}, status_code=503)

    return JSONResponse({"status": "up"})


@router.get("/ping", tags=["Health"])
async def pong() -> dict[str, str]:
    return {"message": "pong"}
