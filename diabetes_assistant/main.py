from __future__ import annotations

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
import logging
from pathlib import Path

# ────────── std / 3-rd party ──────────
from fastapi import APIRouter, FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import ValidationError
from sqlalchemy.exc import SQLAlchemyError

# ────────── local ──────────
from . import config
from .diabetes.services.db import init_db
from .diabetes.services.food_analysis import FoodAnalysisError, create_food_analyzer
from .diabetes.services.storage import (
    CommitError,
    InMemoryStorage,
    ReadingNotFoundError,
    SqlStorage,
    Storage,
    UserNotFoundError,
)
from .diabetes.utils.openai_utils import dispose_http_client
from .routers.bloodsugar import router as bloodsugar_router
from .routers.dose import router as dose_router
from .routers.food import router as food_router
from .routers.health import router as health_router
from .routers.settings import router as settings_router

# ────────── init ──────────
logger = logging.getLogger(__name__)
settings = config.get_settings()


def create_storage(app_settings: config.Settings) -> Storage:
    """Return the configured storage backend."""

    if app_settings.storage_backend == "memory":
        logger.warning("Using in-memory storage: all data will be lost when the server stops")
        return InMemoryStorage()
    try:
        init_db(app_settings.database_url)
    except (ValueError, RuntimeError, SQLAlchemyError) as exc:
        if not app_settings.memory_fallback:
            logger.error("Failed to initialize the database: %s", exc)
            raise RuntimeError(
                "Database initialization failed. Please check your configuration and try again."
            ) from exc
        logger.warning(
            "Failed to initialize the database (%s); falling back to in-memory storage, "
            "all data will be lost when the server stops",
            exc,
        )
        return InMemoryStorage()
    return SqlStorage()


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    app_settings = config.get_settings()
    config.setup_logging(app_settings.log_level)
    Path(app_settings.uploads_dir).mkdir(parents=True, exist_ok=True)
    app.state.storage = create_storage(app_settings)
    app.state.food_analyzer = create_food_analyzer(app_settings)
    try:
        yield
    finally:
        await app.state.food_analyzer.close()
        await app.state.storage.close()
        await dispose_http_client()


app = FastAPI(title="Diabetes Assistant API", version="1.0.0", lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=[settings.public_origin] if settings.public_origin else [],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(ValidationError)
async def pydantic_422(_: Request, exc: ValidationError) -> JSONResponse:
    return JSONResponse(status_code=422, content={"detail": exc.errors()})


@app.exception_handler(ValueError)
async def value_error_handler(_: Request, exc: ValueError) -> JSONResponse:
    return JSONResponse(status_code=422, content={"detail": str(exc)})


@app.exception_handler(UserNotFoundError)
async def user_not_found_handler(_: Request, exc: UserNotFoundError) -> JSONResponse:
    return JSONResponse(status_code=404, content={"detail": "User not found"})


@app.exception_handler(ReadingNotFoundError)
async def reading_not_found_handler(_: Request, exc: ReadingNotFoundError) -> JSONResponse:
    return JSONResponse(status_code=404, content={"detail": "Blood sugar reading not found"})


@app.exception_handler(CommitError)
async def commit_error_handler(_: Request, exc: CommitError) -> JSONResponse:
    return JSONResponse(status_code=500, content={"detail": "db commit failed"})


@app.exception_handler(FoodAnalysisError)
async def food_analysis_error_handler(_: Request, exc: FoodAnalysisError) -> JSONResponse:
    logger.error("Food analysis failed: %s", exc)
    return JSONResponse(status_code=502, content={"detail": f"Error analyzing food: {exc}"})


# ────────── роутер с префиксом /api ──────────
api_router = APIRouter()
api_router.include_router(health_router)
api_router.include_router(settings_router)
api_router.include_router(bloodsugar_router)
api_router.include_router(dose_router)
api_router.include_router(food_router)

# ────────── include router ──────────
app.include_router(api_router, prefix="/api")

# ────────── run (for local testing) ──────────
if __name__ == "__main__":  # pragma: no cover
    import uvicorn

    uvicorn.run("diabetes_assistant.main:app", host="0.0.0.0", port=8000)
