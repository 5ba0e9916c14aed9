"""FastAPI application entry point."""

from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.responses import JSONResponse

from app.api import router as api_router
from app.core.config import get_settings
from app.core.logging import get_logger
from app.core.training_deps import build_training_dependencies
from app.db.supabase_client import create_supabase

logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Build the Supabase client and pipeline collaborators once per process."""
    settings = get_settings()
    supabase = await create_supabase(settings)
    app.state.supabase = supabase
    app.state.training_deps = build_training_dependencies(settings, supabase)
    logger.info("Training engine started", extra={"extra_data": {"env": settings.TRAINING_ENGINE_ENV}})
    yield
    app.state.training_deps = None
    app.state.supabase = None


app = FastAPI(
    title="Training Engine",
    description="Retrieval-augmented training pipeline service",
    version="0.1.0",
    lifespan=lifespan,
)


@app.get("/health")
async def health_check() -> JSONResponse:
    """Health check endpoint."""
    return JSONResponse(content={"status": "ok"}, status_code=200)


# Include v1 API router
app.include_router(api_router, prefix="/v1", tags=["v1"])
