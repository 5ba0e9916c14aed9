"""API router for v1 endpoints."""

from fastapi import APIRouter

from app.api import training_sessions

router = APIRouter()

# Training sessions and the retrieval-augmented training run
router.include_router(training_sessions.router)
