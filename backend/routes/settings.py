"""Health check and settings endpoints."""

from fastapi import APIRouter, Request

router = APIRouter()


@router.get("/health")
async def health():
    """Health check."""
    return {"status": "ok"}


@router.get("/settings")
async def get_settings(request: Request):
    """Effective LLM and analysis settings (API key omitted)."""
    return request.app.state.registry.settings.public()
