"""
Main API router. Mounts all sub-routers under /api.
"""

from fastapi import APIRouter

router = APIRouter()


# ── Health ───────────────────────────────────────────────────────────

@router.get("/health")
async def health():
    return {"status": "ok", "service": "docgallery"}


# ── API routes ──────────────────────────────────────────────────────

from .costs import costs_router
from .documents import documents_router
from .search import search_router
from .upload import upload_router

router.include_router(upload_router, prefix="/api")
router.include_router(documents_router, prefix="/api")
router.include_router(search_router, prefix="/api")
router.include_router(costs_router, prefix="/api")
