"""
FastAPI dependencies. Injected into route handlers and overridden in tests.
"""

from sqlalchemy.ext.asyncio import AsyncSession

from ..services.analysis import AnalysisClient, get_analysis_client
from .database import get_db as _get_db
from .storage import StorageBackend, get_storage as _get_storage


async def get_db() -> AsyncSession:
    """Yields an async DB session per request."""
    async for session in _get_db():
        yield session


def get_storage_dep() -> StorageBackend:
    """Returns the active storage backend (S3 or local)."""
    return _get_storage()


def get_analysis_client_dep() -> AnalysisClient:
    """Returns the analysis client backed by the configured model provider."""
    return get_analysis_client()
