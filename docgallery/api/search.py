"""
Search endpoint. Interpretation failures degrade instead of erroring.
"""

from fastapi import APIRouter, Depends
from pydantic import BaseModel
from sqlalchemy.ext.asyncio import AsyncSession

from ..core.dependencies import get_analysis_client_dep, get_db
from ..core.errors import GalleryError
from ..services import search as search_service
from ..services.analysis import AnalysisClient
from .errors import error_response

search_router = APIRouter(tags=["search"])


class SearchRequest(BaseModel):
    query: str = ""


@search_router.post("/search")
async def search_documents(
    request: SearchRequest,
    db: AsyncSession = Depends(get_db),
    client: AnalysisClient = Depends(get_analysis_client_dep),
):
    try:
        outcome = await search_service.search(db, client, request.query)
    except GalleryError as e:
        return error_response(e)
    return {"success": True, **outcome.to_dict()}
