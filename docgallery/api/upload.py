"""
File upload API: one or more images/PDFs per request.

POST /api/upload: multipart form, field `files` (repeatable)

The batch is all-or-nothing: a single rejected file rolls back every file
of the request. Rows are committed before the response is built, so a
success body only names documents that exist.
"""

import logging
import mimetypes

from fastapi import APIRouter, Depends, File, UploadFile
from sqlalchemy.ext.asyncio import AsyncSession

from ..core.dependencies import get_analysis_client_dep, get_db, get_storage_dep
from ..core.errors import GalleryError
from ..core.storage import StorageBackend
from ..services.analysis import AnalysisClient
from ..services.ingestion import UploadedFile, ingest_batch
from .errors import error_response

logger = logging.getLogger(__name__)

upload_router = APIRouter(tags=["upload"])


@upload_router.post("/upload")
async def upload_files(
    files: list[UploadFile] = File(..., description="Images or PDFs to ingest"),
    db: AsyncSession = Depends(get_db),
    storage: StorageBackend = Depends(get_storage_dep),
    client: AnalysisClient = Depends(get_analysis_client_dep),
):
    """
    Upload and analyze files.

    Example:
        curl -X POST http://localhost:3001/api/upload -F "files=@passaporte.jpg"
    """
    uploads = []
    for f in files:
        filename = f.filename or "upload"
        mime_type = f.content_type or mimetypes.guess_type(filename)[0] or "application/octet-stream"
        uploads.append(UploadedFile(filename=filename, content=await f.read(), mime_type=mime_type))

    logger.info("Upload received: %d file(s)", len(uploads))

    try:
        outcomes = await ingest_batch(db, storage, client, uploads)
    except GalleryError as e:
        logger.warning("Upload failed: %s", e)
        return error_response(e)

    return {
        "success": True,
        "documents": [o.document.to_dict() for o in outcomes],
    }
