"""
Gallery endpoints: list, rename, delete.
"""

import logging

from fastapi import APIRouter, Depends
from pydantic import AliasChoices, BaseModel, Field
from sqlalchemy.ext.asyncio import AsyncSession

from ..core.dependencies import get_db, get_storage_dep
from ..core.errors import GalleryError
from ..core.storage import StorageBackend
from ..services import documents
from .errors import error_response

logger = logging.getLogger(__name__)

documents_router = APIRouter(tags=["documents"])


class RenameRequest(BaseModel):
    new_name: str = Field(default="", validation_alias=AliasChoices("new_name", "newName"))


@documents_router.get("/documents")
async def list_documents(db: AsyncSession = Depends(get_db)):
    """All documents, newest first."""
    docs = await documents.list_all(db)
    return {"success": True, "documents": [d.to_dict() for d in docs]}


@documents_router.put("/documents/{document_id}/rename")
async def rename_document(
    document_id: int,
    request: RenameRequest,
    db: AsyncSession = Depends(get_db),
):
    try:
        doc = await documents.rename(db, document_id, request.new_name)
    except GalleryError as e:
        return error_response(e)
    return {"success": True, "display_name": doc.display_name}


@documents_router.delete("/documents/{document_id}")
async def delete_document(
    document_id: int,
    db: AsyncSession = Depends(get_db),
    storage: StorageBackend = Depends(get_storage_dep),
):
    """Delete the stored file, then the record."""
    try:
        await documents.delete(db, storage, document_id)
    except GalleryError as e:
        return error_response(e)
    return {"success": True}
