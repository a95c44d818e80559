"""
Document store: the documents table plus the file coupling on delete.
"""

import logging
from pathlib import PurePosixPath
from typing import Optional

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from ..core.errors import DocumentNotFound, PersistenceError, ValidationError
from ..core.storage import StorageBackend
from ..models.document import Document
from .analysis import DocumentSummary

logger = logging.getLogger(__name__)

NEWEST_FIRST = (Document.created_at.desc(), Document.id.desc())


async def insert(db: AsyncSession, doc: Document) -> int:
    """Add a document and return its store-assigned id."""
    try:
        db.add(doc)
        await db.flush()
    except SQLAlchemyError as e:
        raise PersistenceError(f"Failed to save document: {e}") from e
    return doc.id


async def get_by_id(db: AsyncSession, document_id: int) -> Optional[Document]:
    return await db.get(Document, document_id)


async def list_all(db: AsyncSession, newest_first: bool = True) -> list[Document]:
    stmt = select(Document)
    if newest_first:
        stmt = stmt.order_by(*NEWEST_FIRST)
    else:
        stmt = stmt.order_by(Document.created_at.asc(), Document.id.asc())
    result = await db.execute(stmt)
    return list(result.scalars().all())


async def get_many(db: AsyncSession, ids: list[int]) -> list[Document]:
    """Documents with the given ids, newest first. Unknown ids are skipped."""
    if not ids:
        return []
    result = await db.execute(select(Document).where(Document.id.in_(ids)).order_by(*NEWEST_FIRST))
    return list(result.scalars().all())


async def summaries(db: AsyncSession) -> list[DocumentSummary]:
    """Corpus snapshot handed to the query interpreter."""
    return [
        DocumentSummary(
            id=d.id,
            document_type=d.ai_document_type,
            keywords=list(d.ai_keywords or []),
            description=d.ai_description or "",
        )
        for d in await list_all(db)
    ]


async def rename(db: AsyncSession, document_id: int, new_name: str) -> Document:
    """
    Change the display name. The current extension is appended when the new
    name does not already end with it.
    """
    new_name = (new_name or "").strip()
    if not new_name:
        raise ValidationError("Invalid name")

    doc = await get_by_id(db, document_id)
    if doc is None:
        raise DocumentNotFound(document_id)

    ext = PurePosixPath(doc.display_name).suffix
    doc.display_name = new_name if not ext or new_name.endswith(ext) else f"{new_name}{ext}"
    await db.flush()
    logger.info("Document %d renamed to %s", document_id, doc.display_name)
    return doc


async def delete(db: AsyncSession, storage: StorageBackend, document_id: int) -> None:
    """Remove the backing file, then the row. A failed file delete keeps the row."""
    doc = await get_by_id(db, document_id)
    if doc is None:
        raise DocumentNotFound(document_id)

    await storage.delete(doc.storage_path)
    await db.delete(doc)
    await db.flush()
    logger.info("Document %d deleted (%s)", document_id, doc.storage_name)
