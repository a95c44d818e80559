"""
Ingestion pipeline: store → analyze → validate → persist, or roll back.

Per file the states only move forward:

    RECEIVED → STORED → ANALYZED → VALIDATED → PERSISTED
    RECEIVED → STORED → ANALYSIS_FAILED → ROLLED_BACK
    RECEIVED → STORED → ANALYZED → VALIDATION_FAILED → ROLLED_BACK

A batch is a sequential fold over its files in the order given. The first
rejection rolls back every earlier file of the same batch (rows and stored
files) and the whole call fails. The batch commits once, after its last file
is persisted. No retries happen at this level.
"""

import logging
import mimetypes
import re
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from pathlib import PurePosixPath
from typing import Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from ..core.config import get_settings
from ..core.errors import AnalysisError, GalleryError, IngestionRejected, PersistenceError, ValidationError
from ..core.storage import StorageBackend, StoredFile
from ..models.cost import CostRecord
from ..models.document import Document
from . import documents, realtime
from .analysis import AnalysisClient, ImageAnalysis
from .costs import OPERATION_ANALYSIS, record_cost
from .keywords import MIN_KEYWORDS, count_valid, expand

logger = logging.getLogger(__name__)

ALLOWED_DOCUMENT_MIME_TYPES = {"application/pdf"}


class IngestionState(str, Enum):
    RECEIVED = "received"
    STORED = "stored"
    ANALYZED = "analyzed"
    VALIDATED = "validated"
    PERSISTED = "persisted"
    ANALYSIS_FAILED = "analysis_failed"
    VALIDATION_FAILED = "validation_failed"
    ROLLED_BACK = "rolled_back"


@dataclass(frozen=True)
class UploadedFile:
    filename: str
    content: bytes
    mime_type: str


@dataclass
class IngestionOutcome:
    document: Document
    stored: StoredFile
    cost: Optional[CostRecord] = None
    history: list[IngestionState] = field(default_factory=list)


# ── Validation ───────────────────────────────────────────────────────

def is_allowed_mime_type(mime_type: str) -> bool:
    mime = (mime_type or "").lower()
    return mime.startswith("image/") or mime in ALLOWED_DOCUMENT_MIME_TYPES


def validate_upload(upload: UploadedFile, max_size: Optional[int] = None) -> None:
    """Reject bad input before anything is written."""
    max_size = max_size if max_size is not None else get_settings().max_upload_size

    if not upload.content:
        raise ValidationError(f"Empty file: {upload.filename}")
    if len(upload.content) > max_size:
        raise ValidationError(
            f"File too large: {upload.filename} "
            f"({len(upload.content)} bytes, max {max_size // (1024 * 1024)}MB)"
        )
    if not is_allowed_mime_type(upload.mime_type):
        raise ValidationError(
            f"File type '{upload.mime_type}' not allowed for {upload.filename}. "
            "Only images and PDFs are accepted."
        )


def file_extension(filename: str, mime_type: str) -> str:
    ext = PurePosixPath(filename or "").suffix.lower()
    if ext:
        return ext
    return mimetypes.guess_extension(mime_type or "") or ""


def build_display_name(document_type: str, ext: str, now: Optional[datetime] = None) -> str:
    """`<type-slug>-<yyyy-mm-dd>-<6 digit time suffix><ext>`, e.g. passaporte-2024-05-01-123456.jpg"""
    now = now or datetime.now(timezone.utc)
    slug = re.sub(r"[^\w]+", "-", (document_type or "").lower()).strip("-_") or "arquivo"
    suffix = str(int(now.timestamp() * 1000))[-6:]
    return f"{slug}-{now.date().isoformat()}-{suffix}{ext}"


# ── Rollback ─────────────────────────────────────────────────────────

async def _discard_file(storage: StorageBackend, stored: StoredFile) -> None:
    """Best-effort delete. A failure can leave an orphan file; it is logged, not raised."""
    try:
        await storage.delete(stored.path)
    except Exception as e:
        logger.error("Rollback could not delete %s: %s", stored.path, e)


async def _reject(
    storage: StorageBackend,
    stored: StoredFile,
    history: list[IngestionState],
    failed_state: IngestionState,
    upload: UploadedFile,
    message: str,
    cause: Optional[Exception] = None,
) -> IngestionRejected:
    history.append(failed_state)
    await _discard_file(storage, stored)
    history.append(IngestionState.ROLLED_BACK)
    logger.warning("Upload rejected (%s): %s", failed_state.value, message)
    await realtime.document_rejected(upload.filename, message)
    return IngestionRejected(message, filename=upload.filename, cause=cause)


# ── Pipeline ─────────────────────────────────────────────────────────

async def ingest_file(
    db: AsyncSession,
    storage: StorageBackend,
    client: AnalysisClient,
    upload: UploadedFile,
) -> IngestionOutcome:
    """Run one file through the state machine. Raises on any non-success path."""
    history = [IngestionState.RECEIVED]
    validate_upload(upload)

    ext = file_extension(upload.filename, upload.mime_type)
    stored = await storage.store(upload.content, ext)
    history.append(IngestionState.STORED)
    await realtime.document_processing(upload.filename, IngestionState.STORED.value)

    try:
        doc, cost, keywords = await _analyze_and_persist(db, storage, client, upload, stored, history)
    # rejections and persistence failures have already discarded the file
    except GalleryError:
        raise
    except Exception:
        logger.exception("Unexpected failure while ingesting %s", upload.filename)
        await _discard_file(storage, stored)
        history.append(IngestionState.ROLLED_BACK)
        raise

    logger.info(
        "Ingested %s as document %d (%s, %d keywords)",
        upload.filename, doc.id, doc.ai_document_type, len(keywords),
    )
    await realtime.document_ingested(doc.id, doc.display_name)
    return IngestionOutcome(document=doc, stored=stored, cost=cost, history=history)


async def _analyze_and_persist(
    db: AsyncSession,
    storage: StorageBackend,
    client: AnalysisClient,
    upload: UploadedFile,
    stored: StoredFile,
    history: list[IngestionState],
) -> tuple[Document, Optional[CostRecord], list[str]]:
    try:
        analysis = await client.describe(upload.content, upload.mime_type)
    except AnalysisError as e:
        raise await _reject(
            storage, stored, history, IngestionState.ANALYSIS_FAILED, upload,
            f"Analysis failed for {upload.filename}: {e}", cause=e,
        ) from e
    history.append(IngestionState.ANALYZED)

    keywords = expand(analysis.keywords, analysis.document_type)
    if len(keywords) != len(analysis.keywords):
        logger.info(
            "Expanded keywords for %s: %d → %d", upload.filename, len(analysis.keywords), len(keywords)
        )
    valid = count_valid(keywords)
    if valid < MIN_KEYWORDS:
        raise await _reject(
            storage, stored, history, IngestionState.VALIDATION_FAILED, upload,
            f"Insufficient keywords for {upload.filename}: {valid} (minimum {MIN_KEYWORDS})",
        )
    history.append(IngestionState.VALIDATED)

    try:
        doc, cost = await _persist(db, upload, stored, analysis, keywords)
    except (PersistenceError, SQLAlchemyError) as e:
        await _discard_file(storage, stored)
        history.append(IngestionState.ROLLED_BACK)
        if isinstance(e, PersistenceError):
            raise
        raise PersistenceError(f"Failed to save {upload.filename}: {e}") from e
    history.append(IngestionState.PERSISTED)
    return doc, cost, keywords


async def _persist(
    db: AsyncSession,
    upload: UploadedFile,
    stored: StoredFile,
    analysis: ImageAnalysis,
    keywords: list[str],
) -> tuple[Document, Optional[CostRecord]]:
    doc = Document(
        storage_name=stored.name,
        storage_path=stored.path,
        display_name=build_display_name(analysis.document_type, PurePosixPath(stored.name).suffix),
        mime_type=upload.mime_type,
        size_bytes=len(upload.content),
        ai_description=analysis.description,
        ai_document_type=analysis.document_type,
        ai_country=analysis.country,
        ai_typical_use=analysis.typical_use,
        ai_is_document=analysis.is_document,
        ai_keywords=keywords,
    )
    await documents.insert(db, doc)

    cost = None
    if analysis.usage is not None:
        cost = await record_cost(
            db,
            OPERATION_ANALYSIS,
            analysis.usage,
            analysis.model,
            related_document_id=doc.id,
            details={"filename": upload.filename, "storage_name": stored.name, "mime_type": upload.mime_type},
        )
    return doc, cost


async def ingest_batch(
    db: AsyncSession,
    storage: StorageBackend,
    client: AnalysisClient,
    uploads: list[UploadedFile],
) -> list[IngestionOutcome]:
    """
    All-or-nothing over the batch, in order. Any failure undoes earlier files.

    The batch commits here, so a caller only sees outcomes whose rows are
    durable. A failed commit discards every stored file of the batch and
    surfaces as PersistenceError.
    """
    if not uploads:
        raise ValidationError("No files uploaded")

    # Cheap checks first so a bad file later in the batch costs no analysis calls
    for upload in uploads:
        validate_upload(upload)

    completed: list[IngestionOutcome] = []
    try:
        for upload in uploads:
            completed.append(await ingest_file(db, storage, client, upload))
    except Exception:
        await _abort_batch(db, storage, completed)
        raise

    try:
        await db.commit()
    except SQLAlchemyError as e:
        await _abort_batch(db, storage, completed)
        raise PersistenceError(f"Failed to commit upload batch: {e}") from e

    return completed


async def _abort_batch(db: AsyncSession, storage: StorageBackend, completed: list[IngestionOutcome]) -> None:
    await db.rollback()
    for outcome in completed:
        await _discard_file(storage, outcome.stored)
    if completed:
        logger.warning("Batch aborted: rolled back %d file(s)", len(completed))
