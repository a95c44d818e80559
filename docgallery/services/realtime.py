"""
Realtime notifications. Thin wrapper around core.redis.
"""

from ..core import redis as _redis


async def document_processing(filename: str, state: str):
    await _redis.publish(
        _redis.DOCUMENTS_CHANNEL, "document.processing", {"filename": filename, "state": state}
    )


async def document_ingested(doc_id: int, display_name: str):
    await _redis.publish(
        _redis.DOCUMENTS_CHANNEL, "document.ingested", {"document_id": doc_id, "display_name": display_name}
    )


async def document_rejected(filename: str, reason: str):
    await _redis.publish(
        _redis.DOCUMENTS_CHANNEL, "document.rejected", {"filename": filename, "reason": reason}
    )
