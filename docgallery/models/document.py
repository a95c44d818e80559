"""
Documents: one row per successfully ingested file, plus the metadata the
analysis model extracted from it. A row exists only while its file does.
"""

from sqlalchemy import String, Text, BigInteger, Boolean, JSON
from sqlalchemy.orm import Mapped, mapped_column

from .base import RecordBase


class Document(RecordBase):
    __tablename__ = "documents"

    storage_name: Mapped[str] = mapped_column(String, nullable=False, unique=True)
    storage_path: Mapped[str] = mapped_column(Text, nullable=False)
    display_name: Mapped[str] = mapped_column(String, nullable=False)
    mime_type: Mapped[str] = mapped_column(String, nullable=False)
    size_bytes: Mapped[int] = mapped_column(BigInteger, nullable=False)

    ai_description: Mapped[str] = mapped_column(Text, nullable=True, default="")
    ai_document_type: Mapped[str] = mapped_column(String, nullable=True)
    ai_country: Mapped[str] = mapped_column(String, nullable=True)
    ai_typical_use: Mapped[str] = mapped_column(Text, nullable=True, default="")
    ai_is_document: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    # Model order = relevance order. Duplicates allowed.
    ai_keywords: Mapped[list] = mapped_column(JSON, nullable=False, default=list)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "storage_name": self.storage_name,
            "display_name": self.display_name,
            "url": f"/uploads/{self.storage_name}",
            "mime_type": self.mime_type,
            "size_bytes": self.size_bytes,
            "created_at": self.created_at.isoformat() if self.created_at else "",
            "ai_description": self.ai_description or "",
            "ai_document_type": self.ai_document_type,
            "ai_country": self.ai_country,
            "ai_typical_use": self.ai_typical_use or "",
            "ai_is_document": self.ai_is_document,
            "ai_keywords": list(self.ai_keywords or []),
        }
