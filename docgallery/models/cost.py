"""
API cost ledger. One row per billable model call. Rows are never updated.
"""

from sqlalchemy import String, Integer, Float, JSON, ForeignKey
from sqlalchemy.orm import Mapped, mapped_column

from .base import RecordBase


class CostRecord(RecordBase):
    __tablename__ = "api_costs"

    operation_type: Mapped[str] = mapped_column(String, nullable=False, index=True)  # analysis, search
    # Set for analysis, null for search. Kept after the document is deleted.
    related_document_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("documents.id", ondelete="SET NULL"), nullable=True
    )
    input_tokens: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    output_tokens: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    cost_usd: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    cost_brl: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    model: Mapped[str] = mapped_column(String, nullable=False)
    details: Mapped[dict] = mapped_column(JSON, nullable=True, default=dict)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "operation_type": self.operation_type,
            "related_document_id": self.related_document_id,
            "input_tokens": self.input_tokens,
            "output_tokens": self.output_tokens,
            "cost_usd": self.cost_usd,
            "cost_brl": self.cost_brl,
            "model": self.model,
            "details": self.details or {},
            "created_at": self.created_at.isoformat() if self.created_at else "",
        }
