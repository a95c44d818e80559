"""
Base model with an integer id and creation timestamp. Every model inherits from this.
"""

from datetime import datetime, timezone

from sqlalchemy import Integer, DateTime
from sqlalchemy.orm import Mapped, mapped_column

from ..core.database import Base


def utcnow():
    return datetime.now(timezone.utc)


class RecordBase(Base):
    """Abstract base: store-assigned id, immutable created_at."""

    __abstract__ = True

    id: Mapped[int] = mapped_column(
        Integer, primary_key=True, autoincrement=True
    )
    # Set in Python (microsecond resolution) so newest-first ordering is stable
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, nullable=False, index=True
    )
