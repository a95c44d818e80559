"""
All database models. Imported here so Base.metadata sees them for create_all().
"""

from .base import RecordBase
from .document import Document
from .cost import CostRecord

__all__ = [
    "RecordBase",
    "Document",
    "CostRecord",
]
