"""
Error taxonomy shared by the pipelines and the HTTP layer.

AnalysisError and its subclasses come from the analysis client. Ingestion
treats every one of them as fatal; search degrades around them.
"""

from typing import Optional


class GalleryError(Exception):
    """Base class for every error raised on purpose by this service."""


class ValidationError(GalleryError):
    """Bad input shape, size or type. Raised before anything is written."""


class PersistenceError(GalleryError):
    """Storage or database I/O failed."""


class DocumentNotFound(GalleryError):
    def __init__(self, document_id: int):
        super().__init__(f"Document {document_id} not found")
        self.document_id = document_id


class IngestionRejected(GalleryError):
    """An upload was rolled back. `cause` is the analysis or keyword failure."""

    def __init__(self, message: str, filename: str = "", cause: Optional[Exception] = None):
        super().__init__(message)
        self.filename = filename
        self.cause = cause


# ── Analysis client failures ─────────────────────────────────────────

class AnalysisError(GalleryError):
    """Base exception for analysis client failures."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class ConfigurationError(AnalysisError):
    """Credential missing. Never raised at startup, only on use."""


class AuthError(AnalysisError):
    """Remote model rejected the credential (401/403)."""


class MalformedResponseError(AnalysisError):
    """Model output could not be decoded into the expected structure."""


class UpstreamError(AnalysisError):
    """Transport failure, timeout or non-auth HTTP error after retries."""
