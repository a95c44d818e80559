"""
Maps service errors onto `{success: false, error}` JSON responses.
"""

from fastapi.responses import JSONResponse

from ..core.errors import (
    DocumentNotFound,
    GalleryError,
    IngestionRejected,
    PersistenceError,
    ValidationError,
)

STATUS_BY_ERROR: list[tuple[type[GalleryError], int]] = [
    (ValidationError, 400),
    (DocumentNotFound, 404),
    (IngestionRejected, 422),
    (PersistenceError, 500),
]


def status_for(error: GalleryError) -> int:
    for error_type, status_code in STATUS_BY_ERROR:
        if isinstance(error, error_type):
            return status_code
    return 500


def error_response(error: GalleryError) -> JSONResponse:
    return JSONResponse(status_code=status_for(error), content={"success": False, "error": str(error)})
