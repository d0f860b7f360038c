"""
Error taxonomy for Filyo.

Every error carries the HTTP status it maps to; the handler registered in
``filyo.main`` turns them into ``{"detail": ...}`` responses, the same body
shape FastAPI uses for ``HTTPException``.
"""
from fastapi import status


class FilyoError(Exception):
    """Base class for errors recovered at the request boundary."""
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    default_detail = "Internal error"

    def __init__(self, detail: str | None = None, status_code: int | None = None):
        self.detail = detail or self.default_detail
        if status_code:
            self.status_code = status_code
        super().__init__(self.detail)


class NotFound(FilyoError):
    status_code = status.HTTP_404_NOT_FOUND
    default_detail = "Not found"


class Expired(FilyoError):
    status_code = status.HTTP_410_GONE
    default_detail = "This link has expired"


class LimitReached(FilyoError):
    status_code = status.HTTP_410_GONE
    default_detail = "Limit reached"


class Unauthorized(FilyoError):
    status_code = status.HTTP_401_UNAUTHORIZED
    default_detail = "Unauthorized"


class Forbidden(FilyoError):
    status_code = status.HTTP_403_FORBIDDEN
    default_detail = "Forbidden"


class ValidationError(FilyoError):
    status_code = status.HTTP_400_BAD_REQUEST
    default_detail = "Invalid data"


class Conflict(FilyoError):
    status_code = status.HTTP_409_CONFLICT
    default_detail = "Already exists"


class SizeExceeded(FilyoError):
    status_code = status.HTTP_413_REQUEST_ENTITY_TOO_LARGE
    default_detail = "File too large"


class StorageError(FilyoError):
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    default_detail = "Storage failure"


class UpstreamUnavailable(FilyoError):
    status_code = status.HTTP_503_SERVICE_UNAVAILABLE
    default_detail = "Upstream service unavailable"
