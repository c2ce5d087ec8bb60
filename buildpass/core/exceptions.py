"""Exception types for the legality engine and its HTTP surface."""

from fastapi import Request
from fastapi.responses import JSONResponse


class LegalityEngineError(Exception):
    """Base class for all legality engine errors."""


class InputValidationError(LegalityEngineError):
    """Raised when a request is missing required fields. Surfaced as HTTP 400."""

    def __init__(self, message: str, field: str | None = None):
        super().__init__(message)
        self.message = message
        self.field = field


class ReferenceDataError(LegalityEngineError):
    """Raised when a bundled reference dictionary cannot be loaded at startup."""


class SnapshotPersistenceError(LegalityEngineError):
    """Raised when the snapshot write (or listing enumeration) fails.

    Callers should read this as "the snapshot is possibly stale", never as
    "the modification write failed".
    """

    def __init__(self, message: str, modification_id: str):
        super().__init__(message)
        self.modification_id = modification_id


class ModificationNotFoundError(LegalityEngineError):
    """Raised when a recompute targets a modification that does not exist."""


async def input_validation_exception_handler(
    request: Request, exc: InputValidationError
) -> JSONResponse:
    content = {"error": exc.message}
    if exc.field:
        content["field"] = exc.field
    return JSONResponse(status_code=400, content=content)
