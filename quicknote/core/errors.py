# quicknote/core/errors.py
"""
Domain errors raised by the service layer.

Routes never build HTTPExceptions for these; the handler registered in
main.py turns any DomainError into {"detail": ..., "error": ...} with the
status code carried by the class.
"""
from fastapi import Request, status
from fastapi.responses import JSONResponse


class DomainError(Exception):
    status_code: int = status.HTTP_400_BAD_REQUEST
    kind: str = "domain_error"

    def __init__(self, message: str = ""):
        super().__init__(message)
        self.message = message or self.__class__.__name__


class ValidationError(DomainError):
    """Bad input shape or range. Raised before anything is written."""
    status_code = status.HTTP_400_BAD_REQUEST
    kind = "validation_error"


class NotFoundError(DomainError):
    status_code = status.HTTP_404_NOT_FOUND
    kind = "not_found"


class ConflictError(DomainError):
    status_code = status.HTTP_409_CONFLICT
    kind = "conflict"


class UpstreamError(DomainError):
    """The AI provider was unreachable or answered with something unusable."""
    status_code = status.HTTP_502_BAD_GATEWAY
    kind = "upstream_error"


class GenerationError(UpstreamError):
    kind = "generation_error"


class AIUnavailableError(UpstreamError):
    status_code = status.HTTP_503_SERVICE_UNAVAILABLE
    kind = "ai_unavailable"


async def domain_error_handler(request: Request, exc: DomainError) -> JSONResponse:
    return JSONResponse(
        status_code=exc.status_code,
        content={"detail": exc.message, "error": exc.kind},
    )
