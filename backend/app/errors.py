"""Translate marketplace errors into HTTP responses."""

from fastapi import Request, status
from fastapi.responses import JSONResponse

from homico.marketplace.errors import (
    ConflictError,
    InvalidTransitionError,
    MarketplaceError,
    NotFoundError,
    UnauthorizedError,
)

from .logging_config import get_logger

logger = get_logger("app.errors")

STATUS_BY_ERROR = (
    (NotFoundError, status.HTTP_404_NOT_FOUND),
    (UnauthorizedError, status.HTTP_403_FORBIDDEN),
    (InvalidTransitionError, status.HTTP_400_BAD_REQUEST),
    (ConflictError, status.HTTP_409_CONFLICT),
)


def status_for(exc: MarketplaceError) -> int:
    for error_type, code in STATUS_BY_ERROR:
        if isinstance(exc, error_type):
            return code
    return status.HTTP_400_BAD_REQUEST


async def marketplace_error_handler(request: Request, exc: MarketplaceError) -> JSONResponse:
    code = status_for(exc)
    logger.info(f"{request.method} {request.url.path} | {type(exc).__name__} -> {code}: {exc}")
    return JSONResponse(status_code=code, content={"detail": str(exc)})
