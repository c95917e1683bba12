import logging
from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse

logger = logging.getLogger(__name__)


class AppError(Exception):
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR

    def __init__(self, message: str = "", errors=None):
        super().__init__(message)
        self.message = message or self.__class__.__name__
        self.errors = errors or []


class Unauthorized(AppError):
    """No resolvable identity. Raised before any side effect."""
    status_code = status.HTTP_401_UNAUTHORIZED

    def __init__(self, message: str = "Unauthorized", errors=None):
        super().__init__(message, errors)


class ValidationError(AppError):
    status_code = 422


class NotFound(AppError):
    status_code = status.HTTP_404_NOT_FOUND


class QuotaExceeded(AppError):
    status_code = status.HTTP_403_FORBIDDEN

    def __init__(self, message: str = "Companion limit reached for your plan", errors=None):
        super().__init__(message, errors)


class DatastoreError(AppError):
    """Wraps any underlying query failure, keeping the original message."""
    status_code = status.HTTP_502_BAD_GATEWAY


async def app_error_handler(request: Request, exc: AppError):
    if exc.status_code >= 500:
        logger.error(f"{exc.__class__.__name__} in {request.url.path}: {exc.message}")
    else:
        logger.info(f"{exc.__class__.__name__} in {request.url.path}: {exc.message}")

    content = {"detail": exc.message}
    if exc.errors:
        content["errors"] = exc.errors

    headers = None
    if isinstance(exc, Unauthorized):
        headers = {"WWW-Authenticate": "Bearer"}

    return JSONResponse(status_code=exc.status_code, content=content, headers=headers)


def register_exception_handlers(app: FastAPI):
    app.add_exception_handler(AppError, app_error_handler)
