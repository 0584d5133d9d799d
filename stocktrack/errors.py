import logging
import traceback

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from stocktrack.config import settings

logger = logging.getLogger(__name__)


class AppError(Exception):
    """Base for errors that map onto a structured JSON response."""

    status_code = 400

    def __init__(self, message: str, **extra):
        super().__init__(message)
        self.message = message
        self.extra = extra

    def to_dict(self) -> dict:
        return {"message": self.message, **self.extra}


class ValidationError(AppError):
    status_code = 400


class NotFoundError(AppError):
    status_code = 404


class UnknownItemError(NotFoundError):
    """Negative adjustment against a SKU+bin that has no ledger record."""


class InsufficientStockError(AppError):
    status_code = 400

    def __init__(self, message: str, available: int, requested: int, **extra):
        super().__init__(message, available=available, requested=requested, **extra)
        self.available = available
        self.requested = requested


class BatchValidationError(AppError):
    status_code = 400

    def __init__(self, errors: list[dict]):
        super().__init__(f"Batch validation failed for {len(errors)} item(s)", errors=errors)
        self.errors = errors


class ConflictError(AppError):
    status_code = 400


class ImportFileError(AppError):
    """The uploaded workbook cannot be processed at all."""

    status_code = 400


class AuthError(AppError):
    status_code = 401


class AuthorizationError(AppError):
    status_code = 403


def setup_exception_handlers(app: FastAPI) -> None:
    @app.exception_handler(AppError)
    async def app_error_handler(request: Request, exc: AppError):
        if exc.status_code >= 500:
            logger.error("%s %s failed: %s", request.method, request.url.path, exc.message)
        return JSONResponse(status_code=exc.status_code, content=exc.to_dict())

    @app.exception_handler(Exception)
    async def global_exception_handler(request: Request, exc: Exception):
        """Return JSON for unhandled exceptions so the client can parse the error."""
        logger.error("Unhandled error: %s\n%s", exc, traceback.format_exc())
        content = {"message": "Internal Server Error", "error": str(exc)}
        if settings.ENVIRONMENT == "development":
            content["stack"] = traceback.format_exc()
        return JSONResponse(status_code=500, content=content)
