"""
Error taxonomy and FastAPI exception handlers
"""

import traceback
from typing import Optional

from fastapi import HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from app.core.config import config
from app.core.logger import logger


class ErrorResponse(Exception):
    """Custom exception for application errors"""

    def __init__(self, message: str, status_code: int = 400, details: dict = None):
        self.message = message
        self.status_code = status_code
        self.details = details or {}
        super().__init__(message)


class ValidationError(ErrorResponse):
    """Malformed or missing input, fixable by the caller"""

    def __init__(self, message: str, details: dict = None):
        super().__init__(message, status_code=400, details=details)


class NotFoundError(ErrorResponse):
    """Referenced product, variant, image or category does not exist"""

    def __init__(self, message: str, details: dict = None):
        super().__init__(message, status_code=404, details=details)


class ConflictError(ErrorResponse):
    """Uniqueness violation on slug or SKU"""

    def __init__(self, message: str, details: dict = None):
        super().__init__(message, status_code=409, details=details)


class InvalidStateTransition(ErrorResponse):
    """Status change would violate a lifecycle invariant"""

    def __init__(self, message: str, details: dict = None):
        super().__init__(message, status_code=400, details=details)


class StorageError(ErrorResponse):
    """Blob storage operation failed"""

    def __init__(self, message: str, details: dict = None):
        super().__init__(message, status_code=502, details=details)


class DatabaseError(ErrorResponse):
    """Database is unreachable or rejected the operation"""

    def __init__(self, message: str, details: dict = None):
        super().__init__(message, status_code=503, details=details)


class VersionConflictError(Exception):
    """The stored aggregate changed since it was loaded"""

    def __init__(self, product_id: str, expected_version: Optional[int]):
        self.product_id = product_id
        self.expected_version = expected_version
        super().__init__(
            f"Product {product_id} was modified concurrently (expected version {expected_version})"
        )


class ErrorResponseModel(BaseModel):
    """Pydantic model for error responses"""
    error: str
    details: Optional[dict] = None


async def error_response_handler(request: Request, exc: ErrorResponse):
    """Handler for custom ErrorResponse exceptions"""
    metadata = {
        "event": "error_response",
        "error_type": type(exc).__name__,
        "status_code": exc.status_code,
        "url": str(request.url),
        "method": request.method,
        **exc.details,
    }

    if config.environment == "development":
        # Include more detailed error info in development
        metadata["traceback"] = traceback.format_exc()

    if exc.status_code >= 500:
        logger.error(f"Error: {exc.message}", metadata=metadata)
    else:
        logger.warning(f"Error: {exc.message}", metadata=metadata)

    return JSONResponse(
        status_code=exc.status_code,
        content={"error": exc.message, "details": exc.details}
    )


async def http_exception_handler(request: Request, exc: HTTPException):
    """Handler for FastAPI HTTPException"""
    logger.warning(
        f"HTTPException: {exc.detail}",
        metadata={
            "event": "http_exception",
            "status_code": exc.status_code,
            "url": str(request.url),
            "method": request.method,
        }
    )

    return JSONResponse(
        status_code=exc.status_code,
        content={"error": exc.detail},
        headers=getattr(exc, "headers", None),
    )


async def request_validation_handler(request: Request, exc: RequestValidationError):
    """Render request-shape errors in the same envelope as ValidationError"""
    logger.warning(
        "Request validation failed",
        metadata={"event": "request_validation_error", "url": str(request.url), "method": request.method}
    )
    return JSONResponse(
        status_code=400,
        content={"error": "Validation error", "details": {"errors": _jsonable_errors(exc.errors())}}
    )


def _jsonable_errors(errors) -> list:
    # ctx may hold exception instances which JSONResponse cannot encode
    cleaned = []
    for err in errors:
        err = dict(err)
        if "ctx" in err:
            err["ctx"] = {k: str(v) for k, v in err["ctx"].items()}
        err.pop("url", None)
        err.pop("input", None)
        cleaned.append(err)
    return cleaned
