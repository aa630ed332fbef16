"""
Application error types and their HTTP rendering

Every error leaving a router is rendered as
{"success": false, "message": ..., "errorCode": ...}.
"""
import logging
from typing import Any, Dict, List, Optional

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from sqlalchemy.exc import SQLAlchemyError

from tp_location.config import settings

logger = logging.getLogger(__name__)


class AppError(Exception):
    """Base application error"""
    
    def __init__(
        self,
        message: str,
        status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR,
        error_code: str = "APP_ERROR"
    ):
        super().__init__(message)
        self.message = message
        self.status_code = status_code
        self.error_code = error_code
    
    def to_dict(self) -> Dict[str, Any]:
        return {
            "success": False,
            "message": self.message,
            "errorCode": self.error_code,
        }


class ValidationError(AppError):
    """400 - bad input or a precondition the caller can act on"""
    
    def __init__(
        self,
        message: str,
        reason: Optional[str] = None,
        details: Optional[Any] = None
    ):
        super().__init__(message, status.HTTP_400_BAD_REQUEST, "VALIDATION_ERROR")
        self.reason = reason
        self.details = details
    
    def to_dict(self) -> Dict[str, Any]:
        body = super().to_dict()
        if self.reason:
            body["reason"] = self.reason
        if self.details is not None:
            body["errors"] = self.details
        return body


class NotFoundError(AppError):
    """404 - never says why, so other tenants' rows stay invisible"""
    
    def __init__(self, message: str = "Resource not found"):
        super().__init__(message, status.HTTP_404_NOT_FOUND, "NOT_FOUND")


class AuthenticationError(AppError):
    def __init__(self, message: str = "Authentication required", error_code: str = "UNAUTHORIZED"):
        super().__init__(message, status.HTTP_401_UNAUTHORIZED, error_code)


class AuthorizationError(AppError):
    def __init__(self, message: str = "Access denied", error_code: str = "FORBIDDEN"):
        super().__init__(message, status.HTTP_403_FORBIDDEN, error_code)


class FeatureDisabledError(AuthorizationError):
    def __init__(self, feature_key: str):
        super().__init__(
            "This feature is not available for your institution.",
            error_code="FEATURE_DISABLED"
        )
        self.feature_key = feature_key
    
    def to_dict(self) -> Dict[str, Any]:
        body = super().to_dict()
        body["feature"] = self.feature_key
        return body


class AlreadyVerifiedError(Exception):
    """Raised inside the write path when the posting already has its log row."""
    
    def __init__(self, posting_id: int):
        super().__init__(f"Posting {posting_id} already verified")
        self.posting_id = posting_id


def _field_errors(exc: RequestValidationError) -> List[Dict[str, Any]]:
    errors = []
    for error in exc.errors():
        loc = [str(part) for part in error.get("loc", ()) if part != "body"]
        errors.append({
            "field": ".".join(loc),
            "message": error.get("msg"),
            "type": error.get("type"),
        })
    return errors


async def app_error_handler(request: Request, exc: AppError) -> JSONResponse:
    if exc.status_code >= 500:
        logger.error(f"{request.method} {request.url.path} failed: {exc.message}")
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


async def request_validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content={
            "success": False,
            "message": "Validation failed",
            "errorCode": "VALIDATION_ERROR",
            "errors": _field_errors(exc),
        }
    )


async def database_error_handler(request: Request, exc: SQLAlchemyError) -> JSONResponse:
    logger.exception(f"Database error on {request.method} {request.url.path}")
    message = str(exc) if settings.is_development else "Internal server error"
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={
            "success": False,
            "message": message,
            "errorCode": "INTERNAL_ERROR",
        }
    )


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(AppError, app_error_handler)
    app.add_exception_handler(RequestValidationError, request_validation_handler)
    app.add_exception_handler(SQLAlchemyError, database_error_handler)
