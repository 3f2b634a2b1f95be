"""
Error taxonomy shared by the services and the HTTP layer.

Handlers registered in ``install_error_handlers`` turn every failure into the
``{"success": false, "error": ...}`` envelope the client expects.
"""
from typing import Any, Dict, List, Optional

import structlog
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException


class AppError(Exception):
    status_code = 500

    def __init__(self, message: str, details: Optional[Any] = None):
        super().__init__(message)
        self.message = message
        self.details = details


class ValidationError(AppError):
    """Missing or malformed input; raised before anything is written."""

    status_code = 400

    def __init__(self, message: str, errors: Optional[List[str]] = None):
        super().__init__(message, details=errors or None)
        self.errors = errors or []


class AuthzError(AppError):
    status_code = 403


class NotFoundError(AppError):
    status_code = 404


class RenderError(AppError):
    """PDF generation failed. Never rolls back the report record."""

    status_code = 500


class StorageError(AppError):
    """Moving or removing an artifact on disk failed."""

    status_code = 500


def error_body(message: str, details: Optional[Any] = None) -> Dict[str, Any]:
    body: Dict[str, Any] = {"success": False, "error": message}
    if details:
        body["details"] = details
    return body


def install_error_handlers(app: FastAPI) -> None:
    log = structlog.get_logger(__name__)

    @app.exception_handler(AppError)
    async def _app_error(request: Request, exc: AppError):
        if exc.status_code >= 500:
            log.error("request_failed", path=request.url.path, error=exc.message)
        return JSONResponse(status_code=exc.status_code, content=error_body(exc.message, exc.details))

    @app.exception_handler(HTTPException)
    async def _http_error(request: Request, exc: HTTPException):
        return JSONResponse(
            status_code=exc.status_code,
            content=error_body(str(exc.detail)),
            headers=getattr(exc, "headers", None),
        )

    @app.exception_handler(RequestValidationError)
    async def _body_error(request: Request, exc: RequestValidationError):
        messages = []
        for err in exc.errors():
            loc = [str(p) for p in err.get("loc", ()) if p not in ("body", "query", "path")]
            field = ".".join(loc) or "request"
            messages.append(f"{field}: {err.get('msg')}")
        return JSONResponse(status_code=400, content=error_body("Validation failed", messages))
