"""
Sync error taxonomy and FastAPI exception handlers
"""
from typing import Any, Dict, Optional

import structlog
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

logger = structlog.get_logger(__name__)


class SyncError(Exception):
    """Base error for every failure a handler reports to the caller"""

    status_code = 500
    error = "sync_error"

    def __init__(self, detail: str, **context: Any):
        super().__init__(detail)
        self.detail = detail
        self.context = context

    def to_body(self) -> Dict[str, Any]:
        return {"ok": False, "error": self.error, "detail": self.detail, **self.context}


class AuthError(SyncError):
    status_code = 401
    error = "unauthorized"


class ValidationError(SyncError):
    status_code = 400
    error = "validation_error"


class NotFoundError(SyncError):
    """
    Referenced external id has no local counterpart.

    With soft=True the handler answers 200 {ok: true, skipped: true, reason}
    so the webhook sender does not keep retrying.
    """

    status_code = 404
    error = "not_found"

    def __init__(self, detail: str, reason: str = "not_found", soft: bool = False, **context: Any):
        super().__init__(detail, **context)
        self.reason = reason
        self.soft = soft

    def to_body(self) -> Dict[str, Any]:
        if self.soft:
            return {"ok": True, "skipped": True, "reason": self.reason, **self.context}
        return super().to_body()


class ConflictError(SyncError):
    status_code = 409
    error = "conflict"


class UpstreamGatewayError(SyncError):
    """CRM call failed after the local write was committed"""

    status_code = 502
    error = "crm_sync_failed"

    def __init__(self, detail: str, upstream_status: Optional[int] = None, **context: Any):
        super().__init__(detail, saved=True, **context)
        self.upstream_status = upstream_status

    def to_body(self) -> Dict[str, Any]:
        body = super().to_body()
        body["upstream_status"] = self.upstream_status
        return body


def missing_reference(name: str) -> ValidationError:
    return ValidationError(f"missing reference {name}", field=name)


async def sync_error_handler(request: Request, exc: SyncError) -> JSONResponse:
    status_code = exc.status_code
    if isinstance(exc, NotFoundError) and exc.soft:
        status_code = 200
        logger.info("webhook_skipped", path=request.url.path, reason=exc.reason)
    elif isinstance(exc, AuthError):
        logger.warning("request_unauthorized", path=request.url.path)
    else:
        logger.warning(
            "request_rejected",
            path=request.url.path,
            error=exc.error,
            detail=exc.detail,
            status_code=status_code,
        )
    return JSONResponse(status_code=status_code, content=exc.to_body())


async def request_validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    errors = [
        {"field": ".".join(str(part) for part in err.get("loc", ()) if part != "body"), "message": err.get("msg")}
        for err in exc.errors()
    ]
    logger.warning("request_invalid", path=request.url.path, errors=errors)
    return JSONResponse(
        status_code=400,
        content={"ok": False, "error": "validation_error", "detail": "invalid request body", "errors": errors},
    )


async def unexpected_error_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception("unexpected_error", path=request.url.path, method=request.method)
    return JSONResponse(status_code=500, content={"ok": False, "error": "unexpected_error"})


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(SyncError, sync_error_handler)
    app.add_exception_handler(RequestValidationError, request_validation_handler)
    app.add_exception_handler(Exception, unexpected_error_handler)
