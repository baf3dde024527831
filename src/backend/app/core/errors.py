from __future__ import annotations

import logging

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from fastapi.exceptions import RequestValidationError
from starlette.exceptions import HTTPException as StarletteHTTPException

logger = logging.getLogger(__name__)


class SessionNotFoundError(LookupError):
    """Raised when the platform refers to a session this process never saw."""

    def __init__(self, session_id: str):
        super().__init__(f"Unknown session: {session_id}")
        self.session_id = session_id


def standard_error(status: int, code: str, message: str, details: dict | None = None):
    return {"error": {"status": status, "code": code, "message": message, "details": details or {}}}


def register_exception_handlers(app: FastAPI) -> None:
    @app.exception_handler(StarletteHTTPException)
    async def http_exception_handler(request: Request, exc: StarletteHTTPException):
        payload = standard_error(exc.status_code, "http_error", exc.detail if exc.detail else "HTTP error")
        return JSONResponse(status_code=exc.status_code, content=payload, headers=getattr(exc, "headers", None))

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(request: Request, exc: RequestValidationError):
        details = {"errors": jsonable_errors(exc)}
        payload = standard_error(422, "validation_error", "Validation failed", details)
        return JSONResponse(status_code=422, content=payload)

    @app.exception_handler(SessionNotFoundError)
    async def session_not_found_handler(request: Request, exc: SessionNotFoundError):
        payload = standard_error(404, "session_not_found", str(exc), {"session_id": exc.session_id})
        return JSONResponse(status_code=404, content=payload)

    @app.exception_handler(Exception)
    async def unhandled_exception_handler(request: Request, exc: Exception):
        logger.exception("Unhandled error on %s %s", request.method, request.url.path, exc_info=exc)
        payload = standard_error(500, "server_error", "Internal server error")
        return JSONResponse(status_code=500, content=payload)


def jsonable_errors(exc: RequestValidationError) -> list[dict]:
    # pydantic may put exception instances under "ctx"; keep the rest as-is
    errors = []
    for err in exc.errors():
        item = dict(err)
        ctx = item.get("ctx")
        if isinstance(ctx, dict):
            item["ctx"] = {k: str(v) for k, v in ctx.items()}
        errors.append(item)
    return errors
