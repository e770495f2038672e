"""도메인 예외 -> HTTP 응답 매핑."""

from __future__ import annotations

import logging

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from ..exceptions import InsufficientCredits, StoryServiceError


logger = logging.getLogger(__name__)


def _story_service_error_handler(request: Request, exc: Exception) -> JSONResponse:
    assert isinstance(exc, StoryServiceError)

    detail: dict[str, object] = {"code": exc.code, "message": exc.message}
    if isinstance(exc, InsufficientCredits):
        detail["required"] = exc.required
        if exc.available is not None:
            detail["available"] = exc.available

    if exc.status_code >= 500:
        logger.error(
            "request failed with %s: %s",
            exc.code,
            exc.message,
            extra={"path": request.url.path, "user_code": request.headers.get("x-user-code")},
        )
    return JSONResponse(status_code=exc.status_code, content={"detail": detail})


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(StoryServiceError, _story_service_error_handler)
