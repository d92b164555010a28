"""Pipeline error taxonomy and the HTTP error envelope.

Every non-2xx response has the same shape:

    {
      "error": {
        "code": "STATION_NOT_FOUND",
        "message": "Station 9 not found",
        "request_id": "3f9c0a1b2d4e",
        ...extra fields when relevant
      }
    }

Pipeline exceptions carry their own status and code, so routes can let them
propagate instead of translating each one.
"""

from __future__ import annotations

import logging
from typing import Any

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

logger = logging.getLogger(__name__)

_HTTP_CODES: dict[int, str] = {
    400: "BAD_REQUEST",
    404: "NOT_FOUND",
    405: "METHOD_NOT_ALLOWED",
    422: "UNPROCESSABLE",
    500: "INTERNAL_ERROR",
}


class TelemetryError(Exception):
    """Base class for every failure raised by the ingestion pipeline.

    Subclasses override ``status_code`` and ``code``; ``details()`` adds
    extra fields to the error envelope.
    """

    status_code: int = 502
    code: str = "UPSTREAM_ERROR"

    def details(self) -> dict[str, Any]:
        return {}


def _envelope(
    request: Request, status_code: int, code: str, message: str, **extra: Any
) -> JSONResponse:
    body = {
        "code": code,
        "message": message,
        **extra,
        "request_id": getattr(request.state, "request_id", None),
    }
    return JSONResponse(status_code=status_code, content={"error": body})


def register_error_handlers(app: FastAPI) -> None:

    @app.exception_handler(TelemetryError)
    async def telemetry_error_handler(request: Request, exc: TelemetryError) -> JSONResponse:
        log = logger.error if exc.status_code >= 500 else logger.info
        log("%s on %s %s: %s", type(exc).__name__, request.method, request.url.path, exc)
        return _envelope(
            request,
            exc.status_code,
            exc.code,
            str(exc),
            kind=type(exc).__name__,
            **exc.details(),
        )

    @app.exception_handler(StarletteHTTPException)
    async def http_exception_handler(
        request: Request, exc: StarletteHTTPException
    ) -> JSONResponse:
        response = _envelope(
            request,
            exc.status_code,
            _HTTP_CODES.get(exc.status_code, "ERROR"),
            str(exc.detail),
        )
        if exc.headers:
            response.headers.update(exc.headers)
        return response

    @app.exception_handler(RequestValidationError)
    async def validation_error_handler(
        request: Request, exc: RequestValidationError
    ) -> JSONResponse:
        problems = [
            {
                "field": ".".join(str(part) for part in err["loc"]),
                "message": err["msg"],
                "type": err["type"],
            }
            for err in exc.errors()
        ]
        return _envelope(
            request,
            422,
            "VALIDATION_ERROR",
            f"Request body has {len(problems)} invalid field(s)",
            details=problems,
        )

    @app.exception_handler(Exception)
    async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
        logger.exception(
            "Unhandled error on %s %s (request_id=%s)",
            request.method, request.url.path, getattr(request.state, "request_id", None),
        )
        return _envelope(
            request,
            500,
            "INTERNAL_ERROR",
            "Unexpected server error; quote the request_id when reporting it.",
        )
