from __future__ import annotations

import logging

from fastapi import HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from threereco.apps.api.response import error_response, get_request_id
from threereco.core.errors import AuditAttributionMissing, ThreeRecoError


logger = logging.getLogger(__name__)

_TITLES: dict[int, str] = {
    400: "Bad Request",
    401: "Unauthorized",
    403: "Forbidden",
    404: "Not Found",
    405: "Method Not Allowed",
    409: "Conflict",
    415: "Unsupported Media Type",
    500: "Internal Server Error",
}

_GENERIC_MESSAGE = "An error occurred while processing your request."


def _title(status_code: int) -> str:
    return _TITLES.get(status_code, "Error")


async def domain_exception_handler(request: Request, exc: ThreeRecoError) -> JSONResponse:
    # 5xx details stay in the logs; clients only see the generic message.
    if exc.status_code >= 500:
        level = logger.error if isinstance(exc, AuditAttributionMissing) else logger.warning
        level(
            "request_failed request_id=%s path=%s error=%s",
            get_request_id(request),
            request.url.path,
            type(exc).__name__,
        )
        payload = error_response(error=exc.title, message=_GENERIC_MESSAGE)
    else:
        payload = error_response(error=exc.title, message=exc.message)
    return JSONResponse(content=payload, status_code=exc.status_code)


async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    message = exc.detail if isinstance(exc.detail, str) else _GENERIC_MESSAGE
    payload = error_response(error=_title(exc.status_code), message=message)
    return JSONResponse(content=payload, status_code=exc.status_code, headers=getattr(exc, "headers", None))


async def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    # Malformed bodies and parameters are reported as 400, not FastAPI's default 422.
    payload = error_response(error="Bad Request", message="The request body is invalid.")
    return JSONResponse(content=payload, status_code=400)


async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    # Avoid leaking stack traces; return a stable internal error body.
    logger.exception(
        "unhandled_exception request_id=%s path=%s", get_request_id(request), request.url.path
    )
    payload = error_response(error="Internal Server Error", message=_GENERIC_MESSAGE)
    return JSONResponse(content=payload, status_code=500)
