# services/http_errors.py
from __future__ import annotations

import logging

from fastapi import Request
from fastapi.responses import JSONResponse

from app.jobs.errors import JobEngineError

logger = logging.getLogger("firstclick.http")

ENGINE_ERROR_HTTP_MAP: dict[str, int] = {
    "NOT_FOUND": 404,
    "INVALID_TRANSITION": 409,
    "CONFLICT": 409,
    "VALIDATION_ERROR": 422,
    "PRICING_UNAVAILABLE": 409,
}


def status_for(exc: JobEngineError) -> int:
    # unknown codes fail closed
    return ENGINE_ERROR_HTTP_MAP.get(exc.code, 500)


async def engine_error_handler(request: Request, exc: JobEngineError) -> JSONResponse:
    status = status_for(exc)
    if status >= 500:
        logger.error("unmapped engine error code=%s path=%s", exc.code, request.url.path)
        return JSONResponse(status_code=500, content={"detail": "Internal server error"})
    return JSONResponse(status_code=status, content={"detail": exc.to_dict()})


async def unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception("unhandled error path=%s", request.url.path)
    return JSONResponse(status_code=500, content={"detail": "Internal server error"})
