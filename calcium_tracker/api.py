# -*- coding: utf-8 -*-
"""
Calcium Camera API

Meal photo calcium estimation plus the status, localization, suggestion and
diagnostics endpoints the mobile client talks to.
"""

from __future__ import annotations

import logging
import os

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from .diagnostics.api import router as diagnostics_router
from .errors import ApiError, ErrorKind
from .estimate.api import router as estimate_router
from .localization.api import router as localization_router
from .suggestion.api import router as suggestion_router

log = logging.getLogger(__name__)

app = FastAPI(
    title="Calcium Camera",
    description="Photo-based calcium estimation for meals",
    version="0.1.0",
    docs_url="/api/docs",
    redoc_url="/api/redoc",
    openapi_url="/api/openapi.json",
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
    expose_headers=["x-request-id"],
)


@app.middleware("http")
async def _echo_request_id(request: Request, call_next):
    response = await call_next(request)
    request_id = request.headers.get("x-request-id")
    if request_id and request_id.strip():
        response.headers["x-request-id"] = request_id
    return response


@app.exception_handler(ApiError)
async def _api_error_handler(request: Request, exc: ApiError) -> JSONResponse:
    if exc.status_code >= 500:
        log.warning(
            "%s %s -> %s %s: %s",
            request.method,
            request.url.path,
            exc.status_code,
            exc.kind.value,
            exc.cause or exc.message,
        )
    headers = None
    if exc.kind is ErrorKind.rate_limited:
        headers = {"Retry-After": str(exc.to_payload()["retry_after_seconds"])}
    return JSONResponse(status_code=exc.status_code, content=exc.to_payload(), headers=headers)


@app.exception_handler(RequestValidationError)
async def _validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    error = ApiError(ErrorKind.invalid_request, "Invalid request.", request_id=request.headers.get("x-request-id"))
    return JSONResponse(status_code=error.status_code, content=error.to_payload())


app.include_router(diagnostics_router)
app.include_router(estimate_router)
app.include_router(localization_router)
app.include_router(suggestion_router)


def run() -> None:
    """Console entry point (used by pyproject [project.scripts])."""
    import uvicorn

    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(name)s: %(message)s")
    host = os.environ.get("CALCIUM_HOST") or os.environ.get("HOST") or "127.0.0.1"
    port_raw = os.environ.get("CALCIUM_PORT") or os.environ.get("PORT") or "7071"
    try:
        port = int(port_raw)
    except ValueError:
        port = 7071

    uvicorn.run("calcium_tracker.api:app", host=host, port=port, reload=False)
