# -*- coding: utf-8 -*-
"""Suggestion — API endpoints."""

from __future__ import annotations

from fastapi import APIRouter, Depends, Request
from pydantic import ValidationError

from ..config import DerivedConfig, get_config
from ..errors import ApiError, ErrorKind
from ..events import log_event
from ..gates import RequestGate, ensure_available, get_request_gate
from .models import SuggestionRequest, SuggestionResponse

router = APIRouter(prefix="/api", tags=["Suggestion"])


@router.post("/suggestion", response_model=SuggestionResponse, summary="Submit in-app feedback")
async def suggestion(
    request: Request,
    cfg: DerivedConfig = Depends(get_config),
    gate: RequestGate = Depends(get_request_gate),
) -> SuggestionResponse:
    try:
        body = SuggestionRequest.model_validate_json(await request.body())
    except ValidationError as exc:
        raise ApiError(ErrorKind.invalid_request, "Invalid suggestion payload.", cause=exc) from exc

    log_event(
        "suggestion_received",
        {
            "category": body.category,
            "include_diagnostics": body.include_diagnostics,
            "rate_limit_enabled": cfg.rate_limit_enabled,
        },
    )
    ensure_available(cfg, gate, scope="suggestion", message="Suggestions temporarily unavailable.")
    return SuggestionResponse(ok=True)
