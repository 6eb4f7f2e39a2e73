# -*- coding: utf-8 -*-
"""Localization — API endpoints."""

from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, Header, Query, Request
from pydantic import ValidationError

from ..config import DerivedConfig, get_config
from ..errors import ApiError, ErrorKind
from ..estimate.models import SUPPORTED_LOCALES
from ..events import log_event
from ..gates import RequestGate, ensure_available, get_request_gate
from ..security import admin_key_matches
from .models import (
    MOCK_UI_VERSION,
    LocalizationLatestResponse,
    LocalizationRegenerateRequest,
    LocalizationRegenerateResponse,
)

router = APIRouter(prefix="/api/localization", tags=["Localization"])

UNAVAILABLE_MESSAGE = "Localization temporarily unavailable."


def pack_url(base: str, locale: str) -> str:
    return f"{base.rstrip('/')}/{locale}.json"


@router.get("/latest", response_model=LocalizationLatestResponse, summary="Latest localization pack for a locale")
def latest(
    locale: Optional[str] = Query(default=None),
    cfg: DerivedConfig = Depends(get_config),
    gate: RequestGate = Depends(get_request_gate),
) -> LocalizationLatestResponse:
    if locale not in SUPPORTED_LOCALES:
        raise ApiError(ErrorKind.invalid_request, "Unsupported locale.")

    log_event("localization_latest", {"locale": locale, "rate_limit_enabled": cfg.rate_limit_enabled})
    ensure_available(cfg, gate, scope="localization", message=UNAVAILABLE_MESSAGE)

    return LocalizationLatestResponse(
        ui_version=MOCK_UI_VERSION,
        supported_locales=list(SUPPORTED_LOCALES),
        locale=locale,
        pack_url=pack_url(cfg.localization_pack_url_base, locale),
    )


@router.post("/regenerate", response_model=LocalizationRegenerateResponse, summary="Regenerate localization packs")
async def regenerate(
    request: Request,
    x_admin_key: Optional[str] = Header(default=None),
    cfg: DerivedConfig = Depends(get_config),
    gate: RequestGate = Depends(get_request_gate),
) -> LocalizationRegenerateResponse:
    if not admin_key_matches(x_admin_key, cfg):
        raise ApiError(ErrorKind.unauthorized, "Unauthorized.")

    try:
        body = LocalizationRegenerateRequest.model_validate_json(await request.body())
    except ValidationError as exc:
        raise ApiError(ErrorKind.invalid_request, "Invalid JSON body.", cause=exc) from exc

    log_event("localization_regenerate", {"ui_version": body.ui_version, "locales_count": len(body.locales)})
    ensure_available(cfg, gate, scope="localization", message=UNAVAILABLE_MESSAGE)

    return LocalizationRegenerateResponse(ui_version=body.ui_version, generated=list(body.locales), warnings=[])
