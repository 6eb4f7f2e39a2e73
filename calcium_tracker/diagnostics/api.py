# -*- coding: utf-8 -*-
"""Diagnostics — status, health and environment report endpoints."""

from __future__ import annotations

import logging
from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, Header

from ..config import DerivedConfig, build_env_report, get_config
from ..events import log_event
from ..security import admin_key_matches
from .models import StatusResponse

router = APIRouter(prefix="/api", tags=["Diagnostics"])

log = logging.getLogger(__name__)


@router.get("/status", response_model=StatusResponse, summary="Estimation availability")
def status(cfg: DerivedConfig = Depends(get_config)) -> StatusResponse:
    log_event(
        "status_check",
        {
            "estimation_enabled": cfg.estimation_enabled,
            "lockout_active": cfg.lockout_active,
            "rate_limit_enabled": cfg.rate_limit_enabled,
            "circuit_breaker_enabled": cfg.circuit_breaker_enabled,
        },
    )
    available = cfg.estimation_available
    return StatusResponse(
        estimation_enabled=available,
        lockout_active=cfg.lockout_active,
        message="OK" if available else "Estimation temporarily unavailable.",
    )


@router.get("/diagnostics/env", summary="Environment report (snapshot requires admin key)")
def env_report(
    x_admin_key: Optional[str] = Header(default=None),
    cfg: DerivedConfig = Depends(get_config),
) -> Dict[str, Any]:
    report = build_env_report(cfg)
    payload: Dict[str, Any] = {
        "required": report["required"],
        "optional": report["optional"],
        "missing_required": report["missing_required"],
        "derived": cfg.summary(),
    }
    if admin_key_matches(x_admin_key, cfg):
        payload["snapshot"] = report["snapshot"]
    elif x_admin_key is not None:
        log.warning("diagnostics/env: admin key mismatch, snapshot withheld")
    if report["missing_required"]:
        log.warning("diagnostics/env: missing required variables: %s", ", ".join(report["missing_required"]))
    return payload


@router.get("/health")
def health() -> dict:
    return {"ok": True}
