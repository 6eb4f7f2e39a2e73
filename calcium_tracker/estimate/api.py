# -*- coding: utf-8 -*-
"""Estimate — API endpoints."""

from __future__ import annotations

import base64
import binascii
from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, Header, Request
from pydantic import ValidationError

from ..config import DerivedConfig, get_config
from ..errors import ApiError, ErrorKind, EstimateError, api_error_from_estimate_error
from ..events import log_event
from ..gates import RequestGate, ensure_available, get_request_gate
from ..security import hash_device_install_id
from .models import EstimateCalciumRequest, EstimateCalciumResponse, EstimateOutcome
from .openai_client import UpstreamEstimator, estimate_from_image_and_answers
from .service import estimate_calcium

router = APIRouter(prefix="/api", tags=["Estimate"])

UNAVAILABLE_MESSAGE = "Estimation temporarily unavailable."


def get_upstream() -> UpstreamEstimator:
    return estimate_from_image_and_answers


def _present(value: Optional[str]) -> bool:
    return value is not None and bool(value.strip())


def _check_image_or_400(image_base64: str, max_bytes: int, request_id: str) -> None:
    try:
        data = base64.b64decode(image_base64, validate=True)
    except (binascii.Error, ValueError) as exc:
        raise ApiError(ErrorKind.invalid_request, "Invalid base64 image.", request_id=request_id, cause=exc) from exc
    if len(data) > max_bytes:
        raise ApiError(ErrorKind.invalid_request, "Image too large.", request_id=request_id)


async def _run_estimate(
    body: EstimateCalciumRequest,
    request_id: str,
    cfg: DerivedConfig,
    upstream: UpstreamEstimator,
) -> EstimateOutcome:
    # At most one extra attempt, and only for unusable model output.
    retries_left = 1 if cfg.retry_invalid_response else 0
    while True:
        try:
            return await estimate_calcium(
                image_base64=body.image_base64,
                answers=body.answers,
                locale=body.locale,
                request_id=request_id,
                logger=log_event,
                config=cfg.estimate_config(),
                upstream=upstream,
            )
        except EstimateError as exc:
            if exc.kind is not ErrorKind.model_invalid_response or retries_left == 0:
                raise
            retries_left -= 1
            log_event("estimate_retry", {"request_id": request_id, "reason": exc.kind.value})


def _debug_payload(cfg: DerivedConfig, outcome: EstimateOutcome, request_id: str, x_debug: Optional[str]) -> Dict[str, Any]:
    if cfg.is_production and x_debug != "1":
        return {"request_id": request_id}
    return {
        "model": cfg.openai_model,
        "prompt_version": cfg.estimator_prompt_version,
        "request_id": request_id,
        "mode": outcome.mode,
        "latency_ms": outcome.latency_ms,
    }


@router.post("/estimateCalcium", response_model=EstimateCalciumResponse, summary="Estimate calcium from a meal photo")
async def estimate(
    request: Request,
    x_device_install_id: Optional[str] = Header(default=None),
    x_request_id: Optional[str] = Header(default=None),
    x_app_version: Optional[str] = Header(default=None),
    x_debug: Optional[str] = Header(default=None),
    cfg: DerivedConfig = Depends(get_config),
    gate: RequestGate = Depends(get_request_gate),
    upstream: UpstreamEstimator = Depends(get_upstream),
) -> EstimateCalciumResponse:
    if x_device_install_id is None or x_request_id is None or not (
        _present(x_device_install_id) and _present(x_request_id) and _present(x_app_version)
    ):
        raise ApiError(ErrorKind.invalid_request, "Missing required headers.")
    request_id = x_request_id
    device_hash = hash_device_install_id(x_device_install_id, cfg.device_hash_salt)

    log_event(
        "estimate_request_received",
        {
            "request_id": request_id,
            "device_install_id_hash": device_hash,
            "app_version": x_app_version,
            "rate_limit_enabled": cfg.rate_limit_enabled,
            "circuit_breaker_enabled": cfg.circuit_breaker_enabled,
        },
    )

    ensure_available(
        cfg,
        gate,
        scope="estimate",
        message=UNAVAILABLE_MESSAGE,
        subject=device_hash,
        request_id=request_id,
        honor_lockout=True,
    )

    try:
        body = EstimateCalciumRequest.model_validate_json(await request.body())
    except ValidationError as exc:
        raise ApiError(ErrorKind.invalid_request, "Invalid JSON body.", request_id=request_id, cause=exc) from exc
    _check_image_or_400(body.image_base64, cfg.max_image_bytes, request_id)

    estimate_cfg = cfg.estimate_config()
    mode = "mock" if estimate_cfg.use_mock else "openai"
    log_event(
        "estimate_mode_select",
        {
            "request_id": request_id,
            "mode": mode,
            "has_openai_key": estimate_cfg.api_key_present,
            "model": estimate_cfg.model,
        },
    )
    if not estimate_cfg.use_mock and not estimate_cfg.api_key_present:
        raise ApiError(
            ErrorKind.server_not_configured,
            "Estimator is not configured. Please contact support.",
            request_id=request_id,
        )

    try:
        outcome = await _run_estimate(body, request_id, cfg, upstream)
    except EstimateError as exc:
        raise api_error_from_estimate_error(exc, request_id) from exc

    result = outcome.result
    return EstimateCalciumResponse(
        calcium_mg=result.calcium_mg,
        confidence=result.confidence,
        confidence_label=result.confidence_label,
        explanation_short=result.explanation_short,
        warnings=list(result.warnings),
        follow_up_question=None,
        debug=_debug_payload(cfg, outcome, request_id, x_debug),
    )
