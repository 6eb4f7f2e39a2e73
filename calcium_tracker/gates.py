# -*- coding: utf-8 -*-
"""Availability gates evaluated before any expensive work.

Rate limiting and the cost circuit breaker are extension points: handlers ask a
``RequestGate`` and fail fast. The bundled gate never trips; a deployment that
needs real limits swaps in its own via ``app.dependency_overrides[get_request_gate]``.
"""

from __future__ import annotations

from typing import Optional, Protocol

from .config import DerivedConfig
from .errors import DEFAULT_RETRY_AFTER_SECONDS, ApiError, ErrorKind


class RequestGate(Protocol):
    def is_rate_limited(self, scope: str, subject: Optional[str] = None) -> bool:
        ...

    def is_circuit_open(self, scope: str) -> bool:
        ...


class StaticRequestGate:
    def is_rate_limited(self, scope: str, subject: Optional[str] = None) -> bool:
        return False

    def is_circuit_open(self, scope: str) -> bool:
        return False


_default_gate = StaticRequestGate()


def get_request_gate() -> RequestGate:
    return _default_gate


def ensure_available(
    cfg: DerivedConfig,
    gate: RequestGate,
    *,
    scope: str,
    message: str,
    subject: Optional[str] = None,
    request_id: Optional[str] = None,
    honor_lockout: bool = False,
) -> None:
    """Raise ``ApiError`` when the scope is disabled (503) or rate limited (429)."""
    if honor_lockout and cfg.lockout_active:
        raise ApiError(ErrorKind.temporarily_disabled, message, request_id=request_id)
    # Disabled wins over the circuit flag and over rate limiting on every route, matching /api/status.
    if not cfg.estimation_enabled:
        raise ApiError(ErrorKind.temporarily_disabled, message, request_id=request_id)
    if cfg.circuit_breaker_enabled and gate.is_circuit_open(scope):
        raise ApiError(ErrorKind.temporarily_disabled, message, request_id=request_id)
    if cfg.rate_limit_enabled and gate.is_rate_limited(scope, subject):
        raise ApiError(
            ErrorKind.rate_limited,
            "Too many requests.",
            request_id=request_id,
            retry_after_seconds=DEFAULT_RETRY_AFTER_SECONDS,
        )
