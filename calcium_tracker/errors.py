# -*- coding: utf-8 -*-
"""Typed error kinds shared by the estimation pipeline and the HTTP layer."""

from __future__ import annotations

from enum import Enum
from typing import Any, Dict, Optional, Tuple


class ErrorKind(str, Enum):
    invalid_request = "invalid_request"
    unauthorized = "unauthorized"
    rate_limited = "rate_limited"
    temporarily_disabled = "temporarily_disabled"
    server_not_configured = "server_not_configured"
    upstream_unavailable = "upstream_unavailable"
    upstream_timeout = "upstream_timeout"
    model_invalid_response = "model_invalid_response"


# kind -> (HTTP status, wire error code). Admin-key mismatch stays a 400 with the
# generic invalid_request code; the mobile client only knows that shape.
STATUS_BY_KIND: Dict[ErrorKind, Tuple[int, str]] = {
    ErrorKind.invalid_request: (400, "invalid_request"),
    ErrorKind.unauthorized: (400, "invalid_request"),
    ErrorKind.rate_limited: (429, "rate_limited"),
    ErrorKind.temporarily_disabled: (503, "temporarily_disabled"),
    ErrorKind.server_not_configured: (500, "server_not_configured"),
    ErrorKind.upstream_unavailable: (502, "upstream_unavailable"),
    ErrorKind.upstream_timeout: (504, "upstream_timeout"),
    ErrorKind.model_invalid_response: (502, "model_invalid_response"),
}

UPSTREAM_KINDS = frozenset(
    {
        ErrorKind.upstream_unavailable,
        ErrorKind.upstream_timeout,
        ErrorKind.model_invalid_response,
    }
)

DEFAULT_RETRY_AFTER_SECONDS = 60


class EstimateError(Exception):
    """Failure inside the estimation pipeline (upstream call or model output)."""

    def __init__(self, kind: ErrorKind, message: str, cause: Optional[BaseException] = None) -> None:
        if kind not in UPSTREAM_KINDS:
            raise ValueError(f"not an estimation error kind: {kind}")
        super().__init__(message)
        self.kind = kind
        self.message = message
        self.cause = cause

    def __repr__(self) -> str:
        return f"EstimateError({self.kind.value!r}, {self.message!r})"


class ApiError(Exception):
    """An error the HTTP layer renders as a JSON body + status code."""

    def __init__(
        self,
        kind: ErrorKind,
        message: str,
        *,
        request_id: Optional[str] = None,
        retry_after_seconds: Optional[int] = None,
        cause: Optional[BaseException] = None,
    ) -> None:
        super().__init__(message)
        self.kind = kind
        self.message = message
        self.request_id = request_id
        self.retry_after_seconds = retry_after_seconds
        self.cause = cause

    @property
    def status_code(self) -> int:
        return STATUS_BY_KIND[self.kind][0]

    def to_payload(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {"error": STATUS_BY_KIND[self.kind][1]}
        if self.kind is ErrorKind.rate_limited:
            payload["retry_after_seconds"] = self.retry_after_seconds or DEFAULT_RETRY_AFTER_SECONDS
        else:
            payload["message"] = self.message
        if self.request_id:
            payload["request_id"] = self.request_id
        return payload


# User-facing messages for upstream failures; never echo provider text to clients.
UPSTREAM_USER_MESSAGES: Dict[ErrorKind, str] = {
    ErrorKind.model_invalid_response: "Estimator returned an invalid response. Please try again.",
    ErrorKind.upstream_timeout: "Estimator timed out. Please try again.",
    ErrorKind.upstream_unavailable: "Estimator is temporarily unavailable. Please try again.",
}


def api_error_from_estimate_error(exc: EstimateError, request_id: Optional[str]) -> ApiError:
    return ApiError(
        exc.kind,
        UPSTREAM_USER_MESSAGES[exc.kind],
        request_id=request_id,
        cause=exc,
    )
