# -*- coding: utf-8 -*-
"""Client — typed API calls against the backend with network logging.

Every call goes through :func:`fetch_with_logging`, which logs ``req`` / ``res``
/ ``err`` / ``abort`` lines with the query string stripped from the URL, bounds
the call with a timeout and honours an optional :class:`CancelToken`. Failures
surface as :class:`ApiClientError` with a closed ``kind``.
"""

from __future__ import annotations

import asyncio
import os
import time
from typing import Any, Dict, Literal, Optional, Type, TypeVar
from urllib.parse import urlsplit, urlunsplit
from uuid import uuid4

import httpx
from pydantic import BaseModel, ValidationError

from ..diagnostics.models import StatusResponse
from ..estimate.models import EstimateCalciumRequest, EstimateCalciumResponse
from ..localization.models import LocalizationLatestResponse
from ..suggestion.models import SuggestionRequest, SuggestionResponse
from .logger import describe, log

DEFAULT_API_BASE_URL = "http://localhost:7071"
FETCH_TIMEOUT_MS = 10000

ApiClientErrorKind = Literal["network", "timeout", "http", "cancel", "unknown"]

ModelT = TypeVar("ModelT", bound=BaseModel)

USER_MESSAGES: Dict[str, str] = {
    "network": "Can’t reach server. Check your connection and try again.",
    "timeout": "The server took too long to respond. Please try again.",
    "http": "Something went wrong. Please try again.",
    "cancel": "Request cancelled.",
    "unknown": "Something went wrong. Please try again.",
}


class ApiClientError(Exception):
    def __init__(
        self,
        kind: ApiClientErrorKind,
        *,
        url: str,
        method: str,
        message_user: str,
        message_dev: str,
        trace_id: str,
        status: Optional[int] = None,
        error_code: Optional[str] = None,
        retry_after_seconds: Optional[int] = None,
    ) -> None:
        super().__init__(message_dev)
        self.kind = kind
        self.url = url
        self.method = method
        self.status = status
        self.message_user = message_user
        self.message_dev = message_dev
        self.trace_id = trace_id
        self.error_code = error_code
        self.retry_after_seconds = retry_after_seconds

    @property
    def retryable(self) -> bool:
        if self.kind in ("network", "timeout"):
            return True
        return self.kind == "http" and self.status is not None and self.status >= 500

    def __repr__(self) -> str:
        return f"ApiClientError({self.kind!r}, status={self.status}, trace_id={self.trace_id!r})"


class CancelToken:
    """Cooperative cancellation shared between a UI action and its request."""

    def __init__(self) -> None:
        self._event = asyncio.Event()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def cancel(self) -> None:
        self._event.set()

    async def wait(self) -> None:
        await self._event.wait()


def safe_url(raw_url: str) -> str:
    parts = urlsplit(raw_url)
    if not parts.scheme:
        return raw_url
    return urlunsplit((parts.scheme, parts.netloc, parts.path, "", ""))


def _elapsed_ms(start: float) -> int:
    return int(round((time.monotonic() - start) * 1000.0))


async def _settle(task: "asyncio.Task[Any]") -> None:
    task.cancel()
    await asyncio.gather(task, return_exceptions=True)


async def fetch_with_logging(
    client: httpx.AsyncClient,
    method: str,
    url: str,
    *,
    request_id: Optional[str] = None,
    timeout_ms: int = FETCH_TIMEOUT_MS,
    cancel: Optional[CancelToken] = None,
    **kwargs: Any,
) -> httpx.Response:
    shown = safe_url(url)
    trace_id = request_id or str(uuid4())
    start = time.monotonic()

    def fail(kind: ApiClientErrorKind, message_dev: str) -> ApiClientError:
        return ApiClientError(
            kind,
            url=shown,
            method=method,
            message_user=USER_MESSAGES[kind],
            message_dev=message_dev,
            trace_id=trace_id,
        )

    log("net", "req", {"method": method, "url": shown, "request_id": request_id})

    if cancel is not None and cancel.cancelled:
        log("net", "abort", {"url": shown, "reason": "cancelled", "request_id": request_id})
        raise fail("cancel", "Request cancelled before sending.")

    request_task = asyncio.ensure_future(client.request(method, url, **kwargs))
    waiters = {request_task}
    cancel_task: Optional["asyncio.Task[None]"] = None
    if cancel is not None:
        cancel_task = asyncio.ensure_future(cancel.wait())
        waiters.add(cancel_task)

    try:
        done, _ = await asyncio.wait(waiters, timeout=timeout_ms / 1000.0, return_when=asyncio.FIRST_COMPLETED)
    except asyncio.CancelledError:
        await _settle(request_task)
        raise
    finally:
        if cancel_task is not None and not cancel_task.done():
            await _settle(cancel_task)

    if request_task not in done:
        await _settle(request_task)
        if cancel_task is not None and cancel_task in done:
            log("net", "abort", {"url": shown, "reason": "cancelled", "ms": _elapsed_ms(start), "request_id": request_id})
            raise fail("cancel", "Request cancelled.")
        log("net", "abort", {"url": shown, "ms": timeout_ms, "request_id": request_id})
        raise fail("timeout", f"Request timed out after {timeout_ms}ms.")

    try:
        response = request_task.result()
    except httpx.TimeoutException as exc:
        log("net", "err", {"message": str(exc) or "timeout", "ms": _elapsed_ms(start), "request_id": request_id})
        raise fail("timeout", f"Request timed out: {exc.__class__.__name__}") from exc
    except httpx.HTTPError as exc:
        log("net", "err", {"message": str(exc), "ms": _elapsed_ms(start), "request_id": request_id})
        raise fail("network", f"Network error: {exc.__class__.__name__}: {exc}") from exc
    except Exception as exc:
        log("net", "err", {"message": describe(exc), "ms": _elapsed_ms(start), "request_id": request_id})
        raise fail("unknown", f"Request failed: {exc.__class__.__name__}: {exc}") from exc

    log("net", "res", {"status": response.status_code, "ms": _elapsed_ms(start), "request_id": request_id})
    return response


def http_error(response: httpx.Response, *, method: str, trace_id: str) -> ApiClientError:
    """Build an ``http`` error from a non-2xx response, preferring the server's own message."""
    code: Optional[str] = None
    server_message: Optional[str] = None
    retry_after: Optional[int] = None
    try:
        body = response.json()
    except ValueError:
        body = None
    if isinstance(body, dict):
        code = body.get("error") if isinstance(body.get("error"), str) else None
        server_message = body.get("message") if isinstance(body.get("message"), str) else None
        if isinstance(body.get("retry_after_seconds"), int):
            retry_after = body["retry_after_seconds"]
        if isinstance(body.get("request_id"), str) and body["request_id"]:
            trace_id = body["request_id"]

    if code == "rate_limited":
        wait = retry_after or 60
        message_user = f"Too many requests. Please wait {wait} seconds and try again."
    else:
        message_user = server_message or USER_MESSAGES["http"]

    return ApiClientError(
        "http",
        url=safe_url(str(response.request.url)),
        method=method,
        status=response.status_code,
        message_user=message_user,
        message_dev=f"HTTP {response.status_code} {code or 'error'}" + (f": {server_message}" if server_message else ""),
        trace_id=trace_id,
        error_code=code,
        retry_after_seconds=retry_after,
    )


class ApiClient:
    def __init__(
        self,
        base_url: Optional[str] = None,
        *,
        app_version: str = "0.0.0",
        timeout_ms: int = FETCH_TIMEOUT_MS,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self.base_url = (base_url or os.environ.get("CALCIUM_API_BASE_URL") or DEFAULT_API_BASE_URL).rstrip("/")
        self.app_version = app_version
        self.timeout_ms = timeout_ms
        self._client = httpx.AsyncClient(timeout=httpx.Timeout(timeout_ms / 1000.0), transport=transport)
        log("net", "base_url", {"base_url": self.base_url})

    async def aclose(self) -> None:
        await self._client.aclose()

    async def __aenter__(self) -> "ApiClient":
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.aclose()

    def _url(self, path: str) -> str:
        return f"{self.base_url}{path}"

    async def _call(
        self,
        method: str,
        path: str,
        model: Type[ModelT],
        *,
        request_id: Optional[str] = None,
        cancel: Optional[CancelToken] = None,
        **kwargs: Any,
    ) -> ModelT:
        trace_id = request_id or str(uuid4())
        response = await fetch_with_logging(
            self._client,
            method,
            self._url(path),
            request_id=trace_id,
            timeout_ms=self.timeout_ms,
            cancel=cancel,
            **kwargs,
        )
        if response.status_code >= 400:
            raise http_error(response, method=method, trace_id=trace_id)
        try:
            return model.model_validate(response.json())
        except (ValueError, ValidationError) as exc:
            raise ApiClientError(
                "unknown",
                url=safe_url(self._url(path)),
                method=method,
                status=response.status_code,
                message_user=USER_MESSAGES["unknown"],
                message_dev=f"Unexpected response body: {exc}",
                trace_id=trace_id,
            ) from exc

    async def get_status(self, *, cancel: Optional[CancelToken] = None) -> StatusResponse:
        return await self._call("GET", "/api/status", StatusResponse, cancel=cancel)

    async def get_localization_latest(self, locale: str) -> LocalizationLatestResponse:
        return await self._call(
            "GET",
            "/api/localization/latest",
            LocalizationLatestResponse,
            params={"locale": locale},
        )

    async def estimate_calcium(
        self,
        device_install_id: str,
        request: EstimateCalciumRequest,
        *,
        request_id: Optional[str] = None,
        cancel: Optional[CancelToken] = None,
    ) -> EstimateCalciumResponse:
        request_id = request_id or str(uuid4())
        return await self._call(
            "POST",
            "/api/estimateCalcium",
            EstimateCalciumResponse,
            request_id=request_id,
            cancel=cancel,
            headers={
                "x-device-install-id": device_install_id,
                "x-request-id": request_id,
                "x-app-version": self.app_version,
            },
            json=request.model_dump(mode="json"),
        )

    async def send_suggestion(self, request: SuggestionRequest) -> SuggestionResponse:
        return await self._call(
            "POST",
            "/api/suggestion",
            SuggestionResponse,
            json=request.model_dump(mode="json", exclude_none=True),
        )
