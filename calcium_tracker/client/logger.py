# -*- coding: utf-8 -*-
"""Client — structured diagnostic logging (``[calcium-tracker] {json}`` lines)."""

from __future__ import annotations

import asyncio
import json
import logging
import time
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, Dict, Optional, TypeVar

T = TypeVar("T")

PREFIX = "[calcium-tracker]"

_logger = logging.getLogger("calcium_tracker.client")


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def _elapsed_ms(start: float) -> int:
    return int(round((time.monotonic() - start) * 1000.0))


def build_payload(scope: str, event: str, data: Any = None) -> Dict[str, Any]:
    payload: Dict[str, Any] = {"ts": _now_iso(), "scope": scope, "event": event}
    if data is None:
        return payload
    # A numeric "ms" is lifted to the top level; the rest stays under "data".
    if isinstance(data, dict) and isinstance(data.get("ms"), (int, float)) and not isinstance(data.get("ms"), bool):
        rest = {k: v for k, v in data.items() if k != "ms"}
        payload["ms"] = data["ms"]
        if rest:
            payload["data"] = rest
        return payload
    payload["data"] = data
    return payload


def _emit(level: int, payload: Dict[str, Any]) -> None:
    _logger.log(level, "%s %s", PREFIX, json.dumps(payload, ensure_ascii=False, default=str))


def log(scope: str, event: str, data: Any = None) -> None:
    _emit(logging.INFO, build_payload(scope, event, data))


def warn(scope: str, event: str, data: Any = None) -> None:
    _emit(logging.WARNING, build_payload(scope, event, data))


def error(scope: str, event: str, data: Any = None) -> None:
    _emit(logging.ERROR, build_payload(scope, event, data))


async def span(scope: str, event: str, fn: Callable[[], Awaitable[T]]) -> T:
    """Run ``fn`` and log ``{event}:start`` then ``:success`` or ``:error`` with timing."""
    start = time.monotonic()
    _emit(logging.INFO, build_payload(scope, f"{event}:start"))
    try:
        result = await fn()
    except Exception as exc:
        _emit(logging.ERROR, build_payload(scope, f"{event}:error", {"ms": _elapsed_ms(start), "message": str(exc)}))
        raise
    _emit(logging.INFO, build_payload(scope, f"{event}:success", {"ms": _elapsed_ms(start)}))
    return result


async def with_timeout(awaitable: Awaitable[T], ms: int, label: str) -> T:
    try:
        return await asyncio.wait_for(awaitable, timeout=ms / 1000.0)
    except asyncio.TimeoutError:
        _emit(logging.WARNING, build_payload("timeout", "expired", {"ms": ms, "label": label}))
        raise TimeoutError(f"{label} timed out after {ms}ms") from None


def describe(exc: Optional[BaseException]) -> str:
    if exc is None:
        return ""
    return str(exc) or exc.__class__.__name__
