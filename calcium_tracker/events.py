# -*- coding: utf-8 -*-
"""Structured event logging (one JSON object per log line)."""

from __future__ import annotations

import json
import logging
from datetime import datetime, timezone
from typing import Any, Callable, Dict

logger = logging.getLogger("calcium_tracker.events")

EventLogger = Callable[[str, Dict[str, Any]], None]


def _utc_now() -> str:
    return datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")


def log_event(event: str, payload: Dict[str, Any]) -> None:
    record = {"event": event, "timestamp_utc": _utc_now(), **payload}
    logger.info(json.dumps(record, ensure_ascii=False, default=str))
