# -*- coding: utf-8 -*-
"""Estimate — response schema + validation of raw model output."""

from __future__ import annotations

import json
from typing import Any, Dict

from pydantic import ValidationError

from ..errors import ErrorKind, EstimateError
from .models import ConfidenceLabel, EstimateResult

# Sent to the provider as a strict json_schema so malformed shapes are rejected upstream too.
RESPONSE_SCHEMA: Dict[str, Any] = {
    "type": "object",
    "additionalProperties": False,
    "properties": {
        "calcium_mg": {"type": "integer"},
        "confidence": {"type": "number"},
        "confidence_label": {"type": "string", "enum": ["low", "medium", "high"]},
        "explanation_short": {"type": "string"},
        "warnings": {"type": "array", "items": {"type": "string"}},
    },
    "required": ["calcium_mg", "confidence", "confidence_label", "explanation_short", "warnings"],
}
RESPONSE_SCHEMA_NAME = "calcium_estimate"


def confidence_bucket(confidence: float) -> ConfidenceLabel:
    if confidence < 0.4:
        return "low"
    if confidence < 0.7:
        return "medium"
    return "high"


def parse_estimate_payload(payload: str) -> EstimateResult:
    try:
        parsed = json.loads(payload)
    except (TypeError, ValueError) as exc:
        raise EstimateError(ErrorKind.model_invalid_response, "Model returned invalid JSON.", exc) from exc

    if not isinstance(parsed, dict):
        raise EstimateError(ErrorKind.model_invalid_response, "Model returned empty JSON.")

    calcium = parsed.get("calcium_mg")
    if isinstance(calcium, bool) or not isinstance(calcium, (int, float)):
        raise EstimateError(ErrorKind.model_invalid_response, "Model response missing calcium estimate.")

    try:
        return EstimateResult.model_validate(parsed)
    except ValidationError as exc:
        fields = ", ".join(sorted({str(err["loc"][0]) for err in exc.errors() if err.get("loc")}))
        raise EstimateError(
            ErrorKind.model_invalid_response,
            f"Model response failed schema validation: {fields or 'unknown field'}.",
            exc,
        ) from exc
