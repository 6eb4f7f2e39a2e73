# -*- coding: utf-8 -*-
"""Estimate — Pydantic models."""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

PortionSize = Literal["small", "medium", "large"]
YesNoNotSure = Literal["yes", "no", "not_sure"]
ConfidenceLabel = Literal["low", "medium", "high"]
Locale = Literal["en", "zh-Hans", "es"]
EstimateMode = Literal["mock", "openai"]

SUPPORTED_LOCALES: List[str] = ["en", "zh-Hans", "es"]


def _require_non_blank(value: str) -> str:
    if not value.strip():
        raise ValueError("must be a non-empty string")
    return value


class EstimateAnswers(BaseModel):
    model_config = ConfigDict(frozen=True, strict=True)

    portion_size: PortionSize
    contains_dairy: YesNoNotSure
    contains_tofu_or_small_fish_bones: YesNoNotSure


class EstimateResult(BaseModel):
    """The model's answer after schema validation."""

    model_config = ConfigDict(frozen=True)

    calcium_mg: int = Field(..., ge=0)
    confidence: float = Field(..., ge=0, le=1)
    confidence_label: ConfidenceLabel
    explanation_short: str
    warnings: List[str]

    @field_validator("calcium_mg", mode="before")
    @classmethod
    def _numeric_mg(cls, value: object) -> int:
        # Models sometimes emit 320.0 for an integer field; bools are never numbers here.
        if isinstance(value, bool) or not isinstance(value, (int, float)):
            raise ValueError("calcium_mg must be numeric")
        if isinstance(value, float):
            if not math.isfinite(value):
                raise ValueError("calcium_mg must be finite")
            return int(round(value))
        return value

    @field_validator("confidence", mode="before")
    @classmethod
    def _numeric_confidence(cls, value: object) -> float:
        if isinstance(value, bool) or not isinstance(value, (int, float)):
            raise ValueError("confidence must be numeric")
        if not math.isfinite(float(value)):
            raise ValueError("confidence must be finite")
        return float(value)


@dataclass(frozen=True)
class EstimateOutcome:
    result: EstimateResult
    raw_text: Optional[str]
    latency_ms: int
    mode: EstimateMode


class EstimateCalciumRequest(BaseModel):
    model_config = ConfigDict(strict=True)

    image_base64: str = Field(..., min_length=1, description="Raw base64 without data-url prefix")
    image_mime: Literal["image/jpeg"]
    answers: EstimateAnswers
    locale: Locale
    ui_version: str = Field(..., min_length=1)

    @field_validator("image_base64", "ui_version")
    @classmethod
    def _non_blank(cls, value: str) -> str:
        return _require_non_blank(value)


class EstimateCalciumResponse(BaseModel):
    calcium_mg: int
    confidence: float
    confidence_label: ConfidenceLabel
    explanation_short: str
    warnings: List[str] = []
    follow_up_question: Optional[str] = None
    debug: Dict[str, Any] = Field(default_factory=dict)
