# -*- coding: utf-8 -*-
"""Localization — Pydantic models."""

from __future__ import annotations

from typing import Dict, List

from pydantic import BaseModel, ConfigDict, Field, field_validator

from ..estimate.models import Locale

MOCK_UI_VERSION = "mock-ui-version"


class LocalizationLatestResponse(BaseModel):
    ui_version: str
    supported_locales: List[str]
    locale: Locale
    pack_url: str


class LocalizationRegenerateRequest(BaseModel):
    model_config = ConfigDict(strict=True)

    ui_version: str = Field(..., min_length=1)
    base_en_json: Dict[str, str]
    locales: List[Locale] = Field(..., min_length=1)

    @field_validator("ui_version")
    @classmethod
    def _non_blank(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("ui_version must be a non-empty string")
        return value


class LocalizationRegenerateResponse(BaseModel):
    ui_version: str
    generated: List[Locale]
    warnings: List[str] = []
