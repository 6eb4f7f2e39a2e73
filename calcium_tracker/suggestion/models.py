# -*- coding: utf-8 -*-
"""Suggestion — Pydantic models."""

from __future__ import annotations

from typing import Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

SuggestionCategory = Literal["bug", "feature", "confusing"]

MAX_MESSAGE_LENGTH = 500


class SuggestionDiagnostics(BaseModel):
    model_config = ConfigDict(strict=True)

    app_version: Optional[str] = None
    os: Optional[Literal["ios", "android"]] = None
    os_version: Optional[str] = None
    device_class: Optional[str] = None
    last_error_code: Optional[str] = None
    last_request_id: Optional[str] = None


class SuggestionRequest(BaseModel):
    model_config = ConfigDict(strict=True)

    category: SuggestionCategory
    message: str = Field(..., min_length=1, max_length=MAX_MESSAGE_LENGTH)
    include_diagnostics: bool
    diagnostics: Optional[SuggestionDiagnostics] = None

    @field_validator("message")
    @classmethod
    def _non_blank(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("message must be a non-empty string")
        return value

    @model_validator(mode="after")
    def _diagnostics_when_requested(self) -> "SuggestionRequest":
        if self.include_diagnostics and self.diagnostics is None:
            raise ValueError("diagnostics are required when include_diagnostics is true")
        return self


class SuggestionResponse(BaseModel):
    ok: bool = True
