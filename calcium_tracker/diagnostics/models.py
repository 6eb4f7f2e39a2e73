# -*- coding: utf-8 -*-
"""Diagnostics — Pydantic models."""

from __future__ import annotations

from pydantic import BaseModel


class StatusResponse(BaseModel):
    estimation_enabled: bool
    lockout_active: bool
    message: str
