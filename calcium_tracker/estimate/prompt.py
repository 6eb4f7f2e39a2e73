# -*- coding: utf-8 -*-
"""Estimate — prompt text for the vision model."""

from __future__ import annotations

from typing import Optional

from .models import EstimateAnswers


def build_estimate_prompt(answers: EstimateAnswers, locale: str, override: Optional[str] = None) -> str:
    """Render the estimation instruction.

    A non-blank ``override`` (operator hot-patch via ``ESTIMATOR_PROMPT``) is
    returned verbatim and the template is skipped entirely.
    """
    if override is not None and override.strip():
        return override

    return "\n".join(
        [
            "You are a nutrition estimator.",
            "Estimate calcium mg for the meal in the photo.",
            "Output JSON only. No markdown.",
            "calcium_mg must be an integer (mg).",
            "confidence must be between 0 and 1.",
            "confidence_label must be one of: low, medium, high.",
            "If uncertain, still estimate but lower confidence.",
            f"Write explanation_short and warnings in locale: {locale}.",
            "Use these answers:",
            f"- Portion size: {answers.portion_size}",
            f"- Contains dairy: {answers.contains_dairy}",
            f"- Contains tofu or small fish bones: {answers.contains_tofu_or_small_fish_bones}",
        ]
    )
