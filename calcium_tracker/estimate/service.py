# -*- coding: utf-8 -*-
"""Estimate — orchestration: mode selection, prompt, upstream call, lifecycle events.

Event sequence per call (each emitted exactly once):

- ``estimate_request_started``
- ``estimate_openai_request_done`` (live mode only, after the upstream call settles)
- ``estimate_request_completed`` (always, success or failure)

No retries happen here; see ``estimate/api.py`` for the optional caller-side retry.
"""

from __future__ import annotations

import time
from typing import Any, Dict, Optional

from ..config import EstimateConfig
from ..errors import ErrorKind, EstimateError
from ..events import EventLogger
from .models import EstimateAnswers, EstimateOutcome, EstimateResult
from .openai_client import UpstreamEstimate, UpstreamEstimator, estimate_from_image_and_answers
from .prompt import build_estimate_prompt
from .schema import confidence_bucket

MOCK_RESULT = EstimateResult(
    calcium_mg=300,
    confidence=0.6,
    confidence_label="medium",
    explanation_short="Mock estimate for development.",
    warnings=[],
)


def approx_image_bytes(image_base64: str) -> int:
    return round(len(image_base64) * 3 / 4)


async def estimate_calcium(
    *,
    image_base64: str,
    answers: EstimateAnswers,
    locale: str,
    request_id: str,
    logger: EventLogger,
    config: EstimateConfig,
    upstream: Optional[UpstreamEstimator] = None,
) -> EstimateOutcome:
    call_upstream = upstream or estimate_from_image_and_answers
    mode = "mock" if config.use_mock else "openai"

    logger(
        "estimate_request_started",
        {
            "request_id": request_id,
            "mode": mode,
            "model": config.model,
            "prompt_version": config.prompt_version,
            "image_bytes_approx": approx_image_bytes(image_base64),
            "answers": answers.model_dump(),
        },
    )

    summary: Dict[str, Any] = {"request_id": request_id, "mode": mode, "result": "error"}
    try:
        if config.use_mock:
            summary.update(
                result="mock_success",
                calcium_mg=MOCK_RESULT.calcium_mg,
                confidence_label=MOCK_RESULT.confidence_label,
            )
            return EstimateOutcome(result=MOCK_RESULT, raw_text=None, latency_ms=0, mode="mock")

        if not config.api_key:
            raise EstimateError(ErrorKind.upstream_unavailable, "OpenAI API key missing.")

        prompt = build_estimate_prompt(answers, locale, config.prompt_override)
        start = time.perf_counter()
        upstream_estimate: UpstreamEstimate
        try:
            upstream_estimate = await call_upstream(
                image_base64=image_base64,
                answers=answers,
                locale=locale,
                request_id=request_id,
                prompt=prompt,
                model=config.model,
                api_key=config.api_key,
                base_url=config.base_url,
                timeout_ms=config.timeout_ms,
            )
        except EstimateError as exc:
            if exc.kind is ErrorKind.model_invalid_response:
                logger("estimate_openai_parse_error", {"request_id": request_id, "message": exc.message})
            raise
        except Exception as exc:
            raise EstimateError(ErrorKind.upstream_unavailable, "Upstream estimator failed.", exc) from exc
        finally:
            latency_ms = int(round((time.perf_counter() - start) * 1000.0))
            summary["latency_ms"] = latency_ms
            logger("estimate_openai_request_done", {"request_id": request_id, "latency_ms": latency_ms})

        result = upstream_estimate.result
        expected = confidence_bucket(result.confidence)
        if expected != result.confidence_label:
            logger(
                "estimate_confidence_label_mismatch",
                {
                    "request_id": request_id,
                    "confidence": result.confidence,
                    "confidence_label": result.confidence_label,
                    "expected_label": expected,
                },
            )

        summary.update(
            result="openai_success",
            calcium_mg=result.calcium_mg,
            confidence_label=result.confidence_label,
        )
        return EstimateOutcome(
            result=result,
            raw_text=upstream_estimate.raw_text,
            latency_ms=latency_ms,
            mode="openai",
        )
    except EstimateError as exc:
        summary["error_kind"] = exc.kind.value
        summary["message"] = exc.message
        raise
    finally:
        logger("estimate_request_completed", summary)
