# -*- coding: utf-8 -*-
"""Estimate — vision model call via the OpenAI Responses API."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Dict, Optional, Protocol

import httpx

from ..config import DEFAULT_OPENAI_BASE_URL
from ..errors import ErrorKind, EstimateError
from .models import EstimateAnswers, EstimateResult
from .schema import RESPONSE_SCHEMA, RESPONSE_SCHEMA_NAME, parse_estimate_payload

log = logging.getLogger(__name__)


@dataclass(frozen=True)
class UpstreamEstimate:
    result: EstimateResult
    raw_text: str


class UpstreamEstimator(Protocol):
    """Anything that turns image + prompt into a validated estimate."""

    async def __call__(
        self,
        *,
        image_base64: str,
        answers: EstimateAnswers,
        locale: str,
        request_id: str,
        prompt: str,
        model: str,
        api_key: str,
        base_url: Optional[str],
        timeout_ms: int,
    ) -> UpstreamEstimate:
        ...


def build_responses_payload(
    *,
    image_base64: str,
    answers: EstimateAnswers,
    locale: str,
    request_id: str,
    prompt: str,
    model: str,
) -> Dict[str, Any]:
    answers_text = (
        f"Answers: portion={answers.portion_size}, dairy={answers.contains_dairy}, "
        f"tofu_or_small_fish_bones={answers.contains_tofu_or_small_fish_bones}."
    )
    return {
        "model": model,
        "input": [
            {
                "role": "user",
                "content": [
                    {"type": "input_text", "text": prompt},
                    {"type": "input_text", "text": f"Locale: {locale}. Request ID: {request_id}."},
                    {"type": "input_text", "text": answers_text},
                    {
                        "type": "input_image",
                        "image_url": f"data:image/jpeg;base64,{image_base64}",
                        "detail": "auto",
                    },
                ],
            }
        ],
        "text": {
            "format": {
                "type": "json_schema",
                "name": RESPONSE_SCHEMA_NAME,
                "strict": True,
                "schema": RESPONSE_SCHEMA,
            }
        },
        "stream": False,
    }


def extract_output_text(resp_json: Dict[str, Any]) -> Optional[str]:
    """Support the flattened ``output_text`` field and the ``output[].content[]`` list."""
    flat = resp_json.get("output_text")
    if isinstance(flat, str) and flat:
        return flat

    output = resp_json.get("output")
    if not isinstance(output, list):
        return None
    for item in output:
        if not isinstance(item, dict):
            continue
        for content in item.get("content") or []:
            if not isinstance(content, dict):
                continue
            if content.get("type") == "output_text" and isinstance(content.get("text"), str):
                return content["text"]
    return None


def _describe_http_error(resp: httpx.Response) -> str:
    status = resp.status_code
    try:
        payload = resp.json()
    except ValueError:
        payload = None

    err = payload.get("error") if isinstance(payload, dict) else None
    if isinstance(err, dict):
        code = str(err.get("code") or err.get("type") or f"http_{status}").strip()
        message = str(err.get("message") or "").strip()
        if message:
            return f"OpenAI request failed ({status} {code}): {message[:200]}"
        return f"OpenAI request failed ({status} {code})."

    # Proxies sometimes answer with HTML; keep a short snippet for diagnosis.
    snippet = (resp.text or "").strip().replace("\n", " ")[:200]
    return f"OpenAI request failed ({status}): {snippet}" if snippet else f"OpenAI request failed ({status})."


async def estimate_from_image_and_answers(
    *,
    image_base64: str,
    answers: EstimateAnswers,
    locale: str,
    request_id: str,
    prompt: str,
    model: str,
    api_key: str,
    base_url: Optional[str] = None,
    timeout_ms: int,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> UpstreamEstimate:
    url = f"{(base_url or DEFAULT_OPENAI_BASE_URL).rstrip('/')}/responses"
    payload = build_responses_payload(
        image_base64=image_base64,
        answers=answers,
        locale=locale,
        request_id=request_id,
        prompt=prompt,
        model=model,
    )
    headers = {
        "Authorization": f"Bearer {api_key}",
        "Content-Type": "application/json",
        "X-Client-Request-Id": request_id,
    }
    timeout_s = timeout_ms / 1000.0

    try:
        async with httpx.AsyncClient(timeout=httpx.Timeout(timeout_s), transport=transport) as client:
            # wait_for cancels the in-flight post and waits for it to unwind before raising.
            resp = await asyncio.wait_for(client.post(url, headers=headers, json=payload), timeout=timeout_s)
    except (asyncio.TimeoutError, httpx.TimeoutException) as exc:
        raise EstimateError(ErrorKind.upstream_timeout, "OpenAI request timed out.", exc) from exc
    except httpx.HTTPError as exc:
        raise EstimateError(
            ErrorKind.upstream_unavailable,
            f"OpenAI request failed: {exc.__class__.__name__}",
            exc,
        ) from exc

    if resp.status_code >= 400:
        raise EstimateError(ErrorKind.upstream_unavailable, _describe_http_error(resp))

    content_type = (resp.headers.get("content-type") or "").lower()
    if "text/event-stream" in content_type:
        raise EstimateError(ErrorKind.model_invalid_response, "Model returned a streamed response.")

    try:
        data = resp.json()
    except ValueError as exc:
        snippet = (resp.text or "").replace("\n", " ").strip()[:200]
        raise EstimateError(
            ErrorKind.upstream_unavailable,
            f"OpenAI returned non-JSON response: {snippet}",
            exc,
        ) from exc

    if not isinstance(data, dict) or ("output" not in data and "output_text" not in data):
        raise EstimateError(ErrorKind.model_invalid_response, "Model returned a streamed response.")

    text = extract_output_text(data)
    if not text:
        log.warning("openai response without output_text (request_id=%s, status=%s)", request_id, data.get("status"))
        raise EstimateError(ErrorKind.model_invalid_response, "Model returned empty response.")

    return UpstreamEstimate(result=parse_estimate_payload(text), raw_text=text)
