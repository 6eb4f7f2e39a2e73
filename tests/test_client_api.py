# -*- coding: utf-8 -*-

from __future__ import annotations

import asyncio
import json
import os
import unittest
from typing import List
from unittest.mock import patch

import httpx

from calcium_tracker.api import app
from calcium_tracker.client.api_client import ApiClient, ApiClientError, CancelToken, safe_url
from calcium_tracker.client.logger import build_payload, span, with_timeout
from calcium_tracker.estimate.models import EstimateAnswers, EstimateCalciumRequest
from calcium_tracker.suggestion.models import SuggestionRequest

REQUEST = EstimateCalciumRequest(
    image_base64="QUJD",
    image_mime="image/jpeg",
    answers=EstimateAnswers(portion_size="small", contains_dairy="no", contains_tofu_or_small_fish_bones="no"),
    locale="en",
    ui_version="ui-1",
)

ESTIMATE_BODY = {
    "calcium_mg": 300,
    "confidence": 0.6,
    "confidence_label": "medium",
    "explanation_short": "Mock estimate for development.",
    "warnings": [],
    "follow_up_question": None,
    "debug": {"request_id": "r"},
}


class TestClientLogger(unittest.IsolatedAsyncioTestCase):
    def test_ms_is_lifted(self) -> None:
        payload = build_payload("net", "res", {"ms": 12, "status": 200})
        self.assertEqual(payload["ms"], 12)
        self.assertEqual(payload["data"], {"status": 200})
        self.assertEqual(build_payload("net", "res", {"ms": 5}).get("data"), None)
        self.assertEqual(build_payload("net", "x", [1, 2])["data"], [1, 2])

    async def test_span_logs_success_and_error(self) -> None:
        async def ok() -> int:
            return 7

        async def boom() -> int:
            raise ValueError("bad")

        with self.assertLogs("calcium_tracker.client", level="INFO") as logs:
            self.assertEqual(await span("flow", "step", ok), 7)
            with self.assertRaises(ValueError):
                await span("flow", "step", boom)
        text = "\n".join(logs.output)
        self.assertIn('"event": "step:start"', text)
        self.assertIn('"event": "step:success"', text)
        self.assertIn('"event": "step:error"', text)
        self.assertIn("[calcium-tracker]", text)

    async def test_with_timeout(self) -> None:
        self.assertEqual(await with_timeout(asyncio.sleep(0, result="done"), 1000, "fast"), "done")
        with self.assertRaises(TimeoutError):
            await with_timeout(asyncio.sleep(1), 10, "slow")


class TestApiClient(unittest.IsolatedAsyncioTestCase):
    def test_safe_url_strips_query(self) -> None:
        self.assertEqual(
            safe_url("http://localhost:7071/api/localization/latest?locale=en#x"),
            "http://localhost:7071/api/localization/latest",
        )
        self.assertEqual(safe_url("/relative?x=1"), "/relative?x=1")

    async def test_estimate_sends_headers_and_parses(self) -> None:
        seen: List[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(200, json=ESTIMATE_BODY)

        async with ApiClient("http://server", app_version="2.0.0", transport=httpx.MockTransport(handler)) as client:
            response = await client.estimate_calcium("device-1", REQUEST, request_id="req-42")

        self.assertEqual(response.calcium_mg, 300)
        request = seen[0]
        self.assertEqual(str(request.url), "http://server/api/estimateCalcium")
        self.assertEqual(request.headers["x-request-id"], "req-42")
        self.assertEqual(request.headers["x-device-install-id"], "device-1")
        self.assertEqual(request.headers["x-app-version"], "2.0.0")
        self.assertEqual(json.loads(request.content)["answers"]["portion_size"], "small")

    async def test_localization_query_and_suggestion(self) -> None:
        seen: List[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            if request.url.path.endswith("/latest"):
                return httpx.Response(
                    200,
                    json={"ui_version": "u", "supported_locales": ["en"], "locale": "en", "pack_url": "p"},
                )
            return httpx.Response(200, json={"ok": True})

        async with ApiClient("http://server", transport=httpx.MockTransport(handler)) as client:
            latest = await client.get_localization_latest("en")
            ok = await client.send_suggestion(
                SuggestionRequest(category="bug", message="hi", include_diagnostics=False)
            )

        self.assertEqual(latest.pack_url, "p")
        self.assertTrue(ok.ok)
        self.assertEqual(seen[0].url.params["locale"], "en")
        self.assertNotIn("diagnostics", json.loads(seen[1].content))

    async def test_http_error_uses_server_message(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(
                502,
                json={"error": "upstream_unavailable", "message": "Estimator is temporarily unavailable. Please try again.", "request_id": "req-7"},
            )

        async with ApiClient("http://server", transport=httpx.MockTransport(handler)) as client:
            with self.assertRaises(ApiClientError) as ctx:
                await client.estimate_calcium("device-1", REQUEST, request_id="req-7")

        err = ctx.exception
        self.assertEqual(err.kind, "http")
        self.assertEqual(err.status, 502)
        self.assertEqual(err.error_code, "upstream_unavailable")
        self.assertEqual(err.trace_id, "req-7")
        self.assertTrue(err.retryable)
        self.assertIn("temporarily unavailable", err.message_user)

    async def test_client_errors_are_not_retryable(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(429, json={"error": "rate_limited", "retry_after_seconds": 30})

        async with ApiClient("http://server", transport=httpx.MockTransport(handler)) as client:
            with self.assertRaises(ApiClientError) as ctx:
                await client.get_status()

        self.assertFalse(ctx.exception.retryable)
        self.assertEqual(ctx.exception.retry_after_seconds, 30)
        self.assertIn("30 seconds", ctx.exception.message_user)

    async def test_network_error(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("refused", request=request)

        async with ApiClient("http://server", transport=httpx.MockTransport(handler)) as client:
            with self.assertLogs("calcium_tracker.client", level="INFO") as logs:
                with self.assertRaises(ApiClientError) as ctx:
                    await client.get_status()

        self.assertEqual(ctx.exception.kind, "network")
        self.assertTrue(ctx.exception.retryable)
        self.assertTrue(any('"event": "err"' in line for line in logs.output))

    async def test_non_http_failure_is_unknown(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            raise OverflowError("connect(): port must be 0-65535.")

        async with ApiClient("http://server", transport=httpx.MockTransport(handler)) as client:
            with self.assertLogs("calcium_tracker.client", level="INFO") as logs:
                with self.assertRaises(ApiClientError) as ctx:
                    await client.get_status()

        self.assertEqual(ctx.exception.kind, "unknown")
        self.assertFalse(ctx.exception.retryable)
        self.assertIn("OverflowError", ctx.exception.message_dev)
        self.assertTrue(any('"event": "err"' in line for line in logs.output))

    async def test_timeout(self) -> None:
        async def handler(request: httpx.Request) -> httpx.Response:
            await asyncio.sleep(1)
            return httpx.Response(200, json={})

        async with ApiClient("http://server", timeout_ms=30, transport=httpx.MockTransport(handler)) as client:
            with self.assertLogs("calcium_tracker.client", level="INFO") as logs:
                with self.assertRaises(ApiClientError) as ctx:
                    await client.get_status()

        self.assertEqual(ctx.exception.kind, "timeout")
        self.assertTrue(any('"event": "abort"' in line for line in logs.output))

    async def test_cancel_token_aborts_in_flight_request(self) -> None:
        started = asyncio.Event()

        async def handler(request: httpx.Request) -> httpx.Response:
            started.set()
            await asyncio.sleep(1)
            return httpx.Response(200, json=ESTIMATE_BODY)

        token = CancelToken()
        async with ApiClient("http://server", transport=httpx.MockTransport(handler)) as client:
            call = asyncio.ensure_future(client.estimate_calcium("device-1", REQUEST, cancel=token))
            await started.wait()
            token.cancel()
            with self.assertRaises(ApiClientError) as ctx:
                await call

        self.assertEqual(ctx.exception.kind, "cancel")
        self.assertFalse(ctx.exception.retryable)

    async def test_cancelled_token_never_sends(self) -> None:
        calls: List[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            calls.append(request)
            return httpx.Response(200, json={})

        token = CancelToken()
        token.cancel()
        async with ApiClient("http://server", transport=httpx.MockTransport(handler)) as client:
            with self.assertRaises(ApiClientError) as ctx:
                await client.get_status(cancel=token)

        self.assertEqual(ctx.exception.kind, "cancel")
        self.assertEqual(calls, [])

    async def test_unexpected_body_is_unknown(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, json={"unexpected": True})

        async with ApiClient("http://server", transport=httpx.MockTransport(handler)) as client:
            with self.assertRaises(ApiClientError) as ctx:
                await client.get_status()

        self.assertEqual(ctx.exception.kind, "unknown")

    async def test_against_backend_app(self) -> None:
        transport = httpx.ASGITransport(app=app)
        with patch.dict(os.environ, {"USE_MOCK_ESTIMATE": "true"}, clear=True):
            async with ApiClient("http://testserver", transport=transport) as client:
                status = await client.get_status()
                response = await client.estimate_calcium("device-1", REQUEST, request_id="req-e2e")

        self.assertTrue(status.estimation_enabled)
        self.assertEqual(response.calcium_mg, 300)
        self.assertEqual(response.debug["request_id"], "req-e2e")


if __name__ == "__main__":
    unittest.main()
