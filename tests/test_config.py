# -*- coding: utf-8 -*-

from __future__ import annotations

import hashlib
import os
import unittest
from unittest.mock import patch

from calcium_tracker.config import (
    DEFAULT_MAX_IMAGE_BYTES,
    DEFAULT_OPENAI_MODEL,
    DEFAULT_OPENAI_TIMEOUT_MS,
    DEFAULT_PROMPT_VERSION,
    build_env_report,
    parse_timeout_ms,
    resolve_config,
    truncate_value,
)


def _api_key_status(report: dict) -> dict:
    for status in report["required"] + report["optional"]:
        if status["name"] == "OPENAI_API_KEY":
            return status
    raise AssertionError("OPENAI_API_KEY missing from report")


class TestResolveConfig(unittest.TestCase):
    def test_defaults_from_empty_environment(self) -> None:
        cfg = resolve_config({})
        self.assertTrue(cfg.estimation_enabled)
        self.assertFalse(cfg.lockout_active)
        self.assertTrue(cfg.rate_limit_enabled)
        self.assertTrue(cfg.circuit_breaker_enabled)
        self.assertFalse(cfg.use_mock_estimate)
        self.assertIsNone(cfg.openai_api_key)
        self.assertEqual(cfg.openai_model, DEFAULT_OPENAI_MODEL)
        self.assertEqual(cfg.openai_timeout_ms, DEFAULT_OPENAI_TIMEOUT_MS)
        self.assertEqual(cfg.estimator_prompt_version, DEFAULT_PROMPT_VERSION)
        self.assertEqual(cfg.max_image_bytes, DEFAULT_MAX_IMAGE_BYTES)
        self.assertFalse(cfg.is_production)

    def test_gate_flags_only_flip_on_exact_strings(self) -> None:
        cfg = resolve_config(
            {
                "ESTIMATION_ENABLED": "false",
                "LOCKOUT_ACTIVE": "true",
                "RATE_LIMIT_ENABLED": "FALSE",
                "CIRCUIT_BREAKER_ENABLED": "0",
            }
        )
        self.assertFalse(cfg.estimation_enabled)
        self.assertTrue(cfg.lockout_active)
        self.assertTrue(cfg.rate_limit_enabled)
        self.assertTrue(cfg.circuit_breaker_enabled)

    def test_mock_flag_is_case_insensitive(self) -> None:
        self.assertTrue(resolve_config({"USE_MOCK_ESTIMATE": "TRUE"}).use_mock_estimate)
        self.assertFalse(resolve_config({"USE_MOCK_ESTIMATE": "yes"}).use_mock_estimate)

    def test_whitespace_values_count_as_absent(self) -> None:
        cfg = resolve_config({"OPENAI_API_KEY": "   ", "OPENAI_MODEL": "  ", "ESTIMATOR_PROMPT": "\n"})
        self.assertIsNone(cfg.openai_api_key)
        self.assertEqual(cfg.openai_model, DEFAULT_OPENAI_MODEL)
        self.assertIsNone(cfg.estimator_prompt)
        self.assertFalse(cfg.estimate_config().api_key_present)

    def test_timeout_parsing(self) -> None:
        self.assertEqual(parse_timeout_ms(None), DEFAULT_OPENAI_TIMEOUT_MS)
        self.assertEqual(parse_timeout_ms("abc"), DEFAULT_OPENAI_TIMEOUT_MS)
        self.assertEqual(parse_timeout_ms("-5"), DEFAULT_OPENAI_TIMEOUT_MS)
        self.assertEqual(parse_timeout_ms("0"), DEFAULT_OPENAI_TIMEOUT_MS)
        self.assertEqual(parse_timeout_ms("1500.9"), 1500)
        self.assertEqual(parse_timeout_ms("0.4"), 1)

    def test_config_is_read_at_call_time(self) -> None:
        with patch.dict(os.environ, {"OPENAI_MODEL": "gpt-a"}, clear=True):
            self.assertEqual(resolve_config().openai_model, "gpt-a")
        with patch.dict(os.environ, {"OPENAI_MODEL": "gpt-b"}, clear=True):
            self.assertEqual(resolve_config().openai_model, "gpt-b")

    def test_estimate_config_repr_hides_key(self) -> None:
        cfg = resolve_config({"OPENAI_API_KEY": "sk-very-secret"}).estimate_config()
        self.assertEqual(cfg.api_key, "sk-very-secret")
        self.assertNotIn("sk-very-secret", repr(cfg))

    def test_summary_has_no_secrets(self) -> None:
        env = {"OPENAI_API_KEY": "sk-summary", "ADMIN_KEY": "admin-summary", "DEVICE_HASH_SALT": "salt-summary"}
        summary = resolve_config(env).summary()
        flat = repr(summary)
        for secret in env.values():
            self.assertNotIn(secret, flat)
        self.assertTrue(summary["openai_api_key_present"])
        self.assertFalse(summary["admin_key_is_default"])


class TestEnvReport(unittest.TestCase):
    def test_api_key_required_only_when_live_estimation_possible(self) -> None:
        base = {"ESTIMATION_ENABLED": "true", "LOCKOUT_ACTIVE": "false", "USE_MOCK_ESTIMATE": "false"}
        report = build_env_report(resolve_config(base), base)
        self.assertTrue(_api_key_status(report)["required"])
        self.assertIn("OPENAI_API_KEY", report["missing_required"])

        for flip in ({"ESTIMATION_ENABLED": "false"}, {"LOCKOUT_ACTIVE": "true"}, {"USE_MOCK_ESTIMATE": "true"}):
            env = {**base, **flip}
            report = build_env_report(resolve_config(env), env)
            self.assertFalse(_api_key_status(report)["required"], flip)
            self.assertNotIn("OPENAI_API_KEY", report["missing_required"])

    def test_present_key_is_not_missing(self) -> None:
        env = {"OPENAI_API_KEY": "sk-present"}
        report = build_env_report(resolve_config(env), env)
        self.assertEqual(report["missing_required"], [])
        self.assertTrue(_api_key_status(report)["present"])

    def test_secret_snapshot_is_redacted(self) -> None:
        env = {"OPENAI_API_KEY": "sk-abcdef123456", "ADMIN_KEY": "hunter2", "DEVICE_HASH_SALT": "pepper"}
        snapshot = build_env_report(resolve_config(env), env)["snapshot"]
        for name, value in env.items():
            entry = snapshot[name]
            self.assertEqual(set(entry), {"present", "length", "sha256_8"})
            self.assertEqual(entry["length"], len(value))
            self.assertEqual(entry["sha256_8"], hashlib.sha256(value.encode("utf-8")).hexdigest()[:8])
            self.assertNotIn(value, repr(entry))

    def test_non_secret_snapshot_shows_truncated_value(self) -> None:
        long_url = "https://cdn.example.com/" + "x" * 200
        env = {"LOCALIZATION_PACK_URL_BASE": long_url, "OPENAI_MODEL": "gpt-4o"}
        snapshot = build_env_report(resolve_config(env), env)["snapshot"]
        self.assertEqual(snapshot["OPENAI_MODEL"], {"present": True, "value": "gpt-4o"})
        self.assertEqual(snapshot["LOCALIZATION_PACK_URL_BASE"]["value"], truncate_value(long_url))
        self.assertEqual(len(snapshot["LOCALIZATION_PACK_URL_BASE"]["value"]), 121)
        self.assertEqual(snapshot["OPENAI_BASE_URL"], {"present": False})


if __name__ == "__main__":
    unittest.main()
