# -*- coding: utf-8 -*-
"""Centralized configuration: derived runtime toggles + redaction-safe env report.

Everything here is a pure function of the environment mapping passed in (defaults
to ``os.environ`` at call time). Nothing is cached, so tests and dev servers can
flip variables between requests.
"""

from __future__ import annotations

import hashlib
import math
import os
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Mapping, Optional

DEFAULT_OPENAI_MODEL = "gpt-4o-mini"
DEFAULT_OPENAI_BASE_URL = "https://api.openai.com/v1"
DEFAULT_OPENAI_TIMEOUT_MS = 45000
DEFAULT_PROMPT_VERSION = "estimateCalcium_v1"
DEFAULT_ADMIN_KEY = "changeme"
DEFAULT_DEVICE_HASH_SALT = "local-dev-salt"
DEFAULT_LOCALIZATION_PACK_URL_BASE = "http://localhost:7071/locales"
DEFAULT_MAX_IMAGE_BYTES = 10_000_000

SNAPSHOT_VALUE_MAX_LENGTH = 120


@dataclass(frozen=True)
class EstimateConfig:
    """The slice of configuration one estimation call needs."""

    use_mock: bool
    api_key_present: bool
    model: str
    timeout_ms: int
    prompt_version: str
    api_key: Optional[str] = None
    base_url: Optional[str] = None
    prompt_override: Optional[str] = None

    def __repr__(self) -> str:
        # Keep the secret out of tracebacks and debug logs.
        return (
            f"EstimateConfig(use_mock={self.use_mock}, api_key_present={self.api_key_present}, "
            f"model={self.model!r}, base_url={self.base_url!r}, timeout_ms={self.timeout_ms}, "
            f"prompt_version={self.prompt_version!r}, prompt_override_present={bool(self.prompt_override)})"
        )


@dataclass(frozen=True)
class DerivedConfig:
    estimation_enabled: bool
    lockout_active: bool
    rate_limit_enabled: bool
    circuit_breaker_enabled: bool
    admin_key: str
    device_hash_salt: str
    localization_pack_url_base: str
    use_mock_estimate: bool
    openai_model: str
    openai_timeout_ms: int
    estimator_prompt_version: str
    app_env: str
    retry_invalid_response: bool
    max_image_bytes: int = DEFAULT_MAX_IMAGE_BYTES
    openai_api_key: Optional[str] = None
    openai_base_url: Optional[str] = None
    estimator_prompt: Optional[str] = None

    @property
    def is_production(self) -> bool:
        return self.app_env == "production"

    @property
    def estimation_available(self) -> bool:
        return self.estimation_enabled and not self.lockout_active

    def estimate_config(self) -> EstimateConfig:
        return EstimateConfig(
            use_mock=self.use_mock_estimate,
            api_key_present=self.openai_api_key is not None,
            api_key=self.openai_api_key,
            model=self.openai_model,
            base_url=self.openai_base_url,
            timeout_ms=self.openai_timeout_ms,
            prompt_version=self.estimator_prompt_version,
            prompt_override=self.estimator_prompt,
        )

    def summary(self) -> Dict[str, Any]:
        """Non-secret view of the derived config for the diagnostics endpoint."""
        return {
            "estimation_enabled": self.estimation_enabled,
            "lockout_active": self.lockout_active,
            "rate_limit_enabled": self.rate_limit_enabled,
            "circuit_breaker_enabled": self.circuit_breaker_enabled,
            "use_mock_estimate": self.use_mock_estimate,
            "openai_api_key_present": self.openai_api_key is not None,
            "openai_model": self.openai_model,
            "openai_base_url": self.openai_base_url,
            "openai_timeout_ms": self.openai_timeout_ms,
            "estimator_prompt_version": self.estimator_prompt_version,
            "estimator_prompt_override": self.estimator_prompt is not None,
            "localization_pack_url_base": self.localization_pack_url_base,
            "app_env": self.app_env,
            "retry_invalid_response": self.retry_invalid_response,
            "max_image_bytes": self.max_image_bytes,
            "admin_key_is_default": self.admin_key == DEFAULT_ADMIN_KEY,
            "device_hash_salt_is_default": self.device_hash_salt == DEFAULT_DEVICE_HASH_SALT,
        }


def _is_present(value: Optional[str]) -> bool:
    return isinstance(value, str) and len(value.strip()) > 0


def _stripped_or_none(value: Optional[str]) -> Optional[str]:
    return value.strip() if _is_present(value) else None


def _parse_positive_int(raw: Optional[str], default: int) -> int:
    if not raw:
        return default
    try:
        parsed = float(raw)
    except ValueError:
        return default
    if math.isfinite(parsed) and parsed > 0:
        # Fractions below one floor to zero; keep the value positive.
        return max(1, int(math.floor(parsed)))
    return default


def parse_timeout_ms(raw: Optional[str]) -> int:
    return _parse_positive_int(raw, DEFAULT_OPENAI_TIMEOUT_MS)


def resolve_config(environ: Optional[Mapping[str, str]] = None) -> DerivedConfig:
    env = os.environ if environ is None else environ
    return DerivedConfig(
        estimation_enabled=env.get("ESTIMATION_ENABLED") != "false",
        lockout_active=env.get("LOCKOUT_ACTIVE") == "true",
        rate_limit_enabled=env.get("RATE_LIMIT_ENABLED") != "false",
        circuit_breaker_enabled=env.get("CIRCUIT_BREAKER_ENABLED") != "false",
        admin_key=env.get("ADMIN_KEY", DEFAULT_ADMIN_KEY),
        device_hash_salt=env.get("DEVICE_HASH_SALT", DEFAULT_DEVICE_HASH_SALT),
        localization_pack_url_base=env.get("LOCALIZATION_PACK_URL_BASE", DEFAULT_LOCALIZATION_PACK_URL_BASE),
        use_mock_estimate=(env.get("USE_MOCK_ESTIMATE") or "false").lower() == "true",
        openai_api_key=env.get("OPENAI_API_KEY") if _is_present(env.get("OPENAI_API_KEY")) else None,
        openai_model=_stripped_or_none(env.get("OPENAI_MODEL")) or DEFAULT_OPENAI_MODEL,
        openai_base_url=_stripped_or_none(env.get("OPENAI_BASE_URL")),
        openai_timeout_ms=parse_timeout_ms(env.get("OPENAI_TIMEOUT_MS")),
        estimator_prompt_version=_stripped_or_none(env.get("ESTIMATOR_PROMPT_VERSION")) or DEFAULT_PROMPT_VERSION,
        estimator_prompt=_stripped_or_none(env.get("ESTIMATOR_PROMPT")),
        app_env=(_stripped_or_none(env.get("APP_ENV")) or "development").lower(),
        retry_invalid_response=(env.get("ESTIMATE_RETRY_INVALID_RESPONSE") or "false").lower() == "true",
        max_image_bytes=_parse_positive_int(env.get("ESTIMATE_MAX_IMAGE_BYTES"), DEFAULT_MAX_IMAGE_BYTES),
    )


def get_config() -> DerivedConfig:
    """FastAPI dependency: resolve fresh on every request."""
    return resolve_config()


# ---- Env report ----


@dataclass(frozen=True)
class EnvSpec:
    name: str
    required_when: Callable[[DerivedConfig], bool]
    is_secret: bool
    description: str
    default_value: Optional[str] = None


def _never(_cfg: DerivedConfig) -> bool:
    return False


def _api_key_required(cfg: DerivedConfig) -> bool:
    return cfg.estimation_enabled and not cfg.lockout_active and not cfg.use_mock_estimate


ENV_SPECS: List[EnvSpec] = [
    EnvSpec("ESTIMATION_ENABLED", _never, False, "Enable estimation globally (defaults to true unless set to false).", "true"),
    EnvSpec("LOCKOUT_ACTIVE", _never, False, "Force-disable estimation regardless of other settings.", "false"),
    EnvSpec("RATE_LIMIT_ENABLED", _never, False, "Enable per-request rate limiting.", "true"),
    EnvSpec("CIRCUIT_BREAKER_ENABLED", _never, False, "Enable circuit breaker for disabling estimation.", "true"),
    EnvSpec("ADMIN_KEY", _never, True, "Admin key required for privileged diagnostic endpoints.", DEFAULT_ADMIN_KEY),
    EnvSpec("DEVICE_HASH_SALT", _never, True, "Salt used for hashing device install IDs.", DEFAULT_DEVICE_HASH_SALT),
    EnvSpec("LOCALIZATION_PACK_URL_BASE", _never, False, "Base URL for localization packs.", DEFAULT_LOCALIZATION_PACK_URL_BASE),
    EnvSpec("USE_MOCK_ESTIMATE", _never, False, "Use mock estimation responses instead of OpenAI.", "false"),
    EnvSpec("OPENAI_API_KEY", _api_key_required, True, "OpenAI API key used for live estimation."),
    EnvSpec("OPENAI_MODEL", _never, False, "OpenAI model name used for estimation.", DEFAULT_OPENAI_MODEL),
    EnvSpec("OPENAI_BASE_URL", _never, False, "Optional OpenAI API base URL override."),
    EnvSpec("OPENAI_TIMEOUT_MS", _never, False, "Timeout (ms) for OpenAI requests.", str(DEFAULT_OPENAI_TIMEOUT_MS)),
    EnvSpec("ESTIMATOR_PROMPT_VERSION", _never, False, "Prompt version identifier for diagnostics.", DEFAULT_PROMPT_VERSION),
    EnvSpec("ESTIMATOR_PROMPT", _never, False, "Optional prompt override for estimation."),
    EnvSpec("APP_ENV", _never, False, "Deployment environment; 'production' hides debug fields.", "development"),
    EnvSpec(
        "ESTIMATE_RETRY_INVALID_RESPONSE",
        _never,
        False,
        "Retry the upstream call once when the model returns an invalid payload.",
        "false",
    ),
    EnvSpec(
        "ESTIMATE_MAX_IMAGE_BYTES",
        _never,
        False,
        "Upper bound on the decoded image size accepted by estimateCalcium.",
        str(DEFAULT_MAX_IMAGE_BYTES),
    ),
]


def sha256_8(value: str) -> str:
    return hashlib.sha256(value.encode("utf-8")).hexdigest()[:8]


def truncate_value(value: str, max_length: int = SNAPSHOT_VALUE_MAX_LENGTH) -> str:
    if len(value) <= max_length:
        return value
    return f"{value[:max_length]}…"


def _snapshot_entry(spec: EnvSpec, raw: Optional[str]) -> Dict[str, Any]:
    if raw is None or not _is_present(raw):
        return {"present": False}
    if spec.is_secret:
        return {"present": True, "length": len(raw), "sha256_8": sha256_8(raw)}
    return {"present": True, "value": truncate_value(raw)}


def build_env_report(cfg: DerivedConfig, environ: Optional[Mapping[str, str]] = None) -> Dict[str, Any]:
    env = os.environ if environ is None else environ
    required: List[Dict[str, Any]] = []
    optional: List[Dict[str, Any]] = []
    missing_required: List[str] = []
    snapshot: Dict[str, Dict[str, Any]] = {}

    for spec in ENV_SPECS:
        raw = env.get(spec.name)
        present = _is_present(raw)
        required_now = spec.required_when(cfg)
        status = {
            "name": spec.name,
            "present": present,
            "required": required_now,
            "default_value": spec.default_value,
            "description": spec.description,
        }
        if required_now:
            required.append(status)
            if not present:
                missing_required.append(spec.name)
        else:
            optional.append(status)
        snapshot[spec.name] = _snapshot_entry(spec, raw)

    return {
        "required": required,
        "optional": optional,
        "missing_required": missing_required,
        "snapshot": snapshot,
    }
