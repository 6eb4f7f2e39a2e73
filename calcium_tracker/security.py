# -*- coding: utf-8 -*-
"""Device-id hashing + admin key checks."""

from __future__ import annotations

import hashlib
import hmac
from typing import Optional

from .config import DerivedConfig


def hash_device_install_id(device_install_id: str, salt: str) -> str:
    return hashlib.sha256(f"{salt}:{device_install_id}".encode("utf-8")).hexdigest()


def admin_key_matches(provided: Optional[str], cfg: DerivedConfig) -> bool:
    if provided is None:
        return False
    return hmac.compare_digest(provided.encode("utf-8"), cfg.admin_key.encode("utf-8"))
