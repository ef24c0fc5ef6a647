"""Utilities to inspect and safely log runtime configuration.

We avoid leaking potentially sensitive values by masking any key that matches
secret-ish patterns (case-insensitive): token, key, secret, pass, pwd, hash,
and by stripping credentials embedded in connection URIs.
"""
from __future__ import annotations

from typing import Any, Dict
import re

SENSITIVE_PATTERN = re.compile(r"(token|secret|pass|pwd|key|hash)", re.IGNORECASE)
_URI_CREDENTIALS = re.compile(r"(?P<scheme>[a-z][a-z0-9+.\-]*://)[^/@\s]+@", re.IGNORECASE)


def is_sensitive(key: str) -> bool:
    return bool(SENSITIVE_PATTERN.search(key))


def mask_uri(value: str) -> str:
    """``mongodb://user:pw@host`` -> ``mongodb://***@host``."""
    return _URI_CREDENTIALS.sub(r"\g<scheme>***@", value)


def mask_value(key: str, value: Any) -> Any:
    if value is None:
        return value
    if is_sensitive(key):
        if isinstance(value, str) and len(value) > 6:
            return value[:3] + "***" + value[-2:]
        return "***"  # generic mask
    if isinstance(value, str):
        return mask_uri(value)
    return value


def safe_snapshot(settings: Dict[str, Any]) -> Dict[str, Any]:
    """Build a masked, key-sorted copy of the effective settings."""
    masked = {k: mask_value(k, v) for k, v in settings.items()}
    return dict(sorted(masked.items()))


def format_snapshot(snapshot: Dict[str, Any]) -> str:
    width = max((len(k) for k in snapshot), default=0)
    lines = [f"{k.ljust(width)} = {snapshot[k]}" for k in sorted(snapshot)]
    return "\n".join(lines)


def log_safe(logger, settings: Dict[str, Any]) -> None:
    logger.info("runtime_config", **safe_snapshot(settings))


__all__ = [
    "mask_uri",
    "safe_snapshot",
    "format_snapshot",
    "log_safe",
]
