"""
Runtime configuration for tier-verify.

Read from the environment once and immutable afterwards. Scenario files
(JSON descriptions of a consume verification) are loaded here and
validated by ``wire_contract``.
"""
from __future__ import annotations

import json
import os
from dataclasses import dataclass
from functools import lru_cache
from pathlib import Path
from typing import Literal
from urllib.parse import urlparse

from .consume_action import ConsumeAction
from .wire_contract import validate_consume_request


__all__ = [
    "VerifierConfig",
    "load_verifier_config",
    "get_verifier_config",
    "reset_config_cache",
    "load_scenario",
]

DEFAULT_DB_PATH = Path("data") / "history.sqlite"


@dataclass(frozen=True)
class VerifierConfig:
    history_backend: Literal["sqlite", "memory"]
    db_path: Path
    consume_url: str | None
    tier_url: str | None
    http_timeout_ms: int
    codec: Literal["string", "bytes"]


def load_verifier_config() -> VerifierConfig:
    backend = os.getenv("TIER_VERIFY_HISTORY", "sqlite").strip().lower() or "sqlite"
    if backend not in ("sqlite", "memory"):
        raise ValueError(f"unsupported history backend: {backend}")

    db_raw = os.getenv("TIER_VERIFY_DB", "").strip()
    db_path = Path(db_raw) if db_raw else DEFAULT_DB_PATH

    timeout_ms = _env_int("TIER_VERIFY_HTTP_TIMEOUT_MS")
    if timeout_ms is None:
        timeout_ms = 5000
    if timeout_ms < 100:
        raise ValueError("TIER_VERIFY_HTTP_TIMEOUT_MS must be int >= 100")

    codec = os.getenv("TIER_VERIFY_CODEC", "string").strip().lower() or "string"
    if codec not in ("string", "bytes"):
        raise ValueError("TIER_VERIFY_CODEC must be string or bytes")

    return VerifierConfig(
        history_backend=backend,
        db_path=db_path,
        consume_url=_env_url("TIER_VERIFY_CONSUME_URL"),
        tier_url=_env_url("TIER_VERIFY_TIER_URL"),
        http_timeout_ms=timeout_ms,
        codec=codec,
    )


def _env_int(name: str) -> int | None:
    raw_val = os.getenv(name)
    if raw_val is None or not raw_val.strip():
        return None
    try:
        return int(raw_val.strip())
    except ValueError as exc:
        raise ValueError(f"{name} must be an int") from exc


def _env_url(name: str) -> str | None:
    raw_val = os.getenv(name, "").strip()
    if not raw_val:
        return None
    parsed = urlparse(raw_val)
    if parsed.scheme not in ("http", "https"):
        raise ValueError(f"{name} must be http(s)")
    return raw_val.rstrip("/")


@lru_cache(maxsize=1)
def get_verifier_config() -> VerifierConfig:
    return load_verifier_config()


def reset_config_cache() -> None:
    """Reset config cache. Only for testing."""
    get_verifier_config.cache_clear()


def load_scenario(path: Path) -> ConsumeAction:
    """
    Load a consume verification scenario from a JSON file.

    Raises:
        FileNotFoundError: If the file doesn't exist.
        ValueError: If the scenario is invalid (``FetchSpecError`` for bad
            fetch counts).
    """
    if not path.exists():
        raise FileNotFoundError(f"Scenario not found: {path}")
    with open(path, "r", encoding="utf-8") as f:
        raw = json.load(f)
    return validate_consume_request(raw)
