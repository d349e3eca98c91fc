from __future__ import annotations

import json
import logging
from typing import Any

_LOGGER = logging.getLogger("tier_verify")


def configure_logging(level: int = logging.INFO) -> None:
    if _LOGGER.handlers:
        return
    handler = logging.StreamHandler()
    handler.setFormatter(logging.Formatter("%(message)s"))
    _LOGGER.addHandler(handler)
    _LOGGER.setLevel(level)


def log_json(level: int, message: str, **fields: Any) -> None:
    payload = {"message": message, **fields}
    _LOGGER.log(level, json.dumps(payload, ensure_ascii=True, default=str))
