from __future__ import annotations

import hashlib
import json
from typing import Any, Mapping


def canonical_bytes(value: Any) -> bytes:
    try:
        text = json.dumps(
            value,
            sort_keys=True,
            separators=(",", ":"),
            ensure_ascii=True,
            allow_nan=False,
        )
    except (TypeError, ValueError) as exc:
        raise ValueError(f"non-canonical report: {exc}") from exc
    return text.encode("utf-8")


def report_digest(report: Mapping[str, Any]) -> str:
    body = dict(report)
    body.pop("digest", None)
    digest_bytes = hashlib.sha256(canonical_bytes(body)).digest()
    return f"sha256:{digest_bytes.hex()}"
