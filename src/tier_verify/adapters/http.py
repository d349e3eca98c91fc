from __future__ import annotations

from typing import Any, Sequence

import httpx

from ..models import ConsumedRecord, StoredRecord, TopicPartition
from ..ports import ConsumptionError
from ..wire_contract import (
    INTERFACE_VERSION,
    validate_consumed_records,
    validate_stored_records,
)


class HttpConsumption:
    """Consumes through the harness consumer endpoint: ``POST {base}/consume``."""

    def __init__(
        self,
        base_url: str,
        *,
        timeout_s: float = 5.0,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        self._base_url = base_url.rstrip("/")
        self._timeout_s = timeout_s
        self._transport = transport

    def consume(
        self,
        topic_partition: TopicPartition,
        count: int,
        start_offset: int,
    ) -> Sequence[ConsumedRecord]:
        payload: dict[str, Any] = {
            "interface_version": INTERFACE_VERSION,
            "topic": topic_partition.topic,
            "partition": topic_partition.partition,
            "count": count,
            "start_offset": start_offset,
        }
        data = _request(
            "POST",
            f"{self._base_url}/consume",
            timeout_s=self._timeout_s,
            transport=self._transport,
            json=payload,
        )
        try:
            return validate_consumed_records(data.get("records"))
        except ValueError as exc:
            raise ConsumptionError(f"consume response invalid: {exc}") from exc


class HttpTierSnapshot:
    """Reads ``GET {base}/partitions/{topic}/{partition}/records``."""

    def __init__(
        self,
        base_url: str,
        *,
        timeout_s: float = 5.0,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        self._base_url = base_url.rstrip("/")
        self._timeout_s = timeout_s
        self._transport = transport

    def records_for(self, topic_partition: TopicPartition) -> Sequence[StoredRecord]:
        url = (
            f"{self._base_url}/partitions/{topic_partition.topic}"
            f"/{topic_partition.partition}/records"
        )
        data = _request("GET", url, timeout_s=self._timeout_s, transport=self._transport)
        try:
            return validate_stored_records(data.get("records"))
        except ValueError as exc:
            raise ConsumptionError(f"tier snapshot response invalid: {exc}") from exc


def _request(
    method: str,
    url: str,
    *,
    timeout_s: float,
    transport: httpx.BaseTransport | None,
    json: dict[str, Any] | None = None,
) -> dict[str, Any]:
    try:
        with httpx.Client(timeout=timeout_s, transport=transport) as client:
            resp = client.request(method, url, json=json)
            if resp.status_code >= 400:
                _raise_http(resp, f"{method} {url} failed")
            data = resp.json()
    except httpx.HTTPError as exc:
        raise ConsumptionError(f"{method} {url} failed: {exc}") from exc
    except ValueError as exc:
        raise ConsumptionError(f"{method} {url} returned invalid json") from exc
    if not isinstance(data, dict):
        raise ConsumptionError(f"{method} {url} returned a non-object body")
    return data


def _raise_http(resp: httpx.Response, where: str) -> None:
    detail = None
    try:
        body = resp.json()
        if isinstance(body, dict):
            detail = body.get("detail") or body.get("error")
    except ValueError:
        pass
    raise ConsumptionError(
        f"{where}: {detail or resp.text[:500]}",
        status_code=resp.status_code,
    )
