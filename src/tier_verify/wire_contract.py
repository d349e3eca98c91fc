from __future__ import annotations

import base64
import binascii
from typing import Any, Mapping, TypedDict

from .consume_action import ConsumeAction
from .fetch_spec import FetchSpecError, build_remote_fetch_spec, parse_fetch_count
from .models import ConsumedRecord, Event, InteractionType, StoredRecord, TopicPartition

INTERFACE_VERSION = 1


class WireEvent(TypedDict):
    sequence: int
    broker_id: int
    event_type: str
    topic: str
    partition: int


class WireRecord(TypedDict):
    offset: int
    key: str | None
    value: str | None


class WireEventAppend(TypedDict):
    broker_id: int
    event_type: InteractionType
    topic_partition: TopicPartition


def validate_interface_version(interface_version: int) -> None:
    if interface_version != INTERFACE_VERSION:
        raise ValueError(
            f"unsupported interface_version: {interface_version} (expected {INTERFACE_VERSION})"
        )


def event_to_wire(event: Event) -> WireEvent:
    return {
        "sequence": event.sequence,
        "broker_id": event.broker_id,
        "event_type": event.event_type.value,
        "topic": event.topic_partition.topic,
        "partition": event.topic_partition.partition,
    }


def validate_event_append(body: object) -> WireEventAppend:
    if not isinstance(body, Mapping):
        raise ValueError("event must be a mapping")
    validate_interface_version(_require_int(body, "interface_version"))
    broker_id = _require_int(body, "broker_id")
    if broker_id < 0:
        raise ValueError("broker_id must be >= 0")
    return {
        "broker_id": broker_id,
        "event_type": validate_interaction_type(_require_str(body, "event_type")),
        "topic_partition": validate_topic_partition(body),
    }


def validate_interaction_type(value: str) -> InteractionType:
    try:
        return InteractionType(value)
    except ValueError as exc:
        raise ValueError(f"unknown event_type: {value}") from exc


def validate_topic_partition(mapping: Mapping[str, object]) -> TopicPartition:
    topic = _require_non_empty_str(mapping, "topic")
    partition = _require_int(mapping, "partition")
    if partition < 0:
        raise ValueError("partition must be >= 0")
    return TopicPartition(topic, partition)


def record_to_wire(record: StoredRecord | ConsumedRecord) -> WireRecord:
    return {
        "offset": record.offset,
        "key": _b64encode(record.key),
        "value": _b64encode(record.value),
    }


def validate_stored_record(raw: object) -> StoredRecord:
    offset, key, value = _validate_record(raw)
    return StoredRecord(offset=offset, key=key, value=value)


def validate_consumed_record(raw: object) -> ConsumedRecord:
    offset, key, value = _validate_record(raw)
    return ConsumedRecord(offset=offset, key=key, value=value)


def validate_consumed_records(raw: object) -> list[ConsumedRecord]:
    if not isinstance(raw, list):
        raise ValueError("records must be a list")
    records = [validate_consumed_record(item) for item in raw]
    prev_offset = None
    for record in records:
        if prev_offset is not None and record.offset <= prev_offset:
            raise ValueError("consumed record offsets must be strictly increasing")
        prev_offset = record.offset
    return records


def validate_stored_records(raw: object) -> list[StoredRecord]:
    if not isinstance(raw, list):
        raise ValueError("records must be a list")
    return [validate_stored_record(item) for item in raw]


def validate_consume_request(body: object) -> ConsumeAction:
    """Build a ``ConsumeAction`` from its JSON form, failing on the first invalid field."""
    if not isinstance(body, Mapping):
        raise ValueError("consume request must be a mapping")
    validate_interface_version(_require_int(body, "interface_version"))
    topic_partition = validate_topic_partition(body)
    fetch_offset = _require_int(body, "fetch_offset")
    if fetch_offset < 0:
        raise ValueError("fetch_offset must be >= 0")
    expected_total = _require_int(body, "expected_total_count")
    expected_from_tier = _require_int(body, "expected_from_tier_count")
    if expected_total < 0 or expected_from_tier < 0:
        raise ValueError("expected counts must be >= 0")

    remote = _require_mapping(body, "remote_fetch")
    source_broker_id = _require_int(remote, "source_broker_id")
    spec_partition = topic_partition
    if "topic" in remote or "partition" in remote:
        spec_partition = validate_topic_partition(remote)
    counts = remote.get("fetch_counts", {})
    if not isinstance(counts, Mapping):
        raise ValueError("remote_fetch.fetch_counts must be a mapping")
    policies = {}
    for name, raw_count in counts.items():
        try:
            event_type = InteractionType(name)
        except ValueError as exc:
            raise FetchSpecError("INVALID_INTERACTION", f"unknown interaction type: {name}") from exc
        policies[event_type] = parse_fetch_count(raw_count)
    spec = build_remote_fetch_spec(
        source_broker_id=source_broker_id,
        topic_partition=spec_partition,
        policies=policies,
    )
    return ConsumeAction(
        topic_partition=topic_partition,
        fetch_offset=fetch_offset,
        expected_total_count=expected_total,
        expected_from_tier_count=expected_from_tier,
        remote_fetch_spec=spec,
    )


def _validate_record(raw: object) -> tuple[int, bytes | None, bytes | None]:
    if not isinstance(raw, Mapping):
        raise ValueError("record must be a mapping")
    offset = _require_int(raw, "offset")
    if offset < 0:
        raise ValueError("record offset must be >= 0")
    return offset, _b64decode(raw.get("key"), "key"), _b64decode(raw.get("value"), "value")


def _b64encode(data: bytes | None) -> str | None:
    if data is None:
        return None
    return base64.b64encode(data).decode("ascii")


def _b64decode(value: object, name: str) -> bytes | None:
    if value is None:
        return None
    if not isinstance(value, str):
        raise ValueError(f"{name} must be a base64 string or null")
    try:
        return base64.b64decode(value, validate=True)
    except (binascii.Error, ValueError) as exc:
        raise ValueError(f"{name} must be valid base64") from exc


def _require_str(mapping: Mapping[str, object], key: str) -> str:
    value = mapping.get(key)
    if not isinstance(value, str):
        raise ValueError(f"{key} must be a string")
    return value


def _require_non_empty_str(mapping: Mapping[str, object], key: str) -> str:
    value = _require_str(mapping, key)
    if value.strip() == "":
        raise ValueError(f"{key} must be a non-empty string")
    return value


def _require_int(mapping: Mapping[str, object], key: str) -> int:
    value = mapping.get(key)
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValueError(f"{key} must be an int")
    return value


def _require_mapping(mapping: Mapping[str, object], key: str) -> Mapping[str, Any]:
    value = mapping.get(key)
    if not isinstance(value, Mapping):
        raise ValueError(f"{key} must be a mapping")
    return value
