"""
Correspondence between second-tier records and consumed records.

The records a consumer received from ``fetch_offset`` onwards must be, in
order and key/value content, exactly the records the second tier holds
from the first offset at or after ``fetch_offset``.
"""
from __future__ import annotations

from typing import Sequence

from .models import ConsumedRecord, StoredRecord, TopicPartition
from .outcome import FailureKind, VerificationOutcome
from .ports import Codec

__all__ = ["CORRESPONDENCE_CHECK", "sort_by_offset", "check_correspondence"]

CORRESPONDENCE_CHECK = "correspondence"


def sort_by_offset(records: Sequence[StoredRecord]) -> list[StoredRecord]:
    # Tier snapshots come back in no particular order.
    return sorted(records, key=lambda record: record.offset)


def check_correspondence(
    stored_records: Sequence[StoredRecord],
    consumed_records: Sequence[ConsumedRecord],
    *,
    topic_partition: TopicPartition,
    fetch_offset: int,
    expected_from_tier_count: int,
    codec: Codec,
) -> VerificationOutcome:
    tier_records = sort_by_offset(stored_records)
    context = {"topic_partition": str(topic_partition), "fetch_offset": fetch_offset}

    first_index = next(
        (i for i, record in enumerate(tier_records) if record.offset >= fetch_offset),
        None,
    )
    if first_index is None:
        if expected_from_tier_count > 0:
            return VerificationOutcome.failed(
                CORRESPONDENCE_CHECK,
                FailureKind.TIER_CONTENT_MISSING,
                f"Could not find any record with offset >= {fetch_offset} "
                f"from tier storage for {topic_partition}.",
                expected=expected_from_tier_count,
                observed=0,
                **context,
            )
        # Nothing expected from the tier and nothing there.
        return VerificationOutcome.ok(CORRESPONDENCE_CHECK, compared=0, **context)

    available = len(tier_records) - first_index
    if expected_from_tier_count > available:
        return VerificationOutcome.failed(
            CORRESPONDENCE_CHECK,
            FailureKind.TOO_FEW_IN_TIER,
            f"Not enough records found in tiered storage from offset {fetch_offset} "
            f"for {topic_partition}. Expected: {expected_from_tier_count}, Was: {available}",
            expected=expected_from_tier_count,
            observed=available,
            **context,
        )
    if expected_from_tier_count < available:
        return VerificationOutcome.failed(
            CORRESPONDENCE_CHECK,
            FailureKind.TOO_MANY_IN_TIER,
            f"Too many records found in tiered storage from offset {fetch_offset} "
            f"for {topic_partition}. Expected: {expected_from_tier_count}, Was: {available}",
            expected=expected_from_tier_count,
            observed=available,
            **context,
        )

    tier_slice = tier_records[first_index:first_index + expected_from_tier_count]
    read_slice = list(consumed_records[:expected_from_tier_count])
    if len(read_slice) < len(tier_slice):
        return VerificationOutcome.failed(
            CORRESPONDENCE_CHECK,
            FailureKind.CONSUMED_TOO_FEW,
            f"Consumed {len(read_slice)} records from offset {fetch_offset} for "
            f"{topic_partition}, expected {len(tier_slice)} from tiered storage",
            expected=len(tier_slice),
            observed=len(read_slice),
            **context,
        )

    for position, (stored, consumed) in enumerate(zip(tier_slice, read_slice)):
        stored_kv = (codec.decode(stored.key), codec.decode(stored.value))
        consumed_kv = (codec.decode(consumed.key), codec.decode(consumed.value))
        if stored_kv != consumed_kv:
            return VerificationOutcome.failed(
                CORRESPONDENCE_CHECK,
                FailureKind.CONTENT_MISMATCH,
                f"Record at position {position} does not match for {topic_partition}: "
                f"tier offset {stored.offset} has key={stored_kv[0]!r} value={stored_kv[1]!r}, "
                f"consumed offset {consumed.offset} has key={consumed_kv[0]!r} value={consumed_kv[1]!r}",
                expected={"key": stored_kv[0], "value": stored_kv[1]},
                observed={"key": consumed_kv[0], "value": consumed_kv[1]},
                position=position,
                tier_offset=stored.offset,
                consumed_offset=consumed.offset,
                **context,
            )

    return VerificationOutcome.ok(CORRESPONDENCE_CHECK, compared=len(tier_slice), **context)
