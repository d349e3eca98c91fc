from __future__ import annotations

from dataclasses import dataclass
from enum import Enum


class InteractionType(str, Enum):
    FETCH_SEGMENT = "FETCH_SEGMENT"
    FETCH_OFFSET_INDEX = "FETCH_OFFSET_INDEX"
    FETCH_TIME_INDEX = "FETCH_TIME_INDEX"
    FETCH_TRANSACTION_INDEX = "FETCH_TRANSACTION_INDEX"


TRACKED_INTERACTIONS: tuple[InteractionType, ...] = (
    InteractionType.FETCH_SEGMENT,
    InteractionType.FETCH_OFFSET_INDEX,
    InteractionType.FETCH_TIME_INDEX,
    InteractionType.FETCH_TRANSACTION_INDEX,
)


@dataclass(frozen=True)
class TopicPartition:
    topic: str
    partition: int

    def __post_init__(self) -> None:
        if not isinstance(self.topic, str) or self.topic.strip() == "":
            raise ValueError("topic must be a non-empty string")
        if not isinstance(self.partition, int) or self.partition < 0:
            raise ValueError("partition must be an int >= 0")

    def __str__(self) -> str:
        return f"{self.topic}-{self.partition}"


@dataclass(frozen=True)
class Event:
    """One recorded interaction between a broker and the second tier."""

    event_type: InteractionType
    topic_partition: TopicPartition
    broker_id: int
    sequence: int

    def is_after(self, other: Event) -> bool:
        return self.sequence > other.sequence


@dataclass(frozen=True)
class StoredRecord:
    offset: int
    key: bytes | None
    value: bytes | None


@dataclass(frozen=True)
class ConsumedRecord:
    offset: int
    key: bytes | None
    value: bytes | None
