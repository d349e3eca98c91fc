from __future__ import annotations

from threading import Lock

from ..models import Event, InteractionType, TopicPartition
from .base import BrokerHistory, EventHistory


class InMemoryHistoryStore:
    def __init__(self) -> None:
        self._lock = Lock()
        self._events: list[Event] = []

    def append(
        self,
        *,
        broker_id: int,
        event_type: InteractionType,
        topic_partition: TopicPartition,
    ) -> Event:
        with self._lock:
            event = Event(
                event_type=InteractionType(event_type),
                topic_partition=topic_partition,
                broker_id=broker_id,
                sequence=len(self._events),
            )
            self._events.append(event)
        return event

    def history(self, broker_id: int) -> EventHistory:
        return BrokerHistory(self, broker_id)

    def length(self) -> int:
        with self._lock:
            return len(self._events)

    def close(self) -> None:
        return None

    def latest(
        self,
        broker_id: int,
        event_type: InteractionType,
        topic_partition: TopicPartition,
    ) -> Event | None:
        with self._lock:
            for event in reversed(self._events):
                if _matches(event, broker_id, event_type, topic_partition):
                    return event
        return None

    def query(
        self,
        broker_id: int,
        event_type: InteractionType,
        topic_partition: TopicPartition,
        after_sequence: int | None,
    ) -> list[Event]:
        with self._lock:
            return [
                event
                for event in self._events
                if _matches(event, broker_id, event_type, topic_partition)
                and (after_sequence is None or event.sequence > after_sequence)
            ]


def _matches(
    event: Event,
    broker_id: int,
    event_type: InteractionType,
    topic_partition: TopicPartition,
) -> bool:
    return (
        event.broker_id == broker_id
        and event.event_type == event_type
        and event.topic_partition == topic_partition
    )
