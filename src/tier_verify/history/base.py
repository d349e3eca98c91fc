from __future__ import annotations

from typing import Protocol

from ..models import Event, InteractionType, TopicPartition


class EventHistory(Protocol):
    """Read access to the interactions one broker had with the second tier."""

    @property
    def broker_id(self) -> int:
        ...

    def latest_event(
        self,
        event_type: InteractionType,
        topic_partition: TopicPartition,
    ) -> Event | None:
        ...

    def events_after(
        self,
        event_type: InteractionType,
        topic_partition: TopicPartition,
        reference: Event | None = None,
    ) -> list[Event]:
        """
        Events of ``event_type`` for ``topic_partition`` strictly after ``reference``.

        A ``None`` reference returns every known event. The result is ordered by
        sequence and is a copy; later appends never show up in it.
        """
        ...


class HistoryStore(Protocol):
    def append(
        self,
        *,
        broker_id: int,
        event_type: InteractionType,
        topic_partition: TopicPartition,
    ) -> Event:
        ...

    def history(self, broker_id: int) -> EventHistory:
        ...

    def length(self) -> int:
        ...

    def close(self) -> None:
        ...


class BrokerHistory:
    """``EventHistory`` view of a store, bound to one broker."""

    def __init__(self, store: _QueryableStore, broker_id: int) -> None:
        self._store = store
        self._broker_id = broker_id

    @property
    def broker_id(self) -> int:
        return self._broker_id

    def latest_event(
        self,
        event_type: InteractionType,
        topic_partition: TopicPartition,
    ) -> Event | None:
        return self._store.latest(self._broker_id, event_type, topic_partition)

    def events_after(
        self,
        event_type: InteractionType,
        topic_partition: TopicPartition,
        reference: Event | None = None,
    ) -> list[Event]:
        after_sequence = reference.sequence if reference is not None else None
        return self._store.query(self._broker_id, event_type, topic_partition, after_sequence)


class _QueryableStore(Protocol):
    def latest(
        self,
        broker_id: int,
        event_type: InteractionType,
        topic_partition: TopicPartition,
    ) -> Event | None:
        ...

    def query(
        self,
        broker_id: int,
        event_type: InteractionType,
        topic_partition: TopicPartition,
        after_sequence: int | None,
    ) -> list[Event]:
        ...
