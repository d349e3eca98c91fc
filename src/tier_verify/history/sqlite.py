from __future__ import annotations

import sqlite3
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from threading import Lock
from typing import Any

from ..models import Event, InteractionType, TopicPartition
from .base import BrokerHistory, EventHistory


@dataclass(frozen=True)
class HistoryStoreConfig:
    db_path: Path


class SQLiteHistoryStore:
    def __init__(self, config: HistoryStoreConfig) -> None:
        self._db_path = config.db_path
        self._lock = Lock()
        self._conn = self._connect()
        self._init_schema()

    def _connect(self) -> sqlite3.Connection:
        self._db_path.parent.mkdir(parents=True, exist_ok=True)
        conn = sqlite3.connect(self._db_path, check_same_thread=False)
        conn.execute("PRAGMA journal_mode=WAL;")
        conn.execute("PRAGMA synchronous=NORMAL;")
        return conn

    def close(self) -> None:
        self._conn.close()

    def _init_schema(self) -> None:
        with self._conn:
            self._conn.execute(
                """
                CREATE TABLE IF NOT EXISTS events (
                    seq INTEGER PRIMARY KEY,
                    broker_id INTEGER NOT NULL,
                    event_type TEXT NOT NULL,
                    topic TEXT NOT NULL,
                    partition INTEGER NOT NULL,
                    created_at_utc TEXT NOT NULL
                )
                """
            )
            self._conn.execute(
                """
                CREATE INDEX IF NOT EXISTS events_scope
                ON events(broker_id, event_type, topic, partition, seq)
                """
            )

    def append(
        self,
        *,
        broker_id: int,
        event_type: InteractionType,
        topic_partition: TopicPartition,
    ) -> Event:
        event_type = InteractionType(event_type)
        created_at = datetime.now(timezone.utc).isoformat()
        with self._lock:
            with self._conn:
                self._conn.execute(
                    """
                    INSERT INTO events (seq, broker_id, event_type, topic, partition, created_at_utc)
                    VALUES ((SELECT COALESCE(MAX(seq), -1) + 1 FROM events), ?, ?, ?, ?, ?)
                    """,
                    (
                        broker_id,
                        event_type.value,
                        topic_partition.topic,
                        topic_partition.partition,
                        created_at,
                    ),
                )
                cur = self._conn.execute("SELECT seq FROM events WHERE rowid = last_insert_rowid()")
                row = cur.fetchone()
                seq = int(row[0]) if row else 0
        return Event(
            event_type=event_type,
            topic_partition=topic_partition,
            broker_id=broker_id,
            sequence=seq,
        )

    def history(self, broker_id: int) -> EventHistory:
        return BrokerHistory(self, broker_id)

    def length(self) -> int:
        with self._lock:
            cur = self._conn.execute("SELECT COUNT(*) FROM events")
            row = cur.fetchone()
        return int(row[0]) if row else 0

    def latest(
        self,
        broker_id: int,
        event_type: InteractionType,
        topic_partition: TopicPartition,
    ) -> Event | None:
        with self._lock:
            cur = self._conn.execute(
                """
                SELECT seq, broker_id, event_type, topic, partition
                FROM events
                WHERE broker_id = ? AND event_type = ? AND topic = ? AND partition = ?
                ORDER BY seq DESC
                LIMIT 1
                """,
                (broker_id, InteractionType(event_type).value, topic_partition.topic, topic_partition.partition),
            )
            row = cur.fetchone()
        if row is None:
            return None
        return _row_to_event(row)

    def query(
        self,
        broker_id: int,
        event_type: InteractionType,
        topic_partition: TopicPartition,
        after_sequence: int | None,
    ) -> list[Event]:
        query = (
            "SELECT seq, broker_id, event_type, topic, partition FROM events"
            " WHERE broker_id = ? AND event_type = ? AND topic = ? AND partition = ?"
        )
        params: list[Any] = [
            broker_id,
            InteractionType(event_type).value,
            topic_partition.topic,
            topic_partition.partition,
        ]
        if after_sequence is not None:
            query += " AND seq > ?"
            params.append(after_sequence)
        query += " ORDER BY seq ASC"
        with self._lock:
            rows = self._conn.execute(query, params).fetchall()
        return [_row_to_event(row) for row in rows]


def _row_to_event(row: tuple[Any, ...]) -> Event:
    return Event(
        sequence=int(row[0]),
        broker_id=int(row[1]),
        event_type=InteractionType(str(row[2])),
        topic_partition=TopicPartition(str(row[3]), int(row[4])),
    )
