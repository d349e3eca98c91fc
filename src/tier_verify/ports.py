from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Protocol, Sequence, TextIO

from .history.base import EventHistory, HistoryStore
from .models import ConsumedRecord, StoredRecord, TopicPartition

__all__ = [
    "ConsumptionError",
    "ConsumptionPort",
    "TierSnapshotPort",
    "Codec",
    "StringCodec",
    "BytesCodec",
    "codec_for_name",
    "ReportingSink",
    "StreamSink",
    "LoggingSink",
    "VerificationContext",
]


class ConsumptionError(RuntimeError):
    def __init__(self, message: str, *, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class ConsumptionPort(Protocol):
    def consume(
        self,
        topic_partition: TopicPartition,
        count: int,
        start_offset: int,
    ) -> Sequence[ConsumedRecord]:
        """
        Block until ``count`` records starting at ``start_offset`` are delivered.

        Records come back in strictly increasing offset order. Failures are
        raised, never returned.
        """
        ...


class TierSnapshotPort(Protocol):
    def records_for(self, topic_partition: TopicPartition) -> Sequence[StoredRecord]:
        """All records resident in the second tier, in no particular order."""
        ...


class Codec(Protocol):
    def decode(self, data: bytes | None) -> object:
        ...


class StringCodec:
    def __init__(self, encoding: str = "utf-8") -> None:
        self._encoding = encoding

    def decode(self, data: bytes | None) -> str | None:
        if data is None:
            return None
        return data.decode(self._encoding, errors="replace")


class BytesCodec:
    def decode(self, data: bytes | None) -> bytes | None:
        return data


def codec_for_name(name: str) -> Codec:
    key = name.strip().lower()
    if key in ("string", ""):
        return StringCodec()
    if key == "bytes":
        return BytesCodec()
    raise ValueError(f"unsupported codec: {name}")


class ReportingSink(Protocol):
    def write(self, text: str) -> None:
        ...


class StreamSink:
    def __init__(self, stream: TextIO) -> None:
        self._stream = stream

    def write(self, text: str) -> None:
        self._stream.write(text)
        self._stream.flush()


class LoggingSink:
    def __init__(self, logger: logging.Logger | None = None) -> None:
        self._logger = logger or logging.getLogger("tier_verify")

    def write(self, text: str) -> None:
        for line in text.splitlines():
            if line.strip():
                self._logger.info(line)


@dataclass(frozen=True)
class VerificationContext:
    consumption: ConsumptionPort
    tier_snapshot: TierSnapshotPort
    history_store: HistoryStore
    codec: Codec
    sink: ReportingSink

    def history_for(self, broker_id: int) -> EventHistory:
        return self.history_store.history(broker_id)
