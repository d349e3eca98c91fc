from __future__ import annotations

from pathlib import Path

from ..config import get_verifier_config
from .base import HistoryStore
from .memory import InMemoryHistoryStore
from .sqlite import HistoryStoreConfig, SQLiteHistoryStore


def create_history_store(*, db_path: Path | None = None) -> HistoryStore:
    config = get_verifier_config()
    backend = config.history_backend
    if backend == "memory":
        return InMemoryHistoryStore()
    if backend == "sqlite":
        return SQLiteHistoryStore(HistoryStoreConfig(db_path=db_path or config.db_path))
    raise ValueError(f"unsupported history backend: {backend}")
