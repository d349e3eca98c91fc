from __future__ import annotations

from pathlib import Path

import pytest
from fastapi.testclient import TestClient
from port_stubs import ConsumptionStub, RaisingConsumption, TierStub, consumed_range, stored_range

from tier_verify.app import create_app
from tier_verify.config import reset_config_cache
from tier_verify.models import InteractionType
from tier_verify.ports import ConsumptionError
from tier_verify.wire_contract import INTERFACE_VERSION


@pytest.fixture(autouse=True)
def _fresh_config(monkeypatch):
    for name in ("TIER_VERIFY_HISTORY", "TIER_VERIFY_CONSUME_URL", "TIER_VERIFY_TIER_URL", "TIER_VERIFY_CODEC"):
        monkeypatch.delenv(name, raising=False)
    reset_config_cache()
    yield
    reset_config_cache()


def _event(event_type: str = "FETCH_SEGMENT", broker_id: int = 0) -> dict:
    return {
        "interface_version": INTERFACE_VERSION,
        "broker_id": broker_id,
        "event_type": event_type,
        "topic": "topicA",
        "partition": 0,
    }


def _consume_body(**counts) -> dict:
    return {
        "interface_version": INTERFACE_VERSION,
        "topic": "topicA",
        "partition": 0,
        "fetch_offset": 100,
        "expected_total_count": 20,
        "expected_from_tier_count": 20,
        "remote_fetch": {"source_broker_id": 0, "fetch_counts": counts},
    }


def test_healthz_ok(tmp_path: Path) -> None:
    app = create_app(tmp_path / "history.sqlite")
    with TestClient(app) as client:
        resp = client.get("/healthz")
        assert resp.status_code == 200
        assert resp.json() == {"ok": True}


def test_record_and_query_history(tmp_path: Path) -> None:
    app = create_app(tmp_path / "history.sqlite")
    with TestClient(app) as client:
        first = client.post("/history/events", json=_event()).json()
        second = client.post("/history/events", json=_event()).json()
        client.post("/history/events", json=_event(broker_id=1))
        assert second["sequence"] > first["sequence"]

        latest = client.get(
            "/history/0/latest",
            params={"event_type": "FETCH_SEGMENT", "topic": "topicA", "partition": 0},
        ).json()
        assert latest["event"] == second

        after = client.get(
            "/history/0/events",
            params={
                "event_type": "FETCH_SEGMENT",
                "topic": "topicA",
                "partition": 0,
                "after_sequence": first["sequence"],
            },
        ).json()
        assert after["events"] == [second]

        status = client.get("/status").json()
        assert status["interface_version"] == INTERFACE_VERSION
        assert status["history_length"] == 3


def test_latest_is_null_without_events(tmp_path: Path) -> None:
    app = create_app(tmp_path / "history.sqlite")
    with TestClient(app) as client:
        resp = client.get(
            "/history/0/latest",
            params={"event_type": "FETCH_TIME_INDEX", "topic": "topicA", "partition": 0},
        )
        assert resp.status_code == 200
        assert resp.json() == {"event": None}


def test_history_rejects_unknown_event_type(tmp_path: Path) -> None:
    app = create_app(tmp_path / "history.sqlite")
    with TestClient(app) as client:
        assert client.post("/history/events", json=_event("COPY_SEGMENT")).status_code == 400
        resp = client.get(
            "/history/0/events",
            params={"event_type": "COPY_SEGMENT", "topic": "topicA", "partition": 0},
        )
        assert resp.status_code == 400


def test_verify_consume_scopes_to_the_step(tmp_path: Path) -> None:
    app = create_app(tmp_path / "history.sqlite")
    with TestClient(app) as client:
        client.post("/history/events", json=_event())
        client.post("/history/events", json=_event())
        app.state.consumption = ConsumptionStub(
            consumed_range(100, 120),
            history_store=app.state.history,
            fetches={InteractionType.FETCH_SEGMENT: 1},
        )
        app.state.tier_snapshot = TierStub(stored_range(100, 120))
        resp = client.post(
            "/verify/consume",
            json=_consume_body(FETCH_SEGMENT={"count": 1, "op": "EQUALS_TO"}),
            headers={"x-request-id": "req-verify-1"},
        )
        assert resp.status_code == 200
        assert resp.headers["x-request-id"] == "req-verify-1"
        body = resp.json()
        assert body["passed"] is True
        assert body["digest"].startswith("sha256:")
        assert len(body["outcomes"]) == 5


def test_verify_consume_reports_failures(tmp_path: Path) -> None:
    app = create_app(tmp_path / "history.sqlite")
    with TestClient(app) as client:
        app.state.consumption = ConsumptionStub(consumed_range(100, 120))
        app.state.tier_snapshot = TierStub(stored_range(100, 130))
        resp = client.post("/verify/consume", json=_consume_body(FETCH_SEGMENT=1))
        assert resp.status_code == 200
        body = resp.json()
        assert body["passed"] is False
        assert [o["failure"] for o in body["outcomes"] if not o["passed"]] == [
            "too-many-in-tier",
            "interaction-count",
        ]


def test_verify_consume_rejects_invalid_fetch_count(tmp_path: Path) -> None:
    app = create_app(tmp_path / "history.sqlite")
    with TestClient(app) as client:
        app.state.consumption = ConsumptionStub([])
        app.state.tier_snapshot = TierStub([])
        resp = client.post("/verify/consume", json=_consume_body(FETCH_SEGMENT=-4))
        assert resp.status_code == 400
        assert resp.json()["detail"]["code"] == "INVALID_FETCH_COUNT"


def test_verify_consume_requires_configured_ports(tmp_path: Path) -> None:
    app = create_app(tmp_path / "history.sqlite")
    with TestClient(app) as client:
        resp = client.post("/verify/consume", json=_consume_body())
        assert resp.status_code == 400
        assert "TIER_VERIFY_CONSUME_URL" in resp.json()["detail"]


def test_verify_consume_maps_consumption_error(tmp_path: Path) -> None:
    app = create_app(tmp_path / "history.sqlite")
    with TestClient(app) as client:
        app.state.consumption = RaisingConsumption(ConsumptionError("broker down"))
        app.state.tier_snapshot = TierStub([])
        resp = client.post("/verify/consume", json=_consume_body())
        assert resp.status_code == 502


def test_memory_history_backend(tmp_path: Path, monkeypatch) -> None:
    monkeypatch.setenv("TIER_VERIFY_HISTORY", "memory")
    reset_config_cache()
    app = create_app(tmp_path / "unused.sqlite")
    with TestClient(app) as client:
        client.post("/history/events", json=_event())
        assert client.get("/status").json()["history_backend"] == "memory"
    assert not (tmp_path / "unused.sqlite").exists()
