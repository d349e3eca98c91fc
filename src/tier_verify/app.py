from __future__ import annotations

import argparse
import logging
import sys
import time
import uuid
from contextlib import asynccontextmanager
from importlib.metadata import PackageNotFoundError, version
from pathlib import Path
from typing import Any

import uvicorn
from fastapi import Body, FastAPI, HTTPException, Query, Request
from fastapi import Path as PathParam

from .adapters.http import HttpConsumption, HttpTierSnapshot
from .config import VerifierConfig, get_verifier_config, load_scenario
from .consume_action import ConsumeAction
from .fetch_spec import FetchSpecError
from .history.base import HistoryStore
from .history.factory import create_history_store
from .models import Event, InteractionType, TopicPartition
from .observability import configure_logging, log_json
from .outcome import VerificationReport
from .ports import (
    ConsumptionError,
    ConsumptionPort,
    LoggingSink,
    ReportingSink,
    StreamSink,
    TierSnapshotPort,
    VerificationContext,
    codec_for_name,
)
from .wire_contract import (
    INTERFACE_VERSION,
    event_to_wire,
    validate_consume_request,
    validate_event_append,
    validate_interaction_type,
)


def _get_version() -> str:
    try:
        return version("tier-verify")
    except PackageNotFoundError:
        return "unknown"


def build_context(
    config: VerifierConfig,
    history_store: HistoryStore,
    *,
    sink: ReportingSink | None = None,
    consumption: ConsumptionPort | None = None,
    tier_snapshot: TierSnapshotPort | None = None,
) -> VerificationContext:
    timeout_s = config.http_timeout_ms / 1000
    if consumption is None:
        if not config.consume_url:
            raise ValueError("TIER_VERIFY_CONSUME_URL required")
        consumption = HttpConsumption(config.consume_url, timeout_s=timeout_s)
    if tier_snapshot is None:
        if not config.tier_url:
            raise ValueError("TIER_VERIFY_TIER_URL required")
        tier_snapshot = HttpTierSnapshot(config.tier_url, timeout_s=timeout_s)
    return VerificationContext(
        consumption=consumption,
        tier_snapshot=tier_snapshot,
        history_store=history_store,
        codec=codec_for_name(config.codec),
        sink=sink or LoggingSink(),
    )


def create_app(db_path: Path | None = None) -> FastAPI:
    @asynccontextmanager
    async def lifespan(app: FastAPI):
        configure_logging()
        app.state.config = get_verifier_config()
        app.state.history = create_history_store(db_path=db_path)
        app.state.consumption = None
        app.state.tier_snapshot = None
        app.state.start_time = time.monotonic()
        try:
            yield
        finally:
            app.state.history.close()

    app = FastAPI(title="Tier Verify", lifespan=lifespan)

    @app.middleware("http")
    async def request_logging(request: Request, call_next):
        request_id = request.headers.get("x-request-id", "").strip() or uuid.uuid4().hex
        request.state.request_id = request_id
        start = time.monotonic()
        try:
            response = await call_next(request)
        except Exception:
            latency_ms = int((time.monotonic() - start) * 1000)
            log_json(
                logging.ERROR,
                "request.failed",
                request_id=request_id,
                method=request.method,
                path=request.url.path,
                latency_ms=latency_ms,
            )
            raise
        latency_ms = int((time.monotonic() - start) * 1000)
        response.headers["x-request-id"] = request_id
        log_json(
            logging.INFO,
            "request.completed",
            request_id=request_id,
            method=request.method,
            path=request.url.path,
            status_code=response.status_code,
            latency_ms=latency_ms,
        )
        return response

    @app.get("/healthz")
    async def healthz() -> dict[str, bool]:
        return {"ok": True}

    @app.get("/status")
    async def status_surface() -> dict[str, Any]:
        return {
            "interface_version": INTERFACE_VERSION,
            "main_version": _get_version(),
            "history_backend": app.state.config.history_backend,
            "history_length": app.state.history.length(),
            "uptime_s": int(time.monotonic() - app.state.start_time),
        }

    @app.post("/history/events")
    def record_event(body: dict[str, Any] = Body(...)) -> dict[str, Any]:
        try:
            parsed = validate_event_append(body)
        except ValueError as exc:
            raise HTTPException(status_code=400, detail=str(exc)) from exc
        event = app.state.history.append(
            broker_id=parsed["broker_id"],
            event_type=parsed["event_type"],
            topic_partition=parsed["topic_partition"],
        )
        log_json(
            logging.DEBUG,
            "history.append",
            broker_id=event.broker_id,
            event_type=event.event_type.value,
            topic_partition=str(event.topic_partition),
            sequence=event.sequence,
        )
        return dict(event_to_wire(event))

    @app.get("/history/{broker_id}/latest")
    def latest_event(
        broker_id: int = PathParam(..., ge=0),
        event_type: str = Query(...),
        topic: str = Query(..., min_length=1),
        partition: int = Query(..., ge=0),
    ) -> dict[str, Any]:
        history = app.state.history.history(broker_id)
        event = history.latest_event(_parse_event_type(event_type), _topic_partition(topic, partition))
        return {"event": event_to_wire(event) if event is not None else None}

    @app.get("/history/{broker_id}/events")
    def events_after(
        broker_id: int = PathParam(..., ge=0),
        event_type: str = Query(...),
        topic: str = Query(..., min_length=1),
        partition: int = Query(..., ge=0),
        after_sequence: int | None = Query(None, ge=0),
    ) -> dict[str, Any]:
        history = app.state.history.history(broker_id)
        parsed_type = _parse_event_type(event_type)
        topic_partition = _topic_partition(topic, partition)
        reference = None
        if after_sequence is not None:
            reference = _sequence_marker(broker_id, parsed_type, topic_partition, after_sequence)
        events = history.events_after(parsed_type, topic_partition, reference)
        return {"events": [event_to_wire(e) for e in events], "returned": len(events)}

    @app.post("/verify/consume")
    def verify_consume(request: Request, body: dict[str, Any] = Body(...)) -> dict[str, Any]:
        try:
            action = validate_consume_request(body)
            context = build_context(
                app.state.config,
                app.state.history,
                consumption=app.state.consumption,
                tier_snapshot=app.state.tier_snapshot,
            )
        except FetchSpecError as exc:
            raise HTTPException(status_code=400, detail={"code": exc.code, "message": str(exc)}) from exc
        except ValueError as exc:
            raise HTTPException(status_code=400, detail=str(exc)) from exc
        try:
            report = action.execute(context)
        except ConsumptionError as exc:
            log_json(
                logging.ERROR,
                "verify.consumption_failed",
                request_id=request.state.request_id,
                error=str(exc),
            )
            raise HTTPException(status_code=502, detail=f"consumption failed: {exc}") from exc
        return {"interface_version": INTERFACE_VERSION, **report.to_dict()}

    return app


def _parse_event_type(value: str) -> InteractionType:
    try:
        return validate_interaction_type(value)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc


def _topic_partition(topic: str, partition: int) -> TopicPartition:
    try:
        return TopicPartition(topic, partition)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc


def _sequence_marker(
    broker_id: int,
    event_type: InteractionType,
    topic_partition: TopicPartition,
    sequence: int,
) -> Event:
    # Only the sequence of a reference takes part in scoping.
    return Event(
        event_type=event_type,
        topic_partition=topic_partition,
        broker_id=broker_id,
        sequence=sequence,
    )


def run_scenario(
    action: ConsumeAction,
    context: VerificationContext,
) -> VerificationReport:
    report = action.execute(context)
    for outcome in report.outcomes:
        status = "PASS" if outcome.passed else f"FAIL [{outcome.failure.value}]"
        context.sink.write(f"  {outcome.check}: {status} {outcome.message}".rstrip() + "\n")
    return report


def main() -> None:
    args = _parse_args()
    if args.command == "serve":
        uvicorn.run(create_app(Path(args.db)), host=args.host, port=args.port, reload=False)
        return
    configure_logging()
    config = get_verifier_config()
    action = load_scenario(Path(args.scenario))
    history_store = create_history_store()
    try:
        context = build_context(config, history_store, sink=StreamSink(sys.stdout))
        report = run_scenario(action, context)
    finally:
        history_store.close()
    sys.exit(0 if report.passed else 1)


def _parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(prog="tier-verify")
    sub = parser.add_subparsers(dest="command", required=True)
    serve = sub.add_parser("serve")
    serve.add_argument("--host", default="127.0.0.1")
    serve.add_argument("--port", type=int, default=8020)
    serve.add_argument("--db", default=str(Path("data") / "history.sqlite"))
    verify = sub.add_parser("verify")
    verify.add_argument("--scenario", required=True)
    return parser.parse_args()


app = create_app()
