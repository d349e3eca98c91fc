"""
Consume verification step.

Consumes records of a partition from a given offset and checks them against
what the second tier physically holds, then checks how many requests the
source broker sent to the second tier while serving the consume.
"""
from __future__ import annotations

import io
import logging
from dataclasses import dataclass
from enum import Enum

from .auditor import audit_interactions, capture_baseline
from .correspondence import check_correspondence
from .fetch_spec import FetchSpecError, RemoteFetchSpec
from .models import TopicPartition
from .observability import log_json
from .outcome import VerificationOutcome, VerificationReport
from .ports import ReportingSink, VerificationContext

__all__ = ["VerificationStep", "ConsumeAction"]


class VerificationStep(str, Enum):
    CAPTURE_BASELINE = "capture_baseline"
    AWAIT_CONSUMPTION = "await_consumption"
    CHECK_CORRESPONDENCE = "check_correspondence"
    AUDIT_INTERACTIONS = "audit_interactions"
    DONE = "done"


@dataclass(frozen=True)
class ConsumeAction:
    topic_partition: TopicPartition
    fetch_offset: int
    expected_total_count: int
    expected_from_tier_count: int
    remote_fetch_spec: RemoteFetchSpec

    def __post_init__(self) -> None:
        if self.fetch_offset < 0:
            raise FetchSpecError("INVALID_FETCH_OFFSET", f"fetch_offset must be >= 0, got {self.fetch_offset}")
        for name in ("expected_total_count", "expected_from_tier_count"):
            value = getattr(self, name)
            if value < 0:
                raise FetchSpecError("INVALID_RECORD_COUNT", f"{name} must be >= 0, got {value}")

    def execute(self, context: VerificationContext) -> VerificationReport:
        """
        Run the step and return every outcome.

        Errors raised by the consumption port (including interruption) abort
        the step and propagate unchanged. Check failures do not: they are
        collected into the report.
        """
        self.describe(context.sink)
        spec = self.remote_fetch_spec
        history = context.history_for(spec.source_broker_id)

        self._enter(VerificationStep.CAPTURE_BASELINE)
        baseline = capture_baseline(history, spec.topic_partition)

        self._enter(VerificationStep.AWAIT_CONSUMPTION)
        consumed = context.consumption.consume(
            self.topic_partition, self.expected_total_count, self.fetch_offset
        )

        self._enter(VerificationStep.CHECK_CORRESPONDENCE)
        outcomes: list[VerificationOutcome] = [
            check_correspondence(
                context.tier_snapshot.records_for(self.topic_partition),
                consumed,
                topic_partition=self.topic_partition,
                fetch_offset=self.fetch_offset,
                expected_from_tier_count=self.expected_from_tier_count,
                codec=context.codec,
            )
        ]

        self._enter(VerificationStep.AUDIT_INTERACTIONS)
        outcomes.extend(audit_interactions(history, baseline, spec))

        report = VerificationReport.of(outcomes)
        self._enter(VerificationStep.DONE)
        log_json(
            logging.INFO if report.passed else logging.WARNING,
            "verify.completed",
            topic_partition=str(self.topic_partition),
            fetch_offset=self.fetch_offset,
            consumed=len(consumed),
            passed=report.passed,
            failures=[o.failure.value for o in report.failures if o.failure],
        )
        return report

    def describe(self, output: ReportingSink) -> None:
        buf = io.StringIO()
        buf.write("consume-action:\n")
        buf.write(f"  topic-partition = {self.topic_partition}\n")
        buf.write(f"  fetch-offset = {self.fetch_offset}\n")
        buf.write(f"  expected-record-count = {self.expected_total_count}\n")
        buf.write(f"  expected-record-from-tiered-storage = {self.expected_from_tier_count}\n")
        buf.write(f"  remote-fetch-spec = {self.remote_fetch_spec}\n")
        output.write(buf.getvalue())

    def _enter(self, step: VerificationStep) -> None:
        log_json(
            logging.DEBUG,
            "verify.state",
            state=step.value,
            topic_partition=str(self.topic_partition),
            fetch_offset=self.fetch_offset,
        )
