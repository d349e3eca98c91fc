"""
Audit of the second-tier interactions caused by one consume.

The history is a log shared by a whole test session. Capturing the latest
event of each type before consuming and counting only what comes after it
isolates the requests made while serving this consume.
"""
from __future__ import annotations

from typing import Mapping

from .fetch_spec import RemoteFetchSpec
from .history.base import EventHistory
from .models import TRACKED_INTERACTIONS, Event, InteractionType, TopicPartition
from .outcome import FailureKind, VerificationOutcome

__all__ = ["Baseline", "capture_baseline", "audit_interactions", "interaction_check_name"]

Baseline = Mapping[InteractionType, Event | None]


def interaction_check_name(event_type: InteractionType) -> str:
    return f"interaction:{event_type.value}"


def capture_baseline(
    history: EventHistory,
    topic_partition: TopicPartition,
) -> dict[InteractionType, Event | None]:
    return {
        event_type: history.latest_event(event_type, topic_partition)
        for event_type in TRACKED_INTERACTIONS
    }


def audit_interactions(
    history: EventHistory,
    baseline: Baseline,
    spec: RemoteFetchSpec,
) -> list[VerificationOutcome]:
    outcomes: list[VerificationOutcome] = []
    for event_type in TRACKED_INTERACTIONS:
        reference = baseline.get(event_type)
        policy = spec.policy_for(event_type)
        in_scope = history.events_after(event_type, spec.topic_partition, reference)
        observed = len(in_scope)
        context = {
            "interaction_type": event_type.value,
            "broker_id": spec.source_broker_id,
            "topic_partition": str(spec.topic_partition),
            "baseline_sequence": reference.sequence if reference is not None else None,
        }
        check = interaction_check_name(event_type)
        if policy.evaluate(observed):
            outcomes.append(
                VerificationOutcome.ok(check, expected=policy, observed=observed, **context)
            )
            continue
        outcomes.append(
            VerificationOutcome.failed(
                check,
                FailureKind.INTERACTION_COUNT,
                f"Number of {event_type.value} requests from broker {spec.source_broker_id} "
                f"to the tier storage does not match the expected value for topic-partition "
                f"{spec.topic_partition}. Expected: {policy}, Was: {observed}",
                expected=policy,
                observed=observed,
                **context,
            )
        )
    return outcomes
