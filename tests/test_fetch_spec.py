from __future__ import annotations

import pytest

from tier_verify.fetch_spec import (
    NO_EXPECTATION,
    FetchCountOp,
    FetchCountPolicy,
    FetchSpecError,
    at_least,
    at_most,
    build_remote_fetch_spec,
    evaluate,
    exactly,
    no_expectation,
    parse_fetch_count,
)
from tier_verify.models import InteractionType, TopicPartition


@pytest.mark.parametrize("n", [0, 1, 3, 10])
def test_policy_operators_match_their_definition(n: int) -> None:
    for observed in range(0, 13):
        assert evaluate(exactly(n), observed) is (observed == n)
        assert evaluate(at_most(n), observed) is (observed <= n)
        assert evaluate(at_least(n), observed) is (observed >= n)
        assert evaluate(NO_EXPECTATION, observed) is True


def test_at_most_boundary() -> None:
    policy = at_most(3)
    assert policy.evaluate(3)
    assert not policy.evaluate(4)


@pytest.mark.parametrize("factory", [exactly, at_most, at_least])
def test_negative_count_rejected_at_construction(factory) -> None:
    with pytest.raises(FetchSpecError) as exc:
        factory(-1)
    assert exc.value.code == "INVALID_FETCH_COUNT"


def test_no_expectation_takes_no_count() -> None:
    with pytest.raises(FetchSpecError):
        FetchCountPolicy(FetchCountOp.NO_EXPECTATION, 2)


def test_policy_string_forms() -> None:
    assert str(exactly(2)) == "== 2"
    assert str(at_most(1)) == "<= 1"
    assert str(at_least(0)) == ">= 0"
    assert str(NO_EXPECTATION) == "any"


def test_parse_fetch_count_forms() -> None:
    assert parse_fetch_count(None) is no_expectation()
    assert parse_fetch_count(-1) is NO_EXPECTATION
    assert parse_fetch_count({"count": -1, "op": "EQUALS_TO"}) is NO_EXPECTATION
    assert parse_fetch_count(2) == exactly(2)
    assert parse_fetch_count({"count": 4, "op": "LESS_THAN_OR_EQUALS_TO"}) == at_most(4)
    assert parse_fetch_count({"count": 1, "op": "GREATER_THAN_OR_EQUALS_TO"}) == at_least(1)
    assert parse_fetch_count({"count": 5}) == exactly(5)


@pytest.mark.parametrize("raw", [-2, {"count": -3, "op": "EQUALS_TO"}, True, "3", {"count": 1, "op": "ABOUT"}])
def test_parse_fetch_count_rejects_invalid(raw) -> None:
    with pytest.raises(FetchSpecError):
        parse_fetch_count(raw)


def test_remote_fetch_spec_defaults_to_no_expectation() -> None:
    tp = TopicPartition("topicA", 0)
    spec = build_remote_fetch_spec(
        source_broker_id=0,
        topic_partition=tp,
        policies={InteractionType.FETCH_SEGMENT: exactly(1)},
    )
    assert spec.policy_for(InteractionType.FETCH_SEGMENT) == exactly(1)
    assert spec.policy_for(InteractionType.FETCH_TIME_INDEX) is NO_EXPECTATION
    assert "FETCH_SEGMENT=== 1" in str(spec)
    assert spec.to_dict()["fetch_counts"]["FETCH_TIME_INDEX"] == {"op": "NO_EXPECTATION", "count": None}


def test_remote_fetch_spec_is_immutable() -> None:
    policies = {InteractionType.FETCH_SEGMENT: exactly(1)}
    spec = build_remote_fetch_spec(
        source_broker_id=1, topic_partition=TopicPartition("topicA", 0), policies=policies
    )
    policies[InteractionType.FETCH_SEGMENT] = exactly(9)
    assert spec.policy_for(InteractionType.FETCH_SEGMENT) == exactly(1)
    with pytest.raises(TypeError):
        spec.policies[InteractionType.FETCH_SEGMENT] = exactly(2)


@pytest.mark.parametrize(
    "kwargs,code",
    [
        ({"source_broker_id": -1}, "INVALID_BROKER_ID"),
        ({"source_broker_id": True}, "INVALID_BROKER_ID"),
        ({"topic_partition": "topicA-0"}, "INVALID_TOPIC_PARTITION"),
        ({"policies": {"FETCH_SEGMENT": exactly(1)}}, "INVALID_INTERACTION"),
        ({"policies": {InteractionType.FETCH_SEGMENT: 1}}, "INVALID_FETCH_COUNT"),
    ],
)
def test_build_remote_fetch_spec_rejects_invalid(kwargs, code) -> None:
    args = {"source_broker_id": 0, "topic_partition": TopicPartition("topicA", 0)}
    args.update(kwargs)
    with pytest.raises(FetchSpecError) as exc:
        build_remote_fetch_spec(**args)
    assert exc.value.code == code
