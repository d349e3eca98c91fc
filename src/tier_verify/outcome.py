from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Mapping, Sequence

from .digest import report_digest


__all__ = [
    "FailureKind",
    "VerificationOutcome",
    "VerificationReport",
    "VerificationFailed",
]


class FailureKind(str, Enum):
    TIER_CONTENT_MISSING = "tier-content-missing"
    TOO_FEW_IN_TIER = "too-few-in-tier"
    TOO_MANY_IN_TIER = "too-many-in-tier"
    CONSUMED_TOO_FEW = "consumed-too-few"
    CONTENT_MISMATCH = "content-mismatch"
    INTERACTION_COUNT = "interaction-count"


class VerificationFailed(AssertionError):
    def __init__(self, report: VerificationReport) -> None:
        lines = [f"{len(report.failures)} verification failure(s):"]
        lines.extend(f"  [{o.failure.value}] {o.message}" for o in report.failures if o.failure)
        super().__init__("\n".join(lines))
        self.report = report


@dataclass(frozen=True)
class VerificationOutcome:
    check: str
    passed: bool
    message: str = ""
    failure: FailureKind | None = None
    expected: Any = None
    observed: Any = None
    context: Mapping[str, Any] = field(default_factory=dict)

    @classmethod
    def ok(
        cls,
        check: str,
        *,
        message: str = "",
        expected: Any = None,
        observed: Any = None,
        **context: Any,
    ) -> VerificationOutcome:
        return cls(
            check=check,
            passed=True,
            message=message,
            expected=expected,
            observed=observed,
            context=context,
        )

    @classmethod
    def failed(
        cls,
        check: str,
        failure: FailureKind,
        message: str,
        *,
        expected: Any,
        observed: Any,
        **context: Any,
    ) -> VerificationOutcome:
        return cls(
            check=check,
            passed=False,
            message=message,
            failure=failure,
            expected=expected,
            observed=observed,
            context=context,
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "check": self.check,
            "passed": self.passed,
            "failure": self.failure.value if self.failure else None,
            "message": self.message,
            "expected": _jsonable(self.expected),
            "observed": _jsonable(self.observed),
            "context": {k: _jsonable(v) for k, v in self.context.items()},
        }


@dataclass(frozen=True)
class VerificationReport:
    """Aggregate result of one verification step."""

    outcomes: tuple[VerificationOutcome, ...]

    @property
    def passed(self) -> bool:
        return all(o.passed for o in self.outcomes)

    @property
    def failures(self) -> tuple[VerificationOutcome, ...]:
        return tuple(o for o in self.outcomes if not o.passed)

    def outcome(self, check: str) -> VerificationOutcome | None:
        for o in self.outcomes:
            if o.check == check:
                return o
        return None

    def raise_for_failures(self) -> None:
        if not self.passed:
            raise VerificationFailed(self)

    def to_dict(self) -> dict[str, Any]:
        body: dict[str, Any] = {
            "passed": self.passed,
            "failure_count": len(self.failures),
            "outcomes": [o.to_dict() for o in self.outcomes],
        }
        body["digest"] = report_digest(body)
        return body

    @classmethod
    def of(cls, outcomes: Sequence[VerificationOutcome]) -> VerificationReport:
        return cls(outcomes=tuple(outcomes))


def _jsonable(value: Any) -> Any:
    if value is None or isinstance(value, (bool, int, float, str)):
        return value
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, bytes):
        return value.hex()
    if isinstance(value, Mapping):
        return {str(k): _jsonable(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [_jsonable(v) for v in value]
    to_dict = getattr(value, "to_dict", None)
    if callable(to_dict):
        return to_dict()
    return str(value)
