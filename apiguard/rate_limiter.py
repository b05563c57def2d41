"""Sliding-window limit decisions over ledger counts.

``evaluate`` is pure: the engine supplies the count for the window and this
module only decides. Counting itself lives in the request ledger.
"""
import enum
from dataclasses import dataclass
from datetime import timedelta


class Scope(str, enum.Enum):
    KEY = "key"
    METHOD = "method"


class Reason(str, enum.Enum):
    KEY_LIMIT_EXCEEDED = "key_limit_exceeded"
    METHOD_LIMIT_EXCEEDED = "method_limit_exceeded"


@dataclass(frozen=True)
class LimitRule:
    limit: int
    window: timedelta | None
    problem: str | None = None

    @property
    def misconfigured(self) -> bool:
        return self.problem is not None


@dataclass(frozen=True)
class Decision:
    admitted: bool
    reason: Reason | None = None


ADMIT = Decision(admitted=True)

_REASONS = {
    Scope.KEY: Reason.KEY_LIMIT_EXCEEDED,
    Scope.METHOD: Reason.METHOD_LIMIT_EXCEEDED,
}


def evaluate(scope: Scope, rule: LimitRule | None, count: int) -> Decision:
    """Admit unless ``count`` already reached a valid rule's limit.

    A missing rule admits. A misconfigured rule admits as well; it was
    reported when the policy was loaded.
    """
    if rule is None or rule.misconfigured:
        return ADMIT
    if count >= rule.limit:
        return Decision(admitted=False, reason=_REASONS[scope])
    return ADMIT
