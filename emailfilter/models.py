"""Evaluation result types."""

from dataclasses import asdict, dataclass, field
from typing import Any, Dict

from apis.models import DomainType

MAX_SCORE = 100
FRAUD_THRESHOLD = 75
BLACKLIST_THRESHOLD = 30


class MalformedAddress(ValueError):
    """The address has no separable local-part/domain pair."""


def clamp(value, low=0, high=MAX_SCORE):
    return max(low, min(high, value))


@dataclass(frozen=True)
class Trustable:
    exist: bool = True
    disposable: bool = False
    blacklist: float = 0
    fraud_score: int = 0
    suspicious: bool = False
    high_risk: bool = False
    domain_type: DomainType = DomainType.POPULAR
    domain_trust: bool = True
    domain_age: str = ""
    dns_valid: bool = True
    username: bool = True


@dataclass(frozen=True)
class EvaluationResult:
    query: str
    recommend: bool = True
    reason: str = ""
    trustable: Trustable = field(default_factory=Trustable)

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["trustable"]["domain_type"] = self.trustable.domain_type.value
        return data
