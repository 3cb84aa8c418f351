"""Shared data models for reputation provider clients."""

import math
from dataclasses import dataclass
from enum import Enum
from typing import Any, Optional


class DomainType(str, Enum):
    POPULAR = "popular"
    POLICE = "police"
    GOVERNMENT = "government"
    EDUCATIONAL = "educational"


@dataclass(frozen=True)
class Signal:
    """Partial trust signal extracted from one provider response.

    ``None`` means the provider said nothing about that field.
    """

    exist: Optional[bool] = None
    disposable: Optional[bool] = None
    high_risk: Optional[bool] = None
    suspicious: Optional[bool] = None
    domain_type: Optional[DomainType] = None
    domain_trust: Optional[bool] = None
    domain_age: Optional[str] = None
    username: Optional[bool] = None
    should_block: Optional[bool] = None
    dns_valid: Optional[bool] = None
    fraud_score: Optional[int] = None


@dataclass(frozen=True)
class BlacklistCount:
    listed: int
    total: int


@dataclass
class ApiResult:
    name: str
    used: bool
    signal: Optional[Any]  # Signal / BlacklistCount on success, None on failure
    detail: str  # short human-readable summary

    @property
    def ok(self) -> bool:
        return self.signal is not None


def skipped(name: str, detail: str = "Disabled") -> ApiResult:
    return ApiResult(name, False, None, detail)


# --------------------------
# Typed extraction helpers
# --------------------------


def pick(data: Any, *path: str) -> Any:
    """Walk nested dicts; return None as soon as a key or dict is missing."""
    node = data
    for key in path:
        if not isinstance(node, dict):
            return None
        node = node.get(key)
    return node


def as_bool(value: Any) -> Optional[bool]:
    """Provider booleans come as bool, 0/1 or "true"/"false"."""
    if isinstance(value, bool):
        return value
    if isinstance(value, (int, float)):
        return bool(value)
    if isinstance(value, str):
        lowered = value.strip().lower()
        if lowered in ("true", "yes", "1"):
            return True
        if lowered in ("false", "no", "0", ""):
            return False
    return None


def as_score(value: Any, scale: float = 1.0) -> Optional[int]:
    if isinstance(value, bool) or value is None:
        return None
    try:
        number = float(value) * scale
    except (TypeError, ValueError, OverflowError):
        return None
    # inf and nan cannot become an int
    if not math.isfinite(number):
        return None
    return int(round(number))


def any_true(data: Any, *keys: str) -> Optional[bool]:
    """OR over the boolean fields present in ``data``; None if none are present."""
    values = [as_bool(pick(data, k)) for k in keys]
    values = [v for v in values if v is not None]
    if not values:
        return None
    return any(values)
