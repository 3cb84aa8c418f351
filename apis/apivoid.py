"""APIVoid email verification client (validation score)."""

import logging
from typing import Optional

import requests

from .models import ApiResult, DomainType, Signal, any_true, as_bool, as_score, pick, skipped

logger = logging.getLogger(__name__)

# Flags that must all be true for the domain to be trusted
_TRUST_REQUIRED = ("has_a_records", "has_mx_records", "has_spf_records", "valid_tld")
# Flags where any true value breaks domain trust
_TRUST_BREAKERS = ("is_spoofable", "suspicious_domain", "dirty_words_domain", "risky_tld")
# Later entries win
_DOMAIN_TYPES = (
    ("domain_popular", DomainType.POPULAR),
    ("police_domain", DomainType.POLICE),
    ("government_domain", DomainType.GOVERNMENT),
    ("educational_domain", DomainType.EDUCATIONAL),
)


def call_apivoid(email: str, api_key: Optional[str], timeout: float = 10) -> ApiResult:
    """Call APIVoid's email verification endpoint."""
    if not api_key:
        return skipped("APIVoid", "No API key")

    try:
        r = requests.get(
            "https://endpoint.apivoid.com/emailverify/v1/pay-as-you-go/",
            params={"key": api_key, "email": email},
            timeout=timeout,
        )
        r.raise_for_status()
        data = r.json()
        signal = parse_apivoid_payload(data)
    except requests.RequestException as e:
        logger.warning("APIVoid request failed: %s", e)
        return ApiResult("APIVoid", True, None, f"HTTP error: {e}")
    except Exception as e:
        logger.warning("APIVoid returned an unusable body: %s", e)
        return ApiResult("APIVoid", True, None, f"Error: {e}")

    return ApiResult("APIVoid", True, signal, "Verified")


def parse_apivoid_payload(payload: dict) -> Signal:
    data = pick(payload, "data")
    if not isinstance(data, dict):
        return Signal()

    scores = [s for s in (as_score(data.get("score")), as_score(pick(payload, "score"))) if s is not None]

    domain_type = None
    for key, kind in _DOMAIN_TYPES:
        if as_bool(data.get(key)):
            domain_type = kind

    username_dirty = any_true(data, "suspicious_username", "dirty_words_username")

    return Signal(
        fraud_score=max(scores) if scores else None,
        suspicious=as_bool(data.get("suspicious_email")),
        disposable=as_bool(data.get("disposable")),
        domain_type=domain_type,
        domain_trust=_domain_trust(data),
        username=None if username_dirty is None else not username_dirty,
        should_block=as_bool(data.get("should_block")),
    )


def _domain_trust(data: dict) -> Optional[bool]:
    required = [as_bool(data.get(k)) for k in _TRUST_REQUIRED if k in data]
    broken = any_true(data, *_TRUST_BREAKERS)
    if not required and broken is None:
        return None
    return all(required) and not broken
