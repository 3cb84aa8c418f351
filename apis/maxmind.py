"""MaxMind minFraud Insights client (fraud insights)."""

import logging
from typing import Optional

import requests

from .models import ApiResult, Signal, as_bool, as_score, pick, skipped

logger = logging.getLogger(__name__)

INSIGHTS_URL = "https://minfraud.maxmind.com/minfraud/v2.0/insights"


def call_maxmind(
    email: str,
    domain: str,
    account: Optional[str],
    license_key: Optional[str],
    timeout: float = 10,
) -> ApiResult:
    """Score the email/domain pair with minFraud Insights."""
    if not account or not license_key:
        return skipped("MaxMind", "No account/license")

    try:
        r = requests.post(
            INSIGHTS_URL,
            json={"email": {"address": email, "domain": domain}},
            auth=(account, license_key),
            timeout=timeout,
        )
        r.raise_for_status()
        data = r.json()
        signal = parse_maxmind_payload(data)
    except requests.RequestException as e:
        logger.warning("MaxMind request failed: %s", e)
        return ApiResult("MaxMind", True, None, f"HTTP error: {e}")
    except Exception as e:
        logger.warning("MaxMind returned an unusable body: %s", e)
        return ApiResult("MaxMind", True, None, f"Error: {e}")

    return ApiResult("MaxMind", True, signal, "Scored")


def parse_maxmind_payload(data: dict) -> Signal:
    first_seen = pick(data, "email", "domain", "first_seen")
    return Signal(
        disposable=as_bool(pick(data, "email", "is_disposable")),
        high_risk=as_bool(pick(data, "email", "is_high_risk")),
        domain_age=first_seen if isinstance(first_seen, str) else None,
        fraud_score=as_score(pick(data, "risk_score")),
    )
