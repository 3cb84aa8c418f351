"""IPQualityScore email validation client (quality score)."""

import logging
from typing import Optional
from urllib.parse import quote

import requests

from .models import ApiResult, Signal, any_true, as_bool, as_score, skipped

logger = logging.getLogger(__name__)


def call_ipqualityscore(email: str, api_key: Optional[str], timeout: float = 10) -> ApiResult:
    """Call IPQualityScore's email reputation endpoint."""
    if not api_key:
        return skipped("IPQualityScore", "No API key")

    try:
        r = requests.get(
            f"https://ipqualityscore.com/api/json/email/{api_key}/{quote(email, safe='')}",
            params={"strictness": 1},
            timeout=timeout,
        )
        r.raise_for_status()
        data = r.json()
        if not isinstance(data, dict):
            return ApiResult("IPQualityScore", True, None, "Unexpected payload")
        signal = parse_ipqualityscore_payload(data)
    except requests.RequestException as e:
        logger.warning("IPQualityScore request failed: %s", e)
        return ApiResult("IPQualityScore", True, None, f"HTTP error: {e}")
    except Exception as e:
        logger.warning("IPQualityScore returned an unusable body: %s", e)
        return ApiResult("IPQualityScore", True, None, f"Error: {e}")

    return ApiResult("IPQualityScore", True, signal, "Scored")


def parse_ipqualityscore_payload(data: dict) -> Signal:
    dns_valid = as_bool(data.get("dns_valid"))
    if dns_valid:
        # A zero overall score or an SMTP score of -1 means the mailbox is unreachable
        if data.get("overall_score") == 0 or data.get("smtp_score") == -1:
            dns_valid = False

    return Signal(
        exist=as_bool(data.get("valid")),
        disposable=any_true(data, "disposable", "catch_all", "generic"),
        suspicious=any_true(data, "recent_abuse", "honeypot"),
        dns_valid=dns_valid,
        fraud_score=as_score(data.get("fraud_score")),
    )
