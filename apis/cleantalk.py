"""CleanTalk spam_check client."""

import logging
from typing import Optional

import requests

from .models import ApiResult, Signal, as_score, pick, skipped

logger = logging.getLogger(__name__)


def call_cleantalk(email: str, api_key: Optional[str], timeout: float = 10) -> ApiResult:
    """Ask CleanTalk whether the address exists and how spammy it is."""
    if not api_key:
        return skipped("CleanTalk", "No API key")

    try:
        r = requests.get(
            "https://api.cleantalk.org/",
            params={"method_name": "spam_check", "auth_key": api_key, "email": email},
            timeout=timeout,
        )
        r.raise_for_status()
        data = r.json()
        signal = parse_cleantalk_payload(data, email)
    except requests.RequestException as e:
        logger.warning("CleanTalk request failed: %s", e)
        return ApiResult("CleanTalk", True, None, f"HTTP error: {e}")
    except Exception as e:
        logger.warning("CleanTalk returned an unusable body: %s", e)
        return ApiResult("CleanTalk", True, None, f"Error: {e}")

    return ApiResult("CleanTalk", True, signal, "Checked")


def parse_cleantalk_payload(data: dict, email: str) -> Signal:
    record = pick(data, "data", email)
    if not isinstance(record, dict):
        return Signal()

    # Only an explicit 0 / 1 counts; anything else is "unknown"
    exists = record.get("exists")
    disposable = record.get("disposable_email")
    return Signal(
        exist=False if exists == 0 and not isinstance(exists, bool) else None,
        disposable=True if disposable == 1 and not isinstance(disposable, bool) else None,
        fraud_score=as_score(record.get("spam_rate"), scale=100),
    )
