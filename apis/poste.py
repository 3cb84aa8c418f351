"""poste.io web DNSBL checker."""

import logging

import requests

from .models import ApiResult, BlacklistCount

logger = logging.getLogger(__name__)

BROWSER_HEADERS = {
    "Connection": "keep-alive",
    "User-Agent": (
        "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/537.36 "
        "(KHTML, like Gecko) Chrome/113.0.0.0 Safari/537.36"
    ),
}


def call_poste(domain: str, timeout: float = 10) -> ApiResult:
    """Run the domain through poste.io's list of DNSBLs."""
    try:
        r = requests.get(
            "https://poste.io/api/web-dnsbl",
            params={"query": domain},
            headers=BROWSER_HEADERS,
            timeout=timeout,
        )
        r.raise_for_status()
    except requests.RequestException as e:
        logger.warning("poste.io request failed: %s", e)
        return ApiResult("poste.io", True, None, f"HTTP error: {e}")

    if not r.text:
        return ApiResult("poste.io", True, None, "Empty response")
    count = count_poste_listings(r.text)
    return ApiResult("poste.io", True, count, f"Listed on {count.listed}/{count.total}")


def count_poste_listings(body: str) -> BlacklistCount:
    # One "name" per list; clean lists report "ok", broken ones "error"
    total = body.count('"name"')
    listed = total - body.count('"ok"') - body.count('"error"')
    return BlacklistCount(listed=max(listed, 0), total=total)
