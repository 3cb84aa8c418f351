"""Site24x7 blacklist-check tool client."""

import logging
import time

import requests

from .models import ApiResult, BlacklistCount
from .poste import BROWSER_HEADERS

logger = logging.getLogger(__name__)

ACTION_URL = "https://www.site24x7.com/tools/action.do"
# The tool always checks the same fixed set of RBLs
LISTS_CHECKED = 19

HEADERS = {
    **BROWSER_HEADERS,
    "sec-ch-ua": '"Chromium";v="112", "Google Chrome";v="112", "Not:A-Brand";v="99"',
    "sec-ch-ua-platform": '"macOS"',
    "sec-ch-ua-mobile": "?0",
    "X-Requested-With": "XMLHttpRequest",
    "Referer": "https://www.site24x7.com/tools/blacklist-check.html",
}


def call_site24x7(domain: str, timeout: float = 10) -> ApiResult:
    """Submit the domain to Site24x7's RBL check and count the hits."""
    form = {
        "execute": "performRBLCheck",
        "method": "performRBLCheck",
        "url": domain,
        "hostName": domain,
        "timestamp": int(time.time()),
    }
    try:
        r = requests.post(ACTION_URL, data=form, headers=HEADERS, timeout=timeout)
        r.raise_for_status()
    except requests.RequestException as e:
        logger.warning("Site24x7 request failed: %s", e)
        return ApiResult("Site24x7", True, None, f"HTTP error: {e}")

    if not r.text:
        return ApiResult("Site24x7", True, None, "Empty response")
    count = BlacklistCount(listed=r.text.count("Blocklisted in "), total=LISTS_CHECKED)
    return ApiResult("Site24x7", True, count, f"Listed on {count.listed}/{count.total}")
