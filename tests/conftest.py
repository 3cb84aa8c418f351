from unittest.mock import Mock, patch

import pytest
import requests

from emailfilter.cache import ResultCache
from emailfilter.engine import EmailFilter


def fake_response(json=None, text="", status=200):
    r = Mock()
    r.status_code = status
    r.text = text
    if json is None:
        r.json.side_effect = ValueError("No JSON object could be decoded")
    else:
        r.json.return_value = json
    if status >= 400:
        r.raise_for_status.side_effect = requests.HTTPError(f"{status} Error")
    return r


@pytest.fixture(autouse=True)
def dns_ok():
    """Every domain resolves unless a test says otherwise."""
    with patch("dns.resolver.resolve", return_value=["mx.example.net."]) as resolve:
        yield resolve


@pytest.fixture(autouse=True)
def no_env_providers(monkeypatch):
    for name in ("EMAIL_FILTER_POSTE", "EMAIL_FILTER_SITE247"):
        monkeypatch.setenv(name, "off")


@pytest.fixture
def make_filter():
    def _make(tld="com|net", **credentials):
        return EmailFilter(tld=tld, credentials=credentials, cache=ResultCache())

    return _make
