from unittest.mock import patch

import dns.resolver
import pytest
import requests

from apis.models import ApiResult, BlacklistCount, DomainType, Signal
from emailfilter import engine
from emailfilter.cache import ResultCache
from emailfilter.engine import EmailFilter, Step, blacklist_percentage
from emailfilter.models import MalformedAddress
from conftest import fake_response


def api(signal, name="Fake"):
    return ApiResult(name, True, signal, "stubbed")


ALL_PROVIDERS = dict(cleantalk="ct", apivoid="av", ipqualityscore="iq", maxmind={"account": "1", "license": "2"})


# --------------------------
# Policy gate scenarios
# --------------------------


def test_invalid_format_fast(make_filter):
    result = make_filter("com|net").evaluate("not-an-email", fast=True)
    assert result.recommend is False
    assert result.reason == "Invalid email format"


def test_missing_domain_part_raises_in_full_mode(make_filter):
    with pytest.raises(MalformedAddress):
        make_filter("com|net").evaluate("not-an-email", fast=False)


def test_plus_sign_marks_username_dirty(make_filter):
    result = make_filter("com|net").evaluate("user+tag@example.com", fast=True)
    assert result.recommend is False
    assert result.trustable.username is False
    assert result.reason == "This email username was marked as dirty"


def test_username_gate_stops_in_full_mode_too(make_filter, dns_ok):
    result = make_filter("com|net").evaluate("user+tag@example.com", fast=False)
    assert result.reason == "This email username was marked as dirty"
    dns_ok.assert_not_called()


def test_allowed_tld_keeps_domain_trust(make_filter):
    result = make_filter("com|net").evaluate("user.name-1@example.com", fast=True)
    assert result.trustable.domain_trust is True
    assert result.recommend is True
    assert result.reason == ""
    assert result.query == "user.name-1@example.com"


def test_tld_not_allowed(make_filter):
    result = make_filter("net").evaluate("user@example.com", fast=True)
    assert result.recommend is False
    assert result.trustable.domain_trust is False
    assert result.reason == "This email domain was blocked by default policy"


def test_digit_in_domain_is_blocked(make_filter):
    result = make_filter("com|net").evaluate("user@examp1e.com", fast=True)
    assert result.recommend is False
    assert result.reason == "This email domain was blocked by default policy"


def test_four_labels_are_blocked(make_filter):
    result = make_filter("d").evaluate("user@a.b.c.d", fast=True)
    assert result.recommend is False
    assert result.reason == "This email domain was blocked by default policy"


def test_disposable_domain(make_filter):
    result = make_filter("com|net").evaluate("u@mailinator.com", fast=True)
    assert result.recommend is False
    assert result.trustable.disposable is True
    assert result.reason == "This email was marked as disposable"


def test_idn_domain_passes_tld_gate(make_filter, dns_ok):
    result = make_filter("de").evaluate("user@bücher.de", fast=True)
    assert result.trustable.domain_trust is True
    assert dns_ok.call_args.args[0] == "xn--bcher-kva.de"


def test_input_is_trimmed_and_lowercased(make_filter):
    result = make_filter("com").evaluate("  User@Example.COM ")
    assert result.query == "user@example.com"
    assert result.recommend is True


def test_empty_allow_list_allows_any_tld(make_filter):
    assert make_filter("").evaluate("user@example.xyz").recommend is True


def test_invalid_format_in_full_mode_keeps_gathering_signals(make_filter):
    signal = Signal(fraud_score=40, high_risk=True)
    with patch.object(engine, "call_maxmind", return_value=api(signal)) as maxmind:
        result = make_filter("com", maxmind={"account": "1", "license": "2"}).evaluate(
            "user..name@example.com", fast=False
        )
    maxmind.assert_called_once()
    assert result.reason == "Invalid email format"
    assert result.trustable.high_risk is True
    assert result.trustable.fraud_score == 40


# --------------------------
# DNS
# --------------------------


def test_dns_invalid(make_filter):
    with patch("dns.resolver.resolve", side_effect=dns.resolver.NXDOMAIN()):
        result = make_filter("com").evaluate("user@nowhere-at-all.com")
    assert result.recommend is False
    assert result.trustable.dns_valid is False
    assert result.trustable.domain_trust is False
    assert result.reason == "This email domain was marked as DNS invalid"


def test_dns_unavailable_fails_open(make_filter):
    with patch("dns.resolver.resolve", side_effect=dns.resolver.NoResolverConfiguration()):
        result = make_filter("com").evaluate("user@example.com")
    assert result.recommend is True
    assert result.trustable.dns_valid is True


def test_dns_timeout_follows_mode(make_filter, dns_ok):
    make_filter("com").evaluate("user@example.com", fast=True)
    assert dns_ok.call_args.kwargs["lifetime"] == 3
    make_filter("com").evaluate("user@example.com", fast=False)
    assert dns_ok.call_args.kwargs["lifetime"] == 10


# --------------------------
# Provider merging
# --------------------------


def test_disabled_providers_are_never_called(make_filter):
    with patch("requests.get") as get, patch("requests.post") as post:
        result = make_filter("com", cleantalk="", apivoid="off", poste="OFF").evaluate("user@example.com")
    get.assert_not_called()
    post.assert_not_called()
    assert result.recommend is True


def test_fast_mode_stops_at_first_bad_provider(make_filter):
    with patch.object(engine, "call_maxmind", return_value=api(Signal(disposable=True))), patch.object(
        engine, "call_cleantalk"
    ) as cleantalk:
        result = make_filter("com", **ALL_PROVIDERS).evaluate("user@example.com", fast=True)
    cleantalk.assert_not_called()
    assert result.recommend is False
    assert result.reason == "This email was marked as disposable"


def test_full_mode_keeps_first_reason_and_all_signals(make_filter):
    with patch.object(engine, "call_maxmind", return_value=api(Signal(high_risk=True, domain_age="2020-02-02"))), \
            patch.object(engine, "call_cleantalk", return_value=api(Signal(exist=False, fraud_score=30))), \
            patch.object(engine, "call_apivoid", return_value=api(Signal(domain_type=DomainType.GOVERNMENT))), \
            patch.object(engine, "call_ipqualityscore", return_value=api(Signal(suspicious=True, fraud_score=55))):
        result = make_filter("com", **ALL_PROVIDERS).evaluate("user@example.com", fast=False)

    assert result.reason == "This email was marked as high risk"
    t = result.trustable
    assert (t.high_risk, t.exist, t.suspicious) == (True, False, True)
    assert t.domain_age == "2020-02-02"
    assert t.domain_type is DomainType.GOVERNMENT
    assert t.fraud_score == 55


def test_signals_never_weaken(make_filter):
    with patch.object(engine, "call_maxmind", return_value=api(Signal(disposable=True))), \
            patch.object(engine, "call_cleantalk", return_value=api(Signal(exist=False))), \
            patch.object(engine, "call_apivoid", return_value=api(Signal(disposable=False, username=False))), \
            patch.object(engine, "call_ipqualityscore", return_value=api(Signal(exist=True, disposable=False))):
        result = make_filter("com", **ALL_PROVIDERS).evaluate("user@example.com", fast=False)

    assert result.trustable.disposable is True
    assert result.trustable.exist is False
    assert result.trustable.username is False
    assert result.recommend is False


def test_validation_score_reason_order(make_filter):
    signal = Signal(suspicious=True, disposable=True, domain_trust=False)
    with patch.object(engine, "call_apivoid", return_value=api(signal)):
        result = make_filter("com", apivoid="key").evaluate("user@example.com")
    assert result.reason == "This email was marked as suspicious"
    # Fast mode stopped before the later fields were merged
    assert result.trustable.disposable is False


@pytest.mark.parametrize(
    "signal,reason",
    [
        (Signal(domain_trust=False), "This email domain was marked as suspicious"),
        (Signal(username=False), "This email username was marked as dirty"),
        (Signal(should_block=True), "This email was marked as should be blocked"),
    ],
)
def test_validation_score_disqualifiers(make_filter, signal, reason):
    with patch.object(engine, "call_apivoid", return_value=api(signal)):
        result = make_filter("com", apivoid="key").evaluate("user@example.com")
    assert result.recommend is False
    assert result.reason == reason


def test_quality_score_dns_invalid(make_filter):
    with patch.object(engine, "call_ipqualityscore", return_value=api(Signal(exist=True, dns_valid=False))):
        result = make_filter("com", ipqualityscore="key").evaluate("user@example.com")
    assert result.trustable.dns_valid is False
    assert result.reason == "This email domain was marked as DNS invalid"


def test_provider_outage_is_no_contribution(make_filter):
    with patch("requests.get", side_effect=requests.ConnectionError("down")), \
            patch("requests.post", side_effect=requests.Timeout("slow")):
        result = make_filter("com", **ALL_PROVIDERS, poste="on", site247="on").evaluate("user@example.com")
    assert result.recommend is True
    assert result.trustable.fraud_score == 0
    assert result.trustable.blacklist == 0


def test_providers_get_fast_timeout(make_filter):
    payload = {"data": {"user@example.com": {"spam_rate": 0.1}}}
    with patch("apis.cleantalk.requests.get", return_value=fake_response(json=payload)) as get:
        result = make_filter("com", cleantalk="key").evaluate("user@example.com", fast=True)
    assert get.call_args.kwargs["timeout"] == 3
    assert result.trustable.fraud_score == 10


# --------------------------
# Fraud score
# --------------------------


def test_fraud_score_is_clamped(make_filter):
    with patch.object(engine, "call_ipqualityscore", return_value=api(Signal(fraud_score=250))):
        result = make_filter("com", ipqualityscore="key").evaluate("user@example.com")
    assert result.trustable.fraud_score == 100
    assert result.recommend is True


def test_negative_fraud_score_is_clamped(make_filter):
    with patch.object(engine, "call_apivoid", return_value=api(Signal(fraud_score=-20))):
        result = make_filter("com", apivoid="key").evaluate("user@example.com")
    assert result.trustable.fraud_score == 0


def test_enforced_score_rejects_in_fast_mode(make_filter):
    with patch.object(engine, "call_cleantalk", return_value=api(Signal(fraud_score=80))), \
            patch.object(engine, "call_apivoid") as apivoid:
        result = make_filter("com", cleantalk="k", apivoid="k").evaluate(
            "user@example.com", fast=True, enforce_score=True
        )
    apivoid.assert_not_called()
    assert result.reason == "This email was marked as fraudulent"


def test_score_below_threshold_passes_when_enforced(make_filter):
    with patch.object(engine, "call_cleantalk", return_value=api(Signal(fraud_score=74))):
        result = make_filter("com", cleantalk="k").evaluate("user@example.com", enforce_score=True)
    assert result.recommend is True


def test_finalization_overrides_earlier_reason_in_full_mode(make_filter):
    with patch.object(engine, "call_maxmind", return_value=api(Signal(high_risk=True, fraud_score=130))):
        result = make_filter("com", maxmind={"account": "1", "license": "2"}).evaluate(
            "user@example.com", fast=False, enforce_score=True
        )
    assert result.trustable.fraud_score == 100
    assert result.reason == "This email was marked as fraudulent"


def test_fraud_insights_score_waits_for_later_gates(make_filter):
    with patch.object(engine, "call_maxmind", return_value=api(Signal(fraud_score=80))), \
            patch.object(engine, "call_cleantalk", return_value=api(Signal(exist=False))) as cleantalk:
        result = make_filter("com", cleantalk="k", maxmind={"account": "1", "license": "2"}).evaluate(
            "user@example.com", fast=True, enforce_score=True
        )
    cleantalk.assert_called_once()
    assert result.recommend is False
    assert result.reason == "This email was marked as non-existent"


def test_running_score_is_enforced_after_next_provider(make_filter):
    with patch.object(engine, "call_maxmind", return_value=api(Signal(fraud_score=80))), \
            patch.object(engine, "call_cleantalk", return_value=api(Signal())), \
            patch.object(engine, "call_apivoid") as apivoid:
        result = make_filter("com", cleantalk="k", apivoid="k", maxmind={"account": "1", "license": "2"}).evaluate(
            "user@example.com", fast=True, enforce_score=True
        )
    apivoid.assert_not_called()
    assert result.reason == "This email was marked as fraudulent"


def test_non_finite_provider_score_is_ignored(make_filter):
    payload = {"data": {"user@example.com": {"exists": 1, "disposable_email": 0, "spam_rate": 1e999}}}
    with patch("apis.cleantalk.requests.get", return_value=fake_response(json=payload)):
        result = make_filter("com", cleantalk="k").evaluate("user@example.com", enforce_score=True)
    assert result.recommend is True
    assert result.trustable.fraud_score == 0


# --------------------------
# Blacklists
# --------------------------


def test_blacklist_percentage():
    assert blacklist_percentage([]) == 0
    assert blacklist_percentage([BlacklistCount(0, 19)]) == 0
    assert blacklist_percentage([BlacklistCount(2, 4), BlacklistCount(0, 19)]) == 8.7
    assert blacklist_percentage([BlacklistCount(5, 3)]) == 100


def test_blacklisted_domain(make_filter):
    with patch.object(engine, "call_poste", return_value=api(BlacklistCount(3, 4))), \
            patch.object(engine, "call_site24x7", return_value=api(BlacklistCount(4, 19))):
        result = make_filter("com", poste="ON", site247="ON").evaluate("user@example.com")
    assert result.trustable.blacklist == 30.43
    assert result.recommend is False
    assert result.reason == "This email was marked as blacklisted"


def test_full_mode_reports_blacklist_without_rejecting(make_filter):
    with patch.object(engine, "call_poste", return_value=api(BlacklistCount(3, 4))), \
            patch.object(engine, "call_site24x7", return_value=api(BlacklistCount(4, 19))):
        result = make_filter("com", poste="ON", site247="ON").evaluate("user@example.com", fast=False)
    assert result.trustable.blacklist == 30.43
    assert result.recommend is True
    assert result.reason == ""


def test_unreachable_checker_is_left_out(make_filter):
    with patch.object(engine, "call_poste", return_value=api(BlacklistCount(1, 4))), \
            patch.object(engine, "call_site24x7", return_value=ApiResult("Site24x7", True, None, "HTTP error")):
        result = make_filter("com", poste="ON", site247="ON").evaluate("user@example.com")
    assert result.trustable.blacklist == 25.0
    assert result.recommend is True


def test_blacklist_checkers_get_the_ascii_domain(make_filter):
    with patch.object(engine, "call_poste", return_value=api(BlacklistCount(0, 4))) as poste:
        make_filter("de", poste="ON").evaluate("user@bücher.de", fast=False)
    assert poste.call_args.args == ("xn--bcher-kva.de", 10)


# --------------------------
# Cache
# --------------------------


def test_fast_mode_result_is_cached(make_filter):
    checker = make_filter("com", cleantalk="key")
    with patch.object(engine, "call_cleantalk", return_value=api(Signal(fraud_score=12))) as cleantalk:
        first = checker.evaluate("user@example.com")
        second = checker.evaluate("user@example.com")
    assert cleantalk.call_count == 1
    assert first == second


def test_cache_key_includes_flags(make_filter):
    checker = make_filter("com", cleantalk="key")
    with patch.object(engine, "call_cleantalk", return_value=api(Signal(fraud_score=12))) as cleantalk:
        checker.evaluate("user@example.com", enforce_score=False)
        checker.evaluate("user@example.com", enforce_score=True)
    assert cleantalk.call_count == 2


def test_full_mode_never_reads_cache(make_filter):
    checker = make_filter("com", cleantalk="key")
    with patch.object(engine, "call_cleantalk", return_value=api(Signal(fraud_score=12))) as cleantalk:
        checker.evaluate("user@example.com", fast=False)
        checker.evaluate("user@example.com", fast=False)
    assert cleantalk.call_count == 2


def test_short_circuited_results_are_not_cached(make_filter):
    checker = make_filter("com", cleantalk="key")
    with patch.object(engine, "call_cleantalk", return_value=api(Signal(exist=False))):
        checker.evaluate("user@example.com")
    assert len(checker.cache) == 0


def test_broken_cache_does_not_abort_evaluation():
    class BrokenCache(ResultCache):
        def get(self, key):
            raise RuntimeError("cache backend down")

        def set(self, key, result):
            raise RuntimeError("cache backend down")

    checker = EmailFilter(tld="com", credentials={}, cache=BrokenCache())
    assert checker.evaluate("user@example.com").recommend is True


# --------------------------
# Invariants
# --------------------------


def test_recommend_never_comes_back(make_filter):
    state = engine.Evaluation("user@example.com", make_filter("com").config(fast=False))
    assert state.disqualify("first") is Step.CONTINUE
    state.merge(Signal(exist=True, disposable=False, domain_trust=True), ("exist", "disposable", "domain_trust"))
    assert state.recommend is False
    assert state.reason == "first"


def test_results_are_immutable(make_filter):
    result = make_filter("com").evaluate("user@example.com")
    with pytest.raises(AttributeError):
        result.recommend = False


def test_to_dict_shape(make_filter):
    data = make_filter("com").evaluate("u@mailinator.com").to_dict()
    assert data["query"] == "u@mailinator.com"
    assert data["trustable"]["domain_type"] == "popular"
    assert set(data["trustable"]) == {
        "exist",
        "disposable",
        "blacklist",
        "fraud_score",
        "suspicious",
        "high_risk",
        "domain_type",
        "domain_trust",
        "domain_age",
        "dns_valid",
        "username",
    }


def test_module_level_evaluate_reads_environment(monkeypatch):
    monkeypatch.setenv("EMAIL_FILTER_TLD", "org")
    engine.default_filter.cache_clear()
    try:
        result = engine.evaluate("user@example.com")
    finally:
        engine.default_filter.cache_clear()
    assert result.reason == "This email domain was blocked by default policy"
