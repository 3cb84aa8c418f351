"""
engine.py: email trust evaluation pipeline

Runs an address through the local policy gates, then the reputation providers
in a fixed order, folding every signal into one EvaluationResult.

Fast mode stops at the first disqualifying signal. Full mode keeps going so the
whole trustable record gets populated; the first reason still wins.
"""

from __future__ import annotations

import logging
from dataclasses import replace
from enum import Enum
from functools import lru_cache
from typing import Any, Callable, Mapping, Optional, Sequence, Tuple, Union

from apis.apivoid import call_apivoid
from apis.cleantalk import call_cleantalk
from apis.ipqualityscore import call_ipqualityscore
from apis.maxmind import call_maxmind
from apis.models import ApiResult, BlacklistCount, Signal
from apis.poste import call_poste
from apis.site24x7 import call_site24x7

from . import policy
from .cache import DEFAULT_CACHE, ResultCache, fingerprint
from .config import Credentials, EvaluationConfig, Settings, load_config, parse_tld_list
from .models import (
    BLACKLIST_THRESHOLD,
    FRAUD_THRESHOLD,
    EvaluationResult,
    Trustable,
    clamp,
)

logger = logging.getLogger(__name__)

INVALID_FORMAT = "Invalid email format"
USERNAME_DIRTY = "This email username was marked as dirty"
POLICY_BLOCKED = "This email domain was blocked by default policy"
DISPOSABLE = "This email was marked as disposable"
DNS_INVALID = "This email domain was marked as DNS invalid"
NON_EXISTENT = "This email was marked as non-existent"
HIGH_RISK = "This email was marked as high risk"
SUSPICIOUS = "This email was marked as suspicious"
DOMAIN_SUSPICIOUS = "This email domain was marked as suspicious"
SHOULD_BLOCK = "This email was marked as should be blocked"
FRAUDULENT = "This email was marked as fraudulent"
BLACKLISTED = "This email was marked as blacklisted"

# Signal fields that go bad when true / when false, and the reason they report
BAD_WHEN_TRUE = {
    "disposable": DISPOSABLE,
    "high_risk": HIGH_RISK,
    "suspicious": SUSPICIOUS,
    "should_block": SHOULD_BLOCK,
}
BAD_WHEN_FALSE = {
    "exist": NON_EXISTENT,
    "domain_trust": DOMAIN_SUSPICIOUS,
    "username": USERNAME_DIRTY,
    "dns_valid": DNS_INVALID,
}

# Per-provider merge order
FRAUD_INSIGHTS_FIELDS = ("disposable", "high_risk", "domain_age", "fraud_score")
SPAM_CHECK_FIELDS = ("exist", "disposable", "fraud_score")
VALIDATION_FIELDS = (
    "fraud_score",
    "suspicious",
    "disposable",
    "domain_type",
    "domain_trust",
    "username",
    "should_block",
)
QUALITY_FIELDS = ("exist", "disposable", "suspicious", "dns_valid", "fraud_score")


class Step(Enum):
    CONTINUE = "continue"
    STOP = "stop"


class Evaluation:
    """Mutable state of one evaluation. Only ever moves toward "bad"."""

    def __init__(self, email: str, config: EvaluationConfig):
        self.config = config
        self.query = policy.normalize_email(email)
        self.local_part = ""
        self.domain = ""
        self.recommend = True
        self.reason = ""
        self.trustable = Trustable()
        self.cached: Optional[EvaluationResult] = None

    def update(self, **changes: Any) -> None:
        self.trustable = replace(self.trustable, **changes)

    def disqualify(self, reason: str, override: bool = False) -> Step:
        """Record a disqualification; fast mode stops here, full mode carries on."""
        self.recommend = False
        if override or not self.reason:
            self.reason = reason
        return Step.STOP if self.config.fast else Step.CONTINUE

    def block(self, reason: str, **changes: Any) -> Step:
        """Hard gate: disqualify and stop in every mode."""
        self.update(**changes)
        self.disqualify(reason)
        return Step.STOP

    def merge(self, signal: Signal, fields: Sequence[str], enforce_score: bool = True) -> Step:
        """Fold one provider's signal in, field by field, in the provider's order.

        The fraud score gate runs where ``fraud_score`` sits in ``fields``, on the
        running maximum, whether or not this provider reported a score.
        """
        for name in fields:
            value = getattr(signal, name)
            if name == "fraud_score":
                if value is not None:
                    self.update(fraud_score=max(self.trustable.fraud_score, int(value)))
                step = self.check_fraud_score() if enforce_score else Step.CONTINUE
            elif value is None:
                continue
            else:
                step = self._merge_field(name, value)
            if step is Step.STOP:
                return Step.STOP
        return Step.CONTINUE

    def _merge_field(self, name: str, value: Any) -> Step:
        if name in BAD_WHEN_TRUE:
            if name != "should_block" and not getattr(self.trustable, name):
                self.update(**{name: bool(value)})
            if value:
                return self.disqualify(BAD_WHEN_TRUE[name])
        elif name in BAD_WHEN_FALSE:
            if getattr(self.trustable, name):
                self.update(**{name: bool(value)})
            if not getattr(self.trustable, name):
                return self.disqualify(BAD_WHEN_FALSE[name])
        else:
            # domain_type / domain_age are descriptive, never disqualifying
            self.update(**{name: value})
        return Step.CONTINUE

    def check_fraud_score(self, override: bool = False) -> Step:
        if self.config.enforce_score and self.trustable.fraud_score >= FRAUD_THRESHOLD:
            return self.disqualify(FRAUDULENT, override=override)
        return Step.CONTINUE

    def result(self) -> EvaluationResult:
        if self.cached is not None:
            return self.cached
        trustable = replace(
            self.trustable,
            fraud_score=int(clamp(self.trustable.fraud_score)),
            blacklist=clamp(self.trustable.blacklist),
        )
        return EvaluationResult(self.query, self.recommend, self.reason, trustable)


def blacklist_percentage(counts: Sequence[BlacklistCount]) -> float:
    listed = sum(c.listed for c in counts)
    total = sum(c.total for c in counts)
    if total == 0 or listed == 0:
        return 0
    return clamp(round(listed / total * 100, 2))


class Pipeline:
    """One evaluation: an ordered list of steps, each returning CONTINUE or STOP."""

    def __init__(self, config: EvaluationConfig, cache: Optional[ResultCache] = None):
        self.config = config
        self.cache = cache
        self.steps: Tuple[Callable[[Evaluation], Step], ...] = (
            self.check_format,
            self.split,
            self.check_username,
            self.check_domain_policy,
            self.normalize_domain,
            self.check_tld,
            self.check_disposable,
            self.lookup_cache,
            self.check_dns,
            self.check_fraud_insights,
            self.check_spam,
            self.check_validation_score,
            self.check_quality_score,
            self.finalize_fraud_score,
            self.check_blacklists,
        )

    def run(self, email: str) -> EvaluationResult:
        state = Evaluation(email, self.config)
        for step in self.steps:
            if step(state) is Step.STOP:
                logger.debug("Stopped at %s for %s: %s", step.__name__, state.query, state.reason)
                return state.result()
        result = state.result()
        self.store_cache(state, result)
        return result

    # --------------------------
    # Local gates
    # --------------------------

    def check_format(self, state: Evaluation) -> Step:
        valid, notes = policy.check_syntax(state.query)
        if valid:
            return Step.CONTINUE
        logger.debug("%s", "; ".join(notes))
        return state.disqualify(INVALID_FORMAT)

    def split(self, state: Evaluation) -> Step:
        # Raises MalformedAddress in every mode
        state.local_part, state.domain = policy.split_address(state.query)
        return Step.CONTINUE

    def check_username(self, state: Evaluation) -> Step:
        if policy.is_clean_username(state.local_part):
            return Step.CONTINUE
        return state.block(USERNAME_DIRTY, username=False)

    def check_domain_policy(self, state: Evaluation) -> Step:
        if policy.breaks_domain_policy(state.domain):
            return state.block(POLICY_BLOCKED, domain_trust=False)
        return Step.CONTINUE

    def normalize_domain(self, state: Evaluation) -> Step:
        state.domain = policy.to_ascii_domain(state.domain)
        return Step.CONTINUE

    def check_tld(self, state: Evaluation) -> Step:
        if policy.is_allowed_tld(state.domain, self.config.allowed_tlds):
            return Step.CONTINUE
        return state.block(POLICY_BLOCKED, domain_trust=False)

    def check_disposable(self, state: Evaluation) -> Step:
        if policy.is_disposable(state.domain):
            state.update(disposable=True)
            return state.disqualify(DISPOSABLE)
        return Step.CONTINUE

    def check_dns(self, state: Evaluation) -> Step:
        if policy.dns_lookup(state.domain, self.config.timeout) is False:
            state.update(dns_valid=False, domain_trust=False)
            return state.disqualify(DNS_INVALID)
        return Step.CONTINUE

    # --------------------------
    # Cache (fast mode only)
    # --------------------------

    def _cache_key(self, state: Evaluation) -> str:
        cfg = self.config
        return fingerprint(state.query, cfg.fast, cfg.enforce_score, cfg.allowed_tlds)

    def lookup_cache(self, state: Evaluation) -> Step:
        if not self.config.fast or self.cache is None:
            return Step.CONTINUE
        try:
            cached = self.cache.get(self._cache_key(state))
        except Exception as e:
            logger.warning("Result cache lookup failed: %s", e)
            return Step.CONTINUE
        if cached is None:
            return Step.CONTINUE
        logger.debug("Cache hit for %s", state.query)
        state.cached = cached
        return Step.STOP

    def store_cache(self, state: Evaluation, result: EvaluationResult) -> None:
        if self.cache is None:
            return
        try:
            self.cache.set(self._cache_key(state), result)
        except Exception as e:
            logger.warning("Result cache store failed: %s", e)

    # --------------------------
    # Reputation providers
    # --------------------------

    def _merge(
        self, state: Evaluation, api: ApiResult, fields: Sequence[str], enforce_score: bool = True
    ) -> Step:
        logger.debug("%s: %s", api.name, api.detail)
        if api.signal is None:
            return Step.CONTINUE
        return state.merge(api.signal, fields, enforce_score)

    def check_fraud_insights(self, state: Evaluation) -> Step:
        creds = self.config.credentials
        if not creds.enabled("maxmind"):
            return Step.CONTINUE
        api = call_maxmind(
            state.query, state.domain, creds.maxmind_account, creds.maxmind_license, self.config.timeout
        )
        # the score from this provider is only enforced at finalization
        return self._merge(state, api, FRAUD_INSIGHTS_FIELDS, enforce_score=False)

    def check_spam(self, state: Evaluation) -> Step:
        creds = self.config.credentials
        if not creds.enabled("cleantalk"):
            return Step.CONTINUE
        api = call_cleantalk(state.query, creds.cleantalk, self.config.timeout)
        return self._merge(state, api, SPAM_CHECK_FIELDS)

    def check_validation_score(self, state: Evaluation) -> Step:
        creds = self.config.credentials
        if not creds.enabled("apivoid"):
            return Step.CONTINUE
        api = call_apivoid(state.query, creds.apivoid, self.config.timeout)
        return self._merge(state, api, VALIDATION_FIELDS)

    def check_quality_score(self, state: Evaluation) -> Step:
        creds = self.config.credentials
        if not creds.enabled("ipqualityscore"):
            return Step.CONTINUE
        api = call_ipqualityscore(state.query, creds.ipqualityscore, self.config.timeout)
        return self._merge(state, api, QUALITY_FIELDS)

    def finalize_fraud_score(self, state: Evaluation) -> Step:
        state.update(fraud_score=int(clamp(state.trustable.fraud_score)))
        # The only check allowed to replace an earlier reason
        return state.check_fraud_score(override=True)

    def check_blacklists(self, state: Evaluation) -> Step:
        creds = self.config.credentials
        counts = []
        if creds.enabled("poste"):
            api = call_poste(state.domain, self.config.timeout)
            logger.debug("%s: %s", api.name, api.detail)
            if api.signal is not None:
                counts.append(api.signal)
        if creds.enabled("site247"):
            api = call_site24x7(state.domain, self.config.timeout)
            logger.debug("%s: %s", api.name, api.detail)
            if api.signal is not None:
                counts.append(api.signal)

        state.update(blacklist=blacklist_percentage(counts))
        # full mode reports the percentage without judging it
        if self.config.fast and state.trustable.blacklist >= BLACKLIST_THRESHOLD:
            return state.disqualify(BLACKLISTED)
        return Step.CONTINUE


class EmailFilter:
    """Configured evaluator; TLD policy and credentials fall back to the environment."""

    def __init__(
        self,
        tld: Union[str, Sequence[str], None] = None,
        credentials: Union[Credentials, Mapping[str, Any], None] = None,
        cache: Optional[ResultCache] = None,
    ):
        settings: Optional[Settings] = None
        if tld is None or credentials is None:
            settings = load_config()

        self.allowed_tlds = parse_tld_list(tld) if tld is not None else settings.allowed_tlds
        if credentials is None:
            self.credentials = settings.credentials
        elif isinstance(credentials, Credentials):
            self.credentials = credentials
        else:
            self.credentials = Credentials.from_mapping(credentials)
        self.cache = cache if cache is not None else DEFAULT_CACHE

    def config(self, fast: bool = True, enforce_score: bool = False) -> EvaluationConfig:
        return EvaluationConfig(self.allowed_tlds, self.credentials, fast, enforce_score)

    def evaluate(self, email: str, fast: bool = True, enforce_score: bool = False) -> EvaluationResult:
        """Evaluate one address. Raises MalformedAddress when there is no domain part."""
        return Pipeline(self.config(fast, enforce_score), self.cache).run(email)


@lru_cache(maxsize=1)
def default_filter() -> EmailFilter:
    return EmailFilter()


def evaluate(email: str, fast: bool = True, enforce_score: bool = False) -> EvaluationResult:
    return default_filter().evaluate(email, fast, enforce_score)
