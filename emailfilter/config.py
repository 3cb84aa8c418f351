"""Configuration: allowed TLDs and provider credentials.

Values come from the environment (optionally a ``.env`` file):

  EMAIL_FILTER_TLD=vn|com|net|org|uk|us|io|dev
  EMAIL_FILTER_POSTE=ON
  EMAIL_FILTER_SITE247=ON
  EMAIL_FILTER_MAXMIND_ACCOUNT=...
  EMAIL_FILTER_MAXMIND_LICENSE=...
  EMAIL_FILTER_CLEANTALK_KEY=...
  EMAIL_FILTER_APIVOID_KEY=...
  EMAIL_FILTER_IPQUALITYSCORE_KEY=...
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from typing import Any, Iterable, Mapping, Optional, Tuple, Union

from dotenv import load_dotenv

DEFAULT_TLD = "vn|com|net|org|uk|us|io|dev"

FAST_TIMEOUT = 3
FULL_TIMEOUT = 10


def parse_tld_list(value: Union[str, Iterable[str], None]) -> Tuple[str, ...]:
    """Pipe-delimited string or iterable -> lowercase, de-duplicated tuple."""
    if not value:
        return ()
    items = value.split("|") if isinstance(value, str) else value
    seen = []
    for item in items:
        tld = str(item).strip().lower()
        if tld and tld not in seen:
            seen.append(tld)
    return tuple(seen)


def _is_on(value: Optional[str]) -> bool:
    return bool(value) and value.strip().lower() != "off"


@dataclass(frozen=True)
class Credentials:
    maxmind_account: str = ""
    maxmind_license: str = ""
    cleantalk: str = ""
    apivoid: str = ""
    ipqualityscore: str = ""
    poste: str = ""
    site247: str = ""

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> "Credentials":
        """Build from the nested ``{"maxmind": {"account", "license"}, ...}`` shape."""
        maxmind = data.get("maxmind") or {}
        return cls(
            maxmind_account=str(maxmind.get("account") or ""),
            maxmind_license=str(maxmind.get("license") or ""),
            cleantalk=str(data.get("cleantalk") or ""),
            apivoid=str(data.get("apivoid") or ""),
            ipqualityscore=str(data.get("ipqualityscore") or ""),
            poste=str(data.get("poste") or ""),
            site247=str(data.get("site247") or ""),
        )

    @classmethod
    def from_env(cls) -> "Credentials":
        return cls(
            maxmind_account=os.getenv("EMAIL_FILTER_MAXMIND_ACCOUNT", ""),
            maxmind_license=os.getenv("EMAIL_FILTER_MAXMIND_LICENSE", ""),
            cleantalk=os.getenv("EMAIL_FILTER_CLEANTALK_KEY", ""),
            apivoid=os.getenv("EMAIL_FILTER_APIVOID_KEY", ""),
            ipqualityscore=os.getenv("EMAIL_FILTER_IPQUALITYSCORE_KEY", ""),
            poste=os.getenv("EMAIL_FILTER_POSTE", "ON"),
            site247=os.getenv("EMAIL_FILTER_SITE247", "ON"),
        )

    @property
    def maxmind_enabled(self) -> bool:
        return _is_on(self.maxmind_account) and _is_on(self.maxmind_license)

    def enabled(self, name: str) -> bool:
        if name == "maxmind":
            return self.maxmind_enabled
        return _is_on(getattr(self, name))


@dataclass(frozen=True)
class Settings:
    """Everything loaded once per process: TLD policy plus credentials."""

    allowed_tlds: Tuple[str, ...] = ()
    credentials: Credentials = field(default_factory=Credentials)


@dataclass(frozen=True)
class EvaluationConfig:
    allowed_tlds: Tuple[str, ...]
    credentials: Credentials
    fast: bool = True
    enforce_score: bool = False

    @property
    def timeout(self) -> int:
        return FAST_TIMEOUT if self.fast else FULL_TIMEOUT


def load_config(dotenv_path: Optional[str] = None) -> Settings:
    load_dotenv(dotenv_path)
    return Settings(
        allowed_tlds=parse_tld_list(os.getenv("EMAIL_FILTER_TLD", DEFAULT_TLD)),
        credentials=Credentials.from_env(),
    )
