"""Local checks: syntax, username and domain policy, IDNA, disposable list, DNS."""

from __future__ import annotations

import logging
import re
from typing import List, Optional, Sequence, Tuple

import dns.exception
import dns.resolver
import idna
from email_validator import EmailNotValidError, validate_email

from .models import MalformedAddress

logger = logging.getLogger(__name__)

USERNAME_RX = re.compile(r"[a-z0-9._-]+")
DIGIT_RX = re.compile(r"[0-9]")
MAX_DOMAIN_LABELS = 3

DISPOSABLE_DOMAINS = frozenset(
    {
        "mailinator.com",
        "guerrillamail.com",
        "trashmail.com",
        "tempmail.net",
        "yopmail.com",
        "getnada.com",
        "sharklasers.com",
        "inboxbear.com",
        "dispostable.com",
        "cexch.com",
        "comfythings.com",
        "bltiwd.com",
        "spam4.me",
        "osxofulk.com",
        "jkotypc.com",
        "cmhvzylmfc.com",
        "zudpck.com",
        "daouse.com",
        "illubd.com",
        "mkzaso.com",
        "mrotzis.com",
        "xkxkud.com",
        "wnbaldwy.com",
        "bwmyga.com",
        "ozsaip.com",
        "yzcalo.com",
        "forexzig.com",
        "tempmail.id.vn",
        "hathitrannhien.edu.vn",
        "nghienplus.io.vn",
    }
)


# --------------------------
# Address shape
# --------------------------


def normalize_email(email: str) -> str:
    return (email or "").strip().lower()


def check_syntax(email: str) -> Tuple[bool, List[str]]:
    """Validate syntax only; return (valid, notes)."""
    notes: List[str] = []
    try:
        validate_email(email, check_deliverability=False)
        return True, notes
    except EmailNotValidError as e:
        notes.append(f"Syntax error: {e}")
        return False, notes


def split_address(email: str) -> Tuple[str, str]:
    parts = email.split("@", 1)
    if len(parts) < 2:
        raise MalformedAddress(f"No domain part in {email!r}")
    return parts[0], parts[1].lower()


def is_clean_username(local_part: str) -> bool:
    return USERNAME_RX.fullmatch(local_part) is not None


# --------------------------
# Domain policy
# --------------------------


def breaks_domain_policy(domain: str) -> bool:
    """Too many labels or any digit. Run before IDNA so punycode digits don't count."""
    labels = [label for label in domain.split(".") if label]
    return len(labels) > MAX_DOMAIN_LABELS or DIGIT_RX.search(domain) is not None


def to_ascii_domain(domain: str) -> str:
    if domain.isascii():
        return domain
    try:
        return idna.encode(domain, uts46=True).decode("ascii")
    except idna.IDNAError as e:
        logger.debug("IDNA conversion failed for %r: %s", domain, e)
        return domain


def is_allowed_tld(domain: str, allowed_tlds: Sequence[str]) -> bool:
    """Empty allow-list allows everything."""
    if not allowed_tlds:
        return True
    if "." not in domain:
        return False
    tld = domain.rsplit(".", 1)[1]
    return bool(tld) and tld in allowed_tlds


def is_disposable(domain: str) -> bool:
    return domain in DISPOSABLE_DOMAINS


# --------------------------
# DNS
# --------------------------


def _has_records(domain: str, rdtype: str, timeout: float) -> bool:
    try:
        answers = dns.resolver.resolve(domain, rdtype, lifetime=timeout)
        return len(answers) > 0
    except (dns.resolver.NXDOMAIN, dns.resolver.NoAnswer, dns.resolver.NoNameservers):
        return False


def dns_lookup(domain: str, timeout: float = 5.0) -> Optional[bool]:
    """
    True if the domain has MX or A records, False if it conclusively has neither,
    None when the resolver could not answer (no configuration, timeout, ...).
    """
    if not domain:
        return False
    try:
        return _has_records(domain, "MX", timeout) or _has_records(domain, "A", timeout)
    except dns.resolver.NoResolverConfiguration:
        logger.warning("No DNS resolver configured; skipping DNS check for %s", domain)
        return None
    except dns.exception.Timeout:
        logger.warning("DNS lookup timed out for %s", domain)
        return None
    except dns.exception.DNSException as e:
        logger.warning("DNS lookup error for %s: %s", domain, e)
        return None
