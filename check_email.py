#!/usr/bin/env python3
"""
check_email.py: email trust filter

Features
- Syntax, username and domain policy gates (email-validator, idna)
- MX/A reachability check (dnspython)
- Optional reputation providers (MaxMind, CleanTalk, APIVoid, IPQualityScore)
  and DNSBL checkers (poste.io, Site24x7), configured from .env
- One recommendation plus a 0-100 fraud score

Environment (.env)
  EMAIL_FILTER_TLD=vn|com|net|org|uk|us|io|dev
  EMAIL_FILTER_MAXMIND_ACCOUNT=...
  EMAIL_FILTER_MAXMIND_LICENSE=...
  EMAIL_FILTER_CLEANTALK_KEY=...
  EMAIL_FILTER_APIVOID_KEY=...
  EMAIL_FILTER_IPQUALITYSCORE_KEY=...
  EMAIL_FILTER_POSTE=ON|OFF
  EMAIL_FILTER_SITE247=ON|OFF

Usage
  python check_email.py EMAIL [--full] [--enforce-score] [--tld com|net] [--json]
"""

from __future__ import annotations

import json
import logging
from typing import Optional

import click

from emailfilter.engine import EmailFilter
from emailfilter.models import EvaluationResult, MalformedAddress


def print_result(result: EvaluationResult) -> None:
    t = result.trustable
    yes_no = {True: "yes", False: "no"}

    print("\n================ Email Filter =================")
    print(f"📧 Email:           {result.query}")
    print(f"🧹 Username clean:  {yes_no[t.username]}")
    print(f"🧩 Domain trusted:  {yes_no[t.domain_trust]} ({t.domain_type.value})")
    if t.domain_age:
        print(f"   First seen:      {t.domain_age}")
    print(f"📮 DNS valid:       {yes_no[t.dns_valid]}")
    print(f"📬 Exists:          {yes_no[t.exist]}")
    print(f"🗑  Disposable:      {yes_no[t.disposable]}")
    print(f"🕵  Suspicious:      {yes_no[t.suspicious]}")
    print(f"⚠️  High risk:       {yes_no[t.high_risk]}")
    print(f"🎯 Fraud score:     {t.fraud_score}/100")
    print(f"🚩 Blacklisted on:  {t.blacklist}% of lists")

    print("\n============================================")
    if result.recommend:
        print("✅ Verdict: RECOMMEND")
    else:
        print("🚫 Verdict: DO NOT RECOMMEND")
        print(f"💡 Why:    {result.reason}")
    print("============================================\n")


@click.command(context_settings={"help_option_names": ["-h", "--help"]})
@click.argument("email")
@click.option("--full", is_flag=True, help="Run every check instead of stopping at the first bad signal.")
@click.option("--enforce-score", is_flag=True, help="Reject addresses with a fraud score of 75 or more.")
@click.option("--tld", help="Allowed TLDs, pipe-delimited (overrides EMAIL_FILTER_TLD).")
@click.option("--json", "as_json", is_flag=True, help="Print the raw result as JSON.")
@click.option("-v", "--verbose", is_flag=True, help="Log every pipeline step.")
def main(
    email: str,
    full: bool,
    enforce_score: bool,
    tld: Optional[str],
    as_json: bool,
    verbose: bool,
) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    checker = EmailFilter(tld=tld)
    try:
        result = checker.evaluate(email, fast=not full, enforce_score=enforce_score)
    except MalformedAddress as e:
        raise click.BadParameter(str(e), param_hint="EMAIL")

    if as_json:
        click.echo(json.dumps(result.to_dict(), indent=2, ensure_ascii=False))
    else:
        print_result(result)


if __name__ == "__main__":
    main()
