"""
SignalCraft
Copyright (c) 2026 Chris Menendez.
All Rights Reserved.
See LICENSE for permitted use.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Dict, List, Optional, Tuple


@dataclass(frozen=True)
class KnownCompany:
    company_id: str
    name: str
    aliases: Tuple[str, ...] = ()


KNOWN_COMPANIES: List[KnownCompany] = [
    KnownCompany("google", "Google", ("alphabet", "google cloud", "google deepmind")),
    KnownCompany("meta", "Meta", ("meta platforms", "facebook", "fb", "meta reality labs")),
    KnownCompany("amazon", "Amazon", ("amazon.com", "amazon web services", "aws", "amazon lab126")),
    KnownCompany("apple", "Apple", ("apple computer",)),
    KnownCompany("microsoft", "Microsoft", ("msft", "microsoft azure")),
    KnownCompany("netflix", "Netflix", ("netflix studios",)),
    KnownCompany("salesforce", "Salesforce", ("salesforce.com", "sfdc")),
    KnownCompany("oracle", "Oracle", ("oracle cloud",)),
    KnownCompany("ibm", "IBM", ("international business machines",)),
    KnownCompany("stripe", "Stripe", ("stripe payments",)),
    KnownCompany("paypal", "PayPal", ("paypal holdings",)),
    KnownCompany("square", "Block", ("square", "block")),
    KnownCompany("coinbase", "Coinbase", ("coinbase global",)),
    KnownCompany("robinhood", "Robinhood", ("robinhood markets",)),
    KnownCompany("adobe", "Adobe", ("adobe systems",)),
    KnownCompany("atlassian", "Atlassian", ()),
    KnownCompany("workday", "Workday", ()),
    KnownCompany("servicenow", "ServiceNow", ()),
    KnownCompany("slack", "Slack", ("slack technologies",)),
    KnownCompany("notion", "Notion", ("notion labs",)),
    KnownCompany("uber", "Uber", ("uber technologies",)),
    KnownCompany("doordash", "DoorDash", ()),
    KnownCompany("shopify", "Shopify", ()),
    KnownCompany("ebay", "eBay", ()),
    KnownCompany("twitter", "X", ("twitter", "x corp", "x")),
    KnownCompany("snap", "Snap", ("snapchat",)),
    KnownCompany("openai", "OpenAI", ("openai lp",)),
    KnownCompany("anthropic", "Anthropic", ()),
    KnownCompany("github", "GitHub", ()),
    KnownCompany("gitlab", "GitLab", ()),
    KnownCompany("datadog", "Datadog", ()),
    KnownCompany("cloudflare", "Cloudflare", ()),
    KnownCompany("vercel", "Vercel", ("zeit",)),
]

LEGAL_SUFFIXES = (
    "incorporated",
    "inc",
    "llc",
    "l.l.c",
    "ltd",
    "limited",
    "corporation",
    "corp",
    "company",
    "co",
    "plc",
    "pbc",
    "lp",
    "llp",
    "gmbh",
    "ag",
    "sa",
    "bv",
    "holdings",
)

_QUOTES_RE = re.compile("[\"'‘’“”]")
_SUFFIX_RE = re.compile(
    r"(?:[\s,]+(?:" + "|".join(re.escape(suffix) for suffix in LEGAL_SUFFIXES) + r")\.?)+$",
    re.IGNORECASE,
)
_SLUG_RE = re.compile(r"[^a-z0-9]+")


def _clean(name: str) -> str:
    text = _QUOTES_RE.sub("", name or "")
    return " ".join(text.split()).strip(" ,.")


def strip_legal_suffixes(name: str) -> str:
    """'Stripe, Inc.' -> 'Stripe'. Never strips down to nothing."""
    cleaned = _clean(name)
    stripped = _SUFFIX_RE.sub("", cleaned).strip(" ,.")
    return stripped or cleaned


def _build_alias_index() -> Dict[str, KnownCompany]:
    index: Dict[str, KnownCompany] = {}
    for company in KNOWN_COMPANIES:
        index[company.name.lower()] = company
        index[company.company_id] = company
        for alias in company.aliases:
            index[alias.lower()] = company
    return index


_ALIAS_INDEX = _build_alias_index()


def lookup_company(name: str) -> Optional[KnownCompany]:
    cleaned = _clean(name).lower()
    if not cleaned:
        return None
    if cleaned in _ALIAS_INDEX:
        return _ALIAS_INDEX[cleaned]
    return _ALIAS_INDEX.get(strip_legal_suffixes(cleaned).lower())


def normalize_company(name: Optional[str]) -> Tuple[str, str]:
    """
    Return (display_name, company_id).

    Known aliases collapse onto one id ("Facebook Inc" and "Meta" share "meta");
    everything else gets a slug of the suffix-stripped name.
    """
    known = lookup_company(name or "")
    if known is not None:
        return known.name, known.company_id
    display = strip_legal_suffixes(name or "")
    slug = _SLUG_RE.sub("-", display.lower()).strip("-")
    return display, slug or "unknown"


def is_same_company(a: Optional[str], b: Optional[str]) -> bool:
    if not a or not b:
        return False
    return normalize_company(a)[1] == normalize_company(b)[1]


def company_aliases(name: str) -> List[str]:
    known = lookup_company(name)
    if known is None:
        return [strip_legal_suffixes(name)]
    return [known.name, *known.aliases]
