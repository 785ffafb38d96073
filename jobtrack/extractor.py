"""Derive company, role title, and source label for a tracked page.

Company names go through a fallback chain, best source first:
  1. the site rule (URL slug, Workday subdomain, fixed employer, LinkedIn title)
  2. the page title ("Role at Company", "Role | Company")
  3. the domain name
"""

from __future__ import annotations

import re
from dataclasses import dataclass

from jobtrack.errors import TargetParseError
from jobtrack.keys import parse_target
from jobtrack.sites import GENERIC_RULE, slug_to_name

UNKNOWN = "Unknown"

# Boilerplate added to <title> by job boards, applied in order until stable.
ROLE_TITLE_BOILERPLATE = [
    re.compile(r"^Apply for ", re.I),
    re.compile(r"^Job Application for ", re.I),
    re.compile(r" \| Tesla Careers$"),
    re.compile(r" - LinkedIn$"),
    re.compile(r" \| LinkedIn$"),
    re.compile(r" \| Careers$"),
    re.compile(r" \| Jobs$"),
    re.compile(r" - Careers$"),
    re.compile(r" - Jobs$"),
    re.compile(r" \| Indeed$"),
    re.compile(r" - Indeed$"),
    re.compile(r" \| Glassdoor$"),
    re.compile(r" - Glassdoor$"),
    re.compile(r" \| Greenhouse$"),
    re.compile(r" - Greenhouse$"),
    re.compile(r" \| Lever$"),
    re.compile(r" \| SmartRecruiters$"),
    # "| Company Name" suffix
    re.compile(r" \| [A-Z][\w\s]+$"),
    re.compile(r" - [A-Z][\w\s]+ Careers$"),
]

# Second-level labels that sit in front of a country code (acme.co.uk)
_SECOND_LEVEL_LABELS = {"co", "com", "ac", "org", "net", "gov", "edu"}

# Title separators need surrounding spaces so "Front-End" stays intact
_TITLE_SEPARATOR_RE = re.compile(r"\s[|\-–]\s")


@dataclass(frozen=True)
class Attributes:
    company: str
    role_title: str
    source_label: str


def clean_role_title(title: str) -> str:
    """Strip job-board boilerplate from a page title.

    Never returns an empty string: if cleaning would remove everything,
    the title comes back untouched.
    """
    if not title or not title.strip():
        return UNKNOWN

    cleaned = title
    while True:
        previous = cleaned
        for pattern in ROLE_TITLE_BOILERPLATE:
            cleaned = pattern.sub("", cleaned)
        cleaned = cleaned.strip()
        if not cleaned:
            return title
        if cleaned == previous:
            return cleaned


def company_from_title(title: str) -> str | None:
    """Best guess at the employer from a page title, or None."""
    if not title:
        return None
    m = re.search(r" at (.+)$", clean_role_title(title))
    if m:
        return m.group(1).strip()
    parts = _TITLE_SEPARATOR_RE.split(title)
    if len(parts) > 1 and parts[-1].strip():
        return parts[-1].strip()
    return None


def registrable_label(host: str) -> str:
    """'careers.acme.co.uk' -> 'acme', 'jobs.acme.com' -> 'acme'."""
    parts = [p for p in host.split(".") if p]
    if not parts:
        return host
    if len(parts) >= 3 and len(parts[-1]) == 2 and parts[-2] in _SECOND_LEVEL_LABELS:
        return parts[-3]
    if len(parts) >= 2:
        return parts[-2]
    return parts[0]


def extract_company(raw_target: str, title: str) -> str:
    try:
        parsed = parse_target(raw_target)
    except TargetParseError:
        return title or UNKNOWN

    if parsed.rule.company:
        name = parsed.rule.company(parsed.host, parsed.path, title)
        if name:
            return name

    name = company_from_title(title)
    if name:
        return name

    return slug_to_name(registrable_label(parsed.host))


def detect_source(raw_target: str) -> str:
    try:
        return parse_target(raw_target).rule.source_label
    except TargetParseError:
        return GENERIC_RULE.source_label


def extract(raw_target: str, display_title: str) -> Attributes:
    return Attributes(
        company=extract_company(raw_target, display_title),
        role_title=clean_role_title(display_title),
        source_label=detect_source(raw_target),
    )
