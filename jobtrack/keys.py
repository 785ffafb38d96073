"""Canonical job keys.

A canonical key identifies one job posting no matter which variant of its
URL the browser landed on: locale segments, query strings, anchors,
/apply suffixes and trailing slashes are all dropped. The key is the unit
of deduplication.
"""

from __future__ import annotations

from dataclasses import dataclass
from urllib.parse import urlsplit

from jobtrack.errors import TargetParseError
from jobtrack.sites import SiteRule, find_rule


@dataclass(frozen=True)
class ParsedTarget:
    host: str
    path: str
    rule: SiteRule


def parse_target(raw_target: str) -> ParsedTarget:
    """Split a navigation target into lowercased host, path, and site rule.

    Raises:
        TargetParseError: for non-http(s) targets or URLs without a host
    """
    try:
        parts = urlsplit((raw_target or "").strip())
        host = parts.hostname
    except ValueError as e:
        raise TargetParseError(raw_target, str(e)) from e

    if parts.scheme.lower() not in ("http", "https"):
        raise TargetParseError(raw_target, f"unsupported scheme {parts.scheme!r}")
    if not host:
        raise TargetParseError(raw_target, "missing host")

    path = parts.path or "/"
    return ParsedTarget(host=host.lower(), path=path, rule=find_rule(host.lower(), path))


def derive_key(raw_target: str) -> str:
    """Canonical key for a target. Never fails: unparseable targets key as themselves."""
    try:
        parsed = parse_target(raw_target)
    except TargetParseError:
        return raw_target
    return parsed.rule.derive_key(parsed.host, parsed.path)
