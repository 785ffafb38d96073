"""Decide whether a navigation is worth tracking.

Two policies share the site rule table:

  apply_intent  Track only URLs that show the user is on an apply form.
                Sites that apply inline (LinkedIn, Greenhouse, Amazon, Meta,
                Microsoft, Adobe) never match and are left to email sync.
  detail_view   Track any URL that identifies a single posting.

Pick one with `tracking.policy` in config.yaml.
"""

from __future__ import annotations

import logging

from jobtrack.errors import ConfigError, TargetParseError
from jobtrack.keys import ParsedTarget, parse_target
from jobtrack.models import ApplicationStatus, Classification
from jobtrack.sites import NON_DETAIL_RE

logger = logging.getLogger("jobtrack")


class ClassificationPolicy:
    """Base policy: parse, then defer to `_classify_parsed`. Parse failures skip."""

    name = ""
    tracked_as = Classification.SKIP

    def classify(self, raw_target: str) -> Classification:
        try:
            parsed = parse_target(raw_target)
        except TargetParseError as e:
            logger.debug("Skipping unparseable target: %s", e)
            return Classification.SKIP
        return self.tracked_as if self._is_trackable(parsed) else Classification.SKIP

    def _is_trackable(self, parsed: ParsedTarget) -> bool:
        raise NotImplementedError


class ApplyIntentPolicy(ClassificationPolicy):
    name = "apply_intent"
    tracked_as = Classification.TRACK_AS_APPLIED

    def _is_trackable(self, parsed: ParsedTarget) -> bool:
        return parsed.rule.is_apply_page(parsed.path)


class DetailViewPolicy(ClassificationPolicy):
    name = "detail_view"
    tracked_as = Classification.TRACK_AS_VIEWED

    def _is_trackable(self, parsed: ParsedTarget) -> bool:
        if NON_DETAIL_RE.search(parsed.path):
            return False
        return parsed.rule.is_detail_page(parsed.path)


POLICIES = {
    ApplyIntentPolicy.name: ApplyIntentPolicy,
    DetailViewPolicy.name: DetailViewPolicy,
}


def get_policy(name: str) -> ClassificationPolicy:
    try:
        return POLICIES[name.lower()]()
    except KeyError:
        raise ConfigError(
            f"Unknown tracking policy: {name!r} (expected one of: {', '.join(POLICIES)})"
        ) from None


def status_for(classification: Classification) -> ApplicationStatus:
    """Record status for a trackable classification."""
    if classification is Classification.TRACK_AS_APPLIED:
        return ApplicationStatus.APPLIED
    if classification is Classification.TRACK_AS_VIEWED:
        return ApplicationStatus.VIEWED
    raise ValueError(f"{classification} is not trackable")
