"""Per-platform rules for job sites.

Every ATS or careers site quirk lives here so it can be updated in one
place when a site changes its URL scheme. Each rule answers four
questions about a (host, path) pair:

  - is this an apply page?           (apply-intent policy)
  - is this a single job posting?    (detail-view policy)
  - what is its canonical key?
  - who is the employer?             (optional, structural only)

Rules are checked in order and the generic rule always matches last.
Run `main.py --check-url URL` to see which rule a URL hits.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Callable, Optional

# -- Shared patterns -----------------------------------------------------------

UUID_RE = re.compile(r"/([a-f0-9]{8}-[a-f0-9]{4}-[a-f0-9]{4}-[a-f0-9]{4}-[a-f0-9]{12})", re.I)

# Locale segment like /en-US/ in Workday paths
LOCALE_SEGMENT_RE = re.compile(r"/[a-z]{2}-[A-Z]{2}/")

# Trailing action segments that don't change which posting a URL points at
ACTION_SUFFIXES = ("apply", "autofillwithresume", "applymanually", "usemylastapplication")

# Paths that match loose job patterns but are never a posting
NON_DETAIL_RE = re.compile(r"/(login|signin|sign-in|task|tasks|home|userhome)(/|$)", re.I)

# Path segments that introduce a job listing on arbitrary career sites
JOB_SEGMENTS = {
    "job", "jobs", "career", "careers", "position", "positions",
    "opening", "openings", "vacancy", "vacancies", "posting", "postings",
    "requisition", "requisitions",
}

# Trailing segments that mean "list of jobs" rather than one job
INDEX_SEGMENTS = {"search", "all", "list", "index", "results"}

# -- Employer names ------------------------------------------------------------

SLUG_TO_COMPANY = {
    "scaleai": "Scale AI",
    "doordashusa": "DoorDash",
    "doordash": "DoorDash",
    "robinhood": "Robinhood",
    "confluent": "Confluent",
    "stripe": "Stripe",
    "nvidia": "NVIDIA",
    "adobe": "Adobe",
    "amazon": "Amazon",
    "google": "Google",
    "microsoft": "Microsoft",
    "meta": "Meta",
    "tesla": "Tesla",
    "dell": "Dell",
    "micron": "Micron",
    "bosch": "Bosch",
    "figma": "Figma",
    "airbnb": "Airbnb",
    "lyft": "Lyft",
    "uber": "Uber",
    "snap": "Snap",
    "pinterest": "Pinterest",
    "twitter": "Twitter",
    "coinbase": "Coinbase",
    "palantir": "Palantir",
    "databricks": "Databricks",
    "snowflake": "Snowflake",
    "shopify": "Shopify",
    "square": "Square",
    "block": "Block",
    "twilio": "Twilio",
    "salesforce": "Salesforce",
    "oracle": "Oracle",
    "ibm": "IBM",
    "intel": "Intel",
    "qualcomm": "Qualcomm",
    "amd": "AMD",
    "arm": "Arm",
}


def slug_to_name(slug: str) -> str:
    """Map an employer slug to a display name.

    Known slugs come from SLUG_TO_COMPANY; anything else has dashes and
    underscores turned into spaces and each word capitalized.
    """
    lookup = re.sub(r"[-_]", "", slug.lower())
    if lookup in SLUG_TO_COMPANY:
        return SLUG_TO_COMPANY[lookup]
    spaced = re.sub(r"[-_]", " ", slug)
    return re.sub(r"\b\w", lambda m: m.group(0).upper(), spaced)


def host_is(host: str, domain: str) -> bool:
    """Host must equal the domain or be a subdomain of it."""
    return host == domain or host.endswith("." + domain)


# -- Rule type -----------------------------------------------------------------


@dataclass(frozen=True)
class SiteRule:
    name: str
    domains: tuple[str, ...]
    source_label: str
    is_apply_page: Callable[[str], bool]
    is_detail_page: Callable[[str], bool]
    derive_key: Callable[[str, str], str]
    company: Optional[Callable[[str, str, str], Optional[str]]] = None
    path_scope: str = ""

    def matches(self, host: str, path: str) -> bool:
        if self.domains and not any(host_is(host, d) for d in self.domains):
            return False
        if self.path_scope and self.path_scope not in path.lower():
            return False
        return True


# -- Helpers shared by rules ---------------------------------------------------


def strip_action_suffixes(path: str) -> str:
    """Drop trailing slashes and apply/autofill segments, repeatedly."""
    path = path.rstrip("/")
    while True:
        head, _, last = path.rpartition("/")
        if last.lower() not in ACTION_SUFFIXES or not head:
            return path
        path = head.rstrip("/")


def generic_key(host: str, path: str) -> str:
    """Host + path with no query and no trailing slash."""
    return f"{host}{path}".rstrip("/")


def _contains(fragment: str) -> Callable[[str], bool]:
    return lambda path: fragment in path.lower()


def _never(path: str) -> bool:
    return False


def _matches(pattern: str) -> Callable[[str], bool]:
    compiled = re.compile(pattern, re.I)
    return lambda path: bool(compiled.search(path))


def _id_key(prefix: str, pattern: str, fallback: str = "prefix") -> Callable[[str, str], str]:
    """Key from the first capture group(s), else prefix:path or host+path."""
    compiled = re.compile(pattern, re.I)

    def derive(host: str, path: str) -> str:
        m = compiled.search(path)
        if m:
            return f"{prefix}:" + ":".join(m.groups())
        if fallback == "host":
            return generic_key(host, path)
        return f"{prefix}:{path}"

    return derive


def _fixed(name: str) -> Callable[[str, str, str], str]:
    return lambda host, path, title: name


def _first_segment_company(host: str, path: str, title: str) -> Optional[str]:
    m = re.match(r"^/([^/]+)/", path)
    return slug_to_name(m.group(1)) if m else None


def is_generic_detail_page(path: str) -> bool:
    """Job-like segment followed by a non-empty identifier.

    /careers/jobs/4821-data-engineer counts; /careers and /jobs/search don't.
    """
    segments = [s.lower() for s in strip_action_suffixes(path).split("/") if s]
    for i, segment in enumerate(segments):
        if segment not in JOB_SEGMENTS:
            continue
        trailing = segments[i + 1:]
        if not trailing:
            return False
        last = trailing[-1]
        if last in JOB_SEGMENTS or last in INDEX_SEGMENTS:
            continue
        return True
    return False


# -- Platform-specific pieces --------------------------------------------------


def _linkedin_company(host: str, path: str, title: str) -> Optional[str]:
    # "Software Engineer at Acme | LinkedIn"
    m = re.search(r" at (.+?) [|\-]", title or "")
    return m.group(1).strip() if m else None


def _workday_key(host: str, path: str) -> str:
    p = strip_action_suffixes(path)
    p = LOCALE_SEGMENT_RE.sub("/", p, count=1)
    return f"workday:{host}{p.rstrip('/')}"


def _workday_company(host: str, path: str, title: str) -> Optional[str]:
    # nvidia.wd5.myworkdayjobs.com; bare wd5.myworkdayjobs.com names no employer
    subdomain = host.split(".")[0]
    if re.fullmatch(r"wd\d+", subdomain):
        return None
    if subdomain and subdomain not in ("www", "myworkdayjobs", "workday"):
        return slug_to_name(subdomain)
    return None


def _greenhouse_key(host: str, path: str) -> str:
    m = re.search(r"/([^/]+)/jobs/(\d+)", path)
    if m:
        return f"greenhouse:{m.group(1)}:{m.group(2)}"
    return f"greenhouse:{host}{path}"


def _greenhouse_company(host: str, path: str, title: str) -> Optional[str]:
    m = re.match(r"^/([^/]+)/jobs/", path)
    return slug_to_name(m.group(1)) if m else None


def _lever_key(host: str, path: str) -> str:
    m = re.search(r"/([^/]+)/([a-f0-9-]{36})", path, re.I)
    if m:
        return f"lever:{m.group(1)}:{m.group(2).lower()}"
    return f"lever:{host}{path}"


def _tesla_key(host: str, path: str) -> str:
    m = re.search(r"[-/](\d+)$", path.rstrip("/"))
    return f"tesla:{m.group(1)}" if m else f"tesla:{path}"


def _google_key(host: str, path: str) -> str:
    m = UUID_RE.search(path) or re.search(r"/jobs/results/(\d+)", path)
    return f"google:{m.group(1).lower()}" if m else f"google:{path}"


def _google_detail(path: str) -> bool:
    return bool(UUID_RE.search(path) or re.search(r"/jobs/results/\d+", path))


# -- The table -----------------------------------------------------------------

GENERIC_RULE = SiteRule(
    name="generic",
    domains=(),
    source_label="CompanySite",
    is_apply_page=_contains("/apply"),
    is_detail_page=is_generic_detail_page,
    derive_key=generic_key,
)

SITE_RULES: tuple[SiteRule, ...] = (
    # Easy Apply is a modal, there is no /apply URL
    SiteRule(
        name="linkedin",
        domains=("linkedin.com",),
        source_label="LinkedIn",
        is_apply_page=_never,
        is_detail_page=_matches(r"/jobs/view/\d+"),
        derive_key=_id_key("linkedin", r"/jobs/view/(\d+)"),
        company=_linkedin_company,
    ),
    # /apply or /apply/autofillWithResume
    SiteRule(
        name="workday",
        domains=("myworkdayjobs.com", "workday.com"),
        source_label="Workday",
        is_apply_page=_contains("/apply"),
        is_detail_page=_matches(r"/(job|details)/.*_[a-z]*\d[\w-]*"),
        derive_key=_workday_key,
        company=_workday_company,
    ),
    # Application form is on the posting page itself
    SiteRule(
        name="greenhouse",
        domains=("greenhouse.io",),
        source_label="Greenhouse",
        is_apply_page=_never,
        is_detail_page=_matches(r"^/[^/]+/jobs/\d+"),
        derive_key=_greenhouse_key,
        company=_greenhouse_company,
    ),
    SiteRule(
        name="lever",
        domains=("lever.co",),
        source_label="Lever",
        is_apply_page=_contains("/apply"),
        is_detail_page=_matches(r"^/[^/]+/[a-f0-9-]{36}"),
        derive_key=_lever_key,
        company=_first_segment_company,
    ),
    # /careers/search/job/apply/{id}
    SiteRule(
        name="tesla",
        domains=("tesla.com",),
        source_label="CompanySite",
        is_apply_page=_contains("/apply/"),
        is_detail_page=_matches(r"/careers/search/job/(apply/)?[\w-]*\d+/?$"),
        derive_key=_tesla_key,
        company=_fixed("Tesla"),
    ),
    SiteRule(
        name="google",
        domains=("google.com",),
        source_label="Google Careers",
        is_apply_page=_contains("/apply"),
        is_detail_page=_google_detail,
        derive_key=_google_key,
        company=_fixed("Google"),
        path_scope="/careers/",
    ),
    SiteRule(
        name="amazon",
        domains=("amazon.jobs",),
        source_label="Amazon Jobs",
        is_apply_page=_never,
        is_detail_page=_matches(r"/jobs/\d+"),
        derive_key=_id_key("amazon", r"/jobs/(\d+)"),
        company=_fixed("Amazon"),
    ),
    SiteRule(
        name="meta",
        domains=("metacareers.com",),
        source_label="Meta Careers",
        is_apply_page=_never,
        is_detail_page=_matches(r"/(job_details|jobs)/([^/]*-)?\d+"),
        derive_key=_id_key("meta", r"/(?:job_details|jobs)/(?:[^/]*-)?(\d+)"),
        company=_fixed("Meta"),
    ),
    SiteRule(
        name="microsoft",
        domains=("microsoft.com",),
        source_label="CompanySite",
        is_apply_page=_never,
        is_detail_page=_matches(r"/job/\d+"),
        derive_key=_id_key("microsoft", r"/job/(\d+)", fallback="host"),
        company=_fixed("Microsoft"),
    ),
    SiteRule(
        name="adobe",
        domains=("adobe.com",),
        source_label="CompanySite",
        is_apply_page=_never,
        is_detail_page=_matches(r"/job/[a-z]?\d+"),
        derive_key=_id_key("adobe", r"/job/([a-z]?\d+)", fallback="host"),
        company=_fixed("Adobe"),
    ),
    # /jobs/listing/{slug}/{id}/apply
    SiteRule(
        name="stripe",
        domains=("stripe.com",),
        source_label="CompanySite",
        is_apply_page=_contains("/apply"),
        is_detail_page=_matches(r"/jobs/listing/[^/]+/\d+"),
        derive_key=_id_key("stripe", r"/jobs/listing/[^/]+/(\d+)", fallback="host"),
        company=_fixed("Stripe"),
    ),
    # smartrecruiters.com/{company}/{id}-{title}
    SiteRule(
        name="smartrecruiters",
        domains=("smartrecruiters.com",),
        source_label="SmartRecruiters",
        is_apply_page=_contains("/apply"),
        is_detail_page=_matches(r"^/[^/]+/\d+"),
        derive_key=_id_key("smartrecruiters", r"^/([^/]+)/(\d+)", fallback="host"),
        company=_first_segment_company,
    ),
    SiteRule(
        name="micron",
        domains=("micron.com",),
        source_label="CompanySite",
        is_apply_page=_contains("/apply"),
        is_detail_page=is_generic_detail_page,
        derive_key=generic_key,
        company=_fixed("Micron"),
    ),
    SiteRule(
        name="bosch",
        domains=("bosch.com",),
        source_label="CompanySite",
        is_apply_page=_contains("/apply"),
        is_detail_page=is_generic_detail_page,
        derive_key=generic_key,
        company=_fixed("Bosch"),
    ),
)


def find_rule(host: str, path: str) -> SiteRule:
    """First matching rule for a lowercased host, or the generic rule."""
    for rule in SITE_RULES:
        if rule.matches(host, path):
            return rule
    return GENERIC_RULE
