"""Load and validate the YAML configuration file.

Two views of the same file:
  - Config: startup settings, validated once (storage, policy, timings).
  - RuntimeSettings: sink URL and pause flag, re-read for every event so
    edits take effect without a restart.

JOBTRACK_SINK_URL and JOBTRACK_PAUSED (from the environment or .env)
override the file.
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from urllib.parse import urlsplit

import yaml
from dotenv import load_dotenv

from jobtrack.classifier import POLICIES
from jobtrack.errors import ConfigError

logger = logging.getLogger("jobtrack")

APPS_SCRIPT_PREFIX = "https://script.google.com/macros/s/"

_TRUTHY = {"1", "true", "yes", "on"}


@dataclass
class RetrySettings:
    max_attempts: int = 5
    backoff_base_seconds: float = 30.0
    backoff_max_seconds: float = 3600.0


@dataclass
class Config:
    state_path: Path = Path("data/state.json")
    log_dir: Path = Path("data")
    policy: str = "apply_intent"
    debounce_seconds: float = 2.5
    dedupe_window_days: float = 7.0
    sink_timeout_seconds: float = 15.0
    maintenance_interval_minutes: float = 60.0
    retry: RetrySettings = field(default_factory=RetrySettings)
    job_search_start_date: str = ""
    browser_user_data_dir: str = "browser_data"
    browser_headless: bool = False
    browser_start_url: str = ""


@dataclass
class RuntimeSettings:
    sink_url: str = ""
    paused: bool = False


def validate_sink_url(url: str, warn: bool = True) -> str:
    """Return the stripped URL, or raise ConfigError if it isn't http(s)."""
    url = (url or "").strip()
    if not url:
        return ""
    parts = urlsplit(url)
    if parts.scheme not in ("http", "https") or not parts.netloc:
        raise ConfigError(f"sink.url must be an http(s) URL, got: {url!r}")
    if warn and not url.startswith(APPS_SCRIPT_PREFIX):
        logger.warning("sink.url is not a Google Apps Script web app URL: %s", url)
    return url


def _read_yaml(config_path: Path) -> dict:
    if not config_path.exists():
        raise ConfigError(
            f"Config not found: {config_path}\n"
            "Copy config.example.yaml to config.yaml and fill in your details."
        )

    try:
        with open(config_path) as f:
            raw = yaml.safe_load(f) or {}
    except yaml.YAMLError as e:
        raise ConfigError(f"Invalid YAML in {config_path}: {e}") from e

    if not isinstance(raw, dict):
        raise ConfigError(f"{config_path} must contain a mapping at the top level.")
    return raw


def _positive(section: dict, key: str, default: float, allow_zero: bool = False) -> float:
    value = section.get(key, default)
    try:
        value = float(value)
    except (TypeError, ValueError):
        raise ConfigError(f"{key} must be a number, got: {value!r}") from None
    if value < 0 or (value == 0 and not allow_zero):
        raise ConfigError(f"{key} must be {'>= 0' if allow_zero else '> 0'}, got: {value}")
    return value


def load_config(config_path: Path) -> Config:
    """Load config.yaml and .env, validate startup fields, return Config."""
    load_dotenv()
    raw = _read_yaml(config_path)

    storage = raw.get("storage", {}) or {}
    tracking = raw.get("tracking", {}) or {}
    sink = raw.get("sink", {}) or {}
    retry = raw.get("retry", {}) or {}
    maintenance = raw.get("maintenance", {}) or {}
    browser = raw.get("browser", {}) or {}

    policy = str(tracking.get("policy", "apply_intent")).lower()
    if policy not in POLICIES:
        raise ConfigError(
            f"tracking.policy must be one of: {', '.join(POLICIES)} (got {policy!r})"
        )

    max_attempts = retry.get("max_attempts", 5)
    if not isinstance(max_attempts, int) or max_attempts < 1:
        raise ConfigError(f"retry.max_attempts must be a positive integer, got: {max_attempts!r}")

    # Fail fast on a malformed URL; the value itself is re-read per event
    validate_sink_url(os.getenv("JOBTRACK_SINK_URL") or sink.get("url", ""))

    return Config(
        state_path=Path(storage.get("state_path", "data/state.json")),
        log_dir=Path(storage.get("log_dir", "data")),
        policy=policy,
        debounce_seconds=_positive(tracking, "debounce_seconds", 2.5, allow_zero=True),
        dedupe_window_days=_positive(tracking, "dedupe_window_days", 7.0),
        sink_timeout_seconds=_positive(sink, "timeout_seconds", 15.0),
        maintenance_interval_minutes=_positive(maintenance, "interval_minutes", 60.0),
        retry=RetrySettings(
            max_attempts=max_attempts,
            backoff_base_seconds=_positive(retry, "backoff_base_seconds", 30.0, allow_zero=True),
            backoff_max_seconds=_positive(retry, "backoff_max_seconds", 3600.0, allow_zero=True),
        ),
        job_search_start_date=str(tracking.get("job_search_start_date", "") or ""),
        browser_user_data_dir=browser.get("user_data_dir", "browser_data"),
        browser_headless=bool(browser.get("headless", False)),
        browser_start_url=browser.get("start_url", "") or "",
    )


def load_runtime_settings(config_path: Path) -> RuntimeSettings:
    """Read the sink URL and pause flag, applying environment overrides."""
    raw = _read_yaml(config_path)
    sink = raw.get("sink", {}) or {}
    tracking = raw.get("tracking", {}) or {}

    paused = bool(tracking.get("paused", False))
    env_paused = os.getenv("JOBTRACK_PAUSED")
    if env_paused is not None:
        paused = env_paused.strip().lower() in _TRUTHY

    return RuntimeSettings(
        sink_url=validate_sink_url(os.getenv("JOBTRACK_SINK_URL") or sink.get("url", ""), warn=False),
        paused=paused,
    )


class RuntimeSettingsFile:
    """Callable that re-reads RuntimeSettings on each call.

    A broken edit to the file keeps the last good settings instead of
    stopping the pipeline.
    """

    def __init__(self, config_path: Path):
        self._path = Path(config_path)
        self._last_good = RuntimeSettings()

    def __call__(self) -> RuntimeSettings:
        try:
            self._last_good = load_runtime_settings(self._path)
        except ConfigError as e:
            logger.warning("Could not re-read settings (%s). Using last known values.", e)
        return self._last_good
