"""Shared utilities: logging, clock, and retry backoff."""

import logging
import random
import sys
from datetime import datetime, timezone
from pathlib import Path


def setup_logging(verbose: bool = False, log_dir: Path | str = "data") -> logging.Logger:
    """Configure console + file logging. Returns the root project logger."""
    logger = logging.getLogger("jobtrack")
    logger.setLevel(logging.DEBUG if verbose else logging.INFO)

    # Console handler
    console = logging.StreamHandler(sys.stdout)
    console.setLevel(logging.DEBUG if verbose else logging.INFO)
    fmt = logging.Formatter("%(asctime)s [%(levelname)s] %(message)s", datefmt="%H:%M:%S")
    console.setFormatter(fmt)
    logger.addHandler(console)

    # File handler for full debug log
    log_dir = Path(log_dir)
    log_dir.mkdir(parents=True, exist_ok=True)
    file_handler = logging.FileHandler(log_dir / "session.log", mode="a")
    file_handler.setLevel(logging.DEBUG)
    file_handler.setFormatter(
        logging.Formatter("%(asctime)s [%(levelname)s] %(name)s: %(message)s")
    )
    logger.addHandler(file_handler)

    return logger


def utcnow() -> datetime:
    """Timezone-aware current time. Every store takes this as its default clock."""
    return datetime.now(timezone.utc)


def to_iso(value: datetime) -> str:
    return value.astimezone(timezone.utc).isoformat()


def from_iso(value: str) -> datetime:
    parsed = datetime.fromisoformat(value)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def backoff_delay(attempt: int, base_seconds: float, max_seconds: float) -> float:
    """Full-jitter exponential backoff for the given (zero-based) attempt.

    Returns 0 when base_seconds is 0, which keeps retries immediate.
    """
    if base_seconds <= 0:
        return 0.0
    ceiling = min(max_seconds, base_seconds * (2 ** attempt))
    return random.uniform(0, ceiling)
