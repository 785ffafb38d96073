"""Deduplication of tracked jobs and resume uploads.

Two separate key sets live in the shared state file:
  - seen_keys: canonical job keys, each expiring after the dedupe window
    (7 days by default). A key is marked seen as soon as it passes the
    duplicate check, before delivery is attempted, so a failed POST does
    not reopen the window. Retrying is the delivery queue's job.
  - resume_keys: canonical key + file name for resume uploads. These never
    expire.
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta
from typing import Callable

from jobtrack.state import StateStore
from jobtrack.utils import from_iso, to_iso, utcnow

logger = logging.getLogger("jobtrack")

DEDUPE_WINDOW = timedelta(days=7)


class SeenKeyTracker:
    """Time-windowed membership set of canonical keys."""

    def __init__(
        self,
        store: StateStore,
        window: timedelta = DEDUPE_WINDOW,
        clock: Callable[[], datetime] = utcnow,
    ):
        self._store = store
        self._window = window
        self._clock = clock

    def _is_live(self, first_seen: str, now: datetime) -> bool:
        try:
            return now - from_iso(first_seen) < self._window
        except (TypeError, ValueError):
            return False

    async def is_duplicate(self, key: str) -> bool:
        """True if the key was seen less than one window ago. Purges it if expired."""
        async with self._store.transaction() as state:
            seen = state["seen_keys"]
            if key not in seen:
                return False
            if self._is_live(seen[key], self._clock()):
                return True
            del seen[key]
            return False

    async def mark_seen(self, key: str) -> None:
        async with self._store.transaction() as state:
            state["seen_keys"][key] = to_iso(self._clock())

    async def check_and_mark(self, key: str) -> bool:
        """Duplicate check and mark in one critical section.

        Returns True if the key is a duplicate (nothing changed), False if it
        was fresh and is now marked seen.
        """
        async with self._store.transaction() as state:
            seen = state["seen_keys"]
            now = self._clock()
            if key in seen and self._is_live(seen[key], now):
                return True
            seen[key] = to_iso(now)
            return False

    async def sweep_expired(self) -> int:
        """Remove every key past the window. Returns how many were removed."""
        async with self._store.transaction() as state:
            seen = state["seen_keys"]
            now = self._clock()
            expired = [key for key, ts in seen.items() if not self._is_live(ts, now)]
            for key in expired:
                del seen[key]

        if expired:
            logger.info("Swept %d expired job keys.", len(expired))
        return len(expired)

    async def count(self) -> int:
        return len(await self._store.read("seen_keys"))


class ResumeUploadTracker:
    """Non-expiring set of (job, file name) pairs already uploaded."""

    def __init__(self, store: StateStore, clock: Callable[[], datetime] = utcnow):
        self._store = store
        self._clock = clock

    @staticmethod
    def upload_key(canonical_key: str, file_name: str) -> str:
        return f"{canonical_key}::{file_name}"

    async def check_and_mark(self, canonical_key: str, file_name: str) -> bool:
        """Returns True if already uploaded, otherwise marks it and returns False."""
        key = self.upload_key(canonical_key, file_name)
        async with self._store.transaction() as state:
            uploads = state["resume_keys"]
            if key in uploads:
                return True
            uploads[key] = to_iso(self._clock())
            return False
