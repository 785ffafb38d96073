"""Diagnostics read by the status surface (`main.py --status`).

Keeps the "needs configuration" flag, a rolling error log capped at
MAX_ERROR_LOG entries, today's delivery count, and the last job and
resume that reached the sink.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Callable

from jobtrack.state import StateStore
from jobtrack.utils import to_iso, utcnow

logger = logging.getLogger("jobtrack")

MAX_ERROR_LOG = 50

# Payload fields too large or too sensitive for the error log
_REDACTED_FIELDS = {"fileData"}


@dataclass
class StatusSnapshot:
    needs_configuration: bool
    today_count: int
    queue_length: int
    last_job: dict = field(default_factory=dict)
    last_resume: dict = field(default_factory=dict)
    error_log: list[dict] = field(default_factory=list)


def _summarize(context: Any) -> Any:
    if isinstance(context, dict):
        return {k: ("<omitted>" if k in _REDACTED_FIELDS else v) for k, v in context.items()}
    return context


class StatusBoard:
    def __init__(self, store: StateStore, clock: Callable[[], datetime] = utcnow):
        self._store = store
        self._clock = clock

    def _today(self) -> str:
        return self._clock().astimezone().date().isoformat()

    async def set_needs_configuration(self, needed: bool) -> None:
        async with self._store.transaction() as state:
            changed = state["needs_configuration"] != needed
            state["needs_configuration"] = needed
        if changed and needed:
            logger.warning("Sink URL is not configured. Records will queue until it is set.")
        elif changed:
            logger.info("Sink reachable again. Cleared the needs-configuration flag.")

    async def needs_configuration(self) -> bool:
        return await self._store.read("needs_configuration")

    async def log_error(self, message: str, context: Any = None) -> None:
        entry = {"message": message, "context": _summarize(context), "ts": to_iso(self._clock())}
        async with self._store.transaction() as state:
            log = state["error_log"]
            log.append(entry)
            if len(log) > MAX_ERROR_LOG:
                del log[: len(log) - MAX_ERROR_LOG]

    async def record_delivery(self, payload: dict) -> None:
        """Bump today's count and remember the last delivered job."""
        today = self._today()
        async with self._store.transaction() as state:
            stats = state["stats"]
            count = stats.get("today_count", 0) if stats.get("today_date") == today else 0
            stats["today_count"] = count + 1
            stats["today_date"] = today
            stats["last_job"] = {
                "company": payload.get("company", ""),
                "role_title": payload.get("role_title", ""),
            }

    async def record_resume(self, file_name: str, drive_url: str | None) -> None:
        async with self._store.transaction() as state:
            state["stats"]["last_resume"] = {"file_name": file_name, "drive_url": drive_url or ""}

    async def snapshot(self) -> StatusSnapshot:
        state = await self._store.read()
        stats = state["stats"]
        today_count = stats.get("today_count", 0) if stats.get("today_date") == self._today() else 0
        return StatusSnapshot(
            needs_configuration=state["needs_configuration"],
            today_count=today_count,
            queue_length=len(state["queue"]),
            last_job=stats.get("last_job", {}),
            last_resume=stats.get("last_resume", {}),
            error_log=state["error_log"],
        )
