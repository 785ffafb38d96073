"""At-least-once delivery of application records to the sink.

`send()` tries once right away. If the sink URL is missing or the POST
fails, the payload goes into the persisted queue. `flush()` retries
everything that is due: successes leave the queue, failures count an
attempt and are dropped once they reach `max_attempts`.

Failed entries wait a jittered exponential delay before their next
attempt (`retry.backoff_base_seconds: 0` retries on every flush).
Flushes are serialized and reconcile by entry id, so a `send()` landing
mid-flush never loses or duplicates an entry.
"""

from __future__ import annotations

import asyncio
import copy
import logging
import uuid
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Callable, Optional

from jobtrack.errors import DeliveryError
from jobtrack.models import QueuedDelivery
from jobtrack.sink import SinkClient
from jobtrack.state import StateStore
from jobtrack.status import StatusBoard
from jobtrack.utils import backoff_delay, utcnow

logger = logging.getLogger("jobtrack")

MAX_ATTEMPTS = 5


@dataclass
class FlushResult:
    delivered: int = 0
    retained: int = 0
    dropped: int = 0
    skipped_not_due: int = 0


class DeliveryQueue:
    def __init__(
        self,
        store: StateStore,
        sink: SinkClient,
        status: StatusBoard,
        sink_url: Callable[[], Optional[str]],
        max_attempts: int = MAX_ATTEMPTS,
        backoff_base_seconds: float = 30.0,
        backoff_max_seconds: float = 3600.0,
        clock: Callable[[], datetime] = utcnow,
    ):
        self._store = store
        self._sink = sink
        self._status = status
        self._sink_url = sink_url
        self._max_attempts = max_attempts
        self._backoff_base = backoff_base_seconds
        self._backoff_max = backoff_max_seconds
        self._clock = clock
        self._flush_lock = asyncio.Lock()

    def _next_attempt_at(self, attempt: int) -> datetime:
        return self._clock() + timedelta(
            seconds=backoff_delay(attempt, self._backoff_base, self._backoff_max)
        )

    async def _enqueue(self, payload: dict, schedule_backoff: bool) -> None:
        entry = QueuedDelivery(
            payload=payload,
            next_attempt_at=self._next_attempt_at(0) if schedule_backoff else None,
        )
        async with self._store.transaction() as state:
            state["queue"].append(entry.to_dict())
            size = len(state["queue"])
        logger.info("Queued %s for retry (%d in queue).", _describe(payload), size)

    async def send(self, payload: dict) -> bool:
        """Deliver now if possible, otherwise queue. Returns True if delivered."""
        url = self._sink_url()
        if not url:
            await self._status.set_needs_configuration(True)
            await self._enqueue(payload, schedule_backoff=False)
            return False

        try:
            await self._sink.post_json(url, payload)
        except DeliveryError as e:
            logger.warning("Delivery of %s failed: %s", _describe(payload), e)
            await self._status.log_error(str(e), payload)
            await self._enqueue(payload, schedule_backoff=True)
            return False

        logger.info("Delivered %s.", _describe(payload))
        await self._status.set_needs_configuration(False)
        await self._status.record_delivery(payload)
        await self.flush()
        return True

    async def flush(self, force: bool = False) -> FlushResult:
        """Retry queued entries that are due (all of them if force=True)."""
        result = FlushResult()
        url = self._sink_url()
        if not url:
            return result

        async with self._flush_lock:
            now = self._clock()
            async with self._store.transaction() as state:
                for raw in state["queue"]:
                    raw.setdefault("entry_id", uuid.uuid4().hex)
                entries = [QueuedDelivery.from_dict(copy.deepcopy(raw)) for raw in state["queue"]]

            due = [e for e in entries if force or e.is_due(now)]
            result.skipped_not_due = len(entries) - len(due)
            if not due:
                return result

            delivered: dict[str, dict] = {}
            failed: dict[str, str] = {}
            for entry in due:
                try:
                    await self._sink.post_json(url, entry.payload)
                except DeliveryError as e:
                    failed[entry.entry_id] = str(e)
                    continue
                delivered[entry.entry_id] = entry.payload

            dropped: list[QueuedDelivery] = []
            async with self._store.transaction() as state:
                remaining = []
                for raw in state["queue"]:
                    entry = QueuedDelivery.from_dict(raw)
                    if entry.entry_id in delivered:
                        continue
                    if entry.entry_id in failed:
                        entry.attempt_count += 1
                        if entry.attempt_count >= self._max_attempts:
                            dropped.append(entry)
                            continue
                        entry.next_attempt_at = self._next_attempt_at(entry.attempt_count)
                    remaining.append(entry.to_dict())
                state["queue"] = remaining

        result.delivered = len(delivered)
        result.dropped = len(dropped)
        result.retained = len(failed) - len(dropped)

        if delivered:
            await self._status.set_needs_configuration(False)
            for payload in delivered.values():
                await self._status.record_delivery(payload)
        for entry in dropped:
            message = (
                f"Dropped {_describe(entry.payload)} after {entry.attempt_count} failed attempts: "
                f"{failed[entry.entry_id]}"
            )
            logger.error(message)
            await self._status.log_error(message, entry.payload)

        logger.info(
            "Flush: %d delivered, %d kept for retry, %d dropped, %d not yet due.",
            result.delivered, result.retained, result.dropped, result.skipped_not_due,
        )
        return result

    async def pending(self) -> list[QueuedDelivery]:
        return [QueuedDelivery.from_dict(raw) for raw in await self._store.read("queue")]


def _describe(payload: dict) -> str:
    company = payload.get("company") or "?"
    role = payload.get("role_title") or "?"
    return f"'{role}' at {company}"
