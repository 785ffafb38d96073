"""Wire classification, dedup, extraction, and delivery into one pipeline.

Navigation events:
    classify -> wait for the title to settle -> paused? -> canonical key
    -> duplicate? -> extract company/role -> send (or queue)

Upload events (no retry, the file content is not kept):
    resume-like? -> paused? -> configured? -> duplicate? -> POST

Each handler returns an outcome instead of raising; one bad event never
stops the ones after it.
"""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime
from enum import Enum
from typing import Awaitable, Callable, Optional

from jobtrack.classifier import ClassificationPolicy, status_for
from jobtrack.config_loader import RuntimeSettings
from jobtrack.delivery import DeliveryQueue, FlushResult
from jobtrack.errors import DeliveryError
from jobtrack.extractor import extract
from jobtrack.keys import derive_key
from jobtrack.models import (
    ApplicationRecord,
    Classification,
    NavigationEvent,
    ResumeUploadRecord,
    UploadEvent,
    generate_record_id,
)
from jobtrack.sink import SinkClient, parse_upload_response
from jobtrack.status import StatusBoard
from jobtrack.tracker import ResumeUploadTracker, SeenKeyTracker
from jobtrack.utils import utcnow

logger = logging.getLogger("jobtrack")

TITLE_WAIT_SECONDS = 2.5

RESUME_MAX_BYTES = 10 * 1024 * 1024
RESUME_MIME_TYPES = {
    "application/pdf",
    "application/vnd.openxmlformats-officedocument.wordprocessingml.document",
}

TitleSource = Callable[[], Awaitable[str]]


class NavigationOutcome(Enum):
    SKIPPED = "skipped"
    PAUSED = "paused"
    SUPPRESSED = "suppressed"
    DELIVERED = "delivered"
    QUEUED = "queued"
    FAILED = "failed"


class UploadOutcome(Enum):
    REJECTED = "rejected"
    PAUSED = "paused"
    NOT_CONFIGURED = "not_configured"
    SUPPRESSED = "suppressed"
    UPLOADED = "uploaded"
    FAILED = "failed"


def resume_rejection_reason(event: UploadEvent) -> Optional[str]:
    """Why an upload doesn't look like a resume, or None if it does."""
    if event.mime_type not in RESUME_MIME_TYPES:
        return f"mime type {event.mime_type!r}"
    if event.byte_size > RESUME_MAX_BYTES:
        return f"size {event.byte_size} bytes over limit"
    if not event.encoded_content:
        return "empty content"
    return None


class EventOrchestrator:
    """Entry points for the browser observer plus periodic maintenance."""

    def __init__(
        self,
        policy: ClassificationPolicy,
        seen: SeenKeyTracker,
        resumes: ResumeUploadTracker,
        queue: DeliveryQueue,
        sink: SinkClient,
        status: StatusBoard,
        settings: Callable[[], RuntimeSettings],
        debounce_seconds: float = TITLE_WAIT_SECONDS,
        clock: Callable[[], datetime] = utcnow,
    ):
        self._policy = policy
        self._seen = seen
        self._resumes = resumes
        self._queue = queue
        self._sink = sink
        self._status = status
        self._settings = settings
        self._debounce = debounce_seconds
        self._clock = clock

    # -- Navigation ------------------------------------------------------------

    async def on_navigation(
        self, event: NavigationEvent, title_source: Optional[TitleSource] = None
    ) -> NavigationOutcome:
        """Handle a finished page load.

        title_source, if given, is awaited after the debounce wait to read
        the page title again (SPAs often set it late).
        """
        try:
            return await self._handle_navigation(event, title_source)
        except Exception as e:
            logger.error("Error handling navigation to %s: %s", event.raw_target, e)
            await self._record_failure(f"Navigation handling failed: {e}", {"url": event.raw_target})
            return NavigationOutcome.FAILED

    async def _handle_navigation(
        self, event: NavigationEvent, title_source: Optional[TitleSource]
    ) -> NavigationOutcome:
        classification = self._policy.classify(event.raw_target)
        if classification is Classification.SKIP:
            logger.debug("Not trackable under %s: %s", self._policy.name, event.raw_target)
            return NavigationOutcome.SKIPPED

        # Wait for SPA title updates
        if self._debounce > 0:
            await asyncio.sleep(self._debounce)

        title = event.display_title
        if title_source is not None:
            try:
                title = await title_source() or title
            except Exception as e:
                logger.debug("Could not re-read title for %s (%s). Using the first one.", event.raw_target, e)

        if self._settings().paused:
            logger.debug("Tracking paused. Dropping %s.", event.raw_target)
            return NavigationOutcome.PAUSED

        key = derive_key(event.raw_target)
        if await self._seen.check_and_mark(key):
            logger.debug("Already tracked %s in the dedupe window.", key)
            return NavigationOutcome.SUPPRESSED

        attrs = extract(event.raw_target, title)
        now = self._clock()
        record = ApplicationRecord(
            record_id=generate_record_id(now),
            created_at=now,
            company=attrs.company,
            role_title=attrs.role_title,
            origin_target=event.raw_target,
            source_label=attrs.source_label,
            status=status_for(classification),
            canonical_key=key,
        )
        logger.info(
            "Tracked [%s] %s at %s (%s, key=%s)",
            record.status.value, record.role_title, record.company, record.source_label, key,
        )

        delivered = await self._queue.send(record.to_payload())
        return NavigationOutcome.DELIVERED if delivered else NavigationOutcome.QUEUED

    # -- Uploads ---------------------------------------------------------------

    async def on_upload(self, event: UploadEvent) -> UploadOutcome:
        """Forward a resume upload once per job and file name."""
        try:
            return await self._handle_upload(event)
        except Exception as e:
            logger.error("Error handling upload of %s: %s", event.file_name, e)
            await self._record_failure(
                f"Upload handling failed: {e}",
                {"fileName": event.file_name, "url": event.origin_target},
            )
            return UploadOutcome.FAILED

    async def _handle_upload(self, event: UploadEvent) -> UploadOutcome:
        reason = resume_rejection_reason(event)
        if reason:
            logger.debug("Ignoring upload %s: %s", event.file_name, reason)
            return UploadOutcome.REJECTED

        settings = self._settings()
        if settings.paused:
            logger.debug("Tracking paused. Dropping upload %s.", event.file_name)
            return UploadOutcome.PAUSED

        if not settings.sink_url:
            await self._status.set_needs_configuration(True)
            await self._status.log_error(
                "Resume upload dropped: sink URL is not configured",
                {"fileName": event.file_name, "url": event.origin_target},
            )
            return UploadOutcome.NOT_CONFIGURED

        key = derive_key(event.origin_target)
        if await self._resumes.check_and_mark(key, event.file_name):
            logger.debug("Already uploaded %s for %s.", event.file_name, key)
            return UploadOutcome.SUPPRESSED

        attrs = extract(event.origin_target, event.origin_title)
        record = ResumeUploadRecord(
            file_name=event.file_name,
            mime_type=event.mime_type,
            byte_size=event.byte_size,
            encoded_content=event.encoded_content,
            company=attrs.company,
            role_title=attrs.role_title,
            canonical_key=key,
            origin_target=event.origin_target,
        )
        payload = record.to_payload()

        try:
            resp = await self._sink.post_json(settings.sink_url, payload)
        except DeliveryError as e:
            logger.warning("Resume upload %s failed: %s", event.file_name, e)
            await self._status.log_error(f"Resume upload failed: {e}", payload)
            return UploadOutcome.FAILED

        ok, drive_url = parse_upload_response(resp)
        if not ok:
            logger.warning("Sink rejected resume upload %s.", event.file_name)
            await self._status.log_error("Resume upload rejected by sink", payload)
            return UploadOutcome.FAILED

        await self._status.set_needs_configuration(False)
        await self._status.record_resume(event.file_name, drive_url)
        logger.info("Uploaded resume %s for %s at %s.", event.file_name, attrs.role_title, attrs.company)
        return UploadOutcome.UPLOADED

    # -- Maintenance -----------------------------------------------------------

    async def maintain(self) -> Optional[FlushResult]:
        """Sweep expired keys and flush the delivery queue once."""
        try:
            await self._seen.sweep_expired()
            return await self._queue.flush()
        except Exception as e:
            logger.error("Maintenance failed: %s", e)
            await self._record_failure(f"Maintenance failed: {e}")
            return None

    async def run_maintenance(self, interval_seconds: float) -> None:
        """Run `maintain()` every interval until cancelled."""
        while True:
            await asyncio.sleep(interval_seconds)
            await self.maintain()

    async def _record_failure(self, message: str, context: Optional[dict] = None) -> None:
        # The error log lives in the same state file; if that is what broke,
        # the console log above is all we get.
        try:
            await self._status.log_error(message, context)
        except Exception as e:
            logger.error("Could not write error log: %s", e)
