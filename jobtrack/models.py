"""Data models for observed events, outgoing records, and queued deliveries."""

from __future__ import annotations

import random
import uuid
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum

from jobtrack.utils import from_iso, to_iso, utcnow


class Classification(Enum):
    SKIP = "skip"
    TRACK_AS_APPLIED = "track_as_applied"
    TRACK_AS_VIEWED = "track_as_viewed"


class ApplicationStatus(Enum):
    APPLIED = "Applied"
    VIEWED = "Viewed"


@dataclass
class NavigationEvent:
    raw_target: str
    display_title: str = ""
    observed_at: datetime = field(default_factory=utcnow)


@dataclass
class UploadEvent:
    file_name: str
    mime_type: str
    byte_size: int
    encoded_content: str
    origin_target: str
    origin_title: str = ""


def generate_record_id(now: datetime | None = None) -> str:
    """Sortable id like 20240131-142501-042 (local time + 3 random digits)."""
    local = (now or utcnow()).astimezone()
    return f"{local:%Y%m%d-%H%M%S}-{random.randint(0, 999):03d}"


def format_timestamp(value: datetime) -> str:
    """Spreadsheet-friendly local timestamp, e.g. 1/31/2024 14:25:01."""
    local = value.astimezone()
    return f"{local.month}/{local.day}/{local.year} {local:%H:%M:%S}"


@dataclass(frozen=True)
class ApplicationRecord:
    record_id: str
    created_at: datetime
    company: str
    role_title: str
    origin_target: str
    source_label: str
    status: ApplicationStatus
    canonical_key: str

    def to_payload(self) -> dict:
        """Serialize to the JSON body the sink expects."""
        return {
            "app_id": self.record_id,
            "timestamp": format_timestamp(self.created_at),
            "company": self.company,
            "role_title": self.role_title,
            "jd_url": self.origin_target,
            "source": self.source_label,
            "resume_version": "UNKNOWN",
            "status": self.status.value,
            "canonical_key": self.canonical_key,
        }


@dataclass(frozen=True)
class ResumeUploadRecord:
    file_name: str
    mime_type: str
    byte_size: int
    encoded_content: str
    company: str
    role_title: str
    canonical_key: str
    origin_target: str

    def to_payload(self) -> dict:
        return {
            "action": "uploadResume",
            "fileName": self.file_name,
            "mimeType": self.mime_type,
            "fileSize": self.byte_size,
            "fileData": self.encoded_content,
            "company": self.company,
            "role_title": self.role_title,
            "canonical_key": self.canonical_key,
            "jd_url": self.origin_target,
        }


@dataclass
class QueuedDelivery:
    """A payload waiting for redelivery, as stored in the persisted queue."""

    payload: dict
    attempt_count: int = 0
    entry_id: str = field(default_factory=lambda: uuid.uuid4().hex)
    next_attempt_at: datetime | None = None

    def is_due(self, now: datetime) -> bool:
        return self.next_attempt_at is None or self.next_attempt_at <= now

    def to_dict(self) -> dict:
        return {
            "entry_id": self.entry_id,
            "payload": self.payload,
            "attempts": self.attempt_count,
            "next_attempt_at": to_iso(self.next_attempt_at) if self.next_attempt_at else None,
        }

    @classmethod
    def from_dict(cls, raw: dict) -> QueuedDelivery:
        next_at = raw.get("next_attempt_at")
        return cls(
            payload=raw.get("payload", {}),
            attempt_count=int(raw.get("attempts", 0)),
            entry_id=raw.get("entry_id") or uuid.uuid4().hex,
            next_attempt_at=from_iso(next_at) if next_at else None,
        )
