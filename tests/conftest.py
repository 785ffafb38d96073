"""Shared fixtures: temp state, a controllable clock, and a fake sink."""

from __future__ import annotations

import asyncio
import json
from datetime import datetime, timedelta, timezone

import httpx
import pytest

from jobtrack.classifier import get_policy
from jobtrack.config_loader import RuntimeSettings
from jobtrack.delivery import DeliveryQueue
from jobtrack.orchestrator import EventOrchestrator
from jobtrack.sink import SinkClient
from jobtrack.state import StateStore
from jobtrack.status import StatusBoard
from jobtrack.tracker import ResumeUploadTracker, SeenKeyTracker

SINK_URL = "https://script.google.com/macros/s/test-deployment/exec"


class FakeClock:
    def __init__(self, start: datetime | None = None):
        self.now = start or datetime(2024, 1, 15, 12, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now += timedelta(**kwargs)


class SinkRecorder:
    """httpx MockTransport handler that records requests and plays back a status."""

    def __init__(self):
        self.requests: list[httpx.Request] = []
        self.status_code = 200
        self.body: dict | None = {"ok": True}
        self.error: Exception | None = None
        # Set to an Event to park the next request until it is set
        self.hold: asyncio.Event | None = None
        self.held = asyncio.Event()

    async def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if self.hold is not None:
            release, self.hold = self.hold, None
            self.held.set()
            await release.wait()
        if self.error is not None:
            raise self.error
        if self.body is None:
            return httpx.Response(self.status_code, text="done")
        return httpx.Response(self.status_code, json=self.body)

    @property
    def payloads(self) -> list[dict]:
        return [json.loads(r.content) for r in self.requests if r.method == "POST"]


class Pipeline:
    """Everything a test needs to drive and inspect the tracker."""

    def __init__(self, tmp_path, clock, recorder, settings, policy, backoff_base, debounce):
        self.clock = clock
        self.recorder = recorder
        self.settings = settings
        self.store = StateStore(tmp_path / "state.json")
        self.status = StatusBoard(self.store, clock=clock)
        self.sink = SinkClient(client=httpx.AsyncClient(transport=httpx.MockTransport(recorder.handler)))
        self.seen = SeenKeyTracker(self.store, clock=clock)
        self.resumes = ResumeUploadTracker(self.store, clock=clock)
        self.queue = DeliveryQueue(
            self.store,
            self.sink,
            self.status,
            sink_url=lambda: self.settings.sink_url,
            backoff_base_seconds=backoff_base,
            clock=clock,
        )
        self.orchestrator = EventOrchestrator(
            policy=get_policy(policy),
            seen=self.seen,
            resumes=self.resumes,
            queue=self.queue,
            sink=self.sink,
            status=self.status,
            settings=lambda: self.settings,
            debounce_seconds=debounce,
            clock=clock,
        )


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def store(tmp_path) -> StateStore:
    return StateStore(tmp_path / "state.json")


@pytest.fixture
def sink_url() -> str:
    return SINK_URL


@pytest.fixture
def recorder() -> SinkRecorder:
    return SinkRecorder()


@pytest.fixture
def make_pipeline(tmp_path, clock, recorder):
    def build(
        policy: str = "detail_view",
        sink_url: str = SINK_URL,
        paused: bool = False,
        backoff_base: float = 0.0,
        debounce: float = 0.0,
    ) -> Pipeline:
        settings = RuntimeSettings(sink_url=sink_url, paused=paused)
        return Pipeline(tmp_path, clock, recorder, settings, policy, backoff_base, debounce)

    return build
