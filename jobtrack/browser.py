"""Playwright persistent browser that feeds page loads and uploads to the pipeline.

Uses a persistent user data directory so job-site logins survive across
runs. Every page in the context is watched: each `load` becomes a
NavigationEvent, and the injected upload observer (see selectors.py)
reports resume files through an exposed binding.
"""

from __future__ import annotations

import asyncio
import json
import logging
from pathlib import Path
from typing import Any

from playwright.async_api import BrowserContext, Page, async_playwright

from jobtrack import selectors
from jobtrack.models import NavigationEvent, UploadEvent
from jobtrack.orchestrator import EventOrchestrator

logger = logging.getLogger("jobtrack")


def render_upload_observer() -> str:
    """Fill the selector constants into the injected script."""
    return selectors.UPLOAD_OBSERVER_SCRIPT % {
        "file_input": json.dumps(selectors.FILE_INPUT),
        "drop_zones": json.dumps(", ".join(selectors.DROP_ZONES)),
        "keywords": json.dumps(selectors.RESUME_KEYWORDS),
        "max_bytes": selectors.MAX_READ_BYTES,
        "binding": json.dumps(selectors.RESUME_BINDING),
    }


def upload_event_from_binding(payload: dict[str, Any], page_url: str, page_title: str) -> UploadEvent:
    """Build an UploadEvent from what the page observer sent."""
    try:
        byte_size = int(payload.get("fileSize") or 0)
    except (TypeError, ValueError):
        byte_size = 0
    return UploadEvent(
        file_name=str(payload.get("fileName") or "resume"),
        mime_type=str(payload.get("mimeType") or ""),
        byte_size=byte_size,
        encoded_content=str(payload.get("fileData") or ""),
        origin_target=page_url,
        origin_title=page_title,
    )


class BrowserWatcher:
    """Manages a persistent Chromium context and forwards its events."""

    def __init__(
        self,
        orchestrator: EventOrchestrator,
        user_data_dir: str = "browser_data",
        headless: bool = False,
    ):
        self._orchestrator = orchestrator
        self._user_data_dir = str(Path(user_data_dir).resolve())
        self._headless = headless
        self._playwright = None
        self._context: BrowserContext | None = None
        self._closed = asyncio.Event()
        self._tasks: set[asyncio.Task] = set()

    async def launch(self, start_url: str = "") -> BrowserContext:
        """Launch the persistent context, hook every page, optionally open start_url."""
        self._playwright = await async_playwright().start()
        self._context = await self._playwright.chromium.launch_persistent_context(
            self._user_data_dir,
            headless=self._headless,
            viewport={"width": 1440, "height": 900},
        )
        await self._context.expose_binding(selectors.RESUME_BINDING, self._on_resume_binding)
        await self._context.add_init_script(render_upload_observer())

        self._context.on("page", self._watch_page)
        self._context.on("close", lambda _: self._closed.set())
        for page in self._context.pages:
            self._watch_page(page)

        logger.info("Browser launched (persistent context: %s)", self._user_data_dir)

        if start_url:
            page = self._context.pages[0] if self._context.pages else await self._context.new_page()
            await page.goto(start_url, wait_until="domcontentloaded")
        return self._context

    def _spawn(self, coro) -> None:
        task = asyncio.create_task(coro)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    def _watch_page(self, page: Page) -> None:
        page.on("load", lambda p: self._spawn(self._on_load(p)))

    async def _on_load(self, page: Page) -> None:
        try:
            title = await page.title()
        except Exception:
            title = ""
        event = NavigationEvent(raw_target=page.url, display_title=title)
        await self._orchestrator.on_navigation(event, title_source=page.title)

    async def _on_resume_binding(self, source: dict, payload: dict) -> None:
        page: Page = source["page"]
        try:
            title = await page.title()
        except Exception:
            title = ""
        event = upload_event_from_binding(payload, page.url, title)
        logger.debug("Upload observed on %s: %s", page.url, event.file_name)
        self._spawn(self._orchestrator.on_upload(event))

    async def wait_until_closed(self) -> None:
        """Block until the user closes the browser window."""
        await self._closed.wait()
        if self._tasks:
            await asyncio.gather(*self._tasks, return_exceptions=True)

    async def close(self) -> None:
        """Gracefully close the browser context."""
        if self._context and not self._closed.is_set():
            await self._context.close()
        if self._playwright:
            await self._playwright.stop()
        logger.info("Browser closed.")
