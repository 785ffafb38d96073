"""HTTP client for the ingestion endpoint (an Apps Script web app by default).

The sink accepts one JSON object per POST. Any 2xx counts as delivered.
Apps Script answers POSTs with a redirect to the script output, so
redirects are followed.
"""

from __future__ import annotations

import logging
from typing import Any

import httpx

from jobtrack.errors import DeliveryError

logger = logging.getLogger("jobtrack")

DEFAULT_TIMEOUT = 15.0


class SinkClient:
    """Thin wrapper over httpx.AsyncClient that turns failures into DeliveryError."""

    def __init__(self, timeout: float = DEFAULT_TIMEOUT, client: httpx.AsyncClient | None = None):
        self._client = client or httpx.AsyncClient(
            timeout=httpx.Timeout(timeout),
            follow_redirects=True,
        )

    async def post_json(self, url: str, payload: dict[str, Any]) -> httpx.Response:
        """POST a payload. Returns the response on 2xx.

        Raises:
            DeliveryError: on transport errors and non-2xx responses
        """
        try:
            resp = await self._client.post(url, json=payload)
        except httpx.HTTPError as e:
            raise DeliveryError(f"POST failed: {e.__class__.__name__}: {e}") from e

        if not resp.is_success:
            raise DeliveryError(f"POST failed: HTTP {resp.status_code}", status_code=resp.status_code)
        return resp

    async def test_connection(self, url: str) -> int:
        """GET the sink with ?test=1. Returns the status code on success."""
        try:
            resp = await self._client.get(url, params={"test": "1"})
        except httpx.HTTPError as e:
            raise DeliveryError(f"Connection failed: {e}") from e

        if not resp.is_success:
            raise DeliveryError(
                f"Server responded with status {resp.status_code}", status_code=resp.status_code
            )
        return resp.status_code

    async def sync_settings(self, url: str, gmail_cutoff_date: str, tracking_active: bool) -> None:
        """Push tracker settings to the sink so its email sync agrees with us."""
        await self.post_json(
            url,
            {
                "action": "saveSettings",
                "gmail_cutoff_date": gmail_cutoff_date,
                "tracking_active": "TRUE" if tracking_active else "FALSE",
            },
        )

    async def close(self) -> None:
        await self._client.aclose()


def parse_upload_response(resp: httpx.Response) -> tuple[bool, str | None]:
    """Read `{ok, driveUrl}` from an upload response. Non-JSON bodies count as ok."""
    try:
        body = resp.json()
    except ValueError:
        return True, None
    if not isinstance(body, dict):
        return True, None
    drive_url = body.get("driveUrl")
    return bool(body.get("ok", True)), drive_url if isinstance(drive_url, str) else None
