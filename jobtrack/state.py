"""Persisted pipeline state in a single JSON file.

Holds everything that must survive a restart:
  - seen_keys:   canonical key -> first seen (ISO timestamp)
  - resume_keys: canonical key + file name -> first seen
  - queue:       deliveries waiting for a retry
  - stats:       today's count, last job, last resume upload
  - error_log:   rolling list of recent errors
  - needs_configuration: sink URL missing when a record arrived

Every mutation runs inside `transaction()`, which holds one asyncio lock
for the read-modify-persist cycle and writes the file atomically on exit.
Never await network I/O inside a transaction.
"""

from __future__ import annotations

import asyncio
import copy
import json
import logging
import os
from contextlib import asynccontextmanager
from pathlib import Path
from typing import Any, AsyncIterator

logger = logging.getLogger("jobtrack")

DEFAULT_STATE: dict[str, Any] = {
    "seen_keys": {},
    "resume_keys": {},
    "queue": [],
    "stats": {},
    "error_log": [],
    "needs_configuration": False,
}


class StateStore:
    """JSON-file store with a single-writer lock."""

    def __init__(self, path: Path | str = "data/state.json"):
        self._path = Path(path)
        self._path.parent.mkdir(parents=True, exist_ok=True)
        self._lock = asyncio.Lock()
        self._data = self._load()

    @property
    def path(self) -> Path:
        return self._path

    def _load(self) -> dict[str, Any]:
        data = copy.deepcopy(DEFAULT_STATE)
        if not self._path.exists():
            return data

        try:
            with open(self._path, encoding="utf-8") as f:
                raw = json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            # Keep the broken file around for inspection and start clean
            backup = self._path.with_suffix(self._path.suffix + ".corrupt")
            logger.error("State file %s unreadable (%s). Moved to %s.", self._path, e, backup.name)
            os.replace(self._path, backup)
            return data

        if not isinstance(raw, dict):
            logger.error("State file %s does not hold an object. Ignoring it.", self._path)
            return data

        for section, default in DEFAULT_STATE.items():
            value = raw.get(section, default)
            data[section] = value if isinstance(value, type(default)) else copy.deepcopy(default)

        logger.debug(
            "Loaded state: %d seen keys, %d resume keys, %d queued.",
            len(data["seen_keys"]),
            len(data["resume_keys"]),
            len(data["queue"]),
        )
        return data

    def _persist(self) -> None:
        tmp_path = self._path.with_suffix(self._path.suffix + ".tmp")
        with open(tmp_path, "w", encoding="utf-8") as f:
            json.dump(self._data, f, indent=2, sort_keys=True)
        os.replace(tmp_path, self._path)

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator[dict[str, Any]]:
        """Lock, yield the live state for mutation, then persist.

        If the block raises, in-memory changes are discarded by reloading
        the last persisted state.
        """
        async with self._lock:
            try:
                yield self._data
            except BaseException:
                self._data = self._load()
                raise
            self._persist()

    async def read(self, section: str | None = None) -> Any:
        """Deep copy of one section (or the whole state), taken under the lock."""
        async with self._lock:
            return copy.deepcopy(self._data[section] if section else self._data)
