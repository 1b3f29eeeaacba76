"""
Health file writer for the charger daemon.

Writes a JSON health file at a configurable path with four fields:
- last_poll_ts: ISO timestamp of the most recent control cycle.
- last_actuation_ts: ISO timestamp of the most recent successful switch command.
- mode: Controller mode (or outcome tag) after the last cycle.
- demand_kw: Last decoded demand, or null when the last read failed.

The file is overwritten on every state change, providing a simple liveness
signal that Docker HEALTHCHECK or monitoring can inspect.  It is never read
back by the daemon.

CHANGELOG:
- 2026-10-18: Track controller mode and demand instead of spool count
- 2026-10-18: Initial creation (STORY-011)

TODO:
- None
"""

from __future__ import annotations

import json
from datetime import UTC, datetime
from pathlib import Path


class HealthWriter:
    """Writes charger health status to a JSON file.

    Each mutating method updates the in-memory state and immediately
    rewrites the health file so it always reflects the latest status.

    Args:
        path: Filesystem path for the health JSON file. Accepts str or Path.
    """

    def __init__(self, path: str | Path) -> None:
        self.path = Path(path)
        self._last_poll_ts: str | None = None
        self._last_actuation_ts: str | None = None
        self._mode: str | None = None
        self._demand_kw: float | None = None

    def record_poll(self, demand_kw: float | None) -> None:
        """Record a control cycle and the demand it saw, then write."""
        self._last_poll_ts = datetime.now(tz=UTC).isoformat()
        self._demand_kw = demand_kw
        self._write()

    def record_actuation(self) -> None:
        """Record a successful switch command and write health file."""
        self._last_actuation_ts = datetime.now(tz=UTC).isoformat()
        self._write()

    def set_mode(self, mode: str) -> None:
        """Update the controller mode and write health file.

        Args:
            mode: Mode or outcome tag value, e.g. ``"on_tariff"``.
        """
        self._mode = mode
        self._write()

    def _write(self) -> None:
        """Write the health JSON file with current state."""
        data = {
            "last_poll_ts": self._last_poll_ts,
            "last_actuation_ts": self._last_actuation_ts,
            "mode": self._mode,
            "demand_kw": self._demand_kw,
        }
        self.path.write_text(json.dumps(data))
