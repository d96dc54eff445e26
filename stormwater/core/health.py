"""In-memory health registry for the admin dashboard.

Counts precipitation provider failures, remembers when each source last
answered and summarises the latest monitoring pass. Operators use it to tell
"no rain" apart from "we could not look".
"""
from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from threading import Lock
from typing import Dict, Optional


@dataclass(frozen=True)
class MonitorPass:
    """Counters for one scheduled monitoring pass."""

    finished_at: str
    checked: int = 0
    exceeded: int = 0
    failed: int = 0
    skipped: int = 0

    def as_dict(self) -> Dict[str, object]:
        return {
            "finished_at": self.finished_at,
            "checked": self.checked,
            "exceeded": self.exceeded,
            "failed": self.failed,
            "skipped": self.skipped,
        }


class HealthRegistry:
    """Stores provider error counters, last successes and monitor stats."""

    def __init__(self) -> None:
        self._provider_errors: Dict[str, int] = {}
        self._provider_last_success: Dict[str, str] = {}
        self._last_pass: Optional[MonitorPass] = None
        self._lock = Lock()

    # -- Providers ----------------------------------------------------------
    def record_provider_error(self, provider: str, increment: int = 1) -> None:
        if not provider:
            raise ValueError("provider must be provided")
        if increment <= 0:
            raise ValueError("increment must be positive")
        with self._lock:
            self._provider_errors[provider] = self._provider_errors.get(provider, 0) + increment

    def record_provider_success(self, provider: str, when: Optional[datetime] = None) -> None:
        if not provider:
            raise ValueError("provider must be provided")
        iso_value = self._format_datetime(when or datetime.now(timezone.utc))
        with self._lock:
            self._provider_last_success[provider] = iso_value

    def drain_provider_errors(self) -> Dict[str, int]:
        with self._lock:
            snapshot = dict(self._provider_errors)
            self._provider_errors.clear()
            return snapshot

    # -- Monitor ------------------------------------------------------------
    def record_monitor_pass(
        self,
        *,
        checked: int,
        exceeded: int,
        failed: int,
        skipped: int = 0,
        when: Optional[datetime] = None,
    ) -> None:
        finished_at = self._format_datetime(when or datetime.now(timezone.utc))
        with self._lock:
            self._last_pass = MonitorPass(
                finished_at=finished_at,
                checked=checked,
                exceeded=exceeded,
                failed=failed,
                skipped=skipped,
            )

    # -- Snapshot -----------------------------------------------------------
    def snapshot(self) -> Dict[str, object]:
        with self._lock:
            providers = dict(self._provider_errors)
            last_success = dict(self._provider_last_success)
            monitor = self._last_pass.as_dict() if self._last_pass else None
        return {"providers": providers, "last_success": last_success, "monitor": monitor}

    @staticmethod
    def _format_datetime(value: datetime) -> str:
        if value.tzinfo is None:
            value = value.replace(tzinfo=timezone.utc)
        return value.astimezone(timezone.utc).isoformat()


__all__ = ["HealthRegistry", "MonitorPass"]
