"""Traditional (email/SMS/push) notification dispatch."""
from __future__ import annotations

import logging
from typing import Mapping


class NotificationService:
    """Log-only dispatcher until a delivery provider is wired in.

    Sends are fire-and-forget: callers log failures and move on.
    """

    def __init__(self, logger: logging.Logger | None = None) -> None:
        self._log = logger or logging.getLogger(self.__class__.__name__)

    def send_rain_threshold_alert(self, data: Mapping[str, object]) -> None:
        self._log.warning(
            'ALERT: Project %s exceeded EPA 0.25" threshold with %s" of precipitation (org %s, project id %s)',
            data["project_name"],
            data["precipitation_amount"],
            data["org_id"],
            data["project_id"],
        )

    def send_monitoring_failure_alert(self, data: Mapping[str, object]) -> None:
        self._log.error(
            "ALERT: Weather monitoring failed for project %s (org %s, project id %s); manual verification required",
            data["project_name"],
            data["org_id"],
            data["project_id"],
        )


__all__ = ["NotificationService"]
