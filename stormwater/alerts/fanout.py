"""Deliver compliance alerts to every interested party."""
from __future__ import annotations

import logging
from typing import Dict

from stormwater.alerts.broker import AlertBroker, channel_key
from stormwater.alerts.notifications import NotificationService
from stormwater.alerts.schemas import AlertType, WeatherAlert

logger = logging.getLogger(__name__)


class AlertFanout:
    """Send an alert through the notification and real-time channels.

    Both channels are best-effort and independent: a failure in one is
    logged and does not stop the other.
    """

    def __init__(self, notifications: NotificationService, broker: AlertBroker) -> None:
        self.notifications = notifications
        self.broker = broker

    def publish(self, tenant_id: str, alert: WeatherAlert) -> Dict[str, bool]:
        delivered = {"notification": False, "realtime": False}

        try:
            self._notify(tenant_id, alert)
            delivered["notification"] = True
        except Exception:  # noqa: BLE001 - notifications are fire-and-forget
            logger.exception("Failed to send %s notification for project %s", alert.alert_type.value, alert.project_id)

        try:
            self.broker.publish_to_channel(channel_key(tenant_id), alert.to_payload())
            delivered["realtime"] = True
            logger.info("Real-time weather alert published for org %s, project %s", tenant_id, alert.project_name)
        except Exception:  # noqa: BLE001 - real-time delivery is best-effort
            logger.exception("Failed to publish real-time alert for org %s, project %s", tenant_id, alert.project_id)

        return delivered

    def _notify(self, tenant_id: str, alert: WeatherAlert) -> None:
        data = {
            "project_id": alert.project_id,
            "project_name": alert.project_name,
            "precipitation_amount": alert.precipitation_amount,
            "org_id": tenant_id,
        }
        if alert.alert_type is AlertType.EPA_THRESHOLD_EXCEEDED:
            self.notifications.send_rain_threshold_alert(data)
        else:
            self.notifications.send_monitoring_failure_alert(data)


__all__ = ["AlertFanout"]
