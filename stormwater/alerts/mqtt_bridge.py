"""Bridge broker alerts onto MQTT topics, one topic per tenant."""
from __future__ import annotations

import json
import logging
import os
from dataclasses import dataclass, field
from typing import Any, Mapping, Optional
from uuid import uuid4

import paho.mqtt.client as mqtt

from stormwater.alerts.broker import AlertBroker, tenant_from_channel

logger = logging.getLogger(__name__)


@dataclass
class MQTTConfig:
    host: str = field(default_factory=lambda: os.getenv("MQTT_HOST", "localhost"))
    port: int = field(default_factory=lambda: int(os.getenv("MQTT_PORT", "1883")))
    username: Optional[str] = field(default_factory=lambda: os.getenv("MQTT_USERNAME"))
    password: Optional[str] = field(default_factory=lambda: os.getenv("MQTT_PASSWORD"))
    keepalive: int = field(default_factory=lambda: int(os.getenv("MQTT_KEEPALIVE", "60")))
    client_id: str = field(
        default_factory=lambda: os.getenv("MQTT_CLIENT_ID", f"stormwater-alerts-{uuid4().hex[:8]}")
    )
    topic_prefix: str = field(default_factory=lambda: os.getenv("MQTT_ALERT_TOPIC_PREFIX", "stormwater/alerts"))
    qos: int = 1


def build_client(config: MQTTConfig) -> mqtt.Client:
    client = mqtt.Client(mqtt.CallbackAPIVersion.VERSION2, client_id=config.client_id)
    if config.username:
        client.username_pw_set(config.username, config.password)
    return client


class MQTTAlertBridge:
    """Republishes every broker alert to ``<prefix>/<tenant_id>``.

    The MQTT broker's ACLs keep tenants apart on that side, so topics stay
    keyed by tenant exactly like the in-process channels.
    """

    def __init__(self, config: Optional[MQTTConfig] = None, client: Optional[Any] = None) -> None:
        self.config = config or MQTTConfig()
        self.client = client or build_client(self.config)
        self.client.on_connect = self._on_connect
        self._started = False

    def _on_connect(self, client, userdata, flags, reason_code, properties=None):
        if getattr(reason_code, "is_failure", False):
            logger.error("Failed to connect to MQTT broker: %s", reason_code)
            return
        logger.info("Connected to MQTT broker at %s:%s", self.config.host, self.config.port)

    def topic_for(self, tenant_id: str) -> str:
        return f"{self.config.topic_prefix.rstrip('/')}/{tenant_id}"

    def attach(self, broker: AlertBroker) -> None:
        broker.add_forwarder(self.forward)

    def start(self) -> None:
        self.client.connect(self.config.host, self.config.port, self.config.keepalive)
        self.client.loop_start()
        self._started = True
        logger.info("MQTT alert bridge started")

    def stop(self) -> None:
        if self._started:
            logger.info("Stopping MQTT alert bridge")
            self.client.loop_stop()
            self.client.disconnect()
            self._started = False

    def forward(self, channel_key: str, payload: Mapping[str, Any]) -> None:
        topic = self.topic_for(tenant_from_channel(channel_key))
        body = json.dumps(dict(payload), sort_keys=True, default=str)
        info = self.client.publish(topic, body, qos=self.config.qos)
        rc = getattr(info, "rc", mqtt.MQTT_ERR_SUCCESS)
        if rc != mqtt.MQTT_ERR_SUCCESS:
            logger.warning("MQTT publish to %s failed with rc=%s", topic, rc)
        else:
            logger.debug("Alert forwarded to %s", topic)


__all__ = ["MQTTAlertBridge", "MQTTConfig", "build_client"]
