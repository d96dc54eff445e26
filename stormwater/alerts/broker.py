"""Tenant-scoped publish/subscribe for real-time weather alerts.

Channels are keyed ``ALERTS_<tenant_id>``. A subscriber only ever receives
messages from the channel of the tenant it authenticated as; asking for
another tenant's channel raises :class:`TenantMismatch`.
"""
from __future__ import annotations

import logging
import queue
from threading import Lock
from typing import Any, Callable, Dict, List, Mapping, Optional

logger = logging.getLogger(__name__)

CHANNEL_PREFIX = "ALERTS_"

Forwarder = Callable[[str, Mapping[str, Any]], None]


class TenantMismatch(PermissionError):
    """Raised when a subscriber asks for a channel outside its tenant."""


def channel_key(tenant_id: str) -> str:
    if not tenant_id:
        raise ValueError("tenant_id must be provided")
    return f"{CHANNEL_PREFIX}{tenant_id}"


def tenant_from_channel(key: str) -> str:
    if not key.startswith(CHANNEL_PREFIX) or len(key) == len(CHANNEL_PREFIX):
        raise ValueError(f"Unsupported channel key: {key}")
    return key[len(CHANNEL_PREFIX):]


class Subscription:
    """A single subscriber's bounded inbox on one tenant channel."""

    def __init__(self, broker: "AlertBroker", tenant_id: str, maxsize: int) -> None:
        self._broker = broker
        self.tenant_id = tenant_id
        self.channel = channel_key(tenant_id)
        self._queue: "queue.Queue[Dict[str, Any]]" = queue.Queue(maxsize=maxsize)
        self.closed = False

    def get(self, timeout: Optional[float] = None) -> Dict[str, Any]:
        """Block for the next alert; raises ``queue.Empty`` on timeout."""
        return self._queue.get(timeout=timeout)

    def get_nowait(self) -> Dict[str, Any]:
        return self._queue.get_nowait()

    def pending(self) -> int:
        return self._queue.qsize()

    def close(self) -> None:
        if not self.closed:
            self.closed = True
            self._broker.unsubscribe(self)

    def _deliver(self, payload: Dict[str, Any]) -> bool:
        try:
            self._queue.put_nowait(payload)
        except queue.Full:
            logger.warning("Subscriber inbox full on %s, dropping alert", self.channel)
            return False
        return True

    def __enter__(self) -> "Subscription":
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()


class AlertBroker:
    """In-process broker with one channel per tenant."""

    def __init__(self, inbox_size: int = 100) -> None:
        self._inbox_size = inbox_size
        self._subscribers: Dict[str, List[Subscription]] = {}
        self._forwarders: List[Forwarder] = []
        self._lock = Lock()

    def subscribe(self, tenant_id: str, authenticated_tenant_id: str) -> Subscription:
        if tenant_id != authenticated_tenant_id:
            raise TenantMismatch("Unauthorized: Cannot subscribe to alerts for other organizations")
        subscription = Subscription(self, tenant_id, self._inbox_size)
        with self._lock:
            self._subscribers.setdefault(subscription.channel, []).append(subscription)
        return subscription

    def unsubscribe(self, subscription: Subscription) -> None:
        with self._lock:
            subscribers = self._subscribers.get(subscription.channel, [])
            if subscription in subscribers:
                subscribers.remove(subscription)
            if not subscribers:
                self._subscribers.pop(subscription.channel, None)

    def add_forwarder(self, forwarder: Forwarder) -> None:
        """Receive every published message, e.g. to bridge to an external bus."""
        with self._lock:
            self._forwarders.append(forwarder)

    def subscriber_count(self, tenant_id: str) -> int:
        with self._lock:
            return len(self._subscribers.get(channel_key(tenant_id), []))

    def publish(self, tenant_id: str, payload: Mapping[str, Any]) -> int:
        return self.publish_to_channel(channel_key(tenant_id), payload)

    def publish_to_channel(self, key: str, payload: Mapping[str, Any]) -> int:
        tenant_from_channel(key)
        with self._lock:
            subscribers = list(self._subscribers.get(key, []))
            forwarders = list(self._forwarders)

        delivered = 0
        for subscription in subscribers:
            if subscription._deliver(dict(payload)):
                delivered += 1
        for forwarder in forwarders:
            try:
                forwarder(key, payload)
            except Exception:  # noqa: BLE001 - one broken bridge must not block the others
                logger.exception("Alert forwarder failed for %s", key)
        return delivered


__all__ = ["AlertBroker", "Subscription", "TenantMismatch", "channel_key", "tenant_from_channel"]
