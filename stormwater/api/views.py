"""REST API views for compliance checks and weather events."""
from __future__ import annotations

import logging
from functools import lru_cache
from typing import Optional, Tuple

from django.conf import settings
from django.core.cache import caches
from rest_framework import status
from rest_framework.permissions import AllowAny
from rest_framework.response import Response
from rest_framework.views import APIView

from stormwater.alerts.broker import AlertBroker
from stormwater.alerts.fanout import AlertFanout
from stormwater.alerts.mqtt_bridge import MQTTAlertBridge
from stormwater.alerts.notifications import NotificationService
from stormwater.core.abstractions import Project
from stormwater.core.config import ComplianceConfig
from stormwater.core.deadlines import DeadlineCalculator
from stormwater.core.health import HealthRegistry
from stormwater.core.models import SqlWeatherEventStore, configure_engine
from stormwater.core.providers.base import RequestConfig
from stormwater.core.providers.noaa import NOAAProvider
from stormwater.core.providers.openweathermap import OpenWeatherMapProvider
from stormwater.core.services.compliance import ComplianceCheckError, ComplianceCheckService
from stormwater.core.services.recorder import WeatherEventRecorder
from stormwater.monitoring.monitor import WeatherMonitor

logger = logging.getLogger(__name__)

TENANT_HEADER = "X-Org-Id"
MAX_EVENT_DAYS = 365


@lru_cache(maxsize=1)
def get_health_registry() -> HealthRegistry:
    return HealthRegistry()


@lru_cache(maxsize=1)
def get_store() -> SqlWeatherEventStore:
    return SqlWeatherEventStore(configure_engine(settings.DATABASE_URL))


@lru_cache(maxsize=1)
def get_mqtt_bridge() -> Optional[MQTTAlertBridge]:
    if not settings.MQTT_ALERTS_ENABLED:
        return None
    return MQTTAlertBridge()


@lru_cache(maxsize=1)
def get_broker() -> AlertBroker:
    broker = AlertBroker()
    bridge = get_mqtt_bridge()
    if bridge is not None:
        bridge.attach(broker)
        bridge.start()
    return broker


@lru_cache(maxsize=1)
def get_compliance_service() -> ComplianceCheckService:
    config = ComplianceConfig.from_settings(settings)
    request_config = RequestConfig(
        timeout=settings.WEATHER_PROVIDER_TIMEOUT,
        retries=settings.WEATHER_PROVIDER_RETRIES,
    )
    primary = NOAAProvider(
        settings.NOAA_BASE_URL,
        user_agent=settings.NOAA_USER_AGENT,
        time_budget=settings.NOAA_TIME_BUDGET_SECONDS,
        request_config=request_config,
    )
    secondary = None
    if config.secondary_enabled:
        secondary = OpenWeatherMapProvider(
            api_key=config.openweather_api_key,
            base_url=settings.OPENWEATHER_BASE_URL,
            request_config=request_config,
        )
    store = get_store()
    deadlines = DeadlineCalculator(config.tz, config.deadline_hours)
    recorder = WeatherEventRecorder(store, deadlines, caches[settings.WEATHER_CACHE_ALIAS])
    return ComplianceCheckService(
        config=config,
        primary=primary,
        secondary=secondary,
        store=store,
        recorder=recorder,
        deadlines=deadlines,
        health=get_health_registry(),
    )


@lru_cache(maxsize=1)
def get_monitor() -> WeatherMonitor:
    return WeatherMonitor(
        service=get_compliance_service(),
        projects=get_store(),
        fanout=AlertFanout(NotificationService(), get_broker()),
        health=get_health_registry(),
        interval=settings.WEATHER_MONITOR_INTERVAL_SECONDS,
        max_workers=settings.WEATHER_MONITOR_MAX_WORKERS,
    )


# helpers ---------------------------------------------------------------------

def _error(detail: str, code: int) -> Response:
    return Response({"detail": detail}, status=code)


def _tenant(request) -> Optional[str]:
    return request.headers.get(TENANT_HEADER) or None


def _tenant_project(request, project_id: Optional[str]) -> Tuple[Optional[Project], Optional[Response]]:
    tenant_id = _tenant(request)
    if tenant_id is None:
        return None, _error(f"{TENANT_HEADER} header is required", status.HTTP_401_UNAUTHORIZED)
    if not project_id:
        return None, _error("project_id query parameter is required", status.HTTP_400_BAD_REQUEST)
    project = get_store().get_project(project_id)
    # A project from another tenant is reported exactly like a missing one.
    if project is None or project.org_id != tenant_id:
        return None, _error("Project not found", status.HTTP_404_NOT_FOUND)
    return project, None


class ComplianceCheckView(APIView):
    """Run an ad hoc EPA rain-threshold check for one project."""

    authentication_classes: list = []
    permission_classes = [AllowAny]

    def get(self, request, *args, **kwargs):  # noqa: D401
        """Return the compliance result for the project and coordinates."""
        project, error = _tenant_project(request, request.query_params.get("project_id"))
        if error is not None:
            return error
        try:
            latitude = float(request.query_params["lat"])
            longitude = float(request.query_params["lon"])
        except KeyError:
            return _error("lat and lon query parameters are required", status.HTTP_400_BAD_REQUEST)
        except ValueError:
            return _error("lat and lon must be valid floating point numbers", status.HTTP_400_BAD_REQUEST)
        if not (-90 <= latitude <= 90 and -180 <= longitude <= 180):
            return _error("lat and lon are out of range", status.HTTP_400_BAD_REQUEST)

        try:
            result = get_compliance_service().check_precipitation(latitude, longitude, project.id)
        except ComplianceCheckError as exc:
            logger.error("Compliance check unavailable for project %s: %s", project.id, exc)
            return _error(str(exc), status.HTTP_503_SERVICE_UNAVAILABLE)
        return Response(result.as_dict(), status=status.HTTP_200_OK)


class RecentWeatherEventsView(APIView):
    authentication_classes: list = []
    permission_classes = [AllowAny]

    def get(self, request, *args, **kwargs):
        project, error = _tenant_project(request, request.query_params.get("project_id"))
        if error is not None:
            return error
        try:
            days = float(request.query_params.get("days", 7))
        except ValueError:
            return _error("days must be a number", status.HTTP_400_BAD_REQUEST)
        if not 0 < days <= MAX_EVENT_DAYS:
            return _error(f"days must be between 0 and {MAX_EVENT_DAYS}", status.HTTP_400_BAD_REQUEST)

        events = get_compliance_service().get_recent_weather_events(project.id, days=days)
        return Response({"events": [event.as_dict() for event in events]}, status=status.HTTP_200_OK)


class PendingInspectionsView(APIView):
    """Weather events of the caller's organization still awaiting inspection."""

    authentication_classes: list = []
    permission_classes = [AllowAny]

    def get(self, request, *args, **kwargs):
        tenant_id = _tenant(request)
        if tenant_id is None:
            return _error(f"{TENANT_HEADER} header is required", status.HTTP_401_UNAUTHORIZED)
        events = get_compliance_service().get_pending_inspections(tenant_id)
        return Response({"inspections": [event.as_dict() for event in events]}, status=status.HTTP_200_OK)


class AdminHealthView(APIView):
    authentication_classes: list = []
    permission_classes = [AllowAny]

    def get(self, request, *args, **kwargs):
        return Response(get_health_registry().snapshot(), status=status.HTTP_200_OK)


__all__ = [
    "AdminHealthView",
    "ComplianceCheckView",
    "PendingInspectionsView",
    "RecentWeatherEventsView",
    "get_broker",
    "get_compliance_service",
    "get_health_registry",
    "get_monitor",
    "get_store",
]
