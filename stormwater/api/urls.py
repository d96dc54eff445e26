"""API URL configuration."""
from __future__ import annotations

from django.urls import path

from stormwater.api.views import (
    AdminHealthView,
    ComplianceCheckView,
    PendingInspectionsView,
    RecentWeatherEventsView,
)

urlpatterns = [
    path("weather/check", ComplianceCheckView.as_view(), name="weather-check"),
    path("weather/events", RecentWeatherEventsView.as_view(), name="weather-events"),
    path("weather/pending-inspections", PendingInspectionsView.as_view(), name="pending-inspections"),
    path("admin/health", AdminHealthView.as_view(), name="admin-health"),
]
