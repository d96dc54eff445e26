"""Validated compliance configuration."""
from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Any, Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from django.core.exceptions import ImproperlyConfigured

# EPA CGP Part 4.2 rain trigger. Not tunable.
EPA_RAIN_THRESHOLD_INCHES = 0.25


def validate_threshold(raw: Any) -> float:
    """Parse a configured threshold and insist it is exactly 0.25 inches."""

    try:
        value = float(raw)
    except (TypeError, ValueError) as exc:
        raise ImproperlyConfigured(
            f"EPA compliance violation: rain threshold {raw!r} is not a number"
        ) from exc
    if math.isnan(value) or value != EPA_RAIN_THRESHOLD_INCHES:
        raise ImproperlyConfigured(
            f"EPA compliance violation: rain threshold is {raw!r} but MUST be exactly "
            f"{EPA_RAIN_THRESHOLD_INCHES} inches"
        )
    return value


def validate_time_zone(name: str) -> ZoneInfo:
    try:
        return ZoneInfo(name)
    except (ZoneInfoNotFoundError, ValueError) as exc:
        raise ImproperlyConfigured(f"Unknown compliance time zone {name!r}") from exc


@dataclass(frozen=True)
class ComplianceConfig:
    """Settings the compliance core is constructed from.

    Construction fails for a threshold other than 0.25, which in turn keeps
    the evaluator and every service built on it from existing.
    """

    rain_threshold_inches: float = EPA_RAIN_THRESHOLD_INCHES
    time_zone: str = "America/New_York"
    openweather_api_key: Optional[str] = None
    cache_window_hours: float = 4.0
    deadline_hours: float = 24.0

    def __post_init__(self) -> None:
        validate_threshold(self.rain_threshold_inches)
        validate_time_zone(self.time_zone)

    @property
    def tz(self) -> ZoneInfo:
        return ZoneInfo(self.time_zone)

    @property
    def secondary_enabled(self) -> bool:
        return bool(self.openweather_api_key)

    @classmethod
    def from_settings(cls, settings: Any) -> "ComplianceConfig":
        return cls(
            rain_threshold_inches=getattr(settings, "EPA_RAIN_THRESHOLD_INCHES", EPA_RAIN_THRESHOLD_INCHES),
            time_zone=getattr(settings, "COMPLIANCE_TIME_ZONE", "America/New_York"),
            openweather_api_key=getattr(settings, "OPENWEATHER_API_KEY", None) or None,
        )


__all__ = ["ComplianceConfig", "EPA_RAIN_THRESHOLD_INCHES", "validate_threshold", "validate_time_zone"]
