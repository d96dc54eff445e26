"""Core abstractions for the weather compliance domain."""
from __future__ import annotations

from dataclasses import asdict, dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional, Protocol, Union


class WeatherSource(str, Enum):
    """Origin of a precipitation amount."""

    PRIMARY = "primary"
    SECONDARY = "secondary"
    MANUAL = "manual"
    CACHED = "cached"


class Confidence(str, Enum):
    """How authoritative a reading is (a label, not a statistic)."""

    HIGH = "HIGH"
    MEDIUM = "MEDIUM"
    LOW = "LOW"


ACTIVE_STATUS = "ACTIVE"


@dataclass(frozen=True)
class Coordinates:
    latitude: float
    longitude: float


@dataclass
class Project:
    """Mirror of the externally owned project entity."""

    id: str
    org_id: str
    name: str
    status: str = ACTIVE_STATUS
    latitude: Optional[float] = None
    longitude: Optional[float] = None

    @property
    def is_active(self) -> bool:
        return self.status == ACTIVE_STATUS

    @property
    def has_coordinates(self) -> bool:
        return self.latitude is not None and self.longitude is not None


@dataclass
class WeatherEvent:
    """Durable compliance record of a threshold exceedance.

    ``precipitation_inches`` keeps the precision received from the source.
    ``inspection_completed`` is owned by the inspection workflow; this
    package never flips it.
    """

    id: str
    project_id: str
    precipitation_inches: float
    event_date: datetime
    inspection_deadline: datetime
    source: WeatherSource
    inspection_completed: bool = False
    notifications_sent: bool = False
    created_at: Optional[datetime] = None

    def as_dict(self) -> Dict[str, Any]:
        payload = asdict(self)
        payload["source"] = self.source.value
        for key in ("event_date", "inspection_deadline", "created_at"):
            value = payload[key]
            if value is not None:
                payload[key] = _isoformat(value)
        return payload


@dataclass(frozen=True)
class PrecipitationReading:
    """An amount paired with where it came from and how far to trust it."""

    amount_inches: float
    source: WeatherSource
    confidence: Confidence
    observed_at: Optional[datetime] = None


@dataclass(frozen=True)
class ComplianceCheckResult:
    exceeded: bool
    amount: float
    requires_inspection: bool
    source: WeatherSource
    confidence: Confidence
    checked_at: datetime
    event_id: Optional[str] = None

    def as_dict(self) -> Dict[str, Any]:
        return {
            "exceeded": self.exceeded,
            "amount": self.amount,
            "requiresInspection": self.requires_inspection,
            "source": self.source.value,
            "confidence": self.confidence.value,
            "timestamp": _isoformat(self.checked_at),
            "eventId": self.event_id,
        }


# -- Source results ------------------------------------------------------------


@dataclass(frozen=True)
class Value:
    amount: float


@dataclass(frozen=True)
class Unavailable:
    reason: str = "no data"


@dataclass(frozen=True)
class Failed:
    error: BaseException


PrecipitationResult = Union[Value, Unavailable, Failed]


# -- Collaborator protocols ----------------------------------------------------


class PrecipitationSource(Protocol):
    """A data source returning 24 hour precipitation in inches.

    ``None`` means the source has nothing for the location; raising means
    the source failed.
    """

    name: str

    def get_precipitation(self, latitude: float, longitude: float) -> Optional[float]:
        ...


class WeatherEventStore(Protocol):
    def create_weather_event(
        self,
        *,
        project_id: str,
        precipitation_inches: float,
        event_date: datetime,
        inspection_deadline: datetime,
        source: WeatherSource,
        notifications_sent: bool = False,
        inspection_completed: bool = False,
    ) -> WeatherEvent:
        ...

    def find_recent_weather_event(self, project_id: str, since: datetime) -> Optional[WeatherEvent]:
        ...

    def list_pending_inspections(self, tenant_id: str, now: Optional[datetime] = None) -> List[WeatherEvent]:
        ...

    def list_recent_weather_events(self, project_id: str, since: datetime) -> List[WeatherEvent]:
        ...


def _isoformat(value: datetime) -> str:
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).isoformat().replace("+00:00", "Z")


__all__ = [
    "ACTIVE_STATUS",
    "ComplianceCheckResult",
    "Confidence",
    "Coordinates",
    "Failed",
    "PrecipitationReading",
    "PrecipitationResult",
    "PrecipitationSource",
    "Project",
    "Unavailable",
    "Value",
    "WeatherEvent",
    "WeatherEventStore",
    "WeatherSource",
]
