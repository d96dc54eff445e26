"""Alert payloads delivered to notification and real-time channels."""
from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

__all__ = ["AlertType", "WeatherAlert", "threshold_message", "MONITORING_FAILURE_MESSAGE"]

MONITORING_FAILURE_MESSAGE = (
    "Weather monitoring failed for project. Manual verification required to ensure EPA compliance."
)


def threshold_message(amount: float) -> str:
    return (
        f'EPA CGP violation: {amount}" precipitation exceeds 0.25" threshold. '
        "Inspection required within 24 working hours."
    )


class AlertType(str, Enum):
    EPA_THRESHOLD_EXCEEDED = "EPA_THRESHOLD_EXCEEDED"
    MONITORING_FAILURE = "MONITORING_FAILURE"


def _ensure_datetime(value: Any) -> datetime:
    if isinstance(value, datetime):
        dt = value
    else:
        dt = datetime.fromisoformat(str(value).replace("Z", "+00:00"))
    if dt.tzinfo is None:
        raise ValueError("timestamp must be timezone aware")
    return dt.astimezone(timezone.utc)


class WeatherAlert(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)

    project_id: str
    project_name: str
    precipitation_amount: float = Field(ge=0)
    alert_type: AlertType
    timestamp: datetime
    source: str
    message: str

    @field_validator("timestamp", mode="before")
    @classmethod
    def _validate_timestamp(cls, value: Any) -> datetime:
        return _ensure_datetime(value)

    @classmethod
    def threshold_exceeded(
        cls,
        *,
        project_id: str,
        project_name: str,
        amount: float,
        source: str,
        when: datetime,
    ) -> "WeatherAlert":
        return cls(
            project_id=project_id,
            project_name=project_name,
            precipitation_amount=amount,
            alert_type=AlertType.EPA_THRESHOLD_EXCEEDED,
            timestamp=when,
            source=source,
            message=threshold_message(amount),
        )

    @classmethod
    def monitoring_failure(cls, *, project_id: str, project_name: str, when: datetime) -> "WeatherAlert":
        return cls(
            project_id=project_id,
            project_name=project_name,
            precipitation_amount=0,
            alert_type=AlertType.MONITORING_FAILURE,
            timestamp=when,
            source="SYSTEM",
            message=MONITORING_FAILURE_MESSAGE,
        )

    def to_payload(self) -> Dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True)
