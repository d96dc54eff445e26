"""Append-only recording of threshold exceedances."""
from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Dict, Optional

from django.core.cache.backends.base import BaseCache

from stormwater.core.abstractions import Coordinates, WeatherEvent, WeatherEventStore, WeatherSource
from stormwater.core.deadlines import DeadlineCalculator


logger = logging.getLogger(__name__)

LATEST_READING_TTL = int(timedelta(hours=4).total_seconds())


def latest_reading_key(project_id: str) -> str:
    return f"compliance:latest:{project_id}"


class WeatherEventRecorder:
    """Persist one WeatherEvent per confirmed exceedance.

    Every call inserts a new row, even for a project that already has an
    open event the same day; callers own the check cadence.
    """

    def __init__(
        self,
        store: WeatherEventStore,
        deadlines: DeadlineCalculator,
        cache: Optional[BaseCache] = None,
        *,
        clock: Optional[Callable[[], datetime]] = None,
    ) -> None:
        self._store = store
        self._deadlines = deadlines
        self._cache = cache
        self._clock = clock or (lambda: datetime.now(timezone.utc))

    def record(
        self,
        project_id: str,
        amount_inches: float,
        coordinates: Coordinates,
        source: WeatherSource,
    ) -> WeatherEvent:
        event_date = self._clock()
        deadline = self._deadlines.compute_deadline(event_date)

        event = self._store.create_weather_event(
            project_id=project_id,
            precipitation_inches=amount_inches,
            event_date=event_date,
            inspection_deadline=deadline,
            source=source,
            notifications_sent=False,
            inspection_completed=False,
        )
        logger.info(
            "Recorded weather event %s for project %s at %s,%s: %s\" (%s), inspection due %s",
            event.id,
            project_id,
            coordinates.latitude,
            coordinates.longitude,
            amount_inches,
            WeatherSource(source).value,
            deadline.isoformat(),
        )
        self._cache_latest(project_id, amount_inches, event_date, source)
        return event

    def cached_reading(self, project_id: str) -> Optional[Dict[str, Any]]:
        if self._cache is None:
            return None
        try:
            return self._cache.get(latest_reading_key(project_id))
        except Exception as exc:  # noqa: BLE001 - the store is the fallback for a broken cache
            logger.warning("Failed to read cached weather data for project %s: %s", project_id, exc)
            return None

    def _cache_latest(self, project_id: str, amount: float, when: datetime, source: WeatherSource) -> None:
        if self._cache is None:
            return
        payload = {
            "precipitation_inches": amount,
            "recorded_at": when.astimezone(timezone.utc).isoformat(),
            "source": WeatherSource(source).value,
        }
        try:
            self._cache.set(latest_reading_key(project_id), payload, LATEST_READING_TTL)
        except Exception as exc:  # noqa: BLE001 - the row is already committed
            logger.warning("Failed to cache weather data for project %s: %s", project_id, exc)


__all__ = ["LATEST_READING_TTL", "WeatherEventRecorder", "latest_reading_key"]
