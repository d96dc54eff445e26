"""Rain-event compliance checks across precipitation sources."""
from __future__ import annotations

import logging
import math
import time
from datetime import datetime, timedelta, timezone
from typing import Callable, List, Optional

from stormwater.core.abstractions import (
    ComplianceCheckResult,
    Confidence,
    Coordinates,
    Failed,
    PrecipitationReading,
    PrecipitationResult,
    PrecipitationSource,
    Unavailable,
    Value,
    WeatherEvent,
    WeatherEventStore,
    WeatherSource,
)
from stormwater.core.config import ComplianceConfig
from stormwater.core.deadlines import DeadlineCalculator
from stormwater.core.health import HealthRegistry
from stormwater.core.providers.base import ProviderError
from stormwater.core.services.recorder import WeatherEventRecorder
from stormwater.core.threshold import ThresholdEvaluator


logger = logging.getLogger(__name__)


class ComplianceCheckError(RuntimeError):
    """Raised when neither a live source nor a recent cache can answer."""


class _SourceFailure(Exception):
    def __init__(self, source: str, error: BaseException) -> None:
        super().__init__(f"{source}: {error}")
        self.source = source
        self.error = error


class ComplianceCheckService:
    """Decide whether a project location crossed the EPA rain trigger.

    Sources are consulted in order and never raced: the primary source
    first, the secondary only when the primary has no data for the
    location. A source that *fails* (raises) is not the same as one that
    has nothing: failures skip straight to the recent cache, and with no
    cache the check raises :class:`ComplianceCheckError` instead of
    reporting zero rain.
    """

    def __init__(
        self,
        *,
        config: ComplianceConfig,
        primary: PrecipitationSource,
        secondary: Optional[PrecipitationSource],
        store: WeatherEventStore,
        recorder: WeatherEventRecorder,
        deadlines: Optional[DeadlineCalculator] = None,
        health: Optional[HealthRegistry] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ) -> None:
        self.config = config
        self.evaluator = ThresholdEvaluator(config)
        self.deadlines = deadlines or DeadlineCalculator(config.tz, config.deadline_hours)
        self.primary = primary
        self.secondary = secondary
        self._store = store
        self._recorder = recorder
        self._health = health
        self._clock = clock or (lambda: datetime.now(timezone.utc))
        self._cache_window = timedelta(hours=config.cache_window_hours)
        if secondary is None:
            logger.warning("Secondary precipitation source disabled; running primary-only")

    # Public API ---------------------------------------------------------
    def check_precipitation(self, latitude: float, longitude: float, project_id: str) -> ComplianceCheckResult:
        started = time.monotonic()
        try:
            reading = self._acquire_reading(latitude, longitude, project_id)
        except _SourceFailure as failure:
            logger.error("Failed to check precipitation for project %s: %s", project_id, failure)
            return self._serve_cached(project_id, failure)

        exceeded = self.evaluator.evaluate(reading.amount_inches)
        logger.info(
            "EPA threshold check: %s\" %s %s\" = %s (project: %s, source: %s)",
            reading.amount_inches,
            ">=" if exceeded else "<",
            self.evaluator.threshold,
            "EXCEEDED" if exceeded else "OK",
            project_id,
            reading.source.value,
        )

        event_id = None
        if exceeded:
            event = self._recorder.record(
                project_id,
                reading.amount_inches,
                Coordinates(latitude, longitude),
                reading.source,
            )
            event_id = event.id
            logger.warning(
                "EPA 0.25\" threshold EXCEEDED: %s\" recorded for project %s (event ID: %s)",
                reading.amount_inches,
                project_id,
                event.id,
            )

        now = self._clock()
        requires_inspection = exceeded and self.deadlines.is_within_working_hours(now)
        logger.debug(
            "Weather check completed in %.0fms for project %s",
            (time.monotonic() - started) * 1000,
            project_id,
        )
        return ComplianceCheckResult(
            exceeded=exceeded,
            amount=reading.amount_inches,
            requires_inspection=requires_inspection,
            source=reading.source,
            confidence=reading.confidence,
            checked_at=now,
            event_id=event_id,
        )

    def get_recent_weather_events(self, project_id: str, days: float = 7) -> List[WeatherEvent]:
        since = self._clock() - timedelta(days=days)
        return self._store.list_recent_weather_events(project_id, since)

    def get_pending_inspections(self, tenant_id: str) -> List[WeatherEvent]:
        return self._store.list_pending_inspections(tenant_id, self._clock())

    # Helpers ------------------------------------------------------------
    def _acquire_reading(self, latitude: float, longitude: float, project_id: str) -> PrecipitationReading:
        primary = self._query(self.primary, latitude, longitude)
        if isinstance(primary, Value):
            logger.debug("Primary precipitation: %s\" for project %s", primary.amount, project_id)
            return PrecipitationReading(primary.amount, WeatherSource.PRIMARY, Confidence.HIGH, self._clock())
        if isinstance(primary, Failed):
            raise _SourceFailure(self.primary.name, primary.error)

        logger.warning("Primary source unavailable for project %s (%s), using secondary", project_id, primary.reason)
        if self.secondary is None:
            raise _SourceFailure("secondary", ProviderError("secondary precipitation source is not configured"))

        secondary = self._query(self.secondary, latitude, longitude)
        if isinstance(secondary, Value):
            logger.debug("Secondary precipitation: %s\" for project %s", secondary.amount, project_id)
            return PrecipitationReading(secondary.amount, WeatherSource.SECONDARY, Confidence.MEDIUM, self._clock())
        if isinstance(secondary, Failed):
            raise _SourceFailure(self.secondary.name, secondary.error)
        raise _SourceFailure(self.secondary.name, ProviderError(secondary.reason))

    def _query(self, source: PrecipitationSource, latitude: float, longitude: float) -> PrecipitationResult:
        try:
            amount = source.get_precipitation(latitude, longitude)
            if amount is not None and not math.isfinite(amount):
                raise ProviderError(f"{source.name} returned non-finite precipitation {amount!r}")
        except Exception as exc:  # noqa: BLE001 - provider failures are routed to the cache path
            logger.warning("Precipitation source %s failed: %s", source.name, exc)
            if self._health is not None:
                self._health.record_provider_error(source.name)
            return Failed(exc)
        if amount is None:
            return Unavailable(f"{source.name} has no data for {latitude},{longitude}")
        if self._health is not None:
            self._health.record_provider_success(source.name, self._clock())
        return Value(amount)

    def _serve_cached(self, project_id: str, failure: _SourceFailure) -> ComplianceCheckResult:
        amount = self._recent_cached_amount(project_id)
        if amount is None:
            raise ComplianceCheckError(
                f"Unable to determine compliance status for project {project_id}: manual verification required"
            ) from failure.error

        logger.warning("Using cached weather data for project %s due to source failure", project_id)
        return ComplianceCheckResult(
            exceeded=self.evaluator.evaluate(amount),
            amount=amount,
            requires_inspection=False,
            source=WeatherSource.CACHED,
            confidence=Confidence.LOW,
            checked_at=self._clock(),
        )

    def _recent_cached_amount(self, project_id: str) -> Optional[float]:
        since = self._clock() - self._cache_window

        cached = self._recorder.cached_reading(project_id)
        if cached:
            recorded_at = datetime.fromisoformat(cached["recorded_at"])
            if recorded_at >= since:
                return cached["precipitation_inches"]

        try:
            event = self._store.find_recent_weather_event(project_id, since)
        except Exception as exc:  # noqa: BLE001 - a failed lookup is the same as no cache
            logger.error("Failed to get cached weather data for project %s: %s", project_id, exc)
            return None
        return event.precipitation_inches if event else None


__all__ = ["ComplianceCheckError", "ComplianceCheckService"]
