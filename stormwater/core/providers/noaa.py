"""National Weather Service (api.weather.gov) precipitation provider."""
from __future__ import annotations

import logging
import re
import time
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Dict, Iterable, List, Optional

from .base import HttpProvider, ProviderError, mm_to_inches

PRECIPITATION_TEXT = re.compile(r"(\d+\.?\d*)\s*inch", re.IGNORECASE)


def _to_millimetres(value: float, unit_code: Optional[str]) -> float:
    # NWS quantities carry WMO unit codes such as "wmoUnit:mm" or "wmoUnit:m".
    unit = (unit_code or "wmoUnit:mm").rsplit(":", 1)[-1]
    if unit == "m":
        return value * 1000.0
    if unit == "cm":
        return value * 10.0
    return value


class NOAAProvider(HttpProvider):
    """Observed 24 hour precipitation, degrading to forecast estimates.

    Station observations are preferred. The nearest ``max_stations`` stations
    are tried in the order the API lists them (nearest first) and the first
    one that returns observations is used on its own. Without observations
    the gridpoint quantitative precipitation forecast is summed, and failing
    that the hourly forecast narrative is scanned for inch amounts.

    The whole chain is bounded by ``time_budget`` seconds, checked between
    requests. Once it runs out the lookup is reported as unavailable.

    ``get_precipitation`` returns ``None`` when the service has nothing for
    the coordinate.
    """

    name = "noaa"
    base_url = "https://api.weather.gov"
    max_stations = 3
    window = timedelta(hours=24)
    time_budget = 30.0

    def __init__(
        self,
        base_url: Optional[str] = None,
        *,
        user_agent: str = "stormwater-compliance (ops@example.com)",
        clock: Optional[Callable[[], datetime]] = None,
        time_budget: Optional[float] = None,
        monotonic: Callable[[], float] = time.monotonic,
        **kwargs,
    ) -> None:
        super().__init__(**kwargs)
        self.base_url = (base_url or self.base_url).rstrip("/")
        self.session.headers["User-Agent"] = user_agent
        self.session.headers["Accept"] = "application/geo+json"
        self._clock = clock or (lambda: datetime.now(timezone.utc))
        if time_budget is not None:
            self.time_budget = time_budget
        self._monotonic = monotonic
        self._log = logging.getLogger(self.__class__.__name__)

    def get_precipitation(self, latitude: float, longitude: float) -> Optional[float]:
        deadline = self._monotonic() + self.time_budget

        def expired(step: str) -> bool:
            if self._monotonic() < deadline:
                return False
            self._log.warning(
                "NOAA lookup for %s,%s exceeded %ss before %s, treating as unavailable",
                latitude,
                longitude,
                self.time_budget,
                step,
            )
            return True

        try:
            point = self._get_json(f"{self.base_url}/points/{latitude:.4f},{longitude:.4f}")
        except ProviderError as exc:
            self._log.error("Failed to resolve NOAA point for %s,%s: %s", latitude, longitude, exc)
            return None
        properties: Dict[str, Any] = (point or {}).get("properties") or {}

        for station_id in self._nearest_stations(properties):
            if expired(f"station {station_id}"):
                return None
            amount = self._station_precipitation(station_id)
            if amount is not None:
                self._log.debug("Station %s reported %s\" over 24h", station_id, amount)
                return amount
            self._log.debug("Station %s had no observations, trying next station", station_id)

        if expired("quantitative forecast"):
            return None
        self._log.info("No station observations near %s,%s, using forecast estimate", latitude, longitude)
        amount = self._forecast_precipitation(properties)
        if amount is not None:
            return amount
        if expired("forecast text"):
            return None
        return self._forecast_text_precipitation(properties)

    # stations -----------------------------------------------------------
    def _nearest_stations(self, properties: Dict[str, Any]) -> List[str]:
        stations_url = properties.get("observationStations")
        if not stations_url:
            return []
        try:
            data = self._get_json(stations_url)
        except ProviderError as exc:
            self._log.warning("Failed to list observation stations: %s", exc)
            return []
        features = (data or {}).get("features") or []
        if not features:
            self._log.warning("No NOAA observation stations found for coordinates")
        station_ids: List[str] = []
        for feature in features[: self.max_stations]:
            station_id = _station_identifier(feature)
            if station_id:
                station_ids.append(station_id)
        return station_ids

    def _station_precipitation(self, station_id: str) -> Optional[float]:
        end = self._clock()
        start = end - self.window
        params = {
            "start": start.astimezone(timezone.utc).isoformat().replace("+00:00", "Z"),
            "end": end.astimezone(timezone.utc).isoformat().replace("+00:00", "Z"),
        }
        try:
            data = self._get_json(f"{self.base_url}/stations/{station_id}/observations", params=params)
        except ProviderError as exc:
            self._log.debug("Station %s precipitation fetch failed: %s", station_id, exc)
            return None
        observations = (data or {}).get("features") or []
        if not observations:
            return None

        total = 0.0
        for observation in observations:
            quantity = (observation.get("properties") or {}).get("precipitationLastHour") or {}
            value = quantity.get("value")
            if value is None:
                continue
            total += mm_to_inches(_to_millimetres(float(value), quantity.get("unitCode")))
        return total

    # forecasts ----------------------------------------------------------
    def _forecast_precipitation(self, properties: Dict[str, Any]) -> Optional[float]:
        grid_url = self._gridpoint_url(properties)
        if grid_url is None:
            return None
        try:
            data = self._get_json(grid_url)
        except ProviderError as exc:
            self._log.debug("Forecast-based precipitation failed: %s", exc)
            return None
        qpf = ((data or {}).get("properties") or {}).get("quantitativePrecipitation") or {}
        values: Iterable[Dict[str, Any]] = qpf.get("values") or []
        values = list(values)[:24]
        if not values:
            return None

        unit_code = qpf.get("uom")
        total = 0.0
        for entry in values:
            value = entry.get("value")
            if value is None:
                continue
            total += mm_to_inches(_to_millimetres(float(value), unit_code))
        return total

    def _forecast_text_precipitation(self, properties: Dict[str, Any]) -> Optional[float]:
        forecast_url = properties.get("forecastHourly")
        if not forecast_url:
            grid_url = self._gridpoint_url(properties)
            if grid_url is None:
                return None
            forecast_url = f"{grid_url}/forecast/hourly"
        try:
            data = self._get_json(forecast_url)
        except ProviderError as exc:
            self._log.warning("All NOAA precipitation methods failed: %s", exc)
            return None

        periods = ((data or {}).get("properties") or {}).get("periods") or []
        total = 0.0
        for period in periods[:24]:
            text = period.get("detailedForecast") or period.get("shortForecast") or ""
            total += extract_precipitation_inches(text)
        return total

    def _gridpoint_url(self, properties: Dict[str, Any]) -> Optional[str]:
        grid_id = properties.get("gridId")
        grid_x = properties.get("gridX")
        grid_y = properties.get("gridY")
        if not grid_id or grid_x is None or grid_y is None:
            return None
        return f"{self.base_url}/gridpoints/{grid_id}/{grid_x},{grid_y}"


def extract_precipitation_inches(forecast: str) -> float:
    """Pull the first inch-denominated amount out of a forecast sentence."""

    match = PRECIPITATION_TEXT.search(forecast)
    return float(match.group(1)) if match else 0.0


def _station_identifier(feature: Dict[str, Any]) -> Optional[str]:
    properties = feature.get("properties") or {}
    identifier = properties.get("stationIdentifier")
    if identifier:
        return identifier
    feature_id = feature.get("id")
    if feature_id:
        return str(feature_id).rstrip("/").rsplit("/", 1)[-1]
    return None


__all__ = ["NOAAProvider", "extract_precipitation_inches"]
