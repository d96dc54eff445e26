"""OpenWeatherMap precipitation provider."""
from __future__ import annotations

import logging
import math
import os
from typing import Any, Dict, Optional

from .base import HttpProvider, ProviderError, mm_to_inches

# Snow is reported as linear depth; roughly a tenth of it is water.
SNOW_WATER_RATIO = 0.1


class OpenWeatherMapProvider(HttpProvider):
    """Integration with the OpenWeather One Call hourly endpoint.

    This is the last live source in the chain, so it never answers "no
    rain" on failure: every problem is raised as :class:`ProviderError`.
    """

    name = "openweathermap"
    base_url = "https://api.openweathermap.org/data/3.0/onecall"
    hours = 24

    def __init__(self, *, api_key: str, base_url: Optional[str] = None, **kwargs) -> None:
        if not api_key:
            raise ValueError("OpenWeatherMap requires an API key")
        super().__init__(**kwargs)
        self.api_key = api_key
        self.base_url = base_url or self.base_url
        self._testing_mode = os.environ.get("TESTING_MODE", "0") == "1"
        self._log = logging.getLogger(self.__class__.__name__)

    def get_precipitation(self, latitude: float, longitude: float) -> float:
        params = {
            "lat": latitude,
            "lon": longitude,
            "exclude": "current,minutely,daily,alerts",
            "appid": self.api_key,
            "units": "metric",
        }
        try:
            data = self._get_json(self.base_url, params=params)
        except ProviderError:
            self._log.error("Failed to fetch OpenWeatherMap data for %s,%s", latitude, longitude)
            raise

        hourly = (data or {}).get("hourly")
        if not isinstance(hourly, list):
            raise ProviderError("OpenWeatherMap response is missing hourly data")

        total = 0.0
        for hour in hourly[: self.hours]:
            total += _hour_precipitation_inches(hour)
        if self._testing_mode:
            self._log.info("OpenWeatherMap precipitation", extra={"hours": len(hourly[: self.hours]), "inches": total})
        return total


def _hour_precipitation_inches(hour: Dict[str, Any]) -> float:
    rain_mm = _one_hour(hour.get("rain"))
    snow_mm = _one_hour(hour.get("snow"))
    return mm_to_inches(rain_mm) + mm_to_inches(snow_mm) * SNOW_WATER_RATIO


def _one_hour(block: Any) -> float:
    if not block:
        return 0.0
    try:
        value = float(block.get("1h") or 0.0)
    except (AttributeError, TypeError, ValueError) as exc:
        raise ProviderError(f"Malformed precipitation block: {block!r}") from exc
    if not math.isfinite(value):
        raise ProviderError(f"Non-finite precipitation block: {block!r}")
    return value


__all__ = ["OpenWeatherMapProvider", "SNOW_WATER_RATIO"]
