from __future__ import annotations

import itertools
from datetime import datetime, timezone

import pytest
import requests
import responses

from stormwater.core.providers.base import MM_TO_INCHES, ProviderError, QuotaExceeded
from stormwater.core.providers.noaa import NOAAProvider, extract_precipitation_inches
from stormwater.core.providers.openweathermap import OpenWeatherMapProvider

NOAA = "https://noaa.test"
POINT_URL = f"{NOAA}/points/40.7128,-74.0060"
STATIONS_URL = f"{NOAA}/gridpoints/OKX/33,35/stations"
GRID_URL = f"{NOAA}/gridpoints/OKX/33,35"
HOURLY_URL = f"{NOAA}/gridpoints/OKX/33,35/forecast/hourly"
OWM = "https://owm.test/onecall"


def make_noaa() -> NOAAProvider:
    return NOAAProvider(NOAA, clock=lambda: datetime(2024, 5, 15, 18, 0, tzinfo=timezone.utc))


def point_payload(**overrides):
    properties = {
        "gridId": "OKX",
        "gridX": 33,
        "gridY": 35,
        "observationStations": STATIONS_URL,
        "forecastHourly": HOURLY_URL,
    }
    properties.update(overrides)
    return {"properties": properties}


def stations_payload(*identifiers):
    return {
        "features": [
            {"id": f"{NOAA}/stations/{identifier}", "properties": {"stationIdentifier": identifier}}
            for identifier in identifiers
        ]
    }


def observations(*values, unit="wmoUnit:mm"):
    return {
        "features": [
            {"properties": {"precipitationLastHour": {"value": value, "unitCode": unit}}} for value in values
        ]
    }


def test_noaa_uses_first_station_with_observations(requests_mock):
    requests_mock.get(POINT_URL, json=point_payload())
    requests_mock.get(STATIONS_URL, json=stations_payload("KNYC", "KLGA", "KJFK", "KEWR"))
    requests_mock.get(f"{NOAA}/stations/KNYC/observations", status_code=500)
    requests_mock.get(f"{NOAA}/stations/KLGA/observations", json={"features": []})
    kjfk = requests_mock.get(f"{NOAA}/stations/KJFK/observations", json=observations(2.0, None, 4.35))
    kewr = requests_mock.get(f"{NOAA}/stations/KEWR/observations", json=observations(100.0))

    amount = make_noaa().get_precipitation(40.7128, -74.006)

    assert amount == pytest.approx((2.0 + 4.35) * MM_TO_INCHES)
    assert kjfk.called_once
    assert not kewr.called
    assert kjfk.last_request.qs["start"] == ["2024-05-14t18:00:00z"]
    assert requests_mock.request_history[0].headers["User-Agent"].startswith("stormwater-compliance")


def test_noaa_station_with_zero_rain_is_usable(requests_mock):
    requests_mock.get(POINT_URL, json=point_payload())
    requests_mock.get(STATIONS_URL, json=stations_payload("KNYC"))
    requests_mock.get(f"{NOAA}/stations/KNYC/observations", json=observations(None, None))
    grid = requests_mock.get(GRID_URL, json={})

    assert make_noaa().get_precipitation(40.7128, -74.006) == 0.0
    assert not grid.called


def test_noaa_converts_metre_observations(requests_mock):
    requests_mock.get(POINT_URL, json=point_payload())
    requests_mock.get(STATIONS_URL, json=stations_payload("KNYC"))
    requests_mock.get(f"{NOAA}/stations/KNYC/observations", json=observations(0.0064, unit="wmoUnit:m"))

    amount = make_noaa().get_precipitation(40.7128, -74.006)

    assert amount == pytest.approx(6.4 * MM_TO_INCHES)


def test_noaa_falls_back_to_quantitative_forecast(requests_mock):
    requests_mock.get(POINT_URL, json=point_payload())
    requests_mock.get(STATIONS_URL, json={"features": []})
    values = [{"validTime": f"2024-05-15T{hour:02d}:00:00+00:00/PT1H", "value": 1.0} for hour in range(24)]
    values.append({"validTime": "2024-05-16T00:00:00+00:00/PT1H", "value": 50.0})
    requests_mock.get(
        GRID_URL,
        json={"properties": {"quantitativePrecipitation": {"uom": "wmoUnit:mm", "values": values}}},
    )

    amount = make_noaa().get_precipitation(40.7128, -74.006)

    assert amount == pytest.approx(24 * MM_TO_INCHES)


def test_noaa_falls_back_to_forecast_text(requests_mock):
    requests_mock.get(POINT_URL, json=point_payload())
    requests_mock.get(STATIONS_URL, status_code=503)
    requests_mock.get(GRID_URL, status_code=500)
    requests_mock.get(
        HOURLY_URL,
        json={
            "properties": {
                "periods": [
                    {"detailedForecast": "Rain. New rainfall amounts between a quarter and 0.1 inch possible."},
                    {"shortForecast": "Showers, 0.2 inches"},
                    {"detailedForecast": "Mostly cloudy"},
                ]
            }
        },
    )

    amount = make_noaa().get_precipitation(40.7128, -74.006)

    assert amount == pytest.approx(0.3)


def test_noaa_point_failure_means_unavailable(requests_mock):
    requests_mock.get(POINT_URL, status_code=404)

    assert make_noaa().get_precipitation(40.7128, -74.006) is None


def test_noaa_gives_up_when_time_budget_runs_out(requests_mock):
    ticks = itertools.chain([0.0, 5.0, 31.0], itertools.repeat(31.0))
    provider = NOAAProvider(NOAA, time_budget=30.0, monotonic=lambda: next(ticks))
    requests_mock.get(POINT_URL, json=point_payload())
    requests_mock.get(STATIONS_URL, json=stations_payload("KNYC", "KLGA"))
    requests_mock.get(f"{NOAA}/stations/KNYC/observations", status_code=500)
    klga = requests_mock.get(f"{NOAA}/stations/KLGA/observations", json=observations(5.0))
    grid = requests_mock.get(GRID_URL, json={})

    assert provider.get_precipitation(40.7128, -74.006) is None
    assert not klga.called
    assert not grid.called


def test_noaa_unreachable_text_forecast_means_unavailable(requests_mock):
    requests_mock.get(POINT_URL, json=point_payload(observationStations=None))
    requests_mock.get(GRID_URL, json={"properties": {}})
    requests_mock.get(HOURLY_URL, exc=requests.exceptions.ConnectTimeout)

    assert make_noaa().get_precipitation(40.7128, -74.006) is None


@pytest.mark.parametrize(
    "text, expected",
    [
        ("Total daytime rainfall of 0.75 inches possible", 0.75),
        ("Around 1 inch of rain", 1.0),
        ("Rain likely, 2.5inches", 2.5),
        ("Chance of showers", 0.0),
    ],
)
def test_extract_precipitation_inches(text, expected):
    assert extract_precipitation_inches(text) == expected


@responses.activate
def test_openweathermap_sums_rain_and_snow_water_equivalent():
    hourly = [{"rain": {"1h": 1.0}} for _ in range(20)]
    hourly += [{"snow": {"1h": 10.0}}, {"rain": {"1h": 0.5}, "snow": {"1h": 5.0}}, {}, {"rain": {}}]
    hourly += [{"rain": {"1h": 100.0}}]
    responses.add(responses.GET, OWM, json={"hourly": hourly}, status=200)
    provider = OpenWeatherMapProvider(api_key="secret", base_url=OWM)

    amount = provider.get_precipitation(40.7128, -74.006)

    expected_mm = 20 * 1.0 + 0.5 + (10.0 + 5.0) * 0.1
    assert amount == pytest.approx(expected_mm * MM_TO_INCHES)
    request = responses.calls[0].request
    assert "appid=secret" in request.url
    assert "units=metric" in request.url


@responses.activate
def test_openweathermap_quota_error():
    responses.add(responses.GET, OWM, json={"message": "limit"}, status=429)
    provider = OpenWeatherMapProvider(api_key="secret", base_url=OWM)

    with pytest.raises(QuotaExceeded):
        provider.get_precipitation(1.0, 2.0)


@responses.activate
def test_openweathermap_missing_hourly_is_an_error():
    responses.add(responses.GET, OWM, json={"lat": 1.0}, status=200)
    provider = OpenWeatherMapProvider(api_key="secret", base_url=OWM)

    with pytest.raises(ProviderError):
        provider.get_precipitation(1.0, 2.0)


@responses.activate
def test_openweathermap_malformed_block_is_an_error():
    responses.add(responses.GET, OWM, json={"hourly": [{"rain": "heavy"}]}, status=200)
    provider = OpenWeatherMapProvider(api_key="secret", base_url=OWM)

    with pytest.raises(ProviderError):
        provider.get_precipitation(1.0, 2.0)


@responses.activate
def test_openweathermap_non_finite_amount_is_an_error():
    responses.add(responses.GET, OWM, body='{"hourly": [{"rain": {"1h": NaN}}]}', status=200)
    provider = OpenWeatherMapProvider(api_key="secret", base_url=OWM)

    with pytest.raises(ProviderError):
        provider.get_precipitation(1.0, 2.0)


def test_openweathermap_requires_api_key():
    with pytest.raises(ValueError):
        OpenWeatherMapProvider(api_key="")
