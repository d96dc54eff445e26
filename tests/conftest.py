from __future__ import annotations

from typing import Optional

import pytest
from django.core.cache.backends.locmem import LocMemCache

from stormwater.core.abstractions import Project
from stormwater.core.config import ComplianceConfig
from stormwater.core.deadlines import DeadlineCalculator
from stormwater.core.health import HealthRegistry
from stormwater.core.models import SqlWeatherEventStore, configure_engine
from stormwater.core.services.compliance import ComplianceCheckService
from stormwater.core.services.recorder import WeatherEventRecorder
from support import WORKDAY_AFTERNOON, FrozenClock, StubSource


@pytest.fixture
def clock() -> FrozenClock:
    return FrozenClock(WORKDAY_AFTERNOON)


@pytest.fixture
def store(tmp_path) -> SqlWeatherEventStore:
    return SqlWeatherEventStore(configure_engine(f"sqlite:///{tmp_path/'compliance.db'}"))


@pytest.fixture
def project(store) -> Project:
    return store.save_project(
        Project(id="proj-1", org_id="org-1", name="Riverside Lot", latitude=40.7128, longitude=-74.006)
    )


@pytest.fixture
def cache() -> LocMemCache:
    backend = LocMemCache("compliance-tests", {})
    backend.clear()
    return backend


@pytest.fixture
def config() -> ComplianceConfig:
    return ComplianceConfig(openweather_api_key="test-key")


@pytest.fixture
def health() -> HealthRegistry:
    return HealthRegistry()


@pytest.fixture
def make_service(config, store, cache, clock, health):
    def factory(primary: StubSource, secondary: Optional[StubSource] = None, *, event_store=None) -> ComplianceCheckService:
        target = event_store or store
        deadlines = DeadlineCalculator(config.tz, config.deadline_hours)
        recorder = WeatherEventRecorder(target, deadlines, cache, clock=clock)
        return ComplianceCheckService(
            config=config,
            primary=primary,
            secondary=secondary,
            store=target,
            recorder=recorder,
            deadlines=deadlines,
            health=health,
            clock=clock,
        )

    return factory
