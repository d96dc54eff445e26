from __future__ import annotations

import threading
from typing import Dict, List

import pytest

from stormwater.alerts.schemas import AlertType, WeatherAlert
from stormwater.core.abstractions import Project
from stormwater.core.health import HealthRegistry
from stormwater.core.providers.base import ProviderError
from stormwater.core.services.compliance import ComplianceCheckError
from stormwater.monitoring.monitor import WeatherMonitor
from support import StubSource


class RecordingFanout:
    def __init__(self, fail: bool = False) -> None:
        self.published: List[tuple[str, WeatherAlert]] = []
        self.fail = fail

    def publish(self, tenant_id: str, alert: WeatherAlert) -> Dict[str, bool]:
        self.published.append((tenant_id, alert))
        if self.fail:
            raise RuntimeError("fan-out offline")
        return {"notification": True, "realtime": True}


class StaticProjects:
    def __init__(self, projects: List[Project]) -> None:
        self.projects = projects

    def list_active_projects(self) -> List[Project]:
        return list(self.projects)


class ScriptedService:
    """Stands in for the compliance service, answering per project."""

    def __init__(self, delegate, failures=()) -> None:
        self.delegate = delegate
        self.failures = set(failures)
        self.checked: List[str] = []
        self._lock = threading.Lock()

    def check_precipitation(self, latitude, longitude, project_id):
        with self._lock:
            self.checked.append(project_id)
        if project_id in self.failures:
            raise ComplianceCheckError(f"Unable to determine compliance status for project {project_id}")
        return self.delegate.check_precipitation(latitude, longitude, project_id)


@pytest.fixture
def monitored(store):
    projects = [
        Project(id="p1", org_id="org-1", name="Alpha", latitude=40.0, longitude=-74.0),
        Project(id="p2", org_id="org-1", name="Bravo", latitude=40.1, longitude=-74.1),
        Project(id="p3", org_id="org-2", name="Charlie", latitude=None, longitude=None),
        Project(id="p4", org_id="org-2", name="Delta", latitude=40.3, longitude=-74.3),
    ]
    for project in projects:
        store.save_project(project)
    return projects


def test_pass_continues_after_failures_and_skips_unlocated(make_service, monitored, clock):
    service = ScriptedService(make_service(StubSource("noaa", 0.4)), failures={"p2"})
    fanout = RecordingFanout()
    health = HealthRegistry()
    monitor = WeatherMonitor(
        service=service,
        projects=StaticProjects(monitored),
        fanout=fanout,
        health=health,
        clock=clock,
    )

    report = monitor.run_once()

    assert service.checked == ["p1", "p2", "p4"]
    assert (report.checked, report.exceeded, report.failed, report.skipped) == (3, 2, 1, 1)
    assert "p2" in report.failures

    alerts = {(tenant, alert.project_id): alert for tenant, alert in fanout.published}
    assert alerts[("org-1", "p1")].alert_type is AlertType.EPA_THRESHOLD_EXCEEDED
    assert alerts[("org-1", "p1")].precipitation_amount == 0.4
    assert alerts[("org-1", "p1")].source == "primary"
    assert alerts[("org-1", "p2")].alert_type is AlertType.MONITORING_FAILURE
    assert alerts[("org-2", "p4")].alert_type is AlertType.EPA_THRESHOLD_EXCEEDED
    assert len(fanout.published) == 3

    monitor_stats = health.snapshot()["monitor"]
    assert monitor_stats["checked"] == 3
    assert monitor_stats["failed"] == 1


def test_below_threshold_sends_no_alert(make_service, monitored, clock):
    fanout = RecordingFanout()
    monitor = WeatherMonitor(
        service=make_service(StubSource("noaa", 0.1)),
        projects=StaticProjects(monitored),
        fanout=fanout,
        clock=clock,
    )

    report = monitor.run_once()

    assert report.exceeded == 0
    assert fanout.published == []


def test_total_outage_alerts_every_project(make_service, monitored, clock):
    fanout = RecordingFanout()
    monitor = WeatherMonitor(
        service=make_service(StubSource("noaa", ProviderError("timeout"))),
        projects=StaticProjects(monitored),
        fanout=fanout,
        clock=clock,
    )

    report = monitor.run_once()

    assert report.failed == 3
    assert {alert.alert_type for _, alert in fanout.published} == {AlertType.MONITORING_FAILURE}


def test_fanout_errors_do_not_abort_pass(make_service, monitored, clock):
    monitor = WeatherMonitor(
        service=make_service(StubSource("noaa", 0.5)),
        projects=StaticProjects(monitored),
        fanout=RecordingFanout(fail=True),
        clock=clock,
    )

    report = monitor.run_once()

    assert report.exceeded == 3
    assert report.failed == 0


def test_concurrent_pass_checks_every_project(make_service, monitored, clock, store):
    service = ScriptedService(make_service(StubSource("noaa", 0.3)))
    monitor = WeatherMonitor(
        service=service,
        projects=StaticProjects(monitored),
        fanout=RecordingFanout(),
        max_workers=3,
        clock=clock,
    )

    report = monitor.run_once()

    assert sorted(service.checked) == ["p1", "p2", "p4"]
    assert report.exceeded == 3
    assert store.count_weather_events() == 3


def test_monitor_reads_active_projects_from_store(make_service, monitored, clock, store):
    monitor = WeatherMonitor(
        service=make_service(StubSource("noaa", 0.0)),
        projects=store,
        fanout=RecordingFanout(),
        clock=clock,
    )

    report = monitor.run_once()

    assert (report.checked, report.skipped) == (3, 1)


def test_run_forever_stops_when_asked(make_service, monitored, clock):
    monitor = WeatherMonitor(
        service=make_service(StubSource("noaa", 0.0)),
        projects=StaticProjects(monitored),
        fanout=RecordingFanout(),
        interval=0.01,
        clock=clock,
    )
    worker = threading.Thread(target=monitor.run_forever)
    worker.start()
    monitor.stop()
    worker.join(timeout=5)

    assert not worker.is_alive()


@pytest.mark.parametrize("kwargs", [{"interval": 0}, {"max_workers": 0}])
def test_invalid_schedule_is_rejected(kwargs):
    with pytest.raises(ValueError):
        WeatherMonitor(service=None, projects=StaticProjects([]), fanout=RecordingFanout(), **kwargs)


def test_inactive_project_is_skipped(make_service, store, clock):
    primary = StubSource("noaa", 0.5)
    fanout = RecordingFanout()
    projects = [
        Project(id="p1", org_id="org-1", name="Alpha", latitude=40.0, longitude=-74.0),
        Project(id="p9", org_id="org-1", name="Closed", status="COMPLETED", latitude=40.9, longitude=-74.9),
    ]
    for project in projects:
        store.save_project(project)
    monitor = WeatherMonitor(
        service=make_service(primary),
        projects=StaticProjects(projects),
        fanout=fanout,
        clock=clock,
    )

    report = monitor.run_once()

    assert report.checked == 1
    assert report.skipped == 1
    assert primary.calls == [(40.0, -74.0)]
    assert [alert.project_id for _, alert in fanout.published] == ["p1"]
