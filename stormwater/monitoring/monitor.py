"""Hourly rain-event monitoring across active projects."""
from __future__ import annotations

import logging
import signal
import threading
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Callable, Dict, List, Optional, Protocol

from stormwater.alerts.fanout import AlertFanout
from stormwater.alerts.schemas import WeatherAlert
from stormwater.core.abstractions import Project
from stormwater.core.health import HealthRegistry
from stormwater.core.services.compliance import ComplianceCheckService

logger = logging.getLogger(__name__)

DEFAULT_INTERVAL_SECONDS = 60 * 60

EXCEEDED = "exceeded"
BELOW = "below"
FAILED = "failed"
SKIPPED = "skipped"


class ProjectSource(Protocol):
    def list_active_projects(self) -> List[Project]:
        ...


@dataclass
class MonitorReport:
    checked: int = 0
    exceeded: int = 0
    failed: int = 0
    skipped: int = 0
    failures: Dict[str, str] = field(default_factory=dict)

    def add(self, project: Project, outcome: str, error: Optional[str] = None) -> None:
        if outcome == SKIPPED:
            self.skipped += 1
            return
        self.checked += 1
        if outcome == EXCEEDED:
            self.exceeded += 1
        elif outcome == FAILED:
            self.failed += 1
            self.failures[project.id] = error or "unknown error"


class WeatherMonitor:
    """Run a compliance check for every active project on a fixed cadence.

    A failing project never aborts the pass: the failure is logged, a
    ``MONITORING_FAILURE`` alert goes out for that project so its status is
    visibly unknown, and the remaining projects are still checked.
    """

    def __init__(
        self,
        *,
        service: ComplianceCheckService,
        projects: ProjectSource,
        fanout: AlertFanout,
        health: Optional[HealthRegistry] = None,
        interval: float = DEFAULT_INTERVAL_SECONDS,
        max_workers: int = 1,
        clock: Optional[Callable[[], datetime]] = None,
    ) -> None:
        if interval <= 0:
            raise ValueError("interval must be positive")
        if max_workers < 1:
            raise ValueError("max_workers must be at least 1")
        self.service = service
        self.projects = projects
        self.fanout = fanout
        self.health = health
        self.interval = interval
        self.max_workers = max_workers
        self._clock = clock or (lambda: datetime.now(timezone.utc))
        self._stop = threading.Event()

    # -- Single pass --------------------------------------------------------
    def run_once(self) -> MonitorReport:
        logger.debug("Starting weather check for all active projects")
        projects = self.projects.list_active_projects()
        report = MonitorReport()

        if self.max_workers == 1:
            outcomes = [self._check_project(project) for project in projects]
        else:
            with ThreadPoolExecutor(max_workers=self.max_workers, thread_name_prefix="weather-monitor") as pool:
                outcomes = list(pool.map(self._check_project, projects))

        for project, (outcome, error) in zip(projects, outcomes):
            report.add(project, outcome, error)

        if self.health is not None:
            self.health.record_monitor_pass(
                checked=report.checked,
                exceeded=report.exceeded,
                failed=report.failed,
                skipped=report.skipped,
                when=self._clock(),
            )
        logger.info(
            "Completed weather check for %s projects (%s exceeded, %s failed, %s skipped)",
            len(projects),
            report.exceeded,
            report.failed,
            report.skipped,
        )
        return report

    def _check_project(self, project: Project) -> tuple[str, Optional[str]]:
        if not project.is_active:
            logger.info("Project %s is %s, skipping weather check", project.id, project.status)
            return SKIPPED, None
        if not project.has_coordinates:
            logger.warning("Project %s missing location coordinates, skipping weather check", project.id)
            return SKIPPED, None

        try:
            result = self.service.check_precipitation(project.latitude, project.longitude, project.id)
        except Exception as exc:  # noqa: BLE001 - one project must not abort the pass
            logger.error('Weather check failed for project "%s" (%s): %s', project.name, project.id, exc)
            self._publish_failure(project)
            return FAILED, str(exc)

        if not result.exceeded:
            logger.debug(
                'Project "%s": %s" precipitation (%s) - below EPA threshold',
                project.name,
                result.amount,
                result.source.value,
            )
            return BELOW, None

        logger.warning(
            'EPA 0.25" threshold EXCEEDED: Project "%s" recorded %s" precipitation (source: %s, confidence: %s)',
            project.name,
            result.amount,
            result.source.value,
            result.confidence.value,
        )
        alert = WeatherAlert.threshold_exceeded(
            project_id=project.id,
            project_name=project.name,
            amount=result.amount,
            source=result.source.value,
            when=self._clock(),
        )
        self._publish(project, alert)
        return EXCEEDED, None

    def _publish_failure(self, project: Project) -> None:
        alert = WeatherAlert.monitoring_failure(
            project_id=project.id,
            project_name=project.name,
            when=self._clock(),
        )
        self._publish(project, alert)

    def _publish(self, project: Project, alert: WeatherAlert) -> None:
        try:
            self.fanout.publish(project.org_id, alert)
        except Exception as exc:  # noqa: BLE001 - alert delivery is best-effort
            logger.error("Failed to send %s alert for project %s: %s", alert.alert_type.value, project.id, exc)

    # -- Loop ---------------------------------------------------------------
    def run_forever(self) -> None:
        logger.info("Weather monitoring started, interval %ss", self.interval)
        while not self._stop.is_set():
            try:
                self.run_once()
            except Exception:  # noqa: BLE001 - keep the schedule alive; the next pass retries
                logger.exception("Failed to check weather for projects")
            self._stop.wait(self.interval)
        logger.info("Weather monitoring stopped")

    def stop(self) -> None:
        self._stop.set()

    def install_signal_handlers(self) -> None:
        def _handle_signal(signum, frame):
            logger.info("Received signal %s, shutting down", signum)
            self.stop()

        signal.signal(signal.SIGINT, _handle_signal)
        signal.signal(signal.SIGTERM, _handle_signal)


__all__ = ["MonitorReport", "WeatherMonitor"]
