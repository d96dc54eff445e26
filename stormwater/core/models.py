"""Database helpers for the weather event compliance store.

Weather events are append-only from this package's point of view: rows are
inserted and read, never updated or deleted (regulatory retention).
"""
from __future__ import annotations

import os
import sqlite3
import threading
import uuid
from contextlib import contextmanager
from datetime import datetime, timezone
from typing import Any, List, Optional
from urllib.parse import unquote, urlparse

import pymysql
from pymysql.cursors import DictCursor

from .abstractions import ACTIVE_STATUS, Project, WeatherEvent, WeatherSource

TIMESTAMP_FORMAT = "%Y-%m-%dT%H:%M:%S.%fZ"

INDEXES = (
    ("idx_weather_events_project_date", "weather_events", "project_id, event_date"),
    ("idx_weather_events_deadline", "weather_events", "inspection_deadline"),
)


class DatabaseSession:
    """Minimal DB-API session wrapper with context aware placeholders."""

    def __init__(self, connection, placeholder: str):
        self.connection = connection
        self.placeholder = placeholder

    def _prepare_sql(self, sql: str) -> str:
        if self.placeholder == "?":
            return sql
        return sql.replace("?", self.placeholder)

    def execute(self, sql: str, params: tuple = ()):
        cursor = self.connection.cursor()
        cursor.execute(self._prepare_sql(sql), params)
        return cursor

    def fetchone(self, sql: str, params: tuple = ()):
        cursor = self.execute(sql, params)
        row = cursor.fetchone()
        cursor.close()
        return row

    def fetchall(self, sql: str, params: tuple = ()):
        cursor = self.execute(sql, params)
        rows = cursor.fetchall()
        cursor.close()
        return rows

    def commit(self) -> None:
        self.connection.commit()

    def rollback(self) -> None:
        self.connection.rollback()

    def close(self) -> None:
        self.connection.close()


class SessionFactory:
    def __init__(self, url: str, placeholder: str, driver: str):
        self.url = url
        self.placeholder = placeholder
        self.driver = driver

    def __call__(self) -> DatabaseSession:
        connection = create_connection(self.url, self.driver)
        return DatabaseSession(connection, self.placeholder)


_engine_lock = threading.Lock()
_session_factory: Optional[SessionFactory] = None


# ---------------------------------------------------------------------------

def _default_database_url() -> str:
    return os.getenv("DATABASE_URL", "sqlite:///./stormwater.db")


def configure_engine(url: Optional[str] = None) -> SessionFactory:
    """Configure database access using the provided URL and apply the schema."""

    global _session_factory
    database_url = url or _default_database_url()
    driver, placeholder = detect_driver(database_url)
    with _engine_lock:
        _session_factory = SessionFactory(database_url, placeholder, driver)
    run_migrations(_session_factory)
    return _session_factory


def detect_driver(url: str) -> tuple[str, str]:
    parsed = urlparse(url)
    if parsed.scheme.startswith("mysql"):
        return "mysql", "%s"
    if parsed.scheme.startswith("sqlite") or parsed.scheme == "":
        return "sqlite", "?"
    raise ValueError(f"Unsupported database scheme: {parsed.scheme}")


def create_connection(url: str, driver: str):
    parsed = urlparse(url)
    if driver == "sqlite":
        path = unquote(parsed.path or parsed.netloc or ":memory:")
        db_path = path if path.startswith("/") else os.path.abspath(path)
        connection = sqlite3.connect(db_path, check_same_thread=False)
        connection.row_factory = sqlite3.Row
        connection.execute("PRAGMA foreign_keys=ON")
        return connection

    if driver == "mysql":
        return pymysql.connect(
            host=parsed.hostname or "localhost",
            user=parsed.username,
            password=parsed.password,
            database=parsed.path.lstrip("/") or None,
            port=parsed.port or 3306,
            cursorclass=DictCursor,
            autocommit=False,
        )

    raise ValueError(f"Unsupported driver: {driver}")


def get_session_factory() -> SessionFactory:
    if _session_factory is None:
        return configure_engine()
    return _session_factory


@contextmanager
def session_scope(session_factory: Optional[SessionFactory] = None):
    factory = session_factory or get_session_factory()
    session = factory()
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()


# ---------------------------------------------------------------------------

def run_migrations(session_factory: Optional[SessionFactory] = None) -> None:
    factory = session_factory or get_session_factory()
    session = factory()
    try:
        session.execute(
            """
            CREATE TABLE IF NOT EXISTS projects (
                id VARCHAR(64) PRIMARY KEY,
                org_id VARCHAR(64) NOT NULL,
                name VARCHAR(255) NOT NULL,
                status VARCHAR(32) NOT NULL,
                latitude DOUBLE PRECISION,
                longitude DOUBLE PRECISION,
                created_at VARCHAR(32) NOT NULL,
                updated_at VARCHAR(32) NOT NULL
            )
            """
        )
        session.execute(
            """
            CREATE TABLE IF NOT EXISTS weather_events (
                id VARCHAR(64) PRIMARY KEY,
                project_id VARCHAR(64) NOT NULL,
                precipitation_inches DOUBLE PRECISION NOT NULL,
                event_date VARCHAR(32) NOT NULL,
                inspection_deadline VARCHAR(32) NOT NULL,
                source VARCHAR(16) NOT NULL,
                inspection_completed INTEGER NOT NULL DEFAULT 0,
                notifications_sent INTEGER NOT NULL DEFAULT 0,
                created_at VARCHAR(32) NOT NULL,
                FOREIGN KEY(project_id) REFERENCES projects(id)
            )
            """
        )
        for name, table, columns in INDEXES:
            create_index(session, factory.driver, name, table, columns)
        session.commit()
    finally:
        session.close()


def create_index(session: DatabaseSession, driver: str, name: str, table: str, columns: str) -> None:
    # MySQL has no CREATE INDEX IF NOT EXISTS.
    if driver == "mysql":
        existing = session.fetchone(
            "SELECT 1 FROM information_schema.statistics "
            "WHERE table_schema = DATABASE() AND table_name = ? AND index_name = ? LIMIT 1",
            (table, name),
        )
        if existing is not None:
            return
        session.execute(f"CREATE INDEX {name} ON {table} ({columns})")
        return
    session.execute(f"CREATE INDEX IF NOT EXISTS {name} ON {table} ({columns})")


# ---------------------------------------------------------------------------

def format_timestamp(value: datetime) -> str:
    """Fixed-width UTC text so that string order equals time order."""

    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).strftime(TIMESTAMP_FORMAT)


def parse_timestamp(value: str) -> datetime:
    return datetime.strptime(value, TIMESTAMP_FORMAT).replace(tzinfo=timezone.utc)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _project_from_row(row) -> Project:
    return Project(
        id=row["id"],
        org_id=row["org_id"],
        name=row["name"],
        status=row["status"],
        latitude=row["latitude"],
        longitude=row["longitude"],
    )


def _event_from_row(row) -> WeatherEvent:
    return WeatherEvent(
        id=row["id"],
        project_id=row["project_id"],
        precipitation_inches=row["precipitation_inches"],
        event_date=parse_timestamp(row["event_date"]),
        inspection_deadline=parse_timestamp(row["inspection_deadline"]),
        source=WeatherSource(row["source"]),
        inspection_completed=bool(row["inspection_completed"]),
        notifications_sent=bool(row["notifications_sent"]),
        created_at=parse_timestamp(row["created_at"]),
    )


# -- Projects ----------------------------------------------------------------

def save_project(session: DatabaseSession, project: Project) -> Project:
    now = format_timestamp(utcnow())
    existing = session.fetchone("SELECT id FROM projects WHERE id = ?", (project.id,))
    if existing:
        session.execute(
            """
            UPDATE projects
            SET org_id = ?, name = ?, status = ?, latitude = ?, longitude = ?, updated_at = ?
            WHERE id = ?
            """,
            (project.org_id, project.name, project.status, project.latitude, project.longitude, now, project.id),
        )
        return project
    session.execute(
        """
        INSERT INTO projects (id, org_id, name, status, latitude, longitude, created_at, updated_at)
        VALUES (?, ?, ?, ?, ?, ?, ?, ?)
        """,
        (project.id, project.org_id, project.name, project.status, project.latitude, project.longitude, now, now),
    )
    return project


def get_project(session: DatabaseSession, project_id: str) -> Optional[Project]:
    row = session.fetchone("SELECT * FROM projects WHERE id = ?", (project_id,))
    return _project_from_row(row) if row else None


def list_active_projects(session: DatabaseSession) -> List[Project]:
    rows = session.fetchall(
        "SELECT * FROM projects WHERE status = ? ORDER BY name, id",
        (ACTIVE_STATUS,),
    )
    return [_project_from_row(row) for row in rows]


# -- Weather events ----------------------------------------------------------

def insert_weather_event(
    session: DatabaseSession,
    *,
    project_id: str,
    precipitation_inches: float,
    event_date: datetime,
    inspection_deadline: datetime,
    source: WeatherSource,
    notifications_sent: bool = False,
    inspection_completed: bool = False,
) -> WeatherEvent:
    event_id = uuid.uuid4().hex
    created_at = utcnow()
    session.execute(
        """
        INSERT INTO weather_events (
            id,
            project_id,
            precipitation_inches,
            event_date,
            inspection_deadline,
            source,
            inspection_completed,
            notifications_sent,
            created_at
        ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
        """,
        (
            event_id,
            project_id,
            precipitation_inches,
            format_timestamp(event_date),
            format_timestamp(inspection_deadline),
            WeatherSource(source).value,
            int(inspection_completed),
            int(notifications_sent),
            format_timestamp(created_at),
        ),
    )
    return WeatherEvent(
        id=event_id,
        project_id=project_id,
        precipitation_inches=precipitation_inches,
        event_date=event_date,
        inspection_deadline=inspection_deadline,
        source=WeatherSource(source),
        inspection_completed=inspection_completed,
        notifications_sent=notifications_sent,
        created_at=created_at,
    )


def find_recent_weather_event(session: DatabaseSession, project_id: str, since: datetime) -> Optional[WeatherEvent]:
    row = session.fetchone(
        """
        SELECT * FROM weather_events
        WHERE project_id = ? AND event_date >= ?
        ORDER BY event_date DESC
        LIMIT 1
        """,
        (project_id, format_timestamp(since)),
    )
    return _event_from_row(row) if row else None


def list_recent_weather_events(session: DatabaseSession, project_id: str, since: datetime) -> List[WeatherEvent]:
    rows = session.fetchall(
        """
        SELECT * FROM weather_events
        WHERE project_id = ? AND event_date >= ?
        ORDER BY event_date DESC
        """,
        (project_id, format_timestamp(since)),
    )
    return [_event_from_row(row) for row in rows]


def list_pending_inspections(session: DatabaseSession, tenant_id: str, now: datetime) -> List[WeatherEvent]:
    rows = session.fetchall(
        """
        SELECT weather_events.* FROM weather_events
        JOIN projects ON projects.id = weather_events.project_id
        WHERE projects.org_id = ?
          AND weather_events.inspection_completed = 0
          AND weather_events.inspection_deadline >= ?
        ORDER BY weather_events.inspection_deadline ASC
        """,
        (tenant_id, format_timestamp(now)),
    )
    return [_event_from_row(row) for row in rows]


def count_weather_events(session: DatabaseSession) -> int:
    row = session.fetchone("SELECT COUNT(*) AS cnt FROM weather_events")
    return int(row["cnt"])


class SqlWeatherEventStore:
    """Weather event store backed by the DB-API helpers above."""

    def __init__(self, session_factory: Optional[SessionFactory] = None) -> None:
        self._session_factory = session_factory

    @property
    def session_factory(self) -> SessionFactory:
        return self._session_factory or get_session_factory()

    def create_weather_event(self, **fields: Any) -> WeatherEvent:
        with session_scope(self.session_factory) as session:
            return insert_weather_event(session, **fields)

    def find_recent_weather_event(self, project_id: str, since: datetime) -> Optional[WeatherEvent]:
        with session_scope(self.session_factory) as session:
            return find_recent_weather_event(session, project_id, since)

    def list_recent_weather_events(self, project_id: str, since: datetime) -> List[WeatherEvent]:
        with session_scope(self.session_factory) as session:
            return list_recent_weather_events(session, project_id, since)

    def list_pending_inspections(self, tenant_id: str, now: Optional[datetime] = None) -> List[WeatherEvent]:
        with session_scope(self.session_factory) as session:
            return list_pending_inspections(session, tenant_id, now or utcnow())

    def list_active_projects(self) -> List[Project]:
        with session_scope(self.session_factory) as session:
            return list_active_projects(session)

    def get_project(self, project_id: str) -> Optional[Project]:
        with session_scope(self.session_factory) as session:
            return get_project(session, project_id)

    def save_project(self, project: Project) -> Project:
        with session_scope(self.session_factory) as session:
            return save_project(session, project)

    def count_weather_events(self) -> int:
        with session_scope(self.session_factory) as session:
            return count_weather_events(session)


__all__ = [
    "DatabaseSession",
    "SessionFactory",
    "SqlWeatherEventStore",
    "configure_engine",
    "count_weather_events",
    "find_recent_weather_event",
    "format_timestamp",
    "get_project",
    "get_session_factory",
    "insert_weather_event",
    "list_active_projects",
    "list_pending_inspections",
    "list_recent_weather_events",
    "parse_timestamp",
    "run_migrations",
    "save_project",
    "session_scope",
]
