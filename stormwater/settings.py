"""Django settings for the stormwater compliance service."""
from __future__ import annotations

from pathlib import Path
import os
from datetime import timezone

from django.core.exceptions import ImproperlyConfigured

from stormwater.core.config import validate_threshold, validate_time_zone

BASE_DIR = Path(__file__).resolve().parent.parent


def env(name: str, default: str | None = None) -> str:
    """Fetch environment variables while allowing explicit defaults."""

    value = os.environ.get(name, default)
    if value is None:
        raise ImproperlyConfigured(f"Environment variable {name} is required")
    return value


SECRET_KEY = env("DJANGO_SECRET_KEY")
DEBUG = os.environ.get("DJANGO_DEBUG", "0") == "1"
ALLOWED_HOSTS = os.environ.get("DJANGO_ALLOWED_HOSTS", "*").split(",")

INSTALLED_APPS = [
    "django.contrib.auth",
    "django.contrib.contenttypes",
    "django.contrib.sessions",
    "django.contrib.messages",
    "django.contrib.staticfiles",
    "rest_framework",
    "stormwater.api",
]

MIDDLEWARE = [
    "django.middleware.security.SecurityMiddleware",
    "django.contrib.sessions.middleware.SessionMiddleware",
    "django.middleware.common.CommonMiddleware",
    "django.middleware.csrf.CsrfViewMiddleware",
    "django.contrib.auth.middleware.AuthenticationMiddleware",
    "django.contrib.messages.middleware.MessageMiddleware",
]

ROOT_URLCONF = "stormwater.urls"

TEMPLATES = [
    {
        "BACKEND": "django.template.backends.django.DjangoTemplates",
        "DIRS": [],
        "APP_DIRS": True,
        "OPTIONS": {
            "context_processors": [
                "django.template.context_processors.debug",
                "django.template.context_processors.request",
                "django.contrib.auth.context_processors.auth",
                "django.contrib.messages.context_processors.messages",
            ],
        },
    }
]

WSGI_APPLICATION = "stormwater.wsgi.application"

DEFAULT_AUTO_FIELD = "django.db.models.BigAutoField"

# Django's own tables (sessions, auth). Compliance data lives behind DATABASE_URL.
DATABASES = {
    "default": {
        "ENGINE": "django.db.backends.sqlite3",
        "NAME": os.environ.get("DB_NAME", str(BASE_DIR / "db.sqlite3")),
    }
}

DATABASE_URL = os.environ.get("DATABASE_URL", f"sqlite:///{BASE_DIR / 'stormwater.db'}")

REDIS_URL = os.environ.get("REDIS_URL")
if REDIS_URL:
    CACHES = {
        "default": {
            "BACKEND": "django_redis.cache.RedisCache",
            "LOCATION": REDIS_URL,
            "OPTIONS": {
                "CLIENT_CLASS": "django_redis.client.DefaultClient",
            },
        }
    }
else:
    CACHES = {
        "default": {
            "BACKEND": "django.core.cache.backends.locmem.LocMemCache",
            "LOCATION": "stormwater-local",
        }
    }

WEATHER_CACHE_ALIAS = os.environ.get("WEATHER_CACHE_ALIAS", "default")

# Compliance ------------------------------------------------------------------
# Refuses to start on anything but the EPA CGP value.
EPA_RAIN_THRESHOLD_INCHES = validate_threshold(env("EPA_RAIN_THRESHOLD_INCHES", "0.25"))

COMPLIANCE_TIME_ZONE = env("COMPLIANCE_TIME_ZONE", "America/New_York")
validate_time_zone(COMPLIANCE_TIME_ZONE)

NOAA_BASE_URL = env("NOAA_BASE_URL", "https://api.weather.gov")
NOAA_USER_AGENT = env("NOAA_USER_AGENT", "stormwater-compliance (ops@example.com)")
NOAA_TIME_BUDGET_SECONDS = float(env("NOAA_TIME_BUDGET_SECONDS", "30"))
OPENWEATHER_API_KEY = os.environ.get("OPENWEATHER_API_KEY") or None
OPENWEATHER_BASE_URL = env("OPENWEATHER_BASE_URL", "https://api.openweathermap.org/data/3.0/onecall")
WEATHER_PROVIDER_TIMEOUT = float(env("WEATHER_PROVIDER_TIMEOUT", "10"))
WEATHER_PROVIDER_RETRIES = int(env("WEATHER_PROVIDER_RETRIES", "2"))

WEATHER_MONITOR_INTERVAL_SECONDS = float(env("WEATHER_MONITOR_INTERVAL_SECONDS", "3600"))
WEATHER_MONITOR_MAX_WORKERS = int(env("WEATHER_MONITOR_MAX_WORKERS", "1"))

MQTT_ALERTS_ENABLED = os.environ.get("MQTT_ALERTS_ENABLED", "0") == "1"

REST_FRAMEWORK = {
    "DEFAULT_RENDERER_CLASSES": [
        "rest_framework.renderers.JSONRenderer",
    ],
    "DEFAULT_PARSER_CLASSES": [
        "rest_framework.parsers.JSONParser",
    ],
}

LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO").upper()

LOGGING = {
    "version": 1,
    "disable_existing_loggers": False,
    "formatters": {
        "standard": {
            "format": "%(asctime)s %(levelname)s %(name)s: %(message)s",
        },
    },
    "handlers": {
        "console": {
            "class": "logging.StreamHandler",
            "formatter": "standard",
        },
    },
    "root": {
        "handlers": ["console"],
        "level": LOG_LEVEL,
    },
}

LANGUAGE_CODE = "en-us"
TIME_ZONE = "UTC"
USE_I18N = True
USE_TZ = True
DEFAULT_TIMEZONE = timezone.utc

STATIC_URL = "static/"
