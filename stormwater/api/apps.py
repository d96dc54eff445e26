from __future__ import annotations

import os

from django.apps import AppConfig


class ApiConfig(AppConfig):
    name = "stormwater.api"
    label = "stormwater_api"
    path = os.path.dirname(os.path.abspath(__file__))
    verbose_name = "Stormwater compliance API"
