"""Run the hourly weather monitor for all active projects."""
from __future__ import annotations

import json
from dataclasses import asdict
from typing import Any

from django.core.management.base import BaseCommand

from stormwater.api.views import get_monitor, get_mqtt_bridge


class Command(BaseCommand):
    help = "Check precipitation for every active project on a fixed interval"

    def add_arguments(self, parser) -> None:  # noqa: D401
        parser.add_argument("--once", action="store_true", help="Run a single pass and exit")

    def handle(self, *args: Any, **options: Any) -> None:  # noqa: D401
        monitor = get_monitor()
        try:
            if options.get("once"):
                report = monitor.run_once()
                self.stdout.write(json.dumps(asdict(report), sort_keys=True))
                return
            monitor.install_signal_handlers()
            monitor.run_forever()
        finally:
            bridge = get_mqtt_bridge()
            if bridge is not None:
                bridge.stop()
