"""Management command to run a compliance check using the same stack as the API."""
from __future__ import annotations

import json
from typing import Any

from django.core.management.base import BaseCommand, CommandError

from stormwater.api.views import get_compliance_service, get_store
from stormwater.core.services.compliance import ComplianceCheckError


class Command(BaseCommand):
    help = "Check 24 hour precipitation for a project against the EPA 0.25 inch trigger"

    def add_arguments(self, parser) -> None:  # noqa: D401
        parser.add_argument("--project", required=True, help="Project id")
        parser.add_argument("--lat", type=float, help="Latitude (defaults to the project's location)")
        parser.add_argument("--lon", type=float, help="Longitude (defaults to the project's location)")

    def handle(self, *args: Any, **options: Any) -> None:  # noqa: D401
        project_id = options["project"]
        latitude = options.get("lat")
        longitude = options.get("lon")

        project = get_store().get_project(project_id)
        if project is None:
            raise CommandError(f"Unknown project {project_id}")
        if latitude is None or longitude is None:
            if not project.has_coordinates:
                raise CommandError("--lat and --lon are required for a project without coordinates")
            latitude, longitude = project.latitude, project.longitude

        try:
            result = get_compliance_service().check_precipitation(latitude, longitude, project_id)
        except ComplianceCheckError as exc:
            raise CommandError(str(exc)) from exc

        self.stdout.write(json.dumps(result.as_dict()))
