from __future__ import annotations

from datetime import datetime, timezone
from typing import List, Optional, Union


# Wednesday 2024-05-15 14:00 in New York, inside working hours.
WORKDAY_AFTERNOON = datetime(2024, 5, 15, 18, 0, tzinfo=timezone.utc)


class FrozenClock:
    def __init__(self, now: datetime) -> None:
        self.now = now

    def __call__(self) -> datetime:
        return self.now


class StubSource:
    """Precipitation source returning a fixed amount, ``None`` or raising."""

    def __init__(self, name: str, result: Union[float, None, Exception]) -> None:
        self.name = name
        self.result = result
        self.calls: List[tuple] = []

    def get_precipitation(self, latitude: float, longitude: float) -> Optional[float]:
        self.calls.append((latitude, longitude))
        if isinstance(self.result, Exception):
            raise self.result
        return self.result
