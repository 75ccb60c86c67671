from __future__ import annotations

import datetime
from typing import Iterable, List, Optional, Sequence


class PlannerError(Exception):
    """Base class for planner failures surfaced to the caller."""


class DuplicateProjectError(PlannerError, ValueError):
    def __init__(self, project_id: str, dates: Iterable[datetime.date] = ()) -> None:
        self.project_id = project_id
        self.dates: List[datetime.date] = sorted(set(dates))
        if self.dates:
            listed = ", ".join(day.isoformat() for day in self.dates)
            message = f"Project {project_id} is already assigned on {listed}."
        else:
            message = f"Project {project_id} is already assigned to this day."
        super().__init__(message)


class OverCapacityWarning(PlannerError):
    """Raised when over-capacity work is committed without being accepted."""

    def __init__(self, checks: Sequence, dates: Optional[Iterable[datetime.date]] = None) -> None:
        self.checks = list(checks)
        self.dates: List[datetime.date] = list(dates or [])
        if len(self.checks) == 1:
            message = self.checks[0].message
        else:
            message = f"{len(self.checks)} days would exceed capacity."
        super().__init__(message)


class IterationLimitExceeded(PlannerError, RuntimeError):
    def __init__(self, scanned: int, limit: int, found: int, wanted: int) -> None:
        self.scanned = scanned
        self.limit = limit
        self.found = found
        self.wanted = wanted
        super().__init__(
            f"Scanned {scanned} calendar days (limit {limit}) but only found {found} of {wanted} working days."
        )


class EntityNotFound(PlannerError, LookupError):
    def __init__(self, kind: str, key) -> None:
        self.kind = kind
        self.key = key
        super().__init__(f"{kind} {key} was not found.")
