"""Multi-day assignment planning.

Targets are collected by stepping forward one calendar day at a time from the
start cell and keeping working days only. Planning never mutates the ledger;
``commit_multi_day`` applies a plan as a single batch.
"""

from __future__ import annotations

import datetime
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, FrozenSet, List

from .capacity import daily_capacity, round1
from .errors import DuplicateProjectError, IterationLimitExceeded, OverCapacityWarning
from .ledger import AssignmentLedger, CellKey
from .validation import AllocationCheck, check_add

WORKDAYS: FrozenSet[int] = frozenset(range(5))
SCAN_FACTOR = 3
PREVIEW_DATE_LIMIT = 5

logger = logging.getLogger(__name__)


@dataclass
class MultiDayPlan:
    member_id: str
    project_id: str
    percentage: float
    hours_per_day: float
    targets: List[CellKey]
    warnings: List[AllocationCheck] = field(default_factory=list)

    @property
    def dates(self) -> List[datetime.date]:
        return [cell.date for cell in self.targets]

    @property
    def needs_confirmation(self) -> bool:
        return bool(self.warnings)

    @property
    def warning_dates(self) -> List[datetime.date]:
        return [check.date for check in self.warnings]

    @property
    def preview_dates(self) -> List[datetime.date]:
        return self.warning_dates[:PREVIEW_DATE_LIMIT]

    @property
    def hidden_warning_count(self) -> int:
        return max(0, len(self.warnings) - PREVIEW_DATE_LIMIT)

    def confirmation_message(self) -> str:
        if not self.warnings:
            return ""
        listed = ", ".join(day.strftime("%a %b %d") for day in self.preview_dates)
        if self.hidden_warning_count:
            listed += f" and {self.hidden_warning_count} more"
        return (
            f"Assigning {self.hours_per_day:g}h/day will exceed capacity on "
            f"{len(self.warnings)} day(s): {listed}."
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "member_id": self.member_id,
            "project_id": self.project_id,
            "percentage": self.percentage,
            "hours_per_day": self.hours_per_day,
            "dates": [day.isoformat() for day in self.dates],
            "needs_confirmation": self.needs_confirmation,
            "warnings": [check.to_dict() for check in self.warnings],
            "preview_dates": [day.isoformat() for day in self.preview_dates],
            "hidden_warning_count": self.hidden_warning_count,
            "message": self.confirmation_message(),
        }


def working_days(
    start: datetime.date,
    day_count: int,
    *,
    workdays: FrozenSet[int] = WORKDAYS,
) -> List[datetime.date]:
    """Return the first ``day_count`` working days on or after ``start``."""
    if day_count < 1:
        raise ValueError("Day count must be at least 1.")
    limit = SCAN_FACTOR * day_count
    found: List[datetime.date] = []
    current = start
    scanned = 0
    while len(found) < day_count:
        if scanned >= limit:
            raise IterationLimitExceeded(scanned, limit, len(found), day_count)
        if current.weekday() in workdays:
            found.append(current)
        scanned += 1
        current += datetime.timedelta(days=1)
    return found


def plan_multi_day(
    member: Any,
    ledger: AssignmentLedger,
    start_cell: CellKey,
    project_id: str,
    percentage: float,
    day_count: int,
    *,
    workdays: FrozenSet[int] = WORKDAYS,
) -> MultiDayPlan:
    try:
        percentage = float(percentage)
        day_count = int(day_count)
    except (TypeError, ValueError):
        raise ValueError("Percentage and day count must be numbers.") from None
    if not 0 < percentage <= 100:
        raise ValueError("Percentage must be greater than 0 and at most 100.")
    hours_per_day = round1(daily_capacity(member) * percentage / 100.0)
    if hours_per_day <= 0:
        raise ValueError("Member has no capacity to schedule at this percentage.")

    days = working_days(start_cell.date, day_count, workdays=workdays)
    targets = [CellKey.for_date(start_cell.member_id, day) for day in days]

    conflicts = [cell.date for cell in targets if ledger.has_project(cell, project_id)]
    if conflicts:
        raise DuplicateProjectError(project_id, conflicts)

    warnings = []
    for cell in targets:
        check = check_add(member, ledger, cell, project_id, hours_per_day)
        if not check.ok:
            warnings.append(check)
    logger.debug(
        "Planned %s day(s) of %sh for project %s (%s over capacity)",
        len(targets),
        hours_per_day,
        project_id,
        len(warnings),
    )
    return MultiDayPlan(
        member_id=start_cell.member_id,
        project_id=project_id,
        percentage=percentage,
        hours_per_day=hours_per_day,
        targets=targets,
        warnings=warnings,
    )


def commit_multi_day(
    plan: MultiDayPlan,
    ledger: AssignmentLedger,
    *,
    accept_over_capacity: bool = False,
) -> List[CellKey]:
    if plan.warnings and not accept_over_capacity:
        raise OverCapacityWarning(plan.warnings, plan.warning_dates)
    snapshot = ledger.snapshot()
    try:
        for cell in plan.targets:
            ledger.add(cell, plan.project_id, plan.hours_per_day)
    except Exception:
        ledger.restore(snapshot)
        raise
    logger.info(
        "Scheduled project %s for member %s on %s day(s)",
        plan.project_id,
        plan.member_id,
        len(plan.targets),
    )
    return list(plan.targets)
