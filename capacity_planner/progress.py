from __future__ import annotations

import datetime
from dataclasses import dataclass
from typing import Any, Container, Optional

from .ledger import AssignmentLedger

COMPLETED = "completed"
NOT_SCHEDULED = "not_scheduled"
SCHEDULED = "scheduled"


@dataclass(frozen=True)
class Eta:
    status: str
    date: Optional[datetime.date] = None

    @property
    def label(self) -> str:
        return format_eta(self)


def format_date(day: datetime.date) -> str:
    return f"{day.strftime('%b')} {day.day}, {day.year}"


def format_eta(eta: Eta) -> str:
    if eta.status == COMPLETED:
        return "Completed"
    if eta.status == NOT_SCHEDULED or eta.date is None:
        return "Not scheduled"
    return format_date(eta.date)


def _field(item: Any, name: str, default=None):
    if isinstance(item, dict):
        return item.get(name, default)
    return getattr(item, name, default)


def scheduled_hours(
    ledger: AssignmentLedger,
    project_id: str,
    member_ids: Optional[Container[str]] = None,
) -> float:
    """Sum hours for the project across every week of the ledger.

    When ``member_ids`` is provided, entries for members outside it are stale
    and skipped.
    """
    total = 0.0
    for cell, entry in ledger.entries():
        if entry.project_id != project_id:
            continue
        if member_ids is not None and cell.member_id not in member_ids:
            continue
        total += entry.hours
    return total


def remaining_hours(
    project: Any,
    ledger: AssignmentLedger,
    member_ids: Optional[Container[str]] = None,
) -> float:
    total = float(_field(project, "hours", 0) or 0)
    return max(0.0, total - scheduled_hours(ledger, _field(project, "id"), member_ids))


def progress_percent(project: Any, scheduled: float) -> float:
    total = float(_field(project, "hours", 0) or 0)
    if total <= 0:
        return 0.0
    return min(100.0, scheduled / total * 100.0)


def eta(
    project: Any,
    ledger: AssignmentLedger,
    member_ids: Optional[Container[str]] = None,
) -> Eta:
    """Date of the last currently scheduled work, not a throughput forecast."""
    if remaining_hours(project, ledger, member_ids) <= 0:
        return Eta(COMPLETED)
    project_id = _field(project, "id")
    latest: Optional[datetime.date] = None
    for cell, entry in ledger.entries():
        if entry.project_id != project_id:
            continue
        if member_ids is not None and cell.member_id not in member_ids:
            continue
        if latest is None or cell.date > latest:
            latest = cell.date
    if latest is None:
        return Eta(NOT_SCHEDULED)
    return Eta(SCHEDULED, latest)
