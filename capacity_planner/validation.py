from __future__ import annotations

import datetime
import logging
from dataclasses import dataclass
from typing import Any, Dict, Optional

from .capacity import daily_capacity, exceeds
from .errors import DuplicateProjectError, EntityNotFound
from .ledger import AssignmentLedger, CellKey

OVER_CAPACITY = "over_capacity"

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class AllocationCheck:
    ok: bool
    cell: Optional[CellKey] = None
    reason: Optional[str] = None
    current: float = 0.0
    projected: float = 0.0
    limit: float = 0.0

    @property
    def date(self) -> Optional[datetime.date]:
        return self.cell.date if self.cell else None

    @property
    def message(self) -> str:
        if self.ok:
            return "Within capacity."
        added = self.projected - self.current
        return (
            f"Adding {added:g}h will result in {self.projected:g}h assigned, "
            f"which exceeds the available {self.limit:g}h for this day."
        )

    def to_dict(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {"ok": self.ok}
        if not self.ok:
            payload.update(
                {
                    "reason": self.reason,
                    "date": self.date.isoformat() if self.date else None,
                    "current": self.current,
                    "projected": self.projected,
                    "limit": self.limit,
                    "message": self.message,
                }
            )
        return payload


def _capacity_check(member: Any, cell: CellKey, current: float, hours: float) -> AllocationCheck:
    limit = daily_capacity(member)
    projected = current + hours
    if exceeds(projected, limit):
        logger.debug("Cell %s over capacity: %s > %s", cell.encode(), projected, limit)
        return AllocationCheck(
            ok=False,
            cell=cell,
            reason=OVER_CAPACITY,
            current=current,
            projected=projected,
            limit=limit,
        )
    return AllocationCheck(ok=True, cell=cell, current=current, projected=projected, limit=limit)


def check_add(member: Any, ledger: AssignmentLedger, cell: CellKey, project_id: str, hours: float) -> AllocationCheck:
    """Pre-check an assignment before it is written to the ledger.

    A duplicate project in the cell raises; exceeding capacity is only reported.
    """
    if ledger.has_project(cell, project_id):
        raise DuplicateProjectError(project_id, [cell.date])
    return _capacity_check(member, cell, ledger.total_hours(cell), float(hours))


def check_move(
    target_member: Any,
    ledger: AssignmentLedger,
    source: CellKey,
    index: int,
    target: CellKey,
) -> AllocationCheck:
    entries = ledger.get(source)
    if not 0 <= index < len(entries):
        raise EntityNotFound("Assignment", f"{source.encode()}[{index}]")
    entry = entries[index]
    if target == source:
        current = sum(item.hours for pos, item in enumerate(entries) if pos != index)
        others = [item for pos, item in enumerate(entries) if pos != index]
    else:
        current = ledger.total_hours(target)
        others = ledger.get(target)
    if any(item.project_id == entry.project_id for item in others):
        raise DuplicateProjectError(entry.project_id, [target.date])
    return _capacity_check(target_member, target, current, entry.hours)
