"""Assignment ledger keyed by (member, week, weekday) cells."""

from __future__ import annotations

import datetime
import re
from dataclasses import dataclass
from typing import Dict, Iterable, Iterator, List, Tuple

from .errors import DuplicateProjectError, EntityNotFound

WEEKDAY_TOKENS = ["Mon", "Tue", "Wed", "Thu", "Fri"]
DAYS_PER_WEEK = len(WEEKDAY_TOKENS)
_CELL_KEY_PATTERN = re.compile(r"^(?P<member>.+)-(?P<week>\d{4}-\d{2}-\d{2})-(?P<day>\d+)$")


def normalize_week_start(date_value: datetime.date) -> datetime.date:
    """Return the Monday for the provided date."""
    if isinstance(date_value, datetime.datetime):
        date_value = date_value.date()
    weekday = date_value.weekday()
    if weekday == 0:
        return date_value
    return date_value - datetime.timedelta(days=weekday)


@dataclass(frozen=True, order=True)
class CellKey:
    member_id: str
    week_start: datetime.date
    day_index: int

    def __post_init__(self) -> None:
        if isinstance(self.week_start, datetime.datetime):
            object.__setattr__(self, "week_start", self.week_start.date())
        if self.week_start.weekday() != 0:
            raise ValueError(f"Week start {self.week_start.isoformat()} is not a Monday.")
        if not 0 <= int(self.day_index) < DAYS_PER_WEEK:
            raise ValueError(f"Weekday index must be between 0 and {DAYS_PER_WEEK - 1}.")
        object.__setattr__(self, "day_index", int(self.day_index))

    @classmethod
    def for_date(cls, member_id: str, day: datetime.date) -> "CellKey":
        if isinstance(day, datetime.datetime):
            day = day.date()
        if day.weekday() >= DAYS_PER_WEEK:
            raise ValueError(f"{day.isoformat()} falls on a weekend.")
        return cls(member_id, normalize_week_start(day), day.weekday())

    @property
    def date(self) -> datetime.date:
        return self.week_start + datetime.timedelta(days=self.day_index)

    def encode(self) -> str:
        return f"{self.member_id}-{self.week_start.isoformat()}-{self.day_index}"

    @classmethod
    def decode(cls, value: str) -> "CellKey":
        match = _CELL_KEY_PATTERN.match(value or "")
        if not match:
            raise ValueError(f"Unrecognized cell key '{value}'.")
        week_start = datetime.date.fromisoformat(match.group("week"))
        return cls(match.group("member"), week_start, int(match.group("day")))


@dataclass(frozen=True)
class LedgerEntry:
    project_id: str
    hours: float

    def to_dict(self) -> Dict[str, object]:
        return {"projectId": self.project_id, "hours": self.hours}


def _validate_hours(hours: float) -> float:
    try:
        value = float(hours)
    except (TypeError, ValueError):
        raise ValueError("Hours must be a number.") from None
    if value <= 0:
        raise ValueError("Hours must be greater than zero.")
    return value


class AssignmentLedger:
    def __init__(self) -> None:
        self._cells: Dict[CellKey, List[LedgerEntry]] = {}

    def __len__(self) -> int:
        return len(self._cells)

    def __contains__(self, cell: CellKey) -> bool:
        return cell in self._cells

    def get(self, cell: CellKey) -> List[LedgerEntry]:
        return list(self._cells.get(cell, ()))

    def total_hours(self, cell: CellKey) -> float:
        return sum(entry.hours for entry in self._cells.get(cell, ()))

    def has_project(self, cell: CellKey, project_id: str) -> bool:
        return any(entry.project_id == project_id for entry in self._cells.get(cell, ()))

    def cells(self) -> List[CellKey]:
        return list(self._cells)

    def cells_for_member(self, member_id: str) -> List[CellKey]:
        return [cell for cell in self._cells if cell.member_id == member_id]

    def entries(self) -> Iterator[Tuple[CellKey, LedgerEntry]]:
        for cell, entries in self._cells.items():
            for entry in entries:
                yield cell, entry

    def add(self, cell: CellKey, project_id: str, hours: float) -> LedgerEntry:
        value = _validate_hours(hours)
        if self.has_project(cell, project_id):
            raise DuplicateProjectError(project_id, [cell.date])
        entry = LedgerEntry(project_id, value)
        self._cells.setdefault(cell, []).append(entry)
        return entry

    def remove(self, cell: CellKey, index: int) -> LedgerEntry:
        entries = self._cells.get(cell)
        if not entries or not 0 <= index < len(entries):
            raise EntityNotFound("Assignment", f"{cell.encode()}[{index}]")
        entry = entries.pop(index)
        if not entries:
            del self._cells[cell]
        return entry

    def move(self, source: CellKey, index: int, target: CellKey) -> LedgerEntry:
        entries = self._cells.get(source)
        if not entries or not 0 <= index < len(entries):
            raise EntityNotFound("Assignment", f"{source.encode()}[{index}]")
        entry = entries[index]
        remaining = [item for pos, item in enumerate(entries) if pos != index]
        target_entries = remaining if target == source else self._cells.get(target, [])
        if any(item.project_id == entry.project_id for item in target_entries):
            raise DuplicateProjectError(entry.project_id, [target.date])
        self.remove(source, index)
        self._cells.setdefault(target, []).append(entry)
        return entry

    def remove_by_member(self, member_id: str) -> int:
        doomed = self.cells_for_member(member_id)
        for cell in doomed:
            del self._cells[cell]
        return len(doomed)

    def remove_by_project(self, project_id: str) -> int:
        removed = 0
        for cell in list(self._cells):
            kept = [entry for entry in self._cells[cell] if entry.project_id != project_id]
            removed += len(self._cells[cell]) - len(kept)
            if kept:
                self._cells[cell] = kept
            else:
                del self._cells[cell]
        return removed

    def snapshot(self) -> Dict[CellKey, List[LedgerEntry]]:
        return {cell: list(entries) for cell, entries in self._cells.items()}

    def restore(self, snapshot: Dict[CellKey, List[LedgerEntry]]) -> None:
        self._cells = {cell: list(entries) for cell, entries in snapshot.items() if entries}

    def to_records(self) -> Dict[str, List[Dict[str, object]]]:
        return {cell.encode(): [entry.to_dict() for entry in entries] for cell, entries in self._cells.items()}

    @classmethod
    def from_cells(cls, cells: Iterable[Tuple[CellKey, Iterable[LedgerEntry]]]) -> "AssignmentLedger":
        ledger = cls()
        for cell, entries in cells:
            for entry in entries:
                ledger.add(cell, entry.project_id, entry.hours)
        return ledger
