"""Planner state and the mutation entry points a UI calls into."""

from __future__ import annotations

import copy
import datetime
import logging
import threading
from contextlib import contextmanager
from typing import Any, Callable, Dict, Iterator, List, Optional

from .database import load_planner_state, save_planner_state
from .errors import EntityNotFound, OverCapacityWarning
from .ledger import AssignmentLedger, CellKey, LedgerEntry, WEEKDAY_TOKENS, normalize_week_start
from .models import Project, TeamMember, generate_id
from .progress import format_date
from .scheduler import MultiDayPlan, commit_multi_day, plan_multi_day
from .validation import AllocationCheck, check_add, check_move

logger = logging.getLogger(__name__)


class WeekCursor:
    """Week currently shown by the grid; always a Monday."""

    def __init__(self, week_start: Optional[datetime.date] = None) -> None:
        self._current = normalize_week_start(week_start or datetime.date.today())

    @property
    def current(self) -> datetime.date:
        return self._current

    def go_to(self, day: datetime.date) -> datetime.date:
        self._current = normalize_week_start(day)
        return self._current

    def shift(self, weeks: int) -> datetime.date:
        self._current = self._current + datetime.timedelta(days=7 * weeks)
        return self._current

    @property
    def days(self) -> List[datetime.date]:
        return [self._current + datetime.timedelta(days=offset) for offset in range(len(WEEKDAY_TOKENS))]

    @property
    def label(self) -> str:
        end = self._current + datetime.timedelta(days=6)
        return f"{format_date(self._current)} - {format_date(end)}"


class PlannerStore:
    def __init__(
        self,
        members: Optional[List[TeamMember]] = None,
        projects: Optional[List[Project]] = None,
        ledger: Optional[AssignmentLedger] = None,
        *,
        week_start: Optional[datetime.date] = None,
        session_factory: Optional[Callable] = None,
    ) -> None:
        self._members: Dict[str, TeamMember] = {member.id: member for member in members or []}
        self._projects: Dict[str, Project] = {project.id: project for project in projects or []}
        self.ledger = ledger if ledger is not None else AssignmentLedger()
        self.cursor = WeekCursor(week_start)
        self.session_factory = session_factory
        self.lock = threading.RLock()

    @classmethod
    def load(cls, session_factory: Callable, *, week_start: Optional[datetime.date] = None) -> "PlannerStore":
        with session_factory() as session:
            members, projects, ledger = load_planner_state(session)
        logger.info("Loaded %s members, %s projects, %s cells", len(members), len(projects), len(ledger))
        return cls(members, projects, ledger, week_start=week_start, session_factory=session_factory)

    def save(self) -> None:
        if self.session_factory is None:
            return
        with self.session_factory() as session:
            save_planner_state(session, self.members, self.projects, self.ledger)

    @contextmanager
    def transaction(self) -> Iterator[None]:
        """Serialize a mutation and persist it, or undo it if anything fails."""
        with self.lock:
            members = {key: copy.copy(member) for key, member in self._members.items()}
            projects = {key: copy.copy(project) for key, project in self._projects.items()}
            ledger = self.ledger
            cells = ledger.snapshot()
            try:
                yield
                self.save()
            except Exception:
                self._members = members
                self._projects = projects
                ledger.restore(cells)
                self.ledger = ledger
                raise

    def replace_state(
        self,
        members: List[TeamMember],
        projects: List[Project],
        ledger: AssignmentLedger,
    ) -> None:
        with self.transaction():
            self._members = {member.id: member for member in members}
            self._projects = {project.id: project for project in projects}
            self.ledger = ledger

    # ------------------------------------------------------------------
    # Members

    @property
    def members(self) -> List[TeamMember]:
        return list(self._members.values())

    def member_ids(self) -> set:
        return set(self._members)

    def get_member(self, member_id: str) -> TeamMember:
        member = self._members.get(member_id)
        if member is None:
            raise EntityNotFound("Member", member_id)
        return member

    def create_member(
        self,
        name: str,
        availability: float = 100,
        effectiveness: float = 100,
        maintenance: Optional[float] = None,
        *,
        member_id: Optional[str] = None,
    ) -> TeamMember:
        member = TeamMember(
            id=member_id or generate_id(),
            name=name,
            availability=availability,
            effectiveness=effectiveness,
            maintenance=maintenance,
        )
        with self.transaction():
            if member.id in self._members:
                raise ValueError(f"Member {member.id} already exists.")
            self._members[member.id] = member
        logger.info("Created member %s (%s)", member.id, member.name)
        return member

    def update_member(self, member_id: str, **changes: Any) -> TeamMember:
        with self.transaction():
            member = self.get_member(member_id)
            payload = member.to_dict()
            payload.update({key: value for key, value in changes.items() if key != "id"})
            updated = TeamMember.from_dict(payload)
            member.name = updated.name
            member.availability = updated.availability
            member.effectiveness = updated.effectiveness
            member.maintenance = updated.maintenance
        return member

    def delete_member(self, member_id: str) -> int:
        with self.transaction():
            self.get_member(member_id)
            del self._members[member_id]
            removed = self.ledger.remove_by_member(member_id)
        logger.info("Deleted member %s and %s assigned cell(s)", member_id, removed)
        return removed

    # ------------------------------------------------------------------
    # Projects

    @property
    def projects(self) -> List[Project]:
        return list(self._projects.values())

    def get_project(self, project_id: str) -> Project:
        project = self._projects.get(project_id)
        if project is None:
            raise EntityNotFound("Project", project_id)
        return project

    def create_project(
        self,
        name: str,
        hours: float = 0,
        color: Optional[str] = None,
        *,
        project_id: Optional[str] = None,
    ) -> Project:
        project = Project(id=project_id or generate_id(), name=name, color=color, hours=hours)
        with self.transaction():
            if project.id in self._projects:
                raise ValueError(f"Project {project.id} already exists.")
            self._projects[project.id] = project
        logger.info("Created project %s (%s, %sh)", project.id, project.name, project.hours)
        return project

    def update_project(self, project_id: str, **changes: Any) -> Project:
        with self.transaction():
            project = self.get_project(project_id)
            payload = project.to_dict()
            payload.update({key: value for key, value in changes.items() if key != "id"})
            updated = Project.from_dict(payload)
            project.name = updated.name
            project.color = updated.color
            project.hours = updated.hours
        return project

    def delete_project(self, project_id: str) -> int:
        with self.transaction():
            self.get_project(project_id)
            del self._projects[project_id]
            removed = self.ledger.remove_by_project(project_id)
        logger.info("Deleted project %s and %s assignment(s)", project_id, removed)
        return removed

    # ------------------------------------------------------------------
    # Assignments

    def cell(self, member_id: str, day_index: int, week_start: Optional[datetime.date] = None) -> CellKey:
        self.get_member(member_id)
        return CellKey(member_id, normalize_week_start(week_start or self.cursor.current), day_index)

    def check_assignment(self, cell: CellKey, project_id: str, hours: float) -> AllocationCheck:
        with self.lock:
            member = self.get_member(cell.member_id)
            self.get_project(project_id)
            return check_add(member, self.ledger, cell, project_id, hours)

    def add_assignment(
        self,
        cell: CellKey,
        project_id: str,
        hours: float,
        *,
        accept_over_capacity: bool = False,
    ) -> LedgerEntry:
        with self.transaction():
            check = self.check_assignment(cell, project_id, hours)
            if not check.ok and not accept_over_capacity:
                raise OverCapacityWarning([check], [cell.date])
            return self.ledger.add(cell, project_id, hours)

    def remove_assignment(self, cell: CellKey, index: int) -> LedgerEntry:
        with self.transaction():
            return self.ledger.remove(cell, index)

    def check_move(self, source: CellKey, index: int, target: CellKey) -> AllocationCheck:
        with self.lock:
            target_member = self.get_member(target.member_id)
            return check_move(target_member, self.ledger, source, index, target)

    def move_assignment(
        self,
        source: CellKey,
        index: int,
        target: CellKey,
        *,
        accept_over_capacity: bool = False,
    ) -> LedgerEntry:
        with self.transaction():
            check = self.check_move(source, index, target)
            if not check.ok and not accept_over_capacity:
                raise OverCapacityWarning([check], [target.date])
            return self.ledger.move(source, index, target)

    def plan_multi_day(
        self,
        start_cell: CellKey,
        project_id: str,
        percentage: float,
        day_count: int,
    ) -> MultiDayPlan:
        with self.lock:
            member = self.get_member(start_cell.member_id)
            self.get_project(project_id)
            return plan_multi_day(member, self.ledger, start_cell, project_id, percentage, day_count)

    def add_multi_day(
        self,
        start_cell: CellKey,
        project_id: str,
        percentage: float,
        day_count: int,
        *,
        accept_over_capacity: bool = False,
    ) -> MultiDayPlan:
        with self.transaction():
            plan = self.plan_multi_day(start_cell, project_id, percentage, day_count)
            commit_multi_day(plan, self.ledger, accept_over_capacity=accept_over_capacity)
        return plan

    # ------------------------------------------------------------------
    # Week cursor

    @property
    def week_start(self) -> datetime.date:
        return self.cursor.current

    def next_week(self) -> datetime.date:
        with self.lock:
            return self.cursor.shift(1)

    def previous_week(self) -> datetime.date:
        with self.lock:
            return self.cursor.shift(-1)

    def go_to_week(self, day: datetime.date) -> datetime.date:
        with self.lock:
            return self.cursor.go_to(day)
