from __future__ import annotations

import datetime
import json
import logging
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

from sqlalchemy import (
    Date,
    DateTime,
    Float,
    Integer,
    String,
    UniqueConstraint,
    create_engine,
    delete,
    select,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, sessionmaker

from .ledger import AssignmentLedger, CellKey
from .models import Project, TeamMember

DATA_DIR = Path(__file__).resolve().parent / "data"
DATA_DIR.mkdir(parents=True, exist_ok=True)
DATABASE_URL = f"sqlite:///{(DATA_DIR / 'planner.db').as_posix()}"

logger = logging.getLogger(__name__)


def _utcnow() -> datetime.datetime:
    return datetime.datetime.now(datetime.timezone.utc)


class Base(DeclarativeBase):
    """Metadata for the planner tables living in planner.db."""

    pass


class MemberRecord(Base):
    __tablename__ = "team_members"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    name: Mapped[str] = mapped_column(String(120), nullable=False)
    availability: Mapped[float] = mapped_column(Float, nullable=False, default=100.0)
    effectiveness: Mapped[float] = mapped_column(Float, nullable=False, default=100.0)
    maintenance: Mapped[float | None] = mapped_column(Float, nullable=True)
    position: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    updated_at: Mapped[datetime.datetime] = mapped_column(
        DateTime(timezone=True), default=_utcnow, onupdate=_utcnow
    )


class ProjectRecord(Base):
    __tablename__ = "projects"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    name: Mapped[str] = mapped_column(String(120), nullable=False)
    color: Mapped[str] = mapped_column(String(32), nullable=False, default="#667eea")
    hours: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    position: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    updated_at: Mapped[datetime.datetime] = mapped_column(
        DateTime(timezone=True), default=_utcnow, onupdate=_utcnow
    )


class AssignmentRecord(Base):
    __tablename__ = "assignments"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    member_id: Mapped[str] = mapped_column(String(64), nullable=False)
    week_start_date: Mapped[datetime.date] = mapped_column(Date, nullable=False)
    day_of_week: Mapped[int] = mapped_column(Integer, nullable=False)  # 0 = Monday
    position: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    project_id: Mapped[str] = mapped_column(String(64), nullable=False)
    hours: Mapped[float] = mapped_column(Float, nullable=False)

    __table_args__ = (
        UniqueConstraint(
            "member_id",
            "week_start_date",
            "day_of_week",
            "project_id",
            name="uq_assignment_cell_project",
        ),
    )


class AuditLog(Base):
    __tablename__ = "audit_log"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[str] = mapped_column(String(60), nullable=False)
    action: Mapped[str] = mapped_column(String(60), nullable=False)
    target_type: Mapped[str] = mapped_column(String(32), nullable=False, default="Assignment")
    target_id: Mapped[str | None] = mapped_column(String(120), nullable=True)
    payloadJSON: Mapped[str] = mapped_column(String(2000), nullable=False, default="{}")
    created_at: Mapped[datetime.datetime] = mapped_column(DateTime(timezone=True), default=_utcnow)


engine = create_engine(
    DATABASE_URL,
    echo=False,
    future=True,
)
SessionLocal = sessionmaker(bind=engine, expire_on_commit=False, future=True)


def init_database(bind=None) -> None:
    Base.metadata.create_all(bind if bind is not None else engine)


def load_planner_state(session) -> Tuple[List[TeamMember], List[Project], AssignmentLedger]:
    """Read the members, projects and ledger collections."""
    members = [
        TeamMember(
            id=row.id,
            name=row.name,
            availability=row.availability,
            effectiveness=row.effectiveness,
            maintenance=row.maintenance,
        )
        for row in session.scalars(select(MemberRecord).order_by(MemberRecord.position, MemberRecord.id))
    ]
    projects = [
        Project(id=row.id, name=row.name, color=row.color, hours=row.hours)
        for row in session.scalars(select(ProjectRecord).order_by(ProjectRecord.position, ProjectRecord.id))
    ]
    ledger = AssignmentLedger()
    stmt = select(AssignmentRecord).order_by(
        AssignmentRecord.member_id,
        AssignmentRecord.week_start_date,
        AssignmentRecord.day_of_week,
        AssignmentRecord.position,
    )
    for row in session.scalars(stmt):
        try:
            cell = CellKey(row.member_id, row.week_start_date, row.day_of_week)
            ledger.add(cell, row.project_id, row.hours)
        except ValueError as exc:
            logger.warning("Skipping stored assignment %s: %s", row.id, exc)
    return members, projects, ledger


def save_planner_state(
    session,
    members: List[TeamMember],
    projects: List[Project],
    ledger: AssignmentLedger,
) -> None:
    """Replace the three stored collections with the given state."""
    session.execute(delete(AssignmentRecord))
    session.execute(delete(ProjectRecord))
    session.execute(delete(MemberRecord))
    for position, member in enumerate(members):
        session.add(
            MemberRecord(
                id=member.id,
                name=member.name,
                availability=member.availability,
                effectiveness=member.effectiveness,
                maintenance=member.maintenance,
                position=position,
            )
        )
    for position, project in enumerate(projects):
        session.add(
            ProjectRecord(
                id=project.id,
                name=project.name,
                color=project.color,
                hours=project.hours,
                position=position,
            )
        )
    for cell in ledger.cells():
        for position, entry in enumerate(ledger.get(cell)):
            session.add(
                AssignmentRecord(
                    member_id=cell.member_id,
                    week_start_date=cell.week_start,
                    day_of_week=cell.day_index,
                    position=position,
                    project_id=entry.project_id,
                    hours=entry.hours,
                )
            )
    session.commit()


def record_audit_log(
    session,
    user_id: str,
    action: str,
    target_type: str = "Assignment",
    target_id: Optional[str] = None,
    payload: Optional[Dict[str, Any]] = None,
) -> AuditLog:
    log = AuditLog(
        user_id=user_id,
        action=action,
        target_type=target_type,
        target_id=target_id,
        payloadJSON=json.dumps(payload or {}, default=str),
    )
    session.add(log)
    session.commit()
    return log


def list_audit_log(session, limit: int = 50) -> List[Dict[str, Any]]:
    rows = session.scalars(select(AuditLog).order_by(AuditLog.id.desc()).limit(limit))
    return [
        {
            "id": row.id,
            "user_id": row.user_id,
            "action": row.action,
            "target_type": row.target_type,
            "target_id": row.target_id,
            "payload": json.loads(row.payloadJSON or "{}"),
            "created_at": row.created_at,
        }
        for row in rows
    ]
