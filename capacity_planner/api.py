"""Lightweight FastAPI wrapper over the planner store.

A UI renders from the grid and summary endpoints and sends one mutation per
user action. Over-capacity warnings come back as 409 responses; the caller
resubmits with ``accept_over_capacity`` once the user confirms.
"""

from __future__ import annotations

import datetime
from contextlib import asynccontextmanager
from typing import Any, Callable, Dict, Optional

from fastapi import Depends, FastAPI, HTTPException, Request
from fastapi.encoders import jsonable_encoder
from fastapi.responses import JSONResponse

from .database import SessionLocal, init_database, list_audit_log, record_audit_log
from .data_exchange import planner_payload
from .errors import DuplicateProjectError, EntityNotFound, IterationLimitExceeded, OverCapacityWarning
from .ledger import CellKey
from .store import PlannerStore
from .views import render_grid, render_members, render_project_summary


def _parse_week_start(value: str) -> datetime.date:
    try:
        return datetime.date.fromisoformat(value)
    except ValueError:
        raise HTTPException(status_code=400, detail="weekStart must be YYYY-MM-DD")


def _flag(payload: Dict[str, Any], key: str) -> bool:
    value = payload.get(key)
    if isinstance(value, str):
        return value.strip().lower() in {"1", "true", "yes"}
    return bool(value)


def _cell_from_payload(store: PlannerStore, payload: Any) -> CellKey:
    if not isinstance(payload, dict):
        raise HTTPException(status_code=400, detail="cell must be an object with member_id and day_index")
    member_id = payload.get("member_id")
    if not member_id:
        raise HTTPException(status_code=400, detail="member_id is required")
    try:
        day_index = int(payload.get("day_index"))
    except (TypeError, ValueError):
        raise HTTPException(status_code=400, detail="day_index must be an integer between 0 and 4")
    week_raw = payload.get("week_start")
    week_start = _parse_week_start(str(week_raw)) if week_raw else None
    return store.cell(str(member_id), day_index, week_start)


def _hours(payload: Dict[str, Any]) -> float:
    try:
        return float(payload.get("hours"))
    except (TypeError, ValueError):
        raise HTTPException(status_code=400, detail="hours must be a number")


def _cursor_payload(store: PlannerStore) -> Dict[str, Any]:
    return {
        "week_start": store.week_start.isoformat(),
        "label": store.cursor.label,
        "days": [day.isoformat() for day in store.cursor.days],
    }


def create_app(session_factory: Callable = SessionLocal) -> FastAPI:
    @asynccontextmanager
    async def lifespan(app: FastAPI):
        with session_factory() as session:
            init_database(session.get_bind())
        app.state.store = PlannerStore.load(session_factory)
        yield

    app = FastAPI(title="Capacity Planner API", version="0.1", lifespan=lifespan)

    def get_db():
        db = session_factory()
        try:
            yield db
        finally:
            db.close()

    def get_store(request: Request) -> PlannerStore:
        return request.app.state.store

    def _audit(db, actor: str, action: str, target_type: str, target: Optional[str], payload=None) -> None:
        record_audit_log(db, user_id=actor, action=action, target_type=target_type, target_id=target, payload=payload)

    @app.exception_handler(EntityNotFound)
    async def _not_found(_: Request, exc: EntityNotFound) -> JSONResponse:
        return JSONResponse(status_code=404, content={"detail": str(exc), "kind": exc.kind})

    @app.exception_handler(DuplicateProjectError)
    async def _duplicate(_: Request, exc: DuplicateProjectError) -> JSONResponse:
        return JSONResponse(
            status_code=409,
            content={
                "detail": str(exc),
                "error": "duplicate_project",
                "project_id": exc.project_id,
                "dates": [day.isoformat() for day in exc.dates],
            },
        )

    @app.exception_handler(OverCapacityWarning)
    async def _over_capacity(_: Request, exc: OverCapacityWarning) -> JSONResponse:
        return JSONResponse(
            status_code=409,
            content={
                "detail": str(exc),
                "error": "over_capacity",
                "warnings": [check.to_dict() for check in exc.checks],
                "dates": [day.isoformat() for day in exc.dates],
            },
        )

    @app.exception_handler(IterationLimitExceeded)
    async def _iteration_limit(_: Request, exc: IterationLimitExceeded) -> JSONResponse:
        return JSONResponse(
            status_code=422,
            content={"detail": str(exc), "scanned": exc.scanned, "limit": exc.limit},
        )

    @app.exception_handler(ValueError)
    async def _bad_value(_: Request, exc: ValueError) -> JSONResponse:
        return JSONResponse(status_code=400, content={"detail": str(exc)})

    @app.get("/health")
    def health() -> Dict[str, str]:
        return {"status": "ok"}

    # Members ---------------------------------------------------------------

    @app.get("/api/v1/members")
    def list_members(store=Depends(get_store)) -> JSONResponse:
        with store.lock:
            return JSONResponse(content=jsonable_encoder({"members": render_members(store)}))

    @app.post("/api/v1/members", status_code=201)
    def create_member(payload: Dict[str, Any], store=Depends(get_store), db=Depends(get_db)) -> JSONResponse:
        member = store.create_member(
            payload.get("name"),
            payload.get("availability", 100),
            payload.get("effectiveness", 100),
            payload.get("maintenance"),
        )
        _audit(db, payload.get("actor") or "api", "MEMBER_CREATE", "Member", member.id, member.to_dict())
        return JSONResponse(status_code=201, content=jsonable_encoder(member.to_dict()))

    @app.put("/api/v1/members/{member_id}")
    def update_member(member_id: str, payload: Dict[str, Any], store=Depends(get_store), db=Depends(get_db)) -> JSONResponse:
        fields = {key: payload[key] for key in ("name", "availability", "effectiveness", "maintenance") if key in payload}
        member = store.update_member(member_id, **fields)
        _audit(db, payload.get("actor") or "api", "MEMBER_UPDATE", "Member", member.id, fields)
        return JSONResponse(content=jsonable_encoder(member.to_dict()))

    @app.delete("/api/v1/members/{member_id}")
    def delete_member(member_id: str, store=Depends(get_store), db=Depends(get_db)) -> JSONResponse:
        removed = store.delete_member(member_id)
        _audit(db, "api", "MEMBER_DELETE", "Member", member_id, {"cells_removed": removed})
        return JSONResponse(content={"id": member_id, "cells_removed": removed})

    # Projects --------------------------------------------------------------

    @app.get("/api/v1/projects")
    def list_projects(store=Depends(get_store)) -> JSONResponse:
        with store.lock:
            return JSONResponse(content=jsonable_encoder({"projects": render_project_summary(store)}))

    @app.post("/api/v1/projects", status_code=201)
    def create_project(payload: Dict[str, Any], store=Depends(get_store), db=Depends(get_db)) -> JSONResponse:
        project = store.create_project(payload.get("name"), payload.get("hours", 0), payload.get("color"))
        _audit(db, payload.get("actor") or "api", "PROJECT_CREATE", "Project", project.id, project.to_dict())
        return JSONResponse(status_code=201, content=jsonable_encoder(project.to_dict()))

    @app.put("/api/v1/projects/{project_id}")
    def update_project(project_id: str, payload: Dict[str, Any], store=Depends(get_store), db=Depends(get_db)) -> JSONResponse:
        fields = {key: payload[key] for key in ("name", "color", "hours") if key in payload}
        project = store.update_project(project_id, **fields)
        _audit(db, payload.get("actor") or "api", "PROJECT_UPDATE", "Project", project.id, fields)
        return JSONResponse(content=jsonable_encoder(project.to_dict()))

    @app.delete("/api/v1/projects/{project_id}")
    def delete_project(project_id: str, store=Depends(get_store), db=Depends(get_db)) -> JSONResponse:
        removed = store.delete_project(project_id)
        _audit(db, "api", "PROJECT_DELETE", "Project", project_id, {"assignments_removed": removed})
        return JSONResponse(content={"id": project_id, "assignments_removed": removed})

    # Weeks -----------------------------------------------------------------

    @app.get("/api/v1/weeks/current")
    def current_week(store=Depends(get_store)) -> JSONResponse:
        return JSONResponse(content=_cursor_payload(store))

    @app.put("/api/v1/weeks/current")
    def set_current_week(payload: Dict[str, Any], store=Depends(get_store)) -> JSONResponse:
        week_raw = payload.get("week_start")
        if not week_raw:
            raise HTTPException(status_code=400, detail="week_start is required")
        store.go_to_week(_parse_week_start(str(week_raw)))
        return JSONResponse(content=_cursor_payload(store))

    @app.post("/api/v1/weeks/next")
    def next_week(store=Depends(get_store)) -> JSONResponse:
        store.next_week()
        return JSONResponse(content=_cursor_payload(store))

    @app.post("/api/v1/weeks/previous")
    def previous_week(store=Depends(get_store)) -> JSONResponse:
        store.previous_week()
        return JSONResponse(content=_cursor_payload(store))

    @app.get("/api/v1/weeks/{week_start}/grid")
    def week_grid(week_start: str, store=Depends(get_store)) -> JSONResponse:
        start_date = _parse_week_start(week_start)
        with store.lock:
            return JSONResponse(content=jsonable_encoder(render_grid(store, start_date)))

    # Assignments -----------------------------------------------------------

    @app.post("/api/v1/assignments/check")
    def check_assignment(payload: Dict[str, Any], store=Depends(get_store)) -> JSONResponse:
        cell = _cell_from_payload(store, payload)
        check = store.check_assignment(cell, str(payload.get("project_id")), _hours(payload))
        return JSONResponse(content=jsonable_encoder(check.to_dict()))

    @app.post("/api/v1/assignments", status_code=201)
    def add_assignment(payload: Dict[str, Any], store=Depends(get_store), db=Depends(get_db)) -> JSONResponse:
        cell = _cell_from_payload(store, payload)
        entry = store.add_assignment(
            cell,
            str(payload.get("project_id")),
            _hours(payload),
            accept_over_capacity=_flag(payload, "accept_over_capacity"),
        )
        _audit(db, payload.get("actor") or "api", "ASSIGNMENT_ADD", "Assignment", cell.encode(), entry.to_dict())
        return JSONResponse(
            status_code=201,
            content=jsonable_encoder({"cell": cell.encode(), "date": cell.date, "assignments": [item.to_dict() for item in store.ledger.get(cell)]}),
        )

    @app.delete("/api/v1/assignments/{member_id}/{week_start}/{day_index}/{index}")
    def remove_assignment(
        member_id: str,
        week_start: str,
        day_index: int,
        index: int,
        store=Depends(get_store),
        db=Depends(get_db),
    ) -> JSONResponse:
        cell = store.cell(member_id, day_index, _parse_week_start(week_start))
        entry = store.remove_assignment(cell, index)
        _audit(db, "api", "ASSIGNMENT_REMOVE", "Assignment", cell.encode(), entry.to_dict())
        return JSONResponse(content=jsonable_encoder({"cell": cell.encode(), "removed": entry.to_dict()}))

    @app.post("/api/v1/assignments/move")
    def move_assignment(payload: Dict[str, Any], store=Depends(get_store), db=Depends(get_db)) -> JSONResponse:
        source = _cell_from_payload(store, payload.get("source"))
        target = _cell_from_payload(store, payload.get("target"))
        try:
            index = int(payload.get("index"))
        except (TypeError, ValueError):
            raise HTTPException(status_code=400, detail="index must be an integer")
        entry = store.move_assignment(
            source,
            index,
            target,
            accept_over_capacity=_flag(payload, "accept_over_capacity"),
        )
        _audit(
            db,
            payload.get("actor") or "api",
            "ASSIGNMENT_MOVE",
            "Assignment",
            source.encode(),
            {"target": target.encode(), **entry.to_dict()},
        )
        return JSONResponse(
            content=jsonable_encoder({"source": source.encode(), "target": target.encode(), "moved": entry.to_dict()})
        )

    def _multi_day_args(store: PlannerStore, payload: Dict[str, Any]):
        cell = _cell_from_payload(store, payload)
        return cell, str(payload.get("project_id")), payload.get("percentage"), payload.get("day_count")

    @app.post("/api/v1/assignments/multi-day/plan")
    def plan_multi_day(payload: Dict[str, Any], store=Depends(get_store)) -> JSONResponse:
        plan = store.plan_multi_day(*_multi_day_args(store, payload))
        return JSONResponse(content=jsonable_encoder(plan.to_dict()))

    @app.post("/api/v1/assignments/multi-day", status_code=201)
    def add_multi_day(payload: Dict[str, Any], store=Depends(get_store), db=Depends(get_db)) -> JSONResponse:
        plan = store.add_multi_day(
            *_multi_day_args(store, payload),
            accept_over_capacity=_flag(payload, "accept_over_capacity"),
        )
        _audit(db, payload.get("actor") or "api", "ASSIGNMENT_MULTI_DAY", "Member", plan.member_id, plan.to_dict())
        return JSONResponse(status_code=201, content=jsonable_encoder(plan.to_dict()))

    # Data ------------------------------------------------------------------

    @app.get("/api/v1/export")
    def export_state(store=Depends(get_store)) -> JSONResponse:
        with store.lock:
            return JSONResponse(content=jsonable_encoder(planner_payload(store)))

    @app.get("/api/v1/audit")
    def audit_log(limit: int = 50, db=Depends(get_db)) -> JSONResponse:
        return JSONResponse(content=jsonable_encoder({"entries": list_audit_log(db, limit)}))

    return app


app = create_app()
