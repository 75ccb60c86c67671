from __future__ import annotations

import datetime
import threading

import pytest

from capacity_planner.errors import DuplicateProjectError, EntityNotFound, OverCapacityWarning
from capacity_planner.ledger import AssignmentLedger, CellKey, LedgerEntry
from capacity_planner.models import Project, TeamMember
from capacity_planner.store import PlannerStore, WeekCursor
from capacity_planner.views import render_grid, render_members, render_project_summary

WEEK = datetime.date(2024, 4, 1)


@pytest.fixture()
def store() -> PlannerStore:
    planner = PlannerStore(week_start=datetime.date(2024, 4, 3))
    planner.create_member("Ana", 100, 75, member_id="ana")
    planner.create_member("Ben", 50, 100, member_id="ben")
    planner.create_project("Website", 10, "#ff0000", project_id="web")
    planner.create_project("Mobile", 20, project_id="app")
    return planner


def test_week_cursor_navigation() -> None:
    cursor = WeekCursor(datetime.date(2024, 4, 3))
    assert cursor.current == WEEK
    assert cursor.shift(1) == datetime.date(2024, 4, 8)
    assert cursor.shift(-2) == datetime.date(2024, 3, 25)
    assert cursor.go_to(datetime.date(2024, 4, 7)) == WEEK
    assert cursor.label == "Apr 1, 2024 - Apr 7, 2024"
    assert cursor.days[-1] == datetime.date(2024, 4, 5)


def test_store_week_navigation(store) -> None:
    assert store.week_start == WEEK
    assert store.next_week() == datetime.date(2024, 4, 8)
    assert store.previous_week() == WEEK
    assert store.cell("ana", 2) == CellKey("ana", WEEK, 2)


def test_two_phase_add(store) -> None:
    monday = store.cell("ana", 0)
    store.add_assignment(monday, "web", 4)
    check = store.check_assignment(monday, "app", 3)
    assert not check.ok
    assert (check.current, check.projected, check.limit) == (4, 7, 6)
    with pytest.raises(OverCapacityWarning):
        store.add_assignment(monday, "app", 3)
    assert store.ledger.get(monday) == [LedgerEntry("web", 4.0)]
    store.add_assignment(monday, "app", 3, accept_over_capacity=True)
    assert store.ledger.total_hours(monday) == 7


def test_duplicate_cannot_be_overridden(store) -> None:
    monday = store.cell("ana", 0)
    store.add_assignment(monday, "web", 1)
    with pytest.raises(DuplicateProjectError):
        store.add_assignment(monday, "web", 1, accept_over_capacity=True)


def test_unknown_references_raise(store) -> None:
    with pytest.raises(EntityNotFound):
        store.cell("ghost", 0)
    with pytest.raises(EntityNotFound):
        store.check_assignment(store.cell("ana", 0), "missing", 1)
    with pytest.raises(EntityNotFound):
        store.delete_project("missing")


def test_move_assignment_checks_target_capacity(store) -> None:
    source = store.cell("ana", 0)
    target = store.cell("ben", 0)
    store.add_assignment(source, "web", 5)
    with pytest.raises(OverCapacityWarning):
        store.move_assignment(source, 0, target)
    assert store.ledger.get(source) == [LedgerEntry("web", 5.0)]
    store.move_assignment(source, 0, target, accept_over_capacity=True)
    assert source not in store.ledger
    assert store.ledger.get(target) == [LedgerEntry("web", 5.0)]


def test_delete_member_removes_exactly_their_cells(store) -> None:
    for idx in range(3):
        store.add_assignment(store.cell("ana", idx), "web", 1)
    unrelated = store.cell("ben", 0)
    store.add_assignment(unrelated, "web", 2)
    before_cells = len(store.ledger)
    assert store.delete_member("ana") == 3
    assert len(store.ledger) == before_cells - 3
    assert store.ledger.cells() == [unrelated]


def test_delete_project_cascades(store) -> None:
    monday = store.cell("ana", 0)
    store.add_assignment(monday, "web", 1)
    store.add_assignment(monday, "app", 1)
    store.add_assignment(store.cell("ana", 1), "web", 1)
    assert store.delete_project("web") == 2
    assert store.ledger.cells() == [monday]
    assert store.ledger.get(monday) == [LedgerEntry("app", 1.0)]


def test_update_member_validates_before_mutating(store) -> None:
    with pytest.raises(ValueError):
        store.update_member("ana", availability=150)
    member = store.get_member("ana")
    assert member.availability == 100
    store.update_member("ana", name="Ana Maria", maintenance=10)
    assert member.name == "Ana Maria"
    assert member.maintenance == 10
    assert member.daily_capacity == 6.0


def test_update_project(store) -> None:
    store.update_project("web", hours=12, color="#00ff00")
    project = store.get_project("web")
    assert (project.hours, project.color, project.name) == (12, "#00ff00", "Website")


def test_multi_day_through_store(store) -> None:
    plan = store.add_multi_day(store.cell("ana", 3), "web", 50, 5)
    assert plan.hours_per_day == 3.0
    summary = {row["id"]: row for row in render_project_summary(store)}
    assert summary["web"]["scheduled_hours"] == 15
    assert summary["web"]["remaining_hours"] == 0
    assert summary["web"]["eta"] == "Completed"


def test_render_grid(store) -> None:
    monday = store.cell("ana", 0)
    store.add_assignment(monday, "web", 4)
    store.add_assignment(monday, "app", 3, accept_over_capacity=True)
    grid = render_grid(store, datetime.date(2024, 4, 4))
    assert grid["week_start"] == "2024-04-01"
    assert [day["label"] for day in grid["days"]] == ["Mon", "Tue", "Wed", "Thu", "Fri"]
    ana = grid["rows"][0]
    assert ana["daily_capacity"] == 6.0
    cell = ana["cells"][0]
    assert cell["total"] == 7
    assert cell["over_allocated"] is True
    assert cell["usage_pct"] == 100
    assert [item["project_name"] for item in cell["assignments"]] == ["Website", "Mobile"]
    assert ana["cells"][1] == {
        "day_index": 1,
        "date": "2024-04-02",
        "limit": 6.0,
        "total": 0,
        "over_allocated": False,
        "usage_pct": 0,
        "assignments": [],
    }


def test_render_grid_filters_stale_entries() -> None:
    ledger = AssignmentLedger()
    ledger.add(CellKey("ana", WEEK, 0), "gone", 3)
    ledger.add(CellKey("ana", WEEK, 0), "web", 2)
    store = PlannerStore(
        [TeamMember(id="ana", name="Ana")],
        [Project(id="web", name="Website", hours=4)],
        ledger,
        week_start=WEEK,
    )
    cell = render_grid(store)["rows"][0]["cells"][0]
    assert [item["project_id"] for item in cell["assignments"]] == ["web"]
    assert cell["assignments"][0]["index"] == 1
    assert cell["total"] == 2


def test_project_summary(store) -> None:
    store.add_assignment(store.cell("ana", 0), "web", 4)
    store.add_assignment(store.cell("ben", 1, datetime.date(2024, 4, 8)), "web", 4)
    summary = {row["id"]: row for row in render_project_summary(store)}
    web = summary["web"]
    assert (web["scheduled_hours"], web["remaining_hours"], web["progress_pct"]) == (8, 2, 80)
    assert web["eta"] == "Apr 9, 2024"
    assert web["eta_date"] == "2024-04-09"
    assert summary["app"]["eta"] == "Not scheduled"
    assert summary["app"]["progress_pct"] == 0


def test_render_members(store) -> None:
    members = {row["id"]: row for row in render_members(store)}
    assert members["ana"]["daily_capacity"] == 6.0
    assert members["ben"]["daily_capacity"] == 4.0


def test_changes_are_persisted(session_factory) -> None:
    planner = PlannerStore(week_start=WEEK, session_factory=session_factory)
    planner.create_member("Ana", 100, 75, member_id="ana")
    planner.create_project("Website", 10, project_id="web")
    planner.add_assignment(planner.cell("ana", 0), "web", 4)

    reloaded = PlannerStore.load(session_factory, week_start=WEEK)
    assert [member.id for member in reloaded.members] == ["ana"]
    assert reloaded.ledger.get(CellKey("ana", WEEK, 0)) == [LedgerEntry("web", 4.0)]

    planner.delete_member("ana")
    assert len(PlannerStore.load(session_factory).ledger) == 0


def test_render_grid_flags_small_overrun(store) -> None:
    monday = store.cell("ana", 0)
    store.add_assignment(monday, "web", 6)
    store.add_assignment(monday, "app", 0.04, accept_over_capacity=True)
    cell = render_grid(store)["rows"][0]["cells"][0]
    assert cell["total"] == pytest.approx(6.04)
    assert cell["over_allocated"] is True


def test_summary_remaining_agrees_with_eta(store) -> None:
    store.add_assignment(store.cell("ana", 0), "web", 5)
    store.add_assignment(store.cell("ana", 1), "web", 4.96)
    web = {row["id"]: row for row in render_project_summary(store)}["web"]
    assert web["remaining_hours"] == pytest.approx(0.04)
    assert web["eta"] == "Apr 2, 2024"


def _failing_factory():
    raise RuntimeError("disk full")


def test_failed_save_rolls_back_multi_day(session_factory) -> None:
    planner = PlannerStore(week_start=WEEK, session_factory=session_factory)
    planner.create_member("Ana", 100, 75, member_id="ana")
    planner.create_project("Website", 10, project_id="web")
    planner.session_factory = _failing_factory

    with pytest.raises(RuntimeError):
        planner.add_multi_day(planner.cell("ana", 0), "web", 50, 3)
    assert len(planner.ledger) == 0

    planner.session_factory = session_factory
    planner.create_project("Mobile", 5, project_id="app")
    assert len(PlannerStore.load(session_factory).ledger) == 0


def test_failed_save_rolls_back_member_changes(session_factory) -> None:
    planner = PlannerStore(week_start=WEEK, session_factory=session_factory)
    planner.create_member("Ana", 100, 75, member_id="ana")
    planner.create_project("Website", 10, project_id="web")
    planner.add_assignment(planner.cell("ana", 0), "web", 4)
    planner.session_factory = _failing_factory

    with pytest.raises(RuntimeError):
        planner.update_member("ana", effectiveness=50)
    assert planner.get_member("ana").effectiveness == 75
    with pytest.raises(RuntimeError):
        planner.delete_member("ana")
    assert planner.member_ids() == {"ana"}
    assert len(planner.ledger) == 1
    with pytest.raises(RuntimeError):
        planner.create_project("Mobile", 5, project_id="app")
    assert [project.id for project in planner.projects] == ["web"]


def test_mutations_wait_for_the_store_lock(store) -> None:
    monday = store.cell("ana", 0)
    worker = threading.Thread(target=store.add_assignment, args=(monday, "web", 4))
    with store.lock:
        worker.start()
        worker.join(timeout=0.2)
        assert worker.is_alive()
        assert monday not in store.ledger
    worker.join(timeout=5)
    assert store.ledger.get(monday) == [LedgerEntry("web", 4.0)]
