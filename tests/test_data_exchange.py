from __future__ import annotations

import datetime
import json

import pytest

from capacity_planner import data_exchange
from capacity_planner.data_exchange import (
    build_state,
    export_planner_state,
    import_planner_state,
    normalize_assignments,
)
from capacity_planner.errors import DuplicateProjectError
from capacity_planner.ledger import CellKey, LedgerEntry
from capacity_planner.store import PlannerStore

WEEK = datetime.date(2024, 4, 1)


@pytest.fixture()
def export_dir(monkeypatch, tmp_path):
    # Keep exports in a temp folder to avoid polluting the package.
    monkeypatch.setattr(data_exchange, "EXPORT_DIR", tmp_path)
    return tmp_path


def _legacy_payload() -> dict:
    return {
        "teamMembers": [
            {"id": "m-1", "name": "Ana", "availability": 100, "effectiveness": 75},
            {"id": "m2", "name": "Ben", "availability": 50, "effectiveness": 100},
        ],
        "projects": [{"id": "p1", "name": "Website", "color": "#ff0000", "hours": 10}],
        "assignments": {
            "m-1-2024-04-01-0": {"projectId": "p1", "hours": 4},
            "m-1-2024-04-01-1": [{"projectId": "p1", "hours": 2}],
            "m2-2024-04-01-0": [{"projectId": "ghost", "hours": 1}],
            "nobody-2024-04-01-0": [{"projectId": "p1", "hours": 1}],
            "broken-key": [{"projectId": "p1", "hours": 1}],
            "m2-2024-04-01-2": [{"projectId": "p1", "hours": 0}],
        },
    }


def test_normalize_upgrades_single_object_cells() -> None:
    normalized = normalize_assignments(
        {
            "m1-2024-04-01-0": {"projectId": "p1", "hours": 4},
            "m1-2024-04-01-1": [{"projectId": "p1", "hours": 2}],
            "m1-2024-04-01-2": [],
            "m1-2024-04-01-3": None,
        }
    )
    assert normalized == {
        "m1-2024-04-01-0": [{"projectId": "p1", "hours": 4}],
        "m1-2024-04-01-1": [{"projectId": "p1", "hours": 2}],
    }


def test_build_state_drops_unresolvable_entries() -> None:
    members, projects, ledger = build_state(_legacy_payload())
    assert [member.id for member in members] == ["m-1", "m2"]
    assert [project.id for project in projects] == ["p1"]
    assert ledger.get(CellKey("m-1", WEEK, 0)) == [LedgerEntry("p1", 4.0)]
    assert ledger.get(CellKey("m-1", WEEK, 1)) == [LedgerEntry("p1", 2.0)]
    assert len(ledger) == 2


def test_import_legacy_file_then_operate(export_dir) -> None:
    source = export_dir / "legacy.json"
    source.write_text(json.dumps(_legacy_payload()), encoding="utf-8")
    store = PlannerStore(week_start=WEEK)

    counts = import_planner_state(store, source)

    assert counts == {"members": 2, "projects": 1, "cells": 2}
    monday = CellKey("m-1", WEEK, 0)
    with pytest.raises(DuplicateProjectError):
        store.check_assignment(monday, "p1", 1)
    store.remove_assignment(monday, 0)
    assert monday not in store.ledger


def test_export_import_round_trip(export_dir) -> None:
    store = PlannerStore(week_start=WEEK)
    store.create_member("Ana", 100, 75, member_id="ana")
    store.create_project("Website", 10, project_id="web")
    store.add_multi_day(store.cell("ana", 0), "web", 50, 3)

    path = export_planner_state(store)
    assert path.parent == export_dir
    data = json.loads(path.read_text(encoding="utf-8"))
    assert sorted(data["assignments"]) == [
        "ana-2024-04-01-0",
        "ana-2024-04-01-1",
        "ana-2024-04-01-2",
    ]

    restored = PlannerStore(week_start=WEEK)
    import_planner_state(restored, path)
    assert restored.ledger.to_records() == store.ledger.to_records()
    assert restored.get_member("ana").effectiveness == 75


def test_import_rejects_non_object(export_dir) -> None:
    source = export_dir / "bad.json"
    source.write_text("[]", encoding="utf-8")
    with pytest.raises(ValueError):
        import_planner_state(PlannerStore(), source)
