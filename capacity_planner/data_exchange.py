from __future__ import annotations

import datetime
import json
import logging
from pathlib import Path
from typing import Any, Dict, List, Tuple

from .database import DATA_DIR
from .errors import DuplicateProjectError
from .ledger import AssignmentLedger, CellKey
from .models import Project, TeamMember
from .store import PlannerStore

EXPORT_DIR = DATA_DIR / "exports"
MEMBERS_KEY = "teamMembers"
PROJECTS_KEY = "projects"
ASSIGNMENTS_KEY = "assignments"

logger = logging.getLogger(__name__)


def _timestamp() -> str:
    return datetime.datetime.now().strftime("%Y%m%d_%H%M%S")


def normalize_assignments(raw: Any) -> Dict[str, List[Dict[str, Any]]]:
    """Upgrade stored assignments to the list-per-cell shape.

    Older saves kept a single ``{projectId, hours}`` object per cell.
    """
    if not isinstance(raw, dict):
        return {}
    normalized: Dict[str, List[Dict[str, Any]]] = {}
    for key, value in raw.items():
        if isinstance(value, dict):
            value = [value]
        if not isinstance(value, list):
            continue
        entries = [item for item in value if isinstance(item, dict)]
        if entries:
            normalized[key] = entries
    return normalized


def planner_payload(store: PlannerStore) -> Dict[str, Any]:
    return {
        MEMBERS_KEY: [member.to_dict() for member in store.members],
        PROJECTS_KEY: [project.to_dict() for project in store.projects],
        ASSIGNMENTS_KEY: store.ledger.to_records(),
    }


def export_planner_state(store: PlannerStore, target: Path | None = None) -> Path:
    EXPORT_DIR.mkdir(parents=True, exist_ok=True)
    filename = target or EXPORT_DIR / f"planner_{_timestamp()}.json"
    payload = {"generated_at": datetime.datetime.now(datetime.timezone.utc).isoformat()}
    payload.update(planner_payload(store))
    filename.write_text(json.dumps(payload, indent=2), encoding="utf-8")
    logger.info("Exported planner state to %s", filename)
    return filename


def build_state(data: Dict[str, Any]) -> Tuple[List[TeamMember], List[Project], AssignmentLedger]:
    """Turn a serialized planner payload into members, projects and a ledger.

    Entries that reference unknown members or projects, unparseable cell keys,
    and non-positive hours are dropped.
    """
    members: Dict[str, TeamMember] = {}
    for item in data.get(MEMBERS_KEY) or []:
        try:
            member = TeamMember.from_dict(item)
        except (AttributeError, ValueError) as exc:
            logger.warning("Skipping member %r: %s", item, exc)
            continue
        members[member.id] = member
    projects: Dict[str, Project] = {}
    for item in data.get(PROJECTS_KEY) or []:
        try:
            project = Project.from_dict(item)
        except (AttributeError, ValueError) as exc:
            logger.warning("Skipping project %r: %s", item, exc)
            continue
        projects[project.id] = project

    ledger = AssignmentLedger()
    for key, entries in normalize_assignments(data.get(ASSIGNMENTS_KEY)).items():
        try:
            cell = CellKey.decode(key)
        except ValueError as exc:
            logger.warning("Skipping assignments for %s: %s", key, exc)
            continue
        if cell.member_id not in members:
            logger.warning("Skipping assignments for unknown member %s", cell.member_id)
            continue
        for entry in entries:
            project_id = entry.get("projectId")
            if project_id not in projects:
                logger.warning("Skipping assignment for unknown project %s", project_id)
                continue
            try:
                ledger.add(cell, project_id, entry.get("hours"))
            except (DuplicateProjectError, ValueError) as exc:
                logger.warning("Skipping assignment in %s: %s", key, exc)
    return list(members.values()), list(projects.values()), ledger


def import_planner_state(store: PlannerStore, file_path: Path) -> Dict[str, int]:
    data = json.loads(file_path.read_text(encoding="utf-8"))
    if not isinstance(data, dict):
        raise ValueError("Planner file must be a JSON object.")
    members, projects, ledger = build_state(data)
    store.replace_state(members, projects, ledger)
    counts = {
        "members": len(members),
        "projects": len(projects),
        "cells": len(ledger),
    }
    logger.info("Imported planner state from %s: %s", file_path, counts)
    return counts
