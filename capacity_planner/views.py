"""View data for the planner grid and the side panels."""

from __future__ import annotations

import datetime
from typing import Any, Dict, List, Optional

from .capacity import daily_capacity, exceeds
from .ledger import CellKey, WEEKDAY_TOKENS, normalize_week_start
from .progress import COMPLETED, Eta, eta, format_date, progress_percent, scheduled_hours
from .store import PlannerStore


def render_members(store: PlannerStore) -> List[Dict[str, Any]]:
    return [dict(member.to_dict(), daily_capacity=daily_capacity(member)) for member in store.members]


def render_grid(store: PlannerStore, week_start: Optional[datetime.date] = None) -> Dict[str, Any]:
    """Return capacity and assignments for every member and weekday of a week."""
    start = normalize_week_start(week_start or store.week_start)
    projects = {project.id: project for project in store.projects}
    days = [
        {
            "index": idx,
            "label": token,
            "date": (start + datetime.timedelta(days=idx)).isoformat(),
            "display": format_date(start + datetime.timedelta(days=idx)),
        }
        for idx, token in enumerate(WEEKDAY_TOKENS)
    ]
    rows: List[Dict[str, Any]] = []
    for member in store.members:
        limit = daily_capacity(member)
        cells: List[Dict[str, Any]] = []
        for idx in range(len(WEEKDAY_TOKENS)):
            cell = CellKey(member.id, start, idx)
            assignments = []
            for position, entry in enumerate(store.ledger.get(cell)):
                project = projects.get(entry.project_id)
                if project is None:
                    continue
                assignments.append(
                    {
                        "index": position,
                        "project_id": project.id,
                        "project_name": project.name,
                        "color": project.color,
                        "hours": entry.hours,
                    }
                )
            total = sum(item["hours"] for item in assignments)
            usage = min(100.0, total / limit * 100.0) if limit > 0 else (100.0 if total > 0 else 0.0)
            cells.append(
                {
                    "day_index": idx,
                    "date": cell.date.isoformat(),
                    "limit": limit,
                    "total": total,
                    "over_allocated": exceeds(total, limit),
                    "usage_pct": round(usage, 1),
                    "assignments": assignments,
                }
            )
        rows.append(
            {
                "member_id": member.id,
                "name": member.name,
                "availability": member.availability,
                "effectiveness": member.effectiveness,
                "maintenance": member.maintenance,
                "daily_capacity": limit,
                "cells": cells,
            }
        )
    end = start + datetime.timedelta(days=6)
    return {
        "week_start": start.isoformat(),
        "label": f"{format_date(start)} - {format_date(end)}",
        "days": days,
        "rows": rows,
    }


def render_project_summary(store: PlannerStore) -> List[Dict[str, Any]]:
    member_ids = store.member_ids()
    summary: List[Dict[str, Any]] = []
    for project in store.projects:
        scheduled = scheduled_hours(store.ledger, project.id, member_ids)
        remaining = max(0.0, project.hours - scheduled)
        project_eta = Eta(COMPLETED) if remaining <= 0 else eta(project, store.ledger, member_ids)
        summary.append(
            {
                "id": project.id,
                "name": project.name,
                "color": project.color,
                "total_hours": project.hours,
                "scheduled_hours": scheduled,
                "remaining_hours": remaining,
                "progress_pct": round(progress_percent(project, scheduled), 1),
                "eta": project_eta.label,
                "eta_status": project_eta.status,
                "eta_date": project_eta.date.isoformat() if project_eta.date else None,
            }
        )
    return summary
