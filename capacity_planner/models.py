from __future__ import annotations

import secrets
from dataclasses import dataclass
from typing import Any, Dict, Optional

from .capacity import daily_capacity

DEFAULT_PROJECT_COLOR = "#667eea"


def generate_id() -> str:
    return secrets.token_hex(8)


def _percent(value: Any, label: str) -> float:
    try:
        number = float(value)
    except (TypeError, ValueError):
        raise ValueError(f"{label} must be a number.") from None
    if not 0 <= number <= 100:
        raise ValueError(f"{label} must be between 0 and 100.")
    return number


def _name(value: Any, label: str) -> str:
    name = (value or "").strip() if isinstance(value, str) else ""
    if not name:
        raise ValueError(f"{label} name is required.")
    return name


@dataclass
class TeamMember:
    id: str
    name: str
    availability: float = 100.0
    effectiveness: float = 100.0
    maintenance: Optional[float] = None

    def __post_init__(self) -> None:
        self.name = _name(self.name, "Member")
        self.availability = _percent(self.availability, "Availability")
        self.effectiveness = _percent(self.effectiveness, "Effectiveness")
        if self.maintenance is not None:
            self.maintenance = _percent(self.maintenance, "Maintenance")

    @property
    def daily_capacity(self) -> float:
        return daily_capacity(self)

    def to_dict(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {
            "id": self.id,
            "name": self.name,
            "availability": self.availability,
            "effectiveness": self.effectiveness,
        }
        if self.maintenance is not None:
            payload["maintenance"] = self.maintenance
        return payload

    @classmethod
    def from_dict(cls, payload: Dict[str, Any]) -> "TeamMember":
        return cls(
            id=str(payload.get("id") or generate_id()),
            name=payload.get("name"),
            availability=payload.get("availability", 100),
            effectiveness=payload.get("effectiveness", 100),
            maintenance=payload.get("maintenance"),
        )


@dataclass
class Project:
    id: str
    name: str
    color: str = DEFAULT_PROJECT_COLOR
    hours: float = 0.0

    def __post_init__(self) -> None:
        self.name = _name(self.name, "Project")
        self.color = (self.color or DEFAULT_PROJECT_COLOR).strip() or DEFAULT_PROJECT_COLOR
        try:
            self.hours = float(self.hours)
        except (TypeError, ValueError):
            raise ValueError("Project hours must be a number.") from None
        if self.hours < 0:
            raise ValueError("Project hours cannot be negative.")

    def to_dict(self) -> Dict[str, Any]:
        return {"id": self.id, "name": self.name, "color": self.color, "hours": self.hours}

    @classmethod
    def from_dict(cls, payload: Dict[str, Any]) -> "Project":
        return cls(
            id=str(payload.get("id") or generate_id()),
            name=payload.get("name"),
            color=payload.get("color") or DEFAULT_PROJECT_COLOR,
            hours=payload.get("hours", 0) or 0,
        )
