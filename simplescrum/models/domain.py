"""
SimpleScrum Domain Models

Immutable data classes for the five entity kinds tracked by the engine.
Records exchanged with the persistence collaborator are plain dicts keyed by
the logical attribute names below.
"""

import uuid
from dataclasses import asdict, dataclass, field
from datetime import date, datetime, timezone
from typing import Any, Dict, NewType, Optional


ProjectId = NewType("ProjectId", str)
PbiId = NewType("PbiId", str)
SprintId = NewType("SprintId", str)
TaskId = NewType("TaskId", str)
RetrospectiveId = NewType("RetrospectiveId", str)


# Status Constants

class RefinementStatus:
    """Whether a backlog item is detailed enough to be planned."""
    VAGUE = "vague"
    READY = "ready"

    ALL = (VAGUE, READY)


class SprintStatus:
    """Sprint lifecycle values. A sprint is closed exactly once."""
    ACTIVE = "active"
    CLOSED = "closed"

    ALL = (ACTIVE, CLOSED)


class TaskStatus:
    """Task board columns."""
    TO_DO = "to_do"
    IN_PROGRESS = "in_progress"
    TESTING = "testing"
    DONE = "done"

    ALL = (TO_DO, IN_PROGRESS, TESTING, DONE)


class PBIStatus:
    """Effective workflow status of a backlog item (derived or overridden)."""
    TO_DO = "to_do"
    IN_PROGRESS = "in_progress"
    DONE = "done"

    ALL = (TO_DO, IN_PROGRESS, DONE)


class EntityKind:
    """Names of the persisted collections."""
    PROJECT = "project"
    PBI = "pbi"
    SPRINT = "sprint"
    TASK = "task"
    RETROSPECTIVE = "retrospective"

    ALL = (PROJECT, PBI, SPRINT, TASK, RETROSPECTIVE)


STORY_POINT_SCALE = (1, 2, 3, 5, 8, 13)

PROCESS_TASK_PREFIX = "T-PROC-"


def now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def new_id(prefix: str) -> str:
    return f"{prefix}-{uuid.uuid4().hex[:10]}"


def format_pbi_label(pbi_number: int) -> str:
    """Render the display label of a backlog item, e.g. ``PBI-007``."""
    return f"PBI-{pbi_number:03d}"


def format_task_label(sequence: int, pbi_number: Optional[int] = None) -> str:
    """
    Render the human-readable task id.

    ``T-007-2`` for the second task of PBI 7, ``T-PROC-1`` for the first
    process task of a sprint.
    """
    if pbi_number is None:
        return f"{PROCESS_TASK_PREFIX}{sequence}"
    return f"T-{pbi_number:03d}-{sequence}"


def _coerce_date(value: Any) -> date:
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    return date.fromisoformat(str(value)[:10])


def _optional_str(value: Any) -> Optional[str]:
    if value is None or value == "":
        return None
    return str(value)


# Core Domain Models

@dataclass(frozen=True)
class Project:
    """A product being built; owns a backlog and a sequence of sprints."""
    id: ProjectId
    name: str
    product_goal: str = ""
    current_velocity: int = 0
    created_at: str = field(default_factory=now_iso)

    def to_record(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_record(cls, data: Dict[str, Any]) -> "Project":
        return cls(
            id=ProjectId(str(data["id"])),
            name=str(data.get("name") or ""),
            product_goal=str(data.get("product_goal") or ""),
            current_velocity=int(data.get("current_velocity") or 0),
            created_at=str(data.get("created_at") or now_iso()),
        )


@dataclass(frozen=True)
class PBI:
    """
    A Product Backlog Item.

    ``priority_index`` is a dense zero-based rank within the project.
    ``status_override`` is set by manual drag on the status board and
    suppresses derived status until cleared.
    """
    id: PbiId
    project_id: ProjectId
    pbi_number: int
    title: str
    story_points: int
    priority_index: int
    refinement_status: str = RefinementStatus.VAGUE
    sprint_id: Optional[SprintId] = None
    status_override: Optional[str] = None

    @property
    def label(self) -> str:
        return format_pbi_label(self.pbi_number)

    @property
    def is_ready(self) -> bool:
        return self.refinement_status == RefinementStatus.READY

    def to_record(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_record(cls, data: Dict[str, Any]) -> "PBI":
        sprint_id = _optional_str(data.get("sprint_id"))
        return cls(
            id=PbiId(str(data["id"])),
            project_id=ProjectId(str(data["project_id"])),
            pbi_number=int(data.get("pbi_number") or 0),
            title=str(data.get("title") or ""),
            story_points=int(data.get("story_points") or 0),
            priority_index=int(data.get("priority_index") or 0),
            refinement_status=str(data.get("refinement_status") or RefinementStatus.VAGUE),
            sprint_id=SprintId(sprint_id) if sprint_id else None,
            status_override=_optional_str(data.get("status_override")),
        )


@dataclass(frozen=True)
class Sprint:
    """
    A fixed-length work cycle.

    ``committed_sp`` is frozen at planning time; ``completed_sp`` is written
    once, when the sprint closes.
    """
    id: SprintId
    project_id: ProjectId
    sprint_number: int
    sprint_goal: str
    team_capacity: int
    committed_sp: int
    start_date: date
    end_date: date
    completed_sp: int = 0
    status: str = SprintStatus.ACTIVE

    @property
    def is_active(self) -> bool:
        return self.status == SprintStatus.ACTIVE

    @property
    def is_closed(self) -> bool:
        return self.status == SprintStatus.CLOSED

    def to_record(self) -> Dict[str, Any]:
        data = asdict(self)
        data["start_date"] = self.start_date.isoformat()
        data["end_date"] = self.end_date.isoformat()
        return data

    @classmethod
    def from_record(cls, data: Dict[str, Any]) -> "Sprint":
        return cls(
            id=SprintId(str(data["id"])),
            project_id=ProjectId(str(data["project_id"])),
            sprint_number=int(data.get("sprint_number") or 0),
            sprint_goal=str(data.get("sprint_goal") or ""),
            team_capacity=int(data.get("team_capacity") or 0),
            committed_sp=int(data.get("committed_sp") or 0),
            start_date=_coerce_date(data["start_date"]),
            end_date=_coerce_date(data["end_date"]),
            completed_sp=int(data.get("completed_sp") or 0),
            status=str(data.get("status") or SprintStatus.ACTIVE),
        )


@dataclass(frozen=True)
class Task:
    """A unit of sprint work, linked to a PBI or, when ``pbi_id`` is None, a process task."""
    id: TaskId
    task_id: str
    sprint_id: SprintId
    description: str
    pbi_id: Optional[PbiId] = None
    status: str = TaskStatus.TO_DO
    owner: str = ""
    time_estimate_hours: float = 0.0

    @property
    def is_process_task(self) -> bool:
        return self.pbi_id is None

    @property
    def is_done(self) -> bool:
        return self.status == TaskStatus.DONE

    def to_record(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_record(cls, data: Dict[str, Any]) -> "Task":
        pbi_id = _optional_str(data.get("pbi_id"))
        return cls(
            id=TaskId(str(data["id"])),
            task_id=str(data.get("task_id") or ""),
            sprint_id=SprintId(str(data["sprint_id"])),
            description=str(data.get("description") or ""),
            pbi_id=PbiId(pbi_id) if pbi_id else None,
            status=str(data.get("status") or TaskStatus.TO_DO),
            owner=str(data.get("owner") or ""),
            time_estimate_hours=float(data.get("time_estimate_hours") or 0.0),
        )


@dataclass(frozen=True)
class Retrospective:
    """Sprint retrospective notes; at most one per sprint."""
    id: RetrospectiveId
    sprint_id: SprintId
    went_well: str = ""
    to_improve: str = ""
    action_item: str = ""

    def to_record(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_record(cls, data: Dict[str, Any]) -> "Retrospective":
        return cls(
            id=RetrospectiveId(str(data["id"])),
            sprint_id=SprintId(str(data["sprint_id"])),
            went_well=str(data.get("went_well") or ""),
            to_improve=str(data.get("to_improve") or ""),
            action_item=str(data.get("action_item") or ""),
        )


@dataclass(frozen=True)
class UserIdentity:
    """The authenticated owner of a session."""
    user_id: str
    email: str


ENTITY_TYPES = {
    EntityKind.PROJECT: Project,
    EntityKind.PBI: PBI,
    EntityKind.SPRINT: Sprint,
    EntityKind.TASK: Task,
    EntityKind.RETROSPECTIVE: Retrospective,
}

ID_PREFIXES = {
    EntityKind.PROJECT: "project",
    EntityKind.PBI: "pbi",
    EntityKind.SPRINT: "sprint",
    EntityKind.TASK: "task",
    EntityKind.RETROSPECTIVE: "retro",
}
