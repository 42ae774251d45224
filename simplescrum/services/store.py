"""
SimpleScrum Entity Store

Authoritative in-memory collections of projects, backlog items, sprints,
tasks and retrospectives for one session. Entities are immutable; every
update replaces the stored instance. Each successful mutation is reported to
the registered listeners (the persistence dispatcher in practice).
"""

from contextlib import contextmanager
from dataclasses import dataclass, field, replace
from datetime import date, timedelta
from typing import Any, Callable, Dict, Iterable, Iterator, List, Mapping, Optional

from simplescrum.errors import NotFoundError, ValidationError
from simplescrum.logging import get_logger
from simplescrum.models.commands import (
    PBICreate,
    PBIUpdate,
    ProjectCreate,
    ProjectUpdate,
    RetrospectiveCreate,
    RetrospectiveUpdate,
    SprintCreate,
    SprintUpdate,
    TaskCreate,
    TaskUpdate,
)
from simplescrum.models.domain import (
    ENTITY_TYPES,
    ID_PREFIXES,
    PBI,
    EntityKind,
    PbiId,
    Project,
    ProjectId,
    Retrospective,
    RetrospectiveId,
    Sprint,
    SprintId,
    SprintStatus,
    Task,
    TaskId,
    format_task_label,
    new_id,
)

logger = get_logger(__name__)

DEFAULT_SPRINT_LENGTH_DAYS = 14


@dataclass(frozen=True)
class StoreChange:
    """A single applied mutation, as handed to listeners."""
    kind: str
    op: str
    entity_id: str
    fields: Dict[str, Any] = field(default_factory=dict)
    batch: Optional[str] = None


StoreListener = Callable[[StoreChange], None]


class EntityStore:
    """
    Per-session entity collections keyed by identifier.

    Mutators validate field domains and foreign keys before touching state,
    so a raised ValidationError or NotFoundError leaves the store unchanged.
    """

    def __init__(
        self,
        owner_id: Optional[str] = None,
        *,
        sprint_length_days: int = DEFAULT_SPRINT_LENGTH_DAYS,
    ) -> None:
        self.owner_id = owner_id
        self.sprint_length_days = sprint_length_days
        self._projects: Dict[ProjectId, Project] = {}
        self._pbis: Dict[PbiId, PBI] = {}
        self._sprints: Dict[SprintId, Sprint] = {}
        self._tasks: Dict[TaskId, Task] = {}
        self._retrospectives: Dict[RetrospectiveId, Retrospective] = {}
        self._listeners: List[StoreListener] = []
        self._batch: Optional[str] = None

    # Listeners

    def add_listener(self, listener: StoreListener) -> None:
        self._listeners.append(listener)

    def remove_listener(self, listener: StoreListener) -> None:
        if listener in self._listeners:
            self._listeners.remove(listener)

    @contextmanager
    def batch(self, label: str) -> Iterator[None]:
        """Tag every change made inside the block with ``label``."""
        previous = self._batch
        self._batch = label
        try:
            yield
        finally:
            self._batch = previous

    def _notify(self, kind: str, op: str, entity_id: str, fields: Dict[str, Any]) -> None:
        change = StoreChange(kind=kind, op=op, entity_id=entity_id, fields=fields, batch=self._batch)
        for listener in list(self._listeners):
            listener(change)

    def _inserted(self, kind: str, entity: Any) -> None:
        self._notify(kind, "insert", entity.id, entity.to_record())

    def _updated(self, kind: str, entity: Any, changed: Iterable[str]) -> None:
        record = entity.to_record()
        self._notify(kind, "update", entity.id, {name: record[name] for name in changed})

    @staticmethod
    def _diff(current: Any, changes: Dict[str, Any]) -> Dict[str, Any]:
        return {k: v for k, v in changes.items() if getattr(current, k) != v}

    # Snapshot management

    def load(self, snapshot: Mapping[str, Iterable[Dict[str, Any]]]) -> None:
        """Replace every collection with entities rebuilt from repository records."""
        collections: Dict[str, Dict[str, Any]] = {kind: {} for kind in EntityKind.ALL}
        for kind, records in snapshot.items():
            entity_cls = ENTITY_TYPES.get(kind)
            if entity_cls is None:
                raise ValueError(f"Unknown entity kind: {kind}")
            for record in records:
                entity = entity_cls.from_record(record)
                collections[kind][entity.id] = entity
        self._projects = collections[EntityKind.PROJECT]
        self._pbis = collections[EntityKind.PBI]
        self._sprints = collections[EntityKind.SPRINT]
        self._tasks = collections[EntityKind.TASK]
        self._retrospectives = collections[EntityKind.RETROSPECTIVE]
        logger.info(
            "store_loaded",
            extra={"owner_id": self.owner_id, "counts": self.counts()},
        )

    def clear(self) -> None:
        self._projects = {}
        self._pbis = {}
        self._sprints = {}
        self._tasks = {}
        self._retrospectives = {}

    def counts(self) -> Dict[str, int]:
        return {
            EntityKind.PROJECT: len(self._projects),
            EntityKind.PBI: len(self._pbis),
            EntityKind.SPRINT: len(self._sprints),
            EntityKind.TASK: len(self._tasks),
            EntityKind.RETROSPECTIVE: len(self._retrospectives),
        }

    # Projects

    def create_project(self, command: ProjectCreate) -> Project:
        project = Project(
            id=ProjectId(new_id(ID_PREFIXES[EntityKind.PROJECT])),
            name=command.name,
            product_goal=command.product_goal,
        )
        self._projects[project.id] = project
        self._inserted(EntityKind.PROJECT, project)
        return project

    def update_project(self, project_id: str, command: ProjectUpdate) -> Project:
        current = self.get_project(project_id)
        changes = self._diff(current, command.changes())
        if not changes:
            return current
        project = replace(current, **changes)
        self._projects[project.id] = project
        self._updated(EntityKind.PROJECT, project, changes)
        return project

    def record_velocity(self, project_id: str, velocity: int) -> Project:
        """Overwrite the project's current velocity. Used only when a sprint closes."""
        if velocity < 0:
            raise ValidationError("Velocity cannot be negative", metadata={"velocity": velocity})
        current = self.get_project(project_id)
        if current.current_velocity == velocity:
            return current
        project = replace(current, current_velocity=velocity)
        self._projects[project.id] = project
        self._updated(EntityKind.PROJECT, project, ["current_velocity"])
        return project

    def get_project(self, project_id: str) -> Project:
        project = self._projects.get(ProjectId(project_id))
        if project is None:
            raise NotFoundError(f"Project {project_id} not found", metadata={"project_id": project_id})
        return project

    def list_projects(self) -> List[Project]:
        return sorted(self._projects.values(), key=lambda p: (p.created_at, p.id))

    # Product Backlog Items

    def create_pbi(self, command: PBICreate) -> PBI:
        project = self.get_project(command.project_id)
        siblings = self.list_pbis(project.id)
        pbi = PBI(
            id=PbiId(new_id(ID_PREFIXES[EntityKind.PBI])),
            project_id=project.id,
            pbi_number=max((p.pbi_number for p in siblings), default=0) + 1,
            title=command.title,
            story_points=command.story_points,
            priority_index=len(siblings),
            refinement_status=command.refinement_status,
        )
        self._pbis[pbi.id] = pbi
        self._inserted(EntityKind.PBI, pbi)
        return pbi

    def update_pbi(self, pbi_id: str, command: PBIUpdate) -> PBI:
        current = self.get_pbi(pbi_id)
        changes = self._diff(current, command.changes())
        sprint_id = changes.get("sprint_id")
        if sprint_id is not None:
            sprint = self.get_sprint(sprint_id)
            if sprint.project_id != current.project_id:
                raise ValidationError(
                    f"Sprint {sprint_id} belongs to a different project than {current.label}",
                    metadata={"pbi_id": current.id, "sprint_id": sprint_id},
                )
            changes["sprint_id"] = sprint.id
        if not changes:
            return current
        pbi = replace(current, **changes)
        self._pbis[pbi.id] = pbi
        self._updated(EntityKind.PBI, pbi, changes)
        return pbi

    def replace_priorities(self, project_id: str, ordering: Mapping[str, int]) -> List[PBI]:
        """
        Apply a whole recomputed ordering in one step.

        ``ordering`` must cover every PBI of the project and map them onto
        exactly {0, ..., n-1}. Returns the PBIs whose index changed.
        """
        project = self.get_project(project_id)
        current = {p.id: p for p in self.list_pbis(project.id)}
        if set(ordering) != set(current):
            raise ValidationError(
                "Ordering must list every backlog item of the project exactly once",
                metadata={"project_id": project.id},
            )
        if sorted(ordering.values()) != list(range(len(current))):
            raise ValidationError(
                "Priority indices must be exactly 0..n-1",
                metadata={"project_id": project.id},
            )

        changed: List[PBI] = []
        for pbi_id, index in ordering.items():
            existing = current[PbiId(pbi_id)]
            if existing.priority_index != index:
                changed.append(replace(existing, priority_index=index))
        for pbi in changed:
            self._pbis[pbi.id] = pbi
        for pbi in changed:
            self._updated(EntityKind.PBI, pbi, ["priority_index"])
        return changed

    def get_pbi(self, pbi_id: str) -> PBI:
        pbi = self._pbis.get(PbiId(pbi_id))
        if pbi is None:
            raise NotFoundError(f"PBI {pbi_id} not found", metadata={"pbi_id": pbi_id})
        return pbi

    def find_pbi(self, pbi_id: Optional[str]) -> Optional[PBI]:
        if pbi_id is None:
            return None
        return self._pbis.get(PbiId(pbi_id))

    def list_pbis(
        self,
        project_id: Optional[str] = None,
        *,
        sprint_id: Optional[str] = None,
    ) -> List[PBI]:
        """Backlog items ordered by priority."""
        items = [
            p for p in self._pbis.values()
            if (project_id is None or p.project_id == project_id)
            and (sprint_id is None or p.sprint_id == sprint_id)
        ]
        return sorted(items, key=lambda p: (p.project_id, p.priority_index, p.pbi_number))

    # Sprints

    def create_sprint(self, command: SprintCreate, *, today: Optional[date] = None) -> Sprint:
        project = self.get_project(command.project_id)
        start = command.start_date or today or date.today()
        end = command.end_date or start + timedelta(days=self.sprint_length_days)
        if end < start:
            raise ValidationError(
                "Sprint end date must not be before its start date",
                metadata={"start_date": start.isoformat(), "end_date": end.isoformat()},
            )
        sprint = Sprint(
            id=SprintId(new_id(ID_PREFIXES[EntityKind.SPRINT])),
            project_id=project.id,
            sprint_number=max((s.sprint_number for s in self.list_sprints(project.id)), default=0) + 1,
            sprint_goal=command.sprint_goal,
            team_capacity=command.team_capacity,
            committed_sp=command.committed_sp,
            start_date=start,
            end_date=end,
        )
        self._sprints[sprint.id] = sprint
        self._inserted(EntityKind.SPRINT, sprint)
        return sprint

    def update_sprint(self, sprint_id: str, command: SprintUpdate) -> Sprint:
        current = self.get_sprint(sprint_id)
        changes = self._diff(current, command.changes())
        if not changes:
            return current
        sprint = replace(current, **changes)
        if sprint.end_date < sprint.start_date:
            raise ValidationError(
                "Sprint end date must not be before its start date",
                metadata={"sprint_id": sprint.id},
            )
        self._sprints[sprint.id] = sprint
        self._updated(EntityKind.SPRINT, sprint, changes)
        return sprint

    def mark_sprint_closed(self, sprint_id: str, completed_sp: int) -> Sprint:
        current = self.get_sprint(sprint_id)
        if current.is_closed:
            raise ValidationError(
                f"Sprint {current.sprint_number} is already closed",
                metadata={"sprint_id": current.id},
            )
        if completed_sp < 0:
            raise ValidationError("Completed story points cannot be negative")
        sprint = replace(current, status=SprintStatus.CLOSED, completed_sp=completed_sp)
        self._sprints[sprint.id] = sprint
        self._updated(EntityKind.SPRINT, sprint, ["status", "completed_sp"])
        return sprint

    def get_sprint(self, sprint_id: str) -> Sprint:
        sprint = self._sprints.get(SprintId(sprint_id))
        if sprint is None:
            raise NotFoundError(f"Sprint {sprint_id} not found", metadata={"sprint_id": sprint_id})
        return sprint

    def find_sprint(self, sprint_id: Optional[str]) -> Optional[Sprint]:
        if sprint_id is None:
            return None
        return self._sprints.get(SprintId(sprint_id))

    def list_sprints(
        self,
        project_id: Optional[str] = None,
        *,
        status: Optional[str] = None,
    ) -> List[Sprint]:
        """Sprints ordered by sprint number."""
        items = [
            s for s in self._sprints.values()
            if (project_id is None or s.project_id == project_id)
            and (status is None or s.status == status)
        ]
        return sorted(items, key=lambda s: (s.project_id, s.sprint_number))

    def active_sprint(self, project_id: str) -> Optional[Sprint]:
        """The most recent active sprint of the project, if any."""
        active = self.list_sprints(project_id, status=SprintStatus.ACTIVE)
        return active[-1] if active else None

    # Tasks

    def _next_task_label(self, sprint_id: SprintId, pbi: Optional[PBI]) -> str:
        group_pbi_id = pbi.id if pbi else None
        in_sprint = [t for t in self._tasks.values() if t.sprint_id == sprint_id]
        taken = {t.task_id for t in in_sprint}
        sequence = sum(1 for t in in_sprint if t.pbi_id == group_pbi_id) + 1
        label = format_task_label(sequence, pbi.pbi_number if pbi else None)
        while label in taken:
            sequence += 1
            label = format_task_label(sequence, pbi.pbi_number if pbi else None)
        return label

    def create_task(self, command: TaskCreate) -> Task:
        sprint = self.get_sprint(command.sprint_id)
        pbi: Optional[PBI] = None
        if command.pbi_id is not None:
            pbi = self.get_pbi(command.pbi_id)
            if pbi.sprint_id != sprint.id:
                raise ValidationError(
                    f"{pbi.label} is not part of sprint {sprint.sprint_number}",
                    metadata={"pbi_id": pbi.id, "sprint_id": sprint.id},
                )
        task = Task(
            id=TaskId(new_id(ID_PREFIXES[EntityKind.TASK])),
            task_id=self._next_task_label(sprint.id, pbi),
            sprint_id=sprint.id,
            description=command.description,
            pbi_id=pbi.id if pbi else None,
            status=command.status,
            owner=command.owner,
            time_estimate_hours=float(command.time_estimate_hours),
        )
        self._tasks[task.id] = task
        self._inserted(EntityKind.TASK, task)
        return task

    def update_task(self, task_id: str, command: TaskUpdate) -> Task:
        current = self.get_task(task_id)
        changes = self._diff(current, command.changes())
        if "time_estimate_hours" in changes:
            changes["time_estimate_hours"] = float(changes["time_estimate_hours"])
        if not changes:
            return current
        task = replace(current, **changes)
        self._tasks[task.id] = task
        self._updated(EntityKind.TASK, task, changes)
        return task

    def get_task(self, task_id: str) -> Task:
        task = self._tasks.get(TaskId(task_id))
        if task is None:
            raise NotFoundError(f"Task {task_id} not found", metadata={"task_id": task_id})
        return task

    def list_tasks(
        self,
        sprint_id: Optional[str] = None,
        *,
        pbi_id: Optional[str] = None,
    ) -> List[Task]:
        """Tasks in creation order, filtered by sprint and/or PBI."""
        return [
            t for t in self._tasks.values()
            if (sprint_id is None or t.sprint_id == sprint_id)
            and (pbi_id is None or t.pbi_id == pbi_id)
        ]

    # Retrospectives

    def create_retrospective(self, command: RetrospectiveCreate) -> Retrospective:
        sprint = self.get_sprint(command.sprint_id)
        if self.retrospective_for_sprint(sprint.id) is not None:
            raise ValidationError(
                f"Sprint {sprint.sprint_number} already has a retrospective",
                metadata={"sprint_id": sprint.id},
            )
        retrospective = Retrospective(
            id=RetrospectiveId(new_id(ID_PREFIXES[EntityKind.RETROSPECTIVE])),
            sprint_id=sprint.id,
            went_well=command.went_well,
            to_improve=command.to_improve,
            action_item=command.action_item,
        )
        self._retrospectives[retrospective.id] = retrospective
        self._inserted(EntityKind.RETROSPECTIVE, retrospective)
        return retrospective

    def update_retrospective(self, retrospective_id: str, command: RetrospectiveUpdate) -> Retrospective:
        current = self.get_retrospective(retrospective_id)
        changes = self._diff(current, command.changes())
        if not changes:
            return current
        retrospective = replace(current, **changes)
        self._retrospectives[retrospective.id] = retrospective
        self._updated(EntityKind.RETROSPECTIVE, retrospective, changes)
        return retrospective

    def get_retrospective(self, retrospective_id: str) -> Retrospective:
        retrospective = self._retrospectives.get(RetrospectiveId(retrospective_id))
        if retrospective is None:
            raise NotFoundError(
                f"Retrospective {retrospective_id} not found",
                metadata={"retrospective_id": retrospective_id},
            )
        return retrospective

    def retrospective_for_sprint(self, sprint_id: str) -> Optional[Retrospective]:
        for retrospective in self._retrospectives.values():
            if retrospective.sprint_id == sprint_id:
                return retrospective
        return None

    def list_retrospectives(self, sprint_id: Optional[str] = None) -> List[Retrospective]:
        return [
            r for r in self._retrospectives.values()
            if sprint_id is None or r.sprint_id == sprint_id
        ]
