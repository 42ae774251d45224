"""
SimpleScrum Sprint Planning

Validates a capacity figure and a selection of ready backlog items, then
materializes the sprint and assigns the items to it.
"""

from dataclasses import dataclass, field
from datetime import date
from typing import List, Optional, Sequence

from simplescrum.errors import PersistenceError, SimpleScrumError, ValidationError
from simplescrum.models.commands import PBIUpdate, SprintCreate, TaskCreate, build_command
from simplescrum.models.domain import PBI, Project, Sprint, SprintStatus, Task, new_id
from simplescrum.services.base import Service, ServiceContext
from simplescrum.services.events import EventBus, SprintPlanned
from simplescrum.services.store import EntityStore


class CapacityStatus:
    UNDER = "under"
    AT = "at"
    OVER = "over"


@dataclass(frozen=True)
class CapacityReport:
    """Advisory comparison of committed story points against team capacity."""
    team_capacity: int
    committed_sp: int

    @property
    def over_capacity_sp(self) -> int:
        return max(0, self.committed_sp - self.team_capacity)

    @property
    def remaining_sp(self) -> int:
        return max(0, self.team_capacity - self.committed_sp)

    @property
    def status(self) -> str:
        if self.committed_sp > self.team_capacity:
            return CapacityStatus.OVER
        if self.committed_sp == self.team_capacity:
            return CapacityStatus.AT
        return CapacityStatus.UNDER

    @property
    def is_over_capacity(self) -> bool:
        return self.status == CapacityStatus.OVER


@dataclass(frozen=True)
class PlanningResult:
    sprint: Sprint
    pbis: List[PBI]
    capacity: CapacityReport
    carried_tasks: List[Task] = field(default_factory=list)


def capacity_report(team_capacity: int, pbis: Sequence[PBI]) -> CapacityReport:
    return CapacityReport(team_capacity=team_capacity, committed_sp=sum(p.story_points for p in pbis))


class SprintPlanner(Service):
    """
    Creates sprints from the planning pool.

    The pool is every ready backlog item of the project that is not yet
    assigned to a sprint. Over-commitment is reported, not rejected.
    """

    def __init__(self, context: ServiceContext, store: EntityStore, bus: Optional[EventBus] = None) -> None:
        super().__init__(context)
        self.store = store
        self.bus = bus

    def planning_pool(self, project_id: str) -> List[PBI]:
        project = self.store.get_project(project_id)
        return [p for p in self.store.list_pbis(project.id) if p.is_ready and p.sprint_id is None]

    def recommended_capacity(self, project_id: str) -> int:
        """Last closed sprint's velocity, or the configured default when there is none yet."""
        project = self.store.get_project(project_id)
        if project.current_velocity > 0:
            return project.current_velocity
        return self.config.default_team_capacity

    def _select(self, project: Project, selected_pbi_ids: Sequence[str]) -> List[PBI]:
        if len(set(selected_pbi_ids)) != len(selected_pbi_ids):
            raise ValidationError(
                "A backlog item was selected more than once",
                metadata={"project_id": project.id, "selected": list(selected_pbi_ids)},
            )
        pool = {p.id: p for p in self.planning_pool(project.id)}
        selected: List[PBI] = []
        for pbi_id in selected_pbi_ids:
            pbi = pool.get(pbi_id)
            if pbi is None:
                known = self.store.find_pbi(pbi_id)
                reason = "is unknown" if known is None else (
                    "is not ready" if not known.is_ready
                    else "is already assigned to a sprint" if known.sprint_id
                    else "belongs to another project"
                )
                raise ValidationError(
                    f"{known.label if known else 'PBI ' + pbi_id} {reason} and cannot be planned",
                    metadata={"project_id": project.id, "pbi_id": pbi_id},
                )
            selected.append(pbi)
        return selected

    def plan(
        self,
        project_id: str,
        team_capacity: int,
        selected_pbi_ids: Sequence[str],
        sprint_goal: str = "",
        *,
        start_date: Optional[date] = None,
        end_date: Optional[date] = None,
        today: Optional[date] = None,
    ) -> PlanningResult:
        project = self.store.get_project(project_id)
        if team_capacity <= 0:
            raise ValidationError(
                "Team capacity must be a positive number of story points",
                metadata={"project_id": project.id, "team_capacity": team_capacity},
            )
        selected = self._select(project, list(selected_pbi_ids))

        if not self.config.allow_parallel_sprints:
            active = self.store.active_sprint(project.id)
            if active is not None:
                raise ValidationError(
                    f"Sprint {active.sprint_number} is still active; close it before planning another",
                    metadata={"project_id": project.id, "sprint_id": active.id},
                )

        report = capacity_report(team_capacity, selected)
        command = build_command(
            SprintCreate,
            project_id=project.id,
            team_capacity=team_capacity,
            sprint_goal=sprint_goal,
            committed_sp=report.committed_sp,
            start_date=start_date,
            end_date=end_date,
        )
        previous = self.store.list_sprints(project.id, status=SprintStatus.CLOSED)

        with self.store.batch(new_id("plan")):
            sprint = self.store.create_sprint(command, today=today)
            assigned = self._assign(sprint, selected)
            carried = self._carry_action_item(sprint, previous[-1] if previous else None)

        self.logger.info(
            "sprint_planned",
            extra=self.log_extra(
                project_id=project.id,
                sprint_id=sprint.id,
                sprint_number=sprint.sprint_number,
                committed_sp=report.committed_sp,
                team_capacity=team_capacity,
                capacity_status=report.status,
            ),
        )
        if report.is_over_capacity:
            self.logger.warning(
                "sprint_over_capacity",
                extra=self.log_extra(
                    project_id=project.id,
                    sprint_id=sprint.id,
                    over_capacity_sp=report.over_capacity_sp,
                ),
            )
        if self.bus is not None:
            self.bus.publish(
                SprintPlanned(
                    project_id=project.id,
                    sprint_id=sprint.id,
                    committed_sp=report.committed_sp,
                    team_capacity=team_capacity,
                    pbi_ids=[p.id for p in assigned],
                )
            )
        return PlanningResult(sprint=sprint, pbis=assigned, capacity=report, carried_tasks=carried)

    def _assign(self, sprint: Sprint, selected: List[PBI]) -> List[PBI]:
        assigned: List[PBI] = []
        for index, pbi in enumerate(selected):
            try:
                assigned.append(self.store.update_pbi(pbi.id, PBIUpdate(sprint_id=sprint.id)))
            except SimpleScrumError as exc:
                raise PersistenceError(
                    f"Sprint {sprint.sprint_number} was created but {pbi.label} could not be assigned",
                    metadata={
                        "sprint_id": sprint.id,
                        "applied": [p.id for p in assigned],
                        "unapplied": [p.id for p in selected[index:]],
                    },
                ) from exc
        return assigned

    def _carry_action_item(self, sprint: Sprint, previous: Optional[Sprint]) -> List[Task]:
        if not self.config.carry_retrospective_actions or previous is None:
            return []
        retrospective = self.store.retrospective_for_sprint(previous.id)
        if retrospective is None or not retrospective.action_item.strip():
            return []
        task = self.store.create_task(
            TaskCreate(sprint_id=sprint.id, description=retrospective.action_item.strip())
        )
        self.logger.info(
            "retrospective_action_carried",
            extra=self.log_extra(sprint_id=sprint.id, task_id=task.task_id, from_sprint_id=previous.id),
        )
        return [task]
