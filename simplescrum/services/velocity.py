"""
SimpleScrum Velocity

Read-only aggregation over a project's closed sprints.
"""

from dataclasses import dataclass, field
from typing import List, Sequence

from simplescrum.models.domain import SprintStatus
from simplescrum.services.base import Service, ServiceContext
from simplescrum.services.store import EntityStore

RELIABLE_BASELINE_SPRINTS = 3


def round_half_up(numerator: int, denominator: int) -> int:
    """Integer ``round(numerator / denominator)`` with halves rounded up."""
    if denominator <= 0:
        raise ValueError("denominator must be positive")
    return (2 * numerator + denominator) // (2 * denominator)


def completion_percent(completed_sp: int, committed_sp: int) -> int:
    if committed_sp <= 0:
        return 0
    return round_half_up(100 * completed_sp, committed_sp)


def average_of(values: Sequence[int]) -> int:
    if not values:
        return 0
    return round_half_up(sum(values), len(values))


def completion_band(percent: int) -> str:
    """Colour band shown next to a sprint's completion rate."""
    if percent >= 100:
        return "complete"
    if percent >= 80:
        return "good"
    if percent >= 60:
        return "fair"
    return "poor"


@dataclass(frozen=True)
class VelocityEntry:
    sprint_id: str
    sprint_number: int
    committed_sp: int
    completed_sp: int

    @property
    def completion_rate(self) -> int:
        return completion_percent(self.completed_sp, self.committed_sp)

    @property
    def band(self) -> str:
        return completion_band(self.completion_rate)


@dataclass(frozen=True)
class VelocityHistory:
    project_id: str
    entries: List[VelocityEntry] = field(default_factory=list)

    @property
    def average_velocity(self) -> int:
        return average_of([e.completed_sp for e in self.entries])

    @property
    def has_reliable_baseline(self) -> bool:
        return len(self.entries) >= RELIABLE_BASELINE_SPRINTS


class VelocityTracker(Service):
    def __init__(self, context: ServiceContext, store: EntityStore) -> None:
        super().__init__(context)
        self.store = store

    def history(self, project_id: str) -> VelocityHistory:
        project = self.store.get_project(project_id)
        closed = self.store.list_sprints(project.id, status=SprintStatus.CLOSED)
        return VelocityHistory(
            project_id=project.id,
            entries=[
                VelocityEntry(
                    sprint_id=s.id,
                    sprint_number=s.sprint_number,
                    committed_sp=s.committed_sp,
                    completed_sp=s.completed_sp,
                )
                for s in closed
            ],
        )

    def average_velocity(self, project_id: str) -> int:
        """Mean completed story points over closed sprints, rounded half up; 0 if none."""
        return self.history(project_id).average_velocity
