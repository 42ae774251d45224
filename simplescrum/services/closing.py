"""
SimpleScrum Sprint Closing

Closes an active sprint: counts the story points of fully completed backlog
items, records them on the sprint and as the project's current velocity.
"""

from dataclasses import dataclass, field
from typing import Dict, List, Optional

from simplescrum.errors import ValidationError
from simplescrum.models.commands import PBIUpdate
from simplescrum.models.domain import PBI, Sprint, Task, new_id
from simplescrum.services.base import Service, ServiceContext
from simplescrum.services.events import EventBus, SprintClosed
from simplescrum.services.status import tasks_complete
from simplescrum.services.store import EntityStore
from simplescrum.services.velocity import completion_percent


@dataclass(frozen=True)
class SprintReview:
    """Outcome of closing a sprint."""
    sprint: Sprint
    completed_pbis: List[PBI] = field(default_factory=list)
    incomplete_pbis: List[PBI] = field(default_factory=list)
    released_pbi_ids: List[str] = field(default_factory=list)

    @property
    def completed_sp(self) -> int:
        return self.sprint.completed_sp

    @property
    def committed_sp(self) -> int:
        return self.sprint.committed_sp

    @property
    def completion_percent(self) -> int:
        return completion_percent(self.completed_sp, self.committed_sp)


class SprintCloser(Service):
    """
    A PBI counts as completed only when it has at least one task and every
    task is done. Incomplete items keep their sprint unless
    ``release_incomplete_on_close`` is configured.
    """

    def __init__(self, context: ServiceContext, store: EntityStore, bus: Optional[EventBus] = None) -> None:
        super().__init__(context)
        self.store = store
        self.bus = bus

    def close(self, sprint_id: str) -> SprintReview:
        sprint = self.store.get_sprint(sprint_id)
        if sprint.is_closed:
            raise ValidationError(
                f"Sprint {sprint.sprint_number} is already closed",
                metadata={"sprint_id": sprint.id},
            )

        tasks_by_pbi: Dict[str, List[Task]] = {}
        for task in self.store.list_tasks(sprint.id):
            if task.pbi_id is not None:
                tasks_by_pbi.setdefault(task.pbi_id, []).append(task)

        completed: List[PBI] = []
        incomplete: List[PBI] = []
        for pbi in self.store.list_pbis(sprint.project_id, sprint_id=sprint.id):
            if tasks_complete(tasks_by_pbi.get(pbi.id, [])):
                completed.append(pbi)
            else:
                incomplete.append(pbi)
        completed_sp = sum(p.story_points for p in completed)

        released: List[str] = []
        with self.store.batch(new_id("close")):
            closed = self.store.mark_sprint_closed(sprint.id, completed_sp)
            self.store.record_velocity(sprint.project_id, completed_sp)
            if self.config.release_incomplete_on_close:
                for pbi in incomplete:
                    self.store.update_pbi(pbi.id, PBIUpdate(sprint_id=None))
                    released.append(pbi.id)

        review = SprintReview(
            sprint=closed,
            completed_pbis=completed,
            incomplete_pbis=incomplete,
            released_pbi_ids=released,
        )
        self.logger.info(
            "sprint_closed",
            extra=self.log_extra(
                project_id=sprint.project_id,
                sprint_id=sprint.id,
                completed_sp=completed_sp,
                committed_sp=sprint.committed_sp,
                completion_percent=review.completion_percent,
                released=len(released),
            ),
        )
        if self.bus is not None:
            self.bus.publish(
                SprintClosed(
                    project_id=sprint.project_id,
                    sprint_id=sprint.id,
                    completed_sp=completed_sp,
                    committed_sp=sprint.committed_sp,
                )
            )
        return review
