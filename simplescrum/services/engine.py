"""
SimpleScrum Engine

The presentation boundary. One ScrumEngine serves one client session: it
loads the owner's collections when the session opens, routes mutations
through the EntityStore, and hands every applied change to the persistence
dispatcher.
"""

import asyncio
from typing import Any, Dict, List, Mapping, Optional, Sequence, Type, TypeVar, Union

from simplescrum.db.records import PersistenceBackend
from simplescrum.errors import AuthenticationError, SimpleScrumError, ValidationError
from simplescrum.logging import log_context
from simplescrum.models.commands import (
    CommandModel,
    PBICreate,
    PBIUpdate,
    ProjectCreate,
    ProjectUpdate,
    RetrospectiveCreate,
    RetrospectiveUpdate,
    SprintUpdate,
    TaskCreate,
    TaskUpdate,
    build_command,
)
from simplescrum.models.domain import (
    PBI,
    EntityKind,
    PBIStatus,
    Project,
    RefinementStatus,
    Retrospective,
    Sprint,
    Task,
    TaskStatus,
)
from simplescrum.services.backlog import BacklogSummary, PriorityReorderer, summarize_backlog
from simplescrum.services.base import Service, ServiceContext
from simplescrum.services.closing import SprintCloser, SprintReview
from simplescrum.services.events import EntityCreated, EntityUpdated, EventBus, SessionChanged
from simplescrum.services.planning import PlanningResult, SprintPlanner
from simplescrum.services.status import StatusColumn, derive_pbi_status, status_board
from simplescrum.services.store import EntityStore, StoreChange
from simplescrum.services.sync import PendingOperation, PersistenceDispatcher
from simplescrum.services.velocity import VelocityHistory, VelocityTracker

C = TypeVar("C", bound=CommandModel)
CommandInput = Union[CommandModel, Mapping[str, Any]]


def _command(command_cls: Type[C], value: Union[C, Mapping[str, Any]]) -> C:
    if isinstance(value, command_cls):
        return value
    if isinstance(value, CommandModel):
        raise TypeError(f"Expected {command_cls.__name__}, got {type(value).__name__}")
    return build_command(command_cls, **dict(value))


class ScrumEngine(Service):
    """
    Session-scoped facade over the store and the workflow services.

    Example:
        engine = ScrumEngine(ServiceContext(config=get_config()), open_backend(config))
        await engine.start_local()
        project = engine.create_project({"name": "Webshop"})
        await engine.flush()
    """

    def __init__(
        self,
        context: ServiceContext,
        backend: PersistenceBackend,
        bus: Optional[EventBus] = None,
    ) -> None:
        super().__init__(context)
        self.backend = backend
        self.bus = bus or EventBus()
        self._store: Optional[EntityStore] = None
        self._dispatcher: Optional[PersistenceDispatcher] = None
        self._session_error: Optional[SimpleScrumError] = None
        self.bus.add_async_handler(SessionChanged, self._on_session_changed)

    # Session lifecycle

    @property
    def is_open(self) -> bool:
        return self._store is not None

    @property
    def store(self) -> EntityStore:
        if self._store is None:
            if self._session_error is not None:
                raise self._session_error
            raise AuthenticationError("No active session; sign in first")
        return self._store

    @property
    def dispatcher(self) -> PersistenceDispatcher:
        if self._dispatcher is None:
            raise AuthenticationError("No active session; sign in first")
        return self._dispatcher

    async def start_local(self) -> EntityStore:
        """Open a session for the configured local owner (CLI mode)."""
        return await self.open_session(self.config.local_owner, session_id="local")

    async def open_session(self, owner_id: str, session_id: Optional[str] = None) -> EntityStore:
        """Fetch all five collections for ``owner_id`` and make them the live state."""
        if self._store is not None:
            await self.close_session()
        self._session_error = None
        context = self.context.with_session(session_id, owner_id)
        records = self.backend.records_for(owner_id)
        with log_context(session_id=session_id, owner_id=owner_id):
            fetched = await asyncio.gather(
                *(records.collection(kind).list_all() for kind in EntityKind.ALL)
            )
        store = EntityStore(owner_id, sprint_length_days=self.config.sprint_length_days)
        store.load(dict(zip(EntityKind.ALL, fetched)))

        dispatcher = PersistenceDispatcher(context, records, self.bus)
        store.add_listener(dispatcher.enqueue)
        store.add_listener(self._publish_change)

        self.context = context
        self._store = store
        self._dispatcher = dispatcher
        self._reorderer = PriorityReorderer(context, store, self.bus)
        self._planner = SprintPlanner(context, store, self.bus)
        self._closer = SprintCloser(context, store, self.bus)
        self._velocity = VelocityTracker(context, store)
        self.logger.info("session_opened", extra=self.log_extra(counts=store.counts()))
        return store

    async def close_session(self) -> None:
        """Persist what can still be persisted, then discard all local state."""
        if self._store is None:
            return
        dispatcher = self._dispatcher
        if dispatcher is not None and not await dispatcher.retry():
            self.logger.warning(
                "session_closed_with_pending_operations",
                extra=self.log_extra(pending=dispatcher.pending_count),
            )
        if dispatcher is not None:
            dispatcher.discard()
        self._store.clear()
        self.logger.info("session_closed", extra=self.log_extra())
        self._store = None
        self._dispatcher = None
        self.context = self.context.with_session(None, None)

    async def _on_session_changed(self, event: SessionChanged) -> None:
        if event.user is None:
            await self.close_session()
            return
        try:
            await self.open_session(event.user.user_id, session_id=event.session_id)
        except SimpleScrumError as exc:
            self._session_error = exc
            raise

    def _publish_change(self, change: StoreChange) -> None:
        event_cls = EntityCreated if change.op == "insert" else EntityUpdated
        self.bus.publish(event_cls(kind=change.kind, entity_id=change.entity_id, fields=dict(change.fields)))

    async def flush(self) -> None:
        """Wait for every queued mutation to reach the repository."""
        if self._dispatcher is not None:
            await self._dispatcher.flush()

    async def settle(self) -> None:
        """Let background persistence finish its current pass."""
        if self._dispatcher is not None:
            await self._dispatcher.settle()

    async def retry_persistence(self) -> bool:
        return await self.dispatcher.retry()

    @property
    def pending_operations(self) -> List[PendingOperation]:
        return self._dispatcher.pending if self._dispatcher is not None else []

    # Projects

    def create_project(self, command: CommandInput) -> Project:
        project = self.store.create_project(_command(ProjectCreate, command))
        self.logger.info("project_created", extra=self.log_extra(project_id=project.id))
        return project

    def update_project(self, project_id: str, command: CommandInput) -> Project:
        return self.store.update_project(project_id, _command(ProjectUpdate, command))

    def get_project(self, project_id: str) -> Project:
        return self.store.get_project(project_id)

    def list_projects(self) -> List[Project]:
        return self.store.list_projects()

    # Product backlog

    def create_pbi(self, command: CommandInput) -> PBI:
        pbi = self.store.create_pbi(_command(PBICreate, command))
        self.logger.info(
            "pbi_created",
            extra=self.log_extra(project_id=pbi.project_id, pbi_id=pbi.id, label=pbi.label),
        )
        return pbi

    def update_pbi(self, pbi_id: str, command: CommandInput) -> PBI:
        return self.store.update_pbi(pbi_id, _command(PBIUpdate, command))

    def get_pbi(self, pbi_id: str) -> PBI:
        return self.store.get_pbi(pbi_id)

    def list_pbis(self, project_id: str, *, sprint_id: Optional[str] = None) -> List[PBI]:
        project = self.store.get_project(project_id)
        return self.store.list_pbis(project.id, sprint_id=sprint_id)

    def toggle_refinement(self, pbi_id: str) -> PBI:
        pbi = self.store.get_pbi(pbi_id)
        target = RefinementStatus.VAGUE if pbi.is_ready else RefinementStatus.READY
        return self.store.update_pbi(pbi.id, PBIUpdate(refinement_status=target))

    def assign_pbi(self, pbi_id: str, sprint_id: Optional[str]) -> PBI:
        """Sprint-mapping board: put an item in a sprint or back in the backlog."""
        return self.store.update_pbi(pbi_id, PBIUpdate(sprint_id=sprint_id))

    def set_pbi_status(self, pbi_id: str, status: Optional[str]) -> PBI:
        """Manual status-board override; None returns the item to derived status."""
        if status is not None and status not in PBIStatus.ALL:
            raise ValidationError(f"Unknown PBI status: {status}", metadata={"pbi_id": pbi_id})
        return self.store.update_pbi(pbi_id, PBIUpdate(status_override=status))

    def reorder_backlog(self, project_id: str, pbi_id: str, position: int) -> List[PBI]:
        self.store.get_project(project_id)
        return self._reorderer.move(project_id, pbi_id, position)

    def apply_backlog_order(self, project_id: str, ordered_ids: Sequence[str]) -> List[PBI]:
        self.store.get_project(project_id)
        return self._reorderer.apply_order(project_id, ordered_ids)

    def backlog_summary(self, project_id: str) -> BacklogSummary:
        return summarize_backlog(self.list_pbis(project_id))

    # Derived status

    def pbi_status(self, pbi_id: str) -> str:
        store = self.store
        pbi = store.get_pbi(pbi_id)
        sprint = store.find_sprint(pbi.sprint_id)
        return derive_pbi_status(pbi, sprint, store.list_tasks(pbi.sprint_id, pbi_id=pbi.id))

    def status_board(self, project_id: str) -> Dict[str, StatusColumn]:
        store = self.store
        project = store.get_project(project_id)
        sprints = {s.id: s for s in store.list_sprints(project.id)}
        return status_board(store.list_pbis(project.id), sprints, store.list_tasks())

    # Sprints

    def planning_pool(self, project_id: str) -> List[PBI]:
        self.store.get_project(project_id)
        return self._planner.planning_pool(project_id)

    def recommended_capacity(self, project_id: str) -> int:
        self.store.get_project(project_id)
        return self._planner.recommended_capacity(project_id)

    def plan_sprint(
        self,
        project_id: str,
        team_capacity: int,
        pbi_ids: Sequence[str],
        sprint_goal: str = "",
        **dates: Any,
    ) -> PlanningResult:
        self.store.get_project(project_id)
        return self._planner.plan(project_id, team_capacity, pbi_ids, sprint_goal, **dates)

    def create_sprint(self, project_id: str, team_capacity: int, sprint_goal: str = "", **dates: Any) -> Sprint:
        """Plan a sprint with nothing selected yet."""
        return self.plan_sprint(project_id, team_capacity, [], sprint_goal, **dates).sprint

    def update_sprint(self, sprint_id: str, command: CommandInput) -> Sprint:
        return self.store.update_sprint(sprint_id, _command(SprintUpdate, command))

    def close_sprint(self, sprint_id: str) -> SprintReview:
        self.store.get_sprint(sprint_id)
        return self._closer.close(sprint_id)

    def get_sprint(self, sprint_id: str) -> Sprint:
        return self.store.get_sprint(sprint_id)

    def list_sprints(self, project_id: str, *, status: Optional[str] = None) -> List[Sprint]:
        project = self.store.get_project(project_id)
        return self.store.list_sprints(project.id, status=status)

    def active_sprint(self, project_id: str) -> Optional[Sprint]:
        project = self.store.get_project(project_id)
        return self.store.active_sprint(project.id)

    # Tasks

    def create_task(self, command: CommandInput) -> Task:
        task = self.store.create_task(_command(TaskCreate, command))
        self.logger.info(
            "task_created",
            extra=self.log_extra(sprint_id=task.sprint_id, task_id=task.task_id),
        )
        return task

    def update_task(self, task_id: str, command: CommandInput) -> Task:
        return self.store.update_task(task_id, _command(TaskUpdate, command))

    def move_task(self, task_id: str, status: str) -> Task:
        """Task board drag between columns."""
        if status not in TaskStatus.ALL:
            raise ValidationError(f"Unknown task status: {status}", metadata={"task_id": task_id})
        return self.store.update_task(task_id, TaskUpdate(status=status))

    def get_task(self, task_id: str) -> Task:
        return self.store.get_task(task_id)

    def list_tasks(self, sprint_id: Optional[str] = None, *, pbi_id: Optional[str] = None) -> List[Task]:
        if sprint_id is not None:
            self.store.get_sprint(sprint_id)
        if pbi_id is not None:
            self.store.get_pbi(pbi_id)
        return self.store.list_tasks(sprint_id, pbi_id=pbi_id)

    # Retrospectives

    def create_retrospective(self, command: CommandInput) -> Retrospective:
        return self.store.create_retrospective(_command(RetrospectiveCreate, command))

    def update_retrospective(self, retrospective_id: str, command: CommandInput) -> Retrospective:
        return self.store.update_retrospective(retrospective_id, _command(RetrospectiveUpdate, command))

    def record_retrospective(
        self,
        sprint_id: str,
        *,
        went_well: str = "",
        to_improve: str = "",
        action_item: str = "",
    ) -> Retrospective:
        """Create the sprint's retrospective, or overwrite the existing one."""
        sprint = self.store.get_sprint(sprint_id)
        existing = self.store.retrospective_for_sprint(sprint.id)
        if existing is None:
            return self.store.create_retrospective(
                RetrospectiveCreate(
                    sprint_id=sprint.id,
                    went_well=went_well,
                    to_improve=to_improve,
                    action_item=action_item,
                )
            )
        return self.store.update_retrospective(
            existing.id,
            RetrospectiveUpdate(went_well=went_well, to_improve=to_improve, action_item=action_item),
        )

    def retrospective_for_sprint(self, sprint_id: str) -> Optional[Retrospective]:
        sprint = self.store.get_sprint(sprint_id)
        return self.store.retrospective_for_sprint(sprint.id)

    def get_retrospective(self, retrospective_id: str) -> Retrospective:
        return self.store.get_retrospective(retrospective_id)

    # Velocity

    def average_velocity(self, project_id: str) -> int:
        self.store.get_project(project_id)
        return self._velocity.average_velocity(project_id)

    def velocity_history(self, project_id: str) -> VelocityHistory:
        self.store.get_project(project_id)
        return self._velocity.history(project_id)
