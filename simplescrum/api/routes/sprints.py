from typing import List, Optional

from fastapi import APIRouter, Depends

from simplescrum.api import schemas
from simplescrum.api.dependencies import get_engine
from simplescrum.api.routes.backlog import pbi_out
from simplescrum.errors import NotFoundError
from simplescrum.models.commands import SprintUpdate
from simplescrum.services.engine import ScrumEngine

router = APIRouter(prefix="/sprints", tags=["Sprints"])


@router.post("", response_model=schemas.PlanningOut, status_code=201)
async def plan_sprint(request: schemas.SprintPlanRequest, engine: ScrumEngine = Depends(get_engine)):
    result = engine.plan_sprint(
        request.project_id,
        request.team_capacity,
        request.pbi_ids,
        request.sprint_goal,
        start_date=request.start_date,
        end_date=request.end_date,
    )
    return schemas.PlanningOut(
        sprint=schemas.SprintOut.model_validate(result.sprint),
        pbis=[pbi_out(engine, p) for p in result.pbis],
        capacity=schemas.CapacityOut.model_validate(result.capacity),
        carried_tasks=[schemas.TaskOut.model_validate(t) for t in result.carried_tasks],
    )


@router.get("", response_model=List[schemas.SprintOut])
def list_sprints(
    project_id: str,
    status: Optional[str] = None,
    engine: ScrumEngine = Depends(get_engine),
):
    return engine.list_sprints(project_id, status=status)


@router.get("/{sprint_id}", response_model=schemas.SprintOut)
def get_sprint(sprint_id: str, engine: ScrumEngine = Depends(get_engine)):
    return engine.get_sprint(sprint_id)


@router.patch("/{sprint_id}", response_model=schemas.SprintOut)
async def update_sprint(
    sprint_id: str,
    sprint: SprintUpdate,
    engine: ScrumEngine = Depends(get_engine),
):
    updated = engine.update_sprint(sprint_id, sprint)
    return updated


@router.post("/{sprint_id}/close", response_model=schemas.SprintReviewOut)
async def close_sprint(sprint_id: str, engine: ScrumEngine = Depends(get_engine)):
    review = engine.close_sprint(sprint_id)
    return schemas.SprintReviewOut(
        sprint=schemas.SprintOut.model_validate(review.sprint),
        completed_pbis=[pbi_out(engine, p) for p in review.completed_pbis],
        incomplete_pbis=[pbi_out(engine, engine.get_pbi(p.id)) for p in review.incomplete_pbis],
        released_pbi_ids=review.released_pbi_ids,
        completed_sp=review.completed_sp,
        committed_sp=review.committed_sp,
        completion_percent=review.completion_percent,
    )


@router.get("/{sprint_id}/tasks", response_model=List[schemas.TaskOut])
def list_sprint_tasks(sprint_id: str, engine: ScrumEngine = Depends(get_engine)):
    return engine.list_tasks(sprint_id)


@router.get("/{sprint_id}/retrospective", response_model=schemas.RetrospectiveOut)
def get_sprint_retrospective(sprint_id: str, engine: ScrumEngine = Depends(get_engine)):
    retrospective = engine.retrospective_for_sprint(sprint_id)
    if retrospective is None:
        raise NotFoundError(f"Sprint {sprint_id} has no retrospective", metadata={"sprint_id": sprint_id})
    return retrospective


@router.put("/{sprint_id}/retrospective", response_model=schemas.RetrospectiveOut)
async def record_retrospective(
    sprint_id: str,
    record: schemas.RetrospectiveRecord,
    engine: ScrumEngine = Depends(get_engine),
):
    retrospective = engine.record_retrospective(
        sprint_id,
        went_well=record.went_well,
        to_improve=record.to_improve,
        action_item=record.action_item,
    )
    return retrospective
