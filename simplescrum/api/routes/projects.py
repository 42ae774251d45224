from typing import Dict, List

from fastapi import APIRouter, Depends

from simplescrum.api import schemas
from simplescrum.api.dependencies import get_engine
from simplescrum.api.routes.backlog import pbi_out
from simplescrum.models.commands import ProjectCreate, ProjectUpdate
from simplescrum.services.engine import ScrumEngine

router = APIRouter(prefix="/projects", tags=["Projects"])


@router.post("", response_model=schemas.ProjectOut, status_code=201)
async def create_project(project: ProjectCreate, engine: ScrumEngine = Depends(get_engine)):
    created = engine.create_project(project)
    return created


@router.get("", response_model=List[schemas.ProjectOut])
def list_projects(engine: ScrumEngine = Depends(get_engine)):
    return engine.list_projects()


@router.get("/{project_id}", response_model=schemas.ProjectOut)
def get_project(project_id: str, engine: ScrumEngine = Depends(get_engine)):
    return engine.get_project(project_id)


@router.patch("/{project_id}", response_model=schemas.ProjectOut)
async def update_project(
    project_id: str,
    project: ProjectUpdate,
    engine: ScrumEngine = Depends(get_engine),
):
    updated = engine.update_project(project_id, project)
    return updated


@router.get("/{project_id}/velocity", response_model=schemas.VelocityOut)
def get_velocity(project_id: str, engine: ScrumEngine = Depends(get_engine)):
    history = engine.velocity_history(project_id)
    return schemas.VelocityOut(
        project_id=history.project_id,
        average_velocity=history.average_velocity,
        current_velocity=engine.get_project(project_id).current_velocity,
        has_reliable_baseline=history.has_reliable_baseline,
        entries=[schemas.VelocityEntryOut.model_validate(e) for e in history.entries],
    )


@router.get("/{project_id}/status-board", response_model=Dict[str, schemas.StatusColumnOut])
def get_status_board(project_id: str, engine: ScrumEngine = Depends(get_engine)):
    board = engine.status_board(project_id)
    return {
        status: schemas.StatusColumnOut(
            status=status,
            story_points=column.story_points,
            pbis=[schemas.PBIOut.from_entity(p, status) for p in column.pbis],
        )
        for status, column in board.items()
    }


@router.get("/{project_id}/planning-pool", response_model=schemas.PlanningPoolOut)
def get_planning_pool(project_id: str, engine: ScrumEngine = Depends(get_engine)):
    return schemas.PlanningPoolOut(
        recommended_capacity=engine.recommended_capacity(project_id),
        pbis=[pbi_out(engine, p) for p in engine.planning_pool(project_id)],
    )


@router.get("/{project_id}/backlog/summary", response_model=schemas.BacklogSummaryOut)
def get_backlog_summary(project_id: str, engine: ScrumEngine = Depends(get_engine)):
    return engine.backlog_summary(project_id)
