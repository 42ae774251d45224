from fastapi import APIRouter, Depends

from simplescrum.api import schemas
from simplescrum.api.dependencies import get_engine
from simplescrum.models.commands import TaskCreate, TaskUpdate
from simplescrum.services.engine import ScrumEngine

router = APIRouter(prefix="/tasks", tags=["Tasks"])


@router.post("", response_model=schemas.TaskOut, status_code=201)
async def create_task(task: TaskCreate, engine: ScrumEngine = Depends(get_engine)):
    return engine.create_task(task)


@router.get("/{task_id}", response_model=schemas.TaskOut)
def get_task(task_id: str, engine: ScrumEngine = Depends(get_engine)):
    return engine.get_task(task_id)


@router.patch("/{task_id}", response_model=schemas.TaskOut)
async def update_task(task_id: str, task: TaskUpdate, engine: ScrumEngine = Depends(get_engine)):
    return engine.update_task(task_id, task)


@router.put("/{task_id}/status", response_model=schemas.TaskOut)
async def move_task(
    task_id: str,
    request: schemas.TaskMoveRequest,
    engine: ScrumEngine = Depends(get_engine),
):
    return engine.move_task(task_id, request.status)
