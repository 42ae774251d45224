from typing import List, Optional

from fastapi import APIRouter, Depends

from simplescrum.api import schemas
from simplescrum.api.dependencies import get_engine
from simplescrum.models.commands import PBICreate, PBIUpdate
from simplescrum.models.domain import PBI
from simplescrum.services.engine import ScrumEngine

router = APIRouter(prefix="/pbis", tags=["Backlog"])


def pbi_out(engine: ScrumEngine, pbi: PBI) -> schemas.PBIOut:
    return schemas.PBIOut.from_entity(pbi, engine.pbi_status(pbi.id))


@router.post("", response_model=schemas.PBIOut, status_code=201)
async def create_pbi(pbi: PBICreate, engine: ScrumEngine = Depends(get_engine)):
    created = engine.create_pbi(pbi)
    return pbi_out(engine, created)


@router.get("", response_model=List[schemas.PBIOut])
def list_pbis(
    project_id: str,
    sprint_id: Optional[str] = None,
    engine: ScrumEngine = Depends(get_engine),
):
    return [pbi_out(engine, p) for p in engine.list_pbis(project_id, sprint_id=sprint_id)]


@router.post("/reorder", response_model=List[schemas.PBIOut])
async def reorder_backlog(request: schemas.ReorderRequest, engine: ScrumEngine = Depends(get_engine)):
    engine.reorder_backlog(request.project_id, request.pbi_id, request.position)
    return [pbi_out(engine, p) for p in engine.list_pbis(request.project_id)]


@router.put("/order", response_model=List[schemas.PBIOut])
async def apply_backlog_order(request: schemas.OrderRequest, engine: ScrumEngine = Depends(get_engine)):
    engine.apply_backlog_order(request.project_id, request.ordered_ids)
    return [pbi_out(engine, p) for p in engine.list_pbis(request.project_id)]


@router.get("/{pbi_id}", response_model=schemas.PBIOut)
def get_pbi(pbi_id: str, engine: ScrumEngine = Depends(get_engine)):
    return pbi_out(engine, engine.get_pbi(pbi_id))


@router.patch("/{pbi_id}", response_model=schemas.PBIOut)
async def update_pbi(pbi_id: str, pbi: PBIUpdate, engine: ScrumEngine = Depends(get_engine)):
    updated = engine.update_pbi(pbi_id, pbi)
    return pbi_out(engine, updated)


@router.post("/{pbi_id}/toggle-refinement", response_model=schemas.PBIOut)
async def toggle_refinement(pbi_id: str, engine: ScrumEngine = Depends(get_engine)):
    updated = engine.toggle_refinement(pbi_id)
    return pbi_out(engine, updated)


@router.put("/{pbi_id}/status", response_model=schemas.PBIOut)
async def set_status_override(
    pbi_id: str,
    request: schemas.StatusOverrideRequest,
    engine: ScrumEngine = Depends(get_engine),
):
    updated = engine.set_pbi_status(pbi_id, request.status)
    return pbi_out(engine, updated)


@router.put("/{pbi_id}/sprint", response_model=schemas.PBIOut)
async def assign_sprint(
    pbi_id: str,
    request: schemas.AssignRequest,
    engine: ScrumEngine = Depends(get_engine),
):
    updated = engine.assign_pbi(pbi_id, request.sprint_id)
    return pbi_out(engine, updated)
