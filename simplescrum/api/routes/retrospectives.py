from fastapi import APIRouter, Depends

from simplescrum.api import schemas
from simplescrum.api.dependencies import get_engine
from simplescrum.models.commands import RetrospectiveCreate, RetrospectiveUpdate
from simplescrum.services.engine import ScrumEngine

router = APIRouter(prefix="/retrospectives", tags=["Retrospectives"])


@router.post("", response_model=schemas.RetrospectiveOut, status_code=201)
async def create_retrospective(
    retrospective: RetrospectiveCreate,
    engine: ScrumEngine = Depends(get_engine),
):
    return engine.create_retrospective(retrospective)


@router.get("/{retrospective_id}", response_model=schemas.RetrospectiveOut)
def get_retrospective(retrospective_id: str, engine: ScrumEngine = Depends(get_engine)):
    return engine.get_retrospective(retrospective_id)


@router.patch("/{retrospective_id}", response_model=schemas.RetrospectiveOut)
async def update_retrospective(
    retrospective_id: str,
    retrospective: RetrospectiveUpdate,
    engine: ScrumEngine = Depends(get_engine),
):
    return engine.update_retrospective(retrospective_id, retrospective)
