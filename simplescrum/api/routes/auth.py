from fastapi import APIRouter, Depends

from simplescrum.api import schemas
from simplescrum.api.dependencies import ApiSession, SessionRegistry, get_registry, get_session

router = APIRouter(prefix="/auth", tags=["Auth"])


def _session_out(session: ApiSession) -> schemas.SessionOut:
    user = session.user
    return schemas.SessionOut(token=session.token, user_id=user.user_id, email=user.email)


@router.post("/sign-up", response_model=schemas.SessionOut, status_code=201)
async def sign_up(
    credentials: schemas.Credentials,
    registry: SessionRegistry = Depends(get_registry),
):
    session = await registry.sign_up(credentials.email, credentials.password)
    return _session_out(session)


@router.post("/sign-in", response_model=schemas.SessionOut)
async def sign_in(
    credentials: schemas.Credentials,
    registry: SessionRegistry = Depends(get_registry),
):
    session = await registry.sign_in(credentials.email, credentials.password)
    return _session_out(session)


@router.post("/sign-out")
async def sign_out(
    session: ApiSession = Depends(get_session),
    registry: SessionRegistry = Depends(get_registry),
):
    await registry.sign_out(session.token)
    return {"status": "signed_out"}


@router.get("/me", response_model=schemas.UserOut)
def me(session: ApiSession = Depends(get_session)):
    user = session.user
    return schemas.UserOut(user_id=user.user_id, email=user.email)
