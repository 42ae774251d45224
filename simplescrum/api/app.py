from typing import Optional

from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from simplescrum import __version__
from simplescrum.api import schemas
from simplescrum.api.dependencies import SessionRegistry
from simplescrum.api.routes import auth, backlog, projects, retrospectives, sprints, sync, tasks
from simplescrum.config import Config, get_config
from simplescrum.db.records import open_backend
from simplescrum.errors import (
    AuthenticationError,
    NotFoundError,
    PersistenceError,
    SimpleScrumError,
    ValidationError,
)
from simplescrum.logging import get_logger

logger = get_logger(__name__)

_STATUS_CODES = (
    (ValidationError, 422),
    (NotFoundError, 404),
    (AuthenticationError, 401),
    (PersistenceError, 503),
)


def _status_for(exc: SimpleScrumError) -> int:
    for error_cls, status_code in _STATUS_CODES:
        if isinstance(exc, error_cls):
            return status_code
    return 500


async def handle_simplescrum_error(request: Request, exc: SimpleScrumError) -> JSONResponse:
    status_code = _status_for(exc)
    log = logger.warning if status_code < 500 else logger.error
    log(
        "api_error",
        extra={
            "path": request.url.path,
            "status_code": status_code,
            "category": exc.category,
            "error": str(exc),
        },
    )
    body = schemas.ErrorOut(detail=str(exc), category=exc.category, metadata=jsonable_encoder(exc.metadata))
    return JSONResponse(status_code=status_code, content=body.model_dump())


def create_app(config: Optional[Config] = None) -> FastAPI:
    config = config or get_config()
    app = FastAPI(
        title="SimpleScrum API",
        description="REST API for the SimpleScrum agile project engine",
        version=__version__,
    )
    app.state.config = config
    app.state.sessions = SessionRegistry(config, open_backend(config))

    # CORS
    app.add_middleware(
        CORSMiddleware,
        allow_origins=config.cors_allow_origins or [],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.add_exception_handler(SimpleScrumError, handle_simplescrum_error)

    # Routes
    app.include_router(auth.router)
    app.include_router(projects.router)
    app.include_router(backlog.router)
    app.include_router(sprints.router)
    app.include_router(tasks.router)
    app.include_router(retrospectives.router)
    app.include_router(sync.router)

    @app.get("/health", response_model=schemas.Health, tags=["Health"])
    def health() -> schemas.Health:
        return schemas.Health(version=__version__)

    logger.info(
        "api_created",
        extra={"backend": config.persistence_backend, "environment": config.environment},
    )
    return app
