"""SimpleScrum domain models and mutation commands."""

from simplescrum.models.domain import (
    PBI,
    EntityKind,
    PBIStatus,
    PbiId,
    Project,
    ProjectId,
    RefinementStatus,
    Retrospective,
    RetrospectiveId,
    Sprint,
    SprintId,
    SprintStatus,
    STORY_POINT_SCALE,
    Task,
    TaskId,
    TaskStatus,
    UserIdentity,
)

__all__ = [
    "PBI",
    "EntityKind",
    "PBIStatus",
    "PbiId",
    "Project",
    "ProjectId",
    "RefinementStatus",
    "Retrospective",
    "RetrospectiveId",
    "Sprint",
    "SprintId",
    "SprintStatus",
    "STORY_POINT_SCALE",
    "Task",
    "TaskId",
    "TaskStatus",
    "UserIdentity",
]
