"""
SimpleScrum Mutation Commands

Typed create/update payloads per entity kind. Update commands track which
fields were explicitly provided, so "set to null" and "not provided" stay
distinct when the store merges changes.
"""

from datetime import date
from typing import Any, ClassVar, Dict, FrozenSet, Literal, Optional, Type, TypeVar

from pydantic import BaseModel, ConfigDict, Field, model_validator
from pydantic import ValidationError as PydanticValidationError

from simplescrum.errors import ValidationError

StoryPoints = Literal[1, 2, 3, 5, 8, 13]
Refinement = Literal["vague", "ready"]
TaskState = Literal["to_do", "in_progress", "testing", "done"]
PBIState = Literal["to_do", "in_progress", "done"]

C = TypeVar("C", bound="CommandModel")


class CommandModel(BaseModel):
    model_config = ConfigDict(extra="forbid")

    def changes(self) -> Dict[str, Any]:
        """Return only the fields the caller explicitly set."""
        return self.model_dump(exclude_unset=True)


class UpdateCommand(CommandModel):
    """
    Base for partial updates.

    Every field is optional. Only names listed in ``nullable_fields`` may be
    explicitly set to None; for the rest None means "leave unchanged" and is
    rejected when passed explicitly.
    """

    nullable_fields: ClassVar[FrozenSet[str]] = frozenset()

    @model_validator(mode="after")
    def _reject_explicit_nulls(self) -> "UpdateCommand":
        for name in self.model_fields_set:
            if getattr(self, name) is None and name not in self.nullable_fields:
                raise ValueError(f"{name} cannot be cleared")
        return self


# Project

class ProjectCreate(CommandModel):
    name: str = Field(min_length=1)
    product_goal: str = ""


class ProjectUpdate(UpdateCommand):
    name: Optional[str] = Field(default=None, min_length=1)
    product_goal: Optional[str] = None


# Product Backlog Items

class PBICreate(CommandModel):
    project_id: str
    title: str = Field(min_length=1)
    story_points: StoryPoints
    refinement_status: Refinement = "vague"


class PBIUpdate(UpdateCommand):
    nullable_fields: ClassVar[FrozenSet[str]] = frozenset({"sprint_id", "status_override"})

    title: Optional[str] = Field(default=None, min_length=1)
    story_points: Optional[StoryPoints] = None
    refinement_status: Optional[Refinement] = None
    sprint_id: Optional[str] = None
    status_override: Optional[PBIState] = None


# Sprints

class SprintCreate(CommandModel):
    project_id: str
    team_capacity: int = Field(gt=0)
    sprint_goal: str = ""
    committed_sp: int = Field(default=0, ge=0)
    start_date: Optional[date] = None
    end_date: Optional[date] = None

    @model_validator(mode="after")
    def _check_dates(self) -> "SprintCreate":
        if self.start_date and self.end_date and self.end_date < self.start_date:
            raise ValueError("end_date must not be before start_date")
        return self


class SprintUpdate(UpdateCommand):
    sprint_goal: Optional[str] = None
    team_capacity: Optional[int] = Field(default=None, gt=0)
    start_date: Optional[date] = None
    end_date: Optional[date] = None

    @model_validator(mode="after")
    def _check_dates(self) -> "SprintUpdate":
        if self.start_date and self.end_date and self.end_date < self.start_date:
            raise ValueError("end_date must not be before start_date")
        return self


# Tasks

class TaskCreate(CommandModel):
    sprint_id: str
    description: str = Field(min_length=1)
    pbi_id: Optional[str] = None
    status: TaskState = "to_do"
    owner: str = ""
    time_estimate_hours: float = Field(default=0.0, ge=0)


class TaskUpdate(UpdateCommand):
    description: Optional[str] = Field(default=None, min_length=1)
    status: Optional[TaskState] = None
    owner: Optional[str] = None
    time_estimate_hours: Optional[float] = Field(default=None, ge=0)


# Retrospectives

class RetrospectiveCreate(CommandModel):
    sprint_id: str
    went_well: str = ""
    to_improve: str = ""
    action_item: str = ""


class RetrospectiveUpdate(UpdateCommand):
    went_well: Optional[str] = None
    to_improve: Optional[str] = None
    action_item: Optional[str] = None


def build_command(command_cls: Type[C], **fields: Any) -> C:
    """
    Construct a command, converting pydantic validation failures into the
    engine's ValidationError.
    """
    try:
        return command_cls(**fields)
    except PydanticValidationError as exc:
        problems = [
            {"field": ".".join(str(p) for p in err.get("loc", ())), "message": err.get("msg", "")}
            for err in exc.errors()
        ]
        summary = "; ".join(f"{p['field'] or 'command'}: {p['message']}" for p in problems)
        raise ValidationError(
            f"Invalid {command_cls.__name__}: {summary}",
            metadata={"command": command_cls.__name__, "errors": problems},
        ) from exc
