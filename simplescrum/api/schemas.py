from datetime import date
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field

from simplescrum.models.domain import PBI

# =============================================================================
# Base Models
# =============================================================================

class APIModel(BaseModel):
    model_config = ConfigDict(from_attributes=True)

class Health(BaseModel):
    status: str = "ok"
    version: str = "0.1.0"
    service: str = "simplescrum"

class ErrorOut(BaseModel):
    detail: str
    category: str
    metadata: Dict[str, Any] = Field(default_factory=dict)

# =============================================================================
# Auth Models
# =============================================================================

class Credentials(BaseModel):
    email: str
    password: str

class SessionOut(BaseModel):
    token: str
    user_id: str
    email: str

class UserOut(BaseModel):
    user_id: str
    email: str

# =============================================================================
# Project Models
# =============================================================================

class ProjectOut(APIModel):
    id: str
    name: str
    product_goal: str
    current_velocity: int
    created_at: str

# =============================================================================
# Backlog Models
# =============================================================================

class PBIOut(APIModel):
    id: str
    project_id: str
    pbi_number: int
    label: str
    title: str
    story_points: int
    priority_index: int
    refinement_status: str
    sprint_id: Optional[str] = None
    status_override: Optional[str] = None
    status: Optional[str] = None

    @classmethod
    def from_entity(cls, pbi: PBI, status: Optional[str] = None) -> "PBIOut":
        out = cls.model_validate(pbi)
        out.status = status
        return out

class ReorderRequest(BaseModel):
    project_id: str
    pbi_id: str
    position: int

class OrderRequest(BaseModel):
    project_id: str
    ordered_ids: List[str]

class StatusOverrideRequest(BaseModel):
    status: Optional[str] = None

class AssignRequest(BaseModel):
    sprint_id: Optional[str] = None

class BacklogSummaryOut(APIModel):
    total: int
    ready: int
    vague: int
    total_sp: int
    ready_sp: int
    unassigned: int

class StatusColumnOut(BaseModel):
    status: str
    story_points: int
    pbis: List[PBIOut]

# =============================================================================
# Sprint Models
# =============================================================================

class SprintOut(APIModel):
    id: str
    project_id: str
    sprint_number: int
    sprint_goal: str
    team_capacity: int
    committed_sp: int
    completed_sp: int
    start_date: date
    end_date: date
    status: str

class SprintPlanRequest(BaseModel):
    project_id: str
    team_capacity: int
    pbi_ids: List[str] = Field(default_factory=list)
    sprint_goal: str = ""
    start_date: Optional[date] = None
    end_date: Optional[date] = None

class CapacityOut(APIModel):
    team_capacity: int
    committed_sp: int
    over_capacity_sp: int
    remaining_sp: int
    status: str

class TaskOut(APIModel):
    id: str
    task_id: str
    sprint_id: str
    pbi_id: Optional[str] = None
    description: str
    status: str
    owner: str
    time_estimate_hours: float

class PlanningOut(BaseModel):
    sprint: SprintOut
    pbis: List[PBIOut]
    capacity: CapacityOut
    carried_tasks: List[TaskOut] = Field(default_factory=list)

class SprintReviewOut(BaseModel):
    sprint: SprintOut
    completed_pbis: List[PBIOut]
    incomplete_pbis: List[PBIOut]
    released_pbi_ids: List[str]
    completed_sp: int
    committed_sp: int
    completion_percent: int

class PlanningPoolOut(BaseModel):
    recommended_capacity: int
    pbis: List[PBIOut]

# =============================================================================
# Task Models
# =============================================================================

class TaskMoveRequest(BaseModel):
    status: str

# =============================================================================
# Retrospective Models
# =============================================================================

class RetrospectiveOut(APIModel):
    id: str
    sprint_id: str
    went_well: str
    to_improve: str
    action_item: str

class RetrospectiveRecord(BaseModel):
    went_well: str = ""
    to_improve: str = ""
    action_item: str = ""

# =============================================================================
# Velocity Models
# =============================================================================

class VelocityEntryOut(APIModel):
    sprint_id: str
    sprint_number: int
    committed_sp: int
    completed_sp: int
    completion_rate: int
    band: str

class VelocityOut(BaseModel):
    project_id: str
    average_velocity: int
    current_velocity: int
    has_reliable_baseline: bool
    entries: List[VelocityEntryOut]

# =============================================================================
# Persistence Models
# =============================================================================

class PendingOperationOut(APIModel):
    kind: str
    op: str
    entity_id: str
    batch: Optional[str] = None
    attempts: int
    last_error: Optional[str] = None

class SyncOut(BaseModel):
    synced: bool
    pending: List[PendingOperationOut]
