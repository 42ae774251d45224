"""
SimpleScrum Services

Domain services: entity store, derived status, backlog ordering, sprint
planning and closing, velocity, persistence dispatch and identity.
"""

from importlib import import_module
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from simplescrum.services.base import Service, ServiceContext
    from simplescrum.services.events import EventBus
    from simplescrum.services.store import EntityStore, StoreChange
    from simplescrum.services.status import derive_pbi_status, status_board
    from simplescrum.services.backlog import PriorityReorderer, apply_order, move_item
    from simplescrum.services.planning import CapacityReport, PlanningResult, SprintPlanner
    from simplescrum.services.closing import SprintCloser, SprintReview
    from simplescrum.services.velocity import VelocityHistory, VelocityTracker
    from simplescrum.services.sync import PendingOperation, PersistenceDispatcher
    from simplescrum.services.identity import LocalIdentityProvider
    from simplescrum.services.engine import ScrumEngine

__all__ = [
    # Base
    "Service",
    "ServiceContext",
    # Events
    "EventBus",
    # Store
    "EntityStore",
    "StoreChange",
    # Status
    "derive_pbi_status",
    "status_board",
    # Backlog
    "PriorityReorderer",
    "apply_order",
    "move_item",
    # Planning
    "CapacityReport",
    "PlanningResult",
    "SprintPlanner",
    # Closing
    "SprintCloser",
    "SprintReview",
    # Velocity
    "VelocityHistory",
    "VelocityTracker",
    # Persistence
    "PendingOperation",
    "PersistenceDispatcher",
    # Identity
    "LocalIdentityProvider",
    # Engine
    "ScrumEngine",
]

_EXPORTS = {
    "Service": "simplescrum.services.base",
    "ServiceContext": "simplescrum.services.base",
    "EventBus": "simplescrum.services.events",
    "EntityStore": "simplescrum.services.store",
    "StoreChange": "simplescrum.services.store",
    "derive_pbi_status": "simplescrum.services.status",
    "status_board": "simplescrum.services.status",
    "PriorityReorderer": "simplescrum.services.backlog",
    "apply_order": "simplescrum.services.backlog",
    "move_item": "simplescrum.services.backlog",
    "CapacityReport": "simplescrum.services.planning",
    "PlanningResult": "simplescrum.services.planning",
    "SprintPlanner": "simplescrum.services.planning",
    "SprintCloser": "simplescrum.services.closing",
    "SprintReview": "simplescrum.services.closing",
    "VelocityHistory": "simplescrum.services.velocity",
    "VelocityTracker": "simplescrum.services.velocity",
    "PendingOperation": "simplescrum.services.sync",
    "PersistenceDispatcher": "simplescrum.services.sync",
    "LocalIdentityProvider": "simplescrum.services.identity",
    "ScrumEngine": "simplescrum.services.engine",
}


def __getattr__(name: str):
    module_path = _EXPORTS.get(name)
    if not module_path:
        raise AttributeError(f"module {__name__} has no attribute {name}")
    module = import_module(module_path)
    return getattr(module, name)


def __dir__() -> list[str]:
    return sorted(__all__)
