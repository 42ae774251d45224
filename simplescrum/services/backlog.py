"""
SimpleScrum Backlog Ordering

Keeps each project's backlog in a dense, gap-free priority order. The
ordering math lives in pure functions; PriorityReorderer applies their result
to the store as one batch.
"""

from dataclasses import dataclass
from typing import Dict, List, Optional, Sequence

from simplescrum.errors import ValidationError
from simplescrum.models.domain import PBI, RefinementStatus
from simplescrum.services.base import Service, ServiceContext
from simplescrum.services.events import BacklogReordered, EventBus
from simplescrum.services.store import EntityStore


def _ranked(pbis: Sequence[PBI]) -> List[PBI]:
    return sorted(pbis, key=lambda p: (p.priority_index, p.pbi_number))


def move_item(pbis: Sequence[PBI], pbi_id: str, position: int) -> Dict[str, int]:
    """
    Move one item to ``position`` and renumber everything densely.

    ``position`` is clamped into ``[0, n-1]``. Returns the full new mapping
    of id to priority index.
    """
    ordered = _ranked(pbis)
    ids = [p.id for p in ordered]
    if pbi_id not in ids:
        raise ValidationError(f"PBI {pbi_id} is not in this backlog", metadata={"pbi_id": pbi_id})
    ids.remove(pbi_id)
    position = max(0, min(position, len(ids)))
    ids.insert(position, pbi_id)
    return {item_id: index for index, item_id in enumerate(ids)}


def apply_order(pbis: Sequence[PBI], ordered_ids: Sequence[str]) -> Dict[str, int]:
    """Assign priority indices from an explicit final order of every item."""
    known = {p.id for p in pbis}
    if len(ordered_ids) != len(set(ordered_ids)) or set(ordered_ids) != known:
        raise ValidationError(
            "Order must list every backlog item exactly once",
            metadata={"expected": len(known), "received": len(ordered_ids)},
        )
    return {item_id: index for index, item_id in enumerate(ordered_ids)}


@dataclass(frozen=True)
class BacklogSummary:
    total: int
    ready: int
    vague: int
    total_sp: int
    ready_sp: int
    unassigned: int


def summarize_backlog(pbis: Sequence[PBI]) -> BacklogSummary:
    ready = [p for p in pbis if p.refinement_status == RefinementStatus.READY]
    return BacklogSummary(
        total=len(pbis),
        ready=len(ready),
        vague=len(pbis) - len(ready),
        total_sp=sum(p.story_points for p in pbis),
        ready_sp=sum(p.story_points for p in ready),
        unassigned=sum(1 for p in pbis if p.sprint_id is None),
    )


class PriorityReorderer(Service):
    """Applies drag-reorder results to a project's backlog."""

    def __init__(self, context: ServiceContext, store: EntityStore, bus: Optional[EventBus] = None) -> None:
        super().__init__(context)
        self.store = store
        self.bus = bus

    def move(self, project_id: str, pbi_id: str, position: int) -> List[PBI]:
        """Move ``pbi_id`` to ``position``. Returns the items whose index changed."""
        project = self.store.get_project(project_id)
        pbi = self.store.get_pbi(pbi_id)
        if pbi.project_id != project.id:
            raise ValidationError(
                f"{pbi.label} does not belong to project {project.name}",
                metadata={"pbi_id": pbi.id, "project_id": project.id},
            )
        ordering = move_item(self.store.list_pbis(project.id), pbi.id, position)
        return self._replace(project.id, ordering, moved=pbi.id)

    def apply_order(self, project_id: str, ordered_ids: Sequence[str]) -> List[PBI]:
        project = self.store.get_project(project_id)
        ordering = apply_order(self.store.list_pbis(project.id), ordered_ids)
        return self._replace(project.id, ordering)

    def _replace(self, project_id: str, ordering: Dict[str, int], moved: Optional[str] = None) -> List[PBI]:
        with self.store.batch(f"reorder:{project_id}"):
            changed = self.store.replace_priorities(project_id, ordering)
        self.logger.info(
            "backlog_reordered",
            extra=self.log_extra(project_id=project_id, pbi_id=moved, changed=len(changed)),
        )
        if changed and self.bus is not None:
            self.bus.publish(
                BacklogReordered(
                    project_id=project_id,
                    changed={p.id: p.priority_index for p in changed},
                )
            )
        return changed
