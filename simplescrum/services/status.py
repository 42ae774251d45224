"""
SimpleScrum Derived Status

Pure functions computing a backlog item's effective workflow status from its
sprint and tasks. Nothing here touches the store; status is recomputed on
every read and never persisted.
"""

from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Mapping, Optional, Sequence, Tuple

from simplescrum.models.domain import PBI, PBIStatus, Sprint, Task, TaskStatus


def tasks_complete(tasks: Sequence[Task]) -> bool:
    """True when there is at least one task and every task is done."""
    return bool(tasks) and all(t.status == TaskStatus.DONE for t in tasks)


def derive_pbi_status(pbi: PBI, sprint: Optional[Sprint], tasks: Sequence[Task]) -> str:
    """
    Compute the effective status of ``pbi``.

    Args:
        pbi: The backlog item.
        sprint: The sprint referenced by ``pbi.sprint_id``, or None when the
            item is unassigned or the sprint is unknown.
        tasks: The item's tasks in that sprint. Tasks left behind in an
            earlier sprint do not count.

    Returns:
        One of ``to_do``, ``in_progress`` or ``done``.
    """
    if pbi.status_override:
        return pbi.status_override

    if pbi.sprint_id is None or sprint is None:
        return PBIStatus.TO_DO

    if sprint.is_closed:
        return PBIStatus.DONE if tasks_complete(tasks) else PBIStatus.IN_PROGRESS

    if not tasks:
        return PBIStatus.TO_DO
    if tasks_complete(tasks):
        return PBIStatus.DONE
    if any(t.status in (TaskStatus.IN_PROGRESS, TaskStatus.TESTING) for t in tasks):
        return PBIStatus.IN_PROGRESS
    return PBIStatus.TO_DO


@dataclass
class StatusColumn:
    status: str
    pbis: List[PBI] = field(default_factory=list)

    @property
    def story_points(self) -> int:
        return sum(p.story_points for p in self.pbis)


def status_board(
    pbis: Iterable[PBI],
    sprints: Mapping[str, Sprint],
    tasks: Iterable[Task],
) -> Dict[str, StatusColumn]:
    """Group backlog items into the three status columns, preserving priority order."""
    by_pbi: Dict[Tuple[str, str], List[Task]] = {}
    for task in tasks:
        if task.pbi_id is not None:
            by_pbi.setdefault((task.sprint_id, task.pbi_id), []).append(task)

    board = {status: StatusColumn(status) for status in PBIStatus.ALL}
    for pbi in sorted(pbis, key=lambda p: p.priority_index):
        sprint = sprints.get(pbi.sprint_id) if pbi.sprint_id else None
        status = derive_pbi_status(pbi, sprint, by_pbi.get((pbi.sprint_id, pbi.id), []))
        board[status].pbis.append(pbi)
    return board
