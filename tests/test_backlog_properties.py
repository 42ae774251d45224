"""
Property-based tests for backlog ordering.

**Feature: product-backlog, Property 1: Priority indices stay dense after any sequence of moves**
**Feature: product-backlog, Property 2: Applying the current order is a no-op**
"""

from typing import List, Tuple

import pytest
from hypothesis import given, settings, strategies as st

from simplescrum.config import Config
from simplescrum.errors import ValidationError
from simplescrum.models.commands import PBICreate, ProjectCreate
from simplescrum.services.backlog import PriorityReorderer, apply_order, move_item, summarize_backlog
from simplescrum.services.base import ServiceContext
from simplescrum.services.events import BacklogReordered, EventBus
from simplescrum.services.store import EntityStore


def _backlog(store: EntityStore, size: int, project_name: str = "Webshop"):
    project = store.create_project(ProjectCreate(name=project_name))
    pbis = [
        store.create_pbi(PBICreate(project_id=project.id, title=f"Item {n}", story_points=3))
        for n in range(size)
    ]
    return project, pbis


def _indices(store: EntityStore, project_id: str) -> List[int]:
    return sorted(p.priority_index for p in store.list_pbis(project_id))


def test_move_item_clamps_position_and_renumbers(store: EntityStore) -> None:
    _, pbis = _backlog(store, 4)
    last = pbis[-1]

    ordering = move_item(pbis, last.id, -5)

    assert ordering[last.id] == 0
    assert sorted(ordering.values()) == [0, 1, 2, 3]
    assert move_item(pbis, pbis[0].id, 99)[pbis[0].id] == 3


def test_move_item_rejects_unknown_item(store: EntityStore) -> None:
    _, pbis = _backlog(store, 2)
    with pytest.raises(ValidationError):
        move_item(pbis, "pbi-missing", 0)


def test_apply_order_requires_every_item_exactly_once(store: EntityStore) -> None:
    _, pbis = _backlog(store, 3)
    ids = [p.id for p in pbis]

    with pytest.raises(ValidationError):
        apply_order(pbis, ids[:2])
    with pytest.raises(ValidationError):
        apply_order(pbis, ids + [ids[0]])
    assert apply_order(pbis, list(reversed(ids))) == {ids[2]: 0, ids[1]: 1, ids[0]: 2}


def test_reorderer_publishes_only_changed_items(context: ServiceContext, store: EntityStore) -> None:
    project, pbis = _backlog(store, 4)
    bus = EventBus()
    events: List[BacklogReordered] = []
    bus.add_handler(BacklogReordered, events.append)
    reorderer = PriorityReorderer(context, store, bus)

    changed = reorderer.move(project.id, pbis[1].id, 0)

    assert {p.id for p in changed} == {pbis[0].id, pbis[1].id}
    assert events[0].changed == {pbis[1].id: 0, pbis[0].id: 1}
    assert [p.id for p in store.list_pbis(project.id)] == [pbis[1].id, pbis[0].id, pbis[2].id, pbis[3].id]


def test_moving_to_current_position_changes_nothing(context: ServiceContext, store: EntityStore) -> None:
    project, pbis = _backlog(store, 3)
    bus = EventBus()
    events: List[BacklogReordered] = []
    bus.add_handler(BacklogReordered, events.append)

    assert PriorityReorderer(context, store, bus).move(project.id, pbis[1].id, 1) == []
    assert events == []


def test_reorder_is_scoped_to_the_project(context: ServiceContext, store: EntityStore) -> None:
    project, _ = _backlog(store, 2, "A")
    _, foreign = _backlog(store, 2, "B")

    with pytest.raises(ValidationError):
        PriorityReorderer(context, store).move(project.id, foreign[0].id, 0)


def test_reorder_changes_share_one_batch(context: ServiceContext, store: EntityStore) -> None:
    project, pbis = _backlog(store, 3)
    changes = []
    store.add_listener(changes.append)

    PriorityReorderer(context, store).move(project.id, pbis[2].id, 0)

    assert len(changes) == 3
    assert {c.batch for c in changes} == {f"reorder:{project.id}"}
    assert all(set(c.fields) == {"priority_index"} for c in changes)


def test_summarize_backlog_counts_refinement(store: EntityStore) -> None:
    project = store.create_project(ProjectCreate(name="Webshop"))
    store.create_pbi(PBICreate(project_id=project.id, title="A", story_points=5, refinement_status="ready"))
    store.create_pbi(PBICreate(project_id=project.id, title="B", story_points=8))

    summary = summarize_backlog(store.list_pbis(project.id))

    assert (summary.total, summary.ready, summary.vague) == (2, 1, 1)
    assert (summary.total_sp, summary.ready_sp, summary.unassigned) == (13, 5, 2)


@settings(max_examples=100, deadline=None)
@given(
    size=st.integers(min_value=1, max_value=12),
    moves=st.lists(
        st.tuples(st.integers(min_value=0, max_value=11), st.integers(min_value=-3, max_value=15)),
        max_size=15,
    ),
)
def test_property_indices_stay_dense(size: int, moves: List[Tuple[int, int]]) -> None:
    """
    Property 1: after any sequence of moves the project's priority indices
    are exactly 0..n-1 and no item is lost or duplicated.
    """
    store = EntityStore("tester")
    context = ServiceContext(config=Config())
    project, pbis = _backlog(store, size)
    reorderer = PriorityReorderer(context, store)

    for item, position in moves:
        reorderer.move(project.id, pbis[item % size].id, position)
        assert _indices(store, project.id) == list(range(size))

    assert {p.id for p in store.list_pbis(project.id)} == {p.id for p in pbis}


@settings(max_examples=100, deadline=None)
@given(data=st.data(), size=st.integers(min_value=0, max_value=10))
def test_property_apply_order_is_idempotent(data, size: int) -> None:
    """
    Property 2: applying a permutation yields exactly that order, and
    applying it again changes nothing.
    """
    store = EntityStore("tester")
    context = ServiceContext(config=Config())
    project, pbis = _backlog(store, size)
    order = data.draw(st.permutations([p.id for p in pbis]))
    reorderer = PriorityReorderer(context, store)

    reorderer.apply_order(project.id, order)

    assert [p.id for p in store.list_pbis(project.id)] == list(order)
    assert reorderer.apply_order(project.id, order) == []
