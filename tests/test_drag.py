from __future__ import annotations

import pytest

from layoutsync.layout.drag import (
    BIND,
    HOST,
    DragSession,
    GestureState,
    ResizeSession,
    ghost_id,
)
from layoutsync.layout.errors import DragStateError
from layoutsync.layout.geometry import Point
from layoutsync.layout.records import ITEM, PAGE, SECTION, STACK, make_record


def _page_with_sections(core):
    page = core.store.create_record(make_record(PAGE, record_id="page:p", h=600))
    for record_id, height in (("section:s1", 200), ("section:s2", 150)):
        core.store.create_record(
            make_record(SECTION, record_id=record_id, parent_id=page.id, h=height)
        )
        core.graph.create_edge(page.id, record_id)
    return page


def _page_with_two_stacks(core):
    page = core.store.create_record(make_record(PAGE, record_id="page:p"))
    layout = {"stack:1": ("item:a", "item:b"), "stack:2": ("item:d",)}
    for stack_id, items in layout.items():
        core.store.create_record(
            make_record(STACK, record_id=stack_id, parent_id=page.id)
        )
        core.graph.create_edge(page.id, stack_id)
        for item_id in items:
            core.store.create_record(
                make_record(ITEM, record_id=item_id, parent_id=stack_id)
            )
            core.graph.create_edge(stack_id, item_id)
    return page


def _order(core, container_id):
    return [edge.to_id for edge in core.graph.edges_of(container_id)]


def _drag(core, record_id, **kwargs):
    return DragSession(core.store, core.graph, core.reflow, record_id, **kwargs)


def test_sections_stack_inside_their_page(core) -> None:
    _page_with_sections(core)
    assert core.store.require("page:p").h == 350.0
    assert core.store.require("section:s1").y == 0.0
    assert core.store.require("section:s2").y == 200.0


def test_drag_section_above_its_sibling(core) -> None:
    _page_with_sections(core)
    session = _drag(core, "section:s2")
    session.start(Point(100, 210))
    assert session.state is GestureState.TRANSLATING
    assert core.store.require("section:s2").meta.is_dragging is True
    assert all(e.placeholder for e in core.graph.edges_to("section:s2"))

    target = session.move(Point(100, 10))
    assert target is not None
    assert (target.container_id, target.mode) == ("page:p", BIND)
    assert core.store.require("page:p").meta.is_dragging_over is True
    # the sibling already makes room while the pointer is still down
    assert core.store.require("section:s1").y == 150.0
    assert core.store.require("section:s2").y == 0.0

    session.end()

    assert session.state is GestureState.SETTLED
    assert _order(core, "page:p") == ["section:s2", "section:s1"]
    assert core.store.require("section:s2").y == 0.0
    assert core.store.require("section:s1").y == 150.0
    assert core.store.require("page:p").h == 350.0
    assert not any(e.placeholder for e in core.graph.all_edges())
    assert not core.store.require("section:s2").meta.busy
    assert not core.store.require("page:p").meta.busy


def test_ghost_marks_the_insertion_slot(core) -> None:
    _page_with_sections(core)
    session = _drag(core, "section:s2")
    session.start(Point(100, 210))
    session.move(Point(100, 10))

    ghost = core.store.require(ghost_id(core.store.writer_id))
    assert ghost.parent_id == "page:p"
    assert (ghost.x, ghost.y, ghost.w, ghost.h) == (0.0, 0.0, 1200.0, 150.0)
    assert ghost.props["ownerId"] == "section:s2"

    session.end()
    assert core.store.get(ghost.id) is None


def test_ghosts_can_be_disabled(core) -> None:
    _page_with_sections(core)
    session = _drag(core, "section:s2", ghosts=False)
    session.start(Point(100, 210))
    session.move(Point(100, 10))
    assert core.store.get(ghost_id(core.store.writer_id)) is None
    session.end()


def test_cancel_restores_the_original_layout(core) -> None:
    _page_with_sections(core)
    before = core.store.require("section:s2")
    session = _drag(core, "section:s2")
    session.start(Point(100, 210))
    session.move(Point(100, 10))
    session.cancel()

    assert session.state is GestureState.REVERTED
    assert _order(core, "page:p") == ["section:s1", "section:s2"]
    after = core.store.require("section:s2")
    assert (after.x, after.y) == (before.x, before.y)
    assert not after.meta.busy
    assert not core.store.require("page:p").meta.busy
    assert core.store.require("section:s1").y == 0.0
    assert not any(e.placeholder for e in core.graph.all_edges())
    assert core.store.get(ghost_id(core.store.writer_id)) is None


def test_drag_item_into_another_stack(core) -> None:
    _page_with_two_stacks(core)
    assert core.store.require("stack:2").y == 116.0

    session = _drag(core, "item:a")
    session.start(Point(100, 10))
    target = session.move(Point(100, 150))
    assert (target.container_id, target.mode) == ("stack:2", BIND)
    assert core.store.require("item:a").parent_id == "stack:2"

    session.end()

    assert _order(core, "stack:2") == ["item:d", "item:a"]
    assert _order(core, "stack:1") == ["item:b"]
    edges = core.graph.edges_to("item:a")
    assert len(edges) == 1 and not edges[0].placeholder
    item = core.store.require("item:a")
    assert (item.x, item.y) == (8.0, 58.0)
    assert core.store.require("item:b").y == 0.0
    assert core.store.require("stack:1").h == 58.0
    assert core.store.require("stack:2").h == 116.0
    assert core.store.require("stack:2").y == 58.0
    assert core.store.require("page:p").h == 174.0


def test_drop_outside_any_container_snaps_back(core) -> None:
    _page_with_two_stacks(core)
    session = _drag(core, "item:a")
    session.start(Point(100, 10))
    assert session.move(Point(5000, 5000)) is None
    session.end()

    assert core.graph.container_of("item:a") == "stack:1"
    assert _order(core, "stack:1") == ["item:a", "item:b"]
    item = core.store.require("item:a")
    assert (item.x, item.y) == (8.0, 0.0)


def test_free_item_dropped_on_a_section_is_hosted(core) -> None:
    page = core.store.create_record(make_record(PAGE, record_id="page:p"))
    core.store.create_record(
        make_record(SECTION, record_id="section:s", parent_id=page.id)
    )
    core.graph.create_edge(page.id, "section:s")
    core.store.create_record(make_record(ITEM, record_id="item:free", x=2000, y=2000))

    session = _drag(core, "item:free")
    session.start(Point(2010, 2010))
    target = session.move(Point(110, 110))
    assert (target.container_id, target.mode) == ("section:s", HOST)
    session.end()

    item = core.store.require("item:free")
    assert item.parent_id == "section:s"
    assert (item.x, item.y) == (100.0, 100.0)
    assert core.graph.edges_to("item:free") == []


def test_gesture_state_is_enforced(core) -> None:
    _page_with_sections(core)
    session = _drag(core, "section:s1")
    with pytest.raises(DragStateError):
        session.move(Point(0, 0))
    session.start(Point(0, 0))
    with pytest.raises(DragStateError):
        session.start(Point(0, 0))
    session.end()
    with pytest.raises(DragStateError):
        session.cancel()

    edge = core.graph.edges_of("page:p")[0]
    with pytest.raises(DragStateError):
        _drag(core, edge.id)


def test_resize_section_reflows_page_immediately(core) -> None:
    _page_with_sections(core)
    session = ResizeSession(core.store, core.graph, core.reflow, "section:s1")
    session.start()
    assert core.store.require("section:s1").meta.is_transforming is True

    session.resize(scale_x=3.0, scale_y=0.5)
    section = core.store.require("section:s1")
    assert (section.w, section.h) == (1200.0, 100.0)
    assert core.store.require("section:s2").y == 100.0
    assert core.store.require("page:p").h == 250.0

    session.resize(scale_y=0.1)
    assert core.store.require("section:s1").h == 50.0

    session.end()
    assert session.state is GestureState.SETTLED
    assert not core.store.require("section:s1").meta.is_transforming
    assert core.store.require("page:p").h == 200.0


def test_resize_cancel_restores_size(core) -> None:
    _page_with_sections(core)
    session = ResizeSession(core.store, core.graph, core.reflow, "section:s1")
    session.start()
    session.resize(scale_y=2.0)
    session.cancel()
    assert core.store.require("section:s1").h == 200.0
    assert core.store.require("page:p").h == 350.0
    assert not core.store.require("section:s1").meta.is_transforming


def test_resize_stack_scales_gap_with_a_floor(core) -> None:
    stack = core.store.create_record(make_record(STACK, record_id="stack:1"))
    core.store.create_record(make_record(ITEM, record_id="item:a", parent_id=stack.id))
    core.graph.create_edge(stack.id, "item:a")

    session = ResizeSession(core.store, core.graph, core.reflow, stack.id)
    session.start()
    session.resize(scale_x=2.0, scale_y=0.5)
    resized = core.store.require(stack.id)
    assert resized.w == 600.0
    assert resized.props["gap"] == 4.0
    assert core.store.require("item:a").w == 592.0

    session.resize(scale_y=0.1)
    assert core.store.require(stack.id).props["gap"] == 2.0
    session.end()


def test_resize_bound_stack_reflows_page_immediately(core) -> None:
    _page_with_two_stacks(core)
    assert core.store.require("page:p").h == 174.0

    session = ResizeSession(core.store, core.graph, core.reflow, "stack:1")
    session.start()
    session.resize(scale_x=0.5, scale_y=0.5)
    stack = core.store.require("stack:1")
    assert (stack.w, stack.h) == (1200.0, 108.0)
    assert stack.props["gap"] == 4.0
    assert core.store.require("item:b").y == 54.0
    assert core.store.require("stack:2").y == 108.0
    assert core.store.require("page:p").h == 166.0

    session.end()
    assert core.store.require("page:p").h == 166.0


def test_pages_are_not_resizable(core) -> None:
    core.store.create_record(make_record(PAGE, record_id="page:p"))
    with pytest.raises(DragStateError):
        ResizeSession(core.store, core.graph, core.reflow, "page:p")
