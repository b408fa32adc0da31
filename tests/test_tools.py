from __future__ import annotations

from layoutsync.layout.geometry import Point
from layoutsync.layout.records import EDGE, ITEM, PAGE, ROOT_ID, SECTION, STACK
from layoutsync.layout.tools import MIN_PAGE_SIZE


def _order(core, container_id):
    return [core.store.require(e.to_id) for e in core.graph.edges_of(container_id)]


def test_create_page_defaults_and_drag_box(core) -> None:
    page = core.tools.create_page(Point(10, 20))
    assert page.type == PAGE
    assert (page.x, page.y, page.w, page.h) == (10.0, 20.0, 1200.0, 600.0)

    boxed = core.tools.create_page(Point(3000, 900), Point(2500, 800))
    assert (boxed.x, boxed.y) == (2500.0, 800.0)
    assert (boxed.w, boxed.h) == MIN_PAGE_SIZE


def test_section_tool_needs_a_page(core) -> None:
    assert core.tools.create_section(Point(50, 50)) is None
    assert core.store.records() == []


def test_sections_insert_at_the_pointer_slot(core) -> None:
    page = core.tools.create_page(Point(0, 0))
    first = core.tools.create_section(Point(10, 10), text="Intro")
    assert first.parent_id == page.id
    assert core.store.require(page.id).h == 500.0

    second = core.tools.create_section(Point(10, 400), text="Body")
    third = core.tools.create_section(Point(10, 10), text="Cover")

    ordered = _order(core, page.id)
    assert [r.props["text"] for r in ordered] == ["Cover", "Intro", "Body"]
    assert [r.y for r in ordered] == [0.0, 500.0, 1000.0]
    assert all(r.w == 1200.0 for r in ordered)
    assert core.store.require(page.id).h == 1500.0
    assert second.type == third.type == SECTION


def test_stack_tool_binds_into_pages_or_floats(core) -> None:
    page = core.tools.create_page(Point(0, 0))
    bound = core.tools.create_stack(Point(20, 20))
    assert core.graph.container_of(bound.id) == page.id
    assert core.store.require(bound.id).w == 1200.0

    free = core.tools.create_stack(Point(5000, 100), w=250, gap=6)
    assert free.parent_id == ROOT_ID
    assert core.graph.container_of(free.id) is None
    assert (free.x, free.y, free.w) == (5000.0, 100.0, 250.0)
    assert free.props["gap"] == 6.0


def test_item_tool_prefers_stacks_then_hosts(core) -> None:
    stack = core.tools.create_stack(Point(5000, 100))
    in_stack = core.tools.create_item(Point(5010, 110), text="Bound")
    assert core.graph.container_of(in_stack.id) == stack.id
    assert core.store.require(in_stack.id).y == 0.0

    page = core.tools.create_page(Point(0, 0))
    section = core.tools.create_section(Point(10, 10))
    hosted = core.tools.create_item(Point(40, 60))
    assert hosted.parent_id == section.id
    assert (hosted.x, hosted.y) == (40.0, 60.0)
    assert core.graph.edges_to(hosted.id) == []

    loose = core.tools.create_item(Point(9000, 9000))
    assert loose.parent_id == ROOT_ID
    assert loose.props["text"] == "New todo"
    assert page.id in core.store


def test_duplicate_bound_record_appends_to_container(core) -> None:
    page = core.tools.create_page(Point(0, 0))
    section = core.tools.create_section(Point(10, 10), text="Intro")
    core.tools.create_section(Point(10, 400), text="Body")

    copy = core.tools.duplicate(section.id)
    assert copy.id != section.id
    assert copy.props["text"] == "Intro (copy)"
    ordered = _order(core, page.id)
    assert [r.id for r in ordered][-1] == copy.id
    assert ordered[-1].y == 1000.0


def test_duplicate_free_record_is_offset(core) -> None:
    item = core.tools.create_item(Point(100, 100), text="Call Bob")
    copy = core.tools.duplicate(item.id)
    assert copy.type == ITEM
    assert (copy.x, copy.y) == (116.0, 116.0)
    assert copy.props["text"] == "Call Bob (copy)"
    assert core.store.require(item.id).props["text"] == "Call Bob"


def test_update_props_and_delete(core) -> None:
    page = core.tools.create_page(Point(0, 0))
    stack = core.tools.create_stack(Point(20, 20))
    item = core.tools.create_item(Point(30, 10))
    assert core.graph.container_of(item.id) == stack.id

    updated = core.tools.update_props(item.id, text="Done", isComplete=True)
    assert updated.props["isComplete"] is True

    core.tools.delete([page.id])
    assert core.store.records() == []
    assert core.store.records(EDGE) == []
    assert STACK not in {r.type for r in core.store.records()}
