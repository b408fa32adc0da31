from __future__ import annotations

from layoutsync.layout.records import ITEM, PAGE, ROOT_ID, SECTION, STACK, make_record


def _stack_with_items(core, heights=(50, 60, 70), parent_id=ROOT_ID):
    stack = core.store.create_record(
        make_record(STACK, record_id="stack:1", parent_id=parent_id, x=100, y=100)
    )
    for index, height in enumerate(heights):
        item = core.store.create_record(
            make_record(ITEM, record_id=f"item:{index}", parent_id=stack.id, h=height)
        )
        core.graph.create_edge(stack.id, item.id)
    return stack


def _positions(core, prefix: str = "item:"):
    return {
        r.id: (r.x, r.y, r.w, r.h)
        for r in core.store.records()
        if r.id.startswith(prefix)
    }


def _assert_stacked(core, container_id: str) -> None:
    container = core.store.require(container_id)
    gap = float(container.props.get("gap", 0.0)) if container.type == STACK else 0.0
    total = 0.0
    previous_bottom = None
    for edge in core.graph.edges_of(container_id):
        child = core.store.require(edge.to_id)
        if previous_bottom is not None:
            assert child.y >= previous_bottom
        previous_bottom = child.y + child.h
        total += child.h + gap
    assert container.h == total


def test_children_stack_top_to_bottom(core) -> None:
    _stack_with_items(core)
    positions = _positions(core)
    assert positions["item:0"] == (8.0, 0.0, 284.0, 50.0)
    assert positions["item:1"] == (8.0, 58.0, 284.0, 60.0)
    assert positions["item:2"] == (8.0, 126.0, 284.0, 70.0)
    assert core.store.require("stack:1").h == 204.0
    _assert_stacked(core, "stack:1")


def test_reflow_is_idempotent(core) -> None:
    _stack_with_items(core)
    assert core.reflow.reflow("stack:1") is False


def test_child_resize_pushes_siblings_down(core) -> None:
    _stack_with_items(core)
    item = core.store.require("item:0")
    core.store.update_record(item.id, props={"size": {"w": item.w, "h": 100.0}})

    assert core.store.require("item:1").y == 108.0
    assert core.store.require("item:2").y == 176.0
    assert core.store.require("stack:1").h == 254.0


def test_container_width_and_gap_changes_reflow_children(core) -> None:
    _stack_with_items(core)
    stack = core.store.require("stack:1")
    core.store.update_record(stack.id, props={"size": {"w": 400.0, "h": stack.h}})
    assert {r.w for r in core.store.records(ITEM)} == {384.0}

    core.store.update_record(stack.id, props={"gap": 4.0})
    assert core.store.require("item:0").x == 4.0
    assert core.store.require("item:1").y == 54.0
    assert core.store.require("stack:1").h == 50 + 60 + 70 + 12.0


def test_deleted_child_leaves_a_dangling_edge_that_gets_removed(core) -> None:
    _stack_with_items(core)
    core.store.delete_records(["item:1"])

    assert [e.to_id for e in core.graph.edges_of("stack:1")] == ["item:0", "item:2"]
    assert core.store.require("item:2").y == 58.0
    assert core.store.require("stack:1").h == 136.0


def test_deleted_container_drops_its_edges(core) -> None:
    _stack_with_items(core)
    core.store.delete_records(["stack:1"])
    assert core.graph.all_edges() == []
    assert len(core.store.records(ITEM)) == 3


def test_empty_container_keeps_its_height(core) -> None:
    _stack_with_items(core, heights=(50,))
    core.graph.delete_subtree(["item:0"])
    assert core.graph.edges_of("stack:1") == []
    assert core.store.require("stack:1").h == 58.0


def test_busy_children_keep_their_position_but_reserve_space(core) -> None:
    _stack_with_items(core)
    with core.store.batch():
        core.store.update_record(
            "item:0",
            props={"position": {"x": 500.0, "y": 500.0}},
            meta={"is_dragging": True},
        )
        core.store.update_record("item:1", props={"size": {"w": 284.0, "h": 80.0}})

    assert (core.store.require("item:0").x, core.store.require("item:0").y) == (500.0, 500.0)
    assert core.store.require("item:1").y == 58.0
    assert core.store.require("item:2").y == 146.0


def test_nested_containers_propagate_height(core) -> None:
    page = core.store.create_record(make_record(PAGE, record_id="page:1"))
    stack = _stack_with_items(core, heights=(50, 50), parent_id=page.id)
    core.graph.create_edge(page.id, stack.id)

    stack = core.store.require(stack.id)
    assert (stack.x, stack.y, stack.w) == (0.0, 0.0, 1200.0)
    assert stack.h == 116.0
    assert core.store.require("page:1").h == 116.0
    assert core.store.require("item:0").w == 1184.0

    section = core.store.create_record(
        make_record(SECTION, record_id="section:1", parent_id=page.id, h=200)
    )
    core.graph.create_edge(page.id, section.id)
    assert core.store.require("section:1").y == 116.0
    assert core.store.require("page:1").h == 316.0

    core.store.create_record(make_record(ITEM, record_id="item:late", parent_id=stack.id))
    core.graph.create_edge(stack.id, "item:late")
    assert core.store.require("stack:1").h == 174.0
    assert core.store.require("section:1").y == 174.0
    assert core.store.require("page:1").h == 374.0
    _assert_stacked(core, "page:1")
    _assert_stacked(core, "stack:1")
