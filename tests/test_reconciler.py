from __future__ import annotations

import asyncio

import pytest

from layoutsync.collab.reconciler import SyncReconciler
from layoutsync.collab.session import LayoutSession
from layoutsync.collab.transport import InMemoryTransport
from layoutsync.config.sync_settings import SyncSettings
from layoutsync.layout.geometry import Point
from layoutsync.layout.records import ITEM, make_record


IMMEDIATE = SyncSettings(throttle_ms=0, active_throttle_ms=0)


def _session(transport, writer_id, **kwargs) -> LayoutSession:
    kwargs.setdefault("settings", IMMEDIATE)
    return LayoutSession(
        "doc:test", transport, writer_id=writer_id, feature_flags={}, **kwargs
    ).connect()


def _wire_item(record_id: str, *, source: str, version: int, **props) -> dict:
    record = make_record(ITEM, record_id=record_id, **props).as_dict()
    record["meta"] = {"source": source, "version": version}
    return record


def test_local_batches_reach_the_other_writer() -> None:
    transport = InMemoryTransport()
    a = _session(transport, "writer:a")
    b = _session(transport, "writer:b")

    page = a.tools.create_page(Point(0, 0))
    section = a.tools.create_section(Point(10, 10), text="Intro")

    mirrored = b.store.require(section.id)
    assert mirrored.props["text"] == "Intro"
    assert mirrored.meta.source == "writer:a"
    assert b.store.require(page.id).h == 500.0
    assert a.snapshot() == b.snapshot()


def test_late_joiner_loads_the_full_state() -> None:
    transport = InMemoryTransport()
    a = _session(transport, "writer:a")
    a.tools.create_page(Point(0, 0))
    a.tools.create_section(Point(10, 10))
    doomed = a.tools.create_item(Point(5000, 5000))
    a.tools.delete([doomed.id])

    b = _session(transport, "writer:b")
    assert a.snapshot() == b.snapshot()
    assert doomed.id not in b.store
    assert doomed.id in transport.state("doc:test")


def test_last_write_wins_by_version() -> None:
    transport = InMemoryTransport()
    a = _session(transport, "writer:a")
    a.store.create_record(make_record(ITEM, record_id="item:1", text="one"))
    a.store.update_record("item:1", props={"text": "two"})
    a.store.update_record("item:1", props={"text": "three"})
    assert a.store.require("item:1").meta.version == 3

    stale = _wire_item("item:1", source="writer:b", version=2, text="stale")
    assert a.reconciler.receive({"item:1": stale}) == 0
    assert a.store.require("item:1").props["text"] == "three"
    assert a.store.require("item:1").meta.version == 3

    fresh = _wire_item("item:1", source="writer:b", version=4, text="fresh")
    assert a.reconciler.receive({"item:1": fresh}) == 1
    stored = a.store.require("item:1")
    assert stored.props["text"] == "fresh"
    assert (stored.meta.version, stored.meta.source) == (4, "writer:b")

    a.store.update_record("item:1", props={"text": "mine"})
    assert a.store.require("item:1").meta.version == 5


def test_equal_versions_break_ties_on_writer_id() -> None:
    transport = InMemoryTransport()
    a = _session(transport, "writer:b")
    a.store.create_record(make_record(ITEM, record_id="item:1", text="local"))

    lower = _wire_item("item:1", source="writer:a", version=1, text="lower")
    assert a.reconciler.receive({"item:1": lower}) == 0
    higher = _wire_item("item:1", source="writer:c", version=1, text="higher")
    assert a.reconciler.receive({"item:1": higher}) == 1


def test_self_sourced_entries_are_ignored() -> None:
    transport = InMemoryTransport()
    a = _session(transport, "writer:a")
    echo = _wire_item("item:1", source="writer:a", version=99)
    assert a.reconciler.receive({"item:1": echo}) == 0
    assert "item:1" not in a.store


def test_inbound_merge_commutes_for_disjoint_batches(make_core) -> None:
    first = {"item:1": _wire_item("item:1", source="writer:x", version=1, x=10)}
    second = {"item:2": _wire_item("item:2", source="writer:y", version=1, x=20)}

    stores = []
    for batches in ((first, second), (second, first)):
        core = make_core("writer:z")
        reconciler = SyncReconciler(
            "doc:test", core.store, InMemoryTransport(), settings=IMMEDIATE
        )
        reconciler.connect()
        for batch in batches:
            reconciler.receive(batch)
        stores.append(core.store.snapshot())

    assert stores[0] == stores[1]
    assert set(stores[0]) == {"item:1", "item:2"}


def test_remote_writes_do_not_echo_back() -> None:
    transport = InMemoryTransport()
    a = _session(transport, "writer:a")
    _session(transport, "writer:b")
    a.tools.create_item(Point(0, 0))
    assert len(transport.published) == 1


def test_legacy_records_are_migrated_on_receipt() -> None:
    transport = InMemoryTransport()
    a = _session(transport, "writer:a")
    legacy = {
        "id": "shape:todo",
        "typeName": "shape",
        "type": "builder",
        "x": 10,
        "y": 20,
        "props": {"content": "Water plants"},
        "meta": {"source": "writer:old", "version": 1},
    }
    assert a.reconciler.receive({"shape:todo": legacy}) == 1
    record = a.store.require("shape:todo")
    assert record.type == ITEM
    assert record.props["text"] == "Water plants"
    assert (record.x, record.y, record.w, record.h) == (10.0, 20.0, 200.0, 50.0)


def test_publishing_is_throttled(scheduler) -> None:
    transport = InMemoryTransport()
    a = _session(transport, "writer:a", settings=SyncSettings(), scheduler=scheduler)

    item = a.tools.create_item(Point(0, 0), text="first")
    assert len(transport.published) == 1

    a.tools.update_props(item.id, text="second")
    a.tools.update_props(item.id, text="third")
    assert len(transport.published) == 1
    assert a.reconciler.pending[item.id]["props"]["text"] == "third"

    scheduler.advance(0.2)
    assert len(transport.published) == 2
    _, patch = transport.published[-1]
    assert patch[item.id]["props"]["text"] == "third"
    assert a.reconciler.pending == {}


def test_active_gestures_use_the_short_window(scheduler) -> None:
    transport = InMemoryTransport()
    a = _session(transport, "writer:a", settings=SyncSettings(), scheduler=scheduler)
    page = a.tools.create_page(Point(0, 0))
    a.tools.create_section(Point(10, 10))
    section = a.tools.create_section(Point(10, 400))
    scheduler.advance(1.0)

    drag = a.begin_drag(section.id, Point(100, 510))
    published = len(transport.published)
    assert transport.published[-1][1][section.id]["meta"]["isDragging"] is True

    drag.move(Point(100, 10))
    assert len(transport.published) == published
    scheduler.advance(0.016)
    assert len(transport.published) == published + 1

    drag.end()
    a.close()
    _, last = transport.published[-1]
    assert "isDragging" not in last[section.id]["meta"]
    assert page.id in a.store


def test_close_flushes_and_unsubscribes(scheduler) -> None:
    transport = InMemoryTransport()
    a = _session(transport, "writer:a", settings=SyncSettings(), scheduler=scheduler)
    item = a.tools.create_item(Point(0, 0))
    a.tools.update_props(item.id, text="pending")

    a.close()
    assert transport.published[-1][1][item.id]["props"]["text"] == "pending"
    assert a.reconciler.connected is False

    b = _session(transport, "writer:b")
    b.tools.update_props(item.id, text="after close")
    assert a.store.require(item.id).props["text"] == "pending"


def test_first_delivery_keeps_newer_local_records() -> None:
    transport = InMemoryTransport()
    a = LayoutSession(
        "doc:test", transport, writer_id="writer:a", settings=IMMEDIATE, feature_flags={}
    )
    a.store.create_record(make_record(ITEM, record_id="item:1", text="one"))
    for text in ("two", "three", "four", "five"):
        a.store.update_record("item:1", props={"text": text})
    assert a.store.require("item:1").meta.version == 5

    gone = _wire_item("item:4", source="writer:b", version=3)
    gone["meta"]["deleted"] = True
    transport.publish(
        "doc:test",
        {
            "item:1": _wire_item("item:1", source="writer:b", version=1, text="stale"),
            "item:2": _wire_item("item:2", source="writer:b", version=1, text="new"),
            "item:3": _wire_item("item:3", source="writer:a", version=2, text="mine"),
            "item:4": gone,
        },
    )
    a.connect()

    kept = a.store.require("item:1")
    assert (kept.props["text"], kept.meta.version) == ("five", 5)
    assert a.store.require("item:2").props["text"] == "new"
    assert a.store.require("item:3").props["text"] == "mine"
    assert "item:4" not in a.store

    older = _wire_item("item:4", source="writer:c", version=2)
    assert a.reconciler.receive({"item:4": older}) == 0
    assert "item:4" not in a.store


def test_throttled_session_defaults_to_the_running_loop() -> None:
    async def main():
        transport = InMemoryTransport()
        session = LayoutSession(
            "doc:test",
            transport,
            writer_id="writer:a",
            settings=SyncSettings(),
            feature_flags={},
        ).connect()
        for n in range(11):
            session.store.create_record(make_record(ITEM, record_id=f"item:{n}"))
        leading = len(transport.published)
        await asyncio.sleep(0.5)
        session.close()
        return leading, [patch for _, patch in transport.published]

    leading, published = asyncio.run(main())
    assert leading == 1
    assert len(published) == 2
    assert len(published[1]) == 10


def test_throttled_session_needs_a_scheduler_outside_a_loop(scheduler) -> None:
    with pytest.raises(ValueError):
        LayoutSession(
            "doc:test",
            InMemoryTransport(),
            writer_id="writer:a",
            settings=SyncSettings(),
            feature_flags={},
        )

    session = LayoutSession(
        "doc:test",
        InMemoryTransport(),
        writer_id="writer:a",
        settings=SyncSettings(),
        feature_flags={},
        scheduler=scheduler,
    )
    assert session.settings.throttled is True
    assert LayoutSession(
        "doc:test", InMemoryTransport(), settings=IMMEDIATE, feature_flags={}
    ).settings.throttled is False
