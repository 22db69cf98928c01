import asyncio
import logging

import pytest

from treemarks.config import Settings
from treemarks.engine import BookmarkEngine
from treemarks.errors import InvalidMove, MoveInProgress


async def _settle(rounds=10):
    for _ in range(rounds):
        await asyncio.sleep(0)


def test_start_loads_snapshot_and_search_groups(store):
    async def run():
        async with BookmarkEngine(store) as engine:
            return engine.tree, engine.search("python"), engine.find("python")

    tree, groups, results = asyncio.run(run())
    assert len(tree) == 15
    assert [g.root_folder.id for g in groups] == ["1", "20", "24"]
    assert [r.node.id for r in results] == ["10", "22", "23", "25", "30"]


def test_folder_view_through_engine(store):
    async def run():
        async with BookmarkEngine(store) as engine:
            return engine.folder_view("2")

    view = asyncio.run(run())
    assert [n.id for n in view.folders] == ["20", "24"]
    assert [n.id for n in view.links] == ["23"]


def test_move_item_resolves_after_refresh(store):
    async def run():
        async with BookmarkEngine(store) as engine:
            await engine.move_item("22", "24")
            # Reads right after the await already see the new parent.
            groups = engine.search("python snakes")
            return engine.tree, groups

    tree, groups = asyncio.run(run())
    assert tree.node("22").parent_id == "24"
    assert [g.root_folder.id for g in groups] == ["24"]


def test_move_item_rejects_invalid_moves(store):
    async def run():
        async with BookmarkEngine(store) as engine:
            with pytest.raises(InvalidMove):
                await engine.move_item("11", "13")

    asyncio.run(run())
    assert store.move_calls == []


def test_reject_policy_from_settings(store):
    async def run():
        async with BookmarkEngine(store, Settings(move_conflict="reject")) as engine:
            store.gate = asyncio.Event()
            first = asyncio.create_task(engine.move_item("21", "24"))
            await _settle()
            with pytest.raises(MoveInProgress):
                await engine.move_item("21", "11")
            store.gate.set()
            await first

    asyncio.run(run())


def test_external_changes_refresh_snapshot(store):
    async def run():
        async with BookmarkEngine(store) as engine:
            created = await store.create("20", "Python pasta", "https://example.com/python-pasta")
            await _settle()
            assert [r.node.id for r in engine.find("python pasta")] == [created.id]

            await store.update("21", title="Fresh pasta")
            await _settle()
            assert engine.tree.node("21").title == "Fresh pasta"

            await store.reorder("20", [created.id, "22", "21"])
            await _settle()
            assert engine.tree.node("20").child_ids == (created.id, "22", "21")

            await store.remove("22")
            await _settle()
            assert "22" not in engine.tree
            return created.id

    new_id = asyncio.run(run())
    assert new_id not in ("1", "2", "3")


def test_change_to_a_root_triggers_full_reload(store):
    async def run():
        async with BookmarkEngine(store) as engine:
            generation = engine.snapshot.generation
            await store.update("1", title="Toolbar")
            await _settle()
            assert engine.snapshot.generation == generation + 1
            return engine.tree

    tree = asyncio.run(run())
    assert tree.node("1").title == "Toolbar"
    # The root keeps its role, so it is still the toolbar root.
    assert tree.toolbar_root_id == "1"


def test_event_refresh_failure_is_logged_and_keeps_stale_data(store, caplog):
    async def run():
        async with BookmarkEngine(store) as engine:
            before = engine.tree
            store.fail_reads = True
            await store.create("20", "Lost", "https://example.com/lost")
            await _settle()
            assert engine.tree is before

    with caplog.at_level(logging.WARNING):
        asyncio.run(run())
    assert any("keeping stale data" in r.getMessage() for r in caplog.records)


def test_close_stops_listening(store):
    async def run():
        engine = BookmarkEngine(store)
        await engine.start()
        await engine.close()
        await store.create("20", "After close", "https://example.com/after")
        await _settle()
        return engine.tree

    tree = asyncio.run(run())
    assert all(n.title != "After close" for n in tree.iter_preorder())


def test_tree_handed_out_is_not_mutated_by_later_refresh(store):
    async def run():
        async with BookmarkEngine(store) as engine:
            old = engine.tree
            await engine.move_item("21", "24")
            return old, engine.tree

    old, new = asyncio.run(run())
    assert old.node("21").parent_id == "20"
    assert new.node("21").parent_id == "24"
