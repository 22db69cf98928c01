import asyncio
import sqlite3
from pathlib import Path

import pytest

from treemarks.engine import BookmarkEngine
from treemarks.model import ROLE_OTHER, ROLE_TOOLBAR, ChangeEvent
from treemarks.places_db import PlacesDB, resolve_places_path
from treemarks.store import PlacesStore


def _positions(db_path: Path, parent: int):
    conn = sqlite3.connect(db_path)
    try:
        rows = conn.execute(
            "SELECT id, position FROM moz_bookmarks WHERE parent = ? ORDER BY position", (parent,)
        ).fetchall()
    finally:
        conn.close()
    return [tuple(r) for r in rows]


def test_read_tree_roots_labels_and_roles(tmp_path: Path, mk_places_db):
    db_path = tmp_path / "places.sqlite"
    mk_places_db(db_path)
    with PlacesDB(db_path, readonly=True) as db:
        roots = db.read_tree()
    assert [r.title for r in roots] == ["Bookmarks Toolbar", "Bookmarks Menu", "Other Bookmarks", "Mobile Bookmarks"]
    assert [r.id for r in roots] == ["3", "2", "5", "6"]
    assert roots[0].role == ROLE_TOOLBAR
    assert roots[2].role == ROLE_OTHER
    assert roots[1].role is None
    assert all(r.parent_id is None for r in roots)

    menu = roots[1]
    # place: queries and separators are not part of the tree.
    assert [c.title for c in menu.children] == ["Mozilla"]
    travel = roots[2].children[0]
    assert [c.id for c in travel.children] == ["22", "23"]
    assert travel.children[0].url == "https://www.sbb.ch/"


def test_read_children_and_negative_cases(tmp_path: Path, mk_places_db):
    db_path = tmp_path / "places.sqlite"
    mk_places_db(db_path)
    with PlacesDB(db_path, readonly=True) as db:
        kids = db.read_children(10)
        assert [k.title for k in kids] == ["Camera"]
        assert [k.title for k in kids[0].children] == ["Fstoppers Camera"]
        with pytest.raises(ValueError):
            db.read_children(999999)
        with pytest.raises(ValueError):
            db.read_children(20)
        with pytest.raises(RuntimeError):
            db.move_item(22, 11)


def test_move_item_keeps_positions_contiguous(tmp_path: Path, mk_places_db):
    db_path = tmp_path / "places.sqlite"
    mk_places_db(db_path)
    with PlacesDB(db_path, readonly=False) as db:
        old_parent = db.move_item(22, 11)
    assert old_parent == 12
    assert _positions(db_path, 12) == [(23, 0), (24, 1)]
    assert _positions(db_path, 11) == [(20, 0), (22, 1)]

    with PlacesDB(db_path, readonly=False) as db:
        db.move_item(23, 11, 0)
    assert _positions(db_path, 11) == [(23, 0), (20, 1), (22, 2)]
    assert _positions(db_path, 12) == [(24, 0)]


def test_move_item_within_same_folder(tmp_path: Path, mk_places_db):
    db_path = tmp_path / "places.sqlite"
    mk_places_db(db_path)
    with PlacesDB(db_path, readonly=False) as db:
        db.move_item(22, 12)
    assert _positions(db_path, 12) == [(23, 0), (24, 1), (22, 2)]


def test_move_item_negative_cases(tmp_path: Path, mk_places_db):
    db_path = tmp_path / "places.sqlite"
    mk_places_db(db_path)
    with PlacesDB(db_path, readonly=False) as db:
        with pytest.raises(ValueError):
            db.move_item(db.get_root_folder_id("menu"), db.get_root_folder_id("toolbar"))
        with pytest.raises(ValueError):
            db.move_item(10, 11)
        with pytest.raises(ValueError):
            db.move_item(10, 10)
        with pytest.raises(ValueError):
            db.move_item(22, 30)
        with pytest.raises(ValueError):
            db.move_item(22, 1)
        with pytest.raises(ValueError):
            db.move_item(999999, 11)
        with pytest.raises(ValueError):
            db.move_item(22, 20)
    assert _positions(db_path, 12) == [(22, 0), (23, 1), (24, 2)]


def test_root_guid_fallback_without_roots_table(tmp_path: Path, mk_places_db):
    db_path = tmp_path / "places.sqlite"
    mk_places_db(db_path, with_roots_table=False)
    with PlacesDB(db_path, readonly=True) as db:
        assert db.get_root_folder_id("toolbar") == 3
        assert db.get_root_folder_id("unfiled") == 5
        assert [r.title for r in db.read_tree()][0] == "Bookmarks Toolbar"


def test_resolve_places_path(tmp_path: Path, mk_places_db):
    profile = tmp_path / "profile"
    profile.mkdir()
    with pytest.raises(FileNotFoundError):
        resolve_places_path(profile)
    mk_places_db(profile / "places.sqlite")
    assert resolve_places_path(profile) == profile / "places.sqlite"
    assert resolve_places_path(profile / "places.sqlite") == profile / "places.sqlite"


def test_places_store_move_emits_event(tmp_path: Path, mk_places_db):
    db_path = tmp_path / "places.sqlite"
    mk_places_db(db_path)
    store = PlacesStore(tmp_path)
    events = []
    store.subscribe(events.append)

    async def run():
        await store.move_node("22", "11")
        return await store.get_children("11")

    kids = asyncio.run(run())
    assert [k.id for k in kids] == ["20", "22"]
    assert events == [ChangeEvent("moved", "22", parent_id="11", old_parent_id="12")]


def test_places_store_rejects_non_numeric_ids(tmp_path: Path, mk_places_db):
    db_path = tmp_path / "places.sqlite"
    mk_places_db(db_path)
    store = PlacesStore(db_path)
    with pytest.raises(ValueError):
        asyncio.run(store.get_children("toolbar"))


def test_engine_over_places_store(tmp_path: Path, mk_places_db):
    db_path = tmp_path / "places.sqlite"
    mk_places_db(db_path)

    async def run():
        async with BookmarkEngine(PlacesStore(db_path)) as engine:
            before = engine.search("rail")
            await engine.move_item("22", "11")
            after = engine.search("rail")
            return before, after, engine.tree

    before, after, tree = asyncio.run(run())
    assert [g.root_folder.id for g in before] == ["12"]
    assert [g.root_folder.id for g in after] == ["3"]
    assert [sg.folder_id for sg in after[0].subgroups] == ["11"]
    assert tree.node("22").parent_id == "11"
    assert _positions(db_path, 11) == [(20, 0), (22, 1)]
