import sqlite3
import sys
from pathlib import Path
from typing import List

import pytest

# Allow `import treemarks` without installing the package.
ROOT = Path(__file__).resolve().parents[1]
sys.path.insert(0, str(ROOT))

from treemarks.model import ROLE_OTHER, ROLE_TOOLBAR, BookmarkNode  # noqa: E402
from treemarks.snapshot import Tree  # noqa: E402
from treemarks.store import MemoryStore  # noqa: E402


class RecordingStore(MemoryStore):
    """MemoryStore that records move calls and can be told to fail or hold them."""

    def __init__(self, roots=()):
        super().__init__(roots)
        self.move_calls: List[tuple] = []
        self.read_calls: List[str] = []
        self.fail_moves = False
        self.fail_reads = False
        self.gate = None

    async def move_node(self, node_id, new_parent_id, index=None):
        self.move_calls.append((node_id, new_parent_id, index))
        if self.gate is not None:
            await self.gate.wait()
        if self.fail_moves:
            raise RuntimeError("disk full")
        await super().move_node(node_id, new_parent_id, index)

    async def get_children(self, folder_id):
        self.read_calls.append(folder_id)
        if self.fail_reads:
            raise RuntimeError("store unavailable")
        return await super().get_children(folder_id)


def _folder(nid, title, children=(), role=None):
    return BookmarkNode(id=nid, title=title, children=list(children), role=role)


def _link(nid, title, url):
    return BookmarkNode(id=nid, title=title, url=url)


def make_roots() -> List[BookmarkNode]:
    return [
        _folder(
            "1",
            "Bookmarks bar",
            [
                _link("10", "Python docs", "https://docs.python.org/3/"),
                _folder(
                    "11",
                    "Dev",
                    [
                        _link("12", "PyPI", "https://pypi.org/"),
                        _folder("13", "Rust", [_link("14", "Rust book", "https://doc.rust-lang.org/book/")]),
                    ],
                ),
            ],
            role=ROLE_TOOLBAR,
        ),
        _folder(
            "2",
            "Other bookmarks",
            [
                _folder(
                    "20",
                    "Recipes",
                    [
                        _link("21", "Pasta", "https://example.com/pasta"),
                        _link("22", "Python snakes", "https://zoo.example/reptiles"),
                    ],
                ),
                _link("23", "Loose python link", "https://loose.example/"),
                _folder("24", "Reading", [_link("25", "Long read", "https://blog.example/python-tips")]),
            ],
            role=ROLE_OTHER,
        ),
        _folder("3", "Mobile bookmarks", [_link("30", "Mobile python", "https://m.example/")]),
    ]


@pytest.fixture
def sample_roots() -> List[BookmarkNode]:
    return make_roots()


@pytest.fixture
def tree(sample_roots) -> Tree:
    return Tree.build(sample_roots)


@pytest.fixture
def store(sample_roots) -> RecordingStore:
    return RecordingStore(sample_roots)


@pytest.fixture
def recording_store():
    return RecordingStore


def _mk_places_db(path: Path, *, with_roots_table: bool = True) -> None:
    conn = sqlite3.connect(path)
    try:
        conn.executescript(
            """
            CREATE TABLE moz_places (
              id INTEGER PRIMARY KEY,
              url TEXT,
              title TEXT,
              hidden INTEGER DEFAULT 0,
              guid TEXT,
              foreign_count INTEGER DEFAULT 0
            );
            CREATE TABLE moz_bookmarks (
              id INTEGER PRIMARY KEY,
              type INTEGER,
              fk INTEGER DEFAULT NULL,
              parent INTEGER,
              position INTEGER,
              title TEXT,
              keyword_id INTEGER,
              folder_type TEXT,
              dateAdded INTEGER,
              lastModified INTEGER,
              guid TEXT,
              syncStatus INTEGER NOT NULL DEFAULT 0,
              syncChangeCounter INTEGER NOT NULL DEFAULT 1
            );
            """
        )
        if with_roots_table:
            conn.execute(
                "CREATE TABLE moz_bookmarks_roots (root_name TEXT PRIMARY KEY, folder_id INTEGER)"
            )
            conn.executemany(
                "INSERT INTO moz_bookmarks_roots(root_name, folder_id) VALUES(?, ?)",
                [
                    ("toolbar", 3),
                    ("menu", 2),
                    ("tags", 4),
                    ("unfiled", 5),
                    ("mobile", 6),
                ],
            )

        conn.executemany(
            "INSERT INTO moz_bookmarks(id,type,fk,parent,position,title,dateAdded,lastModified,guid) VALUES(?,?,?,?,?,?,?,?,?)",
            [
                (1, 2, None, 0, 0, "root", 0, 0, "root________"),
                (2, 2, None, 1, 0, "menu", 0, 0, "menu________"),
                (3, 2, None, 1, 1, "toolbar", 0, 0, "toolbar_____"),
                (4, 2, None, 1, 2, "tags", 0, 0, "tags________"),
                (5, 2, None, 1, 3, "unfiled", 0, 0, "unfiled_____"),
                (6, 2, None, 1, 4, "mobile", 0, 0, "mobile______"),
                (10, 2, None, 3, 0, "Shopping", 0, 0, "folder-shop"),
                (11, 2, None, 10, 0, "Camera", 0, 0, "folder-cam"),
                (12, 2, None, 5, 0, "Travel", 0, 0, "folder-travel"),
                (30, 2, None, 4, 0, "video", 0, 0, "tag-video"),
            ],
        )
        conn.executemany(
            "INSERT INTO moz_places(id,url,title,hidden,guid,foreign_count) VALUES(?,?,?,?,?,?)",
            [
                (100, "https://fstoppers.com/camera", "fstoppers", 0, "p100", 2),
                (101, "https://www.mozilla.org/", "mozilla", 0, "p101", 1),
                (102, "https://www.sbb.ch/", "sbb", 0, "p102", 1),
                (103, "https://hotels.example/", "hotels", 0, "p103", 1),
                (104, "place:sort=8&maxResults=10", "recent", 0, "p104", 1),
            ],
        )
        conn.executemany(
            "INSERT INTO moz_bookmarks(id,type,fk,parent,position,title,dateAdded,lastModified,guid) VALUES(?,?,?,?,?,?,?,?,?)",
            [
                (20, 1, 100, 11, 0, "Fstoppers Camera", 0, 0, "l20"),
                (21, 1, 101, 2, 0, "Mozilla", 0, 0, "l21"),
                (22, 1, 102, 12, 0, "Rail tickets", 0, 0, "l22"),
                (23, 1, 103, 12, 1, "Hotels", 0, 0, "l23"),
                (24, 3, None, 12, 2, "", 0, 0, "sep24"),
                (25, 1, 104, 2, 1, "Recent tags", 0, 0, "l25"),
                (31, 1, 100, 30, 0, "Fstoppers Camera [tag]", 0, 0, "l31"),
            ],
        )
        conn.commit()
    finally:
        conn.close()


@pytest.fixture
def mk_places_db():
    return _mk_places_db
