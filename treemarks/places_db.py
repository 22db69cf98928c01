from __future__ import annotations

import sqlite3
import time
from pathlib import Path
from typing import Dict, List, Optional, Tuple

from .model import ROLE_OTHER, ROLE_TOOLBAR, BookmarkNode

_ROOT_LABELS = {
    "toolbar": "Bookmarks Toolbar",
    "menu": "Bookmarks Menu",
    "unfiled": "Other Bookmarks",
    "mobile": "Mobile Bookmarks",
    "tags": "Tags",
}

_ROOT_GUID_TO_NAME = {
    "menu________": "menu",
    "toolbar_____": "toolbar",
    "tags________": "tags",
    "unfiled_____": "unfiled",
    "mobile______": "mobile",
}

# Tags are references to bookmarks living elsewhere, not part of the tree.
_FOREST_ROOTS = ("toolbar", "menu", "unfiled", "mobile")

_ROOT_ROLES = {
    "toolbar": ROLE_TOOLBAR,
    "unfiled": ROLE_OTHER,
}

TYPE_BOOKMARK = 1
TYPE_FOLDER = 2


class PlacesDB:
    def __init__(self, db_path: Path | str, *, readonly: bool = False, busy_timeout_ms: int = 5000):
        self.db_path = Path(db_path)
        self.readonly = readonly
        self.busy_timeout_ms = max(0, int(busy_timeout_ms))
        self.conn: sqlite3.Connection | None = None
        self._has_guid = False
        self.root_ids: Dict[str, int] = {}

    def __enter__(self) -> "PlacesDB":
        self.open()
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    def open(self) -> None:
        mode = "ro" if self.readonly else "rw"
        uri = f"file:{self.db_path.as_posix()}?mode={mode}"
        timeout_s = max(0.1, self.busy_timeout_ms / 1000.0) if self.busy_timeout_ms > 0 else 0.1
        self.conn = sqlite3.connect(uri, uri=True, timeout=timeout_s)
        self.conn.row_factory = sqlite3.Row
        if self.busy_timeout_ms > 0:
            self.conn.execute(f"PRAGMA busy_timeout = {self.busy_timeout_ms}")
        self._has_guid = self._has_column("moz_bookmarks", "guid")
        self.root_ids = self._discover_root_ids()

    def close(self) -> None:
        if self.conn is not None:
            self.conn.close()
            self.conn = None

    def get_root_folder_id(self, name: str) -> Optional[int]:
        return self.root_ids.get(name)

    def read_tree(self) -> List[BookmarkNode]:
        """Toolbar, menu, other and mobile roots with their full subtrees."""
        nodes = self._node_table()
        out: List[BookmarkNode] = []
        for name in _FOREST_ROOTS:
            rid = self.get_root_folder_id(name)
            node = nodes.get(rid) if rid is not None else None
            if node is None or not node.is_folder:
                continue
            node.title = _ROOT_LABELS[name]
            node.parent_id = None
            node.role = _ROOT_ROLES.get(name)
            out.append(node)
        return out

    def read_children(self, folder_id: int) -> List[BookmarkNode]:
        self._require_folder(folder_id)
        nodes = self._node_table()
        return list(nodes[folder_id].children or [])

    def move_item(self, item_id: int, new_parent_id: int, position: Optional[int] = None) -> int:
        """Reparent a bookmark or folder and return the id of its old parent.

        Sibling positions stay contiguous in both folders. `position=None`
        appends at the end of the new parent.
        """
        self._assert_writable()
        self._require_folder(new_parent_id)
        c = self._cursor()
        row = c.execute("SELECT type, parent, position FROM moz_bookmarks WHERE id = ?", (item_id,)).fetchone()
        if not row:
            raise ValueError(f"bookmark id not found: {item_id}")
        if int(row["type"] or 0) not in (TYPE_BOOKMARK, TYPE_FOLDER):
            raise ValueError(f"id is neither a link nor a folder: {item_id}")

        parent_map = self._parent_map()
        if item_id in self.root_ids.values() or parent_map.get(item_id, 0) == 0:
            raise ValueError("cannot move Firefox root folders")
        if parent_map.get(new_parent_id, 0) == 0:
            raise ValueError("cannot move items into the places root")
        if self._descends_from(new_parent_id, item_id, parent_map):
            raise ValueError("cannot move folder into itself/descendant")
        tags_root = self.root_ids.get("tags")
        if tags_root is not None and self._descends_from(new_parent_id, tags_root, parent_map):
            raise ValueError("cannot move items into the tags folder")

        old_parent = int(row["parent"] or 0)
        old_pos = int(row["position"] or 0)
        c.execute(
            "UPDATE moz_bookmarks SET position = position - 1 WHERE parent = ? AND position > ? AND id != ?",
            (old_parent, old_pos, item_id),
        )
        pos = self._resolve_position(new_parent_id, position, exclude_id=item_id)
        c.execute(
            "UPDATE moz_bookmarks SET position = position + 1 WHERE parent = ? AND position >= ? AND id != ?",
            (new_parent_id, pos, item_id),
        )
        c.execute(
            "UPDATE moz_bookmarks SET parent = ?, position = ?, lastModified = ? WHERE id = ?",
            (new_parent_id, pos, self._now_us(), item_id),
        )
        self._touch_folder(old_parent)
        self._touch_folder(new_parent_id)
        self.conn.commit()
        return old_parent

    def _node_table(self) -> Dict[int, BookmarkNode]:
        c = self._cursor()
        rows = c.execute(
            """
            SELECT b.id, b.type, b.parent, b.title, p.url, p.hidden
            FROM moz_bookmarks b
            LEFT JOIN moz_places p ON p.id = b.fk
            ORDER BY b.parent, b.position, b.id
            """
        ).fetchall()
        nodes: Dict[int, BookmarkNode] = {}
        order: List[Tuple[int, int]] = []
        for r in rows:
            bid = int(r["id"])
            parent = int(r["parent"] or 0)
            btype = int(r["type"] or 0)
            title = (r["title"] or "").strip()
            if btype == TYPE_FOLDER:
                nodes[bid] = BookmarkNode(id=str(bid), title=title, parent_id=str(parent) if parent else None, children=[])
            elif btype == TYPE_BOOKMARK:
                url = (r["url"] or "").strip()
                if not url or url.startswith("place:") or int(r["hidden"] or 0) != 0:
                    continue
                nodes[bid] = BookmarkNode(id=str(bid), title=title or url, url=url, parent_id=str(parent))
            else:
                # Separators carry nothing searchable or movable by drag.
                continue
            order.append((bid, parent))
        for bid, parent in order:
            owner = nodes.get(parent)
            if owner is not None and owner.children is not None:
                owner.children.append(nodes[bid])
        return nodes

    def _parent_map(self) -> Dict[int, int]:
        c = self._cursor()
        rows = c.execute("SELECT id, parent FROM moz_bookmarks").fetchall()
        return {int(r["id"]): int(r["parent"] or 0) for r in rows}

    def _descends_from(self, node_id: int, ancestor_id: int, parent_map: Dict[int, int]) -> bool:
        current = node_id
        seen = set()
        while current and current not in seen:
            if current == ancestor_id:
                return True
            seen.add(current)
            current = parent_map.get(current, 0)
        return False

    def _discover_root_ids(self) -> Dict[str, int]:
        c = self._cursor()
        out: Dict[str, int] = {}
        if self._has_table("moz_bookmarks_roots"):
            rows = c.execute("SELECT root_name, folder_id FROM moz_bookmarks_roots").fetchall()
            for r in rows:
                out[str(r["root_name"])] = int(r["folder_id"])
        if not out and self._has_guid:
            rows = c.execute(
                "SELECT id, guid FROM moz_bookmarks WHERE guid IN (?, ?, ?, ?, ?)",
                tuple(_ROOT_GUID_TO_NAME.keys()),
            ).fetchall()
            for r in rows:
                name = _ROOT_GUID_TO_NAME.get(str(r["guid"]))
                if name:
                    out[name] = int(r["id"])
        return out

    def _resolve_position(self, parent_id: int, position: Optional[int], *, exclude_id: int) -> int:
        c = self._cursor()
        row = c.execute(
            "SELECT COALESCE(MAX(position), -1) AS p FROM moz_bookmarks WHERE parent = ? AND id != ?",
            (parent_id, exclude_id),
        ).fetchone()
        end = int(row["p"]) + 1
        if position is None or position < 0:
            return end
        return min(int(position), end)

    def _touch_folder(self, folder_id: int) -> None:
        if not folder_id:
            return
        c = self._cursor()
        c.execute("UPDATE moz_bookmarks SET lastModified = ? WHERE id = ?", (self._now_us(), folder_id))

    def _require_folder(self, folder_id: int) -> None:
        c = self._cursor()
        row = c.execute("SELECT type FROM moz_bookmarks WHERE id = ?", (folder_id,)).fetchone()
        if not row:
            raise ValueError(f"folder id not found: {folder_id}")
        if int(row["type"] or 0) != TYPE_FOLDER:
            raise ValueError(f"id is not a folder: {folder_id}")

    def _assert_writable(self) -> None:
        if self.readonly:
            raise RuntimeError("database opened in readonly mode")

    def _has_table(self, name: str) -> bool:
        c = self._cursor()
        row = c.execute(
            "SELECT 1 FROM sqlite_master WHERE type='table' AND name=? LIMIT 1",
            (name,),
        ).fetchone()
        return row is not None

    def _has_column(self, table_name: str, column_name: str) -> bool:
        c = self._cursor()
        rows = c.execute(f"PRAGMA table_info({table_name})").fetchall()
        for r in rows:
            if str(r[1]) == column_name:
                return True
        return False

    def _cursor(self) -> sqlite3.Cursor:
        if self.conn is None:
            raise RuntimeError("database is not open")
        return self.conn.cursor()

    def _now_us(self) -> int:
        return int(time.time() * 1_000_000)


def resolve_places_path(profile_or_db_path: Path) -> Path:
    p = Path(profile_or_db_path)
    if p.is_file():
        return p
    db = p / "places.sqlite"
    if db.exists():
        return db
    raise FileNotFoundError(f"places.sqlite not found in {p}")
