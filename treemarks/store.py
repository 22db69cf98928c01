from __future__ import annotations

import asyncio
import copy
import sqlite3
from pathlib import Path
from typing import Callable, Dict, Iterable, List, Optional, Protocol, Sequence, TypeVar

from .log import get_logger
from .model import (
    EVENT_CHANGED,
    EVENT_CHILDREN_REORDERED,
    EVENT_CREATED,
    EVENT_MOVED,
    EVENT_REMOVED,
    BookmarkNode,
    ChangeEvent,
)
from .places_db import PlacesDB, resolve_places_path

log = get_logger(__name__)

T = TypeVar("T")
Listener = Callable[[ChangeEvent], None]


class BookmarkStore(Protocol):
    async def list_roots(self) -> List[BookmarkNode]:
        """Top-level roots with their full subtrees."""
        ...

    async def get_children(self, folder_id: str) -> List[BookmarkNode]:
        """Children of one folder, each with its full subtree."""
        ...

    async def move_node(self, node_id: str, new_parent_id: str, index: Optional[int] = None) -> None:
        ...

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        ...


class ChangeFeed:
    def __init__(self) -> None:
        self._listeners: List[Listener] = []

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        self._listeners.append(listener)

        def _unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return _unsubscribe

    def emit(self, event: ChangeEvent) -> None:
        for listener in list(self._listeners):
            try:
                listener(event)
            except Exception as e:
                log.warning("Change listener failed for %s %s: %s", event.kind, event.node_id, e)


class MemoryStore:
    """Bookmark store kept entirely in memory.

    Serves as the store behind trees loaded from export files and as the
    store double in tests. Every mutation emits the matching change event.
    """

    def __init__(self, roots: Iterable[BookmarkNode] = ()):
        self._roots: List[BookmarkNode] = [copy.deepcopy(r) for r in roots]
        self._by_id: Dict[str, BookmarkNode] = {}
        self._next_id = 1
        self.feed = ChangeFeed()
        self._reindex()

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        return self.feed.subscribe(listener)

    async def list_roots(self) -> List[BookmarkNode]:
        return copy.deepcopy(self._roots)

    async def get_children(self, folder_id: str) -> List[BookmarkNode]:
        folder = self._require_folder(folder_id)
        return copy.deepcopy(folder.children or [])

    async def move_node(self, node_id: str, new_parent_id: str, index: Optional[int] = None) -> None:
        node = self._require(node_id)
        target = self._require_folder(new_parent_id)
        if node.parent_id is None:
            raise ValueError(f"cannot move root folder: {node_id}")
        if self._descends_from(target.id, node.id):
            raise ValueError("cannot move folder into itself/descendant")
        old_parent = self._by_id[node.parent_id]
        self._unlink(old_parent, node.id)
        self._insert(target, node, index)
        self.feed.emit(ChangeEvent(EVENT_MOVED, node.id, parent_id=target.id, old_parent_id=old_parent.id))

    async def create(
        self,
        parent_id: str,
        title: str,
        url: Optional[str] = None,
        index: Optional[int] = None,
    ) -> BookmarkNode:
        parent = self._require_folder(parent_id)
        node = BookmarkNode(
            id=self._new_id(),
            title=title,
            url=url,
            parent_id=parent.id,
            children=None if url is not None else [],
        )
        self._insert(parent, node, index)
        self._by_id[node.id] = node
        self.feed.emit(ChangeEvent(EVENT_CREATED, node.id, parent_id=parent.id))
        return copy.deepcopy(node)

    async def update(self, node_id: str, *, title: Optional[str] = None, url: Optional[str] = None) -> None:
        node = self._require(node_id)
        if url is not None and node.is_folder:
            raise ValueError(f"folders have no URL: {node_id}")
        if title is not None:
            node.title = title
        if url is not None:
            node.url = url
        self.feed.emit(ChangeEvent(EVENT_CHANGED, node.id, parent_id=node.parent_id))

    async def remove(self, node_id: str) -> None:
        node = self._require(node_id)
        if node.parent_id is None:
            raise ValueError(f"cannot remove root folder: {node_id}")
        parent = self._by_id[node.parent_id]
        self._unlink(parent, node.id)
        for gone in _walk(node):
            self._by_id.pop(gone.id, None)
        self.feed.emit(ChangeEvent(EVENT_REMOVED, node.id, parent_id=parent.id))

    async def reorder(self, folder_id: str, child_ids: Sequence[str]) -> None:
        folder = self._require_folder(folder_id)
        current = {c.id: c for c in folder.children or []}
        if sorted(current) != sorted(str(c) for c in child_ids):
            raise ValueError(f"reorder of {folder_id} must list exactly its current children")
        folder.children = [current[str(c)] for c in child_ids]
        self.feed.emit(ChangeEvent(EVENT_CHILDREN_REORDERED, folder.id))

    def _reindex(self) -> None:
        self._by_id.clear()
        for r in self._roots:
            r.parent_id = None
            for n in _walk(r):
                self._by_id[n.id] = n
                for c in n.children or []:
                    c.parent_id = n.id
        numeric = [int(k) for k in self._by_id if k.isdigit()]
        self._next_id = max(numeric, default=0) + 1

    def _new_id(self) -> str:
        while str(self._next_id) in self._by_id:
            self._next_id += 1
        out = str(self._next_id)
        self._next_id += 1
        return out

    def _require(self, node_id: str) -> BookmarkNode:
        node = self._by_id.get(str(node_id))
        if node is None:
            raise ValueError(f"bookmark id not found: {node_id}")
        return node

    def _require_folder(self, folder_id: str) -> BookmarkNode:
        node = self._require(folder_id)
        if not node.is_folder:
            raise ValueError(f"id is not a folder: {folder_id}")
        return node

    def _descends_from(self, node_id: str, ancestor_id: str) -> bool:
        current: Optional[str] = node_id
        seen = set()
        while current is not None and current not in seen:
            if current == ancestor_id:
                return True
            seen.add(current)
            current = self._by_id[current].parent_id
        return False

    def _unlink(self, parent: BookmarkNode, node_id: str) -> None:
        parent.children = [c for c in parent.children or [] if c.id != node_id]

    def _insert(self, parent: BookmarkNode, node: BookmarkNode, index: Optional[int]) -> None:
        kids = parent.children if parent.children is not None else []
        pos = len(kids) if index is None or index < 0 else min(index, len(kids))
        kids.insert(pos, node)
        parent.children = kids
        node.parent_id = parent.id


class PlacesStore:
    """Store backed by a Firefox profile's places.sqlite.

    Each call opens its own connection in a worker thread. Only writes made
    through this store are announced on the change feed.
    """

    def __init__(self, profile_or_db_path: Path | str, *, busy_timeout_ms: int = 5000):
        self.db_path = resolve_places_path(Path(profile_or_db_path))
        self.busy_timeout_ms = busy_timeout_ms
        self.feed = ChangeFeed()

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        return self.feed.subscribe(listener)

    async def list_roots(self) -> List[BookmarkNode]:
        return await asyncio.to_thread(self._run, True, lambda db: db.read_tree())

    async def get_children(self, folder_id: str) -> List[BookmarkNode]:
        fid = _int_id(folder_id)
        return await asyncio.to_thread(self._run, True, lambda db: db.read_children(fid))

    async def move_node(self, node_id: str, new_parent_id: str, index: Optional[int] = None) -> None:
        nid = _int_id(node_id)
        pid = _int_id(new_parent_id)
        old_parent = await asyncio.to_thread(self._run, False, lambda db: db.move_item(nid, pid, index))
        log.info("Moved bookmark %s from folder %s to %s in %s", nid, old_parent, pid, self.db_path)
        self.feed.emit(ChangeEvent(EVENT_MOVED, str(nid), parent_id=str(pid), old_parent_id=str(old_parent)))

    def _run(self, readonly: bool, fn: Callable[[PlacesDB], T]) -> T:
        try:
            with PlacesDB(self.db_path, readonly=readonly, busy_timeout_ms=self.busy_timeout_ms) as db:
                return fn(db)
        except sqlite3.OperationalError as e:
            msg = str(e).strip()
            if "locked" in msg.lower() or "busy" in msg.lower():
                raise RuntimeError(
                    f"Firefox database is locked ({self.db_path}). Close Firefox and rerun."
                ) from e
            raise


def _int_id(value: str) -> int:
    try:
        return int(str(value).strip())
    except ValueError:
        raise ValueError(f"places bookmark ids are integers, got {value!r}") from None


def _walk(root: BookmarkNode) -> Iterable[BookmarkNode]:
    stack = [root]
    while stack:
        n = stack.pop()
        yield n
        stack.extend(reversed(n.children or []))
