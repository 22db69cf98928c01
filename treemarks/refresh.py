from __future__ import annotations

import asyncio
from typing import Iterable, List, Optional, Tuple

from .errors import StoreReadFailure, StructuralCorruption
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
from .snapshot import Tree, TreeSnapshot
from .store import BookmarkStore

log = get_logger(__name__)


class SnapshotRefresher:
    """Reads from the store and installs the result into the snapshot.

    Requests are served strictly in the order they arrive (asyncio locks are
    FIFO), so when two refreshes touch the same folder the later one wins.
    A failed read leaves the installed snapshot untouched.
    """

    def __init__(self, store: BookmarkStore, snapshot: TreeSnapshot):
        self.store = store
        self.snapshot = snapshot
        self._lock = asyncio.Lock()

    async def reload(self) -> Tree:
        async with self._lock:
            return await self._reload_locked()

    async def _reload_locked(self) -> Tree:
        try:
            roots = await self.store.list_roots()
        except Exception as e:
            raise StoreReadFailure(f"failed to list bookmark roots: {e}") from e
        return self.snapshot.load(roots)

    async def refresh_folders(self, folder_ids: Iterable[Optional[str]]) -> Tree:
        ids = list(dict.fromkeys(str(f) for f in folder_ids if f is not None))
        async with self._lock:
            fetched: List[Tuple[str, List[BookmarkNode]]] = []
            for fid in ids:
                try:
                    kids = await self.store.get_children(fid)
                except Exception as e:
                    raise StoreReadFailure(f"failed to read children of folder {fid}: {e}") from e
                fetched.append((fid, kids))
            try:
                return self.snapshot.refresh_folders(fetched)
            except StructuralCorruption as e:
                # The installed tree drifted from the store (changes made outside
                # this process); the folders alone cannot be spliced in.
                log.warning("Folder refresh does not fit the installed tree, reloading everything: %s", e)
                return await self._reload_locked()

    async def apply_event(self, event: ChangeEvent) -> Tree:
        folders = self._folders_for(event, self.snapshot.tree)
        if folders is None:
            log.info("Change '%s' on %s is outside the known tree; reloading.", event.kind, event.node_id)
            return await self.reload()
        log.debug("Change '%s' on %s refreshes folder(s) %s", event.kind, event.node_id, ", ".join(folders))
        return await self.refresh_folders(folders)

    def _folders_for(self, event: ChangeEvent, tree: Tree) -> Optional[List[str]]:
        if event.kind == EVENT_CHILDREN_REORDERED:
            n = tree.get(event.node_id)
            return [n.id] if n is not None and n.is_folder else None
        if event.kind in (EVENT_CREATED, EVENT_REMOVED):
            return [event.parent_id] if event.parent_id in tree else None
        if event.kind == EVENT_CHANGED:
            n = tree.get(event.node_id)
            if n is None or n.parent_id is None:
                return None
            return [n.parent_id]
        if event.kind == EVENT_MOVED:
            wanted = [event.old_parent_id, event.parent_id]
            if any(f is None or f not in tree for f in wanted):
                return None
            return [str(f) for f in wanted]
        return None
