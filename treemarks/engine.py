from __future__ import annotations

import asyncio
from typing import Callable, List, Optional, Set

from .config import Settings
from .errors import StoreReadFailure
from .grouping import group
from .log import get_logger
from .model import ChangeEvent, FolderView, Group, SearchResult
from .refresh import SnapshotRefresher
from .reorganize import ReorganizeService
from .search import search
from .snapshot import Tree, TreeSnapshot
from .store import BookmarkStore

log = get_logger(__name__)


class BookmarkEngine:
    """Search, grouping and reorganization over one bookmark store.

    Usage:
        async with BookmarkEngine(store, settings) as engine:
            groups = engine.search("python")
            await engine.move_item(node_id, folder_id)

    Reads (`search`, `find`, `tree`, `folder_view`) are synchronous and see
    whatever snapshot is installed at the time of the call.
    """

    def __init__(self, store: BookmarkStore, settings: Optional[Settings] = None):
        self.settings = settings or Settings()
        self.store = store
        self.snapshot = TreeSnapshot(self.settings.root_markers())
        self.refresher = SnapshotRefresher(store, self.snapshot)
        self.reorganizer = ReorganizeService(store, self.refresher, conflict=self.settings.move_conflict)
        self._unsubscribe: Optional[Callable[[], None]] = None
        self._event_tasks: Set["asyncio.Task[Tree]"] = set()

    async def __aenter__(self) -> "BookmarkEngine":
        await self.start()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()

    async def start(self) -> Tree:
        tree = await self.refresher.reload()
        if self._unsubscribe is None:
            self._unsubscribe = self.store.subscribe(self._on_change)
        return tree

    async def close(self) -> None:
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None
        if self._event_tasks:
            await asyncio.gather(*list(self._event_tasks), return_exceptions=True)

    @property
    def tree(self) -> Tree:
        return self.snapshot.tree

    def find(self, query: str) -> List[SearchResult]:
        return search(self.snapshot.tree, query)

    def search(self, query: str) -> List[Group]:
        tree = self.snapshot.tree
        results = search(tree, query)
        groups = group(tree, results)
        log.debug("Query %r: %d match(es) in %d group(s).", query, len(results), len(groups))
        return groups

    def folder_view(self, folder_id: str) -> FolderView:
        return self.snapshot.tree.folder_view(folder_id)

    async def move_item(self, node_id: str, new_parent_id: str, index: Optional[int] = None) -> None:
        await self.reorganizer.move(node_id, new_parent_id, index=index)

    def _on_change(self, event: ChangeEvent) -> None:
        task = asyncio.get_running_loop().create_task(self.refresher.apply_event(event))
        self._event_tasks.add(task)
        task.add_done_callback(self._event_done)

    def _event_done(self, task: "asyncio.Task[Tree]") -> None:
        self._event_tasks.discard(task)
        if task.cancelled():
            return
        e = task.exception()
        if isinstance(e, StoreReadFailure):
            log.warning("Could not refresh after a bookmark change, keeping stale data: %s", e)
        elif e is not None:
            log.warning("Bookmark change handling failed: %s", e)
