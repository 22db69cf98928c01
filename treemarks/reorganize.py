from __future__ import annotations

import asyncio
from typing import Dict, Optional

from .errors import InvalidMove, MoveInProgress, StoreWriteFailure
from .log import get_logger
from .model import Node
from .refresh import SnapshotRefresher
from .snapshot import Tree, TreeSnapshot
from .store import BookmarkStore

log = get_logger(__name__)


class ReorganizeService:
    """Moves nodes through the store and refreshes the affected folders.

    Nothing is changed in memory before the store confirms the write. Moves
    of the same node are serialized: with `conflict="queue"` a second request
    waits its turn and is validated against the tree as it is then; with
    `conflict="reject"` it fails with MoveInProgress.

    A request still waiting for its turn can be cancelled. Once the store
    call has been issued, the write and the refresh run to completion even
    if the caller goes away.
    """

    def __init__(self, store: BookmarkStore, refresher: SnapshotRefresher, *, conflict: str = "queue"):
        self.store = store
        self.refresher = refresher
        self.conflict = conflict
        self._locks: Dict[str, asyncio.Lock] = {}
        self._pending: Dict[str, int] = {}

    @property
    def snapshot(self) -> TreeSnapshot:
        return self.refresher.snapshot

    def in_progress(self, node_id: str) -> bool:
        return str(node_id) in self._pending

    def validate(self, tree: Tree, node_id: str, new_parent_id: str) -> Node:
        node = tree.get(node_id)
        if node is None:
            raise InvalidMove(f"node not found: {node_id}")
        if node.parent_id is None:
            raise InvalidMove(f"cannot move root folder: {node_id}")
        target = tree.get(new_parent_id)
        if target is None:
            raise InvalidMove(f"target folder not found: {new_parent_id}")
        if not target.is_folder:
            raise InvalidMove(f"target is not a folder: {new_parent_id}")
        if target.id == node.id:
            raise InvalidMove(f"cannot move {node_id} into itself")
        if tree.descends_from(target.id, node.id):
            raise InvalidMove(f"cannot move folder {node_id} into its own descendant {new_parent_id}")
        return node

    async def move(self, node_id: str, new_parent_id: str, *, index: Optional[int] = None) -> Tree:
        node_id = str(node_id)
        new_parent_id = str(new_parent_id)
        if self.conflict == "reject" and node_id in self._pending:
            raise MoveInProgress(f"node {node_id} is already being moved")

        lock = self._locks.setdefault(node_id, asyncio.Lock())
        self._pending[node_id] = self._pending.get(node_id, 0) + 1
        try:
            await lock.acquire()
        except BaseException:
            self._finish(node_id)
            raise
        try:
            node = self.validate(self.snapshot.tree, node_id, new_parent_id)
        except BaseException:
            lock.release()
            self._finish(node_id)
            raise

        commit = asyncio.ensure_future(self._commit(lock, node, new_parent_id, index))
        commit.add_done_callback(_mark_retrieved)
        return await asyncio.shield(commit)

    async def _commit(self, lock: asyncio.Lock, node: Node, new_parent_id: str, index: Optional[int]) -> Tree:
        try:
            log.info(
                "Moving %s '%s' (%s) from %s to %s",
                "folder" if node.is_folder else "bookmark",
                node.title,
                node.id,
                node.parent_id,
                new_parent_id,
            )
            try:
                await self.store.move_node(node.id, new_parent_id, index)
            except Exception as e:
                raise StoreWriteFailure(f"store rejected move of {node.id} to {new_parent_id}: {e}") from e
            return await self.refresher.refresh_folders([node.parent_id, new_parent_id])
        finally:
            lock.release()
            self._finish(node.id)

    def _finish(self, node_id: str) -> None:
        left = self._pending.get(node_id, 0) - 1
        if left > 0:
            self._pending[node_id] = left
            return
        self._pending.pop(node_id, None)
        self._locks.pop(node_id, None)


def _mark_retrieved(fut: "asyncio.Future[Tree]") -> None:
    # The caller may have been cancelled while the commit kept running.
    if not fut.cancelled() and fut.exception() is not None:
        log.debug("Move finished with error: %s", fut.exception())
