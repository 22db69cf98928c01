from __future__ import annotations

from dataclasses import replace
from functools import cached_property
from types import MappingProxyType
from typing import Dict, FrozenSet, Iterable, Iterator, List, Mapping, Optional, Sequence, Tuple

from .errors import StructuralCorruption
from .log import get_logger
from .model import ROLE_OTHER, ROLE_TOOLBAR, BookmarkNode, FolderView, Node, RootMarkers

log = get_logger(__name__)


class Tree:
    """Read-only bookmark forest.

    Nodes live in a flat table keyed by id; parent and child links are ids.
    Refreshing a folder builds a new Tree, so a Tree handed to a reader never
    changes underneath it.
    """

    def __init__(self, root_ids: Sequence[str], nodes: Dict[str, Node], markers: Optional[RootMarkers] = None):
        self._root_ids = tuple(root_ids)
        self._nodes = nodes
        self.markers = markers or RootMarkers()
        self.by_id: Mapping[str, Node] = MappingProxyType(nodes)

    @classmethod
    def build(cls, roots: Iterable[BookmarkNode], markers: Optional[RootMarkers] = None) -> "Tree":
        top = list(roots)
        nodes: Dict[str, Node] = {}
        _flatten(top, None, nodes, strict=True)
        for r in top:
            declared = None if r.parent_id is None else str(r.parent_id)
            if declared is not None and declared in nodes:
                raise StructuralCorruption(f"root {r.id} declares parent {declared} inside the same forest")
        return cls([str(r.id) for r in top], nodes, markers)

    def __len__(self) -> int:
        return len(self._nodes)

    def __contains__(self, node_id: object) -> bool:
        return node_id in self._nodes

    @property
    def root_ids(self) -> tuple:
        return self._root_ids

    def get(self, node_id: Optional[str]) -> Optional[Node]:
        if node_id is None:
            return None
        return self._nodes.get(node_id)

    def node(self, node_id: str) -> Node:
        n = self._nodes.get(node_id)
        if n is None:
            raise KeyError(f"unknown node id: {node_id}")
        return n

    def parent(self, node: Node) -> Optional[Node]:
        return self.get(node.parent_id)

    def children(self, node_id: str) -> List[Node]:
        return [self._nodes[c] for c in self.node(node_id).child_ids]

    def iter_preorder(self) -> Iterator[Node]:
        """Depth-first pre-order over every root, children in stored order."""
        stack = list(reversed(self._root_ids))
        while stack:
            n = self._nodes[stack.pop()]
            yield n
            stack.extend(reversed(n.child_ids))

    def iter_subtree(self, node_id: str, *, include_self: bool = True) -> Iterator[Node]:
        start = self.node(node_id)
        stack = [start.id] if include_self else list(reversed(start.child_ids))
        while stack:
            n = self._nodes[stack.pop()]
            yield n
            stack.extend(reversed(n.child_ids))

    def ancestor_ids(self, node_id: str) -> List[str]:
        """Parent first, forest root last."""
        out: List[str] = []
        current = self.node(node_id).parent_id
        seen = {node_id}
        while current is not None and current not in seen and current in self._nodes:
            seen.add(current)
            out.append(current)
            current = self._nodes[current].parent_id
        return out

    def descends_from(self, node_id: str, ancestor_id: str) -> bool:
        # A node counts as descending from itself.
        current: Optional[str] = node_id
        seen = set()
        while current is not None and current not in seen:
            if current == ancestor_id:
                return True
            seen.add(current)
            n = self._nodes.get(current)
            current = n.parent_id if n is not None else None
        return False

    def root_of(self, node_id: str) -> Node:
        chain = self.ancestor_ids(node_id)
        return self._nodes[chain[-1]] if chain else self.node(node_id)

    @cached_property
    def toolbar_root_id(self) -> Optional[str]:
        return self._find_root(ROLE_TOOLBAR, self.markers.is_toolbar_title)

    @cached_property
    def other_root_id(self) -> Optional[str]:
        return self._find_root(ROLE_OTHER, self.markers.is_other_title)

    @cached_property
    def primary_root_ids(self) -> FrozenSet[str]:
        from .ancestors import find_primary_roots

        return find_primary_roots(self)

    def folder_view(self, folder_id: str) -> FolderView:
        folder = self.node(folder_id)
        if not folder.is_folder:
            raise ValueError(f"id is not a folder: {folder_id}")
        kids = self.children(folder_id)
        return FolderView(
            folder=folder,
            folders=[c for c in kids if c.is_folder],
            links=[c for c in kids if c.is_bookmark],
        )

    def with_children(self, folder_id: str, children: Sequence[BookmarkNode]) -> "Tree":
        """Return a new Tree where `folder_id` holds exactly `children`.

        The folder's old descendants are dropped and every incoming node is
        re-linked under its new container. A node that still sits somewhere
        else in this tree is detached from there first: the incoming data is
        newer.
        """
        folder = self.node(folder_id)
        if not folder.is_folder:
            raise ValueError(f"id is not a folder: {folder_id}")

        incoming: Dict[str, Node] = {}
        _flatten(list(children), folder_id, incoming, strict=False)
        guarded = set(self.ancestor_ids(folder_id))
        guarded.add(folder_id)
        for nid in incoming:
            if nid in guarded:
                raise StructuralCorruption(f"node {nid} cannot be placed inside its own subtree ({folder_id})")

        nodes = dict(self._nodes)
        root_ids = list(self._root_ids)
        for old in self.iter_subtree(folder_id, include_self=False):
            del nodes[old.id]
        for nid in incoming:
            if nid in nodes:
                log.debug("Detaching stale copy of %s from %s", nid, nodes[nid].parent_id)
                _detach(nodes, root_ids, nid)
        nodes.update(incoming)
        nodes[folder_id] = replace(folder, child_ids=tuple(str(c.id) for c in children))
        return Tree(root_ids, nodes, self.markers)

    def _find_root(self, role: str, title_matches) -> Optional[str]:
        for rid in self._root_ids:
            if self._nodes[rid].role == role:
                return rid
        for rid in self._root_ids:
            n = self._nodes[rid]
            if n.role is None and n.is_folder and title_matches(n.title):
                return rid
        return None


class TreeSnapshot:
    """Holds the currently installed Tree."""

    def __init__(self, markers: Optional[RootMarkers] = None):
        self.markers = markers or RootMarkers()
        self._tree = Tree((), {}, self.markers)
        self.generation = 0

    @property
    def tree(self) -> Tree:
        return self._tree

    def load(self, roots: Iterable[BookmarkNode]) -> Tree:
        tree = Tree.build(roots, self.markers)
        self._install(tree)
        log.info(
            "Loaded bookmark snapshot: %d nodes under %d roots (generation %d).",
            len(tree),
            len(tree.root_ids),
            self.generation,
        )
        return tree

    def refresh_subtree(self, folder_id: str, new_children: Sequence[BookmarkNode]) -> Tree:
        self._tree.node(folder_id)
        return self.refresh_folders([(folder_id, new_children)])

    def refresh_folders(self, updates: Sequence[Tuple[str, Sequence[BookmarkNode]]]) -> Tree:
        """Apply several folder refreshes in order, installing only if all succeed.

        A folder that vanished because of an earlier update in the same batch
        is skipped.
        """
        tree = self._tree
        for folder_id, new_children in updates:
            if folder_id not in tree:
                log.debug("Skipping refresh of folder %s: no longer in the tree.", folder_id)
                continue
            tree = tree.with_children(folder_id, new_children)
        self._install(tree)
        log.debug(
            "Refreshed folder(s) %s (generation %d).",
            ", ".join(f for f, _ in updates) or "-",
            self.generation,
        )
        return tree

    def _install(self, tree: Tree) -> None:
        self._tree = tree
        self.generation += 1


def _flatten(
    items: Sequence[BookmarkNode],
    parent_id: Optional[str],
    out: Dict[str, Node],
    *,
    strict: bool,
) -> None:
    stack = [(item, parent_id) for item in reversed(items)]
    while stack:
        item, owner = stack.pop()
        nid = str(item.id)
        if nid in out:
            raise StructuralCorruption(
                f"node {nid} appears under both {out[nid].parent_id or '<root>'} and {owner or '<root>'}"
            )
        if strict and owner is not None and item.parent_id is not None and str(item.parent_id) != owner:
            raise StructuralCorruption(f"node {nid} declares parent {item.parent_id} but is listed under {owner}")
        kids = item.children or []
        if item.url is not None and kids:
            raise StructuralCorruption(f"bookmark {nid} has children")
        out[nid] = Node(
            id=nid,
            title=item.title or "",
            url=item.url,
            parent_id=owner,
            child_ids=tuple(str(c.id) for c in kids),
            role=item.role,
        )
        for child in reversed(kids):
            stack.append((child, nid))


def _detach(nodes: Dict[str, Node], root_ids: List[str], node_id: str) -> None:
    stale = nodes[node_id]
    stack = [node_id]
    while stack:
        n = nodes.pop(stack.pop(), None)
        if n is not None:
            stack.extend(n.child_ids)
    if stale.parent_id is None:
        if node_id in root_ids:
            root_ids.remove(node_id)
        return
    parent = nodes.get(stale.parent_id)
    if parent is not None:
        nodes[parent.id] = replace(parent, child_ids=tuple(c for c in parent.child_ids if c != node_id))
