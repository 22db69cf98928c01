from __future__ import annotations

from typing import FrozenSet, Set

from .model import Node
from .snapshot import Tree


def find_primary_roots(tree: Tree) -> FrozenSet[str]:
    """Folders search results are grouped under.

    That is the toolbar root itself plus each folder directly inside the
    "other items" root. Bookmarks lying loose in "other items" are not
    grouping targets.
    """
    out: Set[str] = set()
    if tree.toolbar_root_id is not None:
        out.add(tree.toolbar_root_id)
    if tree.other_root_id is not None:
        for child in tree.children(tree.other_root_id):
            if child.is_folder:
                out.add(child.id)
    return frozenset(out)


def resolve_primary_ancestor(tree: Tree, node: Node) -> Node:
    """Walk up from `node` to the nearest primary root.

    A node that is itself primary resolves to itself. When no primary root
    lies on the path, the forest root at the top of the path is returned so
    the result can still be bucketed.
    """
    primary = tree.primary_root_ids
    current = node
    seen = set()
    while current.id not in primary:
        if current.parent_id is None or current.id in seen:
            break
        seen.add(current.id)
        parent = tree.get(current.parent_id)
        if parent is None:
            break
        current = parent
    return current
