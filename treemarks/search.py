from __future__ import annotations

from typing import List

from .ancestors import resolve_primary_ancestor
from .model import Node, SearchResult
from .snapshot import Tree


def normalize_query(query: str) -> str:
    return (query or "").strip().lower()


def matches(node: Node, needle: str) -> bool:
    # URLs only exist on bookmarks, so folders match by title alone.
    if needle in node.title.lower():
        return True
    return node.url is not None and needle in node.url.lower()


def search(tree: Tree, query: str) -> List[SearchResult]:
    """Every node whose title, or bookmark URL, contains `query` (case-insensitive).

    A blank query means search is inactive and yields nothing. Results come in
    depth-first pre-order across the roots.
    """
    needle = normalize_query(query)
    if not needle:
        return []

    out: List[SearchResult] = []
    for node in tree.iter_preorder():
        if not matches(node, needle):
            continue
        ancestor = resolve_primary_ancestor(tree, node)
        out.append(SearchResult(node=node, primary_ancestor_id=ancestor.id, parent_id=node.parent_id))
    return out
