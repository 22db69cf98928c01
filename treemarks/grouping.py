from __future__ import annotations

from typing import Dict, Iterable, List, Tuple

from .log import get_logger
from .model import FolderGroup, Group, Node, SearchResult
from .snapshot import Tree

log = get_logger(__name__)


def group(tree: Tree, results: Iterable[SearchResult]) -> List[Group]:
    """Bucket search results by primary ancestor, then by immediate parent folder.

    Ordering: groups spanning more folders come first, counting every parent
    folder a match was found in (including ones filtered out below); equal
    counts keep the order in which their primary ancestor was first met.

    Filtering:
    - partitions whose ancestor is not a primary root are dropped (the match
      lives outside the sidebar folders);
    - the catch-all "other items" root is never a group, and a folder carrying
      that name is never a subgroup.
    """
    partitions: Dict[str, Dict[str, List[Node]]] = {}
    for r in results:
        subs = partitions.setdefault(r.primary_ancestor_id, {})
        # A matched root has no parent; file it under itself.
        folder_id = r.parent_id or r.primary_ancestor_id
        subs.setdefault(folder_id, []).append(r.node)

    primary = tree.primary_root_ids
    reserved = tree.markers.is_other_title
    ranked: List[Tuple[int, Group]] = []
    for root_id, subs in partitions.items():
        if root_id not in primary:
            log.debug("Dropping %d match(es) outside sidebar folders (ancestor %s).", sum(map(len, subs.values())), root_id)
            continue
        root = tree.get(root_id)
        if root is None or reserved(root.title):
            continue
        subgroups: List[FolderGroup] = []
        for folder_id, bookmarks in subs.items():
            folder = tree.get(folder_id)
            if folder is None or reserved(folder.title):
                continue
            subgroups.append(FolderGroup(folder_id=folder_id, bookmarks=bookmarks))
        ranked.append((len(subs), Group(root_folder=root, subgroups=subgroups)))

    ranked.sort(key=lambda item: -item[0])
    return [g for _, g in ranked]
