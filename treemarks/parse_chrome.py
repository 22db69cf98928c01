from __future__ import annotations

import json
from pathlib import Path
from typing import Any, Dict, List, Optional

from .log import get_logger
from .model import ROLE_OTHER, ROLE_TOOLBAR, BookmarkNode

log = get_logger(__name__)

_ROOTS = (
    ("bookmark_bar", ROLE_TOOLBAR),
    ("other", ROLE_OTHER),
    ("synced", None),
)


def parse_chrome_bookmarks(path: Path | str) -> List[BookmarkNode]:
    """Read a Chrome/Chromium `Bookmarks` JSON file into a forest.

    Chrome's own node ids are kept. Entries that are neither `url` nor
    `folder` are skipped.
    """
    data = json.loads(Path(path).read_text(encoding="utf-8"))
    roots_obj = data.get("roots") if isinstance(data, dict) else None
    if not isinstance(roots_obj, dict):
        raise ValueError(f"Not a Chrome bookmarks file (no 'roots' object): {path}")

    out: List[BookmarkNode] = []
    count = 0
    for key, role in _ROOTS:
        raw = roots_obj.get(key)
        if not isinstance(raw, dict):
            continue
        root = _convert(raw, None, fallback_id=f"root:{key}")
        if root is None or not root.is_folder:
            continue
        root.role = role
        count += _fill(root, raw)
        out.append(root)

    log.info("Parsed %d bookmark entries from %s", count, path)
    return out


def _convert(raw: Dict[str, Any], parent_id: Optional[str], *, fallback_id: str) -> Optional[BookmarkNode]:
    kind = raw.get("type")
    nid = str(raw.get("id") or fallback_id)
    title = str(raw.get("name") or "").strip()
    if kind == "url":
        url = str(raw.get("url") or "").strip()
        if not url:
            return None
        return BookmarkNode(id=nid, title=title or url, url=url, parent_id=parent_id)
    if kind == "folder":
        return BookmarkNode(id=nid, title=title, parent_id=parent_id, children=[])
    return None


def _fill(root: BookmarkNode, raw_root: Dict[str, Any]) -> int:
    count = 1
    skipped = 0
    stack = [(root, raw_root)]
    while stack:
        node, raw = stack.pop()
        for i, raw_child in enumerate(raw.get("children") or []):
            if not isinstance(raw_child, dict):
                skipped += 1
                continue
            child = _convert(raw_child, node.id, fallback_id=f"{node.id}.{i}")
            if child is None:
                skipped += 1
                continue
            node.children.append(child)
            count += 1
            if child.is_folder:
                stack.append((child, raw_child))
    if skipped:
        log.debug("Skipped %d unsupported entries under %s", skipped, root.title)
    return count
