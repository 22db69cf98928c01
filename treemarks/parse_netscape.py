from __future__ import annotations

import re
from pathlib import Path
from typing import Iterator, List, Optional

from bs4 import BeautifulSoup, Tag  # type: ignore

from .log import get_logger
from .model import ROLE_OTHER, ROLE_TOOLBAR, BookmarkNode

log = get_logger(__name__)
_WS_RE = re.compile(r"\s+")

# lxml lower-cases attribute names.
_ROLE_ATTRS = (
    ("personal_toolbar_folder", ROLE_TOOLBAR),
    ("unfiled_bookmarks_folder", ROLE_OTHER),
)


def parse_bookmarks_html(path: Path | str, *, loose_root_title: str = "Other Bookmarks") -> List[BookmarkNode]:
    """Read a Netscape bookmarks export into a forest.

    Marked top-level folders become roots. Everything else at the top level
    is gathered under one synthetic root: the catch-all "other" root when the
    file has none of its own, a plain "Bookmarks Menu" root otherwise (the
    Firefox export layout).
    """
    text = Path(path).read_text(encoding="utf-8", errors="replace")
    soup = BeautifulSoup(text, "lxml")

    dl = soup.find("dl")
    if dl is None:
        raise ValueError("Could not find <DL> root in bookmarks file")

    top = _walk_dl(dl)
    has_other = any(n.role == ROLE_OTHER for n in top)
    roots: List[BookmarkNode] = []
    loose: List[BookmarkNode] = []
    loose_at: Optional[int] = None
    for n in top:
        if n.role is not None:
            roots.append(n)
            continue
        if loose_at is None:
            loose_at = len(roots)
        loose.append(n)

    if loose:
        if has_other:
            holder = BookmarkNode(id="", title="Bookmarks Menu", children=loose)
        else:
            holder = BookmarkNode(id="", title=loose_root_title, children=loose, role=ROLE_OTHER)
        roots.insert(loose_at or 0, holder)
        log.debug("Gathered %d loose top-level entries under '%s'.", len(loose), holder.title)

    count = _assign_ids(roots)
    log.info("Parsed %d bookmark entries from %s", count, path)
    return roots


def _walk_dl(dl) -> List[BookmarkNode]:
    # A folder's <DL> is the first one after its <H3>, whether lxml nested it
    # inside the <DT> or left it as a sibling.
    out: List[BookmarkNode] = []
    waiting: Optional[BookmarkNode] = None
    for el in _entries(dl):
        if el.name == "h3":
            if waiting is not None:
                log.warning("Folder without DL: %s", waiting.title)
            waiting = BookmarkNode(id="", title=_WS_RE.sub(" ", el.get_text(strip=True)), children=[], role=_role_of(el))
            out.append(waiting)
        elif el.name == "a":
            if waiting is not None:
                log.warning("Folder without DL: %s", waiting.title)
                waiting = None
            href = (el.get("href") or "").strip()
            if href:
                title = _WS_RE.sub(" ", el.get_text(strip=True)) or href
                out.append(BookmarkNode(id="", title=title, url=href))
        else:
            children = _walk_dl(el)
            if waiting is not None:
                waiting.children = children
                waiting = None
            else:
                out.extend(children)
    return out


def _entries(container) -> Iterator[Tag]:
    """<H3>, <A> and <DL> elements in document order, without entering them."""
    stack = [c for c in reversed(list(container.children)) if isinstance(c, Tag)]
    while stack:
        el = stack.pop()
        if el.name in ("h3", "a", "dl"):
            yield el
            continue
        stack.extend(c for c in reversed(list(el.children)) if isinstance(c, Tag))


def _role_of(h3: Tag) -> Optional[str]:
    for attr, role in _ROLE_ATTRS:
        if str(h3.get(attr, "")).lower() == "true":
            return role
    return None


def _assign_ids(roots: List[BookmarkNode]) -> int:
    # Pre-order, starting at 1.
    n = 0
    stack = [(r, None) for r in reversed(roots)]
    while stack:
        node, parent_id = stack.pop()
        n += 1
        node.id = str(n)
        node.parent_id = parent_id
        for child in reversed(node.children or []):
            stack.append((child, node.id))
    return n
