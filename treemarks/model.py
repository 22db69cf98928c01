from __future__ import annotations

from dataclasses import dataclass, field
from typing import List, Optional, Tuple

ROLE_TOOLBAR = "toolbar"
ROLE_OTHER = "other"

EVENT_CREATED = "created"
EVENT_REMOVED = "removed"
EVENT_CHANGED = "changed"
EVENT_MOVED = "moved"
EVENT_CHILDREN_REORDERED = "children_reordered"
EVENT_KINDS = (EVENT_CREATED, EVENT_REMOVED, EVENT_CHANGED, EVENT_MOVED, EVENT_CHILDREN_REORDERED)


@dataclass
class BookmarkNode:
    """Nested node as handed over by a store: a folder carries children, a bookmark a URL."""

    id: str
    title: str
    url: Optional[str] = None
    parent_id: Optional[str] = None
    children: Optional[List["BookmarkNode"]] = None
    role: Optional[str] = None

    @property
    def is_folder(self) -> bool:
        return self.url is None


@dataclass(frozen=True)
class Node:
    id: str
    title: str
    url: Optional[str] = None
    parent_id: Optional[str] = None
    child_ids: Tuple[str, ...] = ()
    role: Optional[str] = None

    @property
    def is_folder(self) -> bool:
        return self.url is None

    @property
    def is_bookmark(self) -> bool:
        return self.url is not None


@dataclass(frozen=True)
class RootMarkers:
    toolbar: Tuple[str, ...] = ("bookmarks bar", "bookmarks toolbar")
    other: Tuple[str, ...] = ("other bookmarks",)

    def is_toolbar_title(self, title: str) -> bool:
        t = (title or "").lower()
        return any(m in t for m in self.toolbar)

    def is_other_title(self, title: str) -> bool:
        t = (title or "").lower()
        return any(m in t for m in self.other)


@dataclass(frozen=True)
class SearchResult:
    node: Node
    primary_ancestor_id: str
    parent_id: Optional[str]


@dataclass
class FolderGroup:
    folder_id: str
    bookmarks: List[Node] = field(default_factory=list)


@dataclass
class Group:
    root_folder: Node
    subgroups: List[FolderGroup] = field(default_factory=list)


@dataclass
class FolderView:
    folder: Node
    folders: List[Node]
    links: List[Node]


@dataclass(frozen=True)
class ChangeEvent:
    kind: str
    node_id: str
    parent_id: Optional[str] = None
    old_parent_id: Optional[str] = None

    def __post_init__(self) -> None:
        if self.kind not in EVENT_KINDS:
            raise ValueError(f"unknown change event kind: {self.kind}")
