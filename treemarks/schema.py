from __future__ import annotations

from typing import List, Optional

from pydantic import BaseModel, Field

from .model import FolderView, Group, Node
from .snapshot import Tree


class NodeOut(BaseModel):
    id: str
    title: str
    url: Optional[str] = Field(None, description="Set for bookmarks, null for folders.")
    parent_id: Optional[str] = None
    is_folder: bool


class FolderGroupOut(BaseModel):
    folder: NodeOut
    path: List[str] = Field(default_factory=list, description="Folder titles from the forest root down to the folder.")
    bookmarks: List[NodeOut] = Field(default_factory=list)


class GroupOut(BaseModel):
    root_folder: NodeOut
    subgroups: List[FolderGroupOut] = Field(default_factory=list)


class SearchOut(BaseModel):
    query: str
    total: int = Field(..., description="Matches shown across all groups.")
    groups: List[GroupOut] = Field(default_factory=list)


class FolderViewOut(BaseModel):
    folder: NodeOut
    path: List[str] = Field(default_factory=list)
    folders: List[NodeOut] = Field(default_factory=list)
    links: List[NodeOut] = Field(default_factory=list)


def node_out(node: Node) -> NodeOut:
    return NodeOut(id=node.id, title=node.title, url=node.url, parent_id=node.parent_id, is_folder=node.is_folder)


def folder_path(tree: Tree, folder_id: str) -> List[str]:
    chain = [folder_id] + tree.ancestor_ids(folder_id)
    return [tree.node(fid).title for fid in reversed(chain)]


def search_out(tree: Tree, query: str, groups: List[Group]) -> SearchOut:
    out: List[GroupOut] = []
    total = 0
    for g in groups:
        subs: List[FolderGroupOut] = []
        for sg in g.subgroups:
            total += len(sg.bookmarks)
            subs.append(
                FolderGroupOut(
                    folder=node_out(tree.node(sg.folder_id)),
                    path=folder_path(tree, sg.folder_id),
                    bookmarks=[node_out(b) for b in sg.bookmarks],
                )
            )
        out.append(GroupOut(root_folder=node_out(g.root_folder), subgroups=subs))
    return SearchOut(query=query, total=total, groups=out)


def folder_view_out(tree: Tree, view: FolderView) -> FolderViewOut:
    return FolderViewOut(
        folder=node_out(view.folder),
        path=folder_path(tree, view.folder.id),
        folders=[node_out(n) for n in view.folders],
        links=[node_out(n) for n in view.links],
    )
