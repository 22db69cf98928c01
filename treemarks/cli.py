from __future__ import annotations

import argparse
import asyncio
import json
from typing import List

import yaml
from rich.console import Console
from rich.markup import escape
from rich.tree import Tree as RichTree

from . import __version__
from .config import Settings, load_settings
from .engine import BookmarkEngine
from .errors import TreemarksError
from .log import LogConfig, get_logger, setup_logging
from .model import Group
from .parse_chrome import parse_chrome_bookmarks
from .parse_netscape import parse_bookmarks_html
from .schema import folder_path, folder_view_out, search_out
from .snapshot import Tree
from .store import BookmarkStore, MemoryStore, PlacesStore

log = get_logger(__name__)


def main(argv: List[str] | None = None) -> int:
    p = argparse.ArgumentParser(
        prog="treemarks",
        description="Search a bookmark tree and move bookmarks or folders between folders.",
    )
    p.add_argument("-V", "--version", action="version", version=f"treemarks {__version__}")
    p.add_argument("--config", default=None, help="YAML config file (optional). Env vars override defaults.")
    p.add_argument("--log-level", default=None, help="DEBUG/INFO/WARN/ERROR (overrides env/config).")
    p.add_argument("--no-color", action="store_true", help="Disable colored output.")
    src = p.add_mutually_exclusive_group(required=True)
    src.add_argument("--places", help="Firefox profile dir or places.sqlite path (moves are saved).")
    src.add_argument("--html", help="Netscape bookmarks HTML export (moves are not saved).")
    src.add_argument("--chrome", help="Chrome/Chromium 'Bookmarks' JSON file (moves are not saved).")
    sub = p.add_subparsers(dest="cmd", required=True)

    s = sub.add_parser("search", help="Search titles and URLs, grouped by sidebar folder.")
    s.add_argument("query", help="Case-insensitive text to look for.")
    s.add_argument("--json", action="store_true", help="Print results as JSON.")

    m = sub.add_parser("move", help="Move a bookmark or folder into another folder.")
    m.add_argument("node_id", help="Id of the bookmark or folder to move.")
    m.add_argument("parent_id", help="Id of the destination folder.")
    m.add_argument("--index", type=int, default=None, help="Position in the destination (default: append).")

    sh = sub.add_parser("show", help="List a folder's subfolders and links (roots when no folder given).")
    sh.add_argument("--folder", default=None, help="Folder id.")
    sh.add_argument("--json", action="store_true", help="Print as JSON.")

    args = p.parse_args(argv)
    try:
        cfg = load_settings(args.config)
    except (OSError, ValueError, yaml.YAMLError) as e:
        setup_logging(LogConfig(no_color=args.no_color))
        log.error("Failed to load config: %s", e)
        return 2
    if args.log_level:
        cfg.log_level = args.log_level
    if args.no_color:
        cfg.no_color = True
    setup_logging(LogConfig(level=cfg.log_level, no_color=cfg.no_color))

    try:
        store = _open_store(args, cfg)
    except (OSError, ValueError) as e:
        log.error("Failed to open bookmark source: %s", e)
        return 2

    commands = {"search": _cmd_search, "move": _cmd_move, "show": _cmd_show}
    cmd = commands.get(args.cmd)
    if cmd is None:
        return 2
    try:
        return asyncio.run(cmd(args, cfg, store))
    except (TreemarksError, RuntimeError, ValueError, KeyError) as e:
        # KeyError carries the message as its only argument.
        log.error("%s", e.args[0] if isinstance(e, KeyError) and e.args else e)
        return 2


def _open_store(args, cfg: Settings) -> BookmarkStore:
    if args.places:
        return PlacesStore(args.places, busy_timeout_ms=cfg.places_busy_timeout_ms)
    if args.html:
        return MemoryStore(parse_bookmarks_html(args.html, loose_root_title=cfg.html_loose_root_title))
    return MemoryStore(parse_chrome_bookmarks(args.chrome))


def _console(cfg: Settings) -> Console:
    return Console(no_color=cfg.no_color, highlight=False, soft_wrap=True)


async def _cmd_search(args, cfg: Settings, store: BookmarkStore) -> int:
    async with BookmarkEngine(store, cfg) as engine:
        tree = engine.tree
        groups = engine.search(args.query)
    if args.json:
        print(search_out(tree, args.query, groups).model_dump_json(indent=2))
        return 0
    console = _console(cfg)
    if not groups:
        console.print(f"No sidebar matches for {escape(args.query)!r}.")
        return 0
    for g in groups:
        console.print(_render_group(tree, g))
    return 0


async def _cmd_move(args, cfg: Settings, store: BookmarkStore) -> int:
    if not isinstance(store, PlacesStore):
        log.warning("Bookmarks were loaded from an export file; the move is applied in memory only.")
    async with BookmarkEngine(store, cfg) as engine:
        await engine.move_item(args.node_id, args.parent_id, index=args.index)
        tree = engine.tree
    node = tree.node(args.node_id)
    dest = " / ".join(folder_path(tree, node.parent_id or args.parent_id))
    _console(cfg).print(f"Moved {escape(node.title)} ({node.id}) to {escape(dest)}")
    return 0


async def _cmd_show(args, cfg: Settings, store: BookmarkStore) -> int:
    async with BookmarkEngine(store, cfg) as engine:
        tree = engine.tree
    folder_ids = [args.folder] if args.folder else list(tree.root_ids)
    views = [tree.folder_view(fid) for fid in folder_ids]
    if args.json:
        if args.folder:
            print(folder_view_out(tree, views[0]).model_dump_json(indent=2))
        else:
            print(json.dumps([folder_view_out(tree, v).model_dump() for v in views], indent=2, ensure_ascii=False))
        return 0
    console = _console(cfg)
    for v in views:
        rt = RichTree(f"[bold]{escape(' / '.join(folder_path(tree, v.folder.id)))}[/bold] ({v.folder.id})")
        for f in v.folders:
            rt.add(f"{escape(f.title)}/ ({f.id})")
        for link in v.links:
            rt.add(f"{escape(link.title)} ({link.id}) {escape(link.url or '')}")
        console.print(rt)
    return 0


def _render_group(tree: Tree, g: Group) -> RichTree:
    rt = RichTree(f"[bold]{escape(g.root_folder.title)}[/bold] ({g.root_folder.id})")
    for sg in g.subgroups:
        branch = rt.add(escape(" / ".join(folder_path(tree, sg.folder_id))))
        for b in sg.bookmarks:
            label = f"{escape(b.title)}/" if b.is_folder else f"{escape(b.title)} {escape(b.url or '')}"
            branch.add(f"{label} ({b.id})")
    return rt
