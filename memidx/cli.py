"""
memidx CLI — Unix-Composable Memory Commands

Commands:
    memidx init    [PATH]                          — scaffold workspace dirs + store
    memidx insert  ["text"] [--area A] [--meta k=v] — store text (stdin if omitted)
    memidx search  "query" [-k N] [--threshold T] [--area A]
    memidx show    <id>                            — display one memory
    memidx list    [--area A]                      — most recent memories
    memidx delete  <id> [<id> ...]                 — delete by id
    memidx forget  [--query S] [--area A]          — delete by substring/area
    memidx stats                                   — counts per area
    memidx preload                                 — import the knowledge directory
    memidx serve                                   — start MCP server (foreground)

Environment variables:
    MEMIDX_WORKSPACE  Workspace root (default: current directory)
    MEMIDX_DB         SQLite database path (default: <workspace>/.memory/memory.db)
    MEMIDX_CONFIG     JSON config file (default: <workspace>/.memory/config.json)

Precedence (invariant):
    CLI --flag  >  MEMIDX_* env var  >  config file  >  compiled default

Exit codes:
    0  Success (including idempotent no-op)
    1  Operational error (bad args, empty input, unknown id)
    2  Internal failure (unexpected exception, I/O error)
"""

from __future__ import annotations

import argparse
import json
import logging
import os
import sys
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Dict, Iterator, List, Optional

from memidx.types import MEMORY_AREAS

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Env parsing
# ---------------------------------------------------------------------------


def _env_str(name: str, default: str) -> str:
    """Parse string env var with fallback."""
    return os.environ.get(name) or default


# ---------------------------------------------------------------------------
# Resolvers
# ---------------------------------------------------------------------------


def _resolve_workspace(args: Optional[argparse.Namespace] = None) -> str:
    """Resolve workspace: CLI --workspace > MEMIDX_WORKSPACE > cwd."""
    if args and getattr(args, "workspace", None):
        return os.path.abspath(args.workspace)
    return os.path.abspath(_env_str("MEMIDX_WORKSPACE", os.getcwd()))


def _resolve_config(args: Optional[argparse.Namespace] = None):
    """Load config, then apply the --db / MEMIDX_DB override."""
    from memidx.config import load_config

    workspace = _resolve_workspace(args)
    path = getattr(args, "config", None) if args else None
    path = path or os.environ.get("MEMIDX_CONFIG")
    if path is None:
        default = Path(workspace) / ".memory" / "config.json"
        path = str(default) if default.is_file() else None
    cfg = load_config(path)

    db = (getattr(args, "db", None) if args else None) or os.environ.get("MEMIDX_DB")
    if db:
        cfg.store.db_path = db if db == ":memory:" else os.path.abspath(db)
    return cfg


@contextmanager
def _open_memory(args: argparse.Namespace) -> Iterator[Any]:
    """Yield the MemoryStore for the resolved workspace; close on exit."""
    from memidx.registry import MemoryRegistry

    registry = MemoryRegistry(config=_resolve_config(args))
    try:
        yield registry.get_or_create(_resolve_workspace(args))
    finally:
        registry.close_all()


def _parse_meta(pairs: Optional[List[str]]) -> Dict[str, Any]:
    """Parse repeated ``key=value`` flags. Values are JSON when they parse."""
    meta: Dict[str, Any] = {}
    for pair in pairs or []:
        key, sep, raw = pair.partition("=")
        if not sep or not key:
            raise ValueError(f"Invalid --meta {pair!r} (expected key=value)")
        try:
            meta[key] = json.loads(raw)
        except json.JSONDecodeError:
            meta[key] = raw
    return meta


# ---------------------------------------------------------------------------
# Stderr helpers (respect --quiet)
# ---------------------------------------------------------------------------

_quiet = False


def _info(msg: str) -> None:
    """Print progress to stderr (suppressed by --quiet)."""
    if not _quiet:
        print(msg, file=sys.stderr)


def _warn(msg: str) -> None:
    """Print warning to stderr (always visible)."""
    print(msg, file=sys.stderr)


def _print_json(data: Any) -> None:
    print(json.dumps(data, indent=2, ensure_ascii=False))


# ===========================================================================
# Command: init
# ===========================================================================


def cmd_init(args: argparse.Namespace) -> None:
    """Initialize a workspace: store, knowledge directory, .gitignore."""
    from memidx.config import MemoryConfig
    from memidx.memory import MemoryStore, resolve_db_path

    target = Path(args.path).resolve()
    target.mkdir(parents=True, exist_ok=True)
    args.workspace = str(target)
    config = _resolve_config(args)
    db_path = Path(resolve_db_path(str(target), config))
    existed = db_path.exists()

    # Creating the store applies the schema
    with MemoryStore(str(target), config=config):
        pass

    knowledge = target / config.knowledge.dir_name
    knowledge.mkdir(exist_ok=True)

    gitignore = db_path.parent / ".gitignore"
    if not gitignore.exists():
        gitignore.write_text("*.db\n*.db-wal\n*.db-shm\n", encoding="utf-8")

    config_path = target / ".memory" / "config.json"
    if not config_path.exists():
        config_path.parent.mkdir(parents=True, exist_ok=True)
        defaults = MemoryConfig()
        config_path.write_text(json.dumps({
            "index": {
                "max_text_length": defaults.index.max_text_length,
                "default_limit": defaults.index.default_limit,
                "default_threshold": defaults.index.default_threshold,
            },
        }, indent=2) + "\n", encoding="utf-8")

    _info(f"Workspace {'exists' if existed else 'initialized'}: {target}")
    _info(f"  Database:  {db_path}")
    _info(f"  Knowledge: {knowledge}")
    print(f'export MEMIDX_WORKSPACE="{target}"')


# ===========================================================================
# Command: insert
# ===========================================================================


def cmd_insert(args: argparse.Namespace) -> None:
    """Store text (argument or stdin) as one memory."""
    text = args.text if args.text is not None else sys.stdin.read()
    if not text.strip():
        _warn("[insert] No text given.")
        sys.exit(1)

    metadata = _parse_meta(args.meta)
    if args.area:
        metadata["area"] = args.area

    with _open_memory(args) as memory:
        ids = memory.insert([text], metadata)

    if getattr(args, "json", False):
        _print_json({"status": "ok", "ids": ids})
    else:
        for mem_id in ids:
            print(mem_id)
    _info(f"[insert] {len(ids)} memory stored")


# ===========================================================================
# Command: search
# ===========================================================================


def cmd_search(args: argparse.Namespace) -> None:
    """Rank memories by TF-IDF cosine similarity."""
    with _open_memory(args) as memory:
        results = memory.search(
            args.query,
            limit=args.k,
            threshold=args.threshold,
            filter={"area": args.area} if args.area else None,
        )

    if getattr(args, "json", False):
        _print_json([r.to_dict() for r in results])
        return

    if not results:
        _info("No results found.")
        return

    print(f"Found {len(results)} memory(ies):\n")
    for r in results:
        print(f"  {r.score:.3f}  [{r.area}] {r.id}")
        print(f"    {r.preview()}")
        print()


# ===========================================================================
# Command: show
# ===========================================================================


def cmd_show(args: argparse.Namespace) -> None:
    """Show a memory by id."""
    with _open_memory(args) as memory:
        mem = memory.get_memory_by_id(args.id)

    if mem is None:
        _warn(f"Memory not found: {args.id}")
        sys.exit(1)

    if getattr(args, "json", False):
        _print_json(mem.to_dict())
        return

    print(f"ID:       {mem.id}")
    print(f"Area:     {mem.area}")
    print(f"Created:  {mem.created_at}")
    if mem.metadata:
        print(f"Metadata: {json.dumps(mem.metadata, ensure_ascii=False)}")
    print(f"\n--- Text ---\n{mem.text}")


# ===========================================================================
# Command: list
# ===========================================================================


def cmd_list(args: argparse.Namespace) -> None:
    """List the most recent memories."""
    with _open_memory(args) as memory:
        memories = memory.get_all_memories(area=args.area)

    if getattr(args, "json", False):
        _print_json([m.to_dict() for m in memories])
        return

    for m in memories:
        print(f"{m.created_at}  [{m.area}] {m.id}  {m.preview(60)}")
    _info(f"[list] {len(memories)} memory(ies)")


# ===========================================================================
# Command: delete / forget
# ===========================================================================


def cmd_delete(args: argparse.Namespace) -> None:
    """Delete memories by id."""
    with _open_memory(args) as memory:
        removed = memory.delete(args.ids)

    if getattr(args, "json", False):
        _print_json({"status": "ok", "deleted": removed})
    else:
        _info(f"[delete] {removed} memory(ies) deleted")


def cmd_forget(args: argparse.Namespace) -> None:
    """Delete memories by text substring and/or area."""
    if not args.query and not args.area:
        _warn("[forget] Refusing to delete without --query or --area.")
        sys.exit(1)

    with _open_memory(args) as memory:
        removed = memory.delete_by_query(args.query, args.area)

    if getattr(args, "json", False):
        _print_json({"status": "ok", "deleted": removed})
    else:
        _info(f"[forget] {removed} memory(ies) deleted")


# ===========================================================================
# Command: stats
# ===========================================================================


def cmd_stats(args: argparse.Namespace) -> None:
    """Show memory counts per area."""
    with _open_memory(args) as memory:
        by_area = memory.get_knowledge_stats()
        total = memory.count()
        knowledge_files = len(memory.get_knowledge_checksums())
        indexed_terms = len(memory.idf)

    if getattr(args, "json", False):
        _print_json({
            "status": "ok",
            "total": total,
            "by_area": by_area,
            "knowledge_files": knowledge_files,
            "indexed_terms": indexed_terms,
        })
        return

    print("Memory Store Statistics")
    print("=" * 40)
    print(f"  Total memories:  {total}")
    print("  By area:")
    for area, count in by_area.items():
        print(f"    {area:12s}: {count}")
    print(f"  Knowledge files: {knowledge_files}")
    print(f"  Indexed terms:   {indexed_terms}")


# ===========================================================================
# Command: preload
# ===========================================================================


def cmd_preload(args: argparse.Namespace) -> None:
    """Import new or changed files from the knowledge directory."""
    with _open_memory(args) as memory:
        result = memory.preload_knowledge()

    if getattr(args, "json", False):
        _print_json({"status": "ok", **result.to_dict()})
    else:
        print(
            f"Imported {result.imported}, skipped {result.skipped}, "
            f"errors {len(result.errors)}"
        )
        for err in result.errors:
            _warn(f"  {err['path']}: {err['error']}")
    if result.errors:
        sys.exit(1)


# ===========================================================================
# Command: serve  (start MCP server)
# ===========================================================================


def cmd_serve(args: argparse.Namespace) -> None:
    """Start the memidx MCP server in foreground."""
    from memidx.mcp.server import build_parser as mcp_parser, create_server

    server_argv = ["--workspace", _resolve_workspace(args)]
    db = getattr(args, "db", None)
    if db:
        server_argv.extend(["--db", db])
    config = getattr(args, "config", None)
    if config:
        server_argv.extend(["--config", config])
    if getattr(args, "verbose", False):
        server_argv.append("--verbose")

    server_args = mcp_parser().parse_args(server_argv)
    mcp, registry = create_server(server_args)

    _info(f"memidx MCP server (workspace={server_args.workspace})")
    _info("Press Ctrl+C to stop.")
    try:
        mcp.run()
    finally:
        registry.close_all()


# ===========================================================================
# Entry point
# ===========================================================================


def main() -> None:
    """CLI entry point: memidx <command> [args]."""
    global _quiet

    # SUPPRESS defaults keep subparser defaults from overriding values
    # parsed at the main-parser level (argparse parents quirk).
    _common = argparse.ArgumentParser(add_help=False)
    _common.add_argument(
        "--workspace", "-w", default=argparse.SUPPRESS,
        help="Workspace root (default: MEMIDX_WORKSPACE or current directory)",
    )
    _common.add_argument(
        "--db", default=argparse.SUPPRESS,
        help="Path to SQLite database (default: <workspace>/.memory/memory.db)",
    )
    _common.add_argument(
        "--config", default=argparse.SUPPRESS,
        help="JSON config file (default: <workspace>/.memory/config.json)",
    )
    _common.add_argument(
        "--quiet", "-q", action="store_true", default=argparse.SUPPRESS,
        help="Suppress stderr progress messages",
    )
    _common.add_argument(
        "--json", action="store_true", default=argparse.SUPPRESS,
        help="Machine-readable JSON output",
    )
    _common.add_argument(
        "-v", "--verbose", action="store_true", default=argparse.SUPPRESS,
        help="Enable verbose logging",
    )

    parser = argparse.ArgumentParser(
        prog="memidx",
        description="memidx — TF-IDF long-term memory for AI agent tools",
        parents=[_common],
    )
    sub = parser.add_subparsers(dest="command", help="Available commands")

    # -- init --------------------------------------------------------------
    p_init = sub.add_parser("init", parents=[_common], help="Initialize a workspace")
    p_init.add_argument(
        "path", nargs="?", default=".",
        help="Workspace directory (default: current directory)",
    )
    p_init.set_defaults(func=cmd_init)

    # -- insert ------------------------------------------------------------
    p_insert = sub.add_parser("insert", parents=[_common], help="Store a memory")
    p_insert.add_argument("text", nargs="?", default=None, help="Text (stdin if omitted)")
    p_insert.add_argument("--area", choices=MEMORY_AREAS, default=None, help="Memory area")
    p_insert.add_argument(
        "--meta", action="append", default=None, metavar="KEY=VALUE",
        help="Metadata entry (repeatable; JSON values accepted)",
    )
    p_insert.set_defaults(func=cmd_insert)

    # -- search ------------------------------------------------------------
    p_search = sub.add_parser("search", parents=[_common], help="Search memories (TF-IDF)")
    p_search.add_argument("query", help="Search query")
    p_search.add_argument("-k", type=int, default=None, help="Max results (default: 10)")
    p_search.add_argument(
        "--threshold", type=float, default=None,
        help="Minimum cosine score (default: 0.1)",
    )
    p_search.add_argument("--area", choices=MEMORY_AREAS, default=None, help="Filter by area")
    p_search.set_defaults(func=cmd_search)

    # -- show --------------------------------------------------------------
    p_show = sub.add_parser("show", parents=[_common], help="Show a memory")
    p_show.add_argument("id", help="Memory id")
    p_show.set_defaults(func=cmd_show)

    # -- list --------------------------------------------------------------
    p_list = sub.add_parser("list", parents=[_common], help="List recent memories")
    p_list.add_argument("--area", choices=MEMORY_AREAS, default=None, help="Filter by area")
    p_list.set_defaults(func=cmd_list)

    # -- delete ------------------------------------------------------------
    p_delete = sub.add_parser("delete", parents=[_common], help="Delete memories by id")
    p_delete.add_argument("ids", nargs="+", help="Memory ids")
    p_delete.set_defaults(func=cmd_delete)

    # -- forget ------------------------------------------------------------
    p_forget = sub.add_parser(
        "forget", parents=[_common], help="Delete memories by substring and/or area",
    )
    p_forget.add_argument("--query", default=None, help="Case-sensitive text substring")
    p_forget.add_argument("--area", choices=MEMORY_AREAS, default=None, help="Area")
    p_forget.set_defaults(func=cmd_forget)

    # -- stats -------------------------------------------------------------
    p_stats = sub.add_parser("stats", parents=[_common], help="Counts per area")
    p_stats.set_defaults(func=cmd_stats)

    # -- preload -----------------------------------------------------------
    p_preload = sub.add_parser(
        "preload", parents=[_common], help="Import the knowledge directory",
    )
    p_preload.set_defaults(func=cmd_preload)

    # -- serve -------------------------------------------------------------
    p_serve = sub.add_parser("serve", parents=[_common], help="Start MCP server")
    p_serve.set_defaults(func=cmd_serve)

    # -- Parse and dispatch ------------------------------------------------
    args = parser.parse_args()

    _quiet = getattr(args, "quiet", False)

    if getattr(args, "verbose", False):
        logging.basicConfig(
            level=logging.DEBUG,
            format="%(name)s %(levelname)s %(message)s",
        )
    else:
        logging.basicConfig(level=logging.WARNING)

    if not args.command:
        parser.print_help()
        sys.exit(1)

    try:
        args.func(args)
    except BrokenPipeError:
        # e.g. memidx list | head
        devnull = os.open(os.devnull, os.O_WRONLY)
        os.dup2(devnull, sys.stdout.fileno())
        sys.exit(0)
    except KeyboardInterrupt:
        sys.exit(0)
    except ValueError as e:
        _warn(f"Error: {e}")
        sys.exit(1)
    except Exception as e:
        _warn(f"Internal error: {e}")
        if getattr(args, "verbose", False):
            import traceback
            traceback.print_exc(file=sys.stderr)
        sys.exit(2)


if __name__ == "__main__":
    main()
