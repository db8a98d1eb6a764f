"""
memidx MCP Server — Long-Term Memory for AI Agent Tools

Standalone MCP server exposing memidx operations via the Model Context
Protocol.  Works with any MCP-compatible client.

Architecture: thin MCP layer delegating to MemoryStore.  Zero business
logic in this module — all logic lives in memidx/*.

Usage:
    python -m memidx.mcp.server --workspace /path/to/project
    python -m memidx.mcp.server --workspace . --preload
    python -m memidx.mcp.server --db /path/to/memory.db --audit-log audit.jsonl
"""

from __future__ import annotations

import argparse
import logging
import os

logger = logging.getLogger(__name__)

# Instructions embedded in FastMCP, visible to every MCP client.
_MCP_INSTRUCTIONS = (
    "Long-term memory for this workspace (8 tools).\n"
    "\n"
    "SEARCH:  Use memory_search with 2-5 keywords; results are ranked by\n"
    "         TF-IDF cosine similarity.\n"
    "STORE:   Use memory_insert with an area: MAIN (general), FRAGMENTS,\n"
    "         SOLUTIONS (working fixes), INSTRUMENTS (tools/how-to),\n"
    "         KNOWLEDGE (reference material).\n"
    "READ:    Use memory_get, memory_list, memory_stats.\n"
    "DELETE:  Use memory_delete (ids) or memory_forget (substring/area).\n"
    "FOLDER:  Use memory_preload to import the .knowledge directory.\n"
)


def build_parser() -> argparse.ArgumentParser:
    """Build CLI argument parser for the memory MCP server."""
    p = argparse.ArgumentParser(
        prog="memidx-mcp",
        description="memidx MCP Server — long-term memory for AI agent tools",
    )
    p.add_argument(
        "--workspace",
        default=os.environ.get("MEMIDX_WORKSPACE", "."),
        help="Workspace root (default: . or $MEMIDX_WORKSPACE)",
    )
    p.add_argument(
        "--db",
        default=os.environ.get("MEMIDX_DB"),
        help="SQLite database path (default: <workspace>/.memory/memory.db or $MEMIDX_DB)",
    )
    p.add_argument(
        "--config",
        default=os.environ.get("MEMIDX_CONFIG"),
        help="JSON config file (default: $MEMIDX_CONFIG)",
    )
    p.add_argument(
        "--preload",
        action="store_true",
        help="Import the knowledge directory before serving",
    )
    p.add_argument(
        "--audit-log",
        default=None,
        help="Audit log file path (default: stderr)",
    )
    p.add_argument(
        "-v", "--verbose",
        action="store_true",
        help="Enable verbose logging",
    )
    return p


def create_server(args=None):
    """
    Create and configure the FastMCP server with memory tools.

    Args:
        args: Parsed argparse.Namespace, or None to parse from sys.argv.

    Returns:
        (mcp_server, registry) tuple.
    """
    from mcp.server.fastmcp import FastMCP

    from memidx.config import load_config
    from memidx.mcp.audit import AuditLogger
    from memidx.mcp.tools import register_memory_tools
    from memidx.registry import MemoryRegistry

    if args is None:
        args = build_parser().parse_args()

    workspace = os.path.abspath(args.workspace)
    config = load_config(args.config)
    if args.db:
        config.store.db_path = args.db if args.db == ":memory:" else os.path.abspath(args.db)

    registry = MemoryRegistry(config=config)
    memory = registry.get_or_create(workspace)

    if args.preload:
        result = memory.preload_knowledge()
        logger.info(
            "Knowledge preload: %d imported, %d skipped, %d errors",
            result.imported, result.skipped, len(result.errors),
        )

    audit_output = None
    if args.audit_log:
        audit_output = open(args.audit_log, "a", encoding="utf-8")
    audit = AuditLogger(output=audit_output)

    mcp = FastMCP(
        name="memidx Memory",
        instructions=_MCP_INSTRUCTIONS,
    )
    register_memory_tools(mcp, registry, workspace, audit=audit)

    logger.info("memidx MCP server ready: workspace=%s, db=%s",
                workspace, config.store.db_path)
    return mcp, registry


def main():
    """CLI entry point — parse args, create server, run."""
    parser = build_parser()
    args = parser.parse_args()

    level = logging.DEBUG if args.verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(asctime)s %(name)s %(levelname)s %(message)s",
    )

    mcp, registry = create_server(args)
    try:
        mcp.run()
    finally:
        registry.close_all()


if __name__ == "__main__":
    main()
