"""MCP server and tools for memidx (requires the ``mcp`` package)."""
