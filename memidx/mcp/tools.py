"""
memidx MCP Tools — 8 memory tools for MCP integration.

Thin wrappers around MemoryStore.  Each tool follows the same shape:

    ① Resolve the workspace store from the registry
    ② Tool execution   — validation → business logic
    ③ Audit log        — always, including on failure (in finally block)

Tools never raise to the client: failures come back as
``{"status": "error", "message": ...}``.

Tool list:
    WRITE:   memory_insert
    SEARCH:  memory_search
    READ:    memory_get, memory_list, memory_stats
    DELETE:  memory_delete, memory_forget
    FOLDER:  memory_preload
"""

from __future__ import annotations

import logging
import time
from typing import Any, Dict, List, Optional, Union

from memidx.mcp.audit import AuditLogger
from memidx.registry import MemoryRegistry

logger = logging.getLogger(__name__)


def register_memory_tools(
    mcp,
    registry: MemoryRegistry,
    workspace: str,
    *,
    audit: Optional[AuditLogger] = None,
) -> None:
    """
    Register all memory MCP tools on a FastMCP server instance.

    Args:
        mcp: FastMCP server instance.
        registry: Registry owning the workspace store.
        workspace: Workspace root served by this server.
        audit: AuditLogger for structured logging (stderr if None).
    """
    if audit is None:
        audit = AuditLogger()

    def _memory():
        return registry.get_or_create(workspace)

    # =====================================================================
    # WRITE
    # =====================================================================

    @mcp.tool()
    def memory_insert(
        texts: Union[str, List[str]],
        area: Optional[str] = None,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> Dict[str, Any]:
        """Store one or more texts as memories.

        Texts longer than 4000 characters are truncated.  All texts of one
        call share the same area and metadata.

        Args:
            texts: A text or list of texts.
            area: MAIN | FRAGMENTS | SOLUTIONS | INSTRUMENTS | KNOWLEDGE
                (default MAIN, or metadata["area"]).
            metadata: Free-form JSON metadata attached to every memory.

        Returns:
            ids: Generated memory ids, in input order.
        """
        t0 = time.monotonic()
        rid = audit.new_rid()
        outcome = "ok"
        detail: Dict[str, Any] = {}
        try:
            batch = [texts] if isinstance(texts, str) else list(texts)
            meta = dict(metadata or {})
            if area:
                meta["area"] = area
            detail = {"count": len(batch), "area": meta.get("area", "MAIN")}
            if batch:
                detail["first"] = AuditLogger.text_detail(batch[0])

            ids = _memory().insert(batch, meta)
            return {"status": "ok", "ids": ids, "count": len(ids)}
        except Exception as e:
            outcome = "error"
            return {"status": "error", "message": f"Insert failed: {e}"}
        finally:
            audit.log("memory_insert", rid, workspace, outcome, detail,
                      (time.monotonic() - t0) * 1000)

    # =====================================================================
    # SEARCH
    # =====================================================================

    @mcp.tool()
    def memory_search(
        query: str,
        limit: int = 10,
        threshold: float = 0.1,
        area: Optional[str] = None,
    ) -> Dict[str, Any]:
        """Rank memories by TF-IDF cosine similarity to a query.

        Args:
            query: Free-text query (keywords work best).
            limit: Max results (default 10).
            threshold: Minimum similarity in [0, 1] (default 0.1).
            area: Restrict to one area.

        Returns:
            count: Number of results.
            items: id, text, metadata, area, created_at, score — best first.
        """
        t0 = time.monotonic()
        rid = audit.new_rid()
        outcome = "ok"
        detail: Dict[str, Any] = {"query": AuditLogger.text_detail(query)}
        try:
            results = _memory().search(
                query, limit=limit, threshold=threshold,
                filter={"area": area} if area else None,
            )
            detail["results"] = len(results)
            return {
                "status": "ok",
                "count": len(results),
                "items": [r.to_dict() for r in results],
            }
        except Exception as e:
            outcome = "error"
            return {"status": "error", "message": f"Search failed: {e}"}
        finally:
            audit.log("memory_search", rid, workspace, outcome, detail,
                      (time.monotonic() - t0) * 1000)

    # =====================================================================
    # READ
    # =====================================================================

    @mcp.tool()
    def memory_get(memory_id: str) -> Dict[str, Any]:
        """Read one memory by id.

        Returns:
            item: The memory, or status "not_found".
        """
        t0 = time.monotonic()
        rid = audit.new_rid()
        outcome = "ok"
        try:
            mem = _memory().get_memory_by_id(memory_id)
            if mem is None:
                outcome = "not_found"
                return {"status": "not_found", "id": memory_id}
            return {"status": "ok", "item": mem.to_dict()}
        except Exception as e:
            outcome = "error"
            return {"status": "error", "message": f"Read failed: {e}"}
        finally:
            audit.log("memory_get", rid, workspace, outcome, {"id": memory_id},
                      (time.monotonic() - t0) * 1000)

    @mcp.tool()
    def memory_list(area: Optional[str] = None) -> Dict[str, Any]:
        """List up to 500 most recent memories, optionally for one area."""
        t0 = time.monotonic()
        rid = audit.new_rid()
        outcome = "ok"
        detail: Dict[str, Any] = {"area": area}
        try:
            memories = _memory().get_all_memories(area=area)
            detail["results"] = len(memories)
            return {
                "status": "ok",
                "count": len(memories),
                "items": [m.to_dict() for m in memories],
            }
        except Exception as e:
            outcome = "error"
            return {"status": "error", "message": f"List failed: {e}"}
        finally:
            audit.log("memory_list", rid, workspace, outcome, detail,
                      (time.monotonic() - t0) * 1000)

    @mcp.tool()
    def memory_stats() -> Dict[str, Any]:
        """Memory counts per area (all five areas always present)."""
        t0 = time.monotonic()
        rid = audit.new_rid()
        outcome = "ok"
        try:
            memory = _memory()
            by_area = memory.get_knowledge_stats()
            return {"status": "ok", "total": memory.count(), "by_area": by_area}
        except Exception as e:
            outcome = "error"
            return {"status": "error", "message": f"Stats failed: {e}"}
        finally:
            audit.log("memory_stats", rid, workspace, outcome, {},
                      (time.monotonic() - t0) * 1000)

    # =====================================================================
    # DELETE
    # =====================================================================

    @mcp.tool()
    def memory_delete(ids: Union[str, List[str]]) -> Dict[str, Any]:
        """Delete memories by id. Unknown ids are ignored.

        Returns:
            deleted: Number of memories removed.
        """
        t0 = time.monotonic()
        rid = audit.new_rid()
        outcome = "ok"
        detail: Dict[str, Any] = {}
        try:
            removed = _memory().delete(ids)
            detail["deleted"] = removed
            return {"status": "ok", "deleted": removed}
        except Exception as e:
            outcome = "error"
            return {"status": "error", "message": f"Delete failed: {e}"}
        finally:
            audit.log("memory_delete", rid, workspace, outcome, detail,
                      (time.monotonic() - t0) * 1000)

    @mcp.tool()
    def memory_forget(
        query: Optional[str] = None,
        area: Optional[str] = None,
    ) -> Dict[str, Any]:
        """Delete memories whose text contains a substring and/or in an area.

        The substring match is case-sensitive.  With neither argument,
        nothing is deleted.

        Returns:
            deleted: Number of memories removed.
        """
        t0 = time.monotonic()
        rid = audit.new_rid()
        outcome = "ok"
        detail: Dict[str, Any] = {"area": area}
        if query:
            detail["query"] = AuditLogger.text_detail(query)
        try:
            if not query and not area:
                outcome = "rejected"
                return {
                    "status": "rejected",
                    "deleted": 0,
                    "message": "Provide query and/or area; refusing to delete everything.",
                }
            removed = _memory().delete_by_query(query, area)
            detail["deleted"] = removed
            return {"status": "ok", "deleted": removed}
        except Exception as e:
            outcome = "error"
            return {"status": "error", "message": f"Forget failed: {e}"}
        finally:
            audit.log("memory_forget", rid, workspace, outcome, detail,
                      (time.monotonic() - t0) * 1000)

    # =====================================================================
    # FOLDER
    # =====================================================================

    @mcp.tool()
    def memory_preload() -> Dict[str, Any]:
        """Import new or changed files from the workspace knowledge directory.

        Unchanged files (same checksum as last import) are skipped.

        Returns:
            imported, skipped, errors (list of {path, error}).
        """
        t0 = time.monotonic()
        rid = audit.new_rid()
        outcome = "ok"
        detail: Dict[str, Any] = {}
        try:
            result = _memory().preload_knowledge()
            detail = {
                "imported": result.imported,
                "skipped": result.skipped,
                "errors": len(result.errors),
            }
            return {"status": "ok", **result.to_dict()}
        except Exception as e:
            outcome = "error"
            return {"status": "error", "message": f"Preload failed: {e}"}
        finally:
            audit.log("memory_preload", rid, workspace, outcome, detail,
                      (time.monotonic() - t0) * 1000)

    logger.debug(f"Registered memory tools for workspace {workspace}")
