"""
MCP Audit Logger — Structured JSONL logging for MCP tool calls.

One record per tool call, written to stderr or an append-only file.

Privacy rules:
- Never log raw memory text or queries beyond a 120-char preview
- Include SHA-256 hash for correlation without content storage

The log() method is fire-and-forget: write failures are reported through
the module logger and never disrupt tool execution.
"""

from __future__ import annotations

import hashlib
import json
import logging
import sys
import uuid
from datetime import datetime, timezone
from typing import Any, Dict, Optional, TextIO

logger = logging.getLogger(__name__)

AUDIT_SCHEMA_VERSION = 1
PREVIEW_MAX_CHARS = 120


class AuditLogger:
    """Structured JSONL audit logger for MCP tool calls."""

    def __init__(self, output: Optional[TextIO] = None):
        """
        Args:
            output: File handle for audit output. None → stderr.
        """
        self._output = output if output is not None else sys.stderr

    def new_rid(self) -> str:
        """Generate a new request ID (UUID4 hex string)."""
        return uuid.uuid4().hex

    def log(
        self,
        tool: str,
        rid: str,
        workspace: str,
        outcome: str,
        detail: Optional[Dict[str, Any]] = None,
        latency_ms: float = 0.0,
    ) -> None:
        """
        Write one JSONL audit record. Never raises.

        Args:
            tool: MCP tool name (e.g. "memory_insert").
            rid: Request ID (from new_rid()).
            workspace: Workspace root the call operated on.
            outcome: "ok" or "error".
            detail: Tool-specific fields.
            latency_ms: Wall-clock latency in milliseconds.
        """
        now = datetime.now(timezone.utc)
        record: Dict[str, Any] = {
            "v": AUDIT_SCHEMA_VERSION,
            "ts": now.strftime("%Y-%m-%dT%H:%M:%S.") + f"{now.microsecond // 1000:03d}Z",
            "rid": rid,
            "tool": tool,
            "ws": workspace,
            "outcome": outcome,
        }
        if detail:
            record["d"] = detail
        record["ms"] = round(latency_ms, 1)

        try:
            line = json.dumps(record, ensure_ascii=False, separators=(",", ":"))
            self._output.write(line + "\n")
            self._output.flush()
        except (OSError, ValueError, TypeError) as exc:
            logger.warning("Audit write failed for %s: %s", tool, exc)

    @staticmethod
    def text_detail(text: str) -> Dict[str, Any]:
        """
        Safe audit fields for a text argument (memory text or query).

        - preview: first 120 chars, newlines → space, truncated with '…'
        - hash: SHA-256 hex digest
        - chars: total length
        """
        preview = text[:PREVIEW_MAX_CHARS].replace("\n", " ").replace("\r", "")
        if len(text) > PREVIEW_MAX_CHARS:
            preview = preview.rstrip() + "…"
        return {
            "chars": len(text),
            "hash": hashlib.sha256(text.encode("utf-8")).hexdigest(),
            "preview": preview,
        }
