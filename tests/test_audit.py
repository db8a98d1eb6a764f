"""
Tests for memidx.mcp.audit — JSONL audit records.
"""

import hashlib
import io
import json

from memidx.mcp.audit import AUDIT_SCHEMA_VERSION, PREVIEW_MAX_CHARS, AuditLogger


class _BrokenStream(io.StringIO):
    def write(self, s):
        raise OSError("disk full")


class TestAuditLogger:
    def test_record_shape(self):
        out = io.StringIO()
        audit = AuditLogger(output=out)
        rid = audit.new_rid()
        audit.log("memory_stats", rid, "/ws", "ok", {"n": 1}, latency_ms=3.14159)
        record = json.loads(out.getvalue())
        assert record["v"] == AUDIT_SCHEMA_VERSION
        assert record["rid"] == rid
        assert record["tool"] == "memory_stats"
        assert record["ws"] == "/ws"
        assert record["outcome"] == "ok"
        assert record["d"] == {"n": 1}
        assert record["ms"] == 3.1
        assert record["ts"].endswith("Z")

    def test_empty_detail_omitted(self):
        out = io.StringIO()
        AuditLogger(output=out).log("memory_stats", "r", "/ws", "ok")
        assert "d" not in json.loads(out.getvalue())

    def test_one_line_per_call(self):
        out = io.StringIO()
        audit = AuditLogger(output=out)
        audit.log("a", "1", "/ws", "ok")
        audit.log("b", "2", "/ws", "error")
        assert len(out.getvalue().splitlines()) == 2

    def test_rids_unique(self):
        audit = AuditLogger(output=io.StringIO())
        assert audit.new_rid() != audit.new_rid()

    def test_write_failure_never_raises(self):
        AuditLogger(output=_BrokenStream()).log("a", "1", "/ws", "ok")


class TestTextDetail:
    def test_short_text(self):
        d = AuditLogger.text_detail("hello\nworld")
        assert d["preview"] == "hello world"
        assert d["chars"] == 11
        assert d["hash"] == hashlib.sha256(b"hello\nworld").hexdigest()

    def test_long_text_truncated(self):
        text = "x" * (PREVIEW_MAX_CHARS + 50)
        d = AuditLogger.text_detail(text)
        assert d["preview"].endswith("…")
        assert len(d["preview"]) == PREVIEW_MAX_CHARS + 1
        assert d["chars"] == PREVIEW_MAX_CHARS + 50
