"""Tests for ledgerline.banner — startup banner output."""

from __future__ import annotations

import io
import sys
from pathlib import Path
from unittest.mock import patch

from ledgerline.banner import format_banner, print_banner
from ledgerline.config import SyncConfig


class TestPrintBanner:
    """Tests for the startup banner."""

    def _capture_banner(self, tables: tuple[str, ...] = ("customers",), **kwargs: object) -> str:
        """Call print_banner and capture stderr output."""
        buf = io.StringIO()
        with patch.object(sys, "stderr", buf):
            config = SyncConfig(root=Path("/tmp/test-books"))
            print_banner(config, tables, **kwargs)  # type: ignore[arg-type]
        return buf.getvalue()

    def test_tail_banner(self) -> None:
        output = self._capture_banner(("expenses", "customers"), mode="tail", connected=True, load_ms=42.5)
        assert "ledgerline" in output
        assert "[tail]" in output
        assert "2 tables: customers, expenses" in output
        assert "Live" in output
        assert "42ms" in output
        assert "__ledgerline/status" not in output

    def test_serve_banner(self) -> None:
        output = self._capture_banner(mode="serve")
        assert "[serve]" in output
        assert "1 table: customers" in output
        assert "pending" in output
        assert "http://127.0.0.1:3000/__ledgerline/status" in output

    def test_offline(self) -> None:
        output = self._capture_banner(mode="tail", connected=False)
        assert "Offline" in output

    def test_warnings(self) -> None:
        output = self._capture_banner(mode="tail", warnings=["unknown table 'orders'"])
        assert "unknown table 'orders'" in output

    def test_schema_shown(self) -> None:
        config = SyncConfig(root=Path("/tmp/test-books"), schema="audit")
        assert "schema: audit" in format_banner(config, ["customers"], "tail")
