"""Startup banner — mode-aware status output.

Prints a short banner with the watched tables, the channel state, and the
status server URL.  Detects ``NO_COLOR`` / ``TERM`` for safe fallback.
"""

from __future__ import annotations

import os
import sys
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from collections.abc import Iterable

    from ledgerline.config import SyncConfig


# ---------------------------------------------------------------------------
# ANSI helpers — respect NO_COLOR (https://no-color.org)
# ---------------------------------------------------------------------------

def _supports_color() -> bool:
    """Return True if the terminal supports ANSI colors."""
    if os.environ.get("NO_COLOR"):
        return False
    if os.environ.get("TERM") == "dumb":
        return False
    return hasattr(sys.stderr, "isatty") and sys.stderr.isatty()


_COLOR = _supports_color()

_RESET = "\033[0m" if _COLOR else ""
_BOLD = "\033[1m" if _COLOR else ""
_DIM = "\033[2m" if _COLOR else ""
_CYAN = "\033[36m" if _COLOR else ""
_GREEN = "\033[32m" if _COLOR else ""
_YELLOW = "\033[33m" if _COLOR else ""
_RED = "\033[31m" if _COLOR else ""


_MODE_STYLES: dict[str, tuple[str, str]] = {
    "tail": (_GREEN, "tail"),
    "serve": (_CYAN, "serve"),
}


def _mode_badge(mode: str) -> str:
    """Return a styled [mode] badge."""
    color, label = _MODE_STYLES.get(mode, (_DIM, mode))
    return f"{color}[{label}]{_RESET}"


def _state_label(connected: bool | None) -> str:
    if connected is None:
        return f"{_DIM}pending{_RESET}"
    if connected:
        return f"{_GREEN}Live{_RESET}"
    return f"{_RED}Offline{_RESET}"


def format_banner(
    config: SyncConfig,
    tables: Iterable[str],
    mode: str,
    *,
    connected: bool | None = None,
    load_ms: float = 0.0,
    warnings: list[str] | None = None,
) -> str:
    """Build the banner text (without printing it)."""
    from ledgerline import __version__

    table_list = sorted(tables)
    lines: list[str] = [
        "",
        f"  {_BOLD}ledgerline{_RESET} {_DIM}v{__version__}{_RESET}  {_mode_badge(mode)}",
        f"  {_DIM}{'─' * 43}{_RESET}",
    ]

    tables_label = "table" if len(table_list) == 1 else "tables"
    lines.append(f"  {_DIM}├─{_RESET} {len(table_list)} {tables_label}: {', '.join(table_list)}")
    lines.append(f"  {_DIM}├─{_RESET} schema: {config.schema}")

    timing = f" {_DIM}in {load_ms:.0f}ms{_RESET}" if load_ms > 0 else ""
    lines.append(f"  {_DIM}└─{_RESET} channel: {_state_label(connected)}{timing}")

    if mode == "serve":
        lines.append("")
        lines.append(f"  {_CYAN}http://{config.host}:{config.port}/__ledgerline/status{_RESET}")

    if warnings:
        lines.append("")
        lines.extend(f"  {_YELLOW}!{_RESET} {w}" for w in warnings)

    lines.append("")
    return "\n".join(lines)


def print_banner(
    config: SyncConfig,
    tables: Iterable[str],
    mode: str,
    *,
    connected: bool | None = None,
    load_ms: float = 0.0,
    warnings: list[str] | None = None,
) -> None:
    """Print the ledgerline startup banner to stderr."""
    print(
        format_banner(
            config, tables, mode,
            connected=connected, load_ms=load_ms, warnings=warnings,
        ),
        file=sys.stderr,
    )
