"""Ledgerline CLI — ledgerline tail / ledgerline serve.

Entry point for the ``ledgerline`` command-line interface.
"""

from __future__ import annotations

import argparse
import sys


def _build_parser() -> argparse.ArgumentParser:
    """Build the argument parser for the ledgerline CLI."""
    from ledgerline._types import KNOWN_TABLES

    parser = argparse.ArgumentParser(
        prog="ledgerline",
        description="Realtime change sync for bookkeeping tables.",
        epilog=f"Known tables: {', '.join(sorted(KNOWN_TABLES))}",
    )
    parser.add_argument(
        "--version",
        action="version",
        version=f"%(prog)s {_get_version()}",
    )

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    # ledgerline tail
    tail_parser = subparsers.add_parser(
        "tail",
        help="Print every change on the given tables",
    )
    tail_parser.add_argument("tables", nargs="+", help="Tables to watch")
    tail_parser.add_argument("--root", default=".", help="Directory holding ledgerline.yaml")
    tail_parser.add_argument("--schema", default=None, help="Database schema")

    # ledgerline serve
    serve_parser = subparsers.add_parser(
        "serve",
        help="Run the Live / Offline status server",
    )
    serve_parser.add_argument("tables", nargs="+", help="Tables to watch")
    serve_parser.add_argument("--root", default=".", help="Directory holding ledgerline.yaml")
    serve_parser.add_argument("--schema", default=None, help="Database schema")
    serve_parser.add_argument("--host", default=None, help="Bind address")
    serve_parser.add_argument("--port", type=int, default=None, help="Bind port")

    return parser


def _get_version() -> str:
    """Get the package version."""
    from ledgerline import __version__

    return __version__


def main(argv: list[str] | None = None) -> None:
    """CLI entry point."""
    parser = _build_parser()
    args = parser.parse_args(argv)

    if args.command is None:
        parser.print_help()
        sys.exit(0)

    from ledgerline._errors import ConfigError
    from ledgerline.app import serve, tail

    try:
        if args.command == "tail":
            tail(args.tables, root=args.root, schema=args.schema)
        elif args.command == "serve":
            serve(
                args.tables, root=args.root, schema=args.schema,
                host=args.host, port=args.port,
            )
    except ConfigError as exc:
        print(f"  Config error: {exc}", file=sys.stderr)
        sys.exit(2)


if __name__ == "__main__":
    main()
