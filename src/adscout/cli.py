# Copyright (C) 2025-2026 Retio AI
# SPDX-License-Identifier: AGPL-3.0-only

"""adscout CLI: scan saved pages and inspect the pattern catalog.

Usage:
    adscout scan FILE [--url URL] [--catalog YAML] [--focus SELECTOR] [--requests FILE] [--format json|table]
    adscout patterns [--catalog YAML] [--category NAME]
"""

from __future__ import annotations

import argparse
import json
import sys
from pathlib import Path

from .config import ScannerConfig
from .errors import AdScoutError


def _require_cli_deps() -> None:
    """Check that CLI optional dependencies are installed."""
    try:
        import yaml  # noqa: F401
        from tabulate import tabulate  # noqa: F401
    except ImportError as e:
        print(
            f"Missing CLI dependency: {e.name}\nInstall with: pip install adscout[cli]",
            file=sys.stderr,
        )
        sys.exit(1)


def _load_registry(config: ScannerConfig, catalog: str | None):
    from .catalog import load_catalog_file
    from .patterns import PatternRegistry

    registry = PatternRegistry.with_defaults(config)
    if catalog:
        registry.update_from_external_config(load_catalog_file(catalog))
    return registry


def cmd_scan(args: argparse.Namespace) -> int:
    """Run one detection pass over a saved HTML page."""
    _require_cli_deps()
    from tabulate import tabulate

    from .dom import Document
    from .reporting import CollectingSink
    from .scanner import AdScanner

    config = ScannerConfig.from_env()
    html = Path(args.file).read_bytes()
    document = Document.from_html(html, url=args.url or "")
    registry = _load_registry(config, args.catalog)

    sink = CollectingSink()
    scanner = AdScanner(document, sink, config=config, registry=registry)

    if args.requests:
        for line in Path(args.requests).read_text(encoding="utf-8").splitlines():
            line = line.strip()
            if line and not line.startswith("#"):
                scanner.on_request_issued(line)

    if args.focus:
        for node in document.query_all(args.focus):
            scanner.add_focus(node, "cli-focus")

    scanner.run_scan()
    records = sink.records

    if args.format == "json":
        for record in records:
            print(json.dumps(record.to_dict(), ensure_ascii=False))
    else:
        rows = [
            [r.ad_type.value, f"{r.confidence:.2f}", r.source, r.destination_url, r.context_id] for r in records
        ]
        print(tabulate(rows, headers=["Type", "Confidence", "Source", "Destination", "Context"], tablefmt="simple"))

    if not records:
        print("No ads detected.", file=sys.stderr)
    return 0


def cmd_patterns(args: argparse.Namespace) -> int:
    """Print pattern health for the default (plus optional extra) catalog."""
    _require_cli_deps()
    from tabulate import tabulate

    registry = _load_registry(ScannerConfig.from_env(), args.catalog)
    rows = []
    for category, entries in registry.statistics().items():
        if args.category and category != args.category:
            continue
        for e in entries:
            rows.append(
                [category, e["pattern"], e["priority"], f"{e['success_rate']:.2f}", e["failures"], e["active"]]
            )
    headers = ["Category", "Pattern", "Priority", "Success", "Failures", "Active"]
    print(tabulate(rows, headers=headers, tablefmt="simple"))
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="adscout ad detection", prog="adscout")
    parser.add_argument("-v", "--verbose", action="store_true", help="Debug logging")
    parser.add_argument("--json-logs", action="store_true", help="Log as JSON lines on stderr")
    parser.add_argument("--level", default="WARNING", help="Log level (default: WARNING)")
    subparsers = parser.add_subparsers(dest="command", required=True)

    p_scan = subparsers.add_parser("scan", help="Scan a saved HTML page")
    p_scan.add_argument("file", metavar="FILE", help="HTML file to scan")
    p_scan.add_argument("--url", type=str, metavar="URL", help="Page URL (resolves links, provides the video id)")
    p_scan.add_argument("--catalog", type=str, metavar="YAML", help="Extra pattern catalog")
    p_scan.add_argument("--focus", type=str, metavar="SELECTOR", help="Treat matching elements as changed nodes")
    p_scan.add_argument("--requests", type=str, metavar="FILE", help="Request URLs observed on the page, one per line")
    p_scan.add_argument("--format", choices=["json", "table"], default="table", help="Output format (default: table)")
    p_scan.set_defaults(func=cmd_scan)

    p_patterns = subparsers.add_parser("patterns", help="Show pattern catalog health")
    p_patterns.add_argument("--catalog", type=str, metavar="YAML", help="Extra pattern catalog")
    p_patterns.add_argument("--category", type=str, metavar="NAME", help="Only this category")
    p_patterns.set_defaults(func=cmd_patterns)
    return parser


def main(argv: list[str] | None = None) -> None:
    """CLI entry point."""
    from .logging_config import configure

    parser = build_parser()
    args = parser.parse_args(argv)
    configure(json_output=args.json_logs, level="DEBUG" if args.verbose else args.level)

    try:
        code = args.func(args)
    except KeyboardInterrupt:
        print("\nInterrupted.", file=sys.stderr)
        sys.exit(130)
    except (AdScoutError, OSError, ValueError) as e:
        print(f"Error: {e}", file=sys.stderr)
        if args.verbose:
            import traceback

            traceback.print_exc(file=sys.stderr)
        sys.exit(1)
    sys.exit(code)


if __name__ == "__main__":
    main()
