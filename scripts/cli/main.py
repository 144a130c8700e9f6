#!/usr/bin/env python3
"""Route map CLI: locate backend entry points and catalogue HTTP endpoints."""

from __future__ import annotations

import argparse
import json
import sys
import time
from pathlib import Path
from typing import List, Optional, Sequence

from ir import relative_path, save_catalogue
from routemap import DiscoveryOptions, ProjectRootError, locate_entry_files, scan_project
from routemap.models import EndpointDescriptor, ParamType
from utils import format_duration, plural
from .config import parse_entries, resolve_out_path

EXIT_OK = 0
EXIT_BAD_ROOT = 1
EXIT_NO_ENTRY = 2


def format_params(params: Sequence[ParamType]) -> str:
    return ",".join(f"{param.name}:{param.type}{'' if param.required else '?'}" for param in params)


def format_endpoint(endpoint: EndpointDescriptor) -> str:
    parts = [f"{endpoint.method:<7} {endpoint.url}", f"[{endpoint.request_data_type}]"]
    for label, params in (
        ("params", endpoint.param_types),
        ("query", endpoint.query_param_types),
        ("body", endpoint.body_param_types),
    ):
        if params:
            parts.append(f"{label}({format_params(params)})")
    if endpoint.headers:
        parts.append(f"headers({','.join(endpoint.headers)})")
    return "  ".join(parts)


def cmd_scan(args: argparse.Namespace) -> int:
    options = DiscoveryOptions(
        entrypoints=parse_entries(args.entry),
        workers=args.workers,
        show_progress=not args.quiet,
    )
    started = time.monotonic()
    try:
        result = scan_project(Path(args.root), options)
    except ProjectRootError as exc:
        print(f"error: {exc}", file=sys.stderr)
        return EXIT_BAD_ROOT
    for warning in result.warnings:
        print(f"warning: {warning}", file=sys.stderr)
    if not result.entry_files:
        print("error: no backend entry point found; pass --entry FILE", file=sys.stderr)
        return EXIT_NO_ENTRY

    catalogue = result.to_catalogue()
    out_path = resolve_out_path(Path(result.project_root), args.out)
    save_catalogue(out_path, catalogue)

    if args.json:
        print(json.dumps(catalogue["endpoints"], ensure_ascii=True, indent=2))
        return EXIT_OK
    elapsed = format_duration(time.monotonic() - started)
    print(
        f"{plural(len(result.endpoints), 'endpoint')} from "
        f"{plural(len(result.analyzed_files), 'file')} in {elapsed}"
    )
    for endpoint in result.endpoints:
        print(f"  {format_endpoint(endpoint)}")
    print(f"catalogue: {out_path}")
    return EXIT_OK


def cmd_entrypoints(args: argparse.Namespace) -> int:
    try:
        entries, diagnostics = locate_entry_files(Path(args.root))
    except ProjectRootError as exc:
        print(f"error: {exc}", file=sys.stderr)
        return EXIT_BAD_ROOT
    for diagnostic in diagnostics:
        print(f"warning: {diagnostic}", file=sys.stderr)
    root = Path(args.root).resolve()
    if not entries:
        print("error: no backend entry point found", file=sys.stderr)
        return EXIT_NO_ENTRY
    for entry in entries:
        print(relative_path(entry, root))
    return EXIT_OK


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="route-map",
        description="Discover the HTTP endpoints of an Express-style backend by static analysis.",
    )
    sub = parser.add_subparsers(dest="command", required=True)

    scan = sub.add_parser("scan", help="Scan a project and write its endpoint catalogue")
    scan.add_argument("root", nargs="?", default=".", help="Project root (default: current directory)")
    scan.add_argument(
        "--entry",
        action="append",
        help="Entry file relative to the root; repeat or comma-separate to pin several",
    )
    scan.add_argument("--workers", type=int, default=None, help="Threads for analyzing files (1 walks sequentially)")
    scan.add_argument("--out", default=None, help="Catalogue file or directory (default: workspace/route-map/<name>/)")
    scan.add_argument("--json", action="store_true", help="Print the endpoint list as JSON")
    scan.add_argument("--quiet", action="store_true", help="Suppress progress output")
    scan.set_defaults(func=cmd_scan)

    entry = sub.add_parser("entrypoints", help="List candidate backend entry files")
    entry.add_argument("root", nargs="?", default=".", help="Project root (default: current directory)")
    entry.set_defaults(func=cmd_entrypoints)
    return parser


def main(argv: Optional[List[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    return args.func(args)


if __name__ == "__main__":
    sys.exit(main())
