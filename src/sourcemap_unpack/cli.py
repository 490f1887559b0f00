from __future__ import annotations

"""Command-line interface for sourcemap-unpack.

Default mode writes every source listed in the map into a zip archive. Use
`--directory` to write the files out directly instead.
"""

import argparse
import logging
import sys
from importlib.metadata import PackageNotFoundError, version
from pathlib import Path
from urllib.parse import urlparse

from .errors import SourceMapUnpackError
from .extract import DEFAULT_WORKERS, extract_sourcemap
from .fetch import DEFAULT_TIMEOUT, DEFAULT_USER_AGENT, HttpFetcher
from .types import Origin, ResolvedSource

DEFAULT_OUTPUT = "extracted_sources.zip"


def get_version() -> str:
    try:
        return version("sourcemap-unpack")
    except PackageNotFoundError:
        return "1.0.0"


def is_valid_url(value: str) -> bool:
    parsed = urlparse(value)
    if parsed.scheme in ("http", "https"):
        return bool(parsed.netloc)
    return parsed.scheme in ("file", "data")


def is_valid_target(value: str) -> bool:
    return is_valid_url(value) or Path(value).expanduser().is_file()


def prompt_for_target() -> str:
    while True:
        value = input("Enter source map URL: ").strip()
        if is_valid_target(value):
            return value
        print("Please enter a valid URL")


def build_parser() -> argparse.ArgumentParser:
    return argparse.ArgumentParser(
        prog="sourcemap-unpack",
        description="Extract source files from JavaScript source maps",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
    sourcemap-unpack https://example.com/app.js.map
    sourcemap-unpack -o sources.zip https://example.com/app.js.map
    sourcemap-unpack dist/app.js.map -d src_out/   # Write files, not a zip
    sourcemap-unpack app.js.map -n                 # Dry run - list files
        """,
    )


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    parser.add_argument("source_map", nargs="?", help="Source map URL or local file path")
    parser.add_argument("-o", "--output", default=DEFAULT_OUTPUT, help=f"Output file path (default: {DEFAULT_OUTPUT})")
    parser.add_argument("-d", "--directory", dest="output_dir", help="Write files to this directory instead of a zip")
    parser.add_argument("-n", "--dry-run", action="store_true", help="List files without extracting")
    parser.add_argument(
        "-j",
        "--jobs",
        type=int,
        default=DEFAULT_WORKERS,
        help=f"Concurrent source fetches (default: {DEFAULT_WORKERS})",
    )
    parser.add_argument(
        "--timeout",
        type=float,
        default=DEFAULT_TIMEOUT,
        help=f"Per-request timeout in seconds (default: {DEFAULT_TIMEOUT:g})",
    )
    parser.add_argument("-k", "--insecure", action="store_true", help="Skip TLS certificate verification")
    parser.add_argument("--verbose", action="store_true", help="List each file and log fetches")
    parser.add_argument("-v", "--version", action="version", version=get_version())

    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(levelname)s: %(message)s",
    )

    target = args.source_map
    if target is None:
        try:
            target = prompt_for_target()
        except (EOFError, KeyboardInterrupt):
            print(file=sys.stderr)
            return 130
    elif not is_valid_target(target):
        print(f"Error: Invalid URL: {target}", file=sys.stderr)
        return 1

    if args.jobs < 1:
        print("Error: --jobs must be at least 1", file=sys.stderr)
        return 1

    as_directory = args.output_dir is not None
    output = Path(args.output_dir) if as_directory else Path(args.output)

    def report(record: ResolvedSource, path: str, index: int, total: int) -> None:
        if args.dry_run:
            marker = " [placeholder]" if record.origin is Origin.ERROR_PLACEHOLDER else ""
            print(f"  {path}{marker}")
        elif args.verbose:
            print(f"  [{index + 1}/{total}] {record.raw_identifier} -> {path}")

    print(f"Fetching source map from: {target}")
    fetcher = HttpFetcher(
        timeout=args.timeout,
        verify=not args.insecure,
        user_agent=f"{DEFAULT_USER_AGENT}/{get_version()}",
    )

    try:
        summary = extract_sourcemap(
            target,
            output,
            as_directory=as_directory,
            dry_run=args.dry_run,
            fetcher=fetcher,
            max_workers=args.jobs,
            on_progress=report,
        )
    except SourceMapUnpackError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    if summary.manifest_files:
        print(f"Found {len(summary.manifest_files)} package.json file(s):")
        for name in summary.manifest_files:
            print(f"  - {name}")
    else:
        print("No package.json files found in source map")

    for failure in summary.failed_sources:
        print(f"  FAILED: {failure.raw_identifier} - {failure.reason}", file=sys.stderr)

    for raw, path in summary.renamed:
        print(f"  RENAMED: {raw} -> {path}")

    if args.dry_run:
        print(f"Would extract {summary.total_sources} source files to {output}")
        return 0

    print(
        f"Extracted {summary.total_sources} source files to {output} "
        f"({summary.embedded_count} embedded, {summary.fetched_count} fetched, "
        f"{len(summary.failed_sources)} failed)"
    )
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
