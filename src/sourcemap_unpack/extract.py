from __future__ import annotations

"""Extraction orchestration.

`extract()` drives one parsed map through content resolution, path
normalization and the archive builder:

- Entries without embedded content are fetched on a thread pool; every other
  step runs on the calling thread.
- Records are inserted strictly in `sources` order, whatever order the
  fetches complete in, so collision suffixes are reproducible.
- Fetch failures only degrade their own entry (see `resolve.py`).

`extract_sourcemap()` is the end-to-end helper used by the CLI: acquire the
map, extract, and write the archive.
"""

import logging
from collections.abc import Callable
from concurrent.futures import Future, ThreadPoolExecutor
from pathlib import Path

from .archive import ArchiveBuilder, write_directory, write_zip
from .fetch import HttpFetcher
from .paths import normalize_source_path
from .resolve import Fetcher, resolve_content
from .sourcemap import load_sourcemap
from .types import ArchiveTree, ExtractionSummary, FailedSource, Origin, ResolvedSource, SourceMapDocument

logger = logging.getLogger(__name__)

DEFAULT_WORKERS = 8
MANIFEST_NAME = "package.json"

# (record, archive path, index, total)
ProgressHook = Callable[[ResolvedSource, str, int, int], None]


def is_manifest(raw_identifier: str) -> bool:
    return MANIFEST_NAME in raw_identifier


def extract(
    document: SourceMapDocument,
    base_url: str | None,
    fetch: Fetcher,
    *,
    max_workers: int = DEFAULT_WORKERS,
    on_progress: ProgressHook | None = None,
) -> tuple[ArchiveTree, ExtractionSummary]:
    """Resolve every source of `document` into an archive tree.

    Never raises for per-source failures; those are reported in the summary's
    `failed_sources` and stored as placeholder files.
    """

    total = len(document)
    manifest_files = [source for source in document.sources if is_manifest(source)]

    builder = ArchiveBuilder()
    failed: list[FailedSource] = []
    renamed: list[tuple[str, str]] = []
    counts = {origin: 0 for origin in Origin}

    pool = ThreadPoolExecutor(max_workers=max(1, max_workers), thread_name_prefix="sourcemap-fetch")
    try:
        pending: dict[int, Future[tuple[str, Origin, str | None]]] = {
            i: pool.submit(resolve_content, source, None, base_url, fetch)
            for i, (source, content) in enumerate(zip(document.sources, document.sources_content))
            if content is None
        }

        for i, (source, embedded) in enumerate(zip(document.sources, document.sources_content)):
            if i in pending:
                content, origin, error = pending.pop(i).result()
            else:
                content, origin, error = resolve_content(source, embedded, base_url, fetch)

            record = ResolvedSource(
                raw_identifier=source,
                normalized_path=normalize_source_path(source),
                content=content,
                origin=origin,
                error=error,
            )

            path = builder.add(record)
            counts[origin] += 1
            if error is not None:
                failed.append(FailedSource(raw_identifier=source, reason=error))
            if path != record.normalized_path:
                renamed.append((source, path))

            logger.debug("%s -> %s (%s)", source, path, origin.value)
            if on_progress is not None:
                on_progress(record, path, i, total)
    finally:
        pool.shutdown(wait=True, cancel_futures=True)

    summary = ExtractionSummary(
        total_sources=total,
        manifest_files=manifest_files,
        failed_sources=failed,
        embedded_count=counts[Origin.EMBEDDED],
        fetched_count=counts[Origin.FETCHED],
        renamed=renamed,
    )
    return builder.tree, summary


def extract_sourcemap(
    location: str,
    output: Path,
    *,
    as_directory: bool = False,
    dry_run: bool = False,
    fetcher: HttpFetcher | None = None,
    max_workers: int = DEFAULT_WORKERS,
    on_progress: ProgressHook | None = None,
) -> ExtractionSummary:
    """Fetch or read a map, extract its sources and write them to `output`.

    Raises `MapFetchError`/`SourceMapError` before anything is written when the
    map itself is unusable, and `ArchiveWriteError` if the output cannot be
    written. With `dry_run` nothing is written.
    """

    with fetcher or HttpFetcher() as fetch:
        document, base_url = load_sourcemap(location, fetch.fetch_bytes)
        logger.info("Source map loaded from %s (%d sources)", location, len(document))
        tree, summary = extract(document, base_url, fetch, max_workers=max_workers, on_progress=on_progress)

    if dry_run:
        return summary

    if as_directory:
        write_directory(tree, output)
    else:
        write_zip(tree, output)

    return summary
