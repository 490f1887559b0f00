from __future__ import annotations

"""Source map acquisition and parsing.

Only the fields needed to rebuild the source tree are read: `sources`,
`sourcesContent`, `sourceRoot`, `file` and, for indexed maps, `sections`.
The `mappings` segments are never decoded.

Payloads may be zstd-compressed (`.map.zst` build artifacts); those are
detected by their frame magic and decompressed before JSON parsing.
"""

import base64
import json
import logging
from collections.abc import Callable
from pathlib import Path
from typing import Any
from urllib.parse import unquote_to_bytes, urlparse

import zstandard as zstd

from .errors import FetchError, MapFetchError, SourceMapError
from .types import SourceMapDocument

logger = logging.getLogger(__name__)

ZSTD_MAGIC = b"\x28\xb5\x2f\xfd"
XSSI_PREFIX = ")]}'"

# Bodies larger than this must declare their size in the zstd frame header.
MAX_DECOMPRESSED_SIZE = 512 * 1024 * 1024


def decode_payload(data: bytes | str) -> str:
    if isinstance(data, str):
        return data

    if data.startswith(ZSTD_MAGIC):
        try:
            data = zstd.ZstdDecompressor().decompress(data, max_output_size=MAX_DECOMPRESSED_SIZE)
        except zstd.ZstdError as e:
            raise SourceMapError(f"Could not decompress zstd source map: {e}") from e

    try:
        return data.decode("utf-8-sig")
    except UnicodeDecodeError as e:
        raise SourceMapError(f"Source map is not valid UTF-8: {e}") from e


def _flatten_sections(raw: dict[str, Any]) -> tuple[list[Any], list[Any]]:
    sources: list[Any] = []
    contents: list[Any] = []

    sections = raw["sections"]
    if not isinstance(sections, list):
        raise SourceMapError("'sections' must be a list")

    for i, section in enumerate(sections):
        if not isinstance(section, dict):
            raise SourceMapError(f"Section {i} is not an object")
        if "url" in section:
            raise SourceMapError(f"Section {i} references an external map ({section['url']!r}); not supported")
        inner = section.get("map")
        if not isinstance(inner, dict):
            raise SourceMapError(f"Section {i} has no inline 'map'")

        doc = _document_from_object(inner)
        sources.extend(doc.sources)
        contents.extend(doc.sources_content)

    return sources, contents


def _join_source_root(source_root: str, source: str) -> str:
    if not source_root or "://" in source or source.startswith("/"):
        return source
    return source_root.rstrip("/") + "/" + source


def _document_from_object(raw: Any) -> SourceMapDocument:
    if not isinstance(raw, dict):
        raise SourceMapError("Source map must be a JSON object")

    version = raw.get("version", 3)
    if version != 3:
        raise SourceMapError(f"Unsupported source map version: {version!r}")

    if "sections" in raw:
        sources, contents = _flatten_sections(raw)
        return SourceMapDocument(sources=sources, sources_content=contents, file=raw.get("file"))

    raw_sources = raw.get("sources")
    if not isinstance(raw_sources, list):
        raise SourceMapError("Source map has no 'sources' list")

    source_root = raw.get("sourceRoot") or ""
    if not isinstance(source_root, str):
        raise SourceMapError("'sourceRoot' must be a string")

    sources: list[str] = []
    for i, source in enumerate(raw_sources):
        if source is None:
            source = ""
        elif not isinstance(source, str):
            raise SourceMapError(f"sources[{i}] is not a string: {source!r}")
        sources.append(_join_source_root(source_root, source))

    raw_contents = raw.get("sourcesContent")
    if raw_contents is None:
        raw_contents = []
    elif not isinstance(raw_contents, list):
        raise SourceMapError("'sourcesContent' must be a list")

    if raw_contents and len(raw_contents) != len(sources):
        logger.warning(
            "sources (%d) != sourcesContent (%d); missing entries will be fetched",
            len(sources),
            len(raw_contents),
        )

    contents: list[str | None] = []
    for i in range(len(sources)):
        content = raw_contents[i] if i < len(raw_contents) else None
        contents.append(content if isinstance(content, str) else None)

    file = raw.get("file")
    return SourceMapDocument(
        sources=sources,
        sources_content=contents,
        source_root=source_root,
        file=file if isinstance(file, str) else None,
    )


def parse_sourcemap(data: bytes | str) -> SourceMapDocument:
    """Parse raw source map JSON (optionally zstd-compressed) into a document."""

    text = decode_payload(data)

    stripped = text.lstrip()
    if stripped.startswith(XSSI_PREFIX):
        # The guard line is dropped whole: `)]}'` optionally followed by junk up to the newline.
        newline = stripped.find("\n")
        text = stripped[newline + 1 :] if newline != -1 else ""

    try:
        raw = json.loads(text)
    except json.JSONDecodeError as e:
        raise SourceMapError(f"Source map is not valid JSON: {e}") from e

    return _document_from_object(raw)


def decode_data_url(url: str) -> bytes:
    """Decode a `data:` URL (as used by inline `sourceMappingURL` comments)."""

    try:
        header, payload = url[len("data:") :].split(",", 1)
    except ValueError as e:
        raise SourceMapError("Malformed data: URL") from e

    if header.endswith(";base64"):
        try:
            return base64.b64decode(payload, validate=False)
        except ValueError as e:
            raise SourceMapError(f"Malformed base64 in data: URL: {e}") from e

    return unquote_to_bytes(payload)


def load_sourcemap(
    location: str,
    fetch_bytes: Callable[[str], bytes],
) -> tuple[SourceMapDocument, str | None]:
    """Acquire and parse a map.

    Returns the document and the base location that relative `sources` are
    resolved against (`None` for inline `data:` maps).
    """

    if location.startswith("data:"):
        return parse_sourcemap(decode_data_url(location)), None

    scheme = urlparse(location).scheme.lower()
    if scheme in ("http", "https", "file"):
        try:
            data = fetch_bytes(location)
        except FetchError as e:
            raise MapFetchError(f"Could not retrieve source map from {location}: {e}") from e
        return parse_sourcemap(data), location

    path = Path(location).expanduser()
    try:
        data = path.read_bytes()
    except OSError as e:
        raise MapFetchError(f"Could not read source map {path}: {e}") from e

    return parse_sourcemap(data), path.resolve().as_uri()
