from __future__ import annotations

"""Path normalization and safe filesystem joins.

Source map `sources` entries are whatever the bundler chose to write: virtual
scheme URIs (`webpack://./src/a.js`), relative paths, parent traversals,
absolute paths and characters no filesystem accepts.

This module provides:
- `normalize_source_path()` to turn one of those into a safe, relative,
  POSIX-style archive path. It never fails and never resolves `..`; traversal
  is rendered as literal `parent/` segments so distinct depths stay distinct.
- A `safe_join()` helper that prevents directory traversal when writing outputs.
"""

import hashlib
import re
from pathlib import Path, PurePosixPath

from .errors import UnsafePathError

# `webpack://./`, `turbopack://./`, `vite://./` ...
_SCHEME_RELATIVE_PREFIX = re.compile(r"^[A-Za-z][A-Za-z0-9+.\-]*://\./")

# Lone surrogates are valid in JSON strings but cannot be encoded as a file name.
_ILLEGAL_CHARS = re.compile(r'[<>:"|?*\x00-\x1f\x7f\ud800-\udfff]')

PARENT_SEGMENT = "parent"
PLACEHOLDER_PREFIX = "unnamed_"


def _strip_known_prefixes(path: str) -> str:
    """Remove a bundler `scheme://./` prefix, else a leading `./`."""

    match = _SCHEME_RELATIVE_PREFIX.match(path)
    if match:
        return path[match.end() :]

    if path.startswith("./"):
        return path[2:]

    return path


def placeholder_name(raw_identifier: str) -> str:
    digest = hashlib.sha1(raw_identifier.encode("utf-8", errors="surrogatepass")).hexdigest()
    return f"{PLACEHOLDER_PREFIX}{digest[:12]}"


def normalize_source_path(raw_identifier: str) -> str:
    """Normalize a raw `sources` entry into a relative POSIX archive path.

    - Strips `scheme://./` bundler prefixes (matched before character
      substitution, so the scheme's `:` does not hide it), else a leading `./`
    - Replaces `< > : " | ? *`, control characters and lone surrogates with `_`
    - Normalizes separators to '/' and drops empty and '.' segments, which
      also makes absolute-looking paths root-relative
    - Rewrites each '..' segment to a literal 'parent' segment

    Paths that end up empty or made only of '..' segments get a stable hashed
    placeholder name instead.
    """

    path = _strip_known_prefixes(raw_identifier)
    path = _ILLEGAL_CHARS.sub("_", path)
    path = path.replace("\\", "/")

    parts = [part for part in path.split("/") if part not in ("", ".")]
    if all(part == ".." for part in parts):
        return placeholder_name(raw_identifier)

    parts = [PARENT_SEGMENT if part == ".." else part for part in parts]
    return "/".join(parts)


def with_numeric_suffix(path: str, n: int) -> str:
    """Insert `_n` before the last extension: `a/name.js` -> `a/name_1.js`."""

    pure = PurePosixPath(path)
    name = f"{pure.stem}_{n}{pure.suffix}"
    if pure.parent == PurePosixPath("."):
        return name
    return str(pure.parent / name)


def safe_join(base: Path, relative_path: str) -> Path:
    """Join a normalized archive path to a base directory without allowing traversal."""

    parts = PurePosixPath(relative_path).parts
    if not parts or any(part in ("..", "/") for part in parts):
        raise UnsafePathError(f"Unsafe archive path: {relative_path!r}")

    # Convert posix-ish path to platform path safely.
    joined = base.joinpath(*parts)

    base_resolved = base.resolve(strict=False)
    joined_resolved = joined.resolve(strict=False)

    if not joined_resolved.is_relative_to(base_resolved):
        raise UnsafePathError(f"Path escapes output directory: {relative_path!r}")

    return joined
