from __future__ import annotations

"""Archive tree construction and serialization.

`ArchiveBuilder` is the single writer of the archive tree. Entries are added
in `sources` order; when two sources normalize to the same path the later one
gets a numeric suffix before its extension (`a.js`, `a_1.js`, `a_2.js`) so
nothing is overwritten and the assignment is reproducible. A file and a
directory never share a name, so the tree always extracts to a real
filesystem.

Serialization is deliberately dumb: a zip with one member per tree entry, or
a directory with one file per entry.
"""

import io
import logging
import zipfile
from pathlib import Path

from .errors import ArchiveWriteError, UnsafePathError
from .paths import safe_join, with_numeric_suffix
from .types import ArchiveTree, ResolvedSource

logger = logging.getLogger(__name__)

# Fixed member metadata keeps identical trees byte-identical across runs.
ZIP_TIMESTAMP = (1980, 1, 1, 0, 0, 0)
ZIP_FILE_MODE = 0o100644


def encode_content(content: str) -> bytes:
    return content.encode("utf-8", errors="replace")


class ArchiveBuilder:
    def __init__(self) -> None:
        self._tree: ArchiveTree = {}
        # Every ancestor directory of a stored file.
        self._dirs: set[str] = set()

    def __len__(self) -> int:
        return len(self._tree)

    def __contains__(self, path: object) -> bool:
        return path in self._tree

    def _free_dir(self, prefix: str) -> str:
        candidate = prefix
        n = 1
        while candidate in self._tree:
            candidate = f"{prefix}_{n}"
            n += 1
        return candidate

    def _free_path(self, path: str) -> str:
        """Find a path that is neither a stored file, a used directory, nor
        below a stored file.

        Directory segments that clash with an existing file are suffixed
        (`src/a.js` after a file `src` becomes `src_1/a.js`); the file name
        itself is suffixed before its extension.
        """

        *dirs, name = path.split("/")
        parent = ""
        for segment in dirs:
            parent = self._free_dir(f"{parent}/{segment}" if parent else segment)

        base = f"{parent}/{name}" if parent else name
        candidate = base
        n = 1
        while candidate in self._tree or candidate in self._dirs:
            candidate = with_numeric_suffix(base, n)
            n += 1
        return candidate

    def add(self, record: ResolvedSource) -> str:
        """Insert a resolved source and return the archive path it was given."""

        path = self._free_path(record.normalized_path)
        if path != record.normalized_path:
            logger.info("Path collision for %s: stored as %s", record.raw_identifier, path)

        self._tree[path] = encode_content(record.content)
        parts = path.split("/")
        for i in range(1, len(parts)):
            self._dirs.add("/".join(parts[:i]))
        return path

    @property
    def tree(self) -> ArchiveTree:
        return dict(self._tree)


def build_zip(tree: ArchiveTree) -> bytes:
    buffer = io.BytesIO()
    with zipfile.ZipFile(buffer, "w", compression=zipfile.ZIP_DEFLATED) as zf:
        for path, content in tree.items():
            info = zipfile.ZipInfo(path, date_time=ZIP_TIMESTAMP)
            info.compress_type = zipfile.ZIP_DEFLATED
            info.external_attr = ZIP_FILE_MODE << 16
            try:
                zf.writestr(info, content)
            except UnicodeEncodeError as e:
                raise ArchiveWriteError(f"Archive path is not encodable: {path!r}") from e
    return buffer.getvalue()


def write_zip(tree: ArchiveTree, output_path: Path) -> int:
    """Serialize the tree to a zip at `output_path`. Returns the payload size."""

    payload = build_zip(tree)
    try:
        output_path.parent.mkdir(parents=True, exist_ok=True)
        output_path.write_bytes(payload)
    except OSError as e:
        raise ArchiveWriteError(f"Could not write {output_path}: {e}") from e
    return len(payload)


def write_directory(tree: ArchiveTree, output_dir: Path) -> int:
    """Write each tree entry as a file under `output_dir`.

    Returns the number of files written.
    """

    written = 0
    try:
        output_dir.mkdir(parents=True, exist_ok=True)
        for path, content in tree.items():
            try:
                out_path = safe_join(output_dir, path)
            except UnsafePathError as e:
                raise ArchiveWriteError(str(e)) from e

            out_path.parent.mkdir(parents=True, exist_ok=True)
            out_path.write_bytes(content)
            written += 1
    except (OSError, UnicodeEncodeError) as e:
        raise ArchiveWriteError(f"Could not write to {output_dir}: {e}") from e

    return written
