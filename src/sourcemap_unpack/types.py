from __future__ import annotations

"""Data model for source map extraction.

`SourceMapDocument` is the parsed input, `ResolvedSource` is one entry after
content resolution, and `ExtractionSummary` is the read-only report produced
next to the archive tree.
"""

from dataclasses import dataclass, field
from enum import Enum

# Normalized archive path -> encoded file content, in insertion order.
ArchiveTree = dict[str, bytes]


class Origin(str, Enum):
    EMBEDDED = "embedded"
    FETCHED = "fetched"
    ERROR_PLACEHOLDER = "error-placeholder"


@dataclass(frozen=True)
class SourceMapDocument:
    sources: list[str]
    # None means no `sourcesContent` at all: every entry is resolved externally.
    sources_content: list[str | None] | None = None
    source_root: str = ""
    file: str | None = None

    def __post_init__(self) -> None:
        if self.sources_content is None:
            object.__setattr__(self, "sources_content", [None] * len(self.sources))
        elif len(self.sources) != len(self.sources_content):
            raise ValueError(
                f"sources ({len(self.sources)}) and sources_content "
                f"({len(self.sources_content)}) must be the same length"
            )

    def __len__(self) -> int:
        return len(self.sources)


@dataclass(frozen=True)
class ResolvedSource:
    raw_identifier: str
    normalized_path: str
    content: str
    origin: Origin
    error: str | None = None


@dataclass(frozen=True)
class FailedSource:
    raw_identifier: str
    reason: str


@dataclass(frozen=True)
class ExtractionSummary:
    total_sources: int
    manifest_files: list[str] = field(default_factory=list)
    failed_sources: list[FailedSource] = field(default_factory=list)
    embedded_count: int = 0
    fetched_count: int = 0
    # (raw identifier, archive path) for entries moved off a colliding path.
    renamed: list[tuple[str, str]] = field(default_factory=list)

    @property
    def failed_identifiers(self) -> list[str]:
        return [f.raw_identifier for f in self.failed_sources]
