from __future__ import annotations


class SourceMapUnpackError(Exception):
    """Base exception for sourcemap-unpack."""


class UnsafePathError(SourceMapUnpackError):
    """Raised when an archive path is unsafe to write to disk."""


class SourceMapError(SourceMapUnpackError):
    """Raised when a source map cannot be parsed or is unsupported."""


class MapFetchError(SourceMapUnpackError):
    """Raised when the source map itself cannot be retrieved."""


class ArchiveWriteError(SourceMapUnpackError):
    """Raised when the output archive or directory cannot be written."""


class FetchError(SourceMapUnpackError):
    """Base for failures of the fetch collaborator.

    These are recoverable per source entry: the resolver turns them into
    placeholder content instead of aborting the extraction.
    """


class HTTPStatusError(FetchError):
    def __init__(self, url: str, status_code: int) -> None:
        super().__init__(f"HTTP error! status: {status_code}")
        self.url = url
        self.status_code = status_code


class FetchTimeoutError(FetchError):
    """Raised when a request exceeds the fetcher's timeout."""


class NetworkError(FetchError):
    """Raised for connection-level failures (DNS, refused, TLS, I/O)."""


class UnsupportedSchemeError(FetchError):
    """Raised for locations the fetcher has no transport for."""
