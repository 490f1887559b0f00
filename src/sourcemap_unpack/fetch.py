from __future__ import annotations

"""Fetch collaborator.

Any callable taking an absolute location and returning the body as text can
serve as a fetcher, as long as it signals failure with a `FetchError`
subclass. `HttpFetcher` is the default one: `requests` sessions for
`http(s)://` plus plain file reads for `file://` locations (maps loaded from
disk resolve their missing sources next to themselves).

The timeout bounds the whole request, not each socket read: bodies are
streamed and abandoned once the deadline passes.
"""

import codecs
import logging
import threading
import time
from collections.abc import Callable
from pathlib import Path
from urllib.parse import urlparse
from urllib.request import url2pathname

import requests

from .errors import FetchTimeoutError, HTTPStatusError, NetworkError, UnsupportedSchemeError

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 30.0
DEFAULT_USER_AGENT = "sourcemap-unpack"
MAX_BODY_BYTES = 256 * 1024 * 1024
CHUNK_SIZE = 64 * 1024


def _file_url_to_path(url: str) -> Path:
    parsed = urlparse(url)
    return Path(url2pathname(parsed.path))


def _charset(response: requests.Response) -> str:
    # requests falls back to ISO-8859-1 for text/* without a charset.
    if "charset" not in response.headers.get("Content-Type", "").lower() or not response.encoding:
        return "utf-8"
    try:
        return codecs.lookup(response.encoding).name
    except LookupError:
        return "utf-8"


class HttpFetcher:
    """Callable fetcher backed by one `requests.Session` per thread.

    Sessions are created lazily on the thread that first uses them, since
    extraction fetches from a worker pool. Use as a context manager so every
    session's connection pool is released whether extraction succeeds or
    fails.
    """

    def __init__(
        self,
        *,
        timeout: float = DEFAULT_TIMEOUT,
        verify: bool = True,
        user_agent: str = DEFAULT_USER_AGENT,
        session_factory: Callable[[], requests.Session] = requests.Session,
        max_body_bytes: int = MAX_BODY_BYTES,
    ) -> None:
        self.timeout = timeout
        self.verify = verify
        self.user_agent = user_agent
        self.max_body_bytes = max_body_bytes
        self._session_factory = session_factory
        self._local = threading.local()
        self._sessions: list[requests.Session] = []
        self._lock = threading.Lock()

    def __enter__(self) -> "HttpFetcher":
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    def close(self) -> None:
        with self._lock:
            sessions, self._sessions = self._sessions, []
        for session in sessions:
            session.close()

    def _session(self) -> requests.Session:
        session = getattr(self._local, "session", None)
        if session is None:
            session = self._session_factory()
            session.headers.update({"User-Agent": self.user_agent})
            self._local.session = session
            with self._lock:
                self._sessions.append(session)
        return session

    def _read_body(self, url: str, response: requests.Response, deadline: float) -> bytes:
        chunks: list[bytes] = []
        size = 0
        for chunk in response.iter_content(chunk_size=CHUNK_SIZE):
            if time.monotonic() > deadline:
                raise FetchTimeoutError("Request timeout")
            size += len(chunk)
            if size > self.max_body_bytes:
                raise NetworkError(f"Response from {url} exceeds {self.max_body_bytes} bytes")
            chunks.append(chunk)
        return b"".join(chunks)

    def _get(self, url: str) -> tuple[requests.Response, bytes]:
        logger.debug("GET %s", url)
        deadline = time.monotonic() + self.timeout
        try:
            response = self._session().get(url, timeout=self.timeout, verify=self.verify, stream=True)
        except requests.Timeout as e:
            raise FetchTimeoutError("Request timeout") from e
        except requests.RequestException as e:
            raise NetworkError(str(e)) from e

        try:
            if not 200 <= response.status_code < 300:
                raise HTTPStatusError(url, response.status_code)
            body = self._read_body(url, response, deadline)
        except requests.Timeout as e:
            raise FetchTimeoutError("Request timeout") from e
        except requests.RequestException as e:
            raise NetworkError(str(e)) from e
        finally:
            response.close()

        return response, body

    def _read_file(self, url: str) -> bytes:
        path = _file_url_to_path(url)
        try:
            with path.open("rb") as f:
                data = f.read(self.max_body_bytes + 1)
        except OSError as e:
            raise NetworkError(f"Could not read {path}: {e}") from e

        if len(data) > self.max_body_bytes:
            raise NetworkError(f"{path} exceeds {self.max_body_bytes} bytes")
        return data

    @staticmethod
    def _is_file_url(url: str) -> bool:
        scheme = urlparse(url).scheme.lower()
        if scheme not in ("http", "https", "file"):
            raise UnsupportedSchemeError(f"Unsupported URL scheme: {url}")
        return scheme == "file"

    def fetch_bytes(self, url: str) -> bytes:
        if self._is_file_url(url):
            return self._read_file(url)
        return self._get(url)[1]

    def __call__(self, url: str) -> str:
        if self._is_file_url(url):
            return self._read_file(url).decode("utf-8", errors="replace")

        response, body = self._get(url)
        return body.decode(_charset(response), errors="replace")
