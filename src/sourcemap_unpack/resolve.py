from __future__ import annotations

"""Per-entry content resolution.

Embedded `sourcesContent` wins; otherwise the source is fetched relative to
the map's location. A failed fetch never escapes this module: it becomes
placeholder content that records the identifier and the reason, so every
`sources` entry still ends up as exactly one archive file.
"""

import logging
from collections.abc import Callable
from urllib.parse import urljoin, urlparse

from .errors import FetchError, UnsupportedSchemeError
from .types import Origin

logger = logging.getLogger(__name__)

Fetcher = Callable[[str], str]


def _scheme(url: str) -> str:
    return urlparse(url).scheme.lower()


def placeholder_content(raw_identifier: str, reason: str) -> str:
    return f"// Error fetching source: {raw_identifier}\n// {reason}"


def fetch_target(raw_identifier: str, base_url: str | None) -> str:
    """Resolve a raw identifier to an absolute retrieval location.

    `file://` targets are only allowed for maps that were themselves loaded
    from disk; a remote map must not be able to read local files.
    """

    if base_url is None:
        if "://" not in raw_identifier:
            raise FetchError("No base location to resolve relative source against")
        target = raw_identifier
    else:
        target = urljoin(base_url, raw_identifier)

    if _scheme(target) == "file" and _scheme(base_url or "") != "file":
        raise UnsupportedSchemeError(f"Refusing local file source from a non-local map: {target}")
    return target


def resolve_content(
    raw_identifier: str,
    embedded: str | None,
    base_url: str | None,
    fetch: Fetcher,
) -> tuple[str, Origin, str | None]:
    """Resolve one entry to `(content, origin, error_reason)`."""

    if embedded is not None:
        return embedded, Origin.EMBEDDED, None

    try:
        target = fetch_target(raw_identifier, base_url)
        logger.debug("Fetching source from: %s", target)
        content = fetch(target)
    except (FetchError, ValueError) as e:
        reason = str(e) or type(e).__name__
        logger.warning("Error fetching %s: %s", raw_identifier, reason)
        return placeholder_content(raw_identifier, reason), Origin.ERROR_PLACEHOLDER, reason

    return content, Origin.FETCHED, None
