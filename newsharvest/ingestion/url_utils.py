"""URL helpers for turning extracted links into absolute URLs."""

from __future__ import annotations

from urllib.parse import urljoin, urlsplit


class NormalizationError(ValueError):
    """Raised when an extracted link cannot be turned into an absolute URL."""


def is_http_url(url: str) -> bool:
    try:
        p = urlsplit(url)
    except ValueError:
        return False
    return p.scheme in ("http", "https") and bool(p.netloc)


def to_absolute_url(base_url: str, link: str) -> str:
    """Resolve an extracted link against the page it was found on.

    - Links that already have a scheme are returned verbatim
    - Relative links are merged with base_url (RFC 3986 resolution);
      an empty link resolves to the page itself
    - Unparseable links raise NormalizationError
    """
    try:
        parsed = urlsplit(link)
        urlsplit(base_url)
    except ValueError as e:
        raise NormalizationError(
            f"error converting link url {link} to absolute url using base url {base_url}: {e}"
        ) from e
    if parsed.scheme:
        return link
    try:
        return urljoin(base_url, link)
    except ValueError as e:
        raise NormalizationError(
            f"error converting link url {link} to absolute url using base url {base_url}: {e}"
        ) from e
