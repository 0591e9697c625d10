"""Origin-scoped URL bookkeeping for one crawl run."""

from __future__ import annotations

from urllib.parse import urljoin, urlsplit, urlunsplit

from sitepilot.constants import DEFAULT_MAX_DEPTH, MAX_ENQUEUED_LINKS_PER_PAGE
from sitepilot.models.domain import LinkInfo

_DEFAULT_PORTS = {"http": 80, "https": 443}
_CRAWLABLE_SCHEMES = {"http", "https"}


def normalize_url(url: str) -> str:
    """Canonical form used for visited-set membership.

    Lowercases scheme and host, drops default ports and the fragment, and
    turns an empty path into ``/``. The query string is kept.
    """
    parts = urlsplit(url.strip())
    scheme = parts.scheme.lower()
    host = (parts.hostname or "").lower()
    if ":" in host:
        host = f"[{host}]"
    netloc = host
    if parts.port and parts.port != _DEFAULT_PORTS.get(scheme):
        netloc = f"{host}:{parts.port}"
    path = parts.path or "/"
    return urlunsplit((scheme, netloc, path, parts.query, ""))


def origin(url: str) -> tuple[str, str]:
    """Return ``(scheme, host[:port])`` of a URL after normalization."""
    parts = urlsplit(normalize_url(url))
    return parts.scheme, parts.netloc


class Navigator:
    """Tracks visited and queued URLs and decides which links to follow."""

    def __init__(
        self,
        base_url: str,
        max_depth: int = DEFAULT_MAX_DEPTH,
        fan_out: int = MAX_ENQUEUED_LINKS_PER_PAGE,
    ) -> None:
        self._base_url = normalize_url(base_url)
        self._origin = origin(base_url)
        self._max_depth = max_depth
        self._fan_out = fan_out
        self._visited: set[str] = set()
        self._queued: set[str] = set()

    @property
    def base_url(self) -> str:
        return self._base_url

    @property
    def visited(self) -> frozenset[str]:
        return frozenset(self._visited)

    def is_same_origin(self, url: str) -> bool:
        return origin(url) == self._origin

    def is_within_depth(self, depth: int) -> bool:
        """Check if current depth is within max depth."""
        return depth <= self._max_depth

    def is_visited(self, url: str) -> bool:
        return normalize_url(url) in self._visited

    def mark_visited(self, url: str) -> None:
        """Mark a URL as visited."""
        self._visited.add(normalize_url(url))

    def mark_queued(self, url: str) -> None:
        self._queued.add(normalize_url(url))

    def should_visit(self, url: str) -> bool:
        """Check if URL is crawlable, same-origin and not yet visited."""
        if urlsplit(url).scheme.lower() not in _CRAWLABLE_SCHEMES:
            return False
        return self.is_same_origin(url) and not self.is_visited(url)

    def next_links(self, page_url: str, links: list[LinkInfo]) -> list[str]:
        """Pick the links to enqueue from a page, in link order, capped at the fan-out limit.

        Links already visited or already queued are skipped and do not
        count against the cap.
        """
        selected: list[str] = []
        for link in links:
            if len(selected) >= self._fan_out:
                break
            try:
                absolute = urljoin(page_url, link.href)
                if not self.should_visit(absolute):
                    continue
                normalized = normalize_url(absolute)
            except ValueError:
                # Unparseable href, e.g. an out-of-range port
                continue
            if normalized in self._queued:
                continue
            self._queued.add(normalized)
            selected.append(normalized)
        return selected
