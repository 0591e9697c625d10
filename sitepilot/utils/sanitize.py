"""URL sanitization and the SSRF guard for crawl roots."""

import ipaddress
from urllib.parse import urlsplit

_ALLOWED_SCHEMES = ("http", "https")
_LOCAL_HOSTNAMES = ("localhost", "localhost.localdomain")


def sanitize_url(url: str) -> str:
    """Strip whitespace and the fragment; a bare host defaults to https."""
    url = url.strip()
    if "://" not in url:
        url = f"https://{url}"
    return urlsplit(url)._replace(fragment="").geturl()


def is_safe_url(url: str) -> bool:
    """True when the URL is http(s) and does not point at a loopback or private host.

    Only literal IPs are checked; hostnames are resolved by the browser.
    """
    parts = urlsplit(url)
    if parts.scheme not in _ALLOWED_SCHEMES:
        return False
    hostname = parts.hostname
    if not hostname:
        return False
    if hostname in _LOCAL_HOSTNAMES or hostname.endswith(".localhost"):
        return False

    try:
        ip = ipaddress.ip_address(hostname)
    except ValueError:
        return True
    return ip.is_global
