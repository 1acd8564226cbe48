"""Article body fetch + main-text extraction for the refresher.

Only public http(s) URLs are fetched; loopback, private and link-local
addresses are refused before any request is made.
"""

from __future__ import annotations

import ipaddress
from typing import Optional
from urllib.parse import urlsplit

import requests
import trafilatura

from tickertape.errors import RefreshFetchError

USER_AGENT = "Mozilla/5.0 (compatible; tickertape/1.0)"
MAX_BYTES = 2_000_000

_BLOCKED_NAMES = {"localhost", "localhost.localdomain", "ip6-localhost"}


def blocked_reason(url: str) -> Optional[str]:
    """Why `url` must not be fetched, or None when it is acceptable."""
    try:
        parts = urlsplit(url or "")
        host = (parts.hostname or "").strip().lower()
    except ValueError:
        return "invalid_url"
    if parts.scheme not in ("http", "https"):
        return "bad_scheme"
    if not host:
        return "missing_host"
    if host in _BLOCKED_NAMES or host.endswith(".localhost"):
        return "blocked_host"
    try:
        ip = ipaddress.ip_address(host)
    except ValueError:
        return None
    if ip.is_private or ip.is_loopback or ip.is_link_local or ip.is_unspecified or ip.is_reserved:
        return "blocked_private_ip"
    return None


def _read_limited(resp: requests.Response, max_bytes: int) -> bytes:
    content = b""
    for chunk in resp.iter_content(chunk_size=64 * 1024):
        if not chunk:
            continue
        content += chunk
        if len(content) > max_bytes:
            raise RefreshFetchError(f"response larger than {max_bytes} bytes")
    return content


def fetch_body(
    url: str,
    *,
    timeout: float = 15.0,
    max_bytes: int = MAX_BYTES,
    session: Optional[requests.Session] = None,
) -> str:
    """Fetch `url` and return its extracted main text.

    Raises RefreshFetchError for blocked URLs, HTTP/transport failures,
    oversize or empty responses, and pages trafilatura cannot extract.
    """
    reason = blocked_reason(url)
    if reason:
        raise RefreshFetchError(f"refusing to fetch {url!r}: {reason}")

    http = session or requests
    try:
        resp = http.get(
            url,
            headers={"User-Agent": USER_AGENT},
            timeout=(5, timeout),
            allow_redirects=True,
            stream=True,
        )
    except requests.exceptions.RequestException as e:
        raise RefreshFetchError(f"fetch {url} failed: {e}") from e

    try:
        if resp.status_code >= 400:
            raise RefreshFetchError(f"fetch {url} failed: http_{resp.status_code}")
        content = _read_limited(resp, max_bytes)
    except requests.exceptions.RequestException as e:
        raise RefreshFetchError(f"reading {url} failed: {e}") from e
    finally:
        resp.close()

    try:
        html = content.decode(resp.encoding or "utf-8", errors="replace")
    except LookupError:
        html = content.decode("utf-8", errors="replace")
    if not html.strip():
        raise RefreshFetchError(f"{url} returned an empty page")

    text = trafilatura.extract(html, include_comments=False, include_tables=False)
    if not text or not text.strip():
        raise RefreshFetchError(f"no extractable text at {url}")
    return text.strip()
