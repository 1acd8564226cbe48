"""URL canonicalization + identity hashing for ingestion/dedup."""

from __future__ import annotations

import hashlib
import re
from urllib.parse import unquote, urlsplit

from tickertape.errors import FormatError


_ESCAPE_RE = re.compile(r"%[0-9A-Fa-f]{2}")


def _decode_path(path: str) -> str:
    # Decode until stable so double-encoded artifacts (e.g. %253F) fold too.
    while _ESCAPE_RE.search(path):
        decoded = unquote(path)
        if decoded == path:
            break
        path = decoded
    # A literal '#' would be read back as a fragment.
    return path.replace("#", "%23")


def normalize_url(raw_url: str) -> str:
    """Canonicalize a listing URL.

    - Percent-decode the path (encoded '?' folds back to a literal '?')
    - Drop userinfo and fragment
    - Reassemble as scheme://host/path, appending ?query only when non-empty

    Raises FormatError when the input is not an absolute, parseable URL.
    """
    if not raw_url or not str(raw_url).strip():
        raise FormatError("empty url")
    try:
        p = urlsplit(str(raw_url).strip())
        # .port validates the netloc lazily
        _ = p.port
    except ValueError as e:
        raise FormatError(f"unparseable url {raw_url!r}: {e}") from e
    if not p.scheme or not p.netloc:
        raise FormatError(f"url is not absolute: {raw_url!r}")

    scheme = p.scheme.lower()
    host = p.netloc.rsplit("@", 1)[-1]
    if not host:
        raise FormatError(f"url has no host: {raw_url!r}")
    path = _decode_path(p.path)

    if p.query:
        return f"{scheme}://{host}{path}?{p.query}"
    return f"{scheme}://{host}{path}"


def identity_hash(title: str, raw_url: str, canonical_url: str) -> str:
    """sha256 over (title, raw url, canonical url), in that order."""
    h = hashlib.sha256()
    h.update((title or "").encode("utf-8"))
    h.update((raw_url or "").encode("utf-8"))
    h.update((canonical_url or "").encode("utf-8"))
    return h.hexdigest()
