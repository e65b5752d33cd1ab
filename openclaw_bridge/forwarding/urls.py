"""URL identity helpers used for bookmark deduplication."""
from __future__ import annotations

import re
import urllib.parse
from typing import Iterator, Optional

TRACKING_PARAMS = {
    "_hsenc",
    "_hsmi",
    "dclid",
    "fbclid",
    "gbraid",
    "gclid",
    "igshid",
    "mc_cid",
    "mc_eid",
    "mkt_tok",
    "msclkid",
    "ref_src",
    "wbraid",
    "yclid",
}

DEFAULT_PORTS = {"http": 80, "https": 443}

# Reserved characters and existing escapes survive; `<`, `>`, whitespace and controls do not.
_LOG_SAFE_CHARS = "!#$%&'()*+,/:;=?@[]~"

# Matches the `[title](<url>)` links written by the bookmark store.
_BOOKMARK_LINK_RE = re.compile(r"\]\(<([^>\n]+)>\)")


def is_tracking_param(key: str) -> bool:
    key_lower = key.lower()
    return key_lower.startswith("utm_") or key_lower in TRACKING_PARAMS


def canonicalize_url(raw: str) -> Optional[str]:
    """Return a stable identity for ``raw``, or ``None`` when it is not an absolute URL."""
    if not isinstance(raw, str):
        return None
    try:
        parsed = urllib.parse.urlsplit(raw.strip())
        port = parsed.port
    except ValueError:
        return None

    scheme = parsed.scheme.lower()
    host = (parsed.hostname or "").lower()
    if not scheme or not parsed.netloc or not host:
        return None

    if ":" in host:
        host = f"[{host}]"
    if port is not None and port != DEFAULT_PORTS.get(scheme):
        host = f"{host}:{port}"
    if parsed.username is not None:
        userinfo = parsed.username
        if parsed.password is not None:
            userinfo = f"{userinfo}:{parsed.password}"
        host = f"{userinfo}@{host}"

    path = parsed.path.rstrip("/") or "/"

    query_items = urllib.parse.parse_qsl(parsed.query, keep_blank_values=True)
    filtered = [(key, value) for key, value in query_items if not is_tracking_param(key)]
    filtered.sort(key=lambda kv: (kv[0], kv[1]))
    query = urllib.parse.urlencode(filtered)

    return urllib.parse.urlunsplit((scheme, host, path, query, ""))


def log_safe_url(raw: str) -> str:
    """Percent-encode ``raw`` so it fits on one line inside a ``<...>`` Markdown link."""
    return urllib.parse.quote(raw.strip(), safe=_LOG_SAFE_CHARS)


def same_resource(left: str, right: str) -> bool:
    """True only when both URLs canonicalize and the canonical forms are equal."""
    left_key = canonicalize_url(left)
    if left_key is None:
        return False
    return left_key == canonicalize_url(right)


def extract_bookmarked_urls(content: str) -> Iterator[str]:
    for match in _BOOKMARK_LINK_RE.finditer(content):
        yield match.group(1).strip()
