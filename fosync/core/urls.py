from __future__ import annotations

import hashlib
from urllib.parse import parse_qsl, urlencode, urlparse, urlunparse

TRACKING_KEYS = {"ref", "fbclid", "gclid", "src", "from"}
SOURCE_ID_HASH_LENGTH = 32


def _is_tracking_param(key: str) -> bool:
    return key.lower().startswith("utm_") or key.lower() in TRACKING_KEYS


def normalize_url(raw_url: str) -> str:
    """Conservative URL normalization so the same posting link always hashes the same."""
    parsed = urlparse(raw_url.strip())

    scheme = parsed.scheme.lower()
    netloc = parsed.netloc.lower()
    if ":" in netloc:
        host, port = netloc.rsplit(":", maxsplit=1)
        if (scheme == "http" and port == "80") or (scheme == "https" and port == "443"):
            netloc = host

    path = parsed.path or "/"
    if path != "/" and path.endswith("/"):
        path = path[:-1]

    filtered_query_pairs = [
        (key, value)
        for key, value in parse_qsl(parsed.query, keep_blank_values=True)
        if not _is_tracking_param(key)
    ]
    filtered_query_pairs.sort(key=lambda pair: pair[0])
    query = urlencode(filtered_query_pairs, doseq=True)

    return urlunparse((scheme, netloc, path, "", query, ""))


def canonical_hash(normalized_url: str) -> str:
    return hashlib.sha256(normalized_url.encode("utf-8")).hexdigest()


def stable_source_id(prefix: str, link: str) -> str:
    """Derive a source_id for feeds that carry no upstream id of their own."""
    return f"{prefix}-{canonical_hash(normalize_url(link))[:SOURCE_ID_HASH_LENGTH]}"
