"""URL helpers shared by the extractors and the orchestrator."""

from __future__ import annotations

from urllib.parse import parse_qsl, urlencode, urljoin, urlparse, urlunparse

__all__ = ["TRACKING_PARAMS", "absolutize", "normalize_url", "same_host"]

#: Query parameters that never change the content behind a URL.
TRACKING_PARAMS = frozenset(
    {"fbclid", "gclid", "yclid", "igshid", "mc_cid", "mc_eid", "ref", "ref_src", "utm"}
)

_DEFAULT_PORTS = {"http": 80, "https": 443}


def _is_tracking_param(key: str) -> bool:
    lowered = key.lower()
    return lowered in TRACKING_PARAMS or lowered.startswith("utm_")


def normalize_url(url: str) -> str:
    """Return the canonical form of ``url`` used as a deduplication key.

    Scheme and host are lower-cased, default ports and fragments dropped,
    trailing slashes removed from non-root paths, tracking parameters removed
    and the remaining query parameters sorted.
    """

    parsed = urlparse(url.strip())
    scheme = parsed.scheme.lower()
    host = (parsed.hostname or "").lower()
    port = parsed.port
    netloc = host
    if port is not None and _DEFAULT_PORTS.get(scheme) != port:
        netloc = f"{host}:{port}"

    path = parsed.path or "/"
    if path != "/" and path.endswith("/"):
        path = path.rstrip("/") or "/"

    params = [
        (key, value)
        for key, value in parse_qsl(parsed.query, keep_blank_values=True)
        if not _is_tracking_param(key)
    ]
    query = urlencode(sorted(params))
    return urlunparse((scheme, netloc, path, "", query, ""))


def absolutize(href: str, base_url: str) -> str:
    """Resolve protocol-relative and relative ``href`` values against ``base_url``."""

    href = href.strip()
    if href.startswith("//"):
        return "https:" + href
    return urljoin(base_url, href)


def same_host(candidate_url: str, base_url: str) -> bool:
    """Return ``True`` when both URLs share a hostname."""

    candidate = urlparse(candidate_url)
    base = urlparse(base_url)
    return bool(candidate.hostname) and candidate.hostname == base.hostname
