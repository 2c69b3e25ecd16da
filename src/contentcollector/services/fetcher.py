"""Resilient HTTP fetching shared by every extractor."""

from __future__ import annotations

import logging

import requests
from requests.adapters import HTTPAdapter
from urllib3.util.retry import Retry

from contentcollector.config import CollectorSettings

__all__ = ["DEFAULT_HEADERS", "FetchError", "HttpFetcher", "RETRY_STATUSES"]

logger = logging.getLogger(__name__)

DEFAULT_HEADERS = {
    "User-Agent": (
        "Mozilla/5.0 (Windows NT 10.0; Win64; x64) "
        "AppleWebKit/537.36 (KHTML, like Gecko) "
        "Chrome/129.0.0.0 Safari/537.36"
    ),
    "Accept": (
        "text/html,application/xhtml+xml,application/xml;q=0.9,"
        "application/rss+xml,application/atom+xml;q=0.9,*/*;q=0.8"
    ),
    "Accept-Language": "en-US,en;q=0.9,zh-CN;q=0.8",
    "Accept-Encoding": "gzip, deflate",
    "Connection": "keep-alive",
}

RETRY_STATUSES = (429, 500, 502, 503, 504)


class FetchError(RuntimeError):
    """Raised when a URL could not be downloaded within the retry budget."""

    def __init__(self, url: str, cause: BaseException) -> None:
        super().__init__(f"Failed to fetch {url}: {cause}")
        self.url = url
        self.cause = cause


def _build_retry(settings: CollectorSettings) -> Retry:
    return Retry(
        total=settings.fetch_attempts - 1,
        connect=settings.fetch_attempts - 1,
        read=settings.fetch_attempts - 1,
        redirect=settings.max_redirects,
        backoff_factor=settings.fetch_backoff,
        status_forcelist=RETRY_STATUSES,
        allowed_methods={"GET"},
    )


def _build_session(settings: CollectorSettings) -> requests.Session:
    session = requests.Session()
    session.headers.update(DEFAULT_HEADERS)
    session.max_redirects = settings.max_redirects
    adapter = HTTPAdapter(max_retries=_build_retry(settings))
    session.mount("https://", adapter)
    session.mount("http://", adapter)
    return session


class HttpFetcher:
    """Download pages with browser-like headers and exponential backoff.

    Retries are handled by the session's :class:`Retry` policy.  Every call is
    independent: there is no circuit breaking between calls and no run-scoped
    state, so one instance can be shared across threads.
    """

    def __init__(
        self,
        settings: CollectorSettings | None = None,
        session: requests.Session | None = None,
    ) -> None:
        self._settings = settings or CollectorSettings()
        self._session = session or _build_session(self._settings)

    def fetch_response(self, url: str) -> requests.Response:
        """Return the successful response for ``url`` or raise :class:`FetchError`."""

        try:
            response = self._session.get(url, timeout=self._settings.fetch_timeout)
            response.raise_for_status()
        except requests.RequestException as exc:
            logger.warning("Giving up on %s: %s", url, exc)
            raise FetchError(url, exc) from exc
        return response

    def fetch(self, url: str) -> str:
        """Return the decoded body of ``url``."""

        return self.fetch_response(url).text

    def fetch_bytes(self, url: str) -> bytes:
        """Return the raw body of ``url``, leaving decoding to the caller."""

        return self.fetch_response(url).content
