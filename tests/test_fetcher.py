from __future__ import annotations

from types import SimpleNamespace

import pytest
import requests
from urllib3.util.retry import Retry

from contentcollector.config import CollectorSettings
from contentcollector.services.fetcher import RETRY_STATUSES, FetchError, HttpFetcher


class DummyResponse:
    def __init__(self, text: str, status_code: int = 200) -> None:
        self.text = text
        self.content = text.encode("utf-8")
        self.status_code = status_code

    def raise_for_status(self) -> None:
        if self.status_code >= 400:
            raise requests.HTTPError(f"{self.status_code} error")


def test_default_session_mounts_retry_policy() -> None:
    settings = CollectorSettings(fetch_attempts=4, fetch_backoff=0.5, max_redirects=6)
    session = HttpFetcher(settings)._session

    for prefix in ("https://", "http://"):
        retry = session.get_adapter(f"{prefix}example.com").max_retries
        assert isinstance(retry, Retry)
        assert retry.total == 3
        assert retry.connect == 3
        assert retry.read == 3
        assert retry.redirect == 6
        assert retry.backoff_factor == 0.5
        assert set(retry.status_forcelist) == set(RETRY_STATUSES)
        assert retry.allowed_methods == {"GET"}


def test_single_attempt_disables_retries() -> None:
    session = HttpFetcher(CollectorSettings(fetch_attempts=1))._session

    assert session.get_adapter("https://example.com").max_retries.total == 0


def test_fetch_wraps_http_errors_in_fetch_error() -> None:
    calls: list[str] = []

    def fake_get(url, timeout):
        calls.append(url)
        return DummyResponse("unavailable", status_code=404)

    fetcher = HttpFetcher(session=SimpleNamespace(get=fake_get))

    with pytest.raises(FetchError) as excinfo:
        fetcher.fetch("https://example.com/missing")

    assert calls == ["https://example.com/missing"]
    assert excinfo.value.url == "https://example.com/missing"
    assert isinstance(excinfo.value.cause, requests.HTTPError)
    assert excinfo.value.__cause__ is excinfo.value.cause
    assert "404" in str(excinfo.value)


def test_fetch_wraps_exhausted_retries_in_fetch_error() -> None:
    def fake_get(url, timeout):
        raise requests.exceptions.RetryError("too many 503 error responses")

    fetcher = HttpFetcher(session=SimpleNamespace(get=fake_get))

    with pytest.raises(FetchError) as excinfo:
        fetcher.fetch_bytes("https://example.com/down")

    assert isinstance(excinfo.value.cause, requests.exceptions.RetryError)


def test_fetch_passes_configured_timeout() -> None:
    captured: dict[str, object] = {}

    def fake_get(url, timeout):
        captured["timeout"] = timeout
        return DummyResponse("<rss/>")

    fetcher = HttpFetcher(
        CollectorSettings(fetch_timeout=(3, 7)), session=SimpleNamespace(get=fake_get)
    )

    assert fetcher.fetch_bytes("https://example.com/feed") == b"<rss/>"
    assert fetcher.fetch("https://example.com/feed") == "<rss/>"
    assert captured["timeout"] == (3, 7)


def test_default_session_sends_browser_headers() -> None:
    fetcher = HttpFetcher(CollectorSettings(max_redirects=4))
    session = fetcher._session

    assert session.headers["User-Agent"].startswith("Mozilla/5.0")
    assert "Accept-Language" in session.headers
    assert session.max_redirects == 4
