"""Google Maps ``tbm=map`` search client with browser-consistent fingerprinting.

Requests go out over a Chrome-impersonating TLS stack (curl_cffi) restricted to
HTTP/1.1, so the handshake matches the User-Agent we claim. When a forward
proxy is configured the proxy owns the connection and a plain ``requests``
session with standard TLS is used instead.
"""

from __future__ import annotations

import logging
import random
import threading
import time
from typing import Any, Callable, Dict, Optional

import requests
from curl_cffi import CurlError, CurlHttpVersion
from curl_cffi import requests as curl_requests

from geotap.core.atomic import AtomicCounter
from geotap.core.config import get_settings
from geotap.models import Sector
from geotap.vendors.pb import build_pb

logger = logging.getLogger(__name__)

SEARCH_URL = "https://www.google.com/search"

MAX_RETRIES = 3
BASE_BACKOFF_SECONDS = 2.0
MAX_BACKOFF_SECONDS = 30.0
JITTER_FACTOR = 0.5

# Redirects are the consent/captcha interstitial, i.e. a soft block.
RATE_LIMIT_STATUSES = frozenset({301, 302, 307, 403, 429})

USER_AGENTS = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/131.0.0.0 Safari/537.36",
    "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/131.0.0.0 Safari/537.36",
    "Mozilla/5.0 (X11; Linux x86_64) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/131.0.0.0 Safari/537.36",
)

_BASE_HEADERS = {
    "Accept": "text/html,application/xhtml+xml,application/xml;q=0.9,image/avif,image/webp,image/apng,*/*;q=0.8",
    "Accept-Language": "es-ES,es;q=0.9,en;q=0.8",
    "Accept-Encoding": "identity",
    "Referer": "https://www.google.com/",
}

CONSENT_COOKIE_NAME = "CONSENT"
CONSENT_COOKIE_VALUE = "YES+ES.es+V14+BX"


class SearchError(RuntimeError):
    """Raised when a map search request fails."""


class RateLimitError(SearchError):
    """The backend answered with a throttling or soft-block status."""

    def __init__(self, status_code: int):
        super().__init__(f"rate limited (status {status_code})")
        self.status_code = status_code


class UnexpectedStatusError(SearchError):
    def __init__(self, status_code: int):
        super().__init__(f"unexpected status {status_code}")
        self.status_code = status_code


def backoff_delay(attempt: int, error: Exception, rng: Callable[[], float] = random.random) -> Optional[float]:
    """Seconds to wait before retrying after ``error`` on 0-based ``attempt``.

    Returns None when the request should not be retried: anything other than
    a rate limit, or the retry budget is spent. The wait doubles from
    ``BASE_BACKOFF_SECONDS`` up to ``MAX_BACKOFF_SECONDS`` plus up to 50% jitter.
    """
    if not isinstance(error, RateLimitError):
        return None
    if attempt + 1 >= MAX_RETRIES:
        return None
    backoff = min(BASE_BACKOFF_SECONDS * (2 ** attempt), MAX_BACKOFF_SECONDS)
    return backoff + backoff * JITTER_FACTOR * rng()


def build_session(proxy_url: str = ""):
    """Create the HTTP session, pre-seeded with the consent cookie."""
    if proxy_url:
        session = requests.Session()
        session.proxies.update({"http": proxy_url, "https": proxy_url})
        logger.info("Using proxy %s with standard TLS", proxy_url)
    else:
        session = curl_requests.Session(impersonate="chrome", http_version=CurlHttpVersion.V1_1)
    session.cookies.set(CONSENT_COOKIE_NAME, CONSENT_COOKIE_VALUE, domain=".google.com", path="/")
    return session


class MapsSearchClient:
    """Issues one map search per (sector, query, offset) and classifies failures."""

    def __init__(
        self,
        lang: str = "en",
        proxy_url: str = "",
        zoom: int = 13,
        session: Any = None,
        timeout: Optional[float] = None,
        cancel_event: Optional[threading.Event] = None,
    ):
        self.lang = lang
        self.zoom = zoom
        self.timeout = timeout if timeout is not None else get_settings().request_timeout
        self._session = session if session is not None else build_session(proxy_url)
        self._rate_limits = AtomicCounter()
        # Interrupts backoff waits when the owning session is cancelled.
        self._cancel = cancel_event

    @property
    def consecutive_rate_limits(self) -> int:
        """Rate-limit signals seen since the last successful request.

        Counts every throttled HTTP response, retries included, across all
        threads sharing this client. The crawl orchestrator reads it for its
        persistent-block check.
        """
        return self._rate_limits.load()

    def build_params(self, sector: Sector, query: str, offset: int) -> Dict[str, str]:
        return {
            "tbm": "map",
            "authuser": "0",
            "hl": self.lang,
            "q": query,
            "pb": build_pb(sector.lat, sector.lng, self.zoom, offset),
        }

    def search_map(self, sector: Sector, query: str, offset: int = 0) -> bytes:
        """Fetch one result page, retrying rate limits with exponential backoff."""
        params = self.build_params(sector, query, offset)

        attempt = 0
        while True:
            try:
                body = self._do_request(params)
            except SearchError as exc:
                if isinstance(exc, RateLimitError):
                    self._rate_limits.add(1)
                wait = backoff_delay(attempt, exc)
                if wait is None:
                    raise
                logger.warning(
                    "Search rate limited (attempt %s/%s) for query=%s sector=%s,%s; retrying in %.1fs",
                    attempt + 1,
                    MAX_RETRIES,
                    query,
                    sector.row,
                    sector.col,
                    wait,
                )
                if self._cancel is None:
                    time.sleep(wait)
                elif self._cancel.wait(wait):
                    raise
                attempt += 1
                continue

            self._rate_limits.store(0)
            return body

    def _do_request(self, params: Dict[str, str]) -> bytes:
        headers = dict(_BASE_HEADERS)
        headers["User-Agent"] = random.choice(USER_AGENTS)

        try:
            response = self._session.get(
                SEARCH_URL,
                params=params,
                headers=headers,
                timeout=self.timeout,
                allow_redirects=False,
            )
        except (requests.RequestException, CurlError) as exc:
            raise SearchError(f"executing request: {exc}") from exc

        status = response.status_code
        if status in RATE_LIMIT_STATUSES:
            raise RateLimitError(status)
        if not 200 <= status < 300:
            raise UnexpectedStatusError(status)
        return response.content
