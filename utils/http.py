"""
HTTP collaborator: retrying sessions, browser-like headers, proxy rotation.

`Fetcher.fetch` performs one GET through a thread-local `requests.Session`
and returns a `FetchedPage` bundling the parsed document, the raw body and
the final URL after redirects. Non-success statuses and transport errors are
surfaced as `FetchError` so the orchestrator can retry them.
"""

from __future__ import annotations

import json
import threading

import requests

from dataclasses import dataclass, field
from itertools import cycle
from typing import Any, Dict, List, Optional, Sequence

from bs4 import BeautifulSoup as BS
from requests.adapters import HTTPAdapter
from urllib3.util.retry import Retry

from utils.errors import FetchError

# Stable desktop browser identity; the site serves a reduced page to bots.
DEFAULT_HEADERS: Dict[str, str] = {
    "User-Agent": (
        "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
        "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36"
    ),
    "Accept": "text/html,application/xhtml+xml,application/xml;q=0.9,image/webp,*/*;q=0.8",
    "Accept-Language": "en-US,en;q=0.9",
    # only encodings requests can decode without optional packages
    "Accept-Encoding": "gzip, deflate",
    "Connection": "keep-alive",
    "Upgrade-Insecure-Requests": "1",
    "Sec-Fetch-Dest": "document",
    "Sec-Fetch-Mode": "navigate",
    "Sec-Fetch-Site": "none",
    "Cache-Control": "max-age=0",
}


def build_headers(cookies: Optional[str] = None) -> Dict[str, str]:
    """
    Return the default browser headers plus an optional `Cookie` header.

    Args:
        cookies: Raw cookie string (``"a=1; b=2"``) supplied at configuration time.

    Returns:
        A new header dict; the module-level defaults are never mutated.
    """
    headers = dict(DEFAULT_HEADERS)
    cookie_header = (cookies or "").strip()
    if cookie_header:
        headers["Cookie"] = cookie_header
    return headers


@dataclass
class FetchedPage:
    """
    One fetched document as seen by the extractors.

    Attributes:
        url: Final URL after redirects.
        text: Raw response body.
        soup: Parsed document (lxml tree); JSON bodies are parsed too but
            carry no useful markup.
        content_type: Value of the Content-Type response header.
        status: HTTP status code.
    """

    url: str
    text: str
    soup: BS
    content_type: str = ""
    status: int = 200
    _json: Any = field(default=None, init=False, repr=False)

    @classmethod
    def from_text(
        cls, text: str, url: str, content_type: str = "text/html", status: int = 200
    ) -> "FetchedPage":
        return cls(
            url=url,
            text=text,
            soup=BS(text, "lxml"),
            content_type=content_type,
            status=status,
        )

    @property
    def is_json(self) -> bool:
        """True when the body is a JSON document rather than markup."""
        if "json" in (self.content_type or "").lower():
            return True
        head = (self.text or "").lstrip()[:1]
        return head in ("{", "[")

    def json(self) -> Any:
        """Strictly decode the body as JSON (cached)."""
        if self._json is None:
            self._json = json.loads(self.text)
        return self._json


class ProxyRotator:
    """
    Round-robin supplier of outbound proxy URLs.

    The first attempt for a request uses the next proxy in rotation; every
    retry moves on to another one, so blocked requests escalate to a fresh
    network identity. With no proxies configured `pick` returns None.
    """

    def __init__(self, proxy_urls: Optional[Sequence[str]] = None) -> None:
        self.proxy_urls: List[str] = [p for p in (proxy_urls or []) if p]
        self._lock = threading.Lock()
        self._cycle = cycle(self.proxy_urls) if self.proxy_urls else None

    def pick(self) -> Optional[str]:
        if self._cycle is None:
            return None
        with self._lock:
            return next(self._cycle)

    def __len__(self) -> int:
        return len(self.proxy_urls)


def build_session_with_retries(
    headers: Optional[Dict[str, str]] = None,
    total: int = 3,
    backoff_factor: float = 0.5,
    status_forcelist: tuple[int, ...] = (429, 500, 502, 503, 504),
) -> requests.Session:
    """
    Create a `requests.Session` with the standard retry/backoff policy mounted.

    Transport-level retries live here; the orchestrator's own retry loop only
    handles blocking and requests that still fail after these retries.
    """
    s = requests.Session()
    s.headers.update(headers or {})
    retry = Retry(
        total=total,
        connect=total,
        read=total,
        status=total,
        backoff_factor=backoff_factor,
        status_forcelist=status_forcelist,
        allowed_methods=frozenset({"GET"}),
        raise_on_status=False,
        respect_retry_after_header=True,
    )
    adapter = HTTPAdapter(max_retries=retry)
    s.mount("https://", adapter)
    s.mount("http://", adapter)
    return s


class Fetcher:
    """
    Thread-safe page fetcher used by the crawl workers.

    Attributes:
        headers: Headers sent with every request (merged with per-call ones).
        timeout: Per-request timeout in seconds.
    """

    def __init__(
        self, headers: Optional[Dict[str, str]] = None, timeout: float = 30.0
    ) -> None:
        self.headers = headers or build_headers()
        self.timeout = timeout
        self._thread_local = threading.local()

    def _get_thread_session(self) -> requests.Session:
        s = getattr(self._thread_local, "session", None)
        if s is None:
            s = build_session_with_retries(self.headers)
            self._thread_local.session = s
        return s

    def fetch(
        self,
        url: str,
        headers: Optional[Dict[str, str]] = None,
        proxy: Optional[str] = None,
    ) -> FetchedPage:
        """
        GET `url` and return the parsed page.

        Args:
            url: Absolute URL to fetch.
            headers: Extra headers merged over the fetcher defaults.
            proxy: Optional proxy URL used for both http and https.

        Returns:
            The fetched page.

        Raises:
            FetchError: On transport errors or a status code >= 400.
        """
        merged = {**self.headers, **(headers or {})}
        proxies = {"http": proxy, "https": proxy} if proxy else None
        try:
            resp = self._get_thread_session().get(
                url, headers=merged, proxies=proxies, timeout=self.timeout
            )
        except requests.RequestException as e:
            raise FetchError(f"request failed: {e}", url=url) from e
        if resp.status_code >= 400:
            raise FetchError(
                f"unexpected status {resp.status_code}", url=url, status=resp.status_code
            )
        return FetchedPage.from_text(
            resp.text,
            url=resp.url or url,
            content_type=resp.headers.get("Content-Type", ""),
            status=resp.status_code,
        )
