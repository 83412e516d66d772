from __future__ import annotations

import re

from dataclasses import dataclass
from typing import Optional
from urllib.parse import parse_qsl, urlencode, urlparse

PAGE_PARAM = "page"
_PATH_PAGE_RE = re.compile(r"/page/(\d+)")


@dataclass(frozen=True)
class PageOutcome:
    """What one processed LIST page produced, plus the run totals after it."""

    page: int
    jobs_found: int
    jobs_accepted: int
    jobs_scraped: int
    pages_scraped: int
    total_available: Optional[int] = None
    per_page: Optional[int] = None


@dataclass(frozen=True)
class PageDecision:
    next_page: Optional[int]
    reason: str

    @property
    def proceed(self) -> bool:
        return self.next_page is not None


def plan_next_page(
    outcome: PageOutcome,
    max_jobs: Optional[int] = None,
    max_pages: Optional[int] = None,
) -> PageDecision:
    """
    Decide whether another LIST page should be requested.

    Order of checks:
      1) hard limits (max_jobs accepted, max_pages processed)
      2) an empty page ends the results
      3) a known total keeps paging until it is covered
      4) with no total, keep paging only while pages add new jobs
    """
    if max_jobs is not None and outcome.jobs_scraped >= max_jobs:
        return PageDecision(None, "max_jobs")
    if max_pages is not None and outcome.pages_scraped >= max_pages:
        return PageDecision(None, "max_pages")
    if outcome.jobs_found == 0:
        return PageDecision(None, "empty_page")

    total = outcome.total_available
    if total is not None and total > 0:
        if outcome.jobs_scraped >= total:
            return PageDecision(None, "total_reached")
        if outcome.per_page and outcome.page * outcome.per_page >= total:
            return PageDecision(None, "last_page")
        return PageDecision(outcome.page + 1, "below_total")

    if outcome.jobs_accepted == 0:
        return PageDecision(None, "no_new_jobs")
    return PageDecision(outcome.page + 1, "new_jobs")


def page_from_url(url: str, default: int = 1) -> int:
    """Read the page number from ``?page=N`` or a ``/page/N`` path segment."""
    u = urlparse(url)
    for k, v in parse_qsl(u.query, keep_blank_values=True):
        if k == PAGE_PARAM and v.isdigit():
            return int(v)
    m = _PATH_PAGE_RE.search(u.path)
    if m:
        return int(m.group(1))
    return default


def with_page(url: str, page: int) -> str:
    """
    Return `url` pointing at `page`, leaving every other part untouched.

    Search filters share the query string with the page number, so all other
    parameters (including repeated keys and their order) are preserved.
    """
    u = urlparse(url)
    pairs = parse_qsl(u.query, keep_blank_values=True)
    if any(k == PAGE_PARAM for k, _ in pairs):
        pairs = [(k, str(page) if k == PAGE_PARAM else v) for k, v in pairs]
        return u._replace(query=urlencode(pairs)).geturl()
    if _PATH_PAGE_RE.search(u.path):
        path = _PATH_PAGE_RE.sub(f"/page/{page}", u.path, count=1)
        return u._replace(path=path).geturl()
    pairs.append((PAGE_PARAM, str(page)))
    return u._replace(query=urlencode(pairs)).geturl()
