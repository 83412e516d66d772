"""
List-page extraction strategies.

Each strategy is a callable ``FetchedPage -> ExtractionResult``. `extract_jobs`
tries them in priority order and returns the first non-empty result; a
strategy that raises is logged and treated as having found nothing, so markup
or payload drift degrades to the next strategy instead of failing the crawl.

Default order for the site:
  1) embedded_payload  - JS object passed to the faceted search widget
  2) direct_json       - the response itself is the AJAX JSON payload
  3) markup_anchors    - job links scraped from the rendered cards
"""

from __future__ import annotations

import logging
import re

from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple
from urllib.parse import urlparse

from bs4 import Tag

from utils.extractors import dig, extract_marker_object, text
from utils.http import FetchedPage
from utils.schema import JobSummary
from utils.transforms import absolute_url, job_id_from_url, normalize_timestamp

logger = logging.getLogger(__name__)

NOT_SPECIFIED = "Not specified"
MIN_TITLE_CHARS = 3

# (css selector, attribute) - attribute None means "element text".
FieldRule = Tuple[str, Optional[str]]

TITLE_RULES: List[FieldRule] = [
    (".job-title", None),
    ("[data-job-title]", "data-job-title"),
    ("h2", None),
    ("h3", None),
    ("h4", None),
    (".title", None),
]
COMPANY_RULES: List[FieldRule] = [
    (".company-name", None),
    ("[data-company-name]", "data-company-name"),
    (".company", None),
    ("[class*='company']", None),
]
LOCATION_RULES: List[FieldRule] = [
    (".location", None),
    ("[data-location]", "data-location"),
    ("[class*='location']", None),
]
POSTED_RULES: List[FieldRule] = [
    ("time[datetime]", "datetime"),
    (".posted-date", None),
    (".date", None),
    ("time", None),
]

CONTAINER_TAGS = {"li", "article", "tr"}
CONTAINER_CLASS_HINTS = ("job", "result", "card", "item", "listing")
NEXT_LINK_SELECTOR = "a.next, .pagination .next, [rel='next']"


@dataclass
class ExtractionResult:
    jobs: List[JobSummary] = field(default_factory=list)
    total_available: Optional[int] = None
    per_page: Optional[int] = None
    strategy: Optional[str] = None
    next_url: Optional[str] = None


ListStrategy = Callable[[FetchedPage], ExtractionResult]


def _as_int(value: Any) -> Optional[int]:
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


def normalize_payload_job(raw: Dict[str, Any], base_url: str) -> Optional[JobSummary]:
    """
    Map one job object from the site's JSON payload to a JobSummary.

    Returns None when no usable URL/id can be derived.
    """
    if not isinstance(raw, dict):
        return None
    url = absolute_url(raw.get("link") or raw.get("url"), base_url)
    if not url:
        return None
    job_id = job_id_from_url(url)
    if not job_id:
        fallback = raw.get("id") or raw.get("job_id")
        job_id = str(fallback) if fallback is not None and str(fallback).isdigit() else None
    if not job_id:
        return None

    location = raw.get("location")
    if isinstance(location, list):
        location = ", ".join(str(x) for x in location if x)

    posted = normalize_timestamp(raw.get("posted_date_ts"))
    if posted is None and raw.get("posted_date"):
        posted = str(raw["posted_date"]).strip() or None

    return JobSummary(
        id=job_id,
        url=url,
        title=(str(raw.get("title") or "").strip() or NOT_SPECIFIED),
        company=(
            str(raw.get("company_name") or raw.get("company") or "").strip()
            or NOT_SPECIFIED
        ),
        location=(str(location or "").strip() or NOT_SPECIFIED),
        posted_at=posted,
    )


def payload_to_result(data: Any, base_url: str, strategy: str) -> ExtractionResult:
    """
    Read jobs and totals from a decoded search payload.

    Looks under ``results`` first and falls back to the payload root for the
    job array (``data``) and the counts (``total``, ``per_page``).
    """
    if not isinstance(data, dict):
        raise ValueError(f"{strategy}: payload is not an object")
    results = dig(data, "results")
    scope = results if isinstance(results, dict) else data
    jobs_raw = scope.get("data")
    if not isinstance(jobs_raw, list):
        jobs_raw = data.get("data") if isinstance(data.get("data"), list) else []

    jobs = [j for j in (normalize_payload_job(r, base_url) for r in jobs_raw) if j]
    total = _as_int(scope.get("total", data.get("total")))
    per_page = _as_int(
        scope.get("per_page") or scope.get("perPage") or data.get("per_page")
    )
    return ExtractionResult(
        jobs=jobs, total_available=total, per_page=per_page, strategy=strategy
    )


class EmbeddedPayloadStrategy:
    """Parse the search payload embedded in an inline script next to `marker`."""

    name = "embedded_payload"

    def __init__(self, base_url: str, marker: str = "facetedSearchResultsValue") -> None:
        self.base_url = base_url
        self.marker = marker

    def __call__(self, page: FetchedPage) -> ExtractionResult:
        for script in page.soup.find_all("script"):
            body = script.string or script.get_text() or ""
            if self.marker not in body:
                continue
            data = extract_marker_object(body, self.marker)
            return payload_to_result(data, self.base_url, self.name)
        return ExtractionResult(strategy=self.name)


class DirectJsonStrategy:
    """The response body is the AJAX search payload itself."""

    name = "direct_json"

    def __init__(self, base_url: str) -> None:
        self.base_url = base_url

    def __call__(self, page: FetchedPage) -> ExtractionResult:
        if not page.is_json:
            return ExtractionResult(strategy=self.name)
        return payload_to_result(page.json(), self.base_url, self.name)


def lookup_field(container: Tag, rules: Sequence[FieldRule]) -> Optional[str]:
    """Return the first non-empty value produced by `rules`, in order."""
    for selector, attr in rules:
        el = container.select_one(selector)
        if el is None:
            continue
        value = el.get(attr) if attr else text(el)
        if isinstance(value, list):
            value = " ".join(value)
        value = " ".join(str(value or "").split())
        if value:
            return value
    return None


def _is_card(node: Tag) -> bool:
    classes = " ".join(node.get("class") or []).lower()
    return (
        node.name in CONTAINER_TAGS
        or node.has_attr("data-job-id")
        or (
            node.name in ("div", "section")
            and any(h in classes for h in CONTAINER_CLASS_HINTS)
        )
    )


def _linked_job_ids(node: Tag) -> set[str]:
    ids = set()
    for a in node.find_all("a", href=True):
        href = a.get("href") or ""
        if is_job_link(href):
            ids.add(job_id_from_url(href))
    return ids


def nearest_container(anchor: Tag, max_depth: int = 6) -> Optional[Tag]:
    """
    Walk up from a job link to the card that holds its neighbouring fields.

    Only ancestors linking to no other job are candidates, so a shared
    results wrapper is never taken for a card. Among those, the first list
    item, table row, article, ``data-job-id`` holder or div/section whose
    class mentions one of `CONTAINER_CLASS_HINTS` wins; otherwise the
    largest candidate. None when even the anchor's parent links elsewhere.
    """
    own_id = job_id_from_url(anchor.get("href") or "")
    best: Optional[Tag] = None
    node = anchor.parent
    depth = 0
    while isinstance(node, Tag) and node.name not in ("body", "html") and depth < max_depth:
        if _linked_job_ids(node) - {own_id}:
            break
        if _is_card(node):
            return node
        best = node
        node = node.parent
        depth += 1
    return best


def is_job_link(url: str) -> bool:
    path = urlparse(url).path.lower()
    if "/search" in path or "/category" in path:
        return False
    return job_id_from_url(url) is not None


def find_next_link(page: FetchedPage, base_url: str) -> Optional[str]:
    """Absolute URL of the page's own "next page" link, if it has one."""
    el = page.soup.select_one(NEXT_LINK_SELECTOR)
    if el is None:
        return None
    if not el.get("href"):
        el = el.find("a", href=True)
        if el is None:
            return None
    url = absolute_url(el.get("href"), page.url or base_url)
    if not url or not re.match(r"https?://", url):
        return None
    return url.split("#", 1)[0]


class MarkupAnchorStrategy:
    """
    Scrape job links from rendered result cards.

    Titles come from the card (`TITLE_RULES`) and fall back to the link text;
    candidates with titles under `MIN_TITLE_CHARS` are icon/decoration links
    and are skipped. Ids repeated within the page are dropped.
    The page's own "next" link, when present, is returned as `next_url`.
    """

    name = "markup_anchors"

    def __init__(
        self,
        base_url: str,
        title_rules: Sequence[FieldRule] = TITLE_RULES,
        company_rules: Sequence[FieldRule] = COMPANY_RULES,
        location_rules: Sequence[FieldRule] = LOCATION_RULES,
        posted_rules: Sequence[FieldRule] = POSTED_RULES,
    ) -> None:
        self.base_url = base_url
        self.title_rules = title_rules
        self.company_rules = company_rules
        self.location_rules = location_rules
        self.posted_rules = posted_rules

    def _field(self, card: Optional[Tag], rules: Sequence[FieldRule]) -> Optional[str]:
        return lookup_field(card, rules) if card is not None else None

    def __call__(self, page: FetchedPage) -> ExtractionResult:
        jobs: List[JobSummary] = []
        seen_ids: set[str] = set()
        for a in page.soup.find_all("a", href=True):
            url = absolute_url(a.get("href"), page.url or self.base_url)
            if not url or not re.match(r"https?://", url) or not is_job_link(url):
                continue
            job_id = job_id_from_url(url)
            if job_id in seen_ids:
                continue

            # None: the link shares its parent with other jobs, only its own text is safe
            card = nearest_container(a)
            title = (
                self._field(card, self.title_rules)
                or text(a)
                or (a.get("title") or "").strip()
            )
            if len(title) < MIN_TITLE_CHARS:
                continue
            seen_ids.add(job_id)
            jobs.append(
                JobSummary(
                    id=job_id,
                    url=url.split("#", 1)[0],
                    title=title,
                    company=self._field(card, self.company_rules) or NOT_SPECIFIED,
                    location=self._field(card, self.location_rules) or NOT_SPECIFIED,
                    posted_at=self._field(card, self.posted_rules),
                )
            )
        return ExtractionResult(
            jobs=jobs, strategy=self.name, next_url=find_next_link(page, self.base_url)
        )


def default_strategies(base_url: str, marker: str = "facetedSearchResultsValue") -> List[ListStrategy]:
    return [
        EmbeddedPayloadStrategy(base_url, marker),
        DirectJsonStrategy(base_url),
        MarkupAnchorStrategy(base_url),
    ]


def extract_jobs(page: FetchedPage, strategies: Sequence[ListStrategy]) -> ExtractionResult:
    """
    Run `strategies` in order and return the first result with jobs.

    A strategy that raises counts as zero results. When every strategy comes
    back empty an empty result with ``strategy=None`` is returned.
    """
    for strategy in strategies:
        name = getattr(strategy, "name", getattr(strategy, "__name__", "strategy"))
        try:
            result = strategy(page)
        except Exception as e:
            logger.warning(f"list:strategy:error strategy={name} url={page.url} error={e!r}")
            continue
        if result.jobs:
            logger.info(
                f"list:strategy:hit strategy={name} jobs={len(result.jobs)} "
                f"total={result.total_available} url={page.url}"
            )
            if result.strategy is None:
                result.strategy = name
            return result
        logger.debug(f"list:strategy:miss strategy={name} url={page.url}")
    return ExtractionResult()
