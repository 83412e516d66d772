"""
GulfTalent scraper.

Builds the search URL from the run input (or uses the given start URL),
walks the paginated results, and follows each new job to its detail page
for the description and the labelled metadata block (job type, nationality,
salary, Arabic fluency...).

When a location is given by name, an INIT request first loads the search
page to resolve the name to the site's city filter value.
"""

from __future__ import annotations

from typing import Dict, List, Optional, Sequence
from urllib.parse import urlencode

from bs4 import BeautifulSoup as BS

from scrapers.base import JobScraper
from utils.errors import ConfigError
from utils.extractors import text
from utils.http import FetchedPage
from utils.list_strategies import ListStrategy, default_strategies
from utils.pagination import page_from_url
from utils.schema import CrawlRequest, Label


class GulfTalentScraper(JobScraper):
    """
    Scraper for www.gulftalent.com job search.

    Workflow:
      1) (optional) INIT: resolve a location name to its city filter id.
      2) LIST: read the faceted-search payload (or the cards) page by page.
      3) DETAIL: parse description and metadata for every newly seen job.
    """

    VENDOR = "GulfTalent"
    BASE_URL = "https://www.gulftalent.com"
    SEARCH_URL = f"{BASE_URL}/jobs/search"
    SEARCH_MARKER = "facetedSearchResultsValue"

    # postedDate input -> filters[posted_date] (days)
    POSTED_DATE_FILTER: Dict[str, int] = {"24h": 1, "7d": 7, "30d": 30}

    def search_context(self) -> Dict[str, Optional[str]]:
        return {
            "keyword": self.config.keyword,
            "location": self.config.location,
            "posted_date": self.config.posted_date,
        }

    def build_search_url(self, city: Optional[str] = None, page: int = 1) -> str:
        """
        Build the search URL for the configured keyword/filters.

        Args:
            city: Value for the ``city`` filter (site id or the raw name).
            page: Results page to request.
        """
        params: List[tuple[str, str]] = []
        if self.config.keyword:
            params.append(("search_keyword", self.config.keyword))
        if city:
            params.append(("city", city))
        days = self.POSTED_DATE_FILTER.get(self.config.posted_date or "anytime")
        if days:
            params.append(("filters[posted_date]", str(days)))
        params.append(("page", str(page)))
        return f"{self.SEARCH_URL}?{urlencode(params)}"

    def start_requests(self) -> List[CrawlRequest]:
        ctx = self.search_context()
        if self.config.start_url:
            url = self.config.start_url
            return [
                CrawlRequest(
                    url=url, label=Label.LIST, page=page_from_url(url), search_context=ctx
                )
            ]
        if not self.config.keyword:
            raise ConfigError("Either 'startUrl' or 'keyword' must be provided as input.")
        location = (self.config.location or "").strip()
        if location and not location.isdigit():
            return [CrawlRequest(url=self.SEARCH_URL, label=Label.INIT, search_context=ctx)]
        return [self._first_list_request(location or None)]

    def _first_list_request(self, city: Optional[str]) -> CrawlRequest:
        ctx = {**self.search_context(), "city": city}
        return CrawlRequest(
            url=self.build_search_url(city), label=Label.LIST, page=1, search_context=ctx
        )

    def list_strategies(self) -> Sequence[ListStrategy]:
        return default_strategies(self.BASE_URL, self.SEARCH_MARKER)

    # -------------------------------------------------------------------------
    # INIT
    # -------------------------------------------------------------------------
    @staticmethod
    def resolve_location(soup: BS, name: str) -> Optional[str]:
        """
        Find the city filter value for a location name on the search page.

        Options of a ``city`` select are preferred; any option whose text
        matches is accepted otherwise. Matching is case-insensitive and
        ignores result counts such as ``"Dubai (1,234)"``.
        """
        wanted = " ".join(name.split()).lower()

        def _label(option) -> str:
            return text(option).split("(")[0].strip().lower()

        selects = soup.select("select[name*='city']") or [soup]
        for scope in selects:
            for option in scope.find_all("option"):
                value = (option.get("value") or "").strip()
                if value and _label(option) == wanted:
                    return value
        return None

    def handle_init(self, request: CrawlRequest, page: FetchedPage) -> List[CrawlRequest]:
        location = (self.config.location or "").strip()
        city = self.resolve_location(page.soup, location)
        if city:
            self.log("init:location", name=location, city=city)
        else:
            self.log("init:location:unresolved", level="warning", name=location)
        return [self._first_list_request(city or location)]

    def init_fallback(self, request: CrawlRequest) -> List[CrawlRequest]:
        location = (self.config.location or "").strip() or None
        self.log("init:fallback", level="warning", location=location)
        return [self._first_list_request(location)]
