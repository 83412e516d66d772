"""
Base scraper: the crawl engine shared by site scrapers.

`JobScraper` owns the request frontier, a bounded worker pool, the persisted
`CrawlState` and the record sink. Requests carry a label that selects the
handler:

    INIT   -> discover search parameters, then build the first LIST request
    LIST   -> extract job summaries, accept new ones, plan the next page
    DETAIL -> extract description/metadata and emit the final record

Subclasses provide the site specifics by overriding `start_requests`,
`list_strategies` and (when they use INIT) `handle_init`.

Typical usage (via the CLI):
    scraper = GulfTalentScraper(config)
    scraper.run()
    scraper.export("scraped_data/gulftalent_jobs.csv")
"""

from __future__ import annotations

import logging

from collections import deque
from concurrent.futures import FIRST_COMPLETED, Future, ThreadPoolExecutor, wait
from dataclasses import replace
from time import time
from typing import Any, Callable, Deque, Dict, List, Optional, Sequence, Tuple

from utils.blocking import detect_blocking
from utils.detail_extractor import extract_detail
from utils.errors import BlockedError, ConfigError, ExtractionError, RetriableError
from utils.http import FetchedPage, Fetcher, ProxyRotator, build_headers
from utils.input_config import RunConfig
from utils.list_strategies import ExtractionResult, ListStrategy, extract_jobs
from utils.metrics import Metrics
from utils.pagination import PageOutcome, page_from_url, plan_next_page, with_page
from utils.schema import CrawlRequest, JobDetail, Label, build_record
from utils.sink import Dataset
from utils.state import CrawlState, Deduplicator, StateStore

Handler = Callable[[CrawlRequest, FetchedPage], List[CrawlRequest]]


class JobScraper:
    """
    Abstract crawl orchestrator.

    Attributes:
        config: Validated run configuration.
        fetcher: Page fetcher (anything with ``fetch(url, headers, proxy)``).
        proxies: Proxy rotation; each retry of a request uses the next proxy.
        store: Persisted key-value store holding the crawl state.
        dataset: Record sink receiving one record per accepted job.
        state: Counters and seen ids, loaded from `store` at construction.
        dedupe: Seen-id view of `state` used by the dispatch checks.
        max_workers: Size of the worker pool.
        abandoned: Requests given up on after exhausting retries.
        structural_break: True when page 1 produced no jobs with any strategy.
        logger: LoggerAdapter that injects a `scraper` field for uniform logs.
    """

    BASE_URL = ""

    def __init__(
        self,
        config: RunConfig,
        fetcher: Optional[Any] = None,
        store: Optional[StateStore] = None,
        dataset: Optional[Dataset] = None,
        proxies: Optional[ProxyRotator] = None,
    ) -> None:
        self.config = config
        self.headers = build_headers(config.cookies)
        self.fetcher = fetcher or Fetcher(self.headers, timeout=config.request_timeout)
        self.proxies = proxies or ProxyRotator(config.proxy_urls)
        self.store = store or StateStore()
        self.dataset = dataset or Dataset()
        self.state: CrawlState = self.store.load_state()
        self.dedupe = Deduplicator(self.state)

        name = self.__class__.__name__.replace("Scraper", "").lower()
        # Standardized logger with a 'scraper' token for consistent formatting.
        self.logger = logging.LoggerAdapter(
            logging.getLogger(self.__class__.__name__), {"scraper": name}
        )
        self.metrics = Metrics(name)
        self.max_workers = max(1, int(config.max_concurrency))

        self.abandoned: List[CrawlRequest] = []
        self.structural_break = False
        self._frontier: Deque[CrawlRequest] = deque()
        self._detail_dispatched: set[str] = set()
        self._lists_in_flight = 0
        self._handlers: Dict[Label, Handler] = {
            Label.INIT: self.handle_init,
            Label.LIST: self.handle_list,
            Label.DETAIL: self.handle_detail,
        }

    def fmt_pairs(self, **kv: Any) -> str:
        """
        Render key/value pairs as a single space-prefixed string.

        Args:
            **kv: Arbitrary key/value pairs to serialize.

        Returns:
            Concatenated `key=value` pairs with a leading space, or an empty
            string if no pairs are provided.
        """
        if not kv:
            return ""
        parts = [f"{k}={v}" for k, v in kv.items()]
        return " " + " ".join(parts)

    def log(self, event: str, level: str = "info", **kv: Any) -> None:
        """
        Emit a standardized log line as: `event key=value ...`.

        Args:
            event: Short event token (e.g., 'list:page', 'request:retry').
            level: Logging level name (e.g., 'info', 'warning', 'error').
            **kv: Structured context fields to include alongside the event.
        """
        msg = f"{event}{self.fmt_pairs(**kv)}"
        getattr(self.logger, level)(msg)

    # -----------------------------
    # Methods to override in subclasses
    # -----------------------------
    def start_requests(self) -> List[CrawlRequest]:
        """
        Build the initial frontier (LIST requests, or one INIT request).

        Raises:
            NotImplementedError: Subclasses must implement this method.
            ConfigError: If no start request can be built from the config.
        """
        raise NotImplementedError

    def list_strategies(self) -> Sequence[ListStrategy]:
        """Return the list-page extraction strategies in priority order."""
        raise NotImplementedError

    def handle_init(self, request: CrawlRequest, page: FetchedPage) -> List[CrawlRequest]:
        """Turn a bootstrap page into the first LIST request(s)."""
        raise NotImplementedError

    def init_fallback(self, request: CrawlRequest) -> List[CrawlRequest]:
        """
        Start requests to use when the INIT request is abandoned.

        The default gives up; subclasses that use INIT should return LIST
        requests built without the discovered parameters.
        """
        return []

    def parse_detail(self, page: FetchedPage) -> JobDetail:
        return extract_detail(page.soup)

    # -----------------------------
    # Fetch + gate
    # -----------------------------
    def fetch(self, request: CrawlRequest) -> FetchedPage:
        """
        Fetch a request's page and reject blocked responses.

        Raises:
            FetchError: Propagated from the fetcher.
            BlockedError: If the page carries an anti-bot indicator.
        """
        proxy = self.proxies.pick()
        with self.metrics.time("fetch.seconds"):
            page = self.fetcher.fetch(request.url, headers=None, proxy=proxy)
        indicator = detect_blocking(page)
        if indicator:
            raise BlockedError(
                f"blocking indicator {indicator!r} on page", url=request.url, indicator=indicator
            )
        return page

    def process_request(self, request: CrawlRequest) -> List[CrawlRequest]:
        """
        Fetch and handle one request, returning follow-up requests.

        Never raises: retriable failures come back as a retry request (or are
        abandoned), anything else is logged and isolated to this request.
        """
        try:
            page = self.fetch(request)
        except RetriableError as e:
            return self._retry_or_abandon(request, e)
        except Exception as e:
            self.logger.exception(f"request:fetch:error url={request.url}")
            return self._abandon(request, e)

        try:
            return self._handlers[request.label](request, page)
        except Exception:
            self.metrics.inc("requests.errors")
            self.logger.exception(
                f"request:handler:error label={request.label.value} url={request.url}"
            )
            return []

    def _retry_or_abandon(
        self, request: CrawlRequest, err: RetriableError
    ) -> List[CrawlRequest]:
        kind = "blocked" if isinstance(err, BlockedError) else "fetch_failed"
        if request.retry_count < self.config.max_request_retries:
            self.metrics.inc(f"requests.retried.{kind}")
            self.log(
                "request:retry",
                level="warning",
                reason=kind,
                label=request.label.value,
                attempt=request.retry_count + 1,
                url=request.url,
                error=err,
            )
            return [replace(request, retry_count=request.retry_count + 1)]
        return self._abandon(request, err)

    def _abandon(self, request: CrawlRequest, err: BaseException) -> List[CrawlRequest]:
        self.metrics.inc("requests.abandoned")
        self.abandoned.append(request)
        self.log(
            "request:abandoned",
            level="error",
            label=request.label.value,
            retries=request.retry_count,
            url=request.url,
            error=err,
        )
        if request.label is Label.LIST:
            self.state.page_done()
            self.store.save_state(self.state)
        elif request.label is Label.DETAIL and request.parent_job is not None:
            detail = JobDetail(error=f"detail fetch failed: {err}")
            self.dataset.push(build_record(request.parent_job, detail))
        elif request.label is Label.INIT:
            return self.init_fallback(request)
        return []

    # -----------------------------
    # Handlers
    # -----------------------------
    def handle_list(self, request: CrawlRequest, page: FetchedPage) -> List[CrawlRequest]:
        """
        Process one search-results page.

        The page counter, the dedupe set and the successor decision are all
        settled here, before the next LIST request exists.
        """
        pages_scraped = self.state.page_done()
        page_no = request.page or page_from_url(request.url)
        self.log("list:page", page=page_no, pages_scraped=pages_scraped, url=request.url)

        with self.metrics.time("list.extract_seconds"):
            result = extract_jobs(page, self.list_strategies())

        accepted = []
        duplicates = 0
        for job in result.jobs:
            if self.state.try_accept(job.id, self.config.max_jobs):
                accepted.append(job)
            elif self.dedupe.seen(job.id):
                duplicates += 1
        self.metrics.inc("list.pages")
        self.metrics.inc("jobs.accepted", len(accepted))
        self.metrics.inc("jobs.duplicates", duplicates)
        self.log(
            "list:extracted",
            page=page_no,
            strategy=result.strategy,
            found=len(result.jobs),
            accepted=len(accepted),
            duplicates=duplicates,
            total=result.total_available,
        )

        if not result.jobs:
            if page_no <= 1:
                self.structural_break = True
                self.log(
                    "list:empty:first_page",
                    level="warning",
                    url=request.url,
                    hint="no strategy found jobs; markup may have changed",
                )
            else:
                self.log("list:empty", page=page_no)

        follow_ups: List[CrawlRequest] = []
        for job in accepted:
            if self.config.collect_details:
                follow_ups.append(
                    CrawlRequest(
                        url=job.url,
                        label=Label.DETAIL,
                        search_context=request.search_context,
                        parent_job=job,
                    )
                )
            else:
                self.dataset.push(build_record(job))

        snap = self.state.snapshot()
        decision = plan_next_page(
            PageOutcome(
                page=page_no,
                jobs_found=len(result.jobs),
                jobs_accepted=len(accepted),
                jobs_scraped=snap["jobsScraped"],
                pages_scraped=snap["pagesScraped"],
                total_available=result.total_available,
                per_page=result.per_page,
            ),
            max_jobs=self.config.max_jobs,
            max_pages=self.config.max_pages,
        )
        if decision.proceed:
            next_url, source = self.next_page_url(request, result, decision.next_page)
            self.log(
                "list:next",
                page=decision.next_page,
                reason=decision.reason,
                source=source,
                jobs_scraped=snap["jobsScraped"],
                url=next_url,
            )
            follow_ups.append(
                replace(request, url=next_url, page=decision.next_page, retry_count=0)
            )
        else:
            self.log("list:stop", page=page_no, reason=decision.reason)

        self.store.save_state(self.state)
        return follow_ups

    def next_page_url(
        self, request: CrawlRequest, result: ExtractionResult, page_no: int
    ) -> Tuple[str, str]:
        """
        URL of the successor LIST page and where it came from.

        The page's own next link wins; otherwise the page number is rewritten
        in the current URL.
        """
        hint = result.next_url
        if hint and hint != request.url:
            return hint, "next_link"
        return with_page(request.url, page_no), "page_param"

    def handle_detail(self, request: CrawlRequest, page: FetchedPage) -> List[CrawlRequest]:
        job = request.parent_job
        if job is None:
            self.log("detail:orphan", level="error", url=request.url)
            return []
        try:
            with self.metrics.time("detail.extract_seconds"):
                detail = self.parse_detail(page)
        except Exception as e:
            self.logger.exception(f"detail:extract:error url={request.url}")
            detail = JobDetail(error=f"detail extraction failed: {e}")
        if detail.error:
            self.metrics.inc("detail.partial")
            self.log("detail:partial", level="warning", id=job.id, error=detail.error)
        self.dataset.push(build_record(job, detail))
        self.metrics.inc("records.emitted")
        return []

    # -----------------------------
    # Frontier
    # -----------------------------
    def _should_dispatch(self, request: CrawlRequest) -> bool:
        if request.label is Label.LIST:
            cfg = self.config
            if self.state.limits_reached(max_jobs=cfg.max_jobs):
                self.log("list:skip", reason="max_jobs", url=request.url)
                return False
            if cfg.max_pages is not None and (
                self.state.snapshot()["pagesScraped"] + self._lists_in_flight
                >= cfg.max_pages
            ):
                self.log("list:skip", reason="max_pages", url=request.url)
                return False
        elif request.label is Label.DETAIL:
            job = request.parent_job
            if job is None or not self.dedupe.seen(job.id):
                self.log("detail:skip", level="error", reason="not_accepted", url=request.url)
                return False
            if request.retry_count == 0 and job.id in self._detail_dispatched:
                self.log("detail:skip", reason="already_dispatched", id=job.id)
                return False
            self._detail_dispatched.add(job.id)
        return True

    def _drain(self) -> None:
        pending: Dict[Future, CrawlRequest] = {}
        with ThreadPoolExecutor(max_workers=self.max_workers) as ex:
            while self._frontier or pending:
                while self._frontier and len(pending) < self.max_workers:
                    req = self._frontier.popleft()
                    if not self._should_dispatch(req):
                        continue
                    if req.label is Label.LIST:
                        self._lists_in_flight += 1
                    pending[ex.submit(self.process_request, req)] = req
                if not pending:
                    break
                done, _ = wait(list(pending), return_when=FIRST_COMPLETED)
                for fut in done:
                    req = pending.pop(fut)
                    if req.label is Label.LIST:
                        self._lists_in_flight -= 1
                    try:
                        self._frontier.extend(fut.result())
                    except Exception:
                        self.logger.exception(f"request:error url={req.url}")

    # -----------------------------
    # Orchestrator
    # -----------------------------
    def run(self) -> CrawlState:
        """
        Crawl until the frontier is empty and return the final state.

        Raises:
            ConfigError: If no start request can be built.
            ExtractionError: When page 1 yielded no jobs and the config asks
                for ``empty_first_page="error"`` (state is flushed first).
        """
        start = time()
        seeds = self.start_requests()
        if not seeds:
            raise ConfigError("could not build a start request from the input")
        self._frontier.extend(seeds)
        self.log(
            "run:start",
            start_urls=[r.url for r in seeds],
            workers=self.max_workers,
            resumed_pages=self.state.pages_scraped,
            resumed_jobs=self.state.jobs_scraped,
        )
        try:
            self._drain()
        finally:
            self.store.save_state(self.state)

        snap = self.state.snapshot()
        self.metrics.set_gauge("output.records", len(self.dataset))
        self.log(
            "run:done",
            pages=snap["pagesScraped"],
            jobs=snap["jobsScraped"],
            records=len(self.dataset),
            abandoned=len(self.abandoned),
            seconds=round(time() - start, 3),
        )
        self.log("run:metrics", metrics=self.metrics.to_json())

        if self.structural_break and self.config.empty_first_page == "error":
            raise ExtractionError("first list page produced no jobs with any strategy")
        return self.state

    def export(self, filename: str) -> None:
        """Export this run's records to CSV (see `Dataset.export_csv`)."""
        n = self.dataset.export_csv(filename)
        self.log("export:csv", path=filename, n=n)
