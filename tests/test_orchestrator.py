import json

import pytest

from scrapers.gulftalent_scraper import GulfTalentScraper
from utils.errors import ConfigError, ExtractionError
from utils.list_strategies import default_strategies
from utils.pagination import page_from_url, with_page
from utils.sink import Dataset
from utils.transforms import job_id_from_url

FIRST_PAGE = "https://www.gulftalent.com/jobs/search?search_keyword=engineer&page=1"


def page_url(n):
    return with_page(FIRST_PAGE, n)


def search_calls(fetcher):
    return [u for u in fetcher.urls() if "/jobs/search" in u]


def detail_calls(fetcher):
    return [u for u in fetcher.urls() if "/jobs/search" not in u]


@pytest.fixture
def endless_site(site):
    """Every search page lists 10 fresh jobs; detail pages always load."""

    def route(url):
        if "/jobs/search" in url:
            n = page_from_url(url)
            return site.listing_html(range(n * 100, n * 100 + 10))
        return site.detail_html(job_id_from_url(url))

    return route


def make_scraper(config, fetcher, storage, cls=GulfTalentScraper, **kw):
    store, dataset = storage
    return cls(config, fetcher=fetcher, store=store, dataset=dataset, **kw)


def test_max_pages_bounds_list_requests(make_config, fake_fetcher, storage, endless_site):
    fetcher = fake_fetcher(default=endless_site)
    scraper = make_scraper(make_config(maxPages=3, collectDetails=False), fetcher, storage)
    state = scraper.run()

    assert search_calls(fetcher) == [page_url(1), page_url(2), page_url(3)]
    assert state.pages_scraped == 3
    assert state.jobs_scraped == 30
    assert len(scraper.dataset) == 30


def test_max_jobs_stops_details_and_emission(make_config, fake_fetcher, storage, site):
    def route(url):
        if "/jobs/search" in url:
            n = page_from_url(url)
            ids = range((n - 1) * 20 + 1, n * 20 + 1)
            return {
                "results": {
                    "data": [
                        {"title": f"Engineer {i}", "link": f"/uae/jobs/job-{i}"} for i in ids
                    ],
                    "total": 100,
                    "per_page": 20,
                }
            }
        return site.detail_html(job_id_from_url(url))

    fetcher = fake_fetcher(default=route)
    scraper = make_scraper(make_config(maxJobs=5), fetcher, storage)
    state = scraper.run()

    assert state.jobs_scraped == 5
    assert len(scraper.dataset) == 5
    assert len(detail_calls(fetcher)) == 5
    assert search_calls(fetcher) == [page_url(1)]
    assert {r["url"] for r in scraper.dataset.items} == {site.job_url(i) for i in range(1, 6)}


def test_overlapping_pages_emit_each_job_once(make_config, fake_fetcher, storage, site):
    fetcher = fake_fetcher(
        {
            page_url(1): site.listing_html(range(1, 11)),
            page_url(2): site.listing_html(range(6, 16)),
            page_url(3): site.listing_html(range(11, 16)),
        },
        default=lambda url: site.detail_html(job_id_from_url(url)),
    )
    scraper = make_scraper(make_config(), fetcher, storage)
    state = scraper.run()

    urls = [r["url"] for r in scraper.dataset.items]
    assert len(urls) == len(set(urls)) == 15
    assert state.jobs_scraped == len(state.seen_job_ids) == 15
    assert state.pages_scraped == 3
    assert sorted(detail_calls(fetcher)) == sorted(site.job_url(i) for i in range(1, 16))

    lines = scraper.dataset.path.read_text(encoding="utf-8").splitlines()
    assert len(lines) == 15
    record = json.loads(lines[0])
    assert record["jobType"] == "Full time"
    assert record["description_text"].startswith("Build things for job")
    assert "error" not in record


class SpyScraper(GulfTalentScraper):
    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self.extracted_titles = []

    def list_strategies(self):
        inner = default_strategies(self.BASE_URL, self.SEARCH_MARKER)

        def spy(page):
            self.extracted_titles.append(page.soup.title.get_text())
            for strategy in inner:
                result = strategy(page)
                if result.jobs:
                    return result
            return result

        return [spy]


def test_captcha_page_is_retried_without_extraction(make_config, fake_fetcher, storage, fx, site):
    fetcher = fake_fetcher(
        {
            page_url(1): [fx.text("blocked_captcha.html"), site.listing_html(range(1, 4))],
            page_url(2): site.listing_html([]),
        }
    )
    config = make_config(
        collectDetails=False,
        proxyConfiguration={"proxyUrls": ["http://p1:8000", "http://p2:8000"]},
    )
    scraper = make_scraper(config, fetcher, storage, cls=SpyScraper)
    state = scraper.run()

    assert "Security CAPTCHA" not in scraper.extracted_titles
    assert scraper.extracted_titles == ["Results", "Results"]
    assert scraper.metrics.count("requests.retried.blocked") == 1
    first, retry = fetcher.calls[0], fetcher.calls[1]
    assert first[0] == retry[0] == page_url(1)
    assert first[1] != retry[1]
    assert state.jobs_scraped == 3
    assert state.pages_scraped == 2


def test_persistent_block_abandons_list_page(make_config, fake_fetcher, storage, fx):
    fetcher = fake_fetcher({page_url(1): fx.text("blocked_captcha.html")})
    scraper = make_scraper(make_config(maxRequestRetries=2), fetcher, storage, cls=SpyScraper)
    state = scraper.run()

    assert fetcher.urls() == [page_url(1)] * 3
    assert scraper.extracted_titles == []
    assert [r.url for r in scraper.abandoned] == [page_url(1)]
    assert state.pages_scraped == 1
    assert len(scraper.dataset) == 0
    assert not scraper.structural_break


def test_failed_detail_emits_partial_record(make_config, fake_fetcher, storage, site):
    fetcher = fake_fetcher(
        {page_url(1): site.listing_html([7, 8]), page_url(2): site.listing_html([])}
    )
    scraper = make_scraper(make_config(), fetcher, storage)
    scraper.run()

    assert len(scraper.dataset) == 2
    for record in scraper.dataset.items:
        assert record["title"].startswith("Engineer")
        assert record["description_html"] is None
        assert record["error"].startswith("detail fetch failed: unexpected status 404")
    # one attempt plus one retry per detail page
    assert len(detail_calls(fetcher)) == 4
    assert scraper.metrics.count("requests.abandoned") == 2


def test_detail_parse_error_is_isolated(make_config, fake_fetcher, storage, site):
    class BrokenDetail(GulfTalentScraper):
        def parse_detail(self, page):
            raise RuntimeError("unexpected layout")

    fetcher = fake_fetcher(
        {page_url(1): site.listing_html([1]), page_url(2): site.listing_html([])},
        default=lambda url: site.detail_html(1),
    )
    scraper = make_scraper(make_config(), fetcher, storage, cls=BrokenDetail)
    scraper.run()

    (record,) = scraper.dataset.items
    assert record["error"] == "detail extraction failed: unexpected layout"
    assert record["url"] == site.job_url(1)


def test_listing_only_mode(make_config, fake_fetcher, storage, site):
    fetcher = fake_fetcher(
        {page_url(1): site.listing_html([1, 2]), page_url(2): site.listing_html([])}
    )
    scraper = make_scraper(make_config(collectDetails=False), fetcher, storage)
    scraper.run()

    assert detail_calls(fetcher) == []
    first = scraper.dataset.items[0]
    assert first["company"] == "Acme 1"
    assert first["location"] == "Dubai"
    assert first["description_text"] is None and first["jobType"] is None
    assert "error" not in first


def test_empty_first_page_warns(make_config, fake_fetcher, storage, site, caplog):
    fetcher = fake_fetcher({page_url(1): site.listing_html([])})
    scraper = make_scraper(make_config(), fetcher, storage)
    with caplog.at_level("WARNING"):
        state = scraper.run()

    assert scraper.structural_break
    assert state.pages_scraped == 1
    assert search_calls(fetcher) == [page_url(1)]
    assert any("list:empty:first_page" in r.getMessage() for r in caplog.records)


def test_empty_first_page_error_policy(make_config, fake_fetcher, storage, site):
    fetcher = fake_fetcher({page_url(1): site.listing_html([])})
    scraper = make_scraper(make_config(emptyFirstPage="error"), fetcher, storage)
    with pytest.raises(ExtractionError):
        scraper.run()
    assert storage[0].load_state().pages_scraped == 1


def test_resume_skips_known_jobs(make_config, fake_fetcher, storage, site):
    routes = {page_url(1): site.listing_html([1, 2, 3]), page_url(2): site.listing_html([])}
    first = make_scraper(make_config(collectDetails=False), fake_fetcher(routes), storage)
    first.run()

    store, _ = storage
    second = GulfTalentScraper(
        make_config(collectDetails=False),
        fetcher=fake_fetcher(routes),
        store=store,
        dataset=Dataset(store.dir.parent.parent, name="second"),
    )
    state = second.run()

    assert len(second.dataset) == 0
    assert state.jobs_scraped == 3
    assert state.pages_scraped == 3


def test_no_start_request_is_config_error(make_config, fake_fetcher, storage):
    class NoSeeds(GulfTalentScraper):
        def start_requests(self):
            return []

    scraper = make_scraper(make_config(), fake_fetcher(), storage, cls=NoSeeds)
    with pytest.raises(ConfigError):
        scraper.run()


def test_site_next_link_is_followed(make_config, fake_fetcher, storage, site):
    second = f"{site.base_url}/jobs/search/engineer/p2"
    fetcher = fake_fetcher(
        {
            page_url(1): site.listing_html([1, 2], next_href="/jobs/search/engineer/p2"),
            second: site.listing_html([3]),
            with_page(second, 3): site.listing_html([]),
        }
    )
    scraper = make_scraper(make_config(collectDetails=False), fetcher, storage)
    state = scraper.run()

    # no next link on the second page, so the page number is rewritten instead
    assert search_calls(fetcher) == [page_url(1), second, with_page(second, 3)]
    assert state.jobs_scraped == 3
