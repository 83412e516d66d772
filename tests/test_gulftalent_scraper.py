from bs4 import BeautifulSoup as BS

from scrapers import SCRAPER_REGISTRY
from scrapers.gulftalent_scraper import GulfTalentScraper
from utils.schema import Label

SEARCH = "https://www.gulftalent.com/jobs/search"


def test_registry_exposes_scraper():
    assert SCRAPER_REGISTRY["gulftalent"] is GulfTalentScraper


def test_build_search_url(make_config, fake_fetcher, storage):
    scraper = GulfTalentScraper(
        make_config(keyword="civil engineer", postedDate="7d"),
        fetcher=fake_fetcher(),
        store=storage[0],
        dataset=storage[1],
    )
    assert scraper.build_search_url("10111111000001", page=2) == (
        f"{SEARCH}?search_keyword=civil+engineer&city=10111111000001"
        "&filters%5Bposted_date%5D=7&page=2"
    )
    assert scraper.build_search_url() == f"{SEARCH}?search_keyword=civil+engineer&page=1"


def _scraper(make_config, fake_fetcher, storage, **cfg):
    return GulfTalentScraper(
        make_config(**cfg), fetcher=fake_fetcher(), store=storage[0], dataset=storage[1]
    )


def test_start_url_is_used_verbatim(make_config, fake_fetcher, storage):
    url = f"{SEARCH}?search_keyword=nurse&page=3"
    (req,) = _scraper(make_config, fake_fetcher, storage, startUrl=url).start_requests()
    assert req.url == url
    assert req.label is Label.LIST
    assert req.page == 3


def test_location_name_needs_init(make_config, fake_fetcher, storage):
    (req,) = _scraper(make_config, fake_fetcher, storage, location="Dubai").start_requests()
    assert req.label is Label.INIT
    assert req.url == SEARCH


def test_numeric_location_goes_straight_to_list(make_config, fake_fetcher, storage):
    (req,) = _scraper(
        make_config, fake_fetcher, storage, location="10111111000002"
    ).start_requests()
    assert req.label is Label.LIST
    assert "city=10111111000002" in req.url
    assert req.search_context["city"] == "10111111000002"


def test_resolve_location(fx):
    soup = BS(fx.text("search_page.html"), "lxml")
    assert GulfTalentScraper.resolve_location(soup, "dubai") == "10111111000001"
    assert GulfTalentScraper.resolve_location(soup, " Abu  Dhabi ") == "10111111000002"
    assert GulfTalentScraper.resolve_location(soup, "Sharjah") == "10111111000003"
    assert GulfTalentScraper.resolve_location(soup, "Paris") is None


def test_init_resolves_city_then_lists(make_config, fake_fetcher, storage, fx, site):
    fetcher = fake_fetcher(
        {SEARCH: fx.text("search_page.html")},
        default=lambda url: site.listing_html([] if "page=2" in url else [1]),
    )
    scraper = GulfTalentScraper(
        make_config(location="Abu Dhabi", collectDetails=False),
        fetcher=fetcher,
        store=storage[0],
        dataset=storage[1],
    )
    scraper.run()

    urls = fetcher.urls()
    assert urls[0] == SEARCH
    assert urls[1] == f"{SEARCH}?search_keyword=engineer&city=10111111000002&page=1"
    assert urls[2] == f"{SEARCH}?search_keyword=engineer&city=10111111000002&page=2"
    assert len(scraper.dataset) == 1


def test_blocked_init_falls_back_to_raw_location(make_config, fake_fetcher, storage, fx, site):
    fetcher = fake_fetcher(
        {SEARCH: fx.text("blocked_captcha.html")},
        default=lambda url: site.listing_html([] if "page=2" in url else [1]),
    )
    scraper = GulfTalentScraper(
        make_config(location="Dubai", collectDetails=False),
        fetcher=fetcher,
        store=storage[0],
        dataset=storage[1],
    )
    state = scraper.run()

    assert fetcher.urls()[:2] == [SEARCH, SEARCH]
    assert f"{SEARCH}?search_keyword=engineer&city=Dubai&page=1" in fetcher.urls()
    assert [r.label for r in scraper.abandoned] == [Label.INIT]
    assert state.jobs_scraped == 1
