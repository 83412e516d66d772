import json
import sys
import threading
from pathlib import Path

import pytest

# ---------- Resolve project root ----------
HERE = Path(__file__).resolve()
PROJECT_ROOT = HERE.parents[1]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from utils.errors import FetchError  # noqa: E402
from utils.http import FetchedPage  # noqa: E402
from utils.input_config import config_from_input  # noqa: E402
from utils.sink import Dataset  # noqa: E402
from utils.state import StateStore  # noqa: E402

BASE_URL = "https://www.gulftalent.com"


# ---------- Fake network ----------
class FakeFetcher:
    """
    Scripted stand-in for `utils.http.Fetcher`.

    `routes` maps a URL to a response: an HTML string, a dict/list (served as
    JSON), a FetchedPage, an exception instance (raised), a callable taking the
    URL, or a list of those consumed one per call (the last one repeats).
    Unknown URLs go to `default`, or raise a 404 FetchError.
    """

    def __init__(self, routes=None, default=None):
        self.routes = dict(routes or {})
        self.default = default
        self.calls = []
        self._lock = threading.Lock()

    def fetch(self, url, headers=None, proxy=None):
        with self._lock:
            self.calls.append((url, proxy))
            resp = self.routes.get(url, self.default)
            if isinstance(resp, list):
                resp = resp.pop(0) if len(resp) > 1 else resp[0]
        if resp is None:
            raise FetchError("unexpected status 404", url=url, status=404)
        if isinstance(resp, BaseException):
            raise resp
        if callable(resp):
            resp = resp(url)
        if isinstance(resp, FetchedPage):
            return resp
        if isinstance(resp, (dict, list)):
            return FetchedPage.from_text(json.dumps(resp), url, "application/json")
        return FetchedPage.from_text(resp, url)

    def urls(self):
        return [u for u, _ in self.calls]


def job_url(job_id):
    return f"{BASE_URL}/uae/jobs/job-{job_id}"


def listing_html(ids, title="Results", next_href=None):
    """Search results page rendered as job cards (markup strategy only)."""
    cards = "".join(
        f'<li class="job-item"><h3><a href="/uae/jobs/job-{i}">Engineer {i}</a></h3>'
        f'<span class="company-name">Acme {i}</span>'
        f'<span class="location">Dubai</span></li>'
        for i in ids
    )
    pager = f'<a rel="next" href="{next_href}">Next</a>' if next_href else ""
    return f"<html><head><title>{title}</title></head><body><ul>{cards}</ul>{pager}</body></html>"


def detail_html(job_id):
    return (
        "<html><head><title>Engineer</title></head><body>"
        f'<div class="job-description"><p>Build things for job {job_id}.</p></div>'
        '<div class="row"><span>Job Type</span><span>Full time</span></div>'
        "</body></html>"
    )


# ---------- Test fixtures ----------
@pytest.fixture
def fx(request):
    base = Path(request.config.rootpath) / "tests" / "data"

    class _Fx:
        def text(self, name):
            return (base / name).read_text(encoding="utf-8")

        def json(self, name):
            return json.loads((base / name).read_text(encoding="utf-8"))

        def page(self, name, url=f"{BASE_URL}/jobs/search?page=1"):
            content_type = "application/json" if name.endswith(".json") else "text/html"
            return FetchedPage.from_text(self.text(name), url, content_type)

    return _Fx()


@pytest.fixture
def make_config():
    """Build a RunConfig from actor-style keys; defaults to a keyword search."""

    def _make(**overrides):
        doc = {"keyword": "engineer", "maxConcurrency": 2, "maxRequestRetries": 1}
        doc.update(overrides)
        return config_from_input(doc)

    return _make


@pytest.fixture
def storage(tmp_path):
    return StateStore(tmp_path), Dataset(tmp_path)


@pytest.fixture
def fake_fetcher():
    def _make(routes=None, default=None):
        return FakeFetcher(routes, default)

    return _make


@pytest.fixture
def site():
    """Builders for synthetic GulfTalent pages."""

    class _Site:
        base_url = BASE_URL
        job_url = staticmethod(job_url)
        listing_html = staticmethod(listing_html)
        detail_html = staticmethod(detail_html)

    return _Site()
