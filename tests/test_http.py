import pytest

from utils.errors import FetchError
from utils.http import DEFAULT_HEADERS, Fetcher, FetchedPage, ProxyRotator, build_headers


def test_build_headers_adds_cookie_without_mutating_defaults():
    headers = build_headers(" sid=1; lang=en ")
    assert headers["Cookie"] == "sid=1; lang=en"
    assert "Cookie" not in DEFAULT_HEADERS
    assert "Cookie" not in build_headers("")


def test_only_decodable_encodings_are_advertised():
    encodings = [e.strip() for e in build_headers()["Accept-Encoding"].split(",")]
    assert encodings == ["gzip", "deflate"]


def test_proxy_rotation_cycles():
    rotator = ProxyRotator(["http://p1:1", "", "http://p2:2"])
    assert len(rotator) == 2
    assert [rotator.pick() for _ in range(3)] == ["http://p1:1", "http://p2:2", "http://p1:1"]


def test_no_proxies_picks_none():
    assert ProxyRotator([]).pick() is None
    assert ProxyRotator(None).pick() is None


def test_json_body_detected_without_content_type():
    page = FetchedPage.from_text('{"jobs": []}', "https://www.gulftalent.com/api", "")
    assert page.is_json
    assert page.json() == {"jobs": []}
    assert not FetchedPage.from_text("<html></html>", "https://www.gulftalent.com/").is_json


class _Resp:
    def __init__(self, status_code, body="<html></html>", url=None):
        self.status_code = status_code
        self.text = body
        self.url = url
        self.headers = {"Content-Type": "text/html"}


class _Session:
    def __init__(self, resp):
        self.resp = resp
        self.calls = []

    def get(self, url, **kw):
        self.calls.append((url, kw))
        return self.resp


def test_fetch_passes_proxy_and_merges_headers():
    fetcher = Fetcher()
    session = _Session(_Resp(200, "<p>ok</p>", url="https://www.gulftalent.com/final"))
    fetcher._thread_local.session = session

    page = fetcher.fetch("https://www.gulftalent.com/start", headers={"Referer": "x"}, proxy="http://p1:1")

    assert page.url == "https://www.gulftalent.com/final"
    _, kw = session.calls[0]
    assert kw["proxies"] == {"http": "http://p1:1", "https": "http://p1:1"}
    assert kw["headers"]["Referer"] == "x"
    assert kw["headers"]["User-Agent"] == DEFAULT_HEADERS["User-Agent"]


def test_fetch_error_status_raises():
    fetcher = Fetcher()
    fetcher._thread_local.session = _Session(_Resp(403))
    with pytest.raises(FetchError) as exc:
        fetcher.fetch("https://www.gulftalent.com/jobs/search")
    assert exc.value.status == 403
