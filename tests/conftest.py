"""Shared fixtures: an in-memory store and a scripted browser page."""

import copy
import json
import random

import pytest
from bs4 import BeautifulSoup

from listing_walker.errors import ContentTimeoutError, NavigationError
from listing_walker.kv_store import KeyValueStore

BASE = "https://www.sahibinden.com"
ANCHOR = f"{BASE}/satilik-daire/istanbul"


def detail_url(item_id: int) -> str:
    return f"{BASE}/ilan/emlak-konut-satilik-daire-{item_id}/detay"


class MemoryStore(KeyValueStore):
    """Dict-backed store; values go through JSON like on disk."""

    def __init__(self):
        self.data = {}
        self.writes = []

    def get(self, key, default=None):
        if key not in self.data:
            return default
        return json.loads(self.data[key])

    def set(self, key, value):
        self.data[key] = json.dumps(value)
        self.writes.append((key, copy.deepcopy(value)))

    def remove(self, key):
        self.data.pop(key, None)


class FakePage:
    """
    Browser double serving canned HTML per URL.

    Keeps a linear history like a real tab: navigate truncates forward
    entries, go_back moves one entry back.
    """

    BLANK = "about:blank"

    def __init__(self, pages=None, start_url=BLANK, responses=None):
        self.pages = dict(pages or {})
        self.responses = dict(responses or {})
        self.history = [start_url]
        self.index = 0
        self.navigations = []
        self.scrolls = []
        self.clicks = []
        self.pending_events = []
        self.failing_urls = set()
        self.alive = True
        self.restarts = 0

    @property
    def current_url(self):
        return self.history[self.index]

    @property
    def page_source(self):
        return self.pages.get(self.current_url, "<html><body></body></html>")

    def visible_text(self):
        return BeautifulSoup(self.page_source, "html.parser").get_text(" ", strip=True)

    def _soup(self):
        return BeautifulSoup(self.page_source, "html.parser")

    def navigate(self, url):
        if url in self.failing_urls:
            raise NavigationError(f"Failed to navigate to {url}")
        self.navigations.append(url)
        self.history = self.history[:self.index + 1] + [url]
        self.index += 1
        self.pending_events.extend(self.responses.get(url, [(200, url)]))

    def go_back(self):
        if self.index > 0:
            self.index -= 1

    def scroll_by(self, pixels):
        self.scrolls.append(pixels)

    def click(self, selector):
        self.clicks.append(selector)
        return self._soup().select_one(selector) is not None

    def click_by_text(self, selector, pattern):
        return False

    def wait_for(self, selector, timeout=10.0):
        if self._soup().select_one(selector) is None:
            raise ContentTimeoutError(f"Timeout waiting for content: {selector}")
        return True

    def network_events(self):
        events, self.pending_events = self.pending_events, []
        return events

    def is_alive(self):
        return self.alive

    def restart(self):
        self.restarts += 1
        self.alive = True

    def close(self):
        pass


def listing_html(ids, next_href=None):
    items = "".join(
        f'<li class="searchResultsItem">'
        f'<div class="searchResultsTaglineText">'
        f'<a href="/ilan/emlak-konut-satilik-daire-{i}/detay?utm_source=x">Daire {i}</a></div>'
        f'</li>'
        for i in ids
    )
    pagination = ""
    if next_href:
        pagination = f'<div class="pagination"><a rel="next" href="{next_href}">Sonraki</a></div>'
    return f"<html><body><ul>{items}</ul>{pagination}</body></html>"


def detail_html(item_id, phone="0 (532) 123 45 67", origin="Sahibinden", price="250.000 TL"):
    phone_block = f'<div class="phone-number">{phone}</div>' if phone else ""
    return f"""
    <html><head><meta property="og:title" content="Daire {item_id}"></head><body>
    <div class="classifiedBreadCrumb">
      <a data-click-label="Adres Breadcrumb Il">İstanbul</a>
      <a data-click-label="Adres Breadcrumb Ilce">Kadıköy</a>
    </div>
    <div class="classifiedDetail">
      <div class="classifiedDetailTitle"><h1>Satılık Daire {item_id}</h1></div>
      <div class="classifiedInfo">
        <h3>{price}</h3>
        <ul class="classifiedInfoList">
          <li><strong>İlan No</strong><span>{item_id}</span></li>
          <li><strong>İlan Tarihi</strong><span>5 Mart 2024</span></li>
          <li><strong>Kimden</strong><span>{origin}</span></li>
          <li><strong>m² (Brüt)</strong><span>120</span></li>
        </ul>
      </div>
      <div id="classifiedDescription">Deniz manzaralı, metroya yakın, bakımlı daire.</div>
      <div class="classifiedImages"><img src="/img/{item_id}-1.jpg"><img data-src="/img/{item_id}-2.jpg"></div>
      <div class="classifiedUserBox"><h5>Ayşe Yılmaz</h5>{phone_block}</div>
    </div>
    </body></html>
    """


def site(ids, per_page=None, **detail_kwargs):
    """Pages for a listing (optionally paginated) plus one detail page per id."""
    pages = {}
    per_page = per_page or len(ids)
    chunks = [ids[i:i + per_page] for i in range(0, len(ids), per_page)] or [[]]
    for n, chunk in enumerate(chunks):
        url = ANCHOR if n == 0 else f"{ANCHOR}?pagingOffset={n * per_page}"
        next_href = None
        if n + 1 < len(chunks):
            next_href = f"/satilik-daire/istanbul?pagingOffset={(n + 1) * per_page}"
        pages[url] = listing_html(chunk, next_href)
    for i in ids:
        pages[detail_url(i)] = detail_html(i, **detail_kwargs)
    return pages


def make_job(job_id="job-1", **config):
    cfg = {"url": ANCHOR, "maxItems": 3}
    cfg.update(config)
    return {"id": job_id, "token": "tok-123", "config": cfg}


class ListSink:
    """Result sink that keeps payloads in memory."""

    def __init__(self):
        self.payloads = []

    def submit(self, payload):
        self.payloads.append(payload)


@pytest.fixture
def store():
    return MemoryStore()


@pytest.fixture
def rng():
    return random.Random(1234)


@pytest.fixture
def no_sleep():
    slept = []
    return slept.append


@pytest.fixture
def ids():
    return [100000001, 100000002, 100000003, 100000004, 100000005]
