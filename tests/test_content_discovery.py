import pytest
from bs4 import BeautifulSoup

from conftest import ANCHOR, FakePage, detail_url, listing_html, site
from listing_walker.config import HumanizeConfig, JobConfig, SelectorConfig
from listing_walker.resilience.block_detector import BlockDetector
from listing_walker.resilience.content_discovery import LinkCollector, extract_links, find_next_link
from listing_walker.resilience.humanizer import Humanizer
from listing_walker.resilience.transport_observer import TransportObserver


def next_of(html, base=ANCHOR):
    return find_next_link(BeautifulSoup(html, "html.parser"), base)


class TestFindNextLink:
    def test_rel_next(self):
        html = '<a href="/p/1">1</a><a rel="next" href="/satilik-daire/istanbul?pagingOffset=20">›</a>'
        assert next_of(html) == f"{ANCHOR}?pagingOffset=20"

    def test_class_based(self):
        html = '<ul class="pagination"><li class="next"><a href="/list?page=2">2</a></li></ul>'
        assert next_of(html) == "https://www.sahibinden.com/list?page=2"

    def test_title_sonraki(self):
        html = '<div class="paging"><a title="Sonraki" href="/list?page=3">&gt;</a></div>'
        assert next_of(html) == "https://www.sahibinden.com/list?page=3"

    @pytest.mark.parametrize("label", ["Sonraki", "Next page", "İleri", "Weiter", "Suivant", "Siguiente", "»"])
    def test_label_text_across_locales(self, label):
        html = f'<nav><a href="/list?page=1">1</a><a href="/list?page=2">{label}</a></nav>'
        assert next_of(html) == "https://www.sahibinden.com/list?page=2"

    def test_disabled_controls_ignored(self):
        html = ('<ul class="pagination"><li class="next disabled"><a href="/list?page=2">Next</a></li></ul>'
                '<nav><a class="disabled" href="/list?page=9">Sonraki</a></nav>')
        assert next_of(html) is None

    def test_last_page(self):
        assert next_of('<div class="pagination"><a href="/list?page=1">1</a></div>') is None

    def test_labels_do_not_match_inside_words(self):
        assert next_of('<nav><a href="/list/nextel">Nextel Store</a></nav>') is None


class TestExtractLinks:
    def test_default_selectors_normalize(self):
        urls = extract_links(listing_html([100000001, 100000002]), SelectorConfig(), ANCHOR)
        assert urls == [detail_url(100000001), detail_url(100000002)]

    def test_first_matching_strategy_wins(self):
        html = ('<div class="searchResultsTaglineText"><a href="/ilan/a-1000001">A</a></div>'
                '<a href="/ilan/b-1000002">B</a>')
        assert extract_links(html, SelectorConfig(), ANCHOR) == ["https://www.sahibinden.com/ilan/a-1000001"]

    def test_job_override_first(self):
        html = ('<div class="mine"><a href="/ilan/c-1000003">C</a></div>'
                '<div class="searchResultsTaglineText"><a href="/ilan/a-1000001">A</a></div>')
        urls = extract_links(html, SelectorConfig(link=".mine"), ANCHOR)
        assert urls == ["https://www.sahibinden.com/ilan/c-1000003"]

    def test_container_scopes_search(self):
        html = ('<a href="/ilan/x-1000009">outside</a>'
                '<section id="results"><a href="/ilan/a-1000001">A</a></section>')
        urls = extract_links(html, SelectorConfig(listing_container="#results"), ANCHOR)
        assert urls == ["https://www.sahibinden.com/ilan/a-1000001"]


class TestLinkCollector:
    def make(self, pages, store, rng, start=ANCHOR):
        page = FakePage(pages, start_url=start)
        detector = BlockDetector(store, rng=rng)
        humanizer = Humanizer(page, sleep=lambda s: None, rng=rng)
        return LinkCollector(page, humanizer, detector, TransportObserver(detector)), page, detector

    def test_collects_across_pages_until_max(self, store, rng, ids):
        collector, page, _ = self.make(site(ids, per_page=2), store, rng)
        grown = []
        urls = collector.collect(JobConfig(ANCHOR, max_items=5), on_page=grown.append)
        assert urls == [detail_url(i) for i in ids]
        assert [len(g) for g in grown] == [2, 4, 5]
        assert collector.pages_visited == 3

    def test_truncates_to_max_items(self, store, rng, ids):
        collector, page, _ = self.make(site(ids, per_page=2), store, rng)
        urls = collector.collect(JobConfig(ANCHOR, max_items=3))
        assert urls == [detail_url(i) for i in ids[:3]]
        assert collector.pages_visited == 2

    def test_deduplicates_by_identity_across_pages(self, store, rng):
        pages = {
            ANCHOR: listing_html([100000001, 100000002], "/satilik-daire/istanbul?pagingOffset=2"),
            f"{ANCHOR}?pagingOffset=2": listing_html([100000002, 100000003]),
        }
        collector, _, _ = self.make(pages, store, rng)
        urls = collector.collect(JobConfig(ANCHOR, max_items=10))
        assert urls == [detail_url(100000001), detail_url(100000002), detail_url(100000003)]

    def test_existing_urls_are_not_returned(self, store, rng, ids):
        collector, _, _ = self.make(site(ids), store, rng)
        urls = collector.collect(JobConfig(ANCHOR, max_items=5), existing=[detail_url(ids[0])])
        assert urls == [detail_url(i) for i in ids[1:]]

    def test_empty_listing_retries_then_gives_up(self, store, rng):
        collector, page, _ = self.make({ANCHOR: "<html><body><p>Sonuç yok</p></body></html>"}, store, rng)
        assert collector.collect(JobConfig(ANCHOR, max_items=5)) == []
        assert page.scrolls

    def test_stops_when_blocked(self, store, rng, ids):
        collector, page, detector = self.make(site(ids, per_page=2), store, rng)
        detector.raise_block("test")
        assert collector.collect(JobConfig(ANCHOR, max_items=5)) == []
        assert page.navigations == []

    def test_block_page_content_raises_flag(self, store, rng):
        pages = {ANCHOR: "<html><body>Olağan dışı erişim tespit edildi</body></html>"}
        collector, _, detector = self.make(pages, store, rng)
        assert collector.collect(JobConfig(ANCHOR, max_items=5)) == []
        assert detector.is_blocked()

    def test_rate_limited_next_page_stops_collection(self, store, rng, ids):
        collector, page, detector = self.make(site(ids, per_page=2), store, rng)
        page.responses[f"{ANCHOR}?pagingOffset=2"] = [(429, f"{ANCHOR}?pagingOffset=2")]
        urls = collector.collect(JobConfig(ANCHOR, max_items=5))
        assert urls == [detail_url(i) for i in ids[:2]]
        assert detector.is_blocked()

    def test_failed_next_page_ends_collection(self, store, rng, ids):
        collector, page, _ = self.make(site(ids, per_page=2), store, rng)
        page.failing_urls.add(f"{ANCHOR}?pagingOffset=2")
        urls = collector.collect(JobConfig(ANCHOR, max_items=5))
        assert urls == [detail_url(i) for i in ids[:2]]
        assert page.current_url == ANCHOR

    def test_next_page_uses_injected_navigation(self, store, rng, ids):
        collector, page, _ = self.make(site(ids, per_page=2), store, rng)
        attempted = []
        collector.navigate = lambda url: attempted.append(url) or False
        assert collector.collect(JobConfig(ANCHOR, max_items=5)) == [detail_url(i) for i in ids[:2]]
        assert attempted == [f"{ANCHOR}?pagingOffset=2"]

    def test_address_click_returns_to_the_page_it_left(self, store, rng, ids):
        second = f"{ANCHOR}?pagingOffset=2"
        third = f"{ANCHOR}?pagingOffset=4"
        breadcrumb = '<a data-click-label="Adres Breadcrumb Il" href="/satilik-daire/istanbul">İstanbul</a>'
        pages = site(ids, per_page=2)
        pages[second] = pages[second].replace("<ul>", breadcrumb + "<ul>")
        collector, page, _ = self.make(pages, store, rng)
        config = JobConfig(ANCHOR, max_items=5, humanize=HumanizeConfig(address_click_chance=1.0))

        urls = collector.collect(config)
        assert urls == [detail_url(i) for i in ids]
        assert page.navigations.count(second) == 2
        assert page.current_url == third
