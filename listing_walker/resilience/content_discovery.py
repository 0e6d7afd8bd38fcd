"""
Link collection for the listing walk.
Gathers detail-resource URLs from the anchor listing and follows pagination
until enough unique targets are queued.
"""

import logging
import re
from typing import Callable, Iterable, List, Optional, TYPE_CHECKING

from bs4 import BeautifulSoup

from ..config import JobConfig, SelectorConfig
from ..errors import NavigationError
from ..extractor import ADDRESS_BREADCRUMB, fold
from ..utils import dedupe_by_identity, first_success, normalize_url
from .block_detector import BlockDetector
from .humanizer import Humanizer
from .transport_observer import TransportObserver

if TYPE_CHECKING:
    from ..browser import BrowserPage

logger = logging.getLogger(__name__)

# Built-in detail link selectors for the target site, most specific first
DEFAULT_LINK_SELECTORS = (
    '.searchResultsTaglineText a',
    'a.searchResultsLargeThumbnail',
    '.searchResultsItem a[href*="/ilan/"]',
    'a[href*="/ilan/"]',
)

NEXT_REL_SELECTORS = ('a[rel~="next"]', 'link[rel~="next"]')
NEXT_CLASS_SELECTORS = (
    '.pagination .next:not(.disabled) a',
    '.pagination a.next',
    '.paging a[title="Sonraki"]',
    'a.prevNextBut[title="Sonraki"]',
    'a[aria-label="Next"]',
    'a[role="button"][aria-label*="next" i]',
)
NEXT_TEXT_SCOPES = ('.paging a', '.pagination a', 'nav a')

# Label text of "next page" controls across the supported locales
NEXT_LABELS = ('sonraki', 'next', 'ileri', 'weiter', 'suivant', 'siguiente', '›', '»')

PAGE_ATTEMPTS = 3


def _is_disabled(element) -> bool:
    for node in (element, element.parent):
        if node is None or not hasattr(node, 'get'):
            continue
        classes = node.get('class') or []
        if 'disabled' in classes or node.get('aria-disabled') == 'true' or node.has_attr('disabled'):
            return True
    return False


def _href_of(element, base: str) -> Optional[str]:
    if element is None or _is_disabled(element):
        return None
    return normalize_url(element.get('href'), base)


def _matches_next_label(text: str) -> bool:
    folded = fold(text or '').strip()
    if not folded:
        return False
    return any(
        label == folded or re.search(rf'(^|\W){re.escape(label)}(\W|$)', folded)
        for label in NEXT_LABELS
    )


def find_next_link(soup: BeautifulSoup, base: str) -> Optional[str]:
    """
    Locate the "next page" control of a listing.

    Strategies in order: explicit rel=next, class/role based controls, then
    label text across locales. Disabled controls are ignored.

    Args:
        soup: Parsed listing page
        base: URL the page was loaded from

    Returns:
        Absolute URL of the next page, or None when pagination is exhausted
    """
    def by_selector(selector):
        return _href_of(soup.select_one(selector), base)

    def by_label(scope):
        for anchor in soup.select(scope):
            if _matches_next_label(anchor.get_text(' ', strip=True)) or \
                    _matches_next_label(anchor.get('title', '')):
                href = _href_of(anchor, base)
                if href:
                    return href
        return None

    strategies = (
        [(by_selector, s) for s in NEXT_REL_SELECTORS + NEXT_CLASS_SELECTORS]
        + [(by_label, s) for s in NEXT_TEXT_SCOPES]
    )
    _, href = first_success(strategies, lambda pair: pair[0](pair[1]))
    return href


def link_selectors(selectors: SelectorConfig) -> List[str]:
    """Job overrides followed by the built-in link selectors."""
    overrides = [s for s in (selectors.link, selectors.listing) if s]
    return overrides + list(DEFAULT_LINK_SELECTORS)


def extract_links(html: str, selectors: SelectorConfig, base: str) -> List[str]:
    """
    Detail links on a listing page, from the first selector that matches.

    Returns:
        Normalized URLs in page order (may contain duplicates by identity)
    """
    soup = BeautifulSoup(html or '', 'html.parser')
    scope = soup.select_one(selectors.listing_container) if selectors.listing_container else None
    scope = scope or soup

    def collect_hrefs(selector):
        urls = []
        for element in scope.select(selector):
            anchor = element if element.name == 'a' else element.find('a', href=True)
            url = normalize_url(anchor.get('href'), base) if anchor is not None else None
            if url:
                urls.append(url)
        return urls

    _, urls = first_success(link_selectors(selectors), collect_hrefs, default=[])
    return urls


class LinkCollector:
    """Collects detail-resource URLs across listing pages."""

    def __init__(
        self,
        page: "BrowserPage",
        humanizer: Humanizer,
        detector: BlockDetector,
        observer: Optional[TransportObserver] = None,
        navigate: Optional[Callable[[str], bool]] = None
    ):
        """
        Args:
            page: Page positioned on the anchor listing
            humanizer: Humanizer for scrolls and delays between pages
            detector: Block detector consulted before every page
            observer: Transport observer drained after each page load
            navigate: Transition function returning False on failure;
                defaults to a single page.navigate attempt
        """
        self.page = page
        self.humanizer = humanizer
        self.detector = detector
        self.observer = observer
        self.navigate = navigate or self._navigate_once
        self.pages_visited = 0

    def _navigate_once(self, url: str) -> bool:
        try:
            self.page.navigate(url)
        except NavigationError as e:
            logger.warning("Navigation to %s failed: %s", url, e)
            return False
        return True

    def _blocked(self) -> bool:
        if self.observer:
            self.observer.poll(self.page)
        if self.detector.is_blocked():
            return True
        return self.detector.check_content(self.page.visible_text())

    def links_on_page(self, selectors: SelectorConfig) -> List[str]:
        """
        Read links from the current page, scrolling between attempts.

        Returns:
            URLs found, empty after PAGE_ATTEMPTS empty reads
        """
        for attempt in range(1, PAGE_ATTEMPTS + 1):
            urls = extract_links(self.page.page_source, selectors, self.page.current_url)
            if urls:
                return urls
            if attempt < PAGE_ATTEMPTS:
                logger.debug("  No links on attempt %d, scrolling and retrying...", attempt)
                self.humanizer.scroll('down', int(self.humanizer.rng.uniform(400, 1000)))
                self.humanizer.random_delay(300, 800)
        return []

    def maybe_click_address(self, config: JobConfig) -> bool:
        """Occasionally open an address breadcrumb and come back."""
        if self.humanizer.rng.random() >= config.humanize.address_click_chance:
            return False
        listing_url = self.page.current_url
        if not self.page.click(ADDRESS_BREADCRUMB):
            return False
        self.humanizer.random_delay(400, 900)
        try:
            self.page.go_back()
        except NavigationError as e:
            logger.warning("Could not return from address click: %s", e)
        if self.page.current_url != listing_url:
            self.navigate(listing_url)
        self.humanizer.random_delay(400, 900)
        return True

    def go_to_next_page(self) -> bool:
        """
        Follow the listing's next-page control.

        Returns:
            True if a next page was loaded
        """
        soup = BeautifulSoup(self.page.page_source, 'html.parser')
        next_url = find_next_link(soup, self.page.current_url)
        if not next_url:
            return False
        self.humanizer.nav_delay()
        if not self.navigate(next_url):
            logger.warning("Could not open next page %s, treating pagination as exhausted", next_url)
            return False
        return True

    def collect(
        self,
        config: JobConfig,
        existing: Iterable[str] = (),
        on_page: Optional[Callable[[List[str]], None]] = None
    ) -> List[str]:
        """
        Collect unique detail URLs starting from the current listing page.

        Args:
            config: Job config (selectors, max_items, humanize model)
            existing: URLs already queued; never returned again
            on_page: Called with the cumulative new URLs after every page
                that added any

        Returns:
            New unique URLs, at most max_items minus the existing count
        """
        existing = list(existing)
        limit = max(config.max_items - len(existing), 0)
        collected: List[str] = []
        visited_pages = set()

        while len(collected) < limit:
            if self._blocked():
                logger.warning("Block detected during link collection, stopping")
                break

            current = self.page.current_url
            if current in visited_pages:
                logger.info("Pagination loops back to %s, stopping", current)
                break
            visited_pages.add(current)
            self.pages_visited += 1

            urls = self.links_on_page(config.selectors)
            fresh = dedupe_by_identity(urls, existing + collected)[:limit - len(collected)]
            if fresh:
                collected.extend(fresh)
                logger.info("Page %d: %d new links (total: %d)",
                            self.pages_visited, len(fresh), len(collected))
                if on_page:
                    on_page(list(collected))
            else:
                logger.info("Page %d: no new links", self.pages_visited)

            self.humanizer.random_scroll()
            self.maybe_click_address(config)

            if len(collected) >= limit or self.detector.is_blocked():
                break
            if not self.go_to_next_page():
                logger.info("Pagination exhausted after %d pages", self.pages_visited)
                break

        return collected[:limit]
