"""
Human-like timing and gesture model.
Pure functions over a HumanizeConfig plus a thin Humanizer that applies them
to a page. The only state kept is the scroll position.
"""

import logging
import random
import time
from typing import Callable, Optional, TYPE_CHECKING

from ..config import HumanizeConfig

if TYPE_CHECKING:
    from ..browser import BrowserPage

logger = logging.getLogger(__name__)

SCROLL_PATTERNS = ('none', 'down', 'down_up', 'double_down')

# (min, max) scroll distance in pixels per position bucket on a listing page
PROGRESSIVE_SCROLL_BUCKETS = (
    (0, 250),      # items 0-4: barely move
    (600, 900),    # items 5-9
    (1300, 1700),  # items 10-14
    (2000, 2600),  # items 15+
)


def compute_dwell_ms(word_count: int, config: HumanizeConfig) -> int:
    """
    Simulated reading time for a page.

    Args:
        word_count: Words of readable content on the page
        config: HumanizeConfig with reading speed and dwell bounds

    Returns:
        Dwell time in milliseconds, clamped to [min_page_dwell, max_page_dwell]
    """
    reading_ms = word_count / config.reading_speed_wpm * 60000
    return int(min(max(reading_ms, config.min_page_dwell), config.max_page_dwell))


def pick_scroll_pattern(config: HumanizeConfig, rng: Optional[random.Random] = None) -> str:
    """Choose a scroll gesture; 'none' unless the scroll_chance roll succeeds."""
    rng = rng or random
    if rng.random() >= config.scroll_chance:
        return 'none'
    return rng.choice(SCROLL_PATTERNS[1:])


def progressive_scroll_bucket(index_within_page: int) -> int:
    """Map an item's position on the page to a bucket 0-3."""
    return min(max(index_within_page, 0) // 5, len(PROGRESSIVE_SCROLL_BUCKETS) - 1)


def progressive_scroll_distance(
    index_within_page: int,
    items_per_page: int = 20,
    rng: Optional[random.Random] = None
) -> int:
    """
    Scroll distance that brings an item of the listing into view.

    Deeper positions scroll further, which reads as a natural top-to-bottom
    scan of the listing.

    Args:
        index_within_page: Queue cursor (any value, reduced modulo items_per_page)
        items_per_page: Listing page size
        rng: Random source

    Returns:
        Distance in pixels
    """
    rng = rng or random
    position = index_within_page % max(items_per_page, 1)
    low, high = PROGRESSIVE_SCROLL_BUCKETS[progressive_scroll_bucket(position)]
    return int(rng.uniform(low, high))


def break_duration_ms(processed: int, config: HumanizeConfig, rng: Optional[random.Random] = None) -> int:
    """
    Break owed after `processed` items.

    A long break replaces the short one when both intervals coincide.

    Returns:
        Break length in milliseconds, 0 if no break is due
    """
    rng = rng or random
    if processed <= 0:
        return 0
    if config.long_break_after and processed % config.long_break_after == 0:
        return int(rng.uniform(config.long_break_min, config.long_break_max))
    if config.break_after_n and processed % config.break_after_n == 0:
        return int(rng.uniform(config.short_break_min, config.short_break_max))
    return 0


class Humanizer:
    """Applies the timing/gesture model to a live page."""

    def __init__(
        self,
        page: "BrowserPage",
        config: Optional[HumanizeConfig] = None,
        sleep: Callable[[float], None] = time.sleep,
        rng: Optional[random.Random] = None
    ):
        """
        Args:
            page: Page that receives scroll gestures
            config: HumanizeConfig, uses defaults if None
            sleep: Sleep function taking seconds
            rng: Random source
        """
        self.page = page
        self.config = config or HumanizeConfig()
        self._sleep = sleep
        self.rng = rng or random.Random()
        self._scroll_position = 0

    def with_config(self, config: HumanizeConfig) -> "Humanizer":
        self.config = config
        return self

    def pause(self, ms: float):
        if ms > 0:
            self._sleep(ms / 1000)

    def random_delay(self, min_ms: float, max_ms: float):
        """Sleep for a random duration, occasionally doubled like a distracted reader."""
        delay = self.rng.uniform(min_ms, max_ms)
        if self.rng.random() < 0.1:
            delay *= 2
        self.pause(delay)

    def nav_delay(self):
        """Pause before a transition."""
        self.random_delay(self.config.min_nav_delay, self.config.max_nav_delay)

    def dwell(self, words: int) -> int:
        """
        Read the page: total time from compute_dwell_ms, split into chunks.

        Returns:
            Planned dwell in milliseconds
        """
        total = compute_dwell_ms(words, self.config)
        chunks = self.rng.randint(3, 6)
        for _ in range(chunks):
            self.pause(total / chunks * self.rng.uniform(0.8, 1.2))
        logger.debug("Dwelled ~%dms over %d words", total, words)
        return total

    def scroll(self, direction: str = 'down', distance: Optional[int] = None):
        """Smooth scroll in 8-12 steps, then a short reading pause."""
        distance = distance if distance is not None else int(self.rng.uniform(200, 500))
        if direction == 'up':
            distance = -min(distance, self._scroll_position)
        if distance == 0:
            return

        steps = self.rng.randint(8, 12)
        step_distance = distance / steps
        moved = 0
        for i in range(steps):
            delta = int(round(step_distance * (i + 1))) - moved
            if delta:
                self.page.scroll_by(delta)
                moved += delta
            self.random_delay(30, 80)
        self._scroll_position = max(0, self._scroll_position + moved)
        self.random_delay(500, 1500)

    def apply_scroll_pattern(self, pattern: str):
        if pattern == 'down':
            self.scroll('down')
        elif pattern == 'down_up':
            self.scroll('down')
            self.random_delay(200, 600)
            self.scroll('up')
        elif pattern == 'double_down':
            self.random_delay(200, 700)
            self.scroll('down')
            self.scroll('down')

    def random_scroll(self) -> str:
        """Pick and perform a scroll pattern. Returns the pattern used."""
        pattern = pick_scroll_pattern(self.config, self.rng)
        self.apply_scroll_pattern(pattern)
        return pattern

    def progressive_scroll(self, index_within_page: int, items_per_page: int = 20) -> int:
        """
        Scroll the listing down to roughly where the given item sits.

        The page is assumed to be freshly loaded at the top.

        Returns:
            Distance scrolled in pixels
        """
        self._scroll_position = 0
        distance = progressive_scroll_distance(index_within_page, items_per_page, self.rng)
        if distance:
            self.scroll('down', distance)
        return distance

    def maybe_break(self, processed: int) -> int:
        """
        Take a scheduled break if one is due.

        Returns:
            Break length in milliseconds (0 if none)
        """
        duration = break_duration_ms(processed, self.config, self.rng)
        if duration:
            logger.info("Taking a %.0fs break after %d items", duration / 1000, processed)
            self.pause(duration)
        return duration
