"""
Block detection and backoff coordination.
Either the rendered content or the network layer can raise a shared halt
flag; while it is raised no transition, extraction or queue change happens.
"""

import logging
import random
import re
from typing import Callable, Iterable, Optional

from ..config import BlockConfig
from ..kv_store import KeyValueStore
from ..utils import now_ms

logger = logging.getLogger(__name__)

# Phrases shown on rate-limit, verification and challenge pages
BLOCK_PHRASES = (
    # Turkish
    'olağan dışı erişim',
    'olağandışı erişim',
    'güvenlik doğrulaması',
    'robot olmadığınızı',
    'lütfen doğrulayın',
    'erişiminiz engellendi',
    'çok fazla istek',
    # English
    'unusual traffic',
    'please verify you are human',
    'verify you are a human',
    'are you a robot',
    'access denied',
    'too many requests',
    'checking your browser',
    'security check',
    # German
    'ungewöhnlichen datenverkehr',
    'bestätigen sie, dass sie kein roboter sind',
    'zu viele anfragen',
    # French
    'trafic inhabituel',
    'vérifiez que vous êtes humain',
    'trop de requêtes',
    # Spanish
    'tráfico inusual',
    'verifica que eres humano',
    'demasiadas solicitudes',
    # Russian
    'подозрительный трафик',
    'подтвердите, что вы не робот',
    'слишком много запросов',
)

# Resource patterns served when the site challenges the visitor
CHALLENGE_URL_PATTERNS = (
    re.compile(r'/cs/tloading', re.IGNORECASE),
    re.compile(r'captcha', re.IGNORECASE),
    re.compile(r'/cdn-cgi/challenge-platform', re.IGNORECASE),
    re.compile(r'/challenge(?:[/?]|$)', re.IGNORECASE),
)


class BlockDetector:
    """Maintains the TTL'd block flag shared by both detection paths."""

    BLOCK_KEY = "blocked_until"

    def __init__(
        self,
        store: KeyValueStore,
        config: Optional[BlockConfig] = None,
        rng: Optional[random.Random] = None,
        clock: Callable[[], int] = now_ms,
        phrases: Iterable[str] = BLOCK_PHRASES
    ):
        """
        Initialize detector with the shared store.

        Args:
            store: KeyValueStore the flag is persisted in
            config: BlockConfig, uses defaults if None
            rng: Random source for the backoff window
            clock: Function returning epoch milliseconds
            phrases: Content phrases that indicate a block
        """
        self.store = store
        self.config = config or BlockConfig()
        self.rng = rng or random.Random()
        self.clock = clock
        self.phrases = tuple(p.lower() for p in phrases)

    def blocked_until(self) -> int:
        """Stored expiry in epoch millis, 0 when clear."""
        try:
            return int(self.store.get(self.BLOCK_KEY, 0) or 0)
        except (TypeError, ValueError):
            return 0

    def is_blocked(self, now: Optional[int] = None) -> bool:
        """Check the flag. Expiry is implicit: a past timestamp is clear."""
        now = self.clock() if now is None else now
        return now < self.blocked_until()

    def raise_block(self, reason: str, duration_hint_ms: Optional[int] = None) -> int:
        """
        Raise the block flag.

        The window only ever widens: a raise that would end earlier than the
        current window leaves it unchanged.

        Args:
            reason: Human-readable trigger description
            duration_hint_ms: Explicit window length, random 60-120 min if None

        Returns:
            Effective blocked-until timestamp
        """
        if duration_hint_ms is None:
            minutes = self.rng.uniform(self.config.min_minutes, self.config.max_minutes)
            duration_hint_ms = int(minutes * 60 * 1000)

        candidate = self.clock() + duration_hint_ms
        current = self.blocked_until()
        if candidate > current:
            self.store.set(self.BLOCK_KEY, candidate)
            logger.warning("Block detected (%s), pausing for %.1f minutes",
                           reason, duration_hint_ms / 60000)
            return candidate

        logger.info("Block signal (%s) inside current window, leaving it unchanged", reason)
        return current

    def clear(self):
        """Manual resume: release the flag immediately."""
        self.store.remove(self.BLOCK_KEY)
        logger.info("Block flag cleared")

    def match_content(self, text: Optional[str]) -> Optional[str]:
        """Return the first blocking phrase found in text, if any."""
        if not text:
            return None
        lowered = text.lower()
        for phrase in self.phrases:
            if phrase in lowered:
                return phrase
        return None

    def check_content(self, text: Optional[str]) -> bool:
        """
        Content heuristic: raise the flag when rendered text looks like a
        block or verification page.

        Returns:
            True if a block was detected
        """
        phrase = self.match_content(text)
        if phrase:
            self.raise_block(f"content matched '{phrase}'")
            return True
        return False

    def is_challenge_url(self, url: Optional[str]) -> bool:
        return bool(url) and any(p.search(url) for p in CHALLENGE_URL_PATTERNS)

    def observe_response(self, status: Optional[int], url: Optional[str]) -> bool:
        """
        Transport signal: inspect a completed network exchange.

        Args:
            status: HTTP status code
            url: Request URL

        Returns:
            True if the exchange triggered a block
        """
        if status in self.config.rate_limit_statuses:
            self.raise_block(f"HTTP {status} from {url}")
            return True
        if self.is_challenge_url(url):
            self.raise_block(f"challenge resource {url}")
            return True
        return False

    def get_stats(self) -> dict:
        until = self.blocked_until()
        now = self.clock()
        return {
            'blocked': now < until,
            'blocked_until': until,
            'remaining_seconds': max(0.0, (until - now) / 1000)
        }
