"""
Configuration dataclasses for the listing walker.

Job-level configuration arrives as loosely-typed JSON from the job source;
everything here is converted into typed, defaulted dataclasses once, at job
start, and validated there.
"""

import re
from dataclasses import dataclass, field, fields, asdict
from datetime import datetime, timezone
from typing import Optional, List, Dict, Any

from .errors import JobValidationError
from .utils import dedupe_by_identity, is_http_url, normalize_url


MAX_ITEMS_LIMIT = 1000


def _snake_case(key: str) -> str:
    """Convert camelCase job keys (as sent by the job source) to snake_case."""
    return re.sub(r'(?<!^)(?=[A-Z])', '_', key).lower()


def _normalize_keys(data: Optional[Dict[str, Any]]) -> Dict[str, Any]:
    return {_snake_case(k): v for k, v in (data or {}).items()}


def _known(cls, data: Dict[str, Any]) -> Dict[str, Any]:
    names = {f.name for f in fields(cls)}
    return {k: v for k, v in data.items() if k in names}


@dataclass
class HumanizeConfig:
    """Timing and gesture model for human-like behavior. Delays in milliseconds."""
    warmup: bool = False
    scroll_chance: float = 0.8
    address_click_chance: float = 0.15
    quick_skip_chance: float = 0.0
    reading_speed_wpm: int = 230
    min_nav_delay: int = 600
    max_nav_delay: int = 1500
    min_page_dwell: int = 2500
    max_page_dwell: int = 12000
    break_after_n: int = 8
    short_break_min: int = 20000
    short_break_max: int = 60000
    long_break_after: int = 40
    long_break_min: int = 120000
    long_break_max: int = 300000

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> "HumanizeConfig":
        return cls(**_known(cls, _normalize_keys(data)))

    def validate(self) -> List[str]:
        errors = []
        for name in ('scroll_chance', 'address_click_chance', 'quick_skip_chance'):
            value = getattr(self, name)
            if not 0.0 <= value <= 1.0:
                errors.append(f"humanize.{name} must be between 0 and 1")
        if self.reading_speed_wpm <= 0:
            errors.append("humanize.reading_speed_wpm must be positive")
        for low, high in (
            ('min_nav_delay', 'max_nav_delay'),
            ('min_page_dwell', 'max_page_dwell'),
            ('short_break_min', 'short_break_max'),
            ('long_break_min', 'long_break_max'),
        ):
            if getattr(self, low) < 0 or getattr(self, low) > getattr(self, high):
                errors.append(f"humanize.{low} must be between 0 and {high}")
        if self.break_after_n < 0 or self.long_break_after < 0:
            errors.append("humanize break intervals must not be negative")
        return errors

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class SelectorConfig:
    """
    Per-job selector overrides.

    Each field is an optional CSS selector (or comma-separated group) tried
    before the built-in defaults for the target site.
    """
    listing: Optional[str] = None
    link: Optional[str] = None
    listing_container: Optional[str] = None
    detail_container: Optional[str] = None
    title: Optional[str] = None
    price: Optional[str] = None
    description: Optional[str] = None
    details_table: Optional[str] = None
    images: Optional[str] = None
    phone: Optional[str] = None
    phone_reveal: Optional[str] = None
    contact_name: Optional[str] = None
    address: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> "SelectorConfig":
        normalized = _normalize_keys(data)
        # Job payloads historically prefixed detail-page selectors
        for legacy, name in (('detail_title', 'title'), ('detail_price', 'price')):
            if legacy in normalized and name not in normalized:
                normalized[name] = normalized.pop(legacy)
        return cls(**_known(cls, normalized))

    def to_dict(self) -> Dict[str, Any]:
        return {k: v for k, v in asdict(self).items() if v}


@dataclass
class RetryConfig:
    """Configuration for retry behavior. Delays in seconds."""
    max_retries: int = 3
    base_delay: float = 1.0
    max_delay: float = 8.0
    backoff_factor: float = 2.0


@dataclass
class BlockConfig:
    """Backoff window applied when a block or challenge is detected."""
    min_minutes: float = 60.0
    max_minutes: float = 120.0
    rate_limit_statuses: tuple = (429,)


@dataclass
class JobConfig:
    """Validated configuration of a single walk job."""
    anchor_resource: str
    selectors: SelectorConfig = field(default_factory=SelectorConfig)
    max_items: int = 10
    require_phone: bool = False
    humanize: HumanizeConfig = field(default_factory=HumanizeConfig)
    items_per_page: int = 20
    urls: List[str] = field(default_factory=list)

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> "JobConfig":
        """
        Build and validate a job config.

        Args:
            data: Raw config dict; ``url`` is accepted as an alias of
                ``anchorResource``. An optional ``urls`` list names the
                detail resources to walk, in which case no links are
                collected from the anchor.

        Raises:
            JobValidationError: listing every problem found
        """
        if not isinstance(data, dict):
            raise JobValidationError(["Job must have a config object"])
        raw = _normalize_keys(data)
        anchor = raw.get('anchor_resource') or raw.get('url') or ''
        errors = []

        if not isinstance(anchor, str) or not is_http_url(anchor):
            errors.append("Job config must have a valid http(s) anchor resource")

        max_items = raw.get('max_items', 10)
        if isinstance(max_items, bool) or not isinstance(max_items, int) or max_items <= 0:
            errors.append("Job config maxItems must be a positive number")
            max_items = 10

        items_per_page = raw.get('items_per_page', 20)
        if isinstance(items_per_page, bool) or not isinstance(items_per_page, int) or items_per_page <= 0:
            errors.append("Job config itemsPerPage must be a positive number")
            items_per_page = 20

        selectors = raw.get('selectors')
        if selectors is not None and not isinstance(selectors, dict):
            errors.append("Job config selectors must be an object")
            selectors = None

        humanize_raw = raw.get('humanize_config', raw.get('humanize'))
        if humanize_raw is not None and not isinstance(humanize_raw, dict):
            errors.append("Job config humanize must be an object")
            humanize_raw = None
        try:
            humanize = HumanizeConfig.from_dict(humanize_raw)
            errors.extend(humanize.validate())
        except TypeError as e:
            errors.append(f"Invalid humanize config: {e}")
            humanize = HumanizeConfig()

        urls = raw.get('urls') or []
        if not isinstance(urls, list):
            errors.append("Job config urls must be a list")
            urls = []
        targets = []
        for url in urls:
            normalized = normalize_url(url, anchor) if isinstance(url, str) and is_http_url(anchor) else None
            if not normalized or not is_http_url(normalized):
                errors.append(f"Job config urls contains an invalid URL: {url!r}")
            else:
                targets.append(normalized)

        if errors:
            raise JobValidationError(errors)

        max_items = min(max_items, MAX_ITEMS_LIMIT)
        return cls(
            anchor_resource=anchor,
            selectors=SelectorConfig.from_dict(selectors),
            max_items=max_items,
            require_phone=bool(raw.get('require_phone', False)),
            humanize=humanize,
            items_per_page=items_per_page,
            urls=dedupe_by_identity(targets)[:max_items],
        )


@dataclass
class Job:
    """A job as supplied by the job source."""
    id: str
    token: str
    config: JobConfig
    expires_at: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Job":
        if not isinstance(data, dict):
            raise JobValidationError(["Job is required"])
        errors = []
        job_id = data.get('id')
        token = data.get('token')
        if not job_id or not isinstance(job_id, str):
            errors.append("Job must have a valid ID")
        if not token or not isinstance(token, str):
            errors.append("Job must have a valid token")

        expires_at = data.get('expiresAt') or data.get('expires_at')
        if expires_at:
            try:
                expiry = datetime.fromisoformat(str(expires_at).replace('Z', '+00:00'))
                if expiry.tzinfo is None:
                    expiry = expiry.replace(tzinfo=timezone.utc)
                if expiry < datetime.now(timezone.utc):
                    errors.append("Job has expired")
            except ValueError:
                errors.append("Job expiresAt timestamp is invalid")

        try:
            config = JobConfig.from_dict(data.get('config'))
        except JobValidationError as e:
            errors.extend(e.errors)
            config = None

        if errors:
            raise JobValidationError(errors)
        return cls(id=job_id, token=token, config=config, expires_at=expires_at)
