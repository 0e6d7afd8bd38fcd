"""
Detail page extraction.
Field-level text/attribute extraction over rendered HTML with ordered
selector fallbacks and value transforms.
"""

import logging
import re
import unicodedata
from datetime import date
from typing import Callable, Dict, List, Optional, Sequence, Union

from bs4 import BeautifulSoup

from .config import SelectorConfig
from .models import Contact, ExtractedRecord, Origin, Price
from .utils import clean_text, first_success, normalize_url, word_count

logger = logging.getLogger(__name__)

Selectors = Union[str, Sequence[str], None]

# Built-in selector chains for the target site, tried after job overrides
DEFAULT_SELECTORS: Dict[str, List[str]] = {
    'detail_container': ['.classifiedDetail', '#classifiedDetail', 'main'],
    'title': ['.classifiedDetailTitle h1', '.classifiedDetailTitle', '.classifiedTitle', 'h1'],
    'price': ['.classified-price-wrapper', '.priceContainer', '.classifiedInfo h3'],
    'description': ['#classifiedDescription', '.classifiedDescription'],
    'details_table': ['.classifiedInfoList', '.classifiedInfo ul'],
    'images': ['.classifiedImages img', '.swiper-slide img', 'img.stdImg'],
    'phone': ['.phone-number', '#phoneInfoPart .pretty-phone-part', '[class*="phone"]', '[id*="phone"]'],
    'phone_reveal': ['#phoneInfoPart button', 'button.phone-reveal', '[class*="phone"] button',
                     '[role="button"][class*="phone"]'],
    'contact_name': ['.contact-name', '.classifiedUserBox h5', '.user-about', '.username'],
    'address': ['.classifiedInfo h2', '.address', '.classifiedDetail [class*="address"]'],
}

ADDRESS_BREADCRUMB = 'a[data-click-label*="Adres Breadcrumb"]'
LABELED_ROWS = '.classifiedInfoList li, .classifiedInfo li, li'

# Month names keyed in diacritic-folded form
MONTHS = {
    # Turkish
    'ocak': 1, 'subat': 2, 'mart': 3, 'nisan': 4, 'mayis': 5, 'haziran': 6,
    'temmuz': 7, 'agustos': 8, 'eylul': 9, 'ekim': 10, 'kasim': 11, 'aralik': 12,
    # English
    'january': 1, 'february': 2, 'march': 3, 'april': 4, 'may': 5, 'june': 6,
    'july': 7, 'august': 8, 'september': 9, 'october': 10, 'november': 11, 'december': 12,
    'jan': 1, 'feb': 2, 'mar': 3, 'apr': 4, 'jun': 6, 'jul': 7, 'aug': 8,
    'sep': 9, 'sept': 9, 'oct': 10, 'nov': 11, 'dec': 12,
    # German
    'januar': 1, 'februar': 2, 'marz': 3, 'mai': 5, 'juni': 6, 'juli': 7,
    'oktober': 10, 'dezember': 12,
}

PHONE_PATTERN = re.compile(r'(\+90|0)?\s*\(?\d{3}\)?[\s\-]?\d{3}[\s\-]?\d{2}[\s\-]?\d{2}')
EMAIL_PATTERN = re.compile(r'[a-zA-Z0-9._%+-]+@[a-zA-Z0-9.-]+\.[a-zA-Z]{2,}')
CSS_CONTENT_PATTERN = re.compile(r"content:\s*['\"]([^'\"]+)['\"]")

OWNER_KEYWORDS = ('sahibinden', 'owner', 'private')
AGENCY_KEYWORDS = ('emlak', 'ofis', 'kurum', 'galeri', 'magaza', 'insaat', 'agency', 'office', 'dealer')


def fold(text: str) -> str:
    """Lowercase and strip diacritics (Turkish dotless i included)."""
    lowered = text.replace('I', 'ı').replace('İ', 'i').lower()
    decomposed = unicodedata.normalize('NFD', lowered.replace('ı', 'i'))
    return ''.join(c for c in decomposed if not unicodedata.combining(c))


def to_number(text: Optional[str]) -> Optional[Union[int, float]]:
    """
    Parse the first number in text.

    Dotted or comma-separated thousands groups ("1.250.000") are treated as
    grouping; a single separator followed by 1-2 digits is a decimal mark.
    """
    if not text:
        return None
    match = re.search(r'\d[\d.,]*', text)
    if not match:
        return None
    token = match.group(0).rstrip('.,')
    if re.fullmatch(r'\d{1,3}([.,]\d{3})+', token):
        return int(re.sub(r'[.,]', '', token))
    token = token.replace(',', '.')
    if token.count('.') > 1:
        head, _, tail = token.rpartition('.')
        token = head.replace('.', '') + '.' + tail
    try:
        value = float(token)
    except ValueError:
        return None
    return int(value) if value.is_integer() else value


def to_price(text: Optional[str]) -> Optional[int]:
    """Strip everything but digits, then parse."""
    if not text:
        return None
    digits = re.sub(r'\D', '', text)
    return int(digits) if digits else None


def to_iso_date(text: Optional[str]) -> str:
    """
    Parse a localized date into ISO ``YYYY-MM-DD``.

    Handles "5 Mart 2024" style month names (diacritic-insensitive) and the
    numeric DD.MM.YYYY, DD/MM/YYYY and YYYY-MM-DD forms.

    Returns:
        ISO date string, or '' if nothing parseable was found
    """
    if not text:
        return ''
    folded = fold(text)

    candidates = []
    named = re.search(r'(\d{1,2})\s+([a-z]+)\.?\s+(\d{4})', folded)
    if named and named.group(2) in MONTHS:
        candidates.append((int(named.group(3)), MONTHS[named.group(2)], int(named.group(1))))
    iso = re.search(r'(\d{4})-(\d{1,2})-(\d{1,2})', folded)
    if iso:
        candidates.append((int(iso.group(1)), int(iso.group(2)), int(iso.group(3))))
    dmy = re.search(r'(\d{1,2})[./](\d{1,2})[./](\d{4})', folded)
    if dmy:
        candidates.append((int(dmy.group(3)), int(dmy.group(2)), int(dmy.group(1))))

    for year, month, day in candidates:
        try:
            return date(year, month, day).isoformat()
        except ValueError:
            continue
    return ''


def to_phone(text: Optional[str]) -> Optional[str]:
    """Keep only digits and '+'."""
    if not text:
        return None
    phone = re.sub(r'[^\d+]', '', text)
    return phone or None


def to_email(text: Optional[str]) -> Optional[str]:
    if not text:
        return None
    match = EMAIL_PATTERN.search(text)
    return match.group(0) if match else None


TRANSFORMS: Dict[str, Callable] = {
    'number': to_number,
    'price': to_price,
    'date': to_iso_date,
    'phone': to_phone,
    'email': to_email,
    'url': normalize_url,
    'lowercase': lambda v: v.lower(),
    'uppercase': lambda v: v.upper(),
    'text': clean_text,
}


def transform_value(value, transform: Optional[str]):
    """Apply a named transform; unknown transforms return value untouched."""
    if value is None or not transform:
        return value
    func = TRANSFORMS.get(transform)
    if func is None:
        logger.debug("Unknown transform %r, keeping raw value", transform)
        return value
    return func(value)


def _as_list(selectors: Selectors) -> List[str]:
    if not selectors:
        return []
    if isinstance(selectors, str):
        return [selectors]
    return [s for s in selectors if s]


def select_text(scope, selector: str, attribute: Optional[str] = None) -> Optional[str]:
    """Normalized text (or attribute) of the first element matching selector."""
    element = scope.select_one(selector)
    if element is None:
        return None
    if attribute:
        value = element.get(attribute)
        if isinstance(value, list):
            value = ' '.join(value)
        return clean_text(value)
    return clean_text(element.get_text(' ', strip=True))


def extract_field(
    scope,
    selectors: Selectors,
    attribute: Optional[str] = None,
    transform: Optional[str] = None
):
    """
    Try each selector in order and return the first non-empty value.

    Args:
        scope: BeautifulSoup document or element
        selectors: Ordered selector candidates
        attribute: Read this attribute instead of text
        transform: Name of a transform from TRANSFORMS

    Returns:
        Transformed value, or None if no selector yielded text
    """
    _, raw = first_success(_as_list(selectors), lambda s: select_text(scope, s, attribute))
    return transform_value(raw, transform)


class DetailExtractor:
    """Builds ExtractedRecords from rendered detail pages."""

    def __init__(self, selectors: Optional[SelectorConfig] = None):
        self.selectors = selectors or SelectorConfig()
        self.stats = {'extracted': 0, 'dropped': 0, 'field_failures': 0}

    def chain(self, name: str) -> List[str]:
        """Job override (if any) followed by the built-in defaults."""
        override = getattr(self.selectors, name, None)
        return _as_list(override) + DEFAULT_SELECTORS.get(name, [])

    def _field(self, name: str, func: Callable, default):
        try:
            value = func()
        except Exception as e:
            self.stats['field_failures'] += 1
            logger.debug("Field %s failed: %s", name, e)
            return default
        return default if value is None else value

    def extract(self, html: str, url: str, require_phone: bool = False) -> Optional[ExtractedRecord]:
        """
        Extract a record from a detail page.

        Args:
            html: Rendered page source
            url: Detail resource the page belongs to
            require_phone: Drop the record when no phone is recovered

        Returns:
            ExtractedRecord, or None when dropped by require_phone
        """
        soup = BeautifulSoup(html or '', 'html.parser')

        phone = self._field('phone', lambda: self.extract_phone(soup), '')
        if require_phone and len(re.sub(r'\D', '', phone)) < 10:
            self.stats['dropped'] += 1
            logger.info("  Dropping %s: no phone recovered", url)
            return None

        raw_price = self._field('price', lambda: extract_field(soup, self.chain('price')), '')
        record = ExtractedRecord(
            url=url,
            title=self._field('title', lambda: self.extract_title(soup), ''),
            price=Price(raw=raw_price, numeric=to_price(raw_price)),
            description=self._field('description', lambda: extract_field(soup, self.chain('description')), ''),
            images=self._field('images', lambda: self.extract_images(soup, url), []),
            details=self._field('details', lambda: self.extract_details(soup), {}),
            contact=Contact(
                phone=phone,
                name=self._field('contact_name', lambda: self.extract_contact_name(soup), '')
            ),
            address=self._field('address', lambda: self.extract_address(soup), ''),
            origin=self._field('from', lambda: self.classify_origin(soup), Origin.UNKNOWN),
            date=self._field('date', lambda: to_iso_date(self.labeled_value(soup, r'İlan\s*Tarihi')), ''),
        )
        self.stats['extracted'] += 1
        return record

    def extract_phone_from_html(self, html: str) -> str:
        return self._field('phone', lambda: self.extract_phone(BeautifulSoup(html or '', 'html.parser')), '')

    def extract_title(self, soup) -> Optional[str]:
        title = extract_field(soup, self.chain('title'))
        if title:
            return title
        return extract_field(soup, ['meta[property="og:title"]'], attribute='content')

    def extract_images(self, soup, base_url: str) -> List[str]:
        images = []
        for selector in self.chain('images'):
            for img in soup.select(selector):
                src = img.get('data-src') or img.get('src')
                normalized = normalize_url(src, base_url) if src else None
                if normalized and normalized not in images:
                    images.append(normalized)
            if images:
                break
        return images

    def extract_details(self, soup) -> Dict[str, str]:
        """Label/value pairs from the info table."""
        _, table = first_success(self.chain('details_table'), soup.select_one)
        if table is None:
            return {}
        data = {}
        for row in table.select('tr, li, .row, .list-item'):
            key = extract_field(row, ['.label', '.key', 'strong', 'th', 'td:first-child', '.property-name'])
            value = extract_field(row, ['.value', '.data', 'span', 'td:last-child', '.property-value'])
            if key and value and key != value:
                data[key.rstrip(':')] = value
        return data

    def extract_phone(self, soup) -> str:
        phone = extract_field(soup, ['#phoneInfoPart .pretty-phone-part [data-content]'],
                              attribute='data-content')
        if not phone:
            phone = extract_field(soup, self.chain('phone'))
        if not phone or len(re.sub(r'\D', '', phone)) < 10:
            # Obfuscated numbers are rendered through CSS content rules
            for value in self._style_contents(soup):
                if PHONE_PATTERN.search(value):
                    phone = value
                    break
        phone = to_phone(phone) or ''
        return phone if len(re.sub(r'\D', '', phone)) >= 10 else ''

    def extract_contact_name(self, soup) -> Optional[str]:
        name = extract_field(soup, self.chain('contact_name'))
        if name:
            return name
        for value in self._style_contents(soup):
            if (re.search(r'[A-Za-zÇĞİÖŞÜçğıöşü.\-\s]{2,}', value) and len(value) <= 64
                    and not re.search(r'(\+?\d|TL|TRY)', value)):
                return value.strip()
        return None

    def extract_address(self, soup) -> Optional[str]:
        crumbs = [clean_text(a.get_text(' ', strip=True)) for a in soup.select(ADDRESS_BREADCRUMB)]
        crumbs = [c for c in crumbs if c]
        if crumbs:
            return ' / '.join(crumbs)
        return extract_field(soup, self.chain('address'))

    def labeled_value(self, soup, label_pattern: str) -> str:
        """Value of an info row whose <strong> label matches label_pattern."""
        regex = re.compile(label_pattern, re.IGNORECASE)
        folded_regex = re.compile(fold(label_pattern), re.IGNORECASE)
        for li in soup.select(LABELED_ROWS):
            strong = li.find('strong')
            label = clean_text(strong.get_text(' ', strip=True)) if strong else None
            if not label or not (regex.search(label) or folded_regex.search(fold(label))):
                continue
            span = li.find('span')
            text = clean_text(span.get_text(' ', strip=True)) if span else None
            if not text:
                text = clean_text(li.get_text(' ', strip=True).replace(label, '', 1))
            if text:
                return text
        return ''

    def classify_origin(self, soup) -> Origin:
        """Owner vs Agency from the 'Kimden' row, falling back to page markers."""
        value = self.labeled_value(soup, r'Kimden')
        if value:
            folded = fold(value)
            if any(k in folded for k in OWNER_KEYWORDS):
                return Origin.OWNER
            if any(k in folded for k in AGENCY_KEYWORDS):
                return Origin.AGENCY
            return Origin.UNKNOWN
        if soup.select_one('.storeTitle, .store-info, [class*="store"]'):
            return Origin.AGENCY
        if soup.select_one('.for-classified-owner, .fromOwner'):
            return Origin.OWNER
        return Origin.UNKNOWN

    @staticmethod
    def _style_contents(soup) -> List[str]:
        styles = '\n'.join(s.get_text() for s in soup.find_all('style'))
        return CSS_CONTENT_PATTERN.findall(styles)


def content_word_count(html: str, container_selectors: Selectors = None) -> int:
    """Words of readable text inside the detail container (or the whole body)."""
    soup = BeautifulSoup(html or '', 'html.parser')
    for tag in soup(['script', 'style', 'noscript']):
        tag.decompose()
    _, container = first_success(_as_list(container_selectors), soup.select_one)
    scope = container or soup.body or soup
    return word_count(scope.get_text(' ', strip=True))


def extract_record(
    html: str,
    selectors: Optional[SelectorConfig] = None,
    url: str = '',
    require_phone: bool = False
) -> Optional[ExtractedRecord]:
    """Extract one detail page with a throwaway DetailExtractor."""
    return DetailExtractor(selectors).extract(html, url, require_phone=require_phone)
