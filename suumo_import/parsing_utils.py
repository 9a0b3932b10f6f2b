#!/usr/bin/env python3
"""
Text helpers for SUUMO listing fields: prices, floors, areas, dates and names.

None of these raise on malformed input; unparsable text yields None
(or the documented default) so a bad fragment never aborts a page.
"""
import hashlib
import re
from datetime import date
from typing import Optional
from urllib.parse import urljoin

MAN_YEN_RE = re.compile(r'([\d.]+)万')
YEN_RE = re.compile(r'([\d,]+)円')
MONTHS_MARKERS = ('ヶ月', 'ヵ月', 'か月')
NONE_MARKERS = ('-', '－', '—')

BASEMENT_RE = re.compile(r'(?:B|地下)\s*(\d+)')
FLOOR_RE = re.compile(r'(\d+)階')
DIGITS_RE = re.compile(r'(\d+)')
FLOOR_COUNT_RE = re.compile(r'(\d+)階建')
BUILT_AGO_RE = re.compile(r'築(\d+)年')
AREA_RE = re.compile(r'(\d+(?:\.\d+)?)')
WHITESPACE_RE = re.compile(r'\s+')

ROOM_CODE_PATTERNS = [
    re.compile(r'(jnc_[0-9A-Za-z]+)'),
    re.compile(r'/([A-Za-z]+_\d+)(?:[/?#]|$)'),
]

# Full-width digits and Latin letters -> half-width
_FULLWIDTH_TABLE = str.maketrans(
    '０１２３４５６７８９'
    'ＡＢＣＤＥＦＧＨＩＪＫＬＭＮＯＰＱＲＳＴＵＶＷＸＹＺ'
    'ａｂｃｄｅｆｇｈｉｊｋｌｍｎｏｐｑｒｓｔｕｖｗｘｙｚ',
    '0123456789'
    'ABCDEFGHIJKLMNOPQRSTUVWXYZ'
    'abcdefghijklmnopqrstuvwxyz'
)


def clean_text(text: Optional[str]) -> Optional[str]:
    """Strip and collapse internal whitespace"""
    if text is None:
        return None
    return WHITESPACE_RE.sub(' ', str(text)).strip()


def parse_price(text) -> Optional[int]:
    """
    Parse SUUMO price text into yen.

    '6.9万円' -> 69000, '5,000円' -> 5000, '-' / 'なし' -> 0.
    Month-count notation ('1ヶ月') returns None because the amount depends
    on the rent; anything else unrecognised also returns None.
    """
    if text is None:
        return None
    text = str(text).strip()
    if not text:
        return None

    match = MAN_YEN_RE.search(text)
    if match:
        try:
            return int(round(float(match.group(1)) * 10000))
        except ValueError:
            return None

    match = YEN_RE.search(text)
    if match:
        digits = match.group(1).replace(',', '')
        return int(digits) if digits else None

    if any(marker in text for marker in MONTHS_MARKERS):
        return None

    if text in NONE_MARKERS or 'なし' in text:
        return 0

    return None


def normalize_name(name) -> str:
    """
    Canonical form of a building name or address for comparison and hashing.

    Removes all half- and full-width whitespace and folds full-width digits
    and Latin letters to half-width.
    """
    if not name:
        return ''
    return WHITESPACE_RE.sub('', str(name)).translate(_FULLWIDTH_TABLE)


def name_match_key(name) -> str:
    """Case-insensitive key used for fallback building name matching"""
    return normalize_name(name).lower()


def external_key(name, address) -> str:
    """Stable 16-hex-character key for a building from its normalized address and name"""
    source = normalize_name(address) + normalize_name(name)
    return hashlib.sha256(source.encode('utf-8')).hexdigest()[:16]


def parse_floor(text, default=1) -> int:
    """Parse a room floor cell: 'B1' -> -1, '3階' -> 3, unmatched -> default"""
    text = clean_text(text)
    if not text:
        return default

    text = text.translate(_FULLWIDTH_TABLE)

    match = BASEMENT_RE.search(text)
    if match:
        return -int(match.group(1))

    match = FLOOR_RE.search(text)
    if match:
        return int(match.group(1))

    match = DIGITS_RE.search(text)
    if match:
        return int(match.group(1))

    return default


def parse_floor_count(text) -> Optional[int]:
    """Parse total floors from '5階建' style text"""
    if not text:
        return None
    match = FLOOR_COUNT_RE.search(str(text))
    return int(match.group(1)) if match else None


def years_before(today: date, years: int) -> date:
    """Same calendar day N years earlier, Feb 29 falling back to Feb 28"""
    try:
        return today.replace(year=today.year - years)
    except ValueError:
        return today.replace(year=today.year - years, day=28)


def parse_built_date(text, today: Optional[date] = None) -> Optional[date]:
    """Parse '築12年' (12 years before today) or '新築' (today)"""
    if not text:
        return None
    today = today or date.today()
    text = str(text)

    match = BUILT_AGO_RE.search(text)
    if match:
        return years_before(today, int(match.group(1)))

    if '新築' in text:
        return today

    return None


def parse_area(text) -> Optional[float]:
    """Parse floor area in square meters from '25.5m2' style text"""
    if not text:
        return None
    match = AREA_RE.search(str(text).translate(_FULLWIDTH_TABLE))
    if not match:
        return None
    try:
        return float(match.group(1))
    except ValueError:
        return None


def extract_room_code(url) -> Optional[str]:
    """
    Extract a stable room code from a SUUMO detail URL.

    Prefers a 'jnc_<alnum>' segment, then any '<word>_<digits>' path segment.
    """
    if not url:
        return None
    for pattern in ROOM_CODE_PATTERNS:
        match = pattern.search(url)
        if match:
            return match.group(1)
    return None


def valid_image_url(url) -> bool:
    """Reject blanks, data: URIs and inline base64 placeholders"""
    if not url or not str(url).strip():
        return False
    url = str(url).strip()
    if url.startswith('data:'):
        return False
    if 'base64' in url:
        return False
    return True


def make_absolute_url(url, base_url='https://suumo.jp') -> Optional[str]:
    """Resolve a (possibly protocol-relative) link against the site base URL"""
    if not valid_image_url(url):
        return None
    url = str(url).strip()
    if url.startswith('http://') or url.startswith('https://'):
        return url
    return urljoin(base_url.rstrip('/') + '/', url)
