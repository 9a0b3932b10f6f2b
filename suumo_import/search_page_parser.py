#!/usr/bin/env python3
"""
Parser for SUUMO rental search-result pages (chintai "cassette" layout).

Each .cassetteitem block is one building; every tbody in its
table.cassetteitem_other is one room. Missing or malformed fragments
degrade to None/empty values instead of raising.
"""
import logging
import re
import secrets
from datetime import date
from typing import List, Optional

from bs4 import BeautifulSoup

from .models import PropertyListing, RoomListing
from .parsing_utils import (
    clean_text, make_absolute_url, parse_area, parse_built_date,
    parse_floor, parse_floor_count, parse_price, valid_image_url,
)

logger = logging.getLogger(__name__)

STRUCTURE_RE = re.compile(r'(鉄骨鉄筋コンクリート|鉄筋コンクリート|軽量鉄骨|鉄骨|木造|ブロック|SRC|RC)')

BUILDING_TYPE_LABELS = [
    ('マンション', 'マンション'),
    ('アパート', 'アパート'),
    ('一戸建', '一戸建て'),
]

# Room table columns (0-indexed tds inside each tbody)
COL_THUMBNAIL = 1
COL_FLOOR = 2
COL_RENT = 3
COL_DEPOSIT = 4
COL_LAYOUT = 5
COL_DETAIL = 8
MIN_ROOM_COLUMNS = 6

IMAGE_ATTRS = ('rel', 'data-src', 'src')


def _text(element) -> Optional[str]:
    if element is None:
        return None
    return clean_text(element.get_text())


def _image_src(img) -> Optional[str]:
    for attr in IMAGE_ATTRS:
        value = img.get(attr)
        if value:
            return value
    return None


def generate_room_number(floor) -> str:
    """Placeholder room number: floor followed by four random hex digits"""
    return f"{floor or 1}{secrets.token_hex(2).upper()}"


class SearchPageParser:
    """Parse one SUUMO search-result page."""

    def __init__(self, html, base_url='https://suumo.jp', today: Optional[date] = None):
        self.soup = BeautifulSoup(html or '', 'lxml')
        self.base_url = base_url
        self.today = today

    def property_items(self) -> List[PropertyListing]:
        items = []
        for cassette in self.soup.select('.cassetteitem'):
            try:
                listing = self._parse_cassette(cassette)
            except (AttributeError, TypeError, ValueError) as e:
                logger.warning(f"Skipping malformed listing block: {e}")
                continue
            if listing:
                items.append(listing)
        return items

    def next_page_url(self) -> Optional[str]:
        """href of the pagination 'next' link, None on the last page"""
        next_link = None
        for link in self.soup.select('.pagination-parts a'):
            if '次へ' in link.get_text():
                next_link = link
                break
        if next_link is None:
            next_link = self.soup.select_one('p.pagination-parts a:last-child')

        if next_link is None:
            return None
        if '前へ' in next_link.get_text():
            return None
        return next_link.get('href') or None

    def total_count(self) -> int:
        badge = self.soup.select_one('.paginate_set-hit')
        if badge is None:
            return 0
        digits = re.sub(r'[^\d]', '', badge.get_text())
        return int(digits) if digits else 0

    def _parse_cassette(self, cassette) -> Optional[PropertyListing]:
        building_name = _text(cassette.select_one('.cassetteitem_content-title'))
        if not building_name:
            return None

        label = _text(cassette.select_one('.cassetteitem_content-label .ui-pct'))
        floors, built_date, structure = self._building_info(cassette.select_one('.cassetteitem_detail-col3'))

        return PropertyListing(
            building_name=building_name,
            address=_text(cassette.select_one('.cassetteitem_detail-col1')) or None,
            building_type=self._building_type(label),
            floors=floors,
            built_date=built_date,
            structure=structure,
            access_info=self._access_info(cassette.select_one('.cassetteitem_detail-col2')),
            building_image_urls=self._building_images(cassette),
            rooms=self._rooms(cassette),
        )

    @staticmethod
    def _building_type(label) -> Optional[str]:
        if not label:
            return None
        for keyword, building_type in BUILDING_TYPE_LABELS:
            if keyword in label:
                return building_type
        return None

    @staticmethod
    def _access_info(element) -> Optional[str]:
        if element is None:
            return None
        lines = [_text(div) for div in element.select('.cassetteitem_detail-text')]
        lines = [line for line in lines if line]
        return ' / '.join(lines) if lines else None

    def _building_info(self, element):
        floors = built_date = structure = None
        if element is None:
            return floors, built_date, structure

        for div in element.select('div'):
            text = _text(div)
            if not text:
                continue
            floors = parse_floor_count(text) or floors
            built_date = parse_built_date(text, today=self.today) or built_date
            match = STRUCTURE_RE.search(text)
            if match and not structure:
                structure = match.group(1)

        return floors, built_date, structure

    def _building_images(self, cassette) -> List[str]:
        img = cassette.select_one('.cassetteitem_object-item img')
        if img is None:
            return []
        src = _image_src(img)
        if not valid_image_url(src):
            return []
        url = make_absolute_url(src, self.base_url)
        return [url] if url else []

    def _rooms(self, cassette) -> List[RoomListing]:
        rooms = []
        for tbody in cassette.select('table.cassetteitem_other tbody'):
            room = self._parse_room(tbody)
            if room:
                rooms.append(room)
        return rooms

    def _parse_room(self, tbody) -> Optional[RoomListing]:
        tds = tbody.find_all('td')
        if len(tds) < MIN_ROOM_COLUMNS:
            return None

        floor = parse_floor(_text(tds[COL_FLOOR]))
        rent_td = tds[COL_RENT]
        deposit_td = tds[COL_DEPOSIT]
        layout_td = tds[COL_LAYOUT]

        return RoomListing(
            floor=floor,
            rent=parse_price(_text(rent_td.select_one('.cassetteitem_price--rent'))),
            management_fee=parse_price(_text(rent_td.select_one('.cassetteitem_price--administration'))),
            deposit=parse_price(_text(deposit_td.select_one('.cassetteitem_price--deposit'))),
            key_money=parse_price(_text(deposit_td.select_one('.cassetteitem_price--gratuity'))),
            room_type=_text(layout_td.select_one('.cassetteitem_madori')) or None,
            area=parse_area(_text(layout_td.select_one('.cassetteitem_menseki'))),
            detail_url=self._detail_url(tds[COL_DETAIL] if len(tds) > COL_DETAIL else None),
            image_urls=self._room_images(tds[COL_THUMBNAIL]),
            room_number=generate_room_number(floor),
        )

    def _detail_url(self, td) -> Optional[str]:
        if td is None:
            return None
        link = td.select_one('a.cassetteitem_other-linktext') or td.select_one('a')
        if link is None or not link.get('href'):
            return None
        return make_absolute_url(link['href'], self.base_url)

    def _room_images(self, td) -> List[str]:
        urls = []

        # SUUMO's own markup misspells the class in some templates
        thumbnail = td.select_one('.casssetteitem_other-thumbnail, .cassetteitem_other-thumbnail')
        if thumbnail is not None and thumbnail.get('data-imgs'):
            urls = [u.strip() for u in thumbnail['data-imgs'].split(',') if valid_image_url(u.strip())]

        if not urls:
            for img in td.select('img'):
                src = _image_src(img)
                if valid_image_url(src):
                    urls.append(src)

        absolute = []
        for url in urls:
            url = make_absolute_url(url, self.base_url)
            if url and url not in absolute:
                absolute.append(url)
        return absolute
