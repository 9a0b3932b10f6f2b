"""
Maps parsed SUUMO listings onto building/room attribute dicts.

DataMapper never touches the store; every lookup table comes from the
ScraperConfig it is built with.
"""
import re
from typing import Any, Dict, Optional

from .config import ScraperConfig
from .models import PropertyListing, RoomListing

DEFAULT_BUILDING_TYPE = 'apartment'
DEFAULT_ROOM_TYPE = 'other'

# Attributes a re-crawl is allowed to overwrite
BUILDING_SUUMO_FIELDS = ('name', 'address', 'building_type', 'floors', 'built_date', 'structure')
ROOM_SUUMO_FIELDS = ('floor', 'rent', 'management_fee', 'deposit', 'key_money', 'room_type', 'area')

ROOM_PHOTO_KEYWORDS = [
    (('madori', 'floor'), 'floor_plan'),
    (('kitchen',), 'kitchen'),
    (('bath',), 'bathroom'),
    (('living',), 'living'),
]


class DataMapper:

    def __init__(self, config: ScraperConfig):
        self.building_type_map = config.building_type_map
        self.room_type_map = config.room_type_map
        self.structure_map = config.structure_map

    def map_building(self, listing: PropertyListing) -> Dict[str, Any]:
        return {
            'name': listing.building_name,
            'address': listing.address,
            'building_type': self.map_building_type(listing.building_type),
            'floors': listing.floors,
            'built_date': listing.built_date.isoformat() if listing.built_date else None,
            'structure': self.map_structure(listing.structure),
            'total_units': len(listing.rooms),
            'description': self.build_building_description(listing),
        }

    def map_room(self, room: RoomListing) -> Dict[str, Any]:
        return {
            'room_number': room.room_number,
            'floor': room.floor if room.floor is not None else 1,
            'rent': room.rent,
            'management_fee': room.management_fee,
            'deposit': room.deposit,
            'key_money': room.key_money,
            'room_type': self.map_room_type(room.room_type),
            'area': room.area,
            'status': 'vacant',
            'description': self.build_room_description(room),
        }

    def map_building_type(self, value) -> str:
        if not value or not str(value).strip():
            return DEFAULT_BUILDING_TYPE
        return self.building_type_map.get(str(value).strip(), DEFAULT_BUILDING_TYPE)

    def map_room_type(self, value) -> str:
        """
        Map a floor-plan label like '1LDK' or 'ワンルーム' to a room type.

        The label is uppercased and stripped of whitespace; an exact key wins,
        otherwise the first key (in map order) contained in the label.
        """
        if not value:
            return DEFAULT_ROOM_TYPE
        key = re.sub(r'\s+', '', str(value)).upper()
        if not key:
            return DEFAULT_ROOM_TYPE

        if key in self.room_type_map:
            return self.room_type_map[key]

        for candidate, room_type in self.room_type_map.items():
            if candidate.upper() in key:
                return room_type

        return DEFAULT_ROOM_TYPE

    def map_structure(self, value) -> Optional[str]:
        if not value or not str(value).strip():
            return None
        value = str(value).strip()
        return self.structure_map.get(value, value)

    @staticmethod
    def build_building_description(listing: PropertyListing) -> Optional[str]:
        parts = []
        if listing.access_info:
            parts.append(f"アクセス: {listing.access_info}")
        if listing.structure:
            parts.append(f"構造: {listing.structure}")
        return '\n'.join(parts) if parts else None

    @staticmethod
    def build_room_description(room: RoomListing) -> Optional[str]:
        if not room.detail_url:
            return None
        return f"SUUMO詳細: {room.detail_url}"

    @staticmethod
    def building_photo_type(index: int) -> str:
        return 'exterior' if index == 0 else 'other'

    @staticmethod
    def detect_room_photo_type(url, index: int) -> str:
        """Guess a room photo's type from keywords in its URL"""
        lowered = (url or '').lower()
        for keywords, photo_type in ROOM_PHOTO_KEYWORDS:
            if any(keyword in lowered for keyword in keywords):
                return photo_type
        return 'interior' if index == 0 else 'other'
