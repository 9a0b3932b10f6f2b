"""
Data structures for the SUUMO import pipeline.

- PropertyListing / RoomListing: parser output, discarded after each page
- ScrapeOptions: per-run options
- ItemResult / SaveResult: per-entity outcomes
- ScrapeStats: counters and errors returned at the end of a run
"""

from dataclasses import asdict, dataclass, field
from datetime import date
from typing import Any, Dict, List, Optional

CREATED = 'created'
UPDATED = 'updated'
SKIPPED = 'skipped'
FAILED = 'failed'


@dataclass
class RoomListing:
    """One room row inside a listing block."""
    floor: int = 1
    rent: Optional[int] = None
    management_fee: Optional[int] = None
    deposit: Optional[int] = None
    key_money: Optional[int] = None
    room_type: Optional[str] = None
    area: Optional[float] = None
    detail_url: Optional[str] = None
    image_urls: List[str] = field(default_factory=list)
    # Placeholder; the search page exposes no real room number
    room_number: Optional[str] = None


@dataclass
class PropertyListing:
    """One building's listing block on a search-result page."""
    building_name: str
    address: Optional[str] = None
    building_type: Optional[str] = None
    floors: Optional[int] = None
    built_date: Optional[date] = None
    structure: Optional[str] = None
    access_info: Optional[str] = None
    building_image_urls: List[str] = field(default_factory=list)
    rooms: List[RoomListing] = field(default_factory=list)

    def to_summary(self) -> Dict[str, Any]:
        """Preview-friendly dict (no URLs, counts instead)"""
        return {
            'building_name': self.building_name,
            'address': self.address,
            'building_type': self.building_type,
            'structure': self.structure,
            'floors': self.floors,
            'built_date': self.built_date.isoformat() if self.built_date else None,
            'building_images_count': len(self.building_image_urls),
            'rooms': [
                {
                    'floor': room.floor,
                    'room_type': room.room_type,
                    'area': room.area,
                    'rent': room.rent,
                    'management_fee': room.management_fee,
                    'deposit': room.deposit,
                    'key_money': room.key_money,
                    'images_count': len(room.image_urls),
                }
                for room in self.rooms
            ],
        }


@dataclass(frozen=True)
class ScrapeOptions:
    """Options for a single scrape run."""
    rate_limit_delay: float = 2.0
    max_pages: Optional[int] = None
    skip_images: bool = False
    dry_run: bool = False


@dataclass
class SaveResult:
    """Outcome of a store write; errors holds field-level validation messages."""
    record: Optional[Dict[str, Any]] = None
    errors: List[str] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.errors and self.record is not None


@dataclass
class ItemResult:
    """Outcome of resolving one building or room."""
    status: str
    record: Optional[Dict[str, Any]] = None
    context: str = ''
    errors: List[str] = field(default_factory=list)


@dataclass
class ScrapeStats:
    """Running counters for one scrape run."""
    buildings_created: int = 0
    buildings_updated: int = 0
    buildings_skipped: int = 0
    rooms_created: int = 0
    rooms_updated: int = 0
    rooms_skipped: int = 0
    images_downloaded: int = 0
    images_skipped: int = 0
    pages_processed: int = 0
    total_count: int = 0
    errors: List[Dict[str, str]] = field(default_factory=list)

    def add_error(self, context: str, message: str) -> None:
        self.errors.append({'context': context, 'message': message})

    def _record(self, prefix: str, result: ItemResult) -> None:
        if result.status == FAILED:
            self.add_error(result.context, ', '.join(result.errors) or 'unknown error')
            return
        counter = f"{prefix}_{result.status}"
        setattr(self, counter, getattr(self, counter) + 1)

    def record_building(self, result: ItemResult) -> None:
        self._record('buildings', result)

    def record_room(self, result: ItemResult) -> None:
        self._record('rooms', result)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)
