#!/usr/bin/env python3
"""
SUUMO crawl orchestration.

ScraperService.scrape() walks search-result pages from a start URL, turns
each listing into building/room records (creating or updating them so a
re-crawl never duplicates), attaches photos, and returns run statistics.

Nothing in a run raises to the caller: fetch failures end the run, while
validation, store and image failures are recorded in the stats and the
crawl moves on to the next room, property or page.
"""
import logging
import time
from datetime import datetime
from typing import Any, Dict, Optional

import requests

from .access_info import AccessInfoParser, station_records
from .config import ScraperConfig
from .data_mapper import BUILDING_SUUMO_FIELDS, ROOM_SUUMO_FIELDS, DataMapper
from .dynamodb_utils import GeocodeQueue
from .image_downloader import ImageDownloader
from .models import CREATED, FAILED, SKIPPED, UPDATED, ItemResult, PropertyListing, ScrapeOptions, ScrapeStats
from .parsing_utils import external_key, extract_room_code, make_absolute_url
from .search_page_parser import SearchPageParser

module_logger = logging.getLogger(__name__)


def create_session(config: ScraperConfig) -> requests.Session:
    """HTTP session with the page request headers"""
    session = requests.Session()
    session.headers.update(config.page_headers())
    return session


class ScraperService:

    def __init__(self, config: ScraperConfig, store, downloader=None, geocoder=None, mapper=None,
                 access_parser=None, session=None, logger=None):
        self.config = config
        self.store = store
        self.session = session or create_session(config)
        self.downloader = downloader or ImageDownloader(config, store, session=self.session)
        self.geocoder = geocoder or GeocodeQueue()
        self.mapper = mapper or DataMapper(config)
        self.access_parser = access_parser or AccessInfoParser()
        self.logger = logger or module_logger
        self.stats = ScrapeStats()

    def scrape(self, start_url, options: Optional[ScrapeOptions] = None) -> Dict[str, Any]:
        """
        Crawl from start_url following 'next' links.

        Stops when there is no next page, when max_pages pages were processed,
        or when a page cannot be fetched.

        Returns:
            ScrapeStats as a dict
        """
        options = options or ScrapeOptions(rate_limit_delay=self.config.default_rate_limit)
        self.stats = ScrapeStats()

        self.logger.info(f"Starting scrape for URL: {start_url}")
        self.logger.info(f"Options: {options}")

        page_count = 0
        current_url = start_url

        while True:
            page_count += 1
            if options.max_pages is not None and page_count > options.max_pages:
                self.logger.info(f"Reached max pages ({options.max_pages})")
                break

            self.logger.info(f"Processing page {page_count}: {current_url}")
            html = self.fetch_page(current_url)
            if html is None:
                break

            parser = SearchPageParser(html, base_url=self.config.base_url)
            if self.stats.pages_processed == 0:
                self.stats.total_count = parser.total_count()

            listings = parser.property_items()
            self.stats.pages_processed += 1
            self.logger.info(f"Found {len(listings)} properties on page {page_count}")

            for listing in listings:
                try:
                    self.process_property(listing, options)
                except Exception as e:
                    self.logger.error(f"Error processing {listing.building_name}: {e}")
                    self.stats.add_error(f"building: {listing.building_name}", str(e))
                self._sleep(options.rate_limit_delay)

            next_url = make_absolute_url(parser.next_page_url(), self.config.base_url)
            if not next_url:
                break

            current_url = next_url
            self._sleep(options.rate_limit_delay)

        self.logger.info(f"Completed. Stats: {self.stats.to_dict()}")
        return self.stats.to_dict()

    def preview(self, url) -> Dict[str, Any]:
        """Parse one page without touching the store; raises requests errors"""
        parser = SearchPageParser(self._get(url), base_url=self.config.base_url)
        listings = parser.property_items()
        return {
            'total_count': parser.total_count(),
            'properties_on_page': len(listings),
            'has_next_page': parser.next_page_url() is not None,
            'properties': [listing.to_summary() for listing in listings],
        }

    def fetch_page(self, url) -> Optional[str]:
        """Page HTML, or None with the failure recorded in stats"""
        try:
            return self._get(url)
        except requests.RequestException as e:
            self.logger.error(f"Failed to fetch {url}: {e}")
            self.stats.add_error(f"page: {url}", str(e))
            return None

    def _get(self, url) -> str:
        response = self.session.get(url, headers=self.config.page_headers(), timeout=self.config.timeout)
        response.raise_for_status()
        if not response.encoding or response.encoding.lower() == 'iso-8859-1':
            response.encoding = 'utf-8'
        return response.text

    def process_property(self, listing: PropertyListing, options: ScrapeOptions) -> None:
        self.logger.info(f"Processing: {listing.building_name}")

        result = self.resolve_building(listing, options)
        self.stats.record_building(result)
        building = result.record
        if building is None:
            return

        for room in listing.rooms:
            try:
                result = self.process_room(building, room, options)
            except Exception as e:
                context = f"room: {building.get('name')} - {room.room_number}"
                self.logger.error(f"Error processing {context}: {e}")
                result = ItemResult(FAILED, None, context, [str(e)])
            self.stats.record_room(result)

    def resolve_building(self, listing: PropertyListing, options: ScrapeOptions) -> ItemResult:
        name = listing.building_name
        context = f"building: {name}"
        key = external_key(name, listing.address)

        existing = (self.store.find_building_by_external_key(key)
                    or self.store.find_building_by_normalized_name(name, key))
        mapped = self.mapper.map_building(listing)
        stamp = {'external_key': key, 'suumo_imported_at': datetime.now().isoformat()}

        if existing:
            if options.dry_run:
                self.logger.info(f"[dry run] Building exists: {name}")
                return ItemResult(SKIPPED, existing, context)

            attrs = {k: mapped[k] for k in BUILDING_SUUMO_FIELDS if mapped.get(k) is not None}
            attrs.update(stamp)
            saved = self.store.update_building(existing, attrs)
            if not saved.ok:
                self.logger.error(f"Failed to update building {name}: {', '.join(saved.errors)}")
                return ItemResult(FAILED, existing, context, saved.errors)

            building = saved.record
            self.logger.info(f"Updated building: {name}")
            self._after_building_saved(building, listing, options)
            return ItemResult(UPDATED, building, context)

        if options.dry_run:
            self.logger.info(f"[dry run] Would create building: {name}")
            return ItemResult(SKIPPED, None, context)

        attrs = dict(mapped)
        attrs.update(stamp)
        attrs.update(self._station_attrs(listing))
        saved = self.store.create_building(attrs)
        if not saved.ok:
            self.logger.error(f"Failed to create building {name}: {', '.join(saved.errors)}")
            return ItemResult(FAILED, None, context, saved.errors)

        building = saved.record
        self.logger.info(f"Created building: {name}")
        self._after_building_saved(building, listing, options)
        return ItemResult(CREATED, building, context)

    def process_room(self, building, room, options: ScrapeOptions) -> ItemResult:
        code = extract_room_code(room.detail_url)
        context = f"room: {building.get('name')} - {room.room_number}"

        existing = None
        if code:
            existing = self.store.find_room_by_code(building, code)
        if not existing:
            existing = self.store.find_room_by_number(building, room.room_number)

        if options.dry_run:
            verb = 'Room exists' if existing else 'Would create room'
            self.logger.info(f"[dry run] {verb}: {building.get('name')} - {room.room_number}")
            return ItemResult(SKIPPED, existing, context)

        mapped = self.mapper.map_room(room)
        stamp = {'suumo_imported_at': datetime.now().isoformat()}
        if code:
            stamp['suumo_room_code'] = code
        if room.detail_url:
            stamp['suumo_detail_url'] = room.detail_url

        if existing:
            attrs = {k: mapped[k] for k in ROOM_SUUMO_FIELDS if mapped.get(k) is not None}
            attrs.update(stamp)
            saved = self.store.update_room(existing, attrs)
            status = UPDATED
        else:
            attrs = dict(mapped)
            attrs.update(stamp)
            saved = self.store.create_room(building, attrs)
            status = CREATED

        if not saved.ok:
            self.logger.error(f"Failed to save room {context}: {', '.join(saved.errors)}")
            return ItemResult(FAILED, existing, context, saved.errors)

        self.logger.info(f"{status.capitalize()} room: {building.get('name')} - {saved.record.get('room_number')}")
        if not options.skip_images:
            self.ingest_images(saved.record, room.image_urls, self.mapper.detect_room_photo_type)
        return ItemResult(status, saved.record, context)

    def ingest_images(self, owner, urls, photo_type_for) -> None:
        """Attach each URL to owner unless a photo with that source URL already exists"""
        for index, url in enumerate(urls or []):
            try:
                if self.store.photo_exists(owner, url):
                    self.stats.images_skipped += 1
                    continue

                photo_type = photo_type_for(url, index)
                if self.downloader.download_and_attach(url, owner, photo_type, display_order=index, source_url=url):
                    self.stats.images_downloaded += 1
                else:
                    self.stats.add_error(f"image: {url}", 'download or attach failed')
            except Exception as e:
                self.logger.error(f"Error ingesting image {url}: {e}")
                self.stats.add_error(f"image: {url}", str(e))

            self._sleep(self.config.image_delay)

    def _after_building_saved(self, building, listing: PropertyListing, options: ScrapeOptions) -> None:
        if building.get('latitude') is None or building.get('longitude') is None:
            self.geocoder.enqueue(building['building_id'])

        if not options.skip_images:
            self.ingest_images(
                building,
                listing.building_image_urls,
                lambda url, index: self.mapper.building_photo_type(index),
            )

    def _station_attrs(self, listing: PropertyListing) -> Dict[str, Any]:
        entries = self.access_parser.parse(listing.access_info)
        if not entries:
            return {}
        attrs = {'access_entries': entries}
        stations = station_records(self.access_parser.resolve(entries))
        if stations:
            attrs['stations'] = stations
        return attrs

    @staticmethod
    def _sleep(seconds) -> None:
        if seconds and seconds > 0:
            time.sleep(seconds)
