#!/usr/bin/env python3
"""
Transit access parsing for SUUMO listings.

SUUMO prints access as one string, e.g.
    "JR山手線/渋谷駅 歩5分 / 東京メトロ銀座線/渋谷駅 歩5分"

AccessInfoParser.parse() turns it into entries:
    [{'line_name': 'JR山手線', 'station_name': '渋谷', 'walking_minutes': 5, 'raw_text': 'JR山手線/渋谷駅 歩5分'},
     {'line_name': '東京メトロ銀座線', 'station_name': '渋谷', 'walking_minutes': 5, 'raw_text': '...'}]

and resolve() matches entries against a StationMaster reference set.
"""
import logging
import re
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

import yaml

logger = logging.getLogger(__name__)

# Split on a slash only when the next token is a line name (ends in 線)
ENTRY_SPLIT_RE = re.compile(r'\s*/\s*(?=[^\s/]*線)')
WITH_WALK_RE = re.compile(r'(.+?)[/／](.+?)駅?\s*(?:歩|徒歩)\s*(\d+)\s*分')
WITHOUT_WALK_RE = re.compile(r'(.+?)[/／](.+?)駅?$')


@dataclass(frozen=True)
class Station:
    id: Any
    name: str
    line_id: Any = None
    line_name: Optional[str] = None
    active: bool = True


@dataclass(frozen=True)
class RailwayLine:
    id: Any
    name: str
    active: bool = True


@dataclass
class StationMaster:
    """Reference set of railway lines and their stations."""
    lines: List[RailwayLine] = field(default_factory=list)
    stations: List[Station] = field(default_factory=list)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'StationMaster':
        """
        Build from {'lines': [{'id', 'name', 'active'?, 'stations': [{'id', 'name', 'active'?}]}]}
        """
        lines = []
        stations = []
        for line_data in (data or {}).get('lines', []) or []:
            line = RailwayLine(
                id=line_data.get('id', line_data.get('name')),
                name=str(line_data.get('name', '')),
                active=bool(line_data.get('active', True)),
            )
            lines.append(line)
            for station_data in line_data.get('stations', []) or []:
                stations.append(Station(
                    id=station_data.get('id', f"{line.id}:{station_data.get('name')}"),
                    name=str(station_data.get('name', '')),
                    line_id=line.id,
                    line_name=line.name,
                    active=bool(station_data.get('active', True)),
                ))
        return cls(lines=lines, stations=stations)

    def active_lines(self) -> List[RailwayLine]:
        return [line for line in self.lines if line.active]

    def active_stations(self) -> List[Station]:
        return [station for station in self.stations if station.active]


def load_station_master(path) -> StationMaster:
    """Load a StationMaster from a YAML file"""
    with open(path, 'r', encoding='utf-8') as f:
        data = yaml.safe_load(f) or {}
    master = StationMaster.from_dict(data)
    logger.info(f"Loaded station master: {len(master.lines)} lines, {len(master.stations)} stations")
    return master


class AccessInfoParser:
    """Parse SUUMO access text and resolve it against a station master."""

    def __init__(self, station_master: Optional[StationMaster] = None):
        self.station_master = station_master or StationMaster()

    def parse(self, access_text) -> List[Dict[str, Any]]:
        """Split access text into per-line entries; unparsable entries are dropped"""
        if not access_text or not str(access_text).strip():
            return []

        entries = ENTRY_SPLIT_RE.split(str(access_text).strip())
        parsed = []
        for entry in entries:
            result = self._parse_entry(entry.strip())
            if result:
                parsed.append(result)
        return parsed

    def resolve(self, parsed_entries) -> List[Dict[str, Any]]:
        """Match parsed entries to master stations; unresolved entries are dropped"""
        resolved = []
        for entry in parsed_entries:
            station = self.find_station(entry['line_name'], entry['station_name'])
            if not station:
                continue
            resolved.append({
                'station': station,
                'walking_minutes': entry['walking_minutes'],
                'raw_text': entry['raw_text'],
            })
        return resolved

    def parse_and_resolve(self, access_text) -> List[Dict[str, Any]]:
        return self.resolve(self.parse(access_text))

    def _parse_entry(self, text):
        if not text:
            return None

        match = WITH_WALK_RE.search(text)
        if match:
            return {
                'line_name': match.group(1).strip(),
                'station_name': self._strip_station_suffix(match.group(2)),
                'walking_minutes': int(match.group(3)),
                'raw_text': text,
            }

        match = WITHOUT_WALK_RE.search(text)
        if match:
            return {
                'line_name': match.group(1).strip(),
                'station_name': self._strip_station_suffix(match.group(2)),
                'walking_minutes': None,
                'raw_text': text,
            }

        return None

    @staticmethod
    def _strip_station_suffix(name):
        name = name.strip()
        return name[:-1] if name.endswith('駅') else name

    def find_station(self, line_name, station_name) -> Optional[Station]:
        """
        Look up a station by line + name.

        A master line matches when its name contains the given line name.
        Within matching lines a station matches exactly or by substring. Without
        a line match, the first station with exactly the same name wins,
        whichever line it is on.
        """
        if not station_name:
            return None

        line_key = (line_name or '').lower()
        matching_line_ids = set()
        if line_key:
            for line in self.station_master.active_lines():
                if line_key in line.name.lower():
                    matching_line_ids.add(line.id)

        stations = self.station_master.active_stations()

        if matching_line_ids:
            for station in stations:
                if station.line_id not in matching_line_ids:
                    continue
                if station.name == station_name or station_name in station.name:
                    return station

        for station in stations:
            if station.name == station_name:
                return station

        return None


def station_records(resolved) -> List[Dict[str, Any]]:
    """Flatten resolved entries into plain dicts for persistence"""
    return [
        {
            'station_id': entry['station'].id,
            'station_name': entry['station'].name,
            'line_name': entry['station'].line_name,
            'walking_minutes': entry['walking_minutes'],
            'raw_text': entry['raw_text'],
        }
        for entry in resolved
    ]
