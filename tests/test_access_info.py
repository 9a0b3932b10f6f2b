"""
Tests for transit access parsing and station resolution.
"""
from suumo_import.access_info import (
    AccessInfoParser, StationMaster, load_station_master, station_records,
)


class TestAccessParse:
    """Test cases for splitting access text into entries."""

    def test_two_lines_same_station(self):
        entries = AccessInfoParser().parse('JR山手線/渋谷駅 歩5分 / 東京メトロ銀座線/渋谷駅 歩5分')

        assert len(entries) == 2
        assert [e['station_name'] for e in entries] == ['渋谷', '渋谷']
        assert [e['walking_minutes'] for e in entries] == [5, 5]
        assert entries[0]['line_name'] == 'JR山手線'
        assert entries[1]['line_name'] == '東京メトロ銀座線'
        assert entries[0]['raw_text'] == 'JR山手線/渋谷駅 歩5分'

    def test_toho_and_fullwidth_slash(self):
        entries = AccessInfoParser().parse('京王井の頭線／神泉駅 徒歩12分')

        assert entries == [{
            'line_name': '京王井の頭線',
            'station_name': '神泉',
            'walking_minutes': 12,
            'raw_text': '京王井の頭線／神泉駅 徒歩12分',
        }]

    def test_entry_without_walk_time(self):
        entries = AccessInfoParser().parse('東急田園都市線/池尻大橋駅')

        assert len(entries) == 1
        assert entries[0]['station_name'] == '池尻大橋'
        assert entries[0]['walking_minutes'] is None

    def test_unparsable_entries_are_dropped(self):
        entries = AccessInfoParser().parse('バス停まで10分 / JR山手線/原宿駅 歩8分')

        assert len(entries) == 1
        assert entries[0]['station_name'] == '原宿'

    def test_blank(self):
        assert AccessInfoParser().parse(None) == []
        assert AccessInfoParser().parse('   ') == []


class TestStationResolve:
    """Test cases for resolving entries against a station master."""

    def test_resolves_by_line_then_station(self, station_master_file):
        parser = AccessInfoParser(load_station_master(station_master_file))

        resolved = parser.parse_and_resolve('JR山手線/渋谷駅 歩5分 / 東京メトロ銀座線/渋谷駅 歩7分')

        assert [r['station'].id for r in resolved] == [101, 201]
        assert [r['walking_minutes'] for r in resolved] == [5, 7]

    def test_line_substring_match(self, station_master_file):
        parser = AccessInfoParser(load_station_master(station_master_file))

        station = parser.find_station('銀座線', '表参道')

        assert station.id == 202

    def test_longer_parsed_line_name_does_not_match_master_line(self, station_master_file):
        parser = AccessInfoParser(load_station_master(station_master_file))

        station = parser.find_station('京王井の頭線急行', '渋谷')

        assert station.id == 101

    def test_unknown_line_falls_back_to_first_exact_station(self, station_master_file):
        parser = AccessInfoParser(load_station_master(station_master_file))

        station = parser.find_station('東急東横線', '渋谷')

        assert station.id == 101

    def test_unresolved_entries_are_dropped(self, station_master_file):
        parser = AccessInfoParser(load_station_master(station_master_file))

        resolved = parser.parse_and_resolve('都営大江戸線/六本木駅 歩3分 / JR山手線/原宿駅 歩8分')

        assert len(resolved) == 1
        assert resolved[0]['station'].name == '原宿'

    def test_inactive_stations_are_ignored(self):
        master = StationMaster.from_dict({'lines': [
            {'id': 'a', 'name': 'JR山手線', 'stations': [{'id': 1, 'name': '渋谷', 'active': False}]},
        ]})

        assert AccessInfoParser(master).find_station('JR山手線', '渋谷') is None

    def test_empty_master_resolves_nothing(self):
        assert AccessInfoParser().parse_and_resolve('JR山手線/渋谷駅 歩5分') == []

    def test_station_records(self, station_master_file):
        parser = AccessInfoParser(load_station_master(station_master_file))

        records = station_records(parser.parse_and_resolve('JR山手線/渋谷駅 歩5分'))

        assert records == [{
            'station_id': 101,
            'station_name': '渋谷',
            'line_name': 'JR山手線',
            'walking_minutes': 5,
            'raw_text': 'JR山手線/渋谷駅 歩5分',
        }]
