#!/usr/bin/env python3
"""
Test suite for anime_multisource/mapping.py - cross-reference table loading and lookup
"""

import pytest
import sys
import threading
from pathlib import Path
from unittest.mock import MagicMock

import requests

sys.path.insert(0, str(Path(__file__).parent.parent))

from anime_multisource.mapping import AnimeMapping, AnimeListMapper, build_indices, _parse_id
from anime_multisource.errors import MappingRefreshError, ConfigurationInvalid


ROWS = [
    {'thetvdb_id': 79604, 'imdb_id': 'tt0421357', 'anilist_id': 121, 'anidb_id': 239,
     'mal_id': 121, 'type': 'TV', 'kitsu_id': '100'},
    {'thetvdb_id': 85249, 'imdb_id': 'tt1355642', 'anilist_id': 5114, 'anidb_id': 6107,
     'mal_id': 5114, 'type': 'TV'},
    # Duplicate TVDB id: must lose to the first row
    {'thetvdb_id': 79604, 'anilist_id': 430, 'type': 'MOVIE'},
]


def make_session(payload=None, status_error=None, json_error=None):
    session = MagicMock()
    response = MagicMock()
    if status_error:
        response.raise_for_status.side_effect = status_error
    if json_error:
        response.json.side_effect = json_error
    else:
        response.json.return_value = payload
    session.get.return_value = response
    return session


@pytest.fixture
def clock():
    now = {'t': 1000.0}

    def _clock():
        return now['t']
    _clock.now = now
    return _clock


@pytest.fixture
def mapper(clock):
    m = AnimeListMapper(session=make_session(ROWS), url='http://lists.test/full.json', clock=clock)
    m.refresh()
    return m


class TestRowParsing:
    """Rows accept numbers and numeric strings"""

    def test_numeric_string_ids(self):
        row = AnimeMapping.from_payload({'thetvdb_id': '79604', 'kitsu_id': '100'})
        assert row.tvdb_id == 79604
        assert row.kitsu_id == 100

    def test_non_numeric_id_is_none(self):
        row = AnimeMapping.from_payload({'anilist_id': 'abc'})
        assert row.anilist_id is None

    def test_imdb_stays_string(self):
        row = AnimeMapping.from_payload({'imdb_id': 'tt0421357'})
        assert row.imdb_id == 'tt0421357'

    def test_parse_id_edge_cases(self):
        assert _parse_id(12.0) == 12
        assert _parse_id(12.5) is None
        assert _parse_id(True) is None
        assert _parse_id('') is None


class TestIndices:
    """Index build keeps the first occurrence"""

    def test_first_row_wins_on_duplicate(self):
        rows = [AnimeMapping.from_payload(r) for r in ROWS]
        by_tvdb, _, by_anilist = build_indices(rows)
        assert by_tvdb['79604'].anilist_id == 121
        # Later row still reachable through its own AniList id
        assert by_anilist[430].type == 'MOVIE'


class TestLookup:
    """Point lookups by tvdb, imdb and anilist"""

    def test_lookup_by_tvdb(self, mapper):
        row = mapper.lookup('tvdb', '79604')
        assert row.anilist_id == 121
        assert row.anidb_id == 239

    def test_lookup_by_tvdb_int(self, mapper):
        assert mapper.lookup('tvdb', 85249).anilist_id == 5114

    def test_lookup_by_imdb(self, mapper):
        assert mapper.lookup('imdb', 'tt1355642').anilist_id == 5114

    def test_lookup_by_anilist(self, mapper):
        assert mapper.lookup('anilist', 121).tvdb_id == 79604

    def test_missing_row(self, mapper):
        assert mapper.lookup('tvdb', '1') is None
        assert mapper.lookup('imdb', None) is None

    def test_unknown_kind_rejected(self, mapper):
        with pytest.raises(ConfigurationInvalid):
            mapper.lookup('kitsu', 100)


class TestRefresh:
    """Refresh failures keep the previous snapshot"""

    def test_network_failure_raises(self, clock):
        session = MagicMock()
        session.get.side_effect = requests.ConnectionError("down")
        m = AnimeListMapper(session=session, clock=clock)
        with pytest.raises(MappingRefreshError):
            m.refresh()
        assert not m.is_loaded

    def test_failure_keeps_previous_snapshot(self, mapper):
        mapper.session = make_session(status_error=requests.HTTPError("500"))
        with pytest.raises(MappingRefreshError):
            mapper.refresh()
        assert mapper.lookup('tvdb', '79604').anilist_id == 121

    def test_non_list_payload_rejected(self, clock):
        m = AnimeListMapper(session=make_session({'error': 'nope'}), clock=clock)
        with pytest.raises(MappingRefreshError):
            m.refresh()

    def test_invalid_json_rejected(self, clock):
        m = AnimeListMapper(session=make_session(json_error=ValueError("bad json")), clock=clock)
        with pytest.raises(MappingRefreshError):
            m.refresh()


class TestEnsureLoaded:
    """Refresh only when empty or stale"""

    def test_loads_when_empty(self, clock):
        session = make_session(ROWS)
        m = AnimeListMapper(session=session, clock=clock)
        m.ensure_loaded()
        assert session.get.call_count == 1
        assert m.get_stats()['tvdb_entries'] == 2

    def test_fresh_snapshot_not_refetched(self, mapper, clock):
        clock.now['t'] += 60
        mapper.ensure_loaded()
        assert mapper.session.get.call_count == 1

    def test_stale_snapshot_refetched(self, mapper, clock):
        clock.now['t'] += mapper.ttl + 1
        mapper.ensure_loaded()
        assert mapper.session.get.call_count == 2


class TestConcurrentRefresh:
    """Readers see the old table or the new one, never a mix"""

    def test_lookup_during_refresh(self, mapper, clock):
        new_rows = [{'thetvdb_id': 79604, 'imdb_id': 'tt0421357', 'anilist_id': 121, 'anidb_id': 999}]
        new_rows += [{'thetvdb_id': 100000 + i, 'anilist_id': 200000 + i} for i in range(2000)]
        mapper.session = make_session(new_rows)

        old_counts = (2, 2, 3)
        new_counts = (2001, 1, 2001)
        done = threading.Event()
        errors = []

        def reader():
            seen = 0
            while not done.is_set() or seen < 50:
                seen += 1
                row = mapper.lookup('tvdb', '79604')
                if row is None or row.anidb_id not in (239, 999):
                    errors.append(row)
                stats = mapper.get_stats()
                counts = (stats['tvdb_entries'], stats['imdb_entries'], stats['anilist_entries'])
                if counts not in (old_counts, new_counts):
                    errors.append(counts)

        readers = [threading.Thread(target=reader) for _ in range(4)]
        for t in readers:
            t.start()
        mapper.refresh()
        done.set()
        for t in readers:
            t.join()

        assert errors == []
        assert mapper.lookup('tvdb', '79604').anidb_id == 999
        assert mapper.lookup('anilist', 200001).tvdb_id == 100001
