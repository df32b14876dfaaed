#!/usr/bin/env python3
"""
Test suite for anime_multisource/resolver.py - root finding, seasons, specials, year matching
"""

import sys
from pathlib import Path

import pytest

sys.path.insert(0, str(Path(__file__).parent.parent))

from anime_multisource.models import AniListMedia, MediaSummary, RelationEdge, SeasonDetail
from anime_multisource.overrides import GraphOverrides
from anime_multisource.resolver import GraphResolver


def media(media_id, fmt='TV', year=None, duration=24, relations=(), media_type='ANIME'):
    """relations: (relation_type, target_id, target_format)"""
    return AniListMedia(
        id=media_id,
        id_mal=media_id + 10000,
        title_romaji=f"Entry {media_id}",
        format=fmt,
        type=media_type,
        start_year=year,
        duration=duration,
        relations=[RelationEdge(rel, MediaSummary(id=target, format=target_fmt, type='ANIME'))
                   for rel, target, target_fmt in relations],
    )


class FakeAniList:
    """In-memory stand-in for AniListClient over a fixed graph"""

    def __init__(self, *entries):
        self.graph = {m.id: m for m in entries}
        self.roots = {}
        self.media_calls = []

    def get_media(self, anilist_id, cancel=None):
        self.media_calls.append(anilist_id)
        return self.graph.get(anilist_id)

    def get_season_detail(self, anilist_id, cancel=None):
        m = self.graph.get(anilist_id)
        if m is None:
            return None
        return SeasonDetail(anilist_id=m.id, mal_id=m.id_mal, title_romaji=m.title_romaji,
                            format=m.format, type=m.type, relations=m.relations)

    def get_cached_root(self, anilist_id):
        return self.roots.get(anilist_id)

    def store_root(self, anilist_id, root_id):
        self.roots[anilist_id] = root_id


def no_overrides():
    return GraphOverrides(pinned_root_ids=frozenset(), deferred_seasons={})


class TestFindRoot:
    """Follow best TV PREQUEL edges"""

    def test_sequel_resolves_to_first_season(self):
        anilist = FakeAniList(
            media(121, year=2003, relations=[('SEQUEL', 5114, 'TV')]),
            media(5114, year=2009, relations=[('PREQUEL', 121, 'TV')]),
        )
        assert GraphResolver(anilist, no_overrides()).find_root(5114) == 121

    def test_multi_hop(self):
        anilist = FakeAniList(
            media(1),
            media(2, relations=[('PREQUEL', 1, 'TV')]),
            media(3, relations=[('PREQUEL', 2, 'TV_SHORT')]),
        )
        assert GraphResolver(anilist, no_overrides()).find_root(3) == 1

    def test_non_tv_prequel_ignored(self):
        anilist = FakeAniList(
            media(10, relations=[('PREQUEL', 9, 'MOVIE'), ('PREQUEL', 8, 'OVA')]),
        )
        assert GraphResolver(anilist, no_overrides()).find_root(10) == 10

    def test_prefers_tv_over_tv_short(self):
        anilist = FakeAniList(
            media(1), media(2),
            media(3, relations=[('PREQUEL', 2, 'TV_SHORT'), ('PREQUEL', 1, 'TV')]),
        )
        assert GraphResolver(anilist, no_overrides()).find_root(3) == 1

    def test_cycle_terminates_deterministically(self):
        anilist = FakeAniList(
            media(1, relations=[('PREQUEL', 2, 'TV')]),
            media(2, relations=[('PREQUEL', 1, 'TV')]),
        )
        first = GraphResolver(anilist, no_overrides()).find_root(1)
        second = GraphResolver(FakeAniList(*anilist.graph.values()), no_overrides()).find_root(1)
        assert first == second
        assert first in (1, 2)

    def test_root_memoized(self):
        anilist = FakeAniList(media(1), media(2, relations=[('PREQUEL', 1, 'TV')]))
        resolver = GraphResolver(anilist, no_overrides())
        resolver.find_root(2)
        calls = len(anilist.media_calls)
        assert resolver.find_root(2) == 1
        assert len(anilist.media_calls) == calls
        assert anilist.roots[2] == 1

    def test_failed_fetch_not_memoized(self):
        anilist = FakeAniList(media(2, relations=[('PREQUEL', 1, 'TV')]))
        resolver = GraphResolver(anilist, no_overrides())
        resolver.find_root(2)
        assert 2 not in anilist.roots

    def test_pinned_id_not_rerooted(self):
        anilist = FakeAniList(media(1), media(21, relations=[('PREQUEL', 1, 'TV')]))
        resolver = GraphResolver(anilist, GraphOverrides(pinned_root_ids=frozenset({21})))
        assert resolver.find_root(21) == 21
        assert anilist.media_calls == []

    def test_walk_stops_at_pinned_node(self):
        anilist = FakeAniList(
            media(1),
            media(21, relations=[('PREQUEL', 1, 'TV')]),
            media(30, relations=[('PREQUEL', 21, 'TV')]),
        )
        resolver = GraphResolver(anilist, GraphOverrides(pinned_root_ids=frozenset({21})))
        assert resolver.find_root(30) == 21


class TestYearDisambiguation:
    """Mapped entry kept when it matches the hint year better than the root"""

    @pytest.fixture
    def anilist(self):
        return FakeAniList(
            media(100, year=2003, relations=[('SEQUEL', 200, 'TV')]),
            media(200, year=2015, relations=[('PREQUEL', 100, 'TV')]),
        )

    def test_mapped_wins_when_closer(self, anilist):
        assert GraphResolver(anilist, no_overrides()).resolve_root(200, 2015) == 200

    def test_root_wins_when_closer(self, anilist):
        assert GraphResolver(anilist, no_overrides()).resolve_root(200, 2003) == 100

    def test_no_year_uses_root(self, anilist):
        assert GraphResolver(anilist, no_overrides()).resolve_root(200) == 100

    def test_tie_goes_to_root(self):
        anilist = FakeAniList(
            media(100, year=2009, relations=[('SEQUEL', 200, 'TV')]),
            media(200, year=2011, relations=[('PREQUEL', 100, 'TV')]),
        )
        assert GraphResolver(anilist, no_overrides()).resolve_root(200, 2010) == 100

    def test_long_movie_penalty(self):
        resolver = GraphResolver(FakeAniList(), no_overrides())
        movie = media(5, fmt='MOVIE', year=2010, duration=110)
        assert resolver._node_cost(movie, 2010) == 5
        assert resolver._node_cost(movie, 2012) == 25

    def test_long_episode_exception(self):
        overrides = GraphOverrides(pinned_root_ids=frozenset(), long_episode_ids=frozenset({5}))
        resolver = GraphResolver(FakeAniList(), overrides)
        assert resolver._node_cost(media(5, fmt='MOVIE', year=2010, duration=110), 2010) == 0

    def test_unknown_year_is_infinite(self):
        resolver = GraphResolver(FakeAniList(), no_overrides())
        assert resolver._node_cost(media(5), 2010) == float('inf')

    def test_pinned_mapped_id_kept(self, anilist):
        resolver = GraphResolver(anilist, GraphOverrides(pinned_root_ids=frozenset({200})))
        assert resolver.resolve_root(200, 2003) == 200


class TestSeasons:
    """Season N walks N-1 sequels from the root"""

    @pytest.fixture
    def anilist(self):
        return FakeAniList(
            media(1535, relations=[('SEQUEL', 2002, 'OVA'), ('SEQUEL', 2001, 'TV')]),
            media(2001, relations=[('PREQUEL', 1535, 'TV'), ('SEQUEL', 3001, 'TV')]),
            media(2002, fmt='OVA'),
            media(3001, relations=[('PREQUEL', 2001, 'TV')]),
        )

    def test_season_one_is_root(self, anilist):
        assert GraphResolver(anilist, no_overrides()).get_season(1535, 1).anilist_id == 1535

    def test_season_two_prefers_tv_sequel(self, anilist):
        assert GraphResolver(anilist, no_overrides()).get_season(1535, 2).anilist_id == 2001

    def test_season_three(self, anilist):
        assert GraphResolver(anilist, no_overrides()).get_season(1535, 3).anilist_id == 3001

    def test_incomplete_chain_returns_none(self, anilist):
        assert GraphResolver(anilist, no_overrides()).get_season(1535, 4) is None

    def test_negative_season(self, anilist):
        assert GraphResolver(anilist, no_overrides()).get_season(1535, -1) is None

    def test_sequel_loop_returns_none(self):
        anilist = FakeAniList(
            media(1, relations=[('SEQUEL', 2, 'TV')]),
            media(2, relations=[('SEQUEL', 1, 'TV')]),
        )
        assert GraphResolver(anilist, no_overrides()).get_season(1, 3) is None

    def test_deferred_season(self, anilist):
        overrides = GraphOverrides(pinned_root_ids=frozenset(), deferred_seasons={1535: 2})
        resolver = GraphResolver(anilist, overrides)
        assert resolver.get_season(1535, 1).anilist_id == 1535
        assert resolver.get_season(1535, 2) is None
        assert resolver.get_season(1535, 3) is None


class TestSpecials:
    """Season 0 picks the best-scored specials edge along the sequel chain"""

    def test_best_scored_edge(self):
        anilist = FakeAniList(
            media(1, relations=[('SIDE_STORY', 50, 'OVA'), ('SEQUEL', 60, 'OVA')]),
            media(50, fmt='OVA'),
            media(60, fmt='OVA'),
        )
        assert GraphResolver(anilist, no_overrides()).get_season(1, 0).anilist_id == 60

    def test_found_further_down_chain(self):
        anilist = FakeAniList(
            media(1, relations=[('SEQUEL', 2, 'TV')]),
            media(2, relations=[('PREQUEL', 1, 'TV'), ('SIDE_STORY', 70, 'SPECIAL')]),
            media(70, fmt='SPECIAL'),
        )
        assert GraphResolver(anilist, no_overrides()).get_season(1, 0).anilist_id == 70

    def test_no_specials(self):
        anilist = FakeAniList(media(1, relations=[('SEQUEL', 2, 'TV')]), media(2))
        assert GraphResolver(anilist, no_overrides()).get_season(1, 0) is None


class TestSeasonRelations:
    def test_only_tv_sequels(self):
        root = media(1, relations=[('SEQUEL', 2, 'TV'), ('SEQUEL', 3, 'MOVIE'), ('PREQUEL', 4, 'TV')])
        relations = GraphResolver(FakeAniList(), no_overrides()).get_season_relations(root)
        assert [r.anilist_id for r in relations] == [2]

    def test_none_media(self):
        assert GraphResolver(FakeAniList(), no_overrides()).get_season_relations(None) == []


class TestSeasonChain:
    """Every season reachable from the root by best TV sequels"""

    def test_follows_chain_past_second_season(self):
        anilist = FakeAniList(
            media(1, relations=[('SEQUEL', 2, 'TV'), ('SEQUEL', 9, 'MOVIE')]),
            media(2, relations=[('PREQUEL', 1, 'TV'), ('SEQUEL', 3, 'TV')]),
            media(3, relations=[('PREQUEL', 2, 'TV'), ('SEQUEL', 4, 'TV_SHORT')]),
            media(4),
            media(9, fmt='MOVIE'),
        )
        assert GraphResolver(anilist, no_overrides()).get_season_chain(1) == [1, 2, 3, 4]

    def test_root_only(self):
        assert GraphResolver(FakeAniList(media(1)), no_overrides()).get_season_chain(1) == [1]

    def test_failed_fetch_ends_chain(self):
        anilist = FakeAniList(media(1, relations=[('SEQUEL', 2, 'TV')]))
        assert GraphResolver(anilist, no_overrides()).get_season_chain(1) == [1, 2]

    def test_loop_terminates(self):
        anilist = FakeAniList(
            media(1, relations=[('SEQUEL', 2, 'TV')]),
            media(2, relations=[('SEQUEL', 1, 'TV')]),
        )
        assert GraphResolver(anilist, no_overrides()).get_season_chain(1) == [1, 2]
