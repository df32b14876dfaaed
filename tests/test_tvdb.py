#!/usr/bin/env python3
"""
Test suite for anime_multisource/tvdb.py - token handling and episode pagination
"""

import sys
from pathlib import Path
from unittest.mock import MagicMock

import pytest

sys.path.insert(0, str(Path(__file__).parent.parent))

from anime_multisource.tvdb import TvdbClient
from anime_multisource.cache import ResponseCache
from anime_multisource.constants import TVDB_MAX_EPISODE_PAGES


BASE = 'https://tvdb.test/v4'


def make_response(status=200, json_data=None):
    response = MagicMock()
    response.status_code = status
    response.json.return_value = json_data
    response.headers = {}
    return response


def login_response(token='tok-1'):
    return make_response(json_data={'status': 'success', 'data': {'token': token}})


def episodes_page(episodes, next_url=None):
    return make_response(json_data={'data': {'episodes': episodes}, 'links': {'next': next_url}})


def episode(ep_id, season, number, name=None, aired='2009-04-05'):
    return {'id': ep_id, 'seasonNumber': season, 'number': number,
            'name': name or f"Episode {number}", 'aired': aired, 'image': f"http://img/{ep_id}.jpg"}


class FakeClock:
    def __init__(self, start=1000.0):
        self.now = start

    def __call__(self):
        return self.now


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def make_client(clock):
    def _make(get_responses=(), post_responses=(login_response(),), api_key='key'):
        session = MagicMock()
        session.get.side_effect = list(get_responses)
        session.post.side_effect = list(post_responses)
        return TvdbClient(
            api_key,
            session=session,
            episode_cache=ResponseCache('tvdb_episodes', 6 * 3600, clock=clock),
            series_cache=ResponseCache('tvdb_series', 6 * 3600, clock=clock),
            base_url=BASE,
            clock=clock,
        )
    return _make


class TestAuthentication:
    """Bearer token lifecycle"""

    def test_login_and_bearer_header(self, make_client):
        client = make_client([episodes_page([episode(1, 1, 1)])])
        client.get_episodes(100)

        assert client.session.post.call_args.kwargs['json'] == {'apikey': 'key'}
        headers = client.session.get.call_args.kwargs['headers']
        assert headers['Authorization'] == 'Bearer tok-1'

    def test_token_reused(self, make_client):
        client = make_client([episodes_page([episode(1, 1, 1)]), episodes_page([episode(2, 1, 1)])])
        client.get_episodes(100)
        client.get_episodes(200)
        assert client.session.post.call_count == 1

    def test_token_renewed_near_expiry(self, make_client, clock):
        client = make_client([episodes_page([episode(1, 1, 1)]), episodes_page([episode(2, 1, 1)])],
                             post_responses=[login_response('a'), login_response('b')])
        client.get_episodes(100)
        clock.now += 12 * 3600 - 60
        client.get_episodes(200)
        assert client.session.post.call_count == 2

    def test_401_refreshes_and_retries_once(self, make_client):
        client = make_client(
            [make_response(status=401), episodes_page([episode(1, 1, 1)])],
            post_responses=[login_response('old'), login_response('new')],
        )

        episodes = client.get_episodes(100)

        assert len(episodes) == 1
        assert client.session.post.call_count == 2
        assert client.session.get.call_count == 2
        assert client.session.get.call_args.kwargs['headers']['Authorization'] == 'Bearer new'

    def test_second_401_not_retried_again(self, make_client):
        client = make_client(
            [make_response(status=401), make_response(status=401)],
            post_responses=[login_response('old'), login_response('new')],
        )
        assert client.get_episodes(100) == []
        assert client.session.get.call_count == 2

    def test_missing_api_key(self, make_client):
        client = make_client(api_key='')
        assert client.get_episodes(100) == []
        assert client.session.post.call_count == 0


class TestEpisodes:
    """Pagination and caching"""

    def test_follows_next_links(self, make_client):
        client = make_client([
            episodes_page([episode(1, 1, 1)], next_url=f"{BASE}/series/100/episodes/default?page=1"),
            episodes_page([episode(2, 1, 2)]),
        ])

        episodes = client.get_episodes(100)

        assert [e.id for e in episodes] == [1, 2]
        first_url = client.session.get.call_args_list[0].args[0]
        assert first_url == f"{BASE}/series/100/episodes/default?page=0"

    def test_page_guard(self, make_client):
        pages = [episodes_page([episode(i, 1, i)], next_url=f"{BASE}/next?page={i + 1}")
                 for i in range(TVDB_MAX_EPISODE_PAGES + 5)]
        client = make_client(pages)

        episodes = client.get_episodes(100)

        assert client.session.get.call_count == TVDB_MAX_EPISODE_PAGES
        assert len(episodes) == TVDB_MAX_EPISODE_PAGES

    def test_cached_per_series(self, make_client):
        client = make_client([episodes_page([episode(1, 1, 1)])])
        client.get_episodes(100)
        client.get_episodes(100)
        assert client.session.get.call_count == 1

    def test_later_page_failure_keeps_earlier_pages(self, make_client):
        client = make_client([
            episodes_page([episode(1, 1, 1)], next_url=f"{BASE}/next?page=1"),
            make_response(status=500),
        ])
        assert [e.id for e in client.get_episodes(100)] == [1]

    def test_first_page_failure_not_cached(self, make_client):
        client = make_client([make_response(status=500), episodes_page([episode(1, 1, 1)])])
        assert client.get_episodes(100) == []
        assert len(client.get_episodes(100)) == 1

    def test_find_episode(self, make_client):
        client = make_client([episodes_page([episode(1, 1, 1), episode(2, 1, 2), episode(3, 2, 1)])])
        found = client.find_episode(100, 2, 1)
        assert found.id == 3
        assert client.find_episode(100, 3, 1) is None


class TestTranslationsAndSeries:
    def test_translation(self, make_client):
        client = make_client([make_response(json_data={'data': {'name': 'The Hand', 'overview': 'Text'}})])
        assert client.get_episode_translation(7, 'eng') == {'name': 'The Hand', 'overview': 'Text'}
        assert client.session.get.call_args.args[0] == f"{BASE}/episodes/7/translations/eng"

    def test_translation_missing(self, make_client):
        client = make_client([make_response(status=404)])
        assert client.get_episode_translation(7) is None

    def test_series_extended_cached(self, make_client):
        client = make_client([make_response(json_data={'data': {'id': 100, 'artworks': []}})])
        assert client.get_series_extended(100) == {'id': 100, 'artworks': []}
        assert client.get_series_extended(100) == {'id': 100, 'artworks': []}
        assert client.session.get.call_count == 1
