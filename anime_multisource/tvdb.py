#!/usr/bin/env python3
"""
TheTVDB v4 client (episode / artwork catalog)

Authenticates with POST /login using the project API key; the bearer token is
kept for 12 hours and renewed once it has less than 5 minutes left. A 401 on
any call discards the token, logs in again and retries that call exactly once.
"""

import logging
import threading
import time
from typing import Optional, List, Dict, Callable

import requests

from anime_multisource.cache import ResponseCache
from anime_multisource.constants import (
    TVDB_BASE_URL, TVDB_EPISODE_CACHE_TTL, TVDB_SERIES_CACHE_TTL, TVDB_TOKEN_LIFETIME,
    TVDB_TOKEN_REFRESH_MARGIN, TVDB_MAX_EPISODE_PAGES, REQUEST_TIMEOUT, USER_AGENT,
)
from anime_multisource.errors import (
    SourceError, NotFound, TransientFailure, MalformedResponse, ConfigurationInvalid,
)
from anime_multisource.models import TvdbEpisode
from anime_multisource.ratelimit import check_cancelled

logger = logging.getLogger(__name__)

SOURCE = 'TVDB'


class TvdbClient:
    """Token-authenticated, cached access to TheTVDB"""

    def __init__(self,
                 api_key: str,
                 session: Optional[requests.Session] = None,
                 episode_cache: Optional[ResponseCache] = None,
                 series_cache: Optional[ResponseCache] = None,
                 base_url: str = TVDB_BASE_URL,
                 clock: Callable[[], float] = time.time):
        self.api_key = api_key or ''
        self.session = session or requests.Session()
        self.episode_cache = episode_cache or ResponseCache('tvdb_episodes', TVDB_EPISODE_CACHE_TTL)
        self.series_cache = series_cache or ResponseCache('tvdb_series', TVDB_SERIES_CACHE_TTL)
        self.base_url = base_url.rstrip('/')
        self.clock = clock
        self._token: Optional[str] = None
        self._token_expiry = 0.0
        self._token_lock = threading.Lock()
        self.requests_made = 0

    # ------------------------------------------------------------------
    # Authentication
    # ------------------------------------------------------------------

    def _token_valid(self) -> bool:
        return bool(self._token) and self._token_expiry - self.clock() > TVDB_TOKEN_REFRESH_MARGIN

    def _get_token(self) -> str:
        if self._token_valid():
            return self._token

        if not self.api_key:
            raise ConfigurationInvalid("TVDB API key is missing; cannot authenticate")

        with self._token_lock:
            if self._token_valid():
                return self._token

            try:
                response = self.session.post(
                    f"{self.base_url}/login",
                    json={'apikey': self.api_key},
                    headers={'User-Agent': USER_AGENT},
                    timeout=REQUEST_TIMEOUT,
                )
            except requests.RequestException as e:
                raise TransientFailure(SOURCE, f"login failed: {e}") from e

            if response.status_code >= 400:
                raise TransientFailure(SOURCE, f"login failed with status {response.status_code}")

            try:
                token = ((response.json() or {}).get('data') or {}).get('token')
            except ValueError as e:
                raise MalformedResponse(SOURCE, f"login returned invalid JSON: {e}") from e

            if not token:
                raise MalformedResponse(SOURCE, "login returned no token")

            self._token = token
            self._token_expiry = self.clock() + TVDB_TOKEN_LIFETIME
            logger.info(f"Obtained TVDB token; valid for {TVDB_TOKEN_LIFETIME // 3600} hours")
            return token

    def _invalidate_token(self):
        with self._token_lock:
            self._token = None
            self._token_expiry = 0.0

    def _send(self, url: str, cancel: Optional[threading.Event] = None) -> requests.Response:
        """Authorized GET with one re-login retry on 401"""
        check_cancelled(cancel, SOURCE)
        response = self._authorized_get(url)

        if response.status_code == 401:
            logger.info(f"TVDB token rejected, refreshing token and retrying {url}")
            self._invalidate_token()
            check_cancelled(cancel, SOURCE)
            response = self._authorized_get(url)

        return response

    def _authorized_get(self, url: str) -> requests.Response:
        token = self._get_token()
        self.requests_made += 1
        try:
            return self.session.get(
                url,
                headers={'Authorization': f"Bearer {token}", 'Accept': 'application/json',
                         'User-Agent': USER_AGENT},
                timeout=REQUEST_TIMEOUT,
            )
        except requests.RequestException as e:
            raise TransientFailure(SOURCE, f"request to {url} failed: {e}") from e

    def _get_json(self, url: str, cancel: Optional[threading.Event] = None) -> Dict:
        response = self._send(url, cancel)
        if response.status_code == 404:
            raise NotFound(SOURCE, f"{url} not found")
        if response.status_code >= 400:
            raise TransientFailure(SOURCE, f"{url} returned status {response.status_code}")
        try:
            return response.json() or {}
        except ValueError as e:
            raise MalformedResponse(SOURCE, f"{url} returned invalid JSON: {e}") from e

    # ------------------------------------------------------------------
    # Episodes
    # ------------------------------------------------------------------

    def get_episodes(self, series_id: int,
                     cancel: Optional[threading.Event] = None) -> List[TvdbEpisode]:
        """Every episode of a series (default order), following links.next"""
        key = f"episodes:{series_id}"
        cached = self.episode_cache.get(key)
        if cached is not None:
            logger.debug(f"TVDB cache hit for series {series_id}")
            return [TvdbEpisode.from_payload(e) for e in cached]

        raw_episodes = []
        next_url = f"{self.base_url}/series/{series_id}/episodes/default?page=0"
        pages = 0

        try:
            while next_url and pages < TVDB_MAX_EPISODE_PAGES:
                pages += 1
                try:
                    payload = self._get_json(next_url, cancel)
                except SourceError as e:
                    if pages == 1:
                        raise
                    logger.warning(f"TVDB episode page {pages} failed, keeping {len(raw_episodes)} episodes: {e}")
                    break

                episodes = ((payload.get('data') or {}).get('episodes')) or []
                raw_episodes.extend(e for e in episodes if isinstance(e, dict) and 'id' in e)
                logger.debug(f"Fetched {len(episodes)} episodes from {next_url}")
                next_url = (payload.get('links') or {}).get('next')
        except (SourceError, ConfigurationInvalid) as e:
            logger.warning(f"TVDB episodes fetch failed for series {series_id}: {e}")
            return []

        if next_url and pages >= TVDB_MAX_EPISODE_PAGES:
            logger.warning(f"TVDB episode listing for series {series_id} truncated at {pages} pages")

        self.episode_cache.put(key, raw_episodes)
        logger.info(f"Cached {len(raw_episodes)} TVDB episodes for series {series_id}")
        return [TvdbEpisode.from_payload(e) for e in raw_episodes]

    def find_episode(self, series_id: int, season_number: int, episode_number: int,
                     cancel: Optional[threading.Event] = None) -> Optional[TvdbEpisode]:
        for episode in self.get_episodes(series_id, cancel):
            if episode.season_number == season_number and episode.number == episode_number:
                return episode
        return None

    def get_episode_translation(self, episode_id: int, language: str = 'eng',
                                cancel: Optional[threading.Event] = None) -> Optional[Dict]:
        """{'name', 'overview'} in the given language, or None"""
        url = f"{self.base_url}/episodes/{episode_id}/translations/{language}"
        try:
            data = self._get_json(url, cancel).get('data')
        except (SourceError, ConfigurationInvalid) as e:
            logger.debug(f"TVDB translation request failed for episode {episode_id} lang {language}: {e}")
            return None
        if not data:
            return None
        return {'name': data.get('name'), 'overview': data.get('overview')}

    # ------------------------------------------------------------------
    # Series
    # ------------------------------------------------------------------

    def get_series_extended(self, series_id: int,
                            cancel: Optional[threading.Event] = None) -> Optional[Dict]:
        """Extended series record (artworks, seasons), or None"""
        key = f"series:{series_id}"
        cached = self.series_cache.get(key)
        if cached is not None:
            return cached

        url = f"{self.base_url}/series/{series_id}/extended"
        try:
            data = self._get_json(url, cancel).get('data')
        except (SourceError, ConfigurationInvalid) as e:
            logger.debug(f"TVDB series extended request failed for id {series_id}: {e}")
            return None
        if not data:
            return None

        self.series_cache.put(key, data)
        return data

    def get_cache_stats(self) -> Dict:
        return {
            'episodes': self.episode_cache.get_cache_stats(),
            'series': self.series_cache.get_cache_stats(),
            'requests': self.requests_made,
        }
