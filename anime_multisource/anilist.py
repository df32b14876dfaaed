#!/usr/bin/env python3
"""
AniList GraphQL client (relation graph catalog)

All queries go through one POST endpoint, one sliding-window limiter and one
response cache keyed by "<kind>:<id>" (media, season, people, root). Cached
values are the raw GraphQL payloads; records are rebuilt on every read.
"""

import logging
import threading
from typing import Optional, List, Dict

import requests

from anime_multisource.cache import ResponseCache
from anime_multisource.constants import (
    ANILIST_URL, ANILIST_CACHE_TTL, ANILIST_MAX_PER_MINUTE, REQUEST_TIMEOUT, USER_AGENT,
)
from anime_multisource.errors import (
    SourceError, NotFound, RateLimited, TransientFailure, MalformedResponse,
)
from anime_multisource.models import AniListMedia, SeasonDetail, Person
from anime_multisource.ratelimit import SlidingWindowLimiter, check_cancelled, retry_after_delay
from anime_multisource.relations import select_preferred_relation

logger = logging.getLogger(__name__)

SOURCE = 'AniList'

RELATION_NODE_FIELDS = """
                        relationType
                        node {
                            id
                            type
                            format
                            episodes
                            season
                            seasonYear
                            duration
                            title { romaji english }
                        }
"""

MEDIA_QUERY = """
query ($id: Int) {
    Media(id: $id) {
        id
        idMal
        title { romaji english native }
        description
        genres
        duration
        averageScore
        startDate { year month day }
        endDate { year month day }
        seasonYear
        status
        episodes
        format
        type
        relations {
            edges {%s}
        }
    }
}
""" % RELATION_NODE_FIELDS

SEASON_QUERY = """
query ($id: Int) {
    Media(id: $id) {
        id
        idMal
        title { romaji english native }
        description
        genres
        averageScore
        startDate { year month day }
        endDate { year month day }
        status
        episodes
        format
        type
        relations {
            edges {%s}
        }
    }
}
""" % RELATION_NODE_FIELDS

PEOPLE_QUERY = """
query ($id: Int) {
    Media(id: $id) {
        characters(perPage: 50, sort: ROLE) {
            edges {
                node { id name { full } image { large } }
                role
                voiceActors(language: JAPANESE) { id name { full } image { large } }
            }
        }
        staff(perPage: 50, sort: RELEVANCE) {
            edges {
                node { id name { full } image { large } }
                role
            }
        }
    }
}
"""


def parse_people(media: Optional[Dict]) -> List[Person]:
    """Voice actors (role "Voice - <character>") followed by staff"""
    people = []
    if not media:
        return people

    for edge in ((media.get('characters') or {}).get('edges') or []):
        node = (edge or {}).get('node')
        if not node:
            continue
        character = (node.get('name') or {}).get('full')
        for va in edge.get('voiceActors') or []:
            people.append(Person(
                name=(va.get('name') or {}).get('full') or 'Unknown VA',
                role=f"Voice - {character}",
                image_url=(va.get('image') or {}).get('large'),
            ))

    for edge in ((media.get('staff') or {}).get('edges') or []):
        node = (edge or {}).get('node')
        if not node:
            continue
        people.append(Person(
            name=(node.get('name') or {}).get('full') or 'Unknown Staff',
            role=edge.get('role') or 'Staff',
            image_url=(node.get('image') or {}).get('large'),
        ))

    return people


class AniListClient:
    """Rate-limited, cached access to the AniList relation graph"""

    def __init__(self,
                 session: Optional[requests.Session] = None,
                 cache: Optional[ResponseCache] = None,
                 limiter: Optional[SlidingWindowLimiter] = None,
                 max_per_minute: int = ANILIST_MAX_PER_MINUTE,
                 url: str = ANILIST_URL):
        self.session = session or requests.Session()
        self.cache = cache or ResponseCache('anilist', ANILIST_CACHE_TTL)
        self.limiter = limiter or SlidingWindowLimiter(max_per_minute, name=SOURCE)
        self.url = url
        self.requests_made = 0

    # ------------------------------------------------------------------
    # Transport
    # ------------------------------------------------------------------

    def _query(self, query: str, anilist_id: int,
               cancel: Optional[threading.Event] = None) -> Dict:
        """POST one query and return data.Media; raises SourceError subclasses"""
        self.limiter.acquire(cancel)
        check_cancelled(cancel, SOURCE)

        self.requests_made += 1
        try:
            response = self.session.post(
                self.url,
                json={'query': query, 'variables': {'id': anilist_id}},
                headers={'Accept': 'application/json', 'User-Agent': USER_AGENT},
                timeout=REQUEST_TIMEOUT,
            )
        except requests.RequestException as e:
            raise TransientFailure(SOURCE, f"request failed for id {anilist_id}: {e}") from e

        if response.status_code == 404:
            raise NotFound(SOURCE, f"no media with id {anilist_id}")
        if response.status_code == 429:
            raise RateLimited(SOURCE, f"throttled on id {anilist_id}",
                              retry_after_delay(response.headers, 60))
        if response.status_code >= 400:
            raise TransientFailure(SOURCE, f"status {response.status_code} for id {anilist_id}")

        try:
            payload = response.json()
        except ValueError as e:
            raise MalformedResponse(SOURCE, f"invalid JSON for id {anilist_id}: {e}") from e

        media = ((payload or {}).get('data') or {}).get('Media')
        if not media:
            raise NotFound(SOURCE, f"no media with id {anilist_id}")
        return media

    def _cached_query(self, kind: str, query: str, anilist_id: int,
                      cancel: Optional[threading.Event]) -> Optional[Dict]:
        key = f"{kind}:{anilist_id}"
        cached = self.cache.get(key)
        if cached is not None:
            return cached

        try:
            media = self._query(query, anilist_id, cancel)
        except SourceError as e:
            logger.warning(f"AniList {kind} fetch failed: {e}")
            return None

        self.cache.put(key, media)
        return media

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def get_media(self, anilist_id: int,
                  cancel: Optional[threading.Event] = None) -> Optional[AniListMedia]:
        """Full media entry with relation edges, or None"""
        payload = self._cached_query('media', MEDIA_QUERY, anilist_id, cancel)
        if payload is None:
            return None
        try:
            return AniListMedia.from_payload(payload)
        except (KeyError, TypeError) as e:
            logger.error(f"AniList media payload for {anilist_id} is malformed: {e}")
            self.cache.invalidate(f"media:{anilist_id}")
            return None

    def get_season_detail(self, anilist_id: int,
                          cancel: Optional[threading.Event] = None) -> Optional[SeasonDetail]:
        """An entry viewed as one season, with its best TV sequel id"""
        payload = self._cached_query('season', SEASON_QUERY, anilist_id, cancel)
        if payload is None:
            return None
        try:
            media = AniListMedia.from_payload(payload)
        except (KeyError, TypeError) as e:
            logger.error(f"AniList season payload for {anilist_id} is malformed: {e}")
            self.cache.invalidate(f"season:{anilist_id}")
            return None

        sequel = select_preferred_relation(media.relations, 'SEQUEL', tv_only=True)
        return SeasonDetail(
            anilist_id=media.id,
            mal_id=media.id_mal,
            title_romaji=media.title_romaji,
            title_english=media.title_english,
            title_native=media.title_native,
            description=media.description,
            genres=media.genres,
            average_score=media.average_score,
            start_date=media.start_date,
            end_date=media.end_date,
            status=media.status,
            episodes=media.episodes,
            sequel_id=sequel.node.id if sequel else None,
            format=media.format,
            type=media.type,
            relations=media.relations,
        )

    def get_people(self, anilist_id: int,
                   cancel: Optional[threading.Event] = None) -> List[Person]:
        """Japanese voice actors and staff; empty list on any failure"""
        key = f"people:{anilist_id}"
        cached = self.cache.get(key)
        if cached is not None:
            return [Person.from_dict(p) for p in cached]

        try:
            media = self._query(PEOPLE_QUERY, anilist_id, cancel)
        except SourceError as e:
            logger.warning(f"AniList people fetch failed: {e}")
            return []

        people = parse_people(media)
        self.cache.put(key, [p.to_dict() for p in people])
        return people

    # ------------------------------------------------------------------
    # Root memo (written by the graph resolver)
    # ------------------------------------------------------------------

    def get_cached_root(self, anilist_id: int) -> Optional[int]:
        return self.cache.get(f"root:{anilist_id}")

    def store_root(self, anilist_id: int, root_id: int):
        self.cache.put(f"root:{anilist_id}", root_id)

    def get_cache_stats(self) -> Dict:
        stats = self.cache.get_cache_stats()
        stats['requests'] = self.requests_made
        stats.update(self.limiter.stats())
        return stats
