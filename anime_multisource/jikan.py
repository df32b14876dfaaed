#!/usr/bin/env python3
"""
Jikan v4 client (MyAnimeList encyclopedia mirror)

Jikan is community-run: requests are spaced at least 2.5 s apart and
throttling responses (429/503) are retried up to 3 attempts, backing off
min(30 * attempt, 90) seconds (or the server's Retry-After) plus jitter.
"""

import logging
import random
import threading
from typing import Optional, List, Dict, Callable

import requests

from anime_multisource.cache import ResponseCache
from anime_multisource.constants import (
    JIKAN_BASE_URL, JIKAN_CACHE_TTL, JIKAN_MAX_ATTEMPTS, JIKAN_RETRY_STATUSES,
    JIKAN_JITTER_MS, REQUEST_TIMEOUT, USER_AGENT,
)
from anime_multisource.errors import (
    SourceError, NotFound, RateLimited, TransientFailure, MalformedResponse,
)
from anime_multisource.models import JikanAnime, Person
from anime_multisource.ratelimit import MinSpacingLimiter, pause, check_cancelled, retry_after_delay

logger = logging.getLogger(__name__)

SOURCE = 'Jikan'


def backoff_delay(attempt: int, headers=None,
                  jitter: Callable[[int, int], int] = random.randint) -> float:
    """Seconds to wait after a throttled attempt (1-based)"""
    base = retry_after_delay(headers, float(min(30 * attempt, 90)))
    return base + jitter(*JIKAN_JITTER_MS) / 1000.0


def parse_characters(data: Optional[List[Dict]]) -> List[Person]:
    """Voice actors from /anime/{id}/characters, role "Voice - <character>" """
    people = []
    for entry in data or []:
        character = (entry or {}).get('character')
        if not character:
            continue
        for va in entry.get('voice_actors') or []:
            person = va.get('person') or {}
            image = ((person.get('images') or {}).get('webp') or {}).get('image_url')
            people.append(Person(
                name=person.get('name') or 'Unknown VA',
                role=f"Voice - {character.get('name')}",
                image_url=image,
            ))
    return people


class JikanClient:
    """Spaced, retrying access to Jikan"""

    def __init__(self,
                 session: Optional[requests.Session] = None,
                 cache: Optional[ResponseCache] = None,
                 limiter: Optional[MinSpacingLimiter] = None,
                 base_url: str = JIKAN_BASE_URL,
                 jitter: Callable[[int, int], int] = random.randint):
        self.session = session or requests.Session()
        self.cache = cache or ResponseCache('jikan', JIKAN_CACHE_TTL)
        self.limiter = limiter or MinSpacingLimiter(name=SOURCE)
        self.base_url = base_url.rstrip('/')
        self.jitter = jitter
        self.requests_made = 0

    def _get(self, path: str, context: str,
             cancel: Optional[threading.Event] = None) -> Dict:
        """GET with spacing and throttle retries; returns parsed JSON"""
        url = f"{self.base_url}{path}"

        for attempt in range(1, JIKAN_MAX_ATTEMPTS + 1):
            self.limiter.acquire(cancel)
            check_cancelled(cancel, SOURCE)

            self.requests_made += 1
            try:
                response = self.session.get(
                    url,
                    headers={'Accept': 'application/json', 'User-Agent': USER_AGENT},
                    timeout=REQUEST_TIMEOUT,
                )
            except requests.RequestException as e:
                raise TransientFailure(SOURCE, f"{context} request failed: {e}") from e

            if response.status_code in JIKAN_RETRY_STATUSES:
                if attempt == JIKAN_MAX_ATTEMPTS:
                    break
                delay = backoff_delay(attempt, response.headers, self.jitter)
                logger.warning(f"Jikan rate limited for {context} (status {response.status_code}); "
                               f"backing off {delay * 1000:.0f} ms before retry {attempt}")
                pause(delay, cancel, self.limiter.sleep, SOURCE)
                continue

            if response.status_code == 404:
                raise NotFound(SOURCE, f"{context} not found")
            if response.status_code >= 400:
                raise TransientFailure(SOURCE, f"{context} returned status {response.status_code}")

            try:
                payload = response.json()
            except ValueError as e:
                raise MalformedResponse(SOURCE, f"{context} returned invalid JSON: {e}") from e
            if not isinstance(payload, dict):
                raise MalformedResponse(SOURCE, f"{context} returned {type(payload).__name__}, expected an object")
            return payload

        logger.warning(f"Jikan request for {context} to {url} failed after retries")
        raise RateLimited(SOURCE, f"{context} still throttled after {JIKAN_MAX_ATTEMPTS} attempts")

    def get_anime(self, mal_id: int,
                  cancel: Optional[threading.Event] = None) -> Optional[JikanAnime]:
        """Full anime entry, or None"""
        key = f"anime:{mal_id}"
        payload = self.cache.get(key)
        if payload is None:
            try:
                payload = self._get(f"/anime/{mal_id}", f"anime {mal_id}", cancel).get('data')
            except SourceError as e:
                logger.warning(f"Jikan anime fetch failed: {e}")
                return None
            if not payload:
                return None
            self.cache.put(key, payload)

        try:
            return JikanAnime.from_payload(payload)
        except (KeyError, TypeError) as e:
            logger.error(f"Jikan payload for MAL {mal_id} is malformed: {e}")
            self.cache.invalidate(key)
            return None

    def get_characters(self, mal_id: int,
                       cancel: Optional[threading.Event] = None) -> List[Person]:
        """Voice actors for an entry; [] on any failure"""
        key = f"characters:{mal_id}"
        payload = self.cache.get(key)
        if payload is None:
            try:
                payload = self._get(f"/anime/{mal_id}/characters", f"characters {mal_id}", cancel).get('data')
            except SourceError as e:
                logger.warning(f"Jikan characters fetch failed: {e}")
                return []
            if payload is None:
                return []
            self.cache.put(key, payload)

        return parse_characters(payload)

    def get_cache_stats(self) -> Dict:
        stats = self.cache.get_cache_stats()
        stats['requests'] = self.requests_made
        stats.update(self.limiter.stats())
        return stats
