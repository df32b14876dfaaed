#!/usr/bin/env python3
"""
AniDB HTTP API client (tag catalog)

AniDB is the strictest catalog: a daily soft cap slows request spacing, and
any throttling signal (403/429/503 or a ban notice in the body) pauses all
requests until the ban expires. While paused, get_tags() answers [] without
touching the network. Successful tag lists are cached for 5 days.
"""

import gzip
import logging
import threading
import xml.etree.ElementTree as ET
from typing import Optional, List, Dict

import requests

from anime_multisource.cache import ResponseCache
from anime_multisource.constants import (
    ANIDB_URL, ANIDB_CACHE_TTL, ANIDB_DEFAULT_RATE_LIMIT_MS, ANIDB_BAN_BACKOFF,
    ANIDB_RATE_LIMIT_STATUSES, ANIDB_BAN_PHRASES, REQUEST_TIMEOUT, USER_AGENT,
)
from anime_multisource.errors import (
    SourceError, Banned, TransientFailure, MalformedResponse, NotFound,
)
from anime_multisource.ratelimit import AniDbRateLimiter, BanState, check_cancelled, retry_after_delay
from anime_multisource.tags import TagFilter

logger = logging.getLogger(__name__)

SOURCE = 'AniDB'
GZIP_MAGIC = b'\x1f\x8b'


def decode_body(content: bytes) -> str:
    """Decompress gzip bodies that arrive without a Content-Encoding header"""
    if content[:2] == GZIP_MAGIC:
        try:
            content = gzip.decompress(content)
        except (OSError, EOFError) as e:
            raise MalformedResponse(SOURCE, f"could not decompress gzipped body: {e}") from e
    return content.decode('utf-8', errors='replace')


def contains_ban_notice(body: str) -> bool:
    """True for non-<anime> bodies that read like a throttling notice"""
    if not body or not body.strip():
        return False
    lowered = body.lower()
    if '<anime' in lowered:
        return False
    return any(phrase in lowered for phrase in ANIDB_BAN_PHRASES)


def parse_tag_names(xml_content: str) -> List[str]:
    """Tag names from an <anime> document, in document order, no duplicates"""
    try:
        root = ET.fromstring(xml_content)
    except ET.ParseError as e:
        raise MalformedResponse(SOURCE, f"invalid XML: {e}") from e

    if root.tag == 'error':
        raise NotFound(SOURCE, (root.text or 'error response').strip())
    if root.tag != 'anime':
        raise MalformedResponse(SOURCE, f"unexpected root element <{root.tag}>")

    names = []
    seen = set()
    tags_element = root.find('tags')
    for tag in (tags_element.findall('tag') if tags_element is not None else []):
        name = tag.find('name')
        if name is None or not name.text or not name.text.strip():
            continue
        text = name.text.strip()
        if text not in seen:
            seen.add(text)
            names.append(text)
    return names


class AniDbClient:
    """Soft-capped, ban-aware, cached access to AniDB tags"""

    def __init__(self,
                 client_name: str,
                 client_version: str,
                 session: Optional[requests.Session] = None,
                 cache: Optional[ResponseCache] = None,
                 limiter: Optional[AniDbRateLimiter] = None,
                 ban_state: Optional[BanState] = None,
                 tag_filter: Optional[TagFilter] = None,
                 rate_limit_ms: int = ANIDB_DEFAULT_RATE_LIMIT_MS,
                 url: str = ANIDB_URL):
        self.client_name = client_name
        self.client_version = client_version
        self.session = session or requests.Session()
        self.cache = cache or ResponseCache('anidb', ANIDB_CACHE_TTL)
        self.limiter = limiter or AniDbRateLimiter(rate_limit_ms)
        self.ban_state = ban_state or BanState(SOURCE)
        self.tag_filter = tag_filter or TagFilter()
        self.url = url
        self.requests_made = 0

    def get_tags(self, anidb_id: int, cancel: Optional[threading.Event] = None) -> List[str]:
        """Filtered tag names for one AniDB entry; [] when unavailable"""
        key = f"tags:{anidb_id}"
        cached = self.cache.get(key)
        if cached is not None:
            return list(cached)

        remaining, reason = self.ban_state.remaining()
        if remaining > 0:
            logger.warning(f"AniDB requests paused for another {remaining / 60:.1f} minutes because {reason}")
            return []

        try:
            raw_tags = self._fetch_tag_names(anidb_id, cancel)
        except Banned as e:
            logger.warning(f"AniDB fetch for {anidb_id} hit a ban: {e}")
            return []
        except SourceError as e:
            logger.warning(f"AniDB fetch failed for {anidb_id}: {e}")
            return []

        if not raw_tags:
            logger.warning(f"No tags found in AniDB response for ID {anidb_id}")
            return []

        tags = self.tag_filter.filter_tags(raw_tags)
        self.tag_filter.log_filtered_tags(raw_tags, tags)

        self.cache.put(key, list(tags))
        logger.info(f"AniDB cache stored for ID {anidb_id} with {len(tags)} tags")
        return tags

    def _fetch_tag_names(self, anidb_id: int, cancel: Optional[threading.Event]) -> List[str]:
        self.limiter.acquire(cancel)
        check_cancelled(cancel, SOURCE)

        params = {
            'request': 'anime',
            'client': self.client_name,
            'clientver': self.client_version,
            'protover': 1,
            'aid': anidb_id,
        }
        logger.debug(f"Fetching AniDB tags for {anidb_id}")

        self.requests_made += 1
        try:
            response = self.session.get(
                self.url,
                params=params,
                headers={'User-Agent': USER_AGENT, 'Accept-Encoding': 'gzip'},
                timeout=REQUEST_TIMEOUT,
            )
        except requests.RequestException as e:
            raise TransientFailure(SOURCE, f"request failed: {e}") from e

        if response.status_code in ANIDB_RATE_LIMIT_STATUSES:
            backoff = retry_after_delay(response.headers, ANIDB_BAN_BACKOFF)
            reason = f"rate-limit response ({response.status_code})"
            self.ban_state.ban(reason, backoff)
            raise Banned(SOURCE, reason, backoff)

        if response.status_code >= 400:
            raise TransientFailure(SOURCE, f"status {response.status_code}")

        body = decode_body(response.content)
        if contains_ban_notice(body):
            logger.warning(f"AniDB response looked like a ban/limit notice. First 160 chars: {body[:160]}")
            reason = 'response contained ban/limit notice'
            self.ban_state.ban(reason, ANIDB_BAN_BACKOFF)
            raise Banned(SOURCE, reason, ANIDB_BAN_BACKOFF)

        self.limiter.record_success()
        return parse_tag_names(body)

    def get_cache_stats(self) -> Dict:
        stats = self.cache.get_cache_stats()
        stats['requests'] = self.requests_made
        stats['banned'] = self.ban_state.active
        stats.update(self.limiter.stats())
        return stats
