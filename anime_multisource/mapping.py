#!/usr/bin/env python3
"""
Cross-reference table (Fribb anime-lists) with point lookups

One row per known title, columns = that title's ids in each catalog. The table
is downloaded whole and indexed by TVDB id, IMDb id and AniList id. A refresh
builds new dicts and swaps them in with a single assignment, so concurrent
readers always see either the old or the new snapshot.
"""

import logging
import threading
import time
from dataclasses import dataclass, fields, asdict
from typing import Optional, Dict, List, Tuple, Any, Callable

import requests

from anime_multisource.constants import ANIME_LISTS_URL, ANIME_LIST_TTL, REQUEST_TIMEOUT
from anime_multisource.errors import MappingRefreshError, ConfigurationInvalid

logger = logging.getLogger(__name__)

LOOKUP_KINDS = ('tvdb', 'imdb', 'anilist')

# Row fields stored as strings even though some catalogs use digits
_STRING_FIELDS = {'imdb_id', 'type', 'animeplanet_id', 'notify_moe_id'}


def _parse_id(value: Any) -> Optional[int]:
    """Accept JSON numbers or numeric strings; anything else is None"""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        return int(value) if value.is_integer() else None
    if isinstance(value, str):
        value = value.strip()
        if value.isdigit():
            return int(value)
    return None


@dataclass(frozen=True)
class AnimeMapping:
    """One cross-reference row"""
    tvdb_id: Optional[int] = None
    imdb_id: Optional[str] = None
    anisearch_id: Optional[int] = None
    themoviedb_id: Optional[int] = None
    kitsu_id: Optional[int] = None
    mal_id: Optional[int] = None
    type: Optional[str] = None
    anilist_id: Optional[int] = None
    anidb_id: Optional[int] = None
    animeplanet_id: Optional[str] = None
    notify_moe_id: Optional[str] = None
    livechart_id: Optional[int] = None

    @classmethod
    def from_payload(cls, row: Dict) -> 'AnimeMapping':
        values = {}
        for f in fields(cls):
            # The upstream file calls the TVDB column "thetvdb_id"
            raw = row.get('thetvdb_id') if f.name == 'tvdb_id' else row.get(f.name)
            if f.name in _STRING_FIELDS:
                values[f.name] = str(raw).strip() if raw not in (None, '') else None
            else:
                values[f.name] = _parse_id(raw)
        return cls(**values)

    def to_dict(self) -> Dict:
        return asdict(self)


def build_indices(rows: List[AnimeMapping]) -> Tuple[Dict[str, AnimeMapping],
                                                     Dict[str, AnimeMapping],
                                                     Dict[int, AnimeMapping]]:
    """Index rows by tvdb (str), imdb (str) and anilist (int); first row wins"""
    by_tvdb: Dict[str, AnimeMapping] = {}
    by_imdb: Dict[str, AnimeMapping] = {}
    by_anilist: Dict[int, AnimeMapping] = {}

    for row in rows:
        if row.tvdb_id is not None:
            by_tvdb.setdefault(str(row.tvdb_id), row)
        if row.imdb_id:
            by_imdb.setdefault(row.imdb_id, row)
        if row.anilist_id is not None:
            by_anilist.setdefault(row.anilist_id, row)

    return by_tvdb, by_imdb, by_anilist


class AnimeListMapper:
    """Loads, refreshes and queries the cross-reference table"""

    def __init__(self,
                 session: Optional[requests.Session] = None,
                 url: str = ANIME_LISTS_URL,
                 ttl: float = ANIME_LIST_TTL,
                 clock: Callable[[], float] = time.time):
        self.session = session or requests.Session()
        self.url = url
        self.ttl = ttl
        self.clock = clock
        self._indices = ({}, {}, {})
        self.last_updated: Optional[float] = None
        self._refresh_lock = threading.Lock()

    def refresh(self):
        """
        Download the full table and swap in fresh indices.

        Raises MappingRefreshError on network or parse failure; the previous
        snapshot stays in place.
        """
        logger.info(f"Loading anime lists from {self.url}")
        try:
            response = self.session.get(self.url, timeout=REQUEST_TIMEOUT)
            response.raise_for_status()
            payload = response.json()
        except (requests.RequestException, ValueError) as e:
            logger.error(f"Failed to load anime lists: {e}")
            raise MappingRefreshError(f"could not fetch cross-reference table: {e}") from e

        if not isinstance(payload, list):
            logger.error("Anime lists payload is not a JSON array")
            raise MappingRefreshError("cross-reference table is not a JSON array")

        rows = [AnimeMapping.from_payload(row) for row in payload if isinstance(row, dict)]
        indices = build_indices(rows)

        # Single assignment: readers see old or new, never half of each
        self._indices = indices
        self.last_updated = self.clock()

        logger.info(f"Loaded {len(rows)} anime mappings with {len(indices[0])} TVDB entries, "
                    f"{len(indices[1])} IMDb entries and {len(indices[2])} AniList entries")

    @property
    def is_loaded(self) -> bool:
        return any(self._indices)

    def is_stale(self) -> bool:
        if not self.is_loaded or self.last_updated is None:
            return True
        return self.clock() - self.last_updated >= self.ttl

    def ensure_loaded(self):
        """Refresh only when empty or older than the TTL"""
        if not self.is_stale():
            return
        with self._refresh_lock:
            if self.is_stale():
                self.refresh()

    def lookup(self, kind: str, value) -> Optional[AnimeMapping]:
        """Return the row whose `kind` id equals value, or None"""
        by_tvdb, by_imdb, by_anilist = self._indices

        if kind == 'tvdb':
            return by_tvdb.get(str(value).strip()) if value not in (None, '') else None
        if kind == 'imdb':
            return by_imdb.get(str(value).strip()) if value else None
        if kind == 'anilist':
            anilist_id = _parse_id(value)
            return by_anilist.get(anilist_id) if anilist_id is not None else None

        raise ConfigurationInvalid(f"Unknown lookup kind '{kind}' (expected one of {', '.join(LOOKUP_KINDS)})")

    def get_stats(self) -> Dict:
        by_tvdb, by_imdb, by_anilist = self._indices
        return {
            'tvdb_entries': len(by_tvdb),
            'imdb_entries': len(by_imdb),
            'anilist_entries': len(by_anilist),
            'last_updated': self.last_updated,
        }
