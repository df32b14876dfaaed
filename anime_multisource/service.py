#!/usr/bin/env python3
"""
Resolution service

Wires the mapper, source clients, graph resolver and merge rules together:

    hint -> cross-reference row -> pinned root (and season)
         -> catalog payloads through the caches -> merged record

Client failures are already mapped to None/[] inside each client, so only a
failed mapping refresh (MappingRefreshError) or an unknown series
(ResolutionNotFound) reach the caller. Cancellation propagates as
RequestCancelled.
"""

import logging
import threading
from concurrent.futures import ThreadPoolExecutor
from pathlib import Path
from typing import Optional, List, Dict

import requests

from anime_multisource.anidb import AniDbClient
from anime_multisource.anilist import AniListClient
from anime_multisource.artwork import select_backdrops
from anime_multisource.cache import PersistentCache
from anime_multisource.config import PluginConfig, SeasonTitleFormat
from anime_multisource.constants import PERSISTENT_CACHE_FILENAME, MIN_PEOPLE_BEFORE_FALLBACK
from anime_multisource.errors import ResolutionNotFound, MappingRefreshError
from anime_multisource.hint import LocalHint
from anime_multisource.jikan import JikanClient
from anime_multisource.mapping import AnimeListMapper, AnimeMapping
from anime_multisource.merge import (
    merge, merge_people, combine_tags, build_season_record, fallback_season_record,
    build_episode_record, uses_jikan_overview,
)
from anime_multisource.models import (
    NormalizedSeriesRecord, SeasonRecord, EpisodeRecord, SeasonDetail, Person,
)
from anime_multisource.overrides import GraphOverrides, load_overrides
from anime_multisource.resolver import GraphResolver
from anime_multisource.tags import TagFilter
from anime_multisource.tvdb import TvdbClient

logger = logging.getLogger(__name__)


class AnimeMultiSourceService:
    """Resolves series, seasons and episodes across the anime catalogs"""

    def __init__(self,
                 config: Optional[PluginConfig] = None,
                 session: Optional[requests.Session] = None,
                 mapper: Optional[AnimeListMapper] = None,
                 anilist: Optional[AniListClient] = None,
                 anidb: Optional[AniDbClient] = None,
                 jikan: Optional[JikanClient] = None,
                 tvdb: Optional[TvdbClient] = None,
                 overrides: Optional[GraphOverrides] = None,
                 data_dir: Optional[Path] = None):
        self.config = config or PluginConfig()
        session = session or requests.Session()
        self.tag_filter = TagFilter()

        self.mapper = mapper or AnimeListMapper(session)
        self.anilist = anilist or AniListClient(session, max_per_minute=self.config.anilist_max_per_minute)
        self.anidb = anidb or AniDbClient(
            self.config.anidb_client_name,
            self.config.anidb_client_version,
            session=session,
            tag_filter=self.tag_filter,
            rate_limit_ms=self.config.anidb_rate_limit_ms,
        )
        self.jikan = jikan or JikanClient(session)
        self.tvdb = tvdb or TvdbClient(self.config.tvdb_api_key, session)

        self.overrides = overrides or load_overrides(self.config.overrides_path)
        self.resolver = GraphResolver(self.anilist, self.overrides)

        data_dir = data_dir or self.config.data_dir
        self.persistent: Optional[PersistentCache] = None
        if data_dir:
            self.persistent = PersistentCache(Path(data_dir) / PERSISTENT_CACHE_FILENAME)
            for cache in (self.anilist.cache, self.anidb.cache, self.jikan.cache,
                          self.tvdb.episode_cache, self.tvdb.series_cache):
                self.persistent.register(cache)

    # ------------------------------------------------------------------
    # Series
    # ------------------------------------------------------------------

    def _lookup_row(self, hint: LocalHint) -> Optional[AnimeMapping]:
        if hint.tvdb_id:
            row = self.mapper.lookup('tvdb', hint.tvdb_id)
            if row is not None:
                return row
        if hint.imdb_id:
            return self.mapper.lookup('imdb', hint.imdb_id)
        return None

    def resolve_series(self, hint: LocalHint,
                       cancel: Optional[threading.Event] = None) -> NormalizedSeriesRecord:
        """
        Full series record for a local hint.

        Raises:
            ResolutionNotFound: hint has no usable id or no cross-reference row
            MappingRefreshError: the cross-reference table could not be loaded
        """
        if hint is None or not hint.has_identifier:
            raise ResolutionNotFound("Hint carries neither a TVDB nor an IMDb id")

        self.mapper.ensure_loaded()

        row = self._lookup_row(hint)
        if row is None:
            logger.warning(f"No cross-reference row for '{hint.title}' "
                           f"(tvdb={hint.tvdb_id}, imdb={hint.imdb_id})")
            raise ResolutionNotFound(f"No anime mapping for tvdb={hint.tvdb_id} imdb={hint.imdb_id}")

        root_id = None
        if row.anilist_id is not None:
            root_id = self.resolver.resolve_root(row.anilist_id, hint.year, cancel)
            if root_id != row.anilist_id:
                root_row = self.mapper.lookup('anilist', root_id)
                if root_row is not None:
                    logger.info(f"Re-mapped '{hint.title}' from AniList {row.anilist_id} to root {root_id}")
                    row = root_row

        media = self.anilist.get_media(root_id, cancel) if root_id is not None else None
        mal_id = (media.id_mal if media and media.id_mal else None) or row.mal_id
        jikan = self.jikan.get_anime(mal_id, cancel) if mal_id else None
        seasons = self.resolver.get_season_relations(media)

        with ThreadPoolExecutor(max_workers=2) as pool:
            tags_future = pool.submit(self._franchise_tags, row, root_id, cancel)
            people_future = pool.submit(self._people, root_id, mal_id, cancel)
            tags = tags_future.result()
            people = people_future.result()

        backdrops = self._backdrops(hint.tvdb_id or row.tvdb_id, cancel)

        return merge(hint, row, media, jikan, self.config,
                     tags=tags, people=people, root_id=root_id, mal_id=mal_id,
                     seasons=seasons, backdrops=backdrops)

    def _franchise_tags(self, row: AnimeMapping, root_id: Optional[int],
                        cancel: Optional[threading.Event]) -> List[str]:
        """AniDB tags of the root entry plus every season along its sequel chain"""
        if not self.config.enable_anidb_tags:
            return []

        anidb_ids = []
        if row.anidb_id is not None:
            anidb_ids.append(row.anidb_id)
        chain = self.resolver.get_season_chain(root_id, cancel) if root_id is not None else []
        for season_id in chain[1:]:
            season_row = self.mapper.lookup('anilist', season_id)
            if season_row is not None and season_row.anidb_id is not None \
                    and season_row.anidb_id not in anidb_ids:
                anidb_ids.append(season_row.anidb_id)

        if not anidb_ids:
            return []

        tag_lists = [self.anidb.get_tags(anidb_id, cancel) for anidb_id in anidb_ids]
        return combine_tags(tag_lists, self.tag_filter)

    def _people(self, root_id: Optional[int], mal_id: Optional[int],
                cancel: Optional[threading.Event]) -> List[Person]:
        people = self.anilist.get_people(root_id, cancel) if root_id is not None else []
        if len(people) >= MIN_PEOPLE_BEFORE_FALLBACK or not mal_id:
            return people

        logger.info(f"Only {len(people)} people from AniList; adding Jikan voice actors for MAL {mal_id}")
        return merge_people(people, self.jikan.get_characters(mal_id, cancel))

    def _backdrops(self, tvdb_id, cancel: Optional[threading.Event]) -> List[str]:
        if not tvdb_id or not self.tvdb.api_key:
            return []
        try:
            series_id = int(tvdb_id)
        except (TypeError, ValueError):
            logger.debug(f"TVDB id {tvdb_id!r} is not numeric; skipping backdrops")
            return []
        return select_backdrops(self.tvdb.get_series_extended(series_id, cancel), self.config)

    # ------------------------------------------------------------------
    # Seasons
    # ------------------------------------------------------------------

    def resolve_season(self, root_id: int, season_number: int,
                       series_mal_id: Optional[int] = None,
                       fallback_name: Optional[str] = None,
                       cancel: Optional[threading.Event] = None) -> Optional[SeasonRecord]:
        """Season record for an already-resolved root; None lets the host fall back"""
        detail = self.resolver.get_season(root_id, season_number, cancel)

        if detail is None:
            if (self.config.season_title_format == SeasonTitleFormat.NUMBERED
                    and season_number >= 0
                    and not self.overrides.should_defer_season(root_id, season_number)):
                return fallback_season_record(season_number)
            logger.info(f"No AniList entry for season {season_number} of root {root_id}")
            return None

        jikan = None
        if uses_jikan_overview(self.config.season_overview_source):
            mal_id = detail.mal_id or series_mal_id
            if mal_id:
                jikan = self.jikan.get_anime(mal_id, cancel)

        tags = self._season_tags(detail, cancel)
        return build_season_record(detail, season_number, self.config, jikan, tags, fallback_name)

    def _season_tags(self, detail: SeasonDetail, cancel: Optional[threading.Event]) -> List[str]:
        if not self.config.enable_anidb_tags:
            return []
        try:
            self.mapper.ensure_loaded()
        except MappingRefreshError as e:
            logger.warning(f"Skipping season tags for AniList {detail.anilist_id}: {e}")
            return []

        row = self.mapper.lookup('anilist', detail.anilist_id)
        if row is None or row.anidb_id is None:
            return []
        return self.anidb.get_tags(row.anidb_id, cancel)

    # ------------------------------------------------------------------
    # Episodes
    # ------------------------------------------------------------------

    def resolve_episode(self, tvdb_series_id: int, season_number: int, episode_number: int,
                        cancel: Optional[threading.Event] = None) -> Optional[EpisodeRecord]:
        episode = self.tvdb.find_episode(tvdb_series_id, season_number, episode_number, cancel)
        if episode is None:
            logger.info(f"TVDB series {tvdb_series_id} has no S{season_number:02d}E{episode_number:02d}")
            return None

        translation = self.tvdb.get_episode_translation(episode.id, 'eng', cancel)
        return build_episode_record(episode, translation)

    def get_cache_stats(self) -> Dict:
        return {
            'mapper': self.mapper.get_stats(),
            'anilist': self.anilist.get_cache_stats(),
            'anidb': self.anidb.get_cache_stats(),
            'jikan': self.jikan.get_cache_stats(),
            'tvdb': self.tvdb.get_cache_stats(),
        }
