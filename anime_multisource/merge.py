#!/usr/bin/env python3
"""
Field-merge policy

Combines the per-catalog records chosen by the mapper and resolver into one
normalized record. Source preference for titles is a lookup table of selector
functions keyed by DataSource and field variant; everything else is a plain
function per field so each rule can be tested on its own.
"""

import logging
import re
from typing import Optional, List, Iterable, Callable, Dict

from anime_multisource.config import (
    PluginConfig, DataSource, TitleField, OriginalTitleField, RuntimeSource,
    SeasonTitleFormat, SeasonOverviewSource,
)
from anime_multisource.constants import UNKNOWN_TITLE, MIN_PEOPLE_BEFORE_FALLBACK, JIKAN_STATUS_MAP
from anime_multisource.hint import LocalHint
from anime_multisource.mapping import AnimeMapping
from anime_multisource.models import (
    AniListMedia, JikanAnime, Person, SeasonDetail, SeasonRelation, TvdbEpisode,
    NormalizedSeriesRecord, SeasonRecord, EpisodeRecord,
)
from anime_multisource.tags import TagFilter

logger = logging.getLogger(__name__)

DURATION_PATTERN = re.compile(r'(\d+)\s*min')


# ---------------------------------------------------------------------------
# Titles
# ---------------------------------------------------------------------------

JIKAN_TITLE_FIELDS: Dict[object, Callable[[JikanAnime], Optional[str]]] = {
    TitleField.TITLE: lambda j: j.title,
    TitleField.TITLE_ENGLISH: lambda j: j.title_english,
    TitleField.TITLE_JAPANESE: lambda j: j.title_japanese,
    OriginalTitleField.TITLE: lambda j: j.title,
    OriginalTitleField.TITLE_JAPANESE: lambda j: j.title_japanese,
}

ANILIST_TITLE_FIELDS: Dict[object, Callable[[AniListMedia], Optional[str]]] = {
    TitleField.TITLE: lambda a: a.title_romaji,
    TitleField.TITLE_ENGLISH: lambda a: a.title_english,
    TitleField.TITLE_JAPANESE: lambda a: a.title_native,
    OriginalTitleField.TITLE: lambda a: a.title_romaji,
    OriginalTitleField.TITLE_JAPANESE: lambda a: a.title_native,
}


def _from_jikan(jikan: Optional[JikanAnime], variant) -> Optional[str]:
    return JIKAN_TITLE_FIELDS[variant](jikan) if jikan else None


def _from_anilist(anilist: Optional[AniListMedia], variant) -> Optional[str]:
    return ANILIST_TITLE_FIELDS[variant](anilist) if anilist else None


TITLE_SOURCE_SELECTORS = {
    DataSource.ANILIST: lambda j, a, v: _from_anilist(a, v),
    DataSource.JIKAN: lambda j, a, v: _from_jikan(j, v),
    DataSource.EITHER: lambda j, a, v: _from_jikan(j, v) or _from_anilist(a, v),
}


def select_title(jikan: Optional[JikanAnime], anilist: Optional[AniListMedia],
                 field: TitleField, source: DataSource) -> str:
    """Preferred source/variant, then primary titles of either source, then a literal"""
    title = TITLE_SOURCE_SELECTORS[source](jikan, anilist, field)
    return (title
            or (jikan.title if jikan else None)
            or (anilist.title_romaji if anilist else None)
            or UNKNOWN_TITLE)


def select_original_title(jikan: Optional[JikanAnime], anilist: Optional[AniListMedia],
                          field: OriginalTitleField, source: DataSource) -> str:
    title = TITLE_SOURCE_SELECTORS[source](jikan, anilist, field)
    return (title
            or (jikan.title_japanese if jikan else None)
            or (anilist.title_native if anilist else None)
            or '')


# ---------------------------------------------------------------------------
# Scalar fields
# ---------------------------------------------------------------------------

def is_tv_entry(jikan: Optional[JikanAnime]) -> bool:
    """Jikan entries count as series data only when typed TV (or untyped)"""
    if jikan is None:
        return False
    if not jikan.type or not jikan.type.strip():
        return True
    return jikan.type.strip().upper().startswith('TV')


def parse_jikan_duration(duration: Optional[str]) -> Optional[int]:
    """'24 min per ep' -> 24"""
    if not duration:
        return None
    match = DURATION_PATTERN.search(duration)
    return int(match.group(1)) if match else None


def select_runtime(jikan: Optional[JikanAnime], anilist: Optional[AniListMedia],
                   source: RuntimeSource) -> Optional[int]:
    from_anilist = anilist.duration if anilist and anilist.duration else None
    from_jikan = parse_jikan_duration(jikan.duration) if jikan else None
    if source == RuntimeSource.ANILIST:
        return from_anilist or from_jikan
    return from_jikan or from_anilist


def community_rating(jikan: Optional[JikanAnime], anilist: Optional[AniListMedia]) -> Optional[float]:
    """Jikan 0-10 score, else AniList 0-100 average / 10"""
    if jikan is not None and jikan.score is not None:
        return float(jikan.score)
    if anilist is not None and anilist.average_score is not None:
        return anilist.average_score / 10.0
    return None


def map_status(status: Optional[str]) -> str:
    if not status:
        return 'Unknown'
    return JIKAN_STATUS_MAP.get(status.strip().lower(), status)


def _date_part(value: Optional[str]) -> Optional[str]:
    return value[:10] if value else None


def _dedupe(values: Iterable[str]) -> List[str]:
    """Case-insensitive dedupe keeping the first spelling seen"""
    seen = set()
    result = []
    for value in values:
        if not value or not value.strip():
            continue
        value = value.strip()
        if value.lower() in seen:
            continue
        seen.add(value.lower())
        result.append(value)
    return result


def get_studios(jikan: Optional[JikanAnime]) -> List[str]:
    return _dedupe(jikan.studios) if jikan else []


# ---------------------------------------------------------------------------
# Lists
# ---------------------------------------------------------------------------

def combine_genres(jikan: Optional[JikanAnime], anilist: Optional[AniListMedia],
                   approved: Optional[Iterable[str]] = None) -> List[str]:
    """Union of Jikan genre-like fields and AniList genres, filtered by the allow-list"""
    collected = []
    if jikan is not None:
        collected.extend(jikan.genres)
        collected.extend(jikan.themes)
        collected.extend(jikan.explicit_genres)
        collected.extend(jikan.demographics)
    if anilist is not None:
        collected.extend(anilist.genres)

    genres = _dedupe(collected)
    approved_set = {g.strip().lower() for g in (approved or []) if g and g.strip()}
    if approved_set:
        genres = [g for g in genres if g.lower() in approved_set]
    return genres


def combine_tags(tag_lists: Iterable[List[str]], tag_filter: Optional[TagFilter] = None) -> List[str]:
    """Join per-entry tag lists, drop excluded categories, dedupe"""
    tag_filter = tag_filter or TagFilter()
    joined = [tag for tags in tag_lists for tag in (tags or [])]
    return tag_filter.filter_tags(joined)


def merge_people(primary: List[Person], fallback: Optional[List[Person]] = None,
                 minimum: int = MIN_PEOPLE_BEFORE_FALLBACK) -> List[Person]:
    """Primary list first; fallback entries added only when primary is short"""
    people = list(primary or [])
    if len(people) >= minimum or not fallback:
        return people

    existing = {(p.name, p.role) for p in people}
    for person in fallback:
        if (person.name, person.role) in existing:
            continue
        existing.add((person.name, person.role))
        people.append(person)
    return people


# ---------------------------------------------------------------------------
# Records
# ---------------------------------------------------------------------------

def _str_id(value) -> Optional[str]:
    return str(value) if value is not None else None


def merge(hint: LocalHint,
          row: AnimeMapping,
          anilist: Optional[AniListMedia],
          jikan: Optional[JikanAnime],
          config: PluginConfig,
          tags: Optional[List[str]] = None,
          people: Optional[List[Person]] = None,
          root_id: Optional[int] = None,
          mal_id: Optional[int] = None,
          seasons: Optional[List[SeasonRelation]] = None,
          backdrops: Optional[List[str]] = None) -> NormalizedSeriesRecord:
    """Build the best-effort series record from whatever sources answered"""
    primary_jikan = jikan if is_tv_entry(jikan) else None
    if jikan is not None and primary_jikan is None:
        logger.warning(f"Ignoring Jikan metadata for '{hint.title}' because type '{jikan.type}' is not TV")

    record = NormalizedSeriesRecord(
        title=select_title(primary_jikan, anilist, config.title_field, config.title_data_source),
        original_title=select_original_title(primary_jikan, anilist,
                                             config.original_title_field,
                                             config.original_title_data_source),
        year=hint.year or (anilist.year if anilist else None),
        tvdb_id=hint.tvdb_id or _str_id(row.tvdb_id),
        imdb_id=hint.imdb_id or row.imdb_id,
        themoviedb_id=_str_id(row.themoviedb_id),
        anidb_id=_str_id(row.anidb_id),
        anilist_id=_str_id(root_id if root_id is not None else row.anilist_id),
        anisearch_id=_str_id(row.anisearch_id),
        kitsu_id=_str_id(row.kitsu_id),
        mal_id=_str_id(mal_id if mal_id is not None else row.mal_id),
        animeplanet_id=row.animeplanet_id,
        type=row.type,
        status=map_status(primary_jikan.status if primary_jikan else None),
        community_rating=community_rating(primary_jikan, anilist),
        overview=(primary_jikan.synopsis if primary_jikan else None) or (anilist.description if anilist else None),
        release_date=(_date_part(primary_jikan.aired_from) if primary_jikan else None)
            or (anilist.start_date if anilist else None),
        end_date=(_date_part(primary_jikan.aired_to) if primary_jikan else None)
            or (anilist.end_date if anilist else None),
        runtime=select_runtime(primary_jikan, anilist, config.runtime_data_source),
        parental_rating=primary_jikan.rating if primary_jikan else None,
        genres=combine_genres(primary_jikan, anilist, config.approved_genres),
        studios=get_studios(primary_jikan),
        tags=list(tags or []),
        people=list(people or []),
        seasons=list(seasons or []),
        backdrops=list(backdrops or []),
    )

    logger.info(f"Populated metadata for {record.title} with {len(record.genres)} genres, "
                f"{len(record.studios)} studios, {len(record.people)} people, {len(record.tags)} tags")
    return record


def numbered_season_name(season_number: int) -> str:
    return 'Specials' if season_number <= 0 else f"Season {season_number}"


def season_sort_name(season_number: int) -> str:
    return f"Season {season_number:02d}"


def season_name(detail: Optional[SeasonDetail], season_number: int,
                title_format: SeasonTitleFormat, fallback_name: Optional[str] = None) -> str:
    if title_format == SeasonTitleFormat.NUMBERED or detail is None:
        return numbered_season_name(season_number)
    return (detail.title_english
            or detail.title_romaji
            or detail.title_native
            or ('Specials' if season_number == 0 else fallback_name or numbered_season_name(season_number)))


def uses_jikan_overview(source: SeasonOverviewSource) -> bool:
    return source in (SeasonOverviewSource.JIKAN, SeasonOverviewSource.PREFER_JIKAN)


def build_season_record(detail: SeasonDetail,
                        season_number: int,
                        config: PluginConfig,
                        jikan: Optional[JikanAnime] = None,
                        tags: Optional[List[str]] = None,
                        fallback_name: Optional[str] = None) -> SeasonRecord:
    """Season record from its AniList entry (overview optionally from Jikan)"""
    name = season_name(detail, season_number, config.season_title_format, fallback_name)

    overview = None
    if uses_jikan_overview(config.season_overview_source) and jikan is not None:
        overview = jikan.synopsis
    if not overview or not overview.strip():
        overview = detail.description

    start = detail.start_date
    rating = detail.average_score / 10.0 if detail.average_score is not None else None

    return SeasonRecord(
        season_number=season_number,
        name=name,
        sort_name=season_sort_name(season_number),
        anilist_id=detail.anilist_id,
        mal_id=detail.mal_id,
        original_title=detail.title_english or detail.title_romaji or detail.title_native or name,
        overview=overview,
        premiere_date=start,
        production_year=int(start[:4]) if start else None,
        community_rating=rating,
        genres=list(detail.genres),
        tags=list(tags or []),
    )


def fallback_season_record(season_number: int) -> SeasonRecord:
    """Numbered placeholder used when no AniList entry backs the season"""
    name = numbered_season_name(season_number)
    return SeasonRecord(
        season_number=season_number,
        name=name,
        sort_name=season_sort_name(season_number),
        original_title=name,
    )


def build_episode_record(episode: TvdbEpisode, translation: Optional[Dict] = None) -> EpisodeRecord:
    """English translation wins for name/overview; native name kept as original title"""
    translation = translation or {}
    aired = episode.aired[:10] if episode.aired else None
    production_year = None
    if aired and aired[:4].isdigit():
        production_year = int(aired[:4])

    return EpisodeRecord(
        tvdb_id=episode.id,
        name=translation.get('name') or episode.name,
        season_number=episode.season_number,
        episode_number=episode.number,
        original_title=episode.name,
        overview=translation.get('overview') or episode.overview,
        premiere_date=aired,
        production_year=production_year,
        image_url=episode.image or None,
    )
