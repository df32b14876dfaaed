#!/usr/bin/env python3
"""
Record types for catalog payloads and resolved output

Catalog payloads are cached as the raw JSON the catalog returned; these
dataclasses are built from those payloads on every read (from_payload) so the
caches never need to know about them. Output records serialize with to_dict()
for the CLI.
"""

from dataclasses import dataclass, field, asdict
from typing import Optional, List, Dict


def _format_date(date_obj: Optional[Dict]) -> Optional[str]:
    """Convert AniList {year, month, day} to 'YYYY-MM-DD' (all parts required)"""
    if not date_obj:
        return None
    year, month, day = date_obj.get('year'), date_obj.get('month'), date_obj.get('day')
    if not (year and month and day):
        return None
    return f"{year:04d}-{month:02d}-{day:02d}"


def _names(items: Optional[List[Dict]]) -> List[str]:
    return [item['name'] for item in (items or []) if item and item.get('name')]


# ---------------------------------------------------------------------------
# AniList (relation graph)
# ---------------------------------------------------------------------------

@dataclass
class MediaSummary:
    """Relation target as embedded in an edge"""
    id: int
    format: Optional[str] = None
    type: Optional[str] = None
    episodes: Optional[int] = None
    season: Optional[str] = None
    season_year: Optional[int] = None
    duration: Optional[int] = None
    title_romaji: Optional[str] = None
    title_english: Optional[str] = None

    @classmethod
    def from_payload(cls, node: Dict) -> 'MediaSummary':
        title = node.get('title') or {}
        return cls(
            id=node['id'],
            format=node.get('format'),
            type=node.get('type'),
            episodes=node.get('episodes'),
            season=node.get('season'),
            season_year=node.get('seasonYear'),
            duration=node.get('duration'),
            title_romaji=title.get('romaji'),
            title_english=title.get('english'),
        )


@dataclass
class RelationEdge:
    relation_type: str
    node: MediaSummary

    @classmethod
    def from_payload(cls, edge: Dict) -> Optional['RelationEdge']:
        node = edge.get('node') if edge else None
        if not node or node.get('id') is None:
            return None
        return cls(
            relation_type=(edge.get('relationType') or '').upper(),
            node=MediaSummary.from_payload(node),
        )


@dataclass
class AniListMedia:
    """One AniList entry with its outgoing relation edges"""
    id: int
    id_mal: Optional[int] = None
    title_romaji: Optional[str] = None
    title_english: Optional[str] = None
    title_native: Optional[str] = None
    description: Optional[str] = None
    genres: List[str] = field(default_factory=list)
    duration: Optional[int] = None
    average_score: Optional[int] = None
    start_date: Optional[str] = None
    end_date: Optional[str] = None
    start_year: Optional[int] = None
    season_year: Optional[int] = None
    status: Optional[str] = None
    episodes: Optional[int] = None
    format: Optional[str] = None
    type: Optional[str] = None
    relations: List[RelationEdge] = field(default_factory=list)

    @classmethod
    def from_payload(cls, media: Dict) -> 'AniListMedia':
        title = media.get('title') or {}
        edges = (media.get('relations') or {}).get('edges') or []
        relations = [e for e in (RelationEdge.from_payload(edge) for edge in edges) if e]
        start = media.get('startDate') or {}
        return cls(
            id=media['id'],
            id_mal=media.get('idMal'),
            title_romaji=title.get('romaji'),
            title_english=title.get('english'),
            title_native=title.get('native'),
            description=media.get('description'),
            genres=[g for g in (media.get('genres') or []) if g],
            duration=media.get('duration'),
            average_score=media.get('averageScore'),
            start_date=_format_date(start),
            end_date=_format_date(media.get('endDate')),
            start_year=start.get('year'),
            season_year=media.get('seasonYear'),
            status=media.get('status'),
            episodes=media.get('episodes'),
            format=media.get('format'),
            type=media.get('type'),
            relations=relations,
        )

    @property
    def year(self) -> Optional[int]:
        return self.start_year or self.season_year


@dataclass
class SeasonDetail:
    """An AniList entry viewed as one season of a franchise"""
    anilist_id: int
    mal_id: Optional[int] = None
    title_romaji: Optional[str] = None
    title_english: Optional[str] = None
    title_native: Optional[str] = None
    description: Optional[str] = None
    genres: List[str] = field(default_factory=list)
    average_score: Optional[int] = None
    start_date: Optional[str] = None
    end_date: Optional[str] = None
    status: Optional[str] = None
    episodes: Optional[int] = None
    sequel_id: Optional[int] = None
    format: Optional[str] = None
    type: Optional[str] = None
    relations: List[RelationEdge] = field(default_factory=list)


@dataclass
class SeasonRelation:
    """Summary of a TV sequel of the root entry"""
    relation_type: str
    anilist_id: int
    title: Optional[str] = None
    title_english: Optional[str] = None
    season: Optional[str] = None
    season_year: Optional[int] = None
    format: Optional[str] = None
    episodes: Optional[int] = None


@dataclass
class Person:
    name: str
    role: str
    image_url: Optional[str] = None

    def to_dict(self) -> Dict:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Dict) -> 'Person':
        return cls(name=data['name'], role=data['role'], image_url=data.get('image_url'))


# ---------------------------------------------------------------------------
# Jikan (encyclopedia mirror)
# ---------------------------------------------------------------------------

@dataclass
class JikanAnime:
    mal_id: int
    title: Optional[str] = None
    title_english: Optional[str] = None
    title_japanese: Optional[str] = None
    type: Optional[str] = None
    status: Optional[str] = None
    aired_from: Optional[str] = None
    aired_to: Optional[str] = None
    rating: Optional[str] = None
    score: Optional[float] = None
    synopsis: Optional[str] = None
    duration: Optional[str] = None
    genres: List[str] = field(default_factory=list)
    explicit_genres: List[str] = field(default_factory=list)
    themes: List[str] = field(default_factory=list)
    demographics: List[str] = field(default_factory=list)
    studios: List[str] = field(default_factory=list)

    @classmethod
    def from_payload(cls, data: Dict) -> 'JikanAnime':
        aired = data.get('aired') or {}
        return cls(
            mal_id=data['mal_id'],
            title=data.get('title'),
            title_english=data.get('title_english'),
            title_japanese=data.get('title_japanese'),
            type=data.get('type'),
            status=data.get('status'),
            aired_from=aired.get('from'),
            aired_to=aired.get('to'),
            rating=data.get('rating'),
            score=data.get('score'),
            synopsis=data.get('synopsis'),
            duration=data.get('duration'),
            genres=_names(data.get('genres')),
            explicit_genres=_names(data.get('explicit_genres')),
            themes=_names(data.get('themes')),
            demographics=_names(data.get('demographics')),
            studios=_names(data.get('studios')),
        )


# ---------------------------------------------------------------------------
# TVDB (episodes / artwork)
# ---------------------------------------------------------------------------

@dataclass
class TvdbEpisode:
    id: int
    season_number: Optional[int] = None
    number: Optional[int] = None
    name: Optional[str] = None
    overview: Optional[str] = None
    aired: Optional[str] = None
    image: Optional[str] = None

    @classmethod
    def from_payload(cls, data: Dict) -> 'TvdbEpisode':
        return cls(
            id=data['id'],
            season_number=data.get('seasonNumber'),
            number=data.get('number'),
            name=data.get('name'),
            overview=data.get('overview'),
            aired=data.get('aired'),
            image=data.get('image'),
        )


@dataclass
class Artwork:
    url: str
    type: Optional[int] = None
    width: int = 0
    height: int = 0
    score: float = 0.0
    season_number: Optional[int] = None

    @classmethod
    def from_payload(cls, data: Dict) -> Optional['Artwork']:
        url = data.get('image')
        if not url:
            return None
        return cls(
            url=url,
            type=data.get('type'),
            width=data.get('width') or 0,
            height=data.get('height') or 0,
            score=data.get('score') or 0.0,
        )


# ---------------------------------------------------------------------------
# Output records
# ---------------------------------------------------------------------------

@dataclass
class NormalizedSeriesRecord:
    """Merged series metadata handed to the host integration"""
    title: str
    original_title: str = ''
    year: Optional[int] = None

    # Provider ids
    tvdb_id: Optional[str] = None
    imdb_id: Optional[str] = None
    themoviedb_id: Optional[str] = None
    anidb_id: Optional[str] = None
    anilist_id: Optional[str] = None
    anisearch_id: Optional[str] = None
    kitsu_id: Optional[str] = None
    mal_id: Optional[str] = None
    animeplanet_id: Optional[str] = None
    type: Optional[str] = None

    status: Optional[str] = None
    community_rating: Optional[float] = None
    overview: Optional[str] = None
    release_date: Optional[str] = None
    end_date: Optional[str] = None
    runtime: Optional[int] = None
    parental_rating: Optional[str] = None
    genres: List[str] = field(default_factory=list)
    studios: List[str] = field(default_factory=list)
    tags: List[str] = field(default_factory=list)
    people: List[Person] = field(default_factory=list)
    seasons: List[SeasonRelation] = field(default_factory=list)
    backdrops: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict:
        return asdict(self)


@dataclass
class SeasonRecord:
    """One resolved season (0 = specials)"""
    season_number: int
    name: str
    sort_name: str
    anilist_id: Optional[int] = None
    mal_id: Optional[int] = None
    original_title: Optional[str] = None
    overview: Optional[str] = None
    premiere_date: Optional[str] = None
    production_year: Optional[int] = None
    community_rating: Optional[float] = None
    genres: List[str] = field(default_factory=list)
    tags: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict:
        return asdict(self)


@dataclass
class EpisodeRecord:
    tvdb_id: int
    name: Optional[str]
    season_number: Optional[int]
    episode_number: Optional[int]
    original_title: Optional[str] = None
    overview: Optional[str] = None
    premiere_date: Optional[str] = None
    production_year: Optional[int] = None
    image_url: Optional[str] = None

    def to_dict(self) -> Dict:
        return asdict(self)
