#!/usr/bin/env python3
"""
Shared constants for the anime multi-source resolver

Single source of truth for endpoints, cache lifetimes, rate limits, relation
scoring and the curated tag/genre lists. DO NOT duplicate these values in
other modules - import from here instead.

The override tables at the bottom (pinned roots, long-episode ids, deferred
seasons) are curated knowledge about unreliable relation data. They are only
defaults: overrides.py can replace them from a YAML file at runtime.
"""

# ---------------------------------------------------------------------------
# Endpoints
# ---------------------------------------------------------------------------

ANIME_LISTS_URL = 'https://raw.githubusercontent.com/Fribb/anime-lists/master/anime-list-full.json'
ANILIST_URL = 'https://graphql.anilist.co'
ANIDB_URL = 'http://api.anidb.net:9001/httpapi'
JIKAN_BASE_URL = 'https://api.jikan.moe/v4'
TVDB_BASE_URL = 'https://api4.thetvdb.com/v4'

USER_AGENT = 'AnimeMultiSource/1.0 (metadata resolver)'
REQUEST_TIMEOUT = 30

PLEXMATCH_FILENAME = '.plexmatch'
PERSISTENT_CACHE_FILENAME = 'provider-cache.json'

# ---------------------------------------------------------------------------
# Cache lifetimes (seconds)
# ---------------------------------------------------------------------------

HOUR = 60 * 60
DAY = 24 * HOUR

ANIME_LIST_TTL = 6 * HOUR
ANILIST_CACHE_TTL = 5 * DAY
ANIDB_CACHE_TTL = 5 * DAY
TVDB_EPISODE_CACHE_TTL = 6 * HOUR
TVDB_SERIES_CACHE_TTL = 6 * HOUR
JIKAN_CACHE_TTL = 1 * DAY
PERSISTENT_CACHE_MAX_AGE = 5 * DAY

# ---------------------------------------------------------------------------
# Rate limits
# ---------------------------------------------------------------------------

# AniList allows 90/min officially; stay well under it.
ANILIST_MAX_PER_MINUTE = 30

# AniDB: configured spacing applies until the daily soft cap, then slow mode.
ANIDB_DEFAULT_RATE_LIMIT_MS = 2000
ANIDB_SLOW_RATE_LIMIT_MS = 8000
ANIDB_DAILY_SOFT_CAP = 5
ANIDB_BAN_BACKOFF = 15 * 60
ANIDB_RATE_LIMIT_STATUSES = (403, 429, 503)

# Phrases in a non-<anime> AniDB body that mean we have been throttled.
# 'ban ' keeps its trailing space so it does not match "bank".
ANIDB_BAN_PHRASES = (
    'banned',
    'temporary ban',
    'permanent ban',
    'ban ',
    'ban-',
    'too many requests',
    'rate limit',
    'rate-limit',
    'try again later',
    'cooldown',
    'slow down',
)

JIKAN_MIN_SPACING_MS = 2500
JIKAN_MAX_ATTEMPTS = 3
JIKAN_RETRY_STATUSES = (429, 503)
JIKAN_JITTER_MS = (200, 600)

TVDB_TOKEN_LIFETIME = 12 * HOUR
TVDB_TOKEN_REFRESH_MARGIN = 5 * 60
TVDB_MAX_EPISODE_PAGES = 20

# ---------------------------------------------------------------------------
# Relation scoring
# ---------------------------------------------------------------------------

TV_FORMATS = ('TV', 'TV_SHORT')

# Higher wins when several PREQUEL/SEQUEL edges qualify.
FORMAT_PREFERENCE = {
    'TV': 3,
    'TV_SHORT': 2,
    'ONA': 1,
    'OVA': 0,
}

# (relation, format) -> score for picking the "specials" entry (season 0).
SPECIAL_RELATION_SCORES = {
    ('SEQUEL', 'OVA'): 4,
    ('SIDE_STORY', 'SPECIAL'): 3,
    ('SIDE_STORY', 'OVA'): 2,
    ('SEQUEL', 'SPECIAL'): 1,
}
SPECIAL_FORMATS = ('OVA', 'SPECIAL', 'ONA')

# Year disambiguation: cost = |year - hint_year| * weight + movie penalty
YEAR_DELTA_WEIGHT = 10
LONG_MOVIE_PENALTY = 5
LONG_MOVIE_MINUTES = 60
# Upper bound on entries fetched while searching prequels for a year match
YEAR_SEARCH_MAX_NODES = 25

# ---------------------------------------------------------------------------
# Merge
# ---------------------------------------------------------------------------

UNKNOWN_TITLE = 'Unknown Title'
MIN_PEOPLE_BEFORE_FALLBACK = 5

JIKAN_STATUS_MAP = {
    'currently airing': 'Continuing',
    'finished airing': 'Ended',
    'not yet aired': 'Not yet released',
}

DEFAULT_APPROVED_GENRES = [
    'Vampire', 'Thriller', 'Samurai', 'Suspense', 'Supernatural',
    'Super Power', 'Sports', 'Space', 'Slice of Life', 'Shounen', 'Shoujo',
    'Seinen', 'Sci-Fi', 'School', 'Romance', 'Reverse Harem', 'Psychological',
    'Parody', 'Mystery', 'Music', 'Military', 'Mecha', 'Martial Arts',
    'Mahou Shoujo', 'Mythology', 'Magic', 'Kids', 'Josei', 'Iyashikei',
    'Isekai', 'Horror', 'Harem', 'Gore', 'Gourmet', 'Girls Love', 'Fantasy',
    'Ecchi', 'Drama', 'Demons', 'Comedy', 'Boys Love', 'Avant Garde',
    'Adventure', 'Action',
]

# AniDB administrative/noise categories. A tag is dropped when it equals or
# contains (case-insensitive) any of these.
EXCLUDED_TAG_CATEGORIES = [
    'Japanese production',
    'adapted into other media',
    'adapted into Japanese movie',
    'character related tags which need deleting or merging',
    'ending tags that need merging',
    'human - non-human relationship',
    'put right what once went wrong',
    'tropes',
    'cast',
    'ending',
    'origin',
    'technical aspects',
    'Weekly Shounen Jump',
    'complete manga adaptation',
    'unsorted',
    'manga',
    'incomplete story',
    'place',
    'present',
    'plot continuity',
    'elements',
    'time',
    'setting',
    'original work',
    'themes',
    'target audience',
    'dynamic',
    'shoujo',
    'comedy',
    'seinen',
    'content indicators',
    'novel',
    'action',
    'ecchi',
    'romance',
    'harem',
    'fantasy',
    'contemporary fantasy',
    'storytelling',
    'speculative fiction',
    'TO BE MOVED TO CHARACTER',
    'TO BE MOVED TO EPISODE',
    'open-ended',
    'parody',
    'remastered version available',
    'thick line animation',
    'TV censoring',
    'wafuku -- TO BE SPLIT AND DELETED',
    'excessive censoring',
    'preaired episodes',
    'censored uncensored version',
    'season',
    'shounen',
    'multiple protagonists - TO BE MOVED TO PARENT OR DELETED',
    'school festival - TO BE SPLIT AND DELETED',
    'uniform -- TO BE SPLIT AND DELETED',
    'gun - TO BE SPLIT AND DELETED',
    'unusual weapons -- TO BE SPLIT AND DELETED',
    'RPG aspects',
    'medieval -- TO BE SPLIT AND DELETED',
    'maintenance tags',
]

# ---------------------------------------------------------------------------
# Graph overrides (defaults; see overrides.py)
# ---------------------------------------------------------------------------

# AniList ids that must never be replaced by generic root resolution.
PINNED_ROOT_IDS = frozenset({
    21,     # One Piece: prequel edges point at unrelated movies
    235,    # Detective Conan
})

# Entries with feature-length episodes that are still TV seasons, so they do
# not take the long-movie penalty during year disambiguation.
LONG_EPISODE_IDS = frozenset()

# Root id -> first season number whose AniList chain is known to be wrong.
DEFERRED_SEASONS = {
    21: 2,
}
