#!/usr/bin/env python3
"""
Graph overrides and scoring tables

Curated knowledge about unreliable AniList relation data plus the tuned
scoring constants used by the resolver. Defaults come from constants.py; an
optional YAML file replaces any subset of them:

    pinned_root_ids: [21, 235]
    long_episode_ids: []
    deferred_seasons: {21: 2}
    format_preference: {TV: 3, TV_SHORT: 2, ONA: 1, OVA: 0}
    special_relation_scores: {SEQUEL+OVA: 4, SIDE_STORY+SPECIAL: 3}
    year_delta_weight: 10
    long_movie_penalty: 5
    long_movie_minutes: 60
"""

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, FrozenSet, Optional, Tuple

import yaml

from anime_multisource.constants import (
    PINNED_ROOT_IDS, LONG_EPISODE_IDS, DEFERRED_SEASONS,
    FORMAT_PREFERENCE, SPECIAL_RELATION_SCORES,
    YEAR_DELTA_WEIGHT, LONG_MOVIE_PENALTY, LONG_MOVIE_MINUTES,
)
from anime_multisource.errors import ConfigurationInvalid

logger = logging.getLogger(__name__)


@dataclass
class GraphOverrides:
    pinned_root_ids: FrozenSet[int] = PINNED_ROOT_IDS
    long_episode_ids: FrozenSet[int] = LONG_EPISODE_IDS
    deferred_seasons: Dict[int, int] = field(default_factory=lambda: dict(DEFERRED_SEASONS))
    format_preference: Dict[str, int] = field(default_factory=lambda: dict(FORMAT_PREFERENCE))
    special_relation_scores: Dict[Tuple[str, str], int] = field(
        default_factory=lambda: dict(SPECIAL_RELATION_SCORES))
    year_delta_weight: int = YEAR_DELTA_WEIGHT
    long_movie_penalty: int = LONG_MOVIE_PENALTY
    long_movie_minutes: int = LONG_MOVIE_MINUTES

    def is_pinned(self, anilist_id: int) -> bool:
        return anilist_id in self.pinned_root_ids

    def should_defer_season(self, root_id: int, season_number: int) -> bool:
        """True when the AniList chain for this season is known to be wrong"""
        first_deferred = self.deferred_seasons.get(root_id)
        return first_deferred is not None and season_number >= first_deferred

    @classmethod
    def from_dict(cls, raw: Optional[Dict]) -> 'GraphOverrides':
        overrides = cls()
        if not raw:
            return overrides
        if not isinstance(raw, dict):
            raise ConfigurationInvalid("Overrides file must contain a mapping")

        try:
            if 'pinned_root_ids' in raw:
                overrides.pinned_root_ids = frozenset(int(i) for i in raw['pinned_root_ids'] or [])
            if 'long_episode_ids' in raw:
                overrides.long_episode_ids = frozenset(int(i) for i in raw['long_episode_ids'] or [])
            if 'deferred_seasons' in raw:
                overrides.deferred_seasons = {
                    int(k): int(v) for k, v in (raw['deferred_seasons'] or {}).items()
                }
            if 'format_preference' in raw:
                overrides.format_preference = {
                    str(k).upper(): int(v) for k, v in (raw['format_preference'] or {}).items()
                }
            if 'special_relation_scores' in raw:
                overrides.special_relation_scores = {
                    _parse_pair(k): int(v) for k, v in (raw['special_relation_scores'] or {}).items()
                }
            for key in ('year_delta_weight', 'long_movie_penalty', 'long_movie_minutes'):
                if key in raw:
                    setattr(overrides, key, int(raw[key]))
        except (TypeError, ValueError, AttributeError) as e:
            raise ConfigurationInvalid(f"Invalid overrides: {e}") from e

        return overrides


def _parse_pair(key: str) -> Tuple[str, str]:
    """'SEQUEL+OVA' -> ('SEQUEL', 'OVA')"""
    relation, sep, media_format = str(key).partition('+')
    if not sep or not relation or not media_format:
        raise ValueError(f"special score key {key!r} must look like RELATION+FORMAT")
    return relation.strip().upper(), media_format.strip().upper()


def load_overrides(path: Optional[Path]) -> GraphOverrides:
    """Built-in defaults, replaced key-by-key from the YAML file if given"""
    if path is None:
        return GraphOverrides()

    path = Path(path)
    if not path.exists():
        raise ConfigurationInvalid(f"Overrides file not found: {path}")

    with open(path, 'r') as f:
        try:
            raw = yaml.safe_load(f)
        except yaml.YAMLError as e:
            raise ConfigurationInvalid(f"Could not parse {path}: {e}") from e

    overrides = GraphOverrides.from_dict(raw)
    logger.info(f"Loaded graph overrides from {path} "
                f"({len(overrides.pinned_root_ids)} pinned, {len(overrides.deferred_seasons)} deferred)")
    return overrides
