#!/usr/bin/env python3
"""
Resolver configuration

Loaded from YAML (yaml.safe_load) and mapped onto PluginConfig. Every key is
optional; defaults reproduce the stock plugin behaviour. Enum values are
matched case-insensitively and unknown values raise ConfigurationInvalid.

Example (config_example.yaml):

    title_field: title_english
    title_data_source: anilist
    runtime_data_source: jikan
    approved_genres: [Action, Drama, Mecha]
    tvdb_api_key: "..."
    data_dir: ./cache
"""

import logging
from dataclasses import dataclass, field, fields
from enum import Enum
from pathlib import Path
from typing import Optional, List, Dict, Any

import yaml

from anime_multisource.constants import (
    ANILIST_MAX_PER_MINUTE, ANIDB_DEFAULT_RATE_LIMIT_MS, DEFAULT_APPROVED_GENRES,
)
from anime_multisource.errors import ConfigurationInvalid

logger = logging.getLogger(__name__)


class TitleField(Enum):
    TITLE = 'title'
    TITLE_ENGLISH = 'title_english'
    TITLE_JAPANESE = 'title_japanese'


class OriginalTitleField(Enum):
    TITLE = 'title'
    TITLE_JAPANESE = 'title_japanese'


class DataSource(Enum):
    """Where titles come from; EITHER tries Jikan first, then AniList"""
    ANILIST = 'anilist'
    JIKAN = 'jikan'
    EITHER = 'either'


class RuntimeSource(Enum):
    ANILIST = 'anilist'
    JIKAN = 'jikan'


class SeasonTitleFormat(Enum):
    METADATA_TITLE = 'metadata_title'
    NUMBERED = 'numbered'


class SeasonOverviewSource(Enum):
    ANILIST = 'anilist'
    JIKAN = 'jikan'
    PREFER_JIKAN = 'prefer_jikan'


_ENUM_FIELDS = {
    'title_field': TitleField,
    'title_data_source': DataSource,
    'original_title_field': OriginalTitleField,
    'original_title_data_source': DataSource,
    'runtime_data_source': RuntimeSource,
    'season_title_format': SeasonTitleFormat,
    'season_overview_source': SeasonOverviewSource,
}

# Catalog names accepted for DataSource that have no title selector of their own
_DATA_SOURCE_ALIASES = {
    'anidb': DataSource.EITHER,
    'anisearch': DataSource.EITHER,
    'kitsu': DataSource.EITHER,
}


def _parse_enum(enum_cls, key: str, value):
    if isinstance(value, enum_cls):
        return value
    normalized = str(value).strip().lower().replace('-', '_').replace(' ', '_')
    if enum_cls is DataSource and normalized in _DATA_SOURCE_ALIASES:
        return _DATA_SOURCE_ALIASES[normalized]
    for member in enum_cls:
        if member.value == normalized or member.name.lower() == normalized:
            return member
    allowed = ', '.join(m.value for m in enum_cls)
    raise ConfigurationInvalid(f"Invalid value {value!r} for '{key}' (expected one of: {allowed})")


def _parse_genres(value) -> List[str]:
    """Accept a YAML list or a newline-separated string"""
    if value is None:
        return []
    if isinstance(value, str):
        items = value.splitlines()
    elif isinstance(value, (list, tuple)):
        items = value
    else:
        raise ConfigurationInvalid(f"approved_genres must be a list or string, got {type(value).__name__}")
    return [str(g).strip() for g in items if str(g).strip()]


@dataclass
class PluginConfig:
    """Field-merge preferences, catalog credentials and tuning"""
    title_field: TitleField = TitleField.TITLE
    title_data_source: DataSource = DataSource.EITHER
    original_title_field: OriginalTitleField = OriginalTitleField.TITLE_JAPANESE
    original_title_data_source: DataSource = DataSource.EITHER
    runtime_data_source: RuntimeSource = RuntimeSource.ANILIST
    approved_genres: List[str] = field(default_factory=lambda: list(DEFAULT_APPROVED_GENRES))

    # AniDB
    enable_anidb_tags: bool = True
    anidb_client_name: str = 'mediabrowser'
    anidb_client_version: str = '1'
    anidb_rate_limit_ms: int = ANIDB_DEFAULT_RATE_LIMIT_MS

    # AniList
    anilist_max_per_minute: int = ANILIST_MAX_PER_MINUTE

    # Seasons
    season_title_format: SeasonTitleFormat = SeasonTitleFormat.METADATA_TITLE
    season_overview_source: SeasonOverviewSource = SeasonOverviewSource.PREFER_JIKAN

    # TVDB and backdrops
    tvdb_api_key: str = ''
    max_backdrops: int = 5
    backdrop_min_width: int = 1920
    backdrop_min_height: int = 1080
    backdrop_min_aspect_ratio: float = 1.78

    # Storage
    data_dir: Optional[Path] = None
    overrides_path: Optional[Path] = None

    @classmethod
    def from_dict(cls, raw: Optional[Dict[str, Any]]) -> 'PluginConfig':
        if raw is None:
            return cls()
        if not isinstance(raw, dict):
            raise ConfigurationInvalid("Configuration must be a mapping of key: value pairs")

        known = {f.name for f in fields(cls)}
        values = {}
        for key, value in raw.items():
            if key not in known:
                logger.warning(f"Ignoring unknown config key '{key}'")
                continue
            if value is None:
                continue
            if key in _ENUM_FIELDS:
                values[key] = _parse_enum(_ENUM_FIELDS[key], key, value)
            elif key == 'approved_genres':
                values[key] = _parse_genres(value)
            elif key in ('data_dir', 'overrides_path'):
                values[key] = Path(value).expanduser()
            elif key == 'enable_anidb_tags':
                values[key] = _as_bool(key, value)
            elif key == 'backdrop_min_aspect_ratio':
                values[key] = _as_number(key, value, float)
            elif key in ('anidb_rate_limit_ms', 'anilist_max_per_minute', 'max_backdrops',
                         'backdrop_min_width', 'backdrop_min_height'):
                values[key] = _as_number(key, value, int)
            else:
                values[key] = str(value)

        config = cls(**values)
        config.validate()
        return config

    def validate(self):
        if self.anilist_max_per_minute < 1:
            raise ConfigurationInvalid("anilist_max_per_minute must be at least 1")
        if self.anidb_rate_limit_ms < 0:
            raise ConfigurationInvalid("anidb_rate_limit_ms cannot be negative")


def _as_bool(key: str, value) -> bool:
    """Real YAML booleans, or the usual true/false spellings as strings"""
    if isinstance(value, bool):
        return value
    normalized = str(value).strip().lower()
    if normalized in ('true', 'yes', 'on', '1'):
        return True
    if normalized in ('false', 'no', 'off', '0'):
        return False
    raise ConfigurationInvalid(f"'{key}' must be true or false, got {value!r}")


def _as_number(key: str, value, kind):
    try:
        return kind(value)
    except (TypeError, ValueError):
        raise ConfigurationInvalid(f"'{key}' must be a number, got {value!r}")


def load_config(config_path: Optional[Path]) -> PluginConfig:
    """Load configuration from YAML file (None means defaults)"""
    if config_path is None:
        return PluginConfig()

    config_path = Path(config_path)
    if not config_path.exists():
        raise ConfigurationInvalid(f"Config file not found: {config_path}")

    with open(config_path, 'r') as f:
        try:
            raw = yaml.safe_load(f)
        except yaml.YAMLError as e:
            raise ConfigurationInvalid(f"Could not parse {config_path}: {e}") from e

    return PluginConfig.from_dict(raw)
