#!/usr/bin/env python3
"""
Reader for .plexmatch hint files

A hint file sits in a series directory and carries `key: value` lines.
Recognised keys (case-insensitive): title, year, tvdbid, imdbid.
Everything else is ignored.
"""

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from anime_multisource.constants import PLEXMATCH_FILENAME

logger = logging.getLogger(__name__)


@dataclass
class LocalHint:
    """What the local library knows about a series"""
    title: str = ''
    year: Optional[int] = None
    tvdb_id: Optional[str] = None
    imdb_id: Optional[str] = None

    @property
    def has_identifier(self) -> bool:
        return bool(self.tvdb_id or self.imdb_id)


def parse_plexmatch(text: str) -> LocalHint:
    """Parse hint file content; malformed lines and unknown keys are skipped"""
    hint = LocalHint()

    for line in text.splitlines():
        line = line.strip()
        if not line or line.startswith('#'):
            continue

        key, sep, value = line.partition(':')
        if not sep:
            continue
        key = key.strip().lower()
        value = value.strip()

        if key == 'title':
            hint.title = value
            logger.debug(f"Parsed title: {value}")
        elif key == 'year':
            try:
                hint.year = int(value)
                logger.debug(f"Parsed year: {hint.year}")
            except ValueError:
                logger.debug(f"Ignoring non-numeric year: {value!r}")
        elif key == 'tvdbid':
            hint.tvdb_id = value or None
            logger.debug(f"Parsed TVDB id: {value}")
        elif key == 'imdbid':
            hint.imdb_id = value or None
            logger.debug(f"Parsed IMDb id: {value}")

    return hint


def find_hint_file(path: Path) -> Optional[Path]:
    """Accept a hint file or a directory containing one"""
    path = Path(path)
    if path.is_dir():
        candidate = path / PLEXMATCH_FILENAME
        return candidate if candidate.is_file() else None
    return path if path.is_file() else None


def read_hint(path: Path) -> Optional[LocalHint]:
    """Read and parse a hint file (or a series directory); None if absent"""
    hint_path = find_hint_file(path)
    if hint_path is None:
        logger.debug(f"No {PLEXMATCH_FILENAME} found at {path}")
        return None

    with open(hint_path, 'r', encoding='utf-8', errors='replace') as f:
        return parse_plexmatch(f.read())
