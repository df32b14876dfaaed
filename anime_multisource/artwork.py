#!/usr/bin/env python3
"""
Backdrop selection from TVDB series artwork

Only background artwork (type 3) is considered. Candidates must meet the
configured minimum width, height and aspect ratio; a missing dimension skips
that check. When nothing qualifies the filter is relaxed to every candidate so
a series with only small backdrops still gets some.
"""

import logging
from typing import Optional, List, Dict

from anime_multisource.config import PluginConfig
from anime_multisource.models import Artwork

logger = logging.getLogger(__name__)

BACKGROUND_ARTWORK_TYPE = 3


def meets_quality(artwork: Artwork, min_width: int, min_height: int, min_aspect: float) -> bool:
    if min_width > 0 and artwork.width and artwork.width < min_width:
        return False
    if min_height > 0 and artwork.height and artwork.height < min_height:
        return False
    if min_aspect > 0 and artwork.width and artwork.height:
        # Rounded so 1920x1080 (1.7778) meets the 1.78 default
        if round(artwork.width / artwork.height, 2) < min_aspect:
            return False
    return True


def background_candidates(series_extended: Optional[Dict]) -> List[Artwork]:
    candidates = []
    for raw in (series_extended or {}).get('artworks') or []:
        if not isinstance(raw, dict) or raw.get('type') != BACKGROUND_ARTWORK_TYPE:
            continue
        artwork = Artwork.from_payload(raw)
        if artwork is not None:
            candidates.append(artwork)
    return candidates


def select_backdrops(series_extended: Optional[Dict], config: PluginConfig) -> List[str]:
    """Best-scored backdrop URLs, deduplicated, capped at config.max_backdrops"""
    candidates = background_candidates(series_extended)
    if not candidates:
        return []

    chosen = [a for a in candidates
              if meets_quality(a, config.backdrop_min_width, config.backdrop_min_height,
                               config.backdrop_min_aspect_ratio)]
    if not chosen:
        logger.debug(f"No backdrops met quality filter; relaxing to all {len(candidates)} candidates")
        chosen = candidates

    chosen.sort(key=lambda a: a.score, reverse=True)

    urls = []
    seen = set()
    for artwork in chosen:
        if artwork.url.lower() in seen:
            continue
        seen.add(artwork.url.lower())
        urls.append(artwork.url)
        if config.max_backdrops > 0 and len(urls) >= config.max_backdrops:
            break
    return urls
