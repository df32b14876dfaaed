#!/usr/bin/env python3
"""
AniDB tag filtering
"""

import logging
from typing import Iterable, List, Optional

from anime_multisource.constants import EXCLUDED_TAG_CATEGORIES

logger = logging.getLogger(__name__)


class TagFilter:
    """Drops administrative/noise tags by exact or substring match (case-insensitive)"""

    def __init__(self, excluded: Optional[Iterable[str]] = None):
        categories = EXCLUDED_TAG_CATEGORIES if excluded is None else excluded
        self.excluded = [c.lower() for c in categories if c]
        self._excluded_set = set(self.excluded)

    def is_excluded(self, tag: str) -> bool:
        lowered = tag.lower()
        if lowered in self._excluded_set:
            return True
        return any(category in lowered for category in self.excluded)

    def filter_tags(self, tags: Optional[Iterable[str]]) -> List[str]:
        """Keep non-excluded tags, trimmed, first occurrence order, no duplicates"""
        kept = []
        seen = set()
        for tag in tags or []:
            if not tag or not tag.strip():
                continue
            tag = tag.strip()
            if self.is_excluded(tag):
                continue
            if tag.lower() in seen:
                continue
            seen.add(tag.lower())
            kept.append(tag)
        return kept

    def log_filtered_tags(self, original: List[str], kept: List[str]):
        kept_lower = {t.lower() for t in kept}
        removed = [t for t in original if t and t.strip().lower() not in kept_lower]
        if removed:
            logger.debug(f"Filtered out {len(removed)} tags: {', '.join(removed)}")
        logger.debug(f"Kept {len(kept)} tags after filtering")
