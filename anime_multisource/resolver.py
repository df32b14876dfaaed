#!/usr/bin/env python3
"""
AniList relation-graph resolver

Finds the canonical root of a franchise and maps ordinal season numbers onto
concrete AniList entries:

1. Root: follow the best TV PREQUEL edge until none qualifies (memoized)
2. Season N: walk N-1 best TV SEQUEL edges from the root
3. Season 0: walk the sequel chain until a node offers a specials edge
4. Year disambiguation: when the mapped entry is not its own root and the
   hint has a year, keep whichever of (mapped, root) is closer to that year

The graph is only ever held as AniList ids; every walk keeps a visited set, so
cyclic relation data terminates.
"""

import logging
import threading
from collections import deque
from typing import Optional, Dict, List

from anime_multisource.anilist import AniListClient
from anime_multisource.constants import YEAR_SEARCH_MAX_NODES
from anime_multisource.models import AniListMedia, SeasonDetail, SeasonRelation
from anime_multisource.overrides import GraphOverrides
from anime_multisource.relations import (
    select_preferred_relation, select_special_relation, get_sequel_relations,
)

logger = logging.getLogger(__name__)


class GraphResolver:
    """Root-finding and season lookup over the AniList relation graph"""

    def __init__(self, anilist: AniListClient, overrides: Optional[GraphOverrides] = None):
        self.anilist = anilist
        self.overrides = overrides or GraphOverrides()

    # ------------------------------------------------------------------
    # Root
    # ------------------------------------------------------------------

    def find_root(self, anilist_id: int, cancel: Optional[threading.Event] = None) -> int:
        """Follow best TV PREQUEL edges to the first installment"""
        if self.overrides.is_pinned(anilist_id):
            logger.debug(f"AniList {anilist_id} is pinned; not re-rooting")
            return anilist_id

        cached = self.anilist.get_cached_root(anilist_id)
        if cached is not None:
            return cached

        visited = set()
        current = anilist_id
        complete = True

        while current not in visited:
            visited.add(current)
            if current != anilist_id and self.overrides.is_pinned(current):
                break

            media = self.anilist.get_media(current, cancel)
            if media is None:
                # Walk cut short by a failed fetch: answer but do not memoize
                complete = False
                break

            prequel = select_preferred_relation(
                media.relations, 'PREQUEL', tv_only=True,
                preference=self.overrides.format_preference)
            if prequel is None:
                break
            current = prequel.node.id

        if complete:
            self.anilist.store_root(anilist_id, current)
        return current

    def resolve_root(self, mapped_id: int, hint_year: Optional[int] = None,
                     cancel: Optional[threading.Event] = None) -> int:
        """Generic root, unless the mapped entry is a better match for hint_year"""
        if self.overrides.is_pinned(mapped_id):
            return mapped_id

        root = self.find_root(mapped_id, cancel)
        if root == mapped_id or hint_year is None:
            return root

        costs = self.year_costs(mapped_id, hint_year, cancel)
        mapped_cost = costs.get(mapped_id, float('inf'))
        root_cost = costs.get(root)
        if root_cost is None:
            root_cost = self._node_cost(self.anilist.get_media(root, cancel), hint_year)

        if mapped_cost < root_cost:
            logger.info(f"Keeping mapped AniList {mapped_id} over root {root}: closer to {hint_year} "
                        f"(cost {mapped_cost} vs {root_cost})")
            return mapped_id

        logger.info(f"Using AniList root {root} instead of mapped {mapped_id}")
        return root

    def _node_cost(self, media: Optional[AniListMedia], hint_year: int) -> float:
        """|year - hint_year| * weight + long-movie penalty; inf when year unknown"""
        if media is None or media.year is None:
            return float('inf')

        cost = abs(media.year - hint_year) * self.overrides.year_delta_weight
        if ((media.format or '').upper() == 'MOVIE'
                and (media.duration or 0) > self.overrides.long_movie_minutes
                and media.id not in self.overrides.long_episode_ids):
            cost += self.overrides.long_movie_penalty
        return cost

    def year_costs(self, start_id: int, hint_year: int,
                   cancel: Optional[threading.Event] = None) -> Dict[int, float]:
        """Breadth-first over PREQUEL edges (any format), cost per reached entry"""
        costs: Dict[int, float] = {}
        queue = deque([start_id])
        visited = {start_id}

        while queue and len(costs) < YEAR_SEARCH_MAX_NODES:
            current = queue.popleft()
            media = self.anilist.get_media(current, cancel)
            costs[current] = self._node_cost(media, hint_year)
            if media is None:
                continue

            for edge in media.relations:
                if edge.relation_type != 'PREQUEL' or edge.node.id in visited:
                    continue
                if (edge.node.type or 'ANIME').upper() != 'ANIME':
                    continue
                visited.add(edge.node.id)
                queue.append(edge.node.id)

        return costs

    # ------------------------------------------------------------------
    # Seasons
    # ------------------------------------------------------------------

    def _sequel_id(self, detail: SeasonDetail) -> Optional[int]:
        sequel = select_preferred_relation(
            detail.relations, 'SEQUEL', tv_only=True,
            preference=self.overrides.format_preference)
        return sequel.node.id if sequel else None

    def get_season(self, root_id: int, season_number: int,
                   cancel: Optional[threading.Event] = None) -> Optional[SeasonDetail]:
        """Season 1 is the root, N walks N-1 sequels, 0 is the specials entry"""
        if season_number < 0:
            return None

        if self.overrides.should_defer_season(root_id, season_number):
            logger.info(f"Season {season_number} of AniList {root_id} deferred to other providers (override rule)")
            return None

        if season_number == 0:
            return self.get_special_season(root_id, cancel)

        visited = set()
        current = root_id
        for index in range(1, season_number + 1):
            visited.add(current)
            detail = self.anilist.get_season_detail(current, cancel)
            if detail is None:
                return None
            if index == season_number:
                return detail

            sequel_id = self._sequel_id(detail)
            if sequel_id is None:
                logger.warning(f"Missing sequel link after season {index} for AniList ID {current}")
                return None
            if sequel_id in visited:
                logger.warning(f"Sequel chain from AniList {root_id} loops back to {sequel_id}")
                return None
            current = sequel_id

        return None

    def get_special_season(self, root_id: int,
                           cancel: Optional[threading.Event] = None) -> Optional[SeasonDetail]:
        """First specials/OVA entry offered along the sequel chain"""
        visited = set()
        current = root_id

        while current is not None and current not in visited:
            visited.add(current)
            detail = self.anilist.get_season_detail(current, cancel)
            if detail is None:
                return None

            special = select_special_relation(detail.relations, self.overrides.special_relation_scores)
            if special is not None:
                logger.info(f"Using special/OVA AniList ID {special.node.id} for base AniList ID {root_id}")
                return self.anilist.get_season_detail(special.node.id, cancel)

            current = self._sequel_id(detail)

        logger.debug(f"No specials/OVAs found for base AniList ID {root_id}")
        return None

    def get_season_relations(self, media: Optional[AniListMedia]) -> List[SeasonRelation]:
        if media is None:
            return []
        return get_sequel_relations(media.relations)

    def get_season_chain(self, root_id: int,
                         cancel: Optional[threading.Event] = None) -> List[int]:
        """AniList ids of season 1, 2, ... following best TV sequels until the chain ends"""
        chain = [root_id]

        while True:
            detail = self.anilist.get_season_detail(chain[-1], cancel)
            if detail is None:
                break
            sequel_id = self._sequel_id(detail)
            if sequel_id is None:
                break
            if sequel_id in chain:
                logger.warning(f"Sequel chain from AniList {root_id} loops back to {sequel_id}")
                break
            chain.append(sequel_id)

        return chain
