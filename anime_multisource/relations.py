#!/usr/bin/env python3
"""
Relation edge scoring

Pure functions over RelationEdge lists. The graph resolver decides where to
walk; these decide which single edge to take at each node.
"""

from typing import List, Optional, Dict

from anime_multisource.constants import (
    TV_FORMATS, FORMAT_PREFERENCE, SPECIAL_RELATION_SCORES, SPECIAL_FORMATS,
)
from anime_multisource.models import RelationEdge, SeasonRelation


def format_score(media_format: Optional[str], preference: Optional[Dict[str, int]] = None) -> int:
    """TV 3 > TV_SHORT 2 > ONA 1 > OVA 0 > anything else -1"""
    preference = FORMAT_PREFERENCE if preference is None else preference
    return preference.get((media_format or '').upper(), -1)


def select_preferred_relation(edges: List[RelationEdge],
                              relation_type: str,
                              tv_only: bool = True,
                              preference: Optional[Dict[str, int]] = None) -> Optional[RelationEdge]:
    """
    Pick the best edge of one relation type (PREQUEL or SEQUEL).

    With tv_only, only TV and TV_SHORT targets qualify. Among qualifying edges
    the highest format score wins; on ties the first edge in catalog order wins.
    """
    best = None
    best_score = None
    for edge in edges:
        if edge.relation_type != relation_type:
            continue
        node_format = (edge.node.format or '').upper()
        if tv_only and node_format not in TV_FORMATS:
            continue
        score = format_score(node_format, preference)
        if best_score is None or score > best_score:
            best = edge
            best_score = score
    return best


def special_score(edge: RelationEdge,
                  scores: Optional[Dict] = None) -> Optional[int]:
    """
    Score a candidate "specials" edge, or None when it is excluded.

    Non-anime targets are always excluded. Listed (relation, format) pairs get
    their table score; other OVA/SPECIAL/ONA targets and any SIDE_STORY score 0.
    """
    scores = SPECIAL_RELATION_SCORES if scores is None else scores
    node = edge.node
    if (node.type or '').upper() != 'ANIME':
        return None

    node_format = (node.format or '').upper()
    key = (edge.relation_type, node_format)
    if key in scores:
        return scores[key]
    if node_format in SPECIAL_FORMATS or edge.relation_type == 'SIDE_STORY':
        return 0
    return None


def select_special_relation(edges: List[RelationEdge],
                            scores: Optional[Dict] = None) -> Optional[RelationEdge]:
    """Highest-scoring specials edge (first wins on ties)"""
    best = None
    best_score = None
    for edge in edges:
        score = special_score(edge, scores)
        if score is None:
            continue
        if best_score is None or score > best_score:
            best = edge
            best_score = score
    return best


def get_sequel_relations(edges: List[RelationEdge]) -> List[SeasonRelation]:
    """TV / TV_SHORT sequels of one entry, in catalog order"""
    relations = []
    for edge in edges:
        if edge.relation_type != 'SEQUEL':
            continue
        if (edge.node.format or '').upper() not in TV_FORMATS:
            continue
        relations.append(SeasonRelation(
            relation_type=edge.relation_type,
            anilist_id=edge.node.id,
            title=edge.node.title_romaji,
            title_english=edge.node.title_english,
            season=edge.node.season,
            season_year=edge.node.season_year,
            format=edge.node.format,
            episodes=edge.node.episodes,
        ))
    return relations
