#!/usr/bin/env python3
"""
resolve.py - Anime metadata resolution from a local hint file

Reads a .plexmatch hint (or a series directory containing one), resolves the
series across AniList, AniDB, Jikan and TheTVDB, and prints JSON.

NEVER writes into the series directory. The only file written is the provider
cache snapshot in data_dir (when configured).
"""

import sys
import json
import logging
import argparse
from pathlib import Path

from anime_multisource.config import load_config
from anime_multisource.errors import (
    ConfigurationInvalid, MappingRefreshError, ResolutionNotFound, RequestCancelled,
)
from anime_multisource.hint import read_hint
from anime_multisource.service import AnimeMultiSourceService

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)


def main():
    parser = argparse.ArgumentParser(
        description='Resolve anime series metadata across catalogs',
        epilog="""
Examples:
  python resolve.py "/anime/Fullmetal Alchemist"
  python resolve.py "/anime/Fullmetal Alchemist/.plexmatch" --season 2
  python resolve.py "/anime/Fullmetal Alchemist" --episode 1 3
  python resolve.py "/anime/Fullmetal Alchemist" --config config_example.yaml
        """
    )
    parser.add_argument('hint_path', type=Path,
                       help='Series directory or .plexmatch file')
    parser.add_argument('--season', type=int,
                       help='Also resolve this season number (0 = specials)')
    parser.add_argument('--episode', type=int, nargs=2, metavar=('SEASON', 'EPISODE'),
                       help='Resolve one episode from TheTVDB instead of the series')
    parser.add_argument('--config', type=Path, default=None,
                       help='Configuration file (default: built-in defaults)')
    parser.add_argument('--verbose', '-v', action='store_true',
                       help='Debug logging')

    args = parser.parse_args()

    if args.verbose:
        logging.getLogger().setLevel(logging.DEBUG)

    if not args.hint_path.exists():
        logger.error(f"Path does not exist: {args.hint_path}")
        return 1

    try:
        config = load_config(args.config)
        service = AnimeMultiSourceService(config)
    except ConfigurationInvalid as e:
        logger.error(f"Invalid configuration: {e}")
        return 1

    hint = read_hint(args.hint_path)
    if hint is None:
        logger.error(f"No hint file found at {args.hint_path}")
        return 1

    try:
        series = service.resolve_series(hint)
    except (ResolutionNotFound, MappingRefreshError) as e:
        logger.error(f"Could not resolve '{hint.title}': {e}")
        return 1
    except RequestCancelled:
        logger.warning("Resolution cancelled")
        return 1

    if args.episode:
        season_number, episode_number = args.episode
        if not series.tvdb_id:
            logger.error("Series has no TVDB id; cannot resolve episodes")
            return 1
        episode = service.resolve_episode(int(series.tvdb_id), season_number, episode_number)
        if episode is None:
            logger.error(f"Episode S{season_number:02d}E{episode_number:02d} not found")
            return 1
        print(json.dumps(episode.to_dict(), indent=2, ensure_ascii=False))
        return 0

    output = {'series': series.to_dict()}

    if args.season is not None:
        if not series.anilist_id:
            logger.error("Series has no AniList id; cannot resolve seasons")
            return 1
        season = service.resolve_season(
            int(series.anilist_id), args.season,
            series_mal_id=int(series.mal_id) if series.mal_id else None,
            fallback_name=series.title,
        )
        output['season'] = season.to_dict() if season else None

    print(json.dumps(output, indent=2, ensure_ascii=False))
    logger.info(f"Cache stats: {service.get_cache_stats()}")
    return 0


if __name__ == '__main__':
    sys.exit(main())
