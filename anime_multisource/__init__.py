"""Anime metadata reconciliation across AniList, AniDB, Jikan and TheTVDB"""

__version__ = '1.0.0'
