"""Metadata provider adapters.

All adapters share one ``httpx.AsyncClient`` and return the upstream's
parsed JSON.  TMDB and TVDB need API keys; Jikan, Kitsu, TVmaze and
Cinemeta are keyless.  Jikan requests go through the rate-limited queue.
"""

from mediabridge.providers.metadata.cinemeta_provider import CinemetaProvider
from mediabridge.providers.metadata.jikan_provider import JikanProvider
from mediabridge.providers.metadata.kitsu_provider import KitsuProvider
from mediabridge.providers.metadata.tmdb_provider import TmdbProvider
from mediabridge.providers.metadata.tvdb_provider import TvdbProvider
from mediabridge.providers.metadata.tvmaze_provider import TvmazeProvider

__all__ = [
    "CinemetaProvider",
    "JikanProvider",
    "KitsuProvider",
    "TmdbProvider",
    "TvdbProvider",
    "TvmazeProvider",
]
